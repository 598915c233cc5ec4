from django.contrib import admin
from .models import SchoolClass, Group, GroupMember


@admin.register(SchoolClass)
class SchoolClassAdmin(admin.ModelAdmin):
    list_display = ['name', 'year', 'section', 'is_active', 'created_at']
    list_filter = ['is_active', 'year']
    search_fields = ['name']


class GroupMemberInline(admin.TabularInline):
    model = GroupMember
    extra = 0
    raw_id_fields = ['student']


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ['name', 'reference_collaborator', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'description']
    inlines = [GroupMemberInline]
