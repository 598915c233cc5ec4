from django.contrib import admin
from .models import ContractTemplate, Contract


@admin.register(ContractTemplate)
class ContractTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'duration_days', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name']


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ['user', 'template', 'status', 'signed_at', 'contract_expires_at']
    list_filter = ['status', 'template']
    search_fields = ['user__email', 'template__name']
    raw_id_fields = ['user', 'assigned_by']
