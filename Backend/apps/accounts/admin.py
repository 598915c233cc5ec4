from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from apps.contracts.models import Contract
from .models import User


class ContractInline(admin.TabularInline):
    model = Contract
    fk_name = 'user'
    extra = 0
    fields = ['template', 'status', 'signed_at', 'contract_expires_at']
    readonly_fields = ['signed_at', 'contract_expires_at']
    show_change_link = True


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Accounts of staff and students. Suspended students show up as inactive."""

    list_display = ['email', 'display_name', 'role', 'school_class', 'is_active', 'last_login']
    list_filter = ['role', 'is_active', 'school_class']
    search_fields = ['email', 'first_name', 'last_name', 'phone_number']
    list_select_related = ['school_class']
    ordering = ['last_name', 'first_name']
    readonly_fields = ['date_joined', 'last_login', 'updated_at']
    inlines = [ContractInline]
    actions = ['suspend_users', 'reactivate_users']

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        (_('Anagrafica'), {'fields': ('first_name', 'last_name', 'phone_number')}),
        (_('Ruolo e classe'), {'fields': ('role', 'school_class')}),
        (_('Accesso'), {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
        }),
        (_('Date'), {'fields': ('last_login', 'date_joined', 'updated_at')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'password1', 'password2', 'first_name', 'last_name', 'role', 'school_class'),
        }),
    )

    filter_horizontal = ('groups', 'user_permissions',)

    @admin.action(description=_('Sospendi gli utenti selezionati'))
    def suspend_users(self, request, queryset):
        updated = queryset.exclude(pk=request.user.pk).update(is_active=False)
        self.message_user(request, _('%d utenti sospesi.') % updated)

    @admin.action(description=_('Riattiva gli utenti selezionati'))
    def reactivate_users(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, _('%d utenti riattivati.') % updated)
