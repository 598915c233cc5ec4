from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class ContractTemplate(models.Model):
    """Reusable contract text with a validity period counted from signature."""

    name = models.CharField(_('name'), max_length=255)
    content = models.TextField(_('content'))
    duration_days = models.PositiveIntegerField(_('duration (days)'), default=365)
    is_active = models.BooleanField(_('active'), default=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('contract template')
        verbose_name_plural = _('contract templates')
        ordering = ['name']

    def __str__(self):
        return self.name


class Contract(models.Model):
    """
    Contract assigned to a student or collaborator.

    PENDING until the owner signs it; SIGNED contracts turn EXPIRED once
    ``contract_expires_at`` passes, which also suspends the account.
    """

    STATUS_CHOICES = [
        ('PENDING', _('In attesa di firma')),
        ('SIGNED', _('Firmato')),
        ('EXPIRED', _('Scaduto')),
        ('CANCELLED', _('Annullato')),
    ]

    template = models.ForeignKey(
        ContractTemplate,
        on_delete=models.PROTECT,
        related_name='contracts',
        verbose_name=_('template')
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='contracts',
        verbose_name=_('user')
    )
    status = models.CharField(_('status'), max_length=20, choices=STATUS_CHOICES, default='PENDING')
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_contracts',
        verbose_name=_('assigned by')
    )
    signed_at = models.DateTimeField(_('signed at'), null=True, blank=True)
    contract_expires_at = models.DateTimeField(_('expires at'), null=True, blank=True)
    admin_notes = models.TextField(_('admin notes'), blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('contract')
        verbose_name_plural = _('contracts')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'contract_expires_at']),
            models.Index(fields=['user', 'status']),
        ]

    def __str__(self):
        return f'{self.template.name} - {self.user.email} ({self.status})'

    def sign(self, when=None):
        """Mark the contract signed and compute its expiry from the template duration."""
        self.signed_at = when or timezone.now()
        self.contract_expires_at = self.signed_at + timedelta(days=self.template.duration_days)
        self.status = 'SIGNED'

    @property
    def is_expired(self):
        return bool(self.contract_expires_at and self.contract_expires_at < timezone.now())
