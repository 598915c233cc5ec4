from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _


class Notification(models.Model):
    """In-app notification shown in the user's inbox."""

    TYPE_CHOICES = [
        ('GENERAL', _('Generale')),
        ('SIMULATION_ASSIGNED', _('Simulazione assegnata')),
        ('SIMULATION_STARTED', _('Simulazione iniziata')),
        ('SIMULATION_ENDED', _('Simulazione terminata')),
        ('REVIEW_PENDING', _('Correzione in attesa')),
        ('CONTRACT_EXPIRED', _('Contratto scaduto')),
        ('CONTRACT_STATUS', _('Stato contratto')),
        ('NEW_MESSAGE', _('Nuovo messaggio')),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
        verbose_name=_('user')
    )
    title = models.CharField(_('title'), max_length=255)
    message = models.TextField(_('message'))
    notification_type = models.CharField(_('type'), max_length=30, choices=TYPE_CHOICES, default='GENERAL')
    link = models.CharField(_('link'), max_length=500, blank=True)
    is_read = models.BooleanField(_('read'), default=False)
    read_at = models.DateTimeField(_('read at'), null=True, blank=True)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_read']),
        ]

    def __str__(self):
        return f'{self.user.email}: {self.title}'


class PushToken(models.Model):
    """
    Device token registered for push delivery.

    Tokens are unique platform-wide; a token that moves to another account is
    transferred, and tokens rejected by the provider are deactivated.
    """

    PROVIDER_CHOICES = [
        ('FCM', 'Firebase Cloud Messaging'),
        ('EXPO', 'Expo'),
    ]

    PLATFORM_CHOICES = [
        ('web', 'Web'),
        ('android', 'Android'),
        ('ios', 'iOS'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='push_tokens',
        verbose_name=_('user')
    )
    token = models.CharField(_('token'), max_length=512, unique=True)
    provider = models.CharField(_('provider'), max_length=10, choices=PROVIDER_CHOICES, default='FCM')
    platform = models.CharField(_('platform'), max_length=10, choices=PLATFORM_CHOICES, default='web')
    device_info = models.CharField(_('device info'), max_length=255, blank=True)
    is_active = models.BooleanField(_('active'), default=True)
    last_used_at = models.DateTimeField(_('last used at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('push token')
        verbose_name_plural = _('push tokens')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_active']),
        ]

    def __str__(self):
        return f'{self.user.email} ({self.provider}/{self.platform})'
