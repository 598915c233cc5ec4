"""
Contract lifecycle services.

``expire_contracts`` is the daily sweep that suspends accounts whose signed
contract has run out.
"""

import logging
import time

from django.db import transaction
from django.utils import timezone

from .models import Contract

logger = logging.getLogger(__name__)


def expire_contracts(now=None, notify=True):
    """
    Expire SIGNED contracts past ``contract_expires_at`` and deactivate their users.

    Users already inactive are skipped. Every handled contract becomes
    EXPIRED, its user is deactivated and receives a CONTRACT_EXPIRED
    notification (push and email are best effort). Failures are collected per
    contract and the sweep continues.

    Returns:
        dict: ``success``, ``processed``, ``deactivated``, ``errors``, ``durationMs``.
    """
    from apps.core.emails import send_contract_expired_email
    from apps.notifications.services import notify_user

    started = time.monotonic()
    now = now or timezone.now()
    logger.info('Expired contracts check started')

    expired = list(
        Contract.objects
        .filter(status='SIGNED', contract_expires_at__lt=now)
        .select_related('user', 'template')
    )
    logger.info('Found %d expired contract(s)', len(expired))

    deactivated = 0
    errors = []
    for contract in expired:
        user = contract.user
        if not user.is_active:
            logger.debug('User %s already inactive, skipping contract %s', user.id, contract.id)
            continue
        try:
            with transaction.atomic():
                contract.status = 'EXPIRED'
                contract.save(update_fields=['status', 'updated_at'])
                user.is_active = False
                user.save(update_fields=['is_active', 'updated_at'])
                notify_user(
                    user,
                    'Contratto scaduto',
                    f'Il tuo contratto "{contract.template.name}" è scaduto. '
                    f"Contatta l'amministrazione per rinnovarlo.",
                    notification_type='CONTRACT_EXPIRED',
                    push=notify,
                )
        except Exception as exc:
            logger.error('Failed to process contract %s', contract.id, exc_info=True)
            errors.append(f'Failed to process contract {contract.id}: {exc}')
            continue

        if notify:
            send_contract_expired_email(user, contract)
        logger.info('Deactivated user %s (%s): contract %s expired', user.id, user.email, contract.id)
        deactivated += 1

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info('Expired contracts check completed in %dms: deactivated=%d errors=%d',
                duration_ms, deactivated, len(errors))

    return {
        'success': True,
        'processed': len(expired),
        'deactivated': deactivated,
        'errors': errors,
        'durationMs': duration_ms,
    }
