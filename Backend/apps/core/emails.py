"""
Email utility functions for the Leonardo School platform.

All outbound emails go through Django's configured mail backend (SMTP in
production). Templates live in apps/core/templates/emails/.
"""

import logging
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


def _get_from_email():
    """Return the sender address from settings."""
    return getattr(settings, 'DEFAULT_FROM_EMAIL', 'Leonardo School <noreply@leonardoschool.it>')


def _send_html_email(subject, template_name, context, recipient_email, from_email=None):
    """
    Core helper: render an HTML template and send with a plain-text fallback.

    Returns True on success, False on failure.
    """
    if from_email is None:
        from_email = _get_from_email()

    # Merge common context variables
    base_context = {
        'frontend_url': getattr(settings, 'FRONTEND_URL', 'http://localhost:3000'),
        'support_email': from_email,
    }
    base_context.update(context)

    try:
        html_body = render_to_string(f'emails/{template_name}', base_context)
        text_body = strip_tags(html_body)

        message = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=from_email,
            to=[recipient_email],
        )
        message.attach_alternative(html_body, 'text/html')
        message.send(fail_silently=False)

        logger.info('Email "%s" sent successfully to %s', subject, recipient_email)
        return True

    except Exception as exc:
        logger.error(
            'Failed to send email "%s" to %s: %s',
            subject, recipient_email, exc, exc_info=True
        )
        return False


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def send_simulation_assigned_email(user, simulation, due_date=None):
    """
    Tell a student that a simulation has been assigned to them.

    Args:
        user: Student User instance (needs .email, .first_name).
        simulation: Simulation instance (needs .id, .title, .start_date).
        due_date: Optional deadline shown in the body.

    Returns:
        bool: True if the email was accepted by the mail backend.
    """
    frontend_url = getattr(settings, 'FRONTEND_URL', 'http://localhost:3000')
    simulation_url = f'{frontend_url}/simulazioni/{simulation.id}'

    return _send_html_email(
        subject=f'Nuova simulazione assegnata: {simulation.title}',
        template_name='simulation_assigned.html',
        context={
            'user_name': user.first_name or user.get_full_name() or user.email,
            'simulation': simulation,
            'due_date': due_date,
            'simulation_url': simulation_url,
        },
        recipient_email=user.email,
    )


def send_contract_expired_email(user, contract):
    """
    Notify a user that their contract expired and the account was suspended.

    Args:
        user: User instance whose account has just been deactivated.
        contract: Contract instance (needs .template.name, .contract_expires_at).

    Returns:
        bool: True if the email was accepted by the mail backend.
    """
    return _send_html_email(
        subject='Il tuo contratto è scaduto',
        template_name='contract_expired.html',
        context={
            'user_name': user.first_name or user.get_full_name() or user.email,
            'contract_name': contract.template.name,
            'expired_at': contract.contract_expires_at,
        },
        recipient_email=user.email,
    )


def send_contract_assigned_email(user, contract):
    """Invite a user to review and sign a newly assigned contract."""
    frontend_url = getattr(settings, 'FRONTEND_URL', 'http://localhost:3000')

    return _send_html_email(
        subject=f'Nuovo contratto da firmare: {contract.template.name}',
        template_name='contract_assigned.html',
        context={
            'user_name': user.first_name or user.get_full_name() or user.email,
            'contract_name': contract.template.name,
            'contract_url': f'{frontend_url}/contratti/{contract.id}',
        },
        recipient_email=user.email,
    )
