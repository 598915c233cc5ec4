"""
Notification services.

Creates inbox rows and fans out push notifications. Delivery is best
effort: the notification row is the source of truth and is never rolled
back because a provider failed.
"""

import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from .models import Notification
from .push import send_push_to_user

logger = logging.getLogger(__name__)

User = get_user_model()


def _push_notification(notification):
    try:
        send_push_to_user(
            notification.user,
            notification.title,
            notification.message,
            data={
                'notificationId': notification.id,
                'type': notification.notification_type,
                'link': notification.link,
            },
            link=notification.link or None,
        )
    except Exception:
        logger.error('Push fan-out failed for notification %s', notification.id, exc_info=True)


def notify_user(user, title, message, notification_type='GENERAL', link='', push=True):
    """
    Create a notification for ``user`` and optionally push it to their devices.

    The push goes out once the surrounding transaction commits, so callers
    holding row locks never wait on a provider.

    Args:
        user: Recipient User instance.
        title (str): Short title.
        message (str): Body text.
        notification_type (str): One of Notification.TYPE_CHOICES.
        link (str): Frontend path opened when the notification is clicked.
        push (bool): Also deliver to registered devices.

    Returns:
        Notification: the stored row.
    """
    notification = Notification.objects.create(
        user=user,
        title=title,
        message=message,
        notification_type=notification_type,
        link=link or '',
    )

    if push:
        transaction.on_commit(lambda: _push_notification(notification))

    return notification


def notify_users(users, title, message, notification_type='GENERAL', link='', push=True):
    """Notify several users. Returns the number of notifications created."""
    count = 0
    for user in users:
        notify_user(user, title, message, notification_type=notification_type, link=link, push=push)
        count += 1
    return count


def notify_simulation_assigned(simulation, student_ids, due_date=None, send_email=True):
    """
    Tell every newly targeted student about an assigned simulation.

    Args:
        simulation: Simulation instance.
        student_ids: ids of the targeted students.
        due_date: optional deadline mentioned in the email.
        send_email (bool): also send the HTML email.

    Returns:
        int: number of students notified.
    """
    from apps.core.emails import send_simulation_assigned_email

    students = User.objects.filter(id__in=student_ids, is_active=True)
    link = f'/simulazioni/{simulation.id}'
    count = 0
    for student in students:
        notify_user(
            student,
            'Nuova simulazione assegnata',
            f'Ti è stata assegnata la simulazione "{simulation.title}".',
            notification_type='SIMULATION_ASSIGNED',
            link=link,
        )
        if send_email:
            send_simulation_assigned_email(student, simulation, due_date=due_date)
        count += 1

    logger.info('Notified %d student(s) about simulation %s', count, simulation.id)
    return count


def notify_review_pending(result):
    """Ask staff to grade the open answers of a completed attempt."""
    simulation = result.simulation
    recipients = User.objects.filter(role='ADMIN', is_active=True)
    if simulation.created_by_id:
        recipients = recipients | User.objects.filter(id=simulation.created_by_id, is_active=True)

    student_name = result.student.get_full_name() or result.student.email
    return notify_users(
        recipients.distinct(),
        'Risposte da correggere',
        f'{student_name} ha completato "{simulation.title}" con '
        f'{result.pending_review} risposte aperte da correggere.',
        notification_type='REVIEW_PENDING',
        link=f'/simulazioni/{simulation.id}/risultati/{result.id}',
    )
