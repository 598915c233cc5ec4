"""
Management command: test_email

Sends a real email via the configured backend to verify that the email
system is working correctly.

Usage:
    python manage.py test_email --to you@example.com
    python manage.py test_email --to you@example.com --type simulation_assigned
    python manage.py test_email --to you@example.com --type contract_assigned
    python manage.py test_email --to you@example.com --type contract_expired
    python manage.py test_email --to you@example.com --type all
"""

from types import SimpleNamespace

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone


class FakeUser:
    """Minimal user-like object for template rendering."""
    def __init__(self, email, first_name='Mario', last_name='Rossi'):
        self.email = email
        self.first_name = first_name
        self.last_name = last_name

    def get_full_name(self):
        return f'{self.first_name} {self.last_name}'


class Command(BaseCommand):
    help = 'Send a test email to verify the mail configuration.'

    EMAIL_TYPES = ['simulation_assigned', 'contract_assigned', 'contract_expired', 'all']

    def add_arguments(self, parser):
        parser.add_argument(
            '--to',
            required=True,
            help='Recipient email address for the test.',
        )
        parser.add_argument(
            '--type',
            default='all',
            choices=self.EMAIL_TYPES,
            help='Which email template to test (default: all).',
        )

    def handle(self, *args, **options):
        from apps.core.emails import (
            send_simulation_assigned_email,
            send_contract_assigned_email,
            send_contract_expired_email,
        )

        recipient = options['to']
        email_type = options['type']

        self.stdout.write(self.style.MIGRATE_HEADING('\n=== Leonardo School Email Test ==='))
        self.stdout.write(f'Backend : {settings.EMAIL_BACKEND}')
        self.stdout.write(f'Host    : {settings.EMAIL_HOST}:{settings.EMAIL_PORT}')
        self.stdout.write(f'From    : {settings.DEFAULT_FROM_EMAIL}')
        self.stdout.write(f'To      : {recipient}')
        self.stdout.write(f'Type    : {email_type}\n')

        fake_user = FakeUser(email=recipient)
        now = timezone.now()
        fake_simulation = SimpleNamespace(id=0, title='Simulazione di prova', start_date=now)
        fake_contract = SimpleNamespace(
            id=0,
            template=SimpleNamespace(name='Contratto di prova'),
            contract_expires_at=now,
        )

        results = {}

        if email_type in ('simulation_assigned', 'all'):
            self.stdout.write('Sending simulation assigned email...', ending=' ')
            ok = send_simulation_assigned_email(fake_user, fake_simulation, due_date=now)
            results['simulation_assigned'] = ok
            self._print_result(ok)

        if email_type in ('contract_assigned', 'all'):
            self.stdout.write('Sending contract assigned email...', ending=' ')
            ok = send_contract_assigned_email(fake_user, fake_contract)
            results['contract_assigned'] = ok
            self._print_result(ok)

        if email_type in ('contract_expired', 'all'):
            self.stdout.write('Sending contract expired email...', ending=' ')
            ok = send_contract_expired_email(fake_user, fake_contract)
            results['contract_expired'] = ok
            self._print_result(ok)

        # Summary
        self.stdout.write('')
        passed = sum(results.values())
        total = len(results)

        if passed == total:
            self.stdout.write(self.style.SUCCESS(f'All {total}/{total} emails sent successfully.'))
            self.stdout.write(self.style.SUCCESS(f'Check {recipient} inbox (and spam folder).'))
        else:
            failed = [k for k, v in results.items() if not v]
            self.stdout.write(self.style.ERROR(
                f'{passed}/{total} emails sent. Failed: {", ".join(failed)}'
            ))
            self.stdout.write('Check the Django logs above for error details.')
            raise CommandError('One or more test emails failed to send.')

    def _print_result(self, ok):
        if ok:
            self.stdout.write(self.style.SUCCESS('OK'))
        else:
            self.stdout.write(self.style.ERROR('FAILED'))
