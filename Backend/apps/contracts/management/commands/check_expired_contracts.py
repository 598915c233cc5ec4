"""
Management command: check_expired_contracts

Expires signed contracts past their end date and suspends the accounts.
Same sweep as GET /api/v1/cron/check-expired-contracts/.

Usage:
    python manage.py check_expired_contracts
    python manage.py check_expired_contracts --no-notify
"""

from django.core.management.base import BaseCommand

from apps.contracts.services import expire_contracts


class Command(BaseCommand):
    help = 'Expire signed contracts past their end date and deactivate the users.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--no-notify',
            action='store_true',
            help='Skip push and email delivery (the inbox notification is still created).',
        )

    def handle(self, *args, **options):
        report = expire_contracts(notify=not options['no_notify'])

        self.stdout.write(f"Processed  : {report['processed']}")
        self.stdout.write(f"Deactivated: {report['deactivated']}")
        for error in report['errors']:
            self.stdout.write(self.style.ERROR(error))

        self.stdout.write(self.style.SUCCESS(f"Done in {report['durationMs']}ms."))
