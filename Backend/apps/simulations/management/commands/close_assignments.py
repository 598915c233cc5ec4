"""
Management command: close_assignments

Closes ACTIVE assignments whose end date has passed or whose targeted
students have all completed a non-repeatable simulation. Same sweep as
POST /api/v1/cron/close-simulations/.

Usage:
    python manage.py close_assignments
    python manage.py close_assignments --dry-run
"""

from django.core.management.base import BaseCommand

from apps.simulations.services import close_expired_assignments


class Command(BaseCommand):
    help = 'Close expired or fully completed simulation assignments.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would be closed without writing.',
        )

    def handle(self, *args, **options):
        report = close_expired_assignments(dry_run=options['dry_run'])

        prefix = '[dry run] ' if report.dry_run else ''
        self.stdout.write(f'{prefix}Closed by date      : {len(report.closed_by_date)}')
        self.stdout.write(f'{prefix}Closed by completion: {len(report.closed_by_completion)}')

        for error in report.errors:
            self.stdout.write(self.style.ERROR(error))

        if report.errors:
            self.stdout.write(self.style.WARNING(
                f'{report.total_closed} assignment(s) closed with {len(report.errors)} error(s).'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(f'{report.total_closed} assignment(s) closed.'))
