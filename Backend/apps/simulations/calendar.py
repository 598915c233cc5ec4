"""
iCalendar (.ics) export for scheduled simulations.

Produces a single VEVENT that Google Calendar, Apple Calendar and Outlook
import as a meeting request.
"""

import re
from datetime import datetime, timedelta, timezone as dt_timezone

from django.utils import timezone

PRODID = '-//Leonardo School//Calendar//IT'
UID_DOMAIN = 'leonardoschool.it'
ORGANIZER_EMAIL = 'noreply@leonardoschool.it'
DEFAULT_DURATION_MINUTES = 60


def escape_text(text):
    """Escape a TEXT value (backslash, semicolon, comma, newline)."""
    return (
        str(text)
        .replace('\\', '\\\\')
        .replace(';', '\\;')
        .replace(',', '\\,')
        .replace('\r\n', '\\n')
        .replace('\n', '\\n')
    )


def format_datetime(value):
    """UTC timestamp in the basic format ``YYYYMMDDTHHMMSSZ``."""
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value.astimezone(dt_timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def fold_line(line, limit=75):
    """
    Fold a content line into chunks of at most ``limit`` octets.

    Continuation lines start with a single space, which counts toward their
    limit. UTF-8 sequences are never split.
    """
    if len(line.encode('utf-8')) <= limit:
        return line
    chunks = []
    current, size = '', 0
    for char in line:
        width = len(char.encode('utf-8'))
        budget = limit if not chunks else limit - 1
        if size + width > budget:
            chunks.append(current)
            current, size = '', 0
        current += char
        size += width
    chunks.append(current)
    return '\r\n '.join(chunks)


def simulation_end(simulation):
    if simulation.end_date:
        return simulation.end_date
    minutes = simulation.duration_minutes or DEFAULT_DURATION_MINUTES
    return simulation.start_date + timedelta(minutes=minutes)


def build_description(simulation):
    lines = [simulation.description or '', '']
    lines.append(f'Tipo: {simulation.simulation_type}')
    lines.append(f'Domande: {simulation.total_questions}')
    lines.append(f'Durata: {simulation.duration_minutes or DEFAULT_DURATION_MINUTES} minuti')
    if simulation.is_official:
        lines.extend(['', 'SIMULAZIONE UFFICIALE'])
    if simulation.school_class_id:
        lines.append(f'Classe: {simulation.school_class.name}')
    return '\n'.join(lines).strip()


def organizer_name(simulation):
    if simulation.created_by_id:
        return simulation.created_by.get_full_name() or 'Leonardo School'
    return 'Leonardo School'


def generate_icalendar(simulation, now=None):
    """
    Render the .ics document for a simulation with a start date.

    Lines are folded at 75 octets and joined with CRLF.
    """
    now = now or datetime.now(dt_timezone.utc)
    organizer = organizer_name(simulation)

    description = build_description(simulation)
    description += f'\n\nOrganizzato da: {organizer}\n\n---\nLeonardo School'

    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f'PRODID:{PRODID}',
        'CALSCALE:GREGORIAN',
        'METHOD:REQUEST',
        'BEGIN:VEVENT',
        f'UID:simulation-{simulation.id}@{UID_DOMAIN}',
        f'DTSTAMP:{format_datetime(now)}',
        f'ORGANIZER;CN={escape_text(organizer)}:mailto:{ORGANIZER_EMAIL}',
        f'SUMMARY:{escape_text(simulation.title)}',
        f'DTSTART:{format_datetime(simulation.start_date)}',
        f'DTEND:{format_datetime(simulation_end(simulation))}',
    ]
    if simulation.location_details:
        lines.append(f'LOCATION:{escape_text(simulation.location_details)}')
    elif simulation.location_type == 'ONLINE':
        lines.append('LOCATION:Online')
    lines.extend([
        f'DESCRIPTION:{escape_text(description)}',
        'STATUS:CONFIRMED',
        'CATEGORIES:Simulazione',
        'END:VEVENT',
        'END:VCALENDAR',
    ])
    return '\r\n'.join(fold_line(line) for line in lines)


def calendar_filename(simulation):
    """``simulazione_<safe title, 30 chars>_<YYYY-MM-DD>.ics``"""
    safe_title = re.sub(r'[^a-zA-Z0-9]', '_', simulation.title)[:30]
    start = simulation.start_date.astimezone(dt_timezone.utc)
    return f'simulazione_{safe_title}_{start:%Y-%m-%d}.ics'
