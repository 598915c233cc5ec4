from datetime import datetime, timezone as dt_timezone

import pytest

from apps.simulations.calendar import (
    escape_text, fold_line, format_datetime, generate_icalendar, calendar_filename,
)
from .factories import make_simulation

pytestmark = pytest.mark.django_db

START = datetime(2025, 3, 10, 9, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def scheduled(admin_user):
    return make_simulation(
        admin_user,
        title='Test Medicina, sessione 1',
        description='Prima prova',
        start_date=START,
        duration_minutes=90,
        location_type='IN_PERSON',
        location_details='Aula 3; sede centrale',
    )


def test_escape_text():
    assert escape_text('a,b;c\\d\ne') == 'a\\,b\\;c\\\\d\\ne'


def test_format_datetime_is_utc():
    assert format_datetime(START) == '20250310T090000Z'


def test_event_fields(scheduled):
    ics = generate_icalendar(scheduled, now=START)
    lines = ics.replace('\r\n ', '').split('\r\n')

    assert lines[0] == 'BEGIN:VCALENDAR'
    assert lines[-1] == 'END:VCALENDAR'
    assert f'UID:simulation-{scheduled.id}@leonardoschool.it' in lines
    assert 'DTSTART:20250310T090000Z' in lines
    assert 'DTEND:20250310T103000Z' in lines
    assert 'SUMMARY:Test Medicina\\, sessione 1' in lines
    assert 'LOCATION:Aula 3\\; sede centrale' in lines
    assert 'ORGANIZER;CN=Ada Admin:mailto:noreply@leonardoschool.it' in lines
    description = next(line for line in lines if line.startswith('DESCRIPTION:'))
    assert description.endswith('Organizzato da: Ada Admin\\n\\n---\\nLeonardo School')


def test_long_lines_are_folded(scheduled):
    scheduled.description = 'Prova di ammissione a Medicina e Odontoiatria, ' * 5
    ics = generate_icalendar(scheduled, now=START)

    physical = ics.split('\r\n')
    assert all(len(line.encode('utf-8')) <= 75 for line in physical)
    assert any(line.startswith(' ') for line in physical)
    unfolded = ics.replace('\r\n ', '').split('\r\n')
    assert any(line.startswith('DESCRIPTION:Prova di ammissione') for line in unfolded)


def test_fold_line_keeps_multibyte_characters_whole():
    line = 'SUMMARY:' + 'è' * 80
    folded = fold_line(line)

    parts = folded.split('\r\n')
    assert all(len(part.encode('utf-8')) <= 75 for part in parts)
    assert folded.replace('\r\n ', '') == line
    assert fold_line('SUMMARY:breve') == 'SUMMARY:breve'


def test_online_location(admin_user):
    simulation = make_simulation(admin_user, start_date=START, location_type='ONLINE')
    assert 'LOCATION:Online' in generate_icalendar(simulation).split('\r\n')


def test_filename(scheduled):
    assert calendar_filename(scheduled) == 'simulazione_Test_Medicina__sessione_1_2025-03-10.ics'


def test_endpoint_download(api_client, admin_user, scheduled):
    api_client.force_authenticate(admin_user)
    response = api_client.get(f'/api/v1/simulations/{scheduled.id}/calendar/')

    assert response.status_code == 200
    assert response['Content-Type'].startswith('text/calendar')
    assert 'simulazione_Test_Medicina' in response['Content-Disposition']


def test_endpoint_without_start_date(api_client, admin_user, simulation):
    api_client.force_authenticate(admin_user)
    response = api_client.get(f'/api/v1/simulations/{simulation.id}/calendar/')
    assert response.status_code == 400
    assert 'error' in response.json()
