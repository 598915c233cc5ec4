from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone

from apps.simulations import services
from apps.simulations.models import SimulationAssignment, SimulationResult
from .factories import make_simulation

pytestmark = pytest.mark.django_db

URL = '/api/v1/cron/close-simulations/'


def completed_result(simulation, student):
    return SimulationResult.objects.create(simulation=simulation, student=student, completed_at=timezone.now())


class TestCloseExpiredAssignments:
    def test_closes_by_date(self, simulation, student):
        assignment = SimulationAssignment.objects.create(
            simulation=simulation, student=student, end_date=timezone.now() - timedelta(minutes=1)
        )
        report = services.close_expired_assignments()

        assignment.refresh_from_db()
        assert assignment.status == 'CLOSED'
        assert report.to_dict()['closedByDate'] == 1
        assert report.assignments_closed[0]['reason'] == 'date'

    def test_closes_when_every_student_completed(self, simulation, student, school_class):
        assignment = SimulationAssignment.objects.create(simulation=simulation, school_class=school_class)
        completed_result(simulation, student)

        report = services.close_expired_assignments()

        assignment.refresh_from_db()
        assert assignment.status == 'CLOSED'
        assert len(report.closed_by_completion) == 1

    def test_stays_active_while_someone_is_missing(self, simulation, student, other_student, group):
        from apps.groups.models import GroupMember
        GroupMember.objects.create(group=group, student=student)
        assignment = SimulationAssignment.objects.create(simulation=simulation, group=group)
        completed_result(simulation, student)

        report = services.close_expired_assignments()

        assignment.refresh_from_db()
        assert assignment.status == 'ACTIVE'
        assert report.total_closed == 0

    def test_repeatable_simulations_are_not_closed_by_completion(self, admin_user, student):
        simulation = make_simulation(admin_user, is_repeatable=True)
        assignment = SimulationAssignment.objects.create(simulation=simulation, student=student)
        completed_result(simulation, student)

        services.close_expired_assignments()

        assignment.refresh_from_db()
        assert assignment.status == 'ACTIVE'

    def test_assignment_without_students_is_left_alone(self, simulation, admin_user):
        from apps.groups.models import Group
        empty = Group.objects.create(name='Vuoto')
        assignment = SimulationAssignment.objects.create(simulation=simulation, group=empty)

        services.close_expired_assignments()

        assignment.refresh_from_db()
        assert assignment.status == 'ACTIVE'

    def test_dry_run_writes_nothing(self, simulation, student):
        assignment = SimulationAssignment.objects.create(
            simulation=simulation, student=student, end_date=timezone.now() - timedelta(days=1)
        )
        report = services.close_expired_assignments(dry_run=True)

        assignment.refresh_from_db()
        assert assignment.status == 'ACTIVE'
        assert report.to_dict()['dryRun'] is True
        assert report.total_closed == 1

    def test_second_run_closes_nothing(self, simulation, student):
        SimulationAssignment.objects.create(
            simulation=simulation, student=student, end_date=timezone.now() - timedelta(days=1)
        )
        services.close_expired_assignments()
        assert services.close_expired_assignments().total_closed == 0


class TestCloseSimulationsEndpoint:
    def test_missing_secret_is_rejected(self, api_client, cron_secret):
        assert api_client.get(URL).status_code == 401

    def test_wrong_secret_is_rejected(self, api_client, cron_secret):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer nope')
        assert api_client.post(URL).status_code == 401

    def test_unconfigured_secret_rejects_everything(self, api_client, settings):
        settings.CRON_SECRET = ''
        api_client.credentials(HTTP_AUTHORIZATION='Bearer ')
        assert api_client.get(URL).status_code == 401

    def test_runs_with_bearer_secret(self, api_client, cron_secret, simulation, student):
        SimulationAssignment.objects.create(
            simulation=simulation, student=student, end_date=timezone.now() - timedelta(days=1)
        )
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {cron_secret}')

        response = api_client.post(URL, {'dryRun': True}, format='json')

        assert response.status_code == 200
        assert response.data['success'] is True
        assert response.data['dryRun'] is True
        assert response.data['totalClosed'] == 1
        assert SimulationAssignment.objects.get().status == 'ACTIVE'

    def test_bare_token_is_accepted(self, api_client, cron_secret):
        api_client.credentials(HTTP_AUTHORIZATION=cron_secret)
        assert api_client.get(URL).status_code == 200


def test_management_command(simulation, student):
    SimulationAssignment.objects.create(
        simulation=simulation, student=student, end_date=timezone.now() - timedelta(days=1)
    )
    call_command('close_assignments')
    assert SimulationAssignment.objects.get().status == 'CLOSED'
