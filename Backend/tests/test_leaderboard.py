from decimal import Decimal

import pytest
from django.utils import timezone

from apps.simulations import services
from apps.simulations.models import SimulationResult
from .factories import make_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def ranked(simulation, student, other_student):
    third = make_user('gino@leonardo.test', first_name='Gino', last_name='Verdi')
    rows = [(student, 90, 120), (other_student, 90, 100), (third, 70, 200)]
    for user, score, duration in rows:
        SimulationResult.objects.create(
            simulation=simulation,
            student=user,
            total_score=Decimal(score),
            percentage_score=Decimal(score),
            duration_seconds=duration,
            completed_at=timezone.now(),
        )
    return student, other_student, third


def test_ties_are_broken_by_duration(simulation, admin_user, ranked):
    student, other_student, third = ranked
    board = services.get_leaderboard(simulation, admin_user)

    assert [entry['studentId'] for entry in board['leaderboard']] == [other_student.id, student.id, third.id]
    assert [entry['rank'] for entry in board['leaderboard']] == [1, 2, 3]
    assert board['totalParticipants'] == 3
    assert board['canSeeAllNames'] is True


def test_student_sees_only_own_identity(simulation, ranked):
    student, _, _ = ranked
    board = services.get_leaderboard(simulation, student)
    first, second, third = board['leaderboard']

    assert board['canSeeAllNames'] is False
    assert second['isCurrentUser'] and second['studentName'] == 'Mario Rossi'
    assert first['studentId'] is None and first['email'] is None
    assert first['studentName'] == services.anonymous_name(1)
    assert third['studentName'] == services.anonymous_name(3)


def test_in_progress_attempts_are_excluded(simulation, ranked):
    late = make_user('late@leonardo.test')
    SimulationResult.objects.create(simulation=simulation, student=late)
    assert services.get_leaderboard(simulation, late)['totalParticipants'] == 3


def test_limit_is_clamped(simulation, admin_user, ranked):
    assert len(services.get_leaderboard(simulation, admin_user, limit=1)['leaderboard']) == 1
    assert services.clamp_limit(0) == 1
    assert services.clamp_limit(1000) == 100
    assert services.clamp_limit('abc') == 50


def test_submit_invalidates_cached_ranking(assigned_simulation, admin_user, student):
    assert services.get_leaderboard(assigned_simulation, admin_user)['totalParticipants'] == 0
    services.score_submission(assigned_simulation, student, [])
    assert services.get_leaderboard(assigned_simulation, admin_user)['totalParticipants'] == 1


def test_anonymous_names_cycle():
    assert services.anonymous_name(1) == 'Partecipante Misterioso #1'
    assert services.anonymous_name(16) == 'Partecipante Misterioso #16'


def test_endpoint_requires_access(api_client, simulation, ranked):
    outsider = make_user('outsider@leonardo.test')
    api_client.force_authenticate(outsider)
    response = api_client.get(f'/api/v1/simulations/{simulation.id}/leaderboard/')
    assert response.status_code == 403
