from decimal import Decimal

import pytest

from apps.core.exceptions import Conflict
from apps.simulations import services
from apps.simulations.models import SimulationQuestion, SimulationResult
from .factories import make_simulation, answer_payload

pytestmark = pytest.mark.django_db


class TestQuestionPoints:
    def test_simulation_defaults(self, simulation):
        link = simulation.simulation_questions.first()
        assert services.question_points(simulation, link) == (Decimal('1.50'), Decimal('-0.40'))

    def test_custom_points_win(self, simulation):
        link = simulation.simulation_questions.first()
        link.custom_points = Decimal('3')
        link.custom_negative_points = Decimal('1')
        assert services.question_points(simulation, link) == (Decimal('3'), Decimal('-1'))

    def test_question_points_when_enabled(self, admin_user):
        simulation = make_simulation(admin_user, use_question_points=True)
        link = simulation.simulation_questions.select_related('question').first()
        link.question.points = Decimal('2')
        link.question.negative_points = Decimal('0.5')
        assert services.question_points(simulation, link) == (Decimal('2'), Decimal('-0.5'))


class TestScoreSubmission:
    def test_counts_and_score(self, assigned_simulation, student):
        answers = answer_payload(assigned_simulation, correct=2, wrong=1)
        result, created = services.score_submission(assigned_simulation, student, answers, duration_seconds=300)

        assert created
        assert result.correct_answers == 2
        assert result.wrong_answers == 1
        assert result.blank_answers == 0
        assert result.total_score == Decimal('2.60')
        assert result.percentage_score == Decimal('57.78')
        assert result.duration_seconds == 300
        assert result.is_completed

    def test_unanswered_questions_are_blank(self, assigned_simulation, student):
        result, _ = services.score_submission(assigned_simulation, student, [])
        assert result.blank_answers == 3
        assert result.total_score == Decimal('0.00')
        assert len(result.answers) == 3

    def test_double_submit_is_absorbed(self, assigned_simulation, student):
        answers = answer_payload(assigned_simulation, correct=3)
        first, created = services.score_submission(assigned_simulation, student, answers)
        second, created_again = services.score_submission(
            assigned_simulation, student, answer_payload(assigned_simulation, wrong=3), result_id=first.id
        )

        assert created and not created_again
        assert second.id == first.id
        assert second.total_score == Decimal('4.50')
        assert SimulationResult.objects.filter(simulation=assigned_simulation, student=student).count() == 1

    def test_double_submit_without_result_id(self, assigned_simulation, student):
        services.score_submission(assigned_simulation, student, [])
        _, created = services.score_submission(assigned_simulation, student, [])
        assert not created
        assert SimulationResult.objects.filter(simulation=assigned_simulation).count() == 1

    def test_repeatable_double_submit_without_result_id(self, admin_user, student):
        simulation = make_simulation(admin_user, is_repeatable=True)
        answers = answer_payload(simulation, correct=1)

        first, created = services.score_submission(simulation, student, answers)
        second, created_again = services.score_submission(simulation, student, answers)

        assert created and not created_again
        assert second.id == first.id
        assert SimulationResult.objects.filter(simulation=simulation, student=student).count() == 1

    def test_repeatable_new_attempt_goes_through_start(self, admin_user, student):
        simulation = make_simulation(admin_user, is_repeatable=True)
        first, _ = services.score_submission(simulation, student, [])

        attempt, created = services.start_attempt(simulation, student)
        second, created_again = services.score_submission(simulation, student, [], result_id=attempt.id)

        assert created and created_again
        assert second.id == attempt.id != first.id
        assert second.attempt_number == 2

    def test_open_questions_wait_for_review(self, admin_user, student):
        simulation = make_simulation(admin_user, questions=1, open_questions=2)
        open_ids = list(
            SimulationQuestion.objects.filter(simulation=simulation, question__question_type='OPEN_TEXT')
            .values_list('question_id', flat=True)
        )
        answers = [{'questionId': open_ids[0], 'answerText': '  La fotosintesi  '}]

        result, _ = services.score_submission(simulation, student, answers)

        assert result.pending_review == 1
        assert result.blank_answers == 2
        stored = {entry['questionId']: entry for entry in result.answers}
        assert stored[open_ids[0]]['answerText'] == 'La fotosintesi'
        assert stored[open_ids[0]]['isCorrect'] is None

    def test_review_pending_notifies_staff(self, admin_user, student):
        simulation = make_simulation(admin_user, questions=0, open_questions=1)
        question_id = simulation.simulation_questions.get().question_id

        services.score_submission(simulation, student, [{'questionId': question_id, 'answerText': 'Risposta'}])

        assert admin_user.notifications.filter(notification_type='REVIEW_PENDING').exists()


class TestAttempts:
    def test_start_resumes_open_attempt(self, assigned_simulation, student):
        first, created = services.start_attempt(assigned_simulation, student)
        again, created_again = services.start_attempt(assigned_simulation, student)
        assert created and not created_again
        assert again.id == first.id

    def test_non_repeatable_cannot_restart(self, assigned_simulation, student):
        services.score_submission(assigned_simulation, student, [])
        with pytest.raises(Conflict):
            services.start_attempt(assigned_simulation, student)

    def test_repeatable_respects_max_attempts(self, admin_user, student):
        simulation = make_simulation(admin_user, is_repeatable=True, max_attempts=2)
        for _ in range(2):
            attempt, _ = services.start_attempt(simulation, student)
            services.score_submission(simulation, student, [], result_id=attempt.id)
        with pytest.raises(Conflict):
            services.start_attempt(simulation, student)

    def test_submit_completes_started_attempt(self, assigned_simulation, student):
        started, _ = services.start_attempt(assigned_simulation, student)
        result, created = services.score_submission(assigned_simulation, student, [], result_id=started.id)
        assert created
        assert result.id == started.id
        assert result.attempt_number == 1

    def test_save_progress_checkpoints_answers(self, assigned_simulation, student):
        services.start_attempt(assigned_simulation, student)
        answers = answer_payload(assigned_simulation, correct=1)
        result = services.save_progress(assigned_simulation, student, answers, duration_seconds=42)
        assert len(result.answers) == 3
        assert result.duration_seconds == 42
        assert result.completed_at is None

    def test_save_progress_without_attempt(self, assigned_simulation, student):
        with pytest.raises(Conflict):
            services.save_progress(assigned_simulation, student, [])


class TestSubmitEndpoint:
    def test_submit_returns_201_then_200(self, api_client, assigned_simulation, student):
        api_client.force_authenticate(student)
        url = f'/api/v1/simulations/{assigned_simulation.id}/submit/'
        body = {'answers': answer_payload(assigned_simulation, correct=1), 'totalTimeSpent': 120}

        first = api_client.post(url, body, format='json')
        second = api_client.post(url, body, format='json')

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.data['id'] == second.data['id']

    def test_unassigned_student_is_forbidden(self, api_client, simulation, other_student):
        api_client.force_authenticate(other_student)
        response = api_client.post(
            f'/api/v1/simulations/{simulation.id}/submit/', {'answers': [], 'totalTimeSpent': 0}, format='json'
        )
        assert response.status_code == 403
        assert 'error' in response.data
