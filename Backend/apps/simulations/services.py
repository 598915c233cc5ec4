"""
Services for simulation access, scoring, ranking and lifecycle sweeps.

Views stay thin: every rule about who may take a simulation, how an attempt
is scored and when an assignment closes lives here so the HTTP layer, the
management commands and the tests share one implementation.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import exceptions

from apps.core.exceptions import Conflict
from apps.groups.models import GroupMember
from .models import Simulation, SimulationAssignment, SimulationResult
from .session import SessionState

logger = logging.getLogger(__name__)

User = get_user_model()

TWO_PLACES = Decimal('0.01')

ANONYMOUS_ADJECTIVES = [
    'Misterioso', 'Brillante', 'Coraggioso', 'Diligente', 'Energico',
    'Fantastico', 'Geniale', 'Intraprendente', 'Laborioso', 'Metodico',
    'Notevole', 'Originale', 'Perseverante', 'Risoluto', 'Tenace',
]

LEADERBOARD_DEFAULT_LIMIT = 50
LEADERBOARD_MAX_LIMIT = 100


# =============================================================================
# Targets and access
# =============================================================================

def get_targeted_student_ids(assignment):
    """
    Return the ids of the active students reached by an assignment.

    Args:
        assignment: SimulationAssignment with exactly one target.

    Returns:
        set[int]: the direct student, the class members or the group members.
    """
    if assignment.student_id:
        return set(
            User.objects.filter(id=assignment.student_id, is_active=True).values_list('id', flat=True)
        )
    if assignment.school_class_id:
        return set(
            User.objects.filter(
                school_class_id=assignment.school_class_id, role='STUDENT', is_active=True
            ).values_list('id', flat=True)
        )
    if assignment.group_id:
        return set(
            GroupMember.objects.filter(
                group_id=assignment.group_id, student__is_active=True
            ).values_list('student_id', flat=True)
        )
    return set()


def assignments_for_student(student):
    """Assignments reaching ``student`` directly, through the class or a group."""
    group_ids = GroupMember.objects.filter(student=student).values_list('group_id', flat=True)
    condition = Q(student=student) | Q(group_id__in=group_ids)
    if student.school_class_id:
        condition |= Q(school_class_id=student.school_class_id)
    return SimulationAssignment.objects.filter(condition)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    assignment: SimulationAssignment = None
    reason: str = ''


def resolve_access(user, simulation):
    """
    Decide whether ``user`` may view or take ``simulation``.

    Read-only. Students need a direct, class or group assignment (or a public
    simulation); collaborators need to be the author or the reference
    collaborator of an assigned group; admins always pass.

    Raises:
        NotAuthenticated: when no valid principal is given.
    """
    if user is None or not user.is_authenticated:
        raise exceptions.NotAuthenticated()

    if user.is_admin:
        return AccessDecision(True, reason='admin')

    if user.is_student:
        if simulation.status != 'PUBLISHED':
            return AccessDecision(False, reason='not_published')
        # Active assignments win over closed ones, newest first
        assignment = (
            assignments_for_student(user)
            .filter(simulation=simulation)
            .order_by('status', '-created_at')
            .first()
        )
        if assignment is not None:
            return AccessDecision(True, assignment=assignment, reason='assignment')
        if simulation.school_class_id and simulation.school_class_id == user.school_class_id:
            return AccessDecision(True, reason='class')
        if simulation.is_public:
            return AccessDecision(True, reason='public')
        return AccessDecision(False, reason='not_assigned')

    if user.is_collaborator:
        if simulation.created_by_id == user.id:
            return AccessDecision(True, reason='creator')
        assignment = simulation.assignments.filter(group__reference_collaborator=user).first()
        if assignment is not None:
            return AccessDecision(True, assignment=assignment, reason='reference_collaborator')
        return AccessDecision(False, reason='not_referenced')

    return AccessDecision(False, reason='role')


def ensure_access(user, simulation_id):
    """
    Load a simulation and enforce ``resolve_access``.

    Returns:
        tuple: (Simulation, AccessDecision)

    Raises:
        NotFound, NotAuthenticated, PermissionDenied
    """
    try:
        simulation = Simulation.objects.select_related('school_class', 'created_by').get(pk=simulation_id)
    except (Simulation.DoesNotExist, ValueError, TypeError):
        raise exceptions.NotFound('Simulazione non trovata.')

    decision = resolve_access(user, simulation)
    if not decision.allowed:
        raise exceptions.PermissionDenied('Non hai accesso a questa simulazione.')
    return simulation, decision


def check_schedule(simulation, assignment=None, now=None):
    """
    Raise ValidationError when the simulation cannot be taken right now.

    The assignment window, when set, overrides the simulation window.
    """
    now = now or timezone.now()
    start = simulation.start_date
    end = simulation.end_date
    if assignment is not None:
        if assignment.status == 'CLOSED':
            raise exceptions.ValidationError('La simulazione è scaduta.')
        start = assignment.start_date or start
        end = assignment.end_date or end

    if start and now < start:
        raise exceptions.ValidationError('La simulazione non è ancora iniziata.')
    if end and now > end:
        raise exceptions.ValidationError('La simulazione è scaduta.')


# =============================================================================
# Session bootstrap
# =============================================================================

def ordered_simulation_questions(simulation):
    return list(
        simulation.simulation_questions
        .select_related('question', 'section')
        .prefetch_related('question__options')
        .order_by('section__order', 'order', 'id')
    )


def build_session_state(simulation):
    """
    Build the initial exam SessionState from stored sections and questions.

    Questions without a section are appended to the last section.
    """
    links = ordered_simulation_questions(simulation)
    sections = list(simulation.sections.order_by('order', 'id'))
    if not sections:
        return SessionState.create(
            [link.question_id for link in links],
            duration_minutes=simulation.duration_minutes,
        )

    buckets = {section.id: [] for section in sections}
    for link in links:
        bucket = link.section_id if link.section_id in buckets else sections[-1].id
        buckets[bucket].append(link.question_id)

    return SessionState.create(
        [],
        sections=[
            {
                'key': str(section.id),
                'name': section.name,
                'duration_minutes': section.duration_minutes,
                'question_ids': buckets[section.id],
            }
            for section in sections
        ],
    )


# =============================================================================
# Attempts and scoring
# =============================================================================

def normalize_answers(answers):
    """
    Turn a client answer list into ``{question_id: entry}``.

    Accepts camelCase (questionId, answerId, answerText, timeSpent) and
    snake_case keys.
    """
    normalized = {}
    for raw in answers or []:
        question_id = raw.get('questionId', raw.get('question_id'))
        if question_id is None:
            continue
        answer_text = raw.get('answerText', raw.get('answer_text'))
        normalized[int(question_id)] = {
            'questionId': int(question_id),
            'answerId': raw.get('answerId', raw.get('answer_id')),
            'answerText': answer_text.strip() if isinstance(answer_text, str) else None,
            'timeSpent': int(raw.get('timeSpent', raw.get('time_spent')) or 0),
            'flagged': bool(raw.get('flagged', False)),
        }
    return normalized


def question_points(simulation, link):
    """
    Points awarded for a correct answer and the (negative) points for a wrong one.

    Precedence: per-simulation override, then the question's own points when
    ``use_question_points`` is set, then the simulation defaults.
    """
    question = link.question
    if link.custom_points is not None:
        correct = link.custom_points
    elif simulation.use_question_points:
        correct = question.points
    else:
        correct = simulation.correct_points

    if link.custom_negative_points is not None:
        wrong = link.custom_negative_points
    elif simulation.use_question_points:
        wrong = question.negative_points
    else:
        wrong = simulation.wrong_points

    return Decimal(correct), -abs(Decimal(wrong))


def _score_answers(simulation, answers):
    links = ordered_simulation_questions(simulation)
    answer_map = normalize_answers(answers)
    blank_points = Decimal(simulation.blank_points)

    totals = {
        'correct_answers': 0,
        'wrong_answers': 0,
        'blank_answers': 0,
        'pending_review': 0,
    }
    total_score = Decimal('0')
    auto_max = Decimal('0')
    stored = []

    for link in links:
        question = link.question
        entry = answer_map.get(question.id) or {
            'questionId': question.id, 'answerId': None, 'answerText': None,
            'timeSpent': 0, 'flagged': False,
        }
        correct_points, wrong_points = question_points(simulation, link)
        is_correct = None
        earned = Decimal('0')

        if question.is_open:
            if entry['answerText']:
                totals['pending_review'] += 1
            else:
                totals['blank_answers'] += 1
                earned = blank_points
        else:
            auto_max += max(correct_points, Decimal('0'))
            correct_option = next((o for o in question.options.all() if o.is_correct), None)
            if entry['answerId'] in (None, ''):
                totals['blank_answers'] += 1
                earned = blank_points
            elif correct_option is not None and str(entry['answerId']) == str(correct_option.id):
                totals['correct_answers'] += 1
                is_correct = True
                earned = correct_points
            else:
                totals['wrong_answers'] += 1
                is_correct = False
                earned = wrong_points

        total_score += earned
        stored.append(dict(entry, isCorrect=is_correct, points=float(earned)))

    max_score = Decimal(simulation.max_score) if simulation.max_score else auto_max
    if max_score > 0:
        percentage = (total_score / max_score * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    else:
        percentage = Decimal('0.00')

    totals.update(
        answers=stored,
        total_questions=len(links),
        total_score=total_score.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        percentage_score=percentage,
    )
    return totals


def _locked_results(simulation, student):
    return list(
        SimulationResult.objects.select_for_update()
        .filter(simulation=simulation, student=student)
        .order_by('attempt_number')
    )


def _check_attempts_left(simulation, completed):
    if completed and not simulation.is_repeatable:
        raise Conflict('Hai già completato questa simulazione.')
    if simulation.is_repeatable and simulation.max_attempts and len(completed) >= simulation.max_attempts:
        raise Conflict('Hai raggiunto il numero massimo di tentativi.')


def start_attempt(simulation, student):
    """
    Open an attempt, or resume the one still in progress.

    Returns:
        tuple: (SimulationResult, created)

    Raises:
        Conflict: non-repeatable simulation already completed, or no attempts left.
    """
    with transaction.atomic():
        results = _locked_results(simulation, student)
        in_progress = next((r for r in results if r.completed_at is None), None)
        if in_progress is not None:
            return in_progress, False

        completed = [r for r in results if r.completed_at is not None]
        _check_attempts_left(simulation, completed)

        result = SimulationResult.objects.create(
            simulation=simulation,
            student=student,
            attempt_number=len(results) + 1,
            total_questions=simulation.simulation_questions.count(),
        )

    logger.info('Student %s started attempt %s on simulation %s', student.pk, result.attempt_number, simulation.pk)
    return result, True


def save_progress(simulation, student, answers, duration_seconds=None):
    """
    Checkpoint the answers of the attempt in progress.

    Raises:
        Conflict: when no attempt is open (it was never started or already completed).
    """
    with transaction.atomic():
        result = (
            SimulationResult.objects.select_for_update()
            .filter(simulation=simulation, student=student, completed_at__isnull=True)
            .order_by('-attempt_number')
            .first()
        )
        if result is None:
            raise Conflict('Nessun tentativo in corso per questa simulazione.')

        result.answers = list(normalize_answers(answers).values())
        update_fields = ['answers']
        if duration_seconds is not None:
            result.duration_seconds = max(int(duration_seconds), 0)
            update_fields.append('duration_seconds')
        result.save(update_fields=update_fields)

    return result


def score_submission(simulation, student, answers, duration_seconds=0, result_id=None):
    """
    Score and persist a submitted attempt.

    Submitting is idempotent: when the targeted attempt is already completed,
    or when no attempt is open and one was already completed, the stored row
    is returned unchanged, so a double submit never creates a second Result.
    Further attempts of a repeatable simulation are opened with
    ``start_attempt``; only the very first attempt may be created here.

    Args:
        simulation: Simulation being submitted.
        student: submitting User.
        answers (list[dict]): client answers (questionId, answerId, answerText, timeSpent, flagged).
        duration_seconds (int): total time spent.
        result_id (int): optional attempt id returned by ``start_attempt``.

    Returns:
        tuple: (SimulationResult, created) where ``created`` is False for an
        absorbed duplicate.
    """
    try:
        with transaction.atomic():
            results = _locked_results(simulation, student)
            completed = [r for r in results if r.completed_at is not None]

            if result_id is not None:
                targeted = next((r for r in results if r.id == int(result_id)), None)
                if targeted is not None and targeted.completed_at is not None:
                    return targeted, False

            result = next((r for r in results if r.completed_at is None), None)
            if result is None:
                if completed:
                    return completed[-1], False
                result = SimulationResult(simulation=simulation, student=student, attempt_number=1)

            scored = _score_answers(simulation, answers)
            for name, value in scored.items():
                setattr(result, name, value)
            result.duration_seconds = max(int(duration_seconds or 0), 0)
            result.completed_at = timezone.now()
            result.save()
    except IntegrityError:
        # A concurrent submit won the race for this attempt number
        existing = (
            SimulationResult.objects
            .filter(simulation=simulation, student=student, completed_at__isnull=False)
            .order_by('-attempt_number')
            .first()
        )
        if existing is None:
            raise
        return existing, False

    invalidate_leaderboard(simulation.id)
    logger.info(
        'Simulation %s submitted by %s: score=%s correct=%d wrong=%d blank=%d pending=%d',
        simulation.pk, student.pk, result.total_score, result.correct_answers,
        result.wrong_answers, result.blank_answers, result.pending_review
    )

    if result.pending_review:
        from apps.notifications.services import notify_review_pending
        notify_review_pending(result)

    return result, True


# =============================================================================
# Leaderboard
# =============================================================================

def _leaderboard_cache_key(simulation_id):
    return f'simulations:leaderboard:{simulation_id}'


def invalidate_leaderboard(simulation_id):
    cache.delete(_leaderboard_cache_key(simulation_id))


def anonymous_name(rank):
    """Stable pseudonym for the participant at ``rank`` (1-based)."""
    adjective = ANONYMOUS_ADJECTIVES[(rank - 1) % len(ANONYMOUS_ADJECTIVES)]
    return f'Partecipante {adjective} #{rank}'


def _ranked_rows(simulation):
    key = _leaderboard_cache_key(simulation.id)
    rows = cache.get(key)
    if rows is None:
        rows = list(
            SimulationResult.objects
            .filter(simulation=simulation, completed_at__isnull=False)
            .order_by('-total_score', 'duration_seconds', 'completed_at', 'id')
            .values(
                'id', 'student_id', 'student__first_name', 'student__last_name', 'student__email',
                'total_score', 'percentage_score', 'correct_answers', 'wrong_answers',
                'duration_seconds', 'completed_at',
            )
        )
        cache.set(key, rows, getattr(settings, 'LEADERBOARD_CACHE_TIMEOUT', 60))
    return rows


def clamp_limit(limit):
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return LEADERBOARD_DEFAULT_LIMIT
    return min(max(limit, 1), LEADERBOARD_MAX_LIMIT)


def get_leaderboard(simulation, requester, limit=LEADERBOARD_DEFAULT_LIMIT):
    """
    Rank completed attempts of a simulation.

    Ordering is total score descending, then duration ascending; ranks are
    sequential positions. Participants other than the requester are shown
    under a pseudonym unless the requester is an admin or the author.

    Returns:
        dict: ``simulation``, ``leaderboard`` (at most ``limit`` entries),
        ``totalParticipants`` and ``canSeeAllNames``.
    """
    limit = clamp_limit(limit)
    rows = _ranked_rows(simulation)
    can_see_all_names = bool(requester.is_admin or simulation.created_by_id == requester.id)
    passing_score = simulation.passing_score

    entries = []
    for rank, row in enumerate(rows[:limit], start=1):
        is_current_user = row['student_id'] == requester.id
        show_identity = can_see_all_names or is_current_user
        real_name = f"{row['student__first_name']} {row['student__last_name']}".strip() or row['student__email']
        entries.append({
            'rank': rank,
            'studentId': row['student_id'] if show_identity else None,
            'studentName': real_name if show_identity else anonymous_name(rank),
            'email': row['student__email'] if show_identity else None,
            'totalScore': float(row['total_score']),
            'percentageScore': float(row['percentage_score']),
            'correctAnswers': row['correct_answers'],
            'wrongAnswers': row['wrong_answers'],
            'durationSeconds': row['duration_seconds'],
            'completedAt': row['completed_at'],
            'isCurrentUser': is_current_user,
            'passed': passing_score is not None and row['total_score'] >= passing_score,
        })

    return {
        'simulation': {
            'id': simulation.id,
            'title': simulation.title,
            'type': simulation.simulation_type,
            'totalQuestions': simulation.total_questions,
            'passingScore': float(passing_score) if passing_score is not None else None,
        },
        'leaderboard': entries,
        'totalParticipants': len(rows),
        'canSeeAllNames': can_see_all_names,
    }


# =============================================================================
# Assignment lifecycle
# =============================================================================

def add_assignments(simulation, assigned_by, targets, notify=True):
    """
    Create one assignment per target and notify the reached students.

    Args:
        simulation: published Simulation.
        assigned_by: staff User creating the assignments.
        targets (list[dict]): each with exactly one of ``student``,
            ``school_class``, ``group`` plus optional ``start_date``,
            ``end_date``, ``due_date``, ``notes``.

    Returns:
        list[SimulationAssignment]
    """
    if simulation.status != 'PUBLISHED':
        raise exceptions.ValidationError('Solo le simulazioni pubblicate possono essere assegnate.')

    created = []
    with transaction.atomic():
        for target in targets:
            assignment = SimulationAssignment(
                simulation=simulation,
                assigned_by=assigned_by,
                student=target.get('student'),
                school_class=target.get('school_class'),
                group=target.get('group'),
                start_date=target.get('start_date'),
                end_date=target.get('end_date'),
                due_date=target.get('due_date'),
                notes=target.get('notes', ''),
            )
            try:
                assignment.full_clean(exclude=['simulation', 'assigned_by'])
            except DjangoValidationError as exc:
                raise exceptions.ValidationError(exc.messages)
            assignment.save()
            created.append(assignment)

    if notify:
        from apps.notifications.services import notify_simulation_assigned
        for assignment in created:
            notify_simulation_assigned(
                simulation, get_targeted_student_ids(assignment), due_date=assignment.due_date
            )

    logger.info('User %s created %d assignment(s) for simulation %s', assigned_by.pk, len(created), simulation.pk)
    return created


@dataclass
class SweepReport:
    dry_run: bool = False
    closed_by_date: list = field(default_factory=list)
    closed_by_completion: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def total_closed(self):
        return len(self.closed_by_date) + len(self.closed_by_completion)

    @property
    def assignments_closed(self):
        return self.closed_by_date + self.closed_by_completion

    def to_dict(self):
        return {
            'success': True,
            'dryRun': self.dry_run,
            'closedByDate': len(self.closed_by_date),
            'closedByCompletion': len(self.closed_by_completion),
            'totalClosed': self.total_closed,
            'errors': self.errors,
            'assignmentsClosed': self.assignments_closed,
        }


def _describe(assignment, reason):
    return {
        'id': assignment.id,
        'simulationId': assignment.simulation_id,
        'simulationTitle': assignment.simulation.title,
        'reason': reason,
    }


def _close(assignment, now):
    # Conditional update keeps concurrent sweeps from double counting
    return SimulationAssignment.objects.filter(pk=assignment.pk, status='ACTIVE').update(
        status='CLOSED', updated_at=now
    )


def close_expired_assignments(dry_run=False, now=None):
    """
    Close ACTIVE assignments that are over.

    1. End date in the past -> closed by date.
    2. Non-repeatable published simulation where every targeted student has
       a completed result -> closed by completion. Assignments reaching no
       student are left alone.

    Per-item failures are collected in ``errors`` and the sweep continues.
    With ``dry_run`` nothing is written. Safe to re-run.

    Returns:
        SweepReport
    """
    now = now or timezone.now()
    report = SweepReport(dry_run=dry_run)
    logger.info('Assignment sweep started (dry_run=%s)', dry_run)

    expired = list(
        SimulationAssignment.objects
        .filter(status='ACTIVE', end_date__lt=now)
        .select_related('simulation')
    )
    for assignment in expired:
        try:
            if dry_run or _close(assignment, now):
                report.closed_by_date.append(_describe(assignment, 'date'))
                logger.info('Assignment %s closed by date', assignment.id)
        except Exception as exc:
            logger.error('Failed to close assignment %s by date', assignment.id, exc_info=True)
            report.errors.append(f'Assignment {assignment.id}: {exc}')

    candidates = (
        SimulationAssignment.objects
        .filter(status='ACTIVE', simulation__is_repeatable=False, simulation__status='PUBLISHED')
        .exclude(id__in=[a.id for a in expired])
        .select_related('simulation')
    )
    for assignment in candidates:
        try:
            student_ids = get_targeted_student_ids(assignment)
            if not student_ids:
                continue
            completed_ids = set(
                SimulationResult.objects.filter(
                    simulation_id=assignment.simulation_id,
                    student_id__in=student_ids,
                    completed_at__isnull=False,
                ).values_list('student_id', flat=True)
            )
            if not student_ids <= completed_ids:
                continue
            if dry_run or _close(assignment, now):
                report.closed_by_completion.append(_describe(assignment, 'completion'))
                logger.info('Assignment %s closed by completion', assignment.id)
        except Exception as exc:
            logger.error('Failed to evaluate assignment %s for completion', assignment.id, exc_info=True)
            report.errors.append(f'Assignment {assignment.id}: {exc}')

    logger.info(
        'Assignment sweep finished: by_date=%d by_completion=%d errors=%d',
        len(report.closed_by_date), len(report.closed_by_completion), len(report.errors)
    )
    return report
