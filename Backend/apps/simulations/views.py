import logging

from rest_framework import viewsets, status
from rest_framework.decorators import action, api_view, permission_classes, authentication_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404

from apps.core.authentication import CronSecretAuthentication
from apps.core.permissions import IsStaffMember, IsStudent, IsOwnerOrAdmin
from .calendar import generate_icalendar, calendar_filename
from .models import Question, Simulation, SimulationAssignment, SimulationResult
from .serializers import (
    QuestionSerializer,
    SimulationListSerializer,
    SimulationDetailSerializer,
    SimulationCreateSerializer,
    SimulationAssignmentSerializer,
    AddAssignmentsSerializer,
    SubmitSimulationSerializer,
    SaveProgressSerializer,
    SimulationResultSerializer,
    SessionQuestionSerializer,
    SimulationSectionSerializer,
)
from . import services

logger = logging.getLogger(__name__)

User = get_user_model()


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes')


# =============================================================================
# Question Bank ViewSet
# =============================================================================

class QuestionViewSet(viewsets.ModelViewSet):
    """
    Question bank CRUD.

    - Admins manage every question
    - Collaborators manage the questions they authored and read published ones
    """

    serializer_class = QuestionSerializer
    permission_classes = [IsAuthenticated, IsStaffMember]

    def get_queryset(self):
        user = self.request.user
        queryset = Question.objects.prefetch_related('options')
        if not user.is_admin:
            if self.action in ['list', 'retrieve']:
                queryset = queryset.filter(Q(created_by=user) | Q(status='PUBLISHED'))
            else:
                queryset = queryset.filter(created_by=user)

        question_type = self.request.query_params.get('question_type')
        if question_type:
            queryset = queryset.filter(question_type=question_type)
        subject = self.request.query_params.get('subject')
        if subject:
            queryset = queryset.filter(subject__iexact=subject)
        return queryset

    def destroy(self, request, *args, **kwargs):
        question = self.get_object()
        if question.simulation_links.exists():
            return Response(
                {'error': 'La domanda è usata in una o più simulazioni.'},
                status=status.HTTP_409_CONFLICT
            )
        question.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Simulation ViewSet
# =============================================================================

class SimulationViewSet(viewsets.ModelViewSet):
    """
    ViewSet for simulations and the exam lifecycle.

    - Admins see and manage everything
    - Collaborators see simulations they authored or that reach groups they follow
    - Students see published simulations assigned to them (directly, through
      their class or a group) and public ones; they start, save and submit attempts
    """

    STAFF_ACTIONS = [
        'create', 'update', 'partial_update', 'destroy', 'publish', 'archive',
        'add_assignments', 'remove_assignment', 'results',
    ]
    STUDENT_ACTIONS = ['start', 'submit', 'save_progress', 'my_results']

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return SimulationCreateSerializer
        elif self.action == 'retrieve':
            return SimulationDetailSerializer
        return SimulationListSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Simulation.objects.select_related('school_class', 'created_by')

        if user.is_admin:
            pass
        elif user.is_collaborator:
            queryset = queryset.filter(
                Q(created_by=user) |
                Q(assignments__group__reference_collaborator=user)
            ).distinct()
        elif user.is_student:
            condition = Q(assignments__in=services.assignments_for_student(user)) | Q(is_public=True)
            if user.school_class_id:
                condition |= Q(school_class_id=user.school_class_id)
            queryset = queryset.filter(condition, status='PUBLISHED').distinct()
        else:
            return Simulation.objects.none()

        if self.action == 'list':
            status_param = self.request.query_params.get('status')
            if status_param:
                queryset = queryset.filter(status=status_param)
            type_param = self.request.query_params.get('type')
            if type_param:
                queryset = queryset.filter(simulation_type=type_param)
        return queryset

    def get_permissions(self):
        if self.action in ['update', 'partial_update', 'destroy', 'publish', 'archive',
                           'add_assignments', 'remove_assignment']:
            return [IsAuthenticated(), IsStaffMember(), IsOwnerOrAdmin()]
        if self.action in self.STAFF_ACTIONS:
            return [IsAuthenticated(), IsStaffMember()]
        if self.action in self.STUDENT_ACTIONS:
            return [IsAuthenticated(), IsStudent()]
        return [IsAuthenticated()]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        simulation = serializer.save()
        return Response(
            SimulationDetailSerializer(simulation).data,
            status=status.HTTP_201_CREATED
        )

    def destroy(self, request, *args, **kwargs):
        simulation = self.get_object()
        if simulation.results.exists():
            return Response(
                {'error': 'La simulazione ha già dei risultati: archiviala invece di eliminarla.'},
                status=status.HTTP_409_CONFLICT
            )
        simulation.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ========================================================================
    # Custom Actions - Lifecycle
    # ========================================================================

    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        """Publish a draft (or re-publish an archived) simulation."""
        simulation = self.get_object()
        if simulation.status == 'PUBLISHED':
            return Response(
                {'error': 'La simulazione è già pubblicata.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if not simulation.simulation_questions.exists():
            return Response(
                {'error': 'Aggiungi almeno una domanda prima di pubblicare.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        simulation.status = 'PUBLISHED'
        simulation.total_questions = simulation.simulation_questions.count()
        simulation.save(update_fields=['status', 'total_questions', 'updated_at'])
        return Response(SimulationDetailSerializer(simulation).data)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        simulation = self.get_object()
        if simulation.status == 'ARCHIVED':
            return Response(
                {'error': 'La simulazione è già archiviata.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        simulation.status = 'ARCHIVED'
        simulation.save(update_fields=['status', 'updated_at'])
        return Response(SimulationDetailSerializer(simulation).data)

    # ========================================================================
    # Custom Actions - Assignments
    # ========================================================================

    @action(detail=True, methods=['post'])
    def add_assignments(self, request, pk=None):
        """Assign the simulation to students, classes or groups and notify them."""
        simulation = self.get_object()
        serializer = AddAssignmentsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        targets = serializer.validated_data['assignments']
        if request.user.is_collaborator:
            for target in targets:
                group = target.get('group')
                if group is None or group.reference_collaborator_id != request.user.id:
                    raise PermissionDenied('Puoi assegnare solo ai gruppi di cui sei referente.')

        assignments = services.add_assignments(simulation, request.user, targets)
        return Response(
            SimulationAssignmentSerializer(assignments, many=True).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['delete'], url_path=r'assignments/(?P<assignment_id>\d+)')
    def remove_assignment(self, request, pk=None, assignment_id=None):
        simulation = self.get_object()
        assignment = get_object_or_404(SimulationAssignment, pk=assignment_id, simulation=simulation)
        assignment.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ========================================================================
    # Custom Actions - Exam Session (students)
    # ========================================================================

    @action(detail=True, methods=['post'])
    def start(self, request, pk=None):
        """Open (or resume) an attempt and return everything the session needs."""
        simulation, decision = services.ensure_access(request.user, pk)
        services.check_schedule(simulation, decision.assignment)

        result, created = services.start_attempt(simulation, request.user)
        links = services.ordered_simulation_questions(simulation)
        state = services.build_session_state(simulation)

        payload = {
            'resultId': result.id,
            'attemptNumber': result.attempt_number,
            'resumed': not created,
            'startedAt': result.started_at,
            'durationMinutes': simulation.duration_minutes,
            'sections': SimulationSectionSerializer(simulation.sections.order_by('order', 'id'), many=True).data,
            'questionOrder': list(state.question_ids),
            'questions': SessionQuestionSerializer(links, many=True).data,
            'savedAnswers': result.answers,
        }
        return Response(payload, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='save-progress')
    def save_progress(self, request, pk=None):
        simulation, _ = services.ensure_access(request.user, pk)
        serializer = SaveProgressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = services.save_progress(
            simulation,
            request.user,
            serializer.validated_data['answers'],
            duration_seconds=serializer.validated_data.get('totalTimeSpent'),
        )
        return Response({'success': True, 'resultId': result.id, 'savedAnswers': len(result.answers)})

    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        """
        Score and store an attempt.

        A repeated submit of a completed attempt returns the stored result
        with HTTP 200 instead of creating a new one.
        """
        simulation, decision = services.ensure_access(request.user, pk)
        serializer = SubmitSimulationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # Late submits of an attempt already underway are accepted
        if not SimulationResult.objects.filter(simulation=simulation, student=request.user).exists():
            services.check_schedule(simulation, decision.assignment)

        result, created = services.score_submission(
            simulation,
            request.user,
            serializer.validated_data['answers'],
            duration_seconds=serializer.validated_data['totalTimeSpent'],
            result_id=serializer.validated_data.get('resultId'),
        )

        if simulation.show_results:
            data = SimulationResultSerializer(result, context={'request': request}).data
        else:
            data = {'id': result.id, 'attempt_number': result.attempt_number, 'completed_at': result.completed_at}
        return Response(data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

    @action(detail=False, methods=['get'])
    def my_results(self, request):
        results = (
            SimulationResult.objects
            .filter(student=request.user, completed_at__isnull=False, simulation__show_results=True)
            .select_related('simulation', 'student')
        )
        page = self.paginate_queryset(results)
        serializer = SimulationResultSerializer(page, many=True, context={'request': request})
        return self.get_paginated_response(serializer.data)

    # ========================================================================
    # Custom Actions - Results, Leaderboard, Calendar
    # ========================================================================

    @action(detail=True, methods=['get'])
    def results(self, request, pk=None):
        simulation = self.get_object()
        results = simulation.results.filter(completed_at__isnull=False).select_related('student', 'simulation')
        page = self.paginate_queryset(results)
        serializer = SimulationResultSerializer(page, many=True, context={'request': request})
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=['get'])
    def leaderboard(self, request, pk=None):
        simulation, _ = services.ensure_access(request.user, pk)
        limit = request.query_params.get('limit', services.LEADERBOARD_DEFAULT_LIMIT)
        return Response(services.get_leaderboard(simulation, request.user, limit))

    @action(detail=True, methods=['get'])
    def calendar(self, request, pk=None):
        """Download the simulation as an .ics event."""
        simulation, _ = services.ensure_access(request.user, pk)
        if not simulation.start_date:
            return Response(
                {'error': 'Questa simulazione non ha una data programmata.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        response = HttpResponse(generate_icalendar(simulation), content_type='text/calendar; charset=utf-8')
        response['Content-Disposition'] = f'attachment; filename="{calendar_filename(simulation)}"'
        return response


# =============================================================================
# Assignment ViewSet
# =============================================================================

class AssignmentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Assignments reaching a student.

    Students always get their own; staff pass ``?student=<id>``.
    Collaborators only see assignments of simulations visible to them.
    """

    serializer_class = SimulationAssignmentSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        student_param = self.request.query_params.get('student')

        if user.is_student:
            if student_param and str(student_param) != str(user.id):
                raise PermissionDenied('Puoi vedere solo le tue assegnazioni.')
            queryset = services.assignments_for_student(user).filter(simulation__status='PUBLISHED')
        elif student_param:
            student = get_object_or_404(User, pk=student_param, role='STUDENT')
            queryset = services.assignments_for_student(student)
        else:
            queryset = SimulationAssignment.objects.all()

        if user.is_collaborator:
            queryset = queryset.filter(
                Q(simulation__created_by=user) | Q(group__reference_collaborator=user)
            )

        status_param = self.request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param)

        return queryset.select_related(
            'simulation', 'student', 'school_class', 'group', 'assigned_by'
        ).order_by('-created_at').distinct()


# =============================================================================
# Scheduled sweep
# =============================================================================

@api_view(['GET', 'POST'])
@authentication_classes([CronSecretAuthentication])
@permission_classes([AllowAny])
def close_simulations_view(request):
    """
    Close expired or fully completed assignments.

    Called by the scheduler with ``Authorization: Bearer <CRON_SECRET>``.
    Body (optional): ``{"dryRun": true}``.
    """
    dry_run = _parse_bool(request.data.get('dryRun', request.query_params.get('dryRun', False)))
    try:
        report = services.close_expired_assignments(dry_run=dry_run)
    except Exception as exc:
        logger.error('Assignment sweep aborted', exc_info=True)
        return Response(
            {'success': False, 'error': str(exc)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return Response(report.to_dict())
