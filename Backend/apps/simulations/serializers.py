from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.db import transaction

from apps.core.exceptions import Conflict
from apps.groups.models import SchoolClass, Group
from .models import (
    Question,
    AnswerOption,
    Simulation,
    SimulationSection,
    SimulationQuestion,
    SimulationAssignment,
    SimulationResult,
)

User = get_user_model()


# =============================================================================
# Question Bank Serializers
# =============================================================================

class AnswerOptionSerializer(serializers.ModelSerializer):
    """Answer option including the correct flag (staff only)."""

    class Meta:
        model = AnswerOption
        fields = ['id', 'text', 'is_correct', 'order']
        read_only_fields = ['id']


class AnswerOptionPublicSerializer(serializers.ModelSerializer):
    """Answer option as shown to a student during the exam."""

    class Meta:
        model = AnswerOption
        fields = ['id', 'text', 'order']


class QuestionSerializer(serializers.ModelSerializer):
    """Serializer for creating/updating a question with its options."""

    options = AnswerOptionSerializer(many=True, required=False)

    class Meta:
        model = Question
        fields = [
            'id', 'text', 'question_type', 'subject', 'explanation',
            'points', 'negative_points', 'status', 'options', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def validate(self, attrs):
        question_type = attrs.get('question_type', getattr(self.instance, 'question_type', 'SINGLE_CHOICE'))
        options = attrs.get('options')
        if question_type == 'SINGLE_CHOICE' and options is not None:
            if len(options) < 2:
                raise serializers.ValidationError({'options': 'Servono almeno due risposte.'})
            if sum(1 for option in options if option.get('is_correct')) != 1:
                raise serializers.ValidationError({'options': 'Deve esserci esattamente una risposta corretta.'})
        if question_type == 'SINGLE_CHOICE' and options is None and self.instance is None:
            raise serializers.ValidationError({'options': 'Le domande a risposta multipla richiedono le risposte.'})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        options = validated_data.pop('options', [])
        validated_data['created_by'] = self.context['request'].user
        question = Question.objects.create(**validated_data)
        for position, option in enumerate(options):
            option.setdefault('order', position)
            AnswerOption.objects.create(question=question, **option)
        return question

    @transaction.atomic
    def update(self, instance, validated_data):
        options = validated_data.pop('options', None)
        instance = super().update(instance, validated_data)
        if options is not None:
            if instance.simulation_links.filter(simulation__results__isnull=False).exists():
                raise Conflict('La domanda è già stata usata in simulazioni svolte.')
            instance.options.all().delete()
            for position, option in enumerate(options):
                option.setdefault('order', position)
                AnswerOption.objects.create(question=instance, **option)
        return instance


class SessionQuestionSerializer(serializers.ModelSerializer):
    """Question as delivered to the exam session (no correct flags)."""

    question_id = serializers.IntegerField(source='question.id', read_only=True)
    text = serializers.CharField(source='question.text', read_only=True)
    question_type = serializers.CharField(source='question.question_type', read_only=True)
    options = AnswerOptionPublicSerializer(source='question.options', many=True, read_only=True)
    section_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = SimulationQuestion
        fields = ['question_id', 'text', 'question_type', 'options', 'section_id', 'order']


# =============================================================================
# Simulation Serializers
# =============================================================================

class SimulationSectionSerializer(serializers.ModelSerializer):
    question_ids = serializers.SerializerMethodField()

    class Meta:
        model = SimulationSection
        fields = ['id', 'name', 'duration_minutes', 'order', 'question_ids']

    def get_question_ids(self, obj):
        return list(obj.questions.order_by('order', 'id').values_list('question_id', flat=True))


class SimulationListSerializer(serializers.ModelSerializer):
    """Serializer for Simulation list view."""

    created_by_name = serializers.CharField(source='created_by.get_full_name', read_only=True, allow_null=True)
    class_name = serializers.CharField(source='school_class.name', read_only=True, allow_null=True)
    type_display = serializers.CharField(source='get_simulation_type_display', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Simulation
        fields = [
            'id', 'title', 'simulation_type', 'type_display', 'status', 'status_display',
            'is_official', 'is_public', 'is_repeatable', 'total_questions', 'duration_minutes',
            'start_date', 'end_date', 'school_class', 'class_name',
            'created_by', 'created_by_name', 'created_at'
        ]


class SimulationDetailSerializer(SimulationListSerializer):
    """Serializer for Simulation detail view with scoring rules and sections."""

    sections = SimulationSectionSerializer(many=True, read_only=True)

    class Meta(SimulationListSerializer.Meta):
        fields = SimulationListSerializer.Meta.fields + [
            'description', 'max_attempts', 'use_question_points', 'correct_points',
            'wrong_points', 'blank_points', 'max_score', 'passing_score',
            'show_results', 'show_correct_answers', 'location_type', 'location_details',
            'sections', 'updated_at'
        ]


class SectionInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    duration_minutes = serializers.IntegerField(min_value=1)


class SimulationQuestionInputSerializer(serializers.Serializer):
    question = serializers.PrimaryKeyRelatedField(queryset=Question.objects.all())
    section = serializers.IntegerField(min_value=0, required=False, allow_null=True,
                                       help_text='Index into the sections list')
    custom_points = serializers.DecimalField(max_digits=6, decimal_places=2, required=False, allow_null=True)
    custom_negative_points = serializers.DecimalField(max_digits=6, decimal_places=2, required=False, allow_null=True)


class SimulationCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for creating/updating a Simulation.

    ``sections`` and ``questions`` replace the stored layout when given; the
    layout is frozen once a student has started an attempt.
    """

    sections = SectionInputSerializer(many=True, required=False, write_only=True)
    questions = SimulationQuestionInputSerializer(many=True, required=False, write_only=True)

    class Meta:
        model = Simulation
        fields = [
            'id', 'title', 'description', 'simulation_type', 'is_official', 'is_public',
            'is_repeatable', 'max_attempts', 'duration_minutes', 'start_date', 'end_date',
            'use_question_points', 'correct_points', 'wrong_points', 'blank_points',
            'max_score', 'passing_score', 'show_results', 'show_correct_answers',
            'location_type', 'location_details', 'school_class', 'sections', 'questions'
        ]
        read_only_fields = ['id']

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_date': 'La data di fine deve seguire quella di inizio.'})

        sections = attrs.get('sections')
        questions = attrs.get('questions') or []
        section_count = len(sections) if sections is not None else 0
        for entry in questions:
            index = entry.get('section')
            if index is not None and index >= section_count:
                raise serializers.ValidationError({'questions': f'Sezione {index} inesistente.'})
        question_ids = [entry['question'].id for entry in questions]
        if len(question_ids) != len(set(question_ids)):
            raise serializers.ValidationError({'questions': 'Domande duplicate.'})
        return attrs

    def _write_layout(self, simulation, sections, questions):
        simulation.simulation_questions.all().delete()
        simulation.sections.all().delete()

        created_sections = [
            SimulationSection.objects.create(simulation=simulation, order=position, **section)
            for position, section in enumerate(sections or [])
        ]
        for position, entry in enumerate(questions or []):
            index = entry.get('section')
            SimulationQuestion.objects.create(
                simulation=simulation,
                question=entry['question'],
                section=created_sections[index] if index is not None else None,
                order=position,
                custom_points=entry.get('custom_points'),
                custom_negative_points=entry.get('custom_negative_points'),
            )
        simulation.total_questions = len(questions or [])
        if created_sections:
            simulation.duration_minutes = sum(section.duration_minutes for section in created_sections)
        simulation.save(update_fields=['total_questions', 'duration_minutes', 'updated_at'])

    @transaction.atomic
    def create(self, validated_data):
        sections = validated_data.pop('sections', None)
        questions = validated_data.pop('questions', None)
        validated_data['created_by'] = self.context['request'].user
        simulation = Simulation.objects.create(**validated_data)
        self._write_layout(simulation, sections, questions)
        return simulation

    @transaction.atomic
    def update(self, instance, validated_data):
        sections = validated_data.pop('sections', None)
        questions = validated_data.pop('questions', None)
        instance = super().update(instance, validated_data)
        if sections is not None or questions is not None:
            if instance.results.exists():
                raise Conflict('Non puoi modificare le domande: la simulazione è già stata svolta.')
            if questions is None:
                questions = [
                    {'question': link.question, 'custom_points': link.custom_points,
                     'custom_negative_points': link.custom_negative_points}
                    for link in instance.simulation_questions.select_related('question').order_by('order')
                ]
            self._write_layout(instance, sections, questions)
        return instance


# =============================================================================
# Assignment Serializers
# =============================================================================

class SimulationAssignmentSerializer(serializers.ModelSerializer):
    """Read serializer for assignments."""

    simulation_title = serializers.CharField(source='simulation.title', read_only=True)
    target_type = serializers.CharField(read_only=True)
    target_label = serializers.CharField(read_only=True)
    assigned_by_name = serializers.CharField(source='assigned_by.get_full_name', read_only=True, allow_null=True)

    class Meta:
        model = SimulationAssignment
        fields = [
            'id', 'simulation', 'simulation_title', 'student', 'school_class', 'group',
            'target_type', 'target_label', 'assigned_by', 'assigned_by_name',
            'start_date', 'end_date', 'due_date', 'notes', 'status', 'created_at'
        ]
        read_only_fields = fields


class AssignmentTargetSerializer(serializers.Serializer):
    """One target of an add_assignments request: exactly one of student, class, group."""

    student = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(role='STUDENT'), required=False, allow_null=True
    )
    school_class = serializers.PrimaryKeyRelatedField(
        queryset=SchoolClass.objects.all(), required=False, allow_null=True
    )
    group = serializers.PrimaryKeyRelatedField(
        queryset=Group.objects.all(), required=False, allow_null=True
    )
    start_date = serializers.DateTimeField(required=False, allow_null=True)
    end_date = serializers.DateTimeField(required=False, allow_null=True)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        targets = [attrs.get(name) for name in ('student', 'school_class', 'group')]
        if sum(1 for target in targets if target is not None) != 1:
            raise serializers.ValidationError('Indica esattamente uno tra studente, classe o gruppo.')
        if attrs.get('start_date') and attrs.get('end_date') and attrs['end_date'] <= attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'La data di fine deve seguire quella di inizio.'})
        return attrs


class AddAssignmentsSerializer(serializers.Serializer):
    assignments = AssignmentTargetSerializer(many=True, allow_empty=False)


# =============================================================================
# Attempt and Result Serializers
# =============================================================================

class AnswerInputSerializer(serializers.Serializer):
    questionId = serializers.IntegerField()
    answerId = serializers.IntegerField(required=False, allow_null=True)
    answerText = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    timeSpent = serializers.IntegerField(required=False, min_value=0, default=0)
    flagged = serializers.BooleanField(required=False, default=False)


class SubmitSimulationSerializer(serializers.Serializer):
    answers = AnswerInputSerializer(many=True)
    totalTimeSpent = serializers.IntegerField(required=False, min_value=0, default=0)
    resultId = serializers.IntegerField(required=False, allow_null=True)


class SaveProgressSerializer(serializers.Serializer):
    answers = AnswerInputSerializer(many=True)
    totalTimeSpent = serializers.IntegerField(required=False, min_value=0, allow_null=True)


class SimulationResultSerializer(serializers.ModelSerializer):
    """Result of an attempt as shown to its student."""

    simulation_title = serializers.CharField(source='simulation.title', read_only=True)
    student_name = serializers.CharField(source='student.get_full_name', read_only=True)
    passed = serializers.BooleanField(read_only=True)
    is_completed = serializers.BooleanField(read_only=True)

    class Meta:
        model = SimulationResult
        fields = [
            'id', 'simulation', 'simulation_title', 'student', 'student_name', 'attempt_number',
            'total_questions', 'correct_answers', 'wrong_answers', 'blank_answers',
            'pending_review', 'total_score', 'percentage_score', 'passed', 'duration_seconds',
            'answers', 'started_at', 'completed_at', 'is_completed'
        ]
        read_only_fields = fields

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        viewer = getattr(request, 'user', None)
        is_staff_viewer = bool(viewer and viewer.is_authenticated and viewer.is_staff_member)
        if not is_staff_viewer and not instance.simulation.show_correct_answers:
            data['answers'] = [
                {key: value for key, value in answer.items() if key != 'isCorrect'}
                for answer in data['answers']
            ]
        return data
