from decimal import Decimal

from django.db import models
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _


class Question(models.Model):
    """
    Reusable question bank entry.

    Single-choice questions are graded automatically against their correct
    AnswerOption; open-text questions go to manual review.
    """

    TYPE_CHOICES = [
        ('SINGLE_CHOICE', _('Risposta multipla')),
        ('OPEN_TEXT', _('Risposta aperta')),
    ]

    STATUS_CHOICES = [
        ('DRAFT', _('Bozza')),
        ('PUBLISHED', _('Pubblicata')),
    ]

    text = models.TextField(_('text'))
    question_type = models.CharField(_('type'), max_length=20, choices=TYPE_CHOICES, default='SINGLE_CHOICE')
    subject = models.CharField(_('subject'), max_length=100, blank=True)
    explanation = models.TextField(_('explanation'), blank=True)
    points = models.DecimalField(_('points'), max_digits=6, decimal_places=2, default=1)
    negative_points = models.DecimalField(_('negative points'), max_digits=6, decimal_places=2, default=0)
    status = models.CharField(_('status'), max_length=20, choices=STATUS_CHOICES, default='PUBLISHED')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_questions',
        verbose_name=_('created by')
    )
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('question')
        verbose_name_plural = _('questions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'question_type']),
        ]

    def __str__(self):
        return self.text[:80]

    @property
    def is_open(self):
        return self.question_type == 'OPEN_TEXT'

    @property
    def correct_option(self):
        return self.options.filter(is_correct=True).first()


class AnswerOption(models.Model):
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name='options', verbose_name=_('question'))
    text = models.CharField(_('text'), max_length=1000)
    is_correct = models.BooleanField(_('correct'), default=False)
    order = models.PositiveIntegerField(_('order'), default=0)

    class Meta:
        verbose_name = _('answer option')
        verbose_name_plural = _('answer options')
        ordering = ['question', 'order']

    def __str__(self):
        return self.text[:80]


class Simulation(models.Model):
    """
    Exam template ("simulazione"): questions, sections, scoring rules and schedule.

    Authored by staff, published, optionally archived. Students reach it
    through SimulationAssignment rows or the ``is_public`` flag.
    """

    TYPE_CHOICES = [
        ('OFFICIAL', _('Ufficiale')),
        ('PRACTICE', _('Esercitazione')),
        ('CUSTOM', _('Personalizzata')),
        ('QUICK_QUIZ', _('Quiz veloce')),
    ]

    STATUS_CHOICES = [
        ('DRAFT', _('Bozza')),
        ('PUBLISHED', _('Pubblicata')),
        ('ARCHIVED', _('Archiviata')),
    ]

    LOCATION_CHOICES = [
        ('ONLINE', _('Online')),
        ('IN_PERSON', _('In presenza')),
        ('HYBRID', _('Ibrida')),
    ]

    # Basic Information
    title = models.CharField(_('title'), max_length=255)
    description = models.TextField(_('description'), blank=True)
    simulation_type = models.CharField(_('type'), max_length=20, choices=TYPE_CHOICES, default='PRACTICE')
    status = models.CharField(_('status'), max_length=20, choices=STATUS_CHOICES, default='DRAFT')

    # Visibility and attempts
    is_official = models.BooleanField(_('official'), default=False)
    is_public = models.BooleanField(_('public'), default=False)
    is_repeatable = models.BooleanField(_('repeatable'), default=False)
    max_attempts = models.PositiveIntegerField(_('max attempts'), null=True, blank=True)

    # Timing
    total_questions = models.PositiveIntegerField(_('total questions'), default=0)
    duration_minutes = models.PositiveIntegerField(_('duration (minutes)'), null=True, blank=True)
    start_date = models.DateTimeField(_('start date'), null=True, blank=True)
    end_date = models.DateTimeField(_('end date'), null=True, blank=True)

    # Scoring
    use_question_points = models.BooleanField(_('use question points'), default=False)
    correct_points = models.DecimalField(_('correct points'), max_digits=6, decimal_places=2, default=Decimal('1.50'))
    wrong_points = models.DecimalField(_('wrong points'), max_digits=6, decimal_places=2, default=Decimal('-0.40'))
    blank_points = models.DecimalField(_('blank points'), max_digits=6, decimal_places=2, default=0)
    max_score = models.DecimalField(_('max score'), max_digits=8, decimal_places=2, null=True, blank=True)
    passing_score = models.DecimalField(_('passing score'), max_digits=8, decimal_places=2, null=True, blank=True)

    # Presentation
    show_results = models.BooleanField(_('show results'), default=True)
    show_correct_answers = models.BooleanField(_('show correct answers'), default=False)
    location_type = models.CharField(_('location type'), max_length=20, choices=LOCATION_CHOICES, default='ONLINE')
    location_details = models.CharField(_('location details'), max_length=255, blank=True)

    school_class = models.ForeignKey(
        'groups.SchoolClass',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='simulations',
        verbose_name=_('class')
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_simulations',
        verbose_name=_('created by')
    )

    # Timestamps
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('simulation')
        verbose_name_plural = _('simulations')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'simulation_type']),
            models.Index(fields=['start_date']),
        ]

    def __str__(self):
        return self.title

    @property
    def is_published(self):
        return self.status == 'PUBLISHED'

    @property
    def has_sections(self):
        return self.sections.exists()


class SimulationSection(models.Model):
    """Timed block of a simulation (TOLC-style exams)."""

    simulation = models.ForeignKey(Simulation, on_delete=models.CASCADE, related_name='sections', verbose_name=_('simulation'))
    name = models.CharField(_('name'), max_length=255)
    duration_minutes = models.PositiveIntegerField(_('duration (minutes)'))
    order = models.PositiveIntegerField(_('order'), default=0)

    class Meta:
        verbose_name = _('section')
        verbose_name_plural = _('sections')
        ordering = ['simulation', 'order']

    def __str__(self):
        return f'{self.simulation.title} - {self.name}'


class SimulationQuestion(models.Model):
    simulation = models.ForeignKey(Simulation, on_delete=models.CASCADE, related_name='simulation_questions', verbose_name=_('simulation'))
    question = models.ForeignKey(Question, on_delete=models.PROTECT, related_name='simulation_links', verbose_name=_('question'))
    section = models.ForeignKey(
        SimulationSection,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='questions',
        verbose_name=_('section')
    )
    order = models.PositiveIntegerField(_('order'), default=0)
    custom_points = models.DecimalField(_('custom points'), max_digits=6, decimal_places=2, null=True, blank=True)
    custom_negative_points = models.DecimalField(
        _('custom negative points'), max_digits=6, decimal_places=2, null=True, blank=True
    )

    class Meta:
        verbose_name = _('simulation question')
        verbose_name_plural = _('simulation questions')
        ordering = ['simulation', 'order']
        unique_together = [['simulation', 'question']]

    def __str__(self):
        return f'{self.simulation_id}#{self.order}: {self.question_id}'


class SimulationAssignment(models.Model):
    """
    Binds a simulation to exactly one target: a student, a class or a group.

    ACTIVE until the end date passes or, for non-repeatable simulations,
    until every targeted student has completed it.
    """

    STATUS_CHOICES = [
        ('ACTIVE', _('Attiva')),
        ('CLOSED', _('Chiusa')),
    ]

    simulation = models.ForeignKey(Simulation, on_delete=models.CASCADE, related_name='assignments', verbose_name=_('simulation'))

    # Target (exactly one)
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='simulation_assignments',
        verbose_name=_('student')
    )
    school_class = models.ForeignKey(
        'groups.SchoolClass',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='simulation_assignments',
        verbose_name=_('class')
    )
    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='simulation_assignments',
        verbose_name=_('group')
    )

    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='given_simulation_assignments',
        verbose_name=_('assigned by')
    )
    start_date = models.DateTimeField(_('start date'), null=True, blank=True)
    end_date = models.DateTimeField(_('end date'), null=True, blank=True)
    due_date = models.DateTimeField(_('due date'), null=True, blank=True)
    notes = models.TextField(_('notes'), blank=True)
    status = models.CharField(_('status'), max_length=10, choices=STATUS_CHOICES, default='ACTIVE')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('simulation assignment')
        verbose_name_plural = _('simulation assignments')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'end_date']),
            models.Index(fields=['simulation', 'status']),
        ]

    def __str__(self):
        return f'{self.simulation.title} -> {self.target_label}'

    def clean(self):
        targets = [t for t in (self.student_id, self.school_class_id, self.group_id) if t is not None]
        if len(targets) != 1:
            raise ValidationError(_("L'assegnazione deve avere esattamente un destinatario."))

    @property
    def target_type(self):
        if self.student_id:
            return 'STUDENT'
        if self.school_class_id:
            return 'CLASS'
        if self.group_id:
            return 'GROUP'
        return None

    @property
    def target_label(self):
        if self.student_id:
            return self.student.email
        if self.school_class_id:
            return self.school_class.name
        if self.group_id:
            return self.group.name
        return '-'


class SimulationResult(models.Model):
    """
    One attempt of a student at a simulation.

    ``completed_at`` is null while the attempt is in progress; once set the
    row is final except for manual review of open answers.
    """

    simulation = models.ForeignKey(Simulation, on_delete=models.CASCADE, related_name='results', verbose_name=_('simulation'))
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='simulation_results',
        verbose_name=_('student')
    )
    attempt_number = models.PositiveIntegerField(_('attempt number'), default=1)

    answers = models.JSONField(_('answers'), default=list)

    total_questions = models.PositiveIntegerField(_('total questions'), default=0)
    correct_answers = models.PositiveIntegerField(_('correct answers'), default=0)
    wrong_answers = models.PositiveIntegerField(_('wrong answers'), default=0)
    blank_answers = models.PositiveIntegerField(_('blank answers'), default=0)
    pending_review = models.PositiveIntegerField(_('pending review'), default=0)

    total_score = models.DecimalField(_('total score'), max_digits=8, decimal_places=2, default=0)
    percentage_score = models.DecimalField(_('percentage score'), max_digits=6, decimal_places=2, default=0)
    duration_seconds = models.PositiveIntegerField(_('duration (seconds)'), default=0)

    started_at = models.DateTimeField(_('started at'), auto_now_add=True)
    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)

    class Meta:
        verbose_name = _('simulation result')
        verbose_name_plural = _('simulation results')
        ordering = ['-started_at']
        unique_together = [['simulation', 'student', 'attempt_number']]
        indexes = [
            models.Index(fields=['simulation', 'completed_at']),
            models.Index(fields=['student', 'completed_at']),
        ]

    def __str__(self):
        return f'{self.student.email} - {self.simulation.title} #{self.attempt_number}'

    @property
    def is_completed(self):
        return self.completed_at is not None

    @property
    def passed(self):
        passing_score = self.simulation.passing_score
        return passing_score is not None and self.total_score >= passing_score
