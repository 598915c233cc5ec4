from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from .models import (
    Question,
    AnswerOption,
    Simulation,
    SimulationSection,
    SimulationQuestion,
    SimulationAssignment,
    SimulationResult,
)


class AnswerOptionInline(admin.TabularInline):
    model = AnswerOption
    extra = 0


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'question_type', 'subject', 'points', 'status', 'created_at']
    list_filter = ['question_type', 'status', 'subject']
    search_fields = ['text', 'subject']
    inlines = [AnswerOptionInline]


class SimulationSectionInline(admin.TabularInline):
    model = SimulationSection
    extra = 0


class SimulationQuestionInline(admin.TabularInline):
    model = SimulationQuestion
    extra = 0
    raw_id_fields = ['question']


@admin.register(Simulation)
class SimulationAdmin(admin.ModelAdmin):
    """Admin configuration for Simulation model."""

    list_display = ['title', 'simulation_type', 'status', 'is_official', 'is_public', 'start_date', 'created_at']
    list_filter = ['simulation_type', 'status', 'is_official', 'is_public', 'is_repeatable']
    search_fields = ['title', 'description']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [SimulationSectionInline, SimulationQuestionInline]

    fieldsets = (
        (_('Basic Information'), {
            'fields': ('title', 'description', 'simulation_type', 'status', 'school_class', 'created_by')
        }),
        (_('Visibility'), {
            'fields': ('is_official', 'is_public', 'is_repeatable', 'max_attempts')
        }),
        (_('Schedule'), {
            'fields': ('start_date', 'end_date', 'duration_minutes', 'total_questions',
                       'location_type', 'location_details')
        }),
        (_('Scoring'), {
            'fields': ('use_question_points', 'correct_points', 'wrong_points', 'blank_points',
                       'max_score', 'passing_score', 'show_results', 'show_correct_answers')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(SimulationAssignment)
class SimulationAssignmentAdmin(admin.ModelAdmin):
    list_display = ['simulation', 'target_label', 'status', 'start_date', 'end_date', 'created_at']
    list_filter = ['status']
    search_fields = ['simulation__title', 'student__email', 'school_class__name', 'group__name']
    raw_id_fields = ['simulation', 'student', 'assigned_by']


@admin.register(SimulationResult)
class SimulationResultAdmin(admin.ModelAdmin):
    list_display = ['student', 'simulation', 'attempt_number', 'total_score', 'percentage_score', 'completed_at']
    list_filter = ['completed_at']
    search_fields = ['student__email', 'simulation__title']
    readonly_fields = ['started_at']
    raw_id_fields = ['simulation', 'student']
