from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class SchoolClass(models.Model):
    """A school class (e.g. "5A 2025/26"). Students belong to at most one."""

    name = models.CharField(_('name'), max_length=100)
    year = models.PositiveSmallIntegerField(_('year'), null=True, blank=True)
    section = models.CharField(_('section'), max_length=10, blank=True)
    is_active = models.BooleanField(_('active'), default=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('class')
        verbose_name_plural = _('classes')
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def student_count(self):
        return self.students.filter(role='STUDENT').count()


class Group(models.Model):
    """
    Study group of students followed by a reference collaborator.

    Simulations assigned to a group reach every member, and the reference
    collaborator gains visibility over those simulations.
    """

    name = models.CharField(_('name'), max_length=255)
    description = models.TextField(_('description'), blank=True)
    color = models.CharField(_('color'), max_length=20, blank=True)
    reference_collaborator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='referenced_groups',
        null=True,
        blank=True,
        limit_choices_to={'role': 'COLLABORATOR'},
        verbose_name=_('reference collaborator')
    )
    is_active = models.BooleanField(_('active'), default=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('group')
        verbose_name_plural = _('groups')
        ordering = ['name']
        indexes = [
            models.Index(fields=['reference_collaborator']),
        ]

    def __str__(self):
        return self.name

    @property
    def member_count(self):
        return self.members.count()


class GroupMember(models.Model):
    """Membership of a student in a group."""

    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name='members', verbose_name=_('group'))
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='group_memberships',
        verbose_name=_('student')
    )
    joined_at = models.DateTimeField(_('joined at'), auto_now_add=True)

    class Meta:
        verbose_name = _('group member')
        verbose_name_plural = _('group members')
        unique_together = [['group', 'student']]
        ordering = ['joined_at']

    def __str__(self):
        return f'{self.student.email} in {self.group.name}'
