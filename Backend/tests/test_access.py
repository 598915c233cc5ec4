from datetime import timedelta

import pytest
from django.contrib.auth.models import AnonymousUser
from django.utils import timezone
from rest_framework import exceptions

from apps.simulations import services
from apps.simulations.models import SimulationAssignment
from .factories import make_user, make_simulation

pytestmark = pytest.mark.django_db


class TestResolveAccess:
    def test_anonymous_is_rejected(self, simulation):
        with pytest.raises(exceptions.NotAuthenticated):
            services.resolve_access(AnonymousUser(), simulation)

    def test_admin_always_passes(self, simulation, admin_user):
        assert services.resolve_access(admin_user, simulation).allowed

    def test_direct_assignment(self, assigned_simulation, student):
        decision = services.resolve_access(student, assigned_simulation)
        assert decision.allowed
        assert decision.assignment.student_id == student.id

    def test_class_assignment(self, simulation, student, school_class, admin_user):
        SimulationAssignment.objects.create(simulation=simulation, school_class=school_class, assigned_by=admin_user)
        assert services.resolve_access(student, simulation).allowed

    def test_group_assignment(self, simulation, other_student, group, admin_user):
        SimulationAssignment.objects.create(simulation=simulation, group=group, assigned_by=admin_user)
        assert services.resolve_access(other_student, simulation).allowed

    def test_unassigned_student(self, simulation, other_student):
        decision = services.resolve_access(other_student, simulation)
        assert not decision.allowed
        assert decision.reason == 'not_assigned'

    def test_public_simulation(self, admin_user, other_student):
        simulation = make_simulation(admin_user, is_public=True)
        assert services.resolve_access(other_student, simulation).reason == 'public'

    def test_draft_is_hidden_from_students(self, admin_user, student):
        simulation = make_simulation(admin_user, status='DRAFT')
        SimulationAssignment.objects.create(simulation=simulation, student=student)
        assert not services.resolve_access(student, simulation).allowed

    def test_reference_collaborator(self, simulation, collaborator, group, admin_user):
        assert not services.resolve_access(collaborator, simulation).allowed
        SimulationAssignment.objects.create(simulation=simulation, group=group, assigned_by=admin_user)
        assert services.resolve_access(collaborator, simulation).allowed

    def test_active_assignment_preferred_over_closed(self, simulation, student, school_class, admin_user):
        SimulationAssignment.objects.create(simulation=simulation, student=student, status='CLOSED')
        active = SimulationAssignment.objects.create(simulation=simulation, school_class=school_class)
        assert services.resolve_access(student, simulation).assignment == active


class TestEnsureAccess:
    def test_missing_simulation(self, student):
        with pytest.raises(exceptions.NotFound):
            services.ensure_access(student, 999999)

    def test_forbidden(self, simulation, other_student):
        with pytest.raises(exceptions.PermissionDenied):
            services.ensure_access(other_student, simulation.id)


class TestSchedule:
    def test_not_started(self, simulation):
        simulation.start_date = timezone.now() + timedelta(hours=1)
        with pytest.raises(exceptions.ValidationError):
            services.check_schedule(simulation)

    def test_expired(self, simulation):
        simulation.end_date = timezone.now() - timedelta(hours=1)
        with pytest.raises(exceptions.ValidationError):
            services.check_schedule(simulation)

    def test_assignment_window_overrides_simulation(self, simulation, student):
        simulation.end_date = timezone.now() - timedelta(hours=1)
        assignment = SimulationAssignment(
            simulation=simulation, student=student, end_date=timezone.now() + timedelta(days=1)
        )
        services.check_schedule(simulation, assignment)

    def test_closed_assignment(self, simulation, student):
        assignment = SimulationAssignment(simulation=simulation, student=student, status='CLOSED')
        with pytest.raises(exceptions.ValidationError):
            services.check_schedule(simulation, assignment)


class TestAssignments:
    def test_targets_resolve_to_students(self, simulation, student, other_student, school_class, group):
        by_class = SimulationAssignment.objects.create(simulation=simulation, school_class=school_class)
        by_group = SimulationAssignment.objects.create(simulation=simulation, group=group)
        assert services.get_targeted_student_ids(by_class) == {student.id}
        assert services.get_targeted_student_ids(by_group) == {other_student.id}

    def test_add_assignments_notifies_students(self, simulation, admin_user, student, mailoutbox):
        created = services.add_assignments(simulation, admin_user, [{'student': student}])

        assert len(created) == 1
        assert student.notifications.filter(notification_type='SIMULATION_ASSIGNED').exists()
        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == [student.email]

    def test_assignment_needs_exactly_one_target(self, simulation, admin_user, student, school_class):
        with pytest.raises(exceptions.ValidationError):
            services.add_assignments(simulation, admin_user, [{'student': student, 'school_class': school_class}])
        assert not SimulationAssignment.objects.exists()

    def test_draft_cannot_be_assigned(self, admin_user, student):
        simulation = make_simulation(admin_user, status='DRAFT')
        with pytest.raises(exceptions.ValidationError):
            services.add_assignments(simulation, admin_user, [{'student': student}])

    def test_collaborator_limited_to_referenced_groups(self, api_client, collaborator, student, group):
        simulation = make_simulation(collaborator)
        api_client.force_authenticate(collaborator)
        url = f'/api/v1/simulations/{simulation.id}/add_assignments/'

        denied = api_client.post(url, {'assignments': [{'student': student.id}]}, format='json')
        allowed = api_client.post(url, {'assignments': [{'group': group.id}]}, format='json')

        assert denied.status_code == 403
        assert allowed.status_code == 201

    def test_student_assignment_list(self, api_client, assigned_simulation, student, other_student):
        api_client.force_authenticate(student)
        assert api_client.get('/api/v1/simulations/assignments/').data['count'] == 1
        response = api_client.get(f'/api/v1/simulations/assignments/?student={other_student.id}')
        assert response.status_code == 403
