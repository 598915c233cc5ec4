import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.groups.models import SchoolClass, Group, GroupMember
from apps.simulations.models import SimulationAssignment
from .factories import make_user, make_simulation


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def cron_secret(settings):
    settings.CRON_SECRET = 'test-cron-secret'
    return settings.CRON_SECRET


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_user(db):
    return make_user('admin@leonardo.test', role='ADMIN', first_name='Ada', last_name='Admin')


@pytest.fixture
def collaborator(db):
    return make_user('collab@leonardo.test', role='COLLABORATOR', first_name='Carlo', last_name='Collab')


@pytest.fixture
def school_class(db):
    return SchoolClass.objects.create(name='5A', year=5, section='A')


@pytest.fixture
def student(db, school_class):
    return make_user('mario@leonardo.test', first_name='Mario', last_name='Rossi', school_class=school_class)


@pytest.fixture
def other_student(db):
    return make_user('luisa@leonardo.test', first_name='Luisa', last_name='Bianchi')


@pytest.fixture
def group(db, collaborator, other_student):
    group = Group.objects.create(name='Medicina', reference_collaborator=collaborator)
    GroupMember.objects.create(group=group, student=other_student)
    return group


@pytest.fixture
def simulation(db, admin_user):
    return make_simulation(admin_user)


@pytest.fixture
def assigned_simulation(simulation, student, admin_user):
    SimulationAssignment.objects.create(simulation=simulation, student=student, assigned_by=admin_user)
    return simulation
