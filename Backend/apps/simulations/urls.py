from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    QuestionViewSet,
    SimulationViewSet,
    AssignmentViewSet,
)

app_name = 'simulations'

# Router for ViewSets
router = DefaultRouter()
router.register(r'questions', QuestionViewSet, basename='question')
router.register(r'assignments', AssignmentViewSet, basename='assignment')
router.register(r'', SimulationViewSet, basename='simulation')

urlpatterns = [
    # Questions:   /api/v1/simulations/questions/
    # Assignments: /api/v1/simulations/assignments/?student=<id>
    # Simulations: /api/v1/simulations/
    path('', include(router.urls)),
]

# API Endpoints Summary:
#
# Simulations (staff CRUD, students read assigned/public):
# GET    /simulations/                               - List visible simulations
# POST   /simulations/                               - Create simulation (staff)
# GET    /simulations/{id}/                          - Detail
# PATCH  /simulations/{id}/                          - Update (author or admin)
# POST   /simulations/{id}/publish/                  - Publish
# POST   /simulations/{id}/archive/                  - Archive
# POST   /simulations/{id}/add_assignments/          - Assign to students/classes/groups
# DELETE /simulations/{id}/assignments/{aid}/        - Remove an assignment
# GET    /simulations/{id}/results/                  - Completed attempts (staff)
#
# Exam session (students):
# POST   /simulations/{id}/start/                    - Start or resume an attempt
# POST   /simulations/{id}/save-progress/            - Checkpoint answers
# POST   /simulations/{id}/submit/                   - Submit (idempotent)
# GET    /simulations/my_results/                    - Own completed attempts
#
# Shared:
# GET    /simulations/{id}/leaderboard/?limit=50     - Ranking (anonymized)
# GET    /simulations/{id}/calendar/                 - .ics download
