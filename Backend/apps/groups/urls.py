"""
Class and Group URLs
====================
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import SchoolClassViewSet, GroupViewSet

app_name = 'groups'

router = DefaultRouter()
router.register(r'classes', SchoolClassViewSet, basename='school-class')
router.register(r'', GroupViewSet, basename='group')

urlpatterns = [
    path('', include(router.urls)),
]

# API Endpoints Summary:
#
# GET    /groups/classes/                        - List classes (staff)
# POST   /groups/classes/                        - Create class (Admin)
# GET    /groups/                                - List groups (Admin: all, Collaborator: referenced)
# POST   /groups/                                - Create group (Admin)
# GET    /groups/{id}/members/                   - List members
# POST   /groups/{id}/add_members/               - Add students (Admin)
# DELETE /groups/{id}/members/{student_id}/      - Remove student (Admin)
