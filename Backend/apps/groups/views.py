"""
Class and Group Views
=====================
Admins manage classes and groups; collaborators see the groups they follow.
"""

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404

from .models import SchoolClass, Group, GroupMember
from .serializers import (
    SchoolClassSerializer,
    GroupSerializer,
    GroupMemberSerializer,
    GroupMembersUpdateSerializer,
)
from apps.core.permissions import IsAdmin, IsStaffMember


class SchoolClassViewSet(viewsets.ModelViewSet):
    """
    ViewSet for classes.

    Permissions:
    - Admin: full access
    - Collaborator: read-only
    """

    queryset = SchoolClass.objects.all()
    serializer_class = SchoolClassSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [IsAuthenticated(), IsStaffMember()]
        return [IsAuthenticated(), IsAdmin()]


class GroupViewSet(viewsets.ModelViewSet):
    """
    ViewSet for study groups.

    Permissions:
    - Admin: full access
    - Collaborator: read-only access to groups they reference
    """

    serializer_class = GroupSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Group.objects.select_related('reference_collaborator')
        if user.is_admin:
            return queryset
        return queryset.filter(reference_collaborator=user)

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'members']:
            return [IsAuthenticated(), IsStaffMember()]
        return [IsAuthenticated(), IsAdmin()]

    # ========================================================================
    # Custom Actions - Members
    # ========================================================================

    @action(detail=True, methods=['get'])
    def members(self, request, pk=None):
        """List the students in a group."""
        group = self.get_object()
        memberships = group.members.select_related('student')
        return Response(GroupMemberSerializer(memberships, many=True).data)

    @action(detail=True, methods=['post'])
    def add_members(self, request, pk=None):
        """Add students to a group. Existing members are left untouched."""
        group = self.get_object()
        serializer = GroupMembersUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        added = 0
        for student_id in serializer.validated_data['student_ids']:
            _, created = GroupMember.objects.get_or_create(group=group, student_id=student_id)
            if created:
                added += 1

        return Response(
            {'message': f'{added} studenti aggiunti al gruppo.', 'added': added},
            status=status.HTTP_200_OK
        )

    @action(detail=True, methods=['delete'], url_path=r'members/(?P<student_id>\d+)')
    def remove_member(self, request, pk=None, student_id=None):
        """Remove a student from a group."""
        group = self.get_object()
        membership = get_object_or_404(GroupMember, group=group, student_id=student_id)
        membership.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
