"""
Class and Group Serializers
===========================
"""

from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import SchoolClass, Group, GroupMember

User = get_user_model()


# ============================================================================
# Class Serializers
# ============================================================================

class SchoolClassSerializer(serializers.ModelSerializer):
    student_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = SchoolClass
        fields = ['id', 'name', 'year', 'section', 'is_active', 'student_count', 'created_at']
        read_only_fields = ['id', 'created_at']


# ============================================================================
# Group Serializers
# ============================================================================

class GroupMemberSerializer(serializers.ModelSerializer):
    student_email = serializers.EmailField(source='student.email', read_only=True)
    student_name = serializers.CharField(source='student.get_full_name', read_only=True)

    class Meta:
        model = GroupMember
        fields = ['id', 'student', 'student_email', 'student_name', 'joined_at']
        read_only_fields = ['id', 'joined_at']


class GroupSerializer(serializers.ModelSerializer):
    member_count = serializers.IntegerField(read_only=True)
    reference_collaborator_name = serializers.CharField(
        source='reference_collaborator.get_full_name', read_only=True, allow_null=True
    )

    class Meta:
        model = Group
        fields = [
            'id', 'name', 'description', 'color', 'reference_collaborator',
            'reference_collaborator_name', 'is_active', 'member_count', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def validate_reference_collaborator(self, value):
        if value is not None and not value.is_collaborator:
            raise serializers.ValidationError('Il referente deve essere un collaboratore.')
        return value


class GroupMembersUpdateSerializer(serializers.Serializer):
    """Add students to a group."""

    student_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)

    def validate_student_ids(self, value):
        students = User.objects.filter(id__in=value, role='STUDENT')
        if students.count() != len(set(value)):
            raise serializers.ValidationError('Uno o più studenti non sono validi.')
        return list(set(value))
