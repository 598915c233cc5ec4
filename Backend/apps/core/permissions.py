from rest_framework import permissions


class IsAdmin(permissions.BasePermission):
    """Permission class to check if user is an Admin."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_admin)


class IsCollaborator(permissions.BasePermission):
    """Permission class to check if user is a Collaborator."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_collaborator)


class IsStudent(permissions.BasePermission):
    """Permission class to check if user is a Student."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_student)


class IsStaffMember(permissions.BasePermission):
    """Permission class to check if user is either Admin or Collaborator."""

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.is_staff_member
        )


class IsOwnerOrAdmin(permissions.BasePermission):
    """Permission class to check if user is the owner of the object or an admin."""

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False

        if request.user.is_admin:
            return True

        # Check if object belongs to the user
        if hasattr(obj, 'user'):
            return obj.user == request.user

        if hasattr(obj, 'created_by'):
            return obj.created_by == request.user

        return False
