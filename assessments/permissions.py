from rest_framework import permissions


class IsStudent(permissions.BasePermission):
    """
    Only students sit exams.
    Staff accounts and proctors are blocked from starting attempts.
    """
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return getattr(request.user, 'is_student', False)


class IsGraderOrAdmin(permissions.BasePermission):
    """
    Allows access to Admins and Proctors.
    Strictly blocks Students.
    """
    def has_permission(self, request, view):
        # 1. User must be logged in
        if not request.user or not request.user.is_authenticated:
            return False

        # 2. Superuser/Staff OR Role is in allowed list
        return getattr(request.user, 'can_grade', False)
