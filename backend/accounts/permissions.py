from rest_framework.permissions import BasePermission


class IsStaffRole(BasePermission):
    """
    Allow access only to tutors and admins.
    Superusers automatically pass.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_staff_role
