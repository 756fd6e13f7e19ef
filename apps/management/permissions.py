from rest_framework.permissions import BasePermission

class IsSuperuser(BasePermission):
    """Permission class to check if the user is a platform admin."""
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_admin_role)
