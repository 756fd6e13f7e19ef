from rest_framework import permissions
from core.utils import has_role


class RoleBasedPermission(permissions.BasePermission):
    """
    Restrict a view to the roles listed in its ``required_roles`` attribute.

    ``required_roles`` may also be a dict keyed by HTTP method for views
    whose verbs serve different roles.
    """
    def _roles_for(self, request, view):
        required_roles = getattr(view, 'required_roles', None)
        if isinstance(required_roles, dict):
            return required_roles.get(request.method)
        return required_roles

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        required_roles = self._roles_for(request, view)
        if not required_roles:
            return True
        return has_role(request.user, *required_roles)


class IsApprovedAccount(permissions.BasePermission):
    message = "Your account is awaiting admin approval."

    def has_permission(self, request, view):
        user = request.user
        return bool(user.is_authenticated and (user.approved or user.is_admin_role))
