from rest_framework import permissions


def has_role(user, *roles):
    if not user or not user.is_authenticated:
        return False
    if 'admin' in roles and user.is_superuser:
        return True
    return user.role in roles


class IsClient(permissions.BasePermission):
    def has_permission(self, request, view):
        return has_role(request.user, 'client')


class IsFreelancer(permissions.BasePermission):
    def has_permission(self, request, view):
        return has_role(request.user, 'freelancer')


class IsStaffRole(permissions.BasePermission):
    """Admins and managers."""
    def has_permission(self, request, view):
        return has_role(request.user, 'admin', 'manager')


def get_client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')
