import logging
from core.utils import get_client_ip
from .models import AdminAuditLog

logger = logging.getLogger(__name__)


def log_admin_action(request, action, target=None, target_type='', details=None):
    """Write an audit entry. Failures are logged and never block the admin action."""
    if target is not None and not target_type:
        target_type = target._meta.model_name
    try:
        return AdminAuditLog.objects.create(
            admin=request.user if request.user.is_authenticated else None,
            action=action,
            target_type=target_type,
            target_id=str(target.pk) if target is not None else '',
            details=details or {},
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
    except Exception as e:
        logger.error(f"Failed to write audit log for {action}: {str(e)}")
        return None
