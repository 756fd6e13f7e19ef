from django.db import models
from django.conf import settings


class AdminAuditLog(models.Model):
    """Log administrative actions (e.g., user approval, payout processing)."""
    admin = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=100)
    target_type = models.CharField(max_length=50, blank=True, default='')
    target_id = models.CharField(max_length=50, blank=True, default='')
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default='')
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp', '-id']

    def __str__(self):
        admin = self.admin.email if self.admin else 'system'
        return f"{admin} - {self.action} at {self.timestamp}"
