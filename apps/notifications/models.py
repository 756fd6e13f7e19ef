from django.db import models
from django.conf import settings


class Notification(models.Model):
    """In-app notification shown in a user's bell menu."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    job = models.ForeignKey('jobs.Job', on_delete=models.CASCADE, null=True, blank=True, related_name='notifications')
    type = models.CharField(max_length=50)  # e.g. 'order_updated', 'payout_approved'
    title = models.CharField(max_length=200)
    message = models.TextField()
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.type} for {self.user.email}"

    def mark_as_read(self):
        self.read = True
        self.save(update_fields=['read'])
