from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    job_display_id = serializers.CharField(source='job.display_id', read_only=True, default=None)

    class Meta:
        model = Notification
        fields = ['id', 'user', 'job', 'job_display_id', 'type', 'title', 'message', 'read', 'created_at']
        read_only_fields = ['user', 'job', 'type', 'title', 'message', 'created_at']
