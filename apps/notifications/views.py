import logging
from django.utils.dateparse import parse_datetime
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from .models import Notification
from .serializers import NotificationSerializer

logger = logging.getLogger(__name__)


class NotificationListView(generics.ListAPIView):
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="List the current user's notifications, newest first.",
        manual_parameters=[
            openapi.Parameter('unread', openapi.IN_QUERY, type=openapi.TYPE_BOOLEAN),
            openapi.Parameter('since', openapi.IN_QUERY, type=openapi.TYPE_STRING, format='date-time'),
        ]
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        queryset = Notification.objects.filter(user=self.request.user).select_related('job')
        if self.request.query_params.get('unread') in ('1', 'true', 'True'):
            queryset = queryset.filter(read=False)
        since = self.request.query_params.get('since')
        if since:
            since_dt = parse_datetime(since)
            if since_dt is not None:
                queryset = queryset.filter(created_at__gt=since_dt)
        return queryset


class NotificationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get_notification(self, request, pk):
        try:
            return Notification.objects.get(pk=pk, user=request.user)
        except Notification.DoesNotExist:
            return None

    def get(self, request, pk):
        notification = self.get_notification(request, pk)
        if notification is None:
            return Response({"error": "Notification not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(NotificationSerializer(notification).data)

    @swagger_auto_schema(
        operation_description="Mark a notification as read or unread.",
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={'read': openapi.Schema(type=openapi.TYPE_BOOLEAN, default=True)}
        )
    )
    def patch(self, request, pk):
        notification = self.get_notification(request, pk)
        if notification is None:
            return Response({"error": "Notification not found"}, status=status.HTTP_404_NOT_FOUND)
        serializer = NotificationSerializer(notification, data={'read': request.data.get('read', True)}, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    def delete(self, request, pk):
        notification = self.get_notification(request, pk)
        if notification is None:
            return Response({"error": "Notification not found"}, status=status.HTTP_404_NOT_FOUND)
        notification.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class MarkAllReadView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        updated = Notification.objects.filter(user=request.user, read=False).update(read=True)
        logger.info(f"Marked {updated} notification(s) read for user {request.user.pk}")
        return Response({"updated": updated})


class UnreadCountView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        count = Notification.objects.filter(user=request.user, read=False).count()
        return Response({"unread_count": count})
