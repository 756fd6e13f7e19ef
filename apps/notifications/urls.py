from django.urls import path
from .views import NotificationListView, NotificationDetailView, MarkAllReadView, UnreadCountView

urlpatterns = [
    path('', NotificationListView.as_view(), name='notification_list'),
    path('<int:pk>/', NotificationDetailView.as_view(), name='notification_detail'),
    path('mark-all-read/', MarkAllReadView.as_view(), name='notification_mark_all_read'),
    path('unread-count/', UnreadCountView.as_view(), name='notification_unread_count'),
]
