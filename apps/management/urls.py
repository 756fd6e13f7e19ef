from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'users', views.ManagementUserViewSet, basename='management-users')
router.register(r'audit-logs', views.AdminAuditLogViewSet, basename='audit-logs')

urlpatterns = [
    path('', include(router.urls)),
    path('analytics/', views.AnalyticsView.as_view(), name='analytics'),
    path('manager/dashboard/', views.ManagerDashboardView.as_view(), name='manager_dashboard'),
]
