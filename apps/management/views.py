import logging
from collections import Counter
from datetime import timedelta
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.utils import timezone
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema, no_body
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from apps.jobs.models import Job
from apps.jobs.serializers import JobSerializer
from apps.notifications.utils import notify, send_notification
from apps.payments.models import Payment, ManagerEarning, PayoutRequest
from apps.payments.serializers import ManagerEarningSerializer
from apps.users.permissions import RoleBasedPermission
from apps.users.serializers import UserSummarySerializer
from .models import AdminAuditLog
from .permissions import IsSuperuser
from .serializers import (
    ManagementUserSerializer, ManagementUserCreateSerializer, ManagementUserUpdateSerializer,
    ReasonSerializer, SuspendSerializer, AssignManagerSerializer, AdminAuditLogSerializer
)
from .utils import log_admin_action

logger = logging.getLogger(__name__)
User = get_user_model()

ZERO = Decimal('0.00')


def total(queryset, field):
    return queryset.aggregate(total=Sum(field))['total'] or ZERO


class ManagementUserViewSet(viewsets.ModelViewSet):
    """
    Admin API for managing accounts: approval, rejection, suspension,
    blacklisting and manager assignment.
    """
    queryset = User.objects.select_related('assigned_manager').order_by('-date_joined')
    serializer_class = ManagementUserSerializer
    permission_classes = [IsAuthenticated, IsSuperuser]

    def get_serializer_class(self):
        if self.action == 'create':
            return ManagementUserCreateSerializer
        if self.action in ['update', 'partial_update']:
            return ManagementUserUpdateSerializer
        return self.serializer_class

    @swagger_auto_schema(manual_parameters=[
        openapi.Parameter('role', openapi.IN_QUERY, type=openapi.TYPE_STRING),
        openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING),
        openapi.Parameter('approved', openapi.IN_QUERY, type=openapi.TYPE_BOOLEAN),
        openapi.Parameter('search', openapi.IN_QUERY, type=openapi.TYPE_STRING),
    ])
    def list(self, request, *args, **kwargs):
        return super().list(request, *args, **kwargs)

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get('role'):
            queryset = queryset.filter(role=params['role'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('approved') in ('true', 'false'):
            queryset = queryset.filter(approved=params['approved'] == 'true')
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(
                Q(name__icontains=term) | Q(email__icontains=term) | Q(display_id__icontains=term)
            )
        return queryset

    def perform_create(self, serializer):
        instance = serializer.save()
        log_admin_action(self.request, 'create_user', instance, details={'role': instance.role})

    def perform_update(self, serializer):
        instance = serializer.save()
        log_admin_action(self.request, 'update_user', instance, details=dict(self.request.data.items()))

    def perform_destroy(self, instance):
        log_admin_action(self.request, 'delete_user', instance, details={'email': instance.email})
        instance.delete()

    def _respond(self, user):
        return Response(ManagementUserSerializer(user).data)

    def _announce(self, user, notification_type, title, message):
        logger.info(f"Account {user.pk} ({user.email}): {notification_type}")
        notify(user, notification_type, title, message)
        send_notification(user, f"TaskLynk: {title}", f"Hello {user.name},\n\n{message}", f"TaskLynk: {message}")

    @swagger_auto_schema(request_body=no_body, responses={200: ManagementUserSerializer})
    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        user = self.get_object()
        user.approved = True
        user.status = 'active'
        user.rejection_reason = ''
        user.rejected_at = None
        user.save(update_fields=['approved', 'status', 'rejection_reason', 'rejected_at'])
        log_admin_action(request, 'approve_user', user)
        self._announce(user, 'account_approved', 'Account Approved',
                       "Your account has been approved. You can now use all TaskLynk features.")
        return self._respond(user)

    @swagger_auto_schema(request_body=ReasonSerializer, responses={200: ManagementUserSerializer})
    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        user = self.get_object()
        serializer = ReasonSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        reason = serializer.validated_data['reason']
        user.approved = False
        user.status = 'rejected'
        user.rejection_reason = reason
        user.rejected_at = timezone.now()
        user.save(update_fields=['approved', 'status', 'rejection_reason', 'rejected_at'])
        log_admin_action(request, 'reject_user', user, details={'reason': reason})
        self._announce(user, 'account_rejected', 'Account Rejected',
                       f"Your account application was not approved. Reason: {reason}")
        return self._respond(user)

    @swagger_auto_schema(request_body=SuspendSerializer, responses={200: ManagementUserSerializer})
    @action(detail=True, methods=['post'])
    def suspend(self, request, pk=None):
        user = self.get_object()
        if user.pk == request.user.pk:
            return Response({"error": "You cannot suspend your own account."}, status=status.HTTP_400_BAD_REQUEST)
        serializer = SuspendSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        days = serializer.validated_data['duration_days']
        reason = serializer.validated_data['reason']
        user.status = 'suspended'
        user.suspended_until = timezone.now() + timedelta(days=days)
        user.suspension_reason = reason
        user.save(update_fields=['status', 'suspended_until', 'suspension_reason'])
        log_admin_action(request, 'suspend_user', user, details={'duration_days': days, 'reason': reason})
        self._announce(user, 'account_suspended', 'Account Suspended',
                       f"Your account has been suspended until {user.suspended_until:%Y-%m-%d %H:%M}. "
                       f"Reason: {reason}")
        return self._respond(user)

    @swagger_auto_schema(request_body=no_body, responses={200: ManagementUserSerializer})
    @action(detail=True, methods=['post'])
    def unsuspend(self, request, pk=None):
        user = self.get_object()
        if user.status != 'suspended':
            return Response({"error": "User is not suspended."}, status=status.HTTP_400_BAD_REQUEST)
        user.status = 'active'
        user.suspended_until = None
        user.suspension_reason = ''
        user.save(update_fields=['status', 'suspended_until', 'suspension_reason'])
        log_admin_action(request, 'unsuspend_user', user)
        self._announce(user, 'account_unsuspended', 'Account Reactivated',
                       "Your account suspension has been lifted.")
        return self._respond(user)

    @swagger_auto_schema(request_body=ReasonSerializer, responses={200: ManagementUserSerializer})
    @action(detail=True, methods=['post'])
    def blacklist(self, request, pk=None):
        user = self.get_object()
        if user.pk == request.user.pk:
            return Response({"error": "You cannot blacklist your own account."},
                            status=status.HTTP_400_BAD_REQUEST)
        serializer = ReasonSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        reason = serializer.validated_data['reason']
        user.status = 'blacklisted'
        user.blacklist_reason = reason
        user.save(update_fields=['status', 'blacklist_reason'])
        log_admin_action(request, 'blacklist_user', user, details={'reason': reason})
        self._announce(user, 'account_blacklisted', 'Account Blacklisted',
                       f"Your account has been permanently blocked. Reason: {reason}")
        return self._respond(user)

    @swagger_auto_schema(request_body=AssignManagerSerializer, responses={200: ManagementUserSerializer})
    @action(detail=True, methods=['post'], url_path='assign-manager')
    def assign_manager(self, request, pk=None):
        user = self.get_object()
        if user.role not in ('client', 'freelancer'):
            return Response({"error": "Only clients and freelancers can have a manager."},
                            status=status.HTTP_400_BAD_REQUEST)
        serializer = AssignManagerSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        manager = serializer.validated_data['manager_id']
        user.assigned_manager = manager
        user.save(update_fields=['assigned_manager'])
        log_admin_action(request, 'assign_manager', user,
                         details={'manager_id': manager.pk if manager else None})
        if manager is not None:
            self._announce(user, 'manager_assigned', 'Manager Assigned',
                           f"{manager.name} is now your account manager.")
            notify(manager, 'manager_assigned', 'New Account Assigned',
                   f"{user.name} ({user.display_id}) has been assigned to you.")
        return self._respond(user)


class AdminAuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only history of admin actions."""
    serializer_class = AdminAuditLogSerializer
    permission_classes = [IsAuthenticated, IsSuperuser]

    def get_queryset(self):
        queryset = AdminAuditLog.objects.select_related('admin')
        params = self.request.query_params
        if params.get('action'):
            queryset = queryset.filter(action=params['action'])
        if params.get('admin_id'):
            queryset = queryset.filter(admin_id=params['admin_id'])
        if params.get('target_type'):
            queryset = queryset.filter(target_type=params['target_type'])
        if params.get('target_id'):
            queryset = queryset.filter(target_id=params['target_id'])
        return queryset


class AnalyticsView(APIView):
    permission_classes = [IsAuthenticated, IsSuperuser]

    @swagger_auto_schema(operation_description="Platform counts and financial overview.")
    def get(self, request):
        users_by_role = dict(User.objects.order_by().values_list('role').annotate(count=Count('id')))
        jobs_by_status = dict(Job.objects.order_by().values_list('status').annotate(count=Count('id')))
        completed = Job.objects.filter(status='completed', payment_confirmed=True)
        return Response({
            'users': {
                'total': sum(users_by_role.values()),
                'by_role': users_by_role,
                'pending_approval': User.objects.filter(approved=False, status='pending').count(),
            },
            'jobs': {
                'total': sum(jobs_by_status.values()),
                'by_status': jobs_by_status,
            },
            'financial': {
                'confirmed_revenue': str(total(Payment.objects.filter(status='confirmed'), 'amount')),
                'writer_earnings': str(total(completed, 'freelancer_earnings')),
                'manager_earnings': str(total(ManagerEarning.objects.all(), 'amount')),
                'admin_profit': str(total(completed, 'admin_profit')),
                'pending_payouts': str(total(PayoutRequest.objects.filter(status='pending'), 'amount')),
                'approved_payouts': str(total(PayoutRequest.objects.filter(status='approved'), 'amount')),
            },
        })


class ManagerDashboardView(APIView):
    permission_classes = [IsAuthenticated, RoleBasedPermission]
    required_roles = ['manager']

    @swagger_auto_schema(operation_description="The manager's clients, writers, orders and earnings.")
    def get(self, request):
        manager = User.objects.get(pk=request.user.pk)
        managed = User.objects.filter(assigned_manager=manager)
        jobs = Job.objects.filter(
            Q(manager=manager) | Q(client__assigned_manager=manager) | Q(assigned_freelancer__assigned_manager=manager)
        ).select_related('client', 'assigned_freelancer', 'manager').distinct().order_by('-created_at')
        job_list = list(jobs)
        earnings = ManagerEarning.objects.filter(manager=manager).select_related('job')
        by_type = dict(earnings.order_by().values_list('earning_type').annotate(total=Sum('amount')))
        return Response({
            'clients': UserSummarySerializer(managed.filter(role='client'), many=True).data,
            'writers': UserSummarySerializer(managed.filter(role='freelancer'), many=True).data,
            'orders': JobSerializer(job_list[:100], many=True).data,
            'order_counts': dict(Counter(job.status for job in job_list)),
            'earnings': {
                'balance': str(manager.balance),
                'total_earned': str(manager.total_earned),
                'assign_fees': str(by_type.get('assign', ZERO)),
                'submit_fees': str(by_type.get('submit', ZERO)),
                'recent': ManagerEarningSerializer(earnings[:20], many=True).data,
            },
        })
