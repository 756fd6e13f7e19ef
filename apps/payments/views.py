import hmac
import logging
from django.conf import settings
from django.contrib.auth import get_user_model
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from apps.jobs.transitions import InvalidTransition
from apps.management.permissions import IsSuperuser
from apps.management.utils import log_admin_action
from apps.notifications.utils import notify, notify_admins
from apps.users.permissions import RoleBasedPermission, IsApprovedAccount
from .models import Payment, Invoice, ManagerEarning, PayoutRequest
from .mpesa import MpesaError
from .serializers import (
    PaymentSerializer, PaymentCreateSerializer, StkPushSerializer, PaymentConfirmSerializer,
    InvoiceSerializer, ManagerEarningSerializer, PayoutRequestSerializer, PayoutRejectSerializer,
    PayoutProcessSerializer
)
from .services import (
    PaymentError, InsufficientBalance, apply_stk_result, parse_callback_metadata, initiate_stk_push,
    poll_payment, confirm_payment, reject_payment, approve_payout, reject_payout, process_payout,
    payout_total
)

User = get_user_model()
logger = logging.getLogger(__name__)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Success"}


def payment_not_found():
    return Response({"error": "Payment not found", "code": "PAYMENT_NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)


def get_payment_for(request, pk):
    """The payment if the user is its client or an admin, else None."""
    try:
        payment = Payment.objects.select_related('job', 'client', 'freelancer').get(pk=pk)
    except Payment.DoesNotExist:
        return None
    user = request.user
    if user.is_admin_role or payment.client_id == user.pk:
        return payment
    return None


def payment_error(exc):
    return Response({"error": str(exc), "code": exc.code}, status=status.HTTP_400_BAD_REQUEST)


class PaymentListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="List payments. Clients only see their own.",
        manual_parameters=[
            openapi.Parameter('job_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('client_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('freelancer_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING),
        ],
        responses={200: PaymentSerializer(many=True)}
    )
    def get(self, request):
        user = request.user
        queryset = Payment.objects.select_related('job', 'client', 'freelancer')
        if user.is_client:
            queryset = queryset.filter(client=user)
        elif user.is_freelancer:
            queryset = queryset.filter(freelancer=user)
        elif not user.is_admin_role:
            return Response({"error": "Permission denied"}, status=status.HTTP_403_FORBIDDEN)
        params = request.query_params
        if params.get('job_id'):
            queryset = queryset.filter(job_id=params['job_id'])
        if params.get('client_id'):
            queryset = queryset.filter(client_id=params['client_id'])
        if params.get('freelancer_id'):
            queryset = queryset.filter(freelancer_id=params['freelancer_id'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        return Response(PaymentSerializer(queryset, many=True).data)

    @swagger_auto_schema(
        operation_description=(
            "Record a payment for one of your orders. 'pochi' needs the M-Pesa code and waits for "
            "admin confirmation; 'direct' is followed by an STK push."
        ),
        request_body=PaymentCreateSerializer,
        responses={201: PaymentSerializer, 400: 'Bad Request', 403: 'Forbidden'}
    )
    def post(self, request):
        if not request.user.is_client:
            return Response({"error": "Only clients can make payments.", "code": "INVALID_ROLE"},
                            status=status.HTTP_403_FORBIDDEN)
        serializer = PaymentCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        job = serializer.validated_data['job']
        if job.client_id != request.user.pk:
            return Response({"error": "You can only pay for your own orders."}, status=status.HTTP_403_FORBIDDEN)
        method = serializer.validated_data['payment_method']
        payment = serializer.save(
            client=request.user,
            freelancer=job.assigned_freelancer,
            status='pending' if method == 'pochi' else 'processing'
        )
        logger.info(f"Payment {payment.pk} ({method}) recorded for job {job.display_id}")
        if method == 'pochi':
            notify_admins('payment_submitted', 'Payment Awaiting Confirmation',
                          f"Client {request.user.name} submitted M-Pesa code {payment.mpesa_code} "
                          f"for order {job.display_id}.", job=job)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class PaymentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: PaymentSerializer, 404: 'Not Found'})
    def get(self, request, pk):
        payment = get_payment_for(request, pk)
        if payment is None:
            return payment_not_found()
        return Response(PaymentSerializer(payment).data)


class MpesaStkPushView(APIView):
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'mpesa'

    @swagger_auto_schema(
        operation_description="Send an M-Pesa STK push prompt to the client's phone for this payment.",
        request_body=StkPushSerializer,
        responses={200: PaymentSerializer, 400: 'Bad Request', 429: 'Too Many Requests', 502: 'M-Pesa error'}
    )
    def post(self, request, pk):
        payment = get_payment_for(request, pk)
        if payment is None:
            return payment_not_found()
        serializer = StkPushSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        if payment.status == 'confirmed':
            return Response({"error": "This payment has already been confirmed.", "code": "ALREADY_PAID"},
                            status=status.HTTP_400_BAD_REQUEST)
        if payment.job.status in ('cancelled', 'completed'):
            return Response({"error": f"Cannot pay for a {payment.job.status} order.", "code": "INVALID_JOB_STATUS"},
                            status=status.HTTP_400_BAD_REQUEST)
        if not all([settings.MPESA_CONSUMER_KEY, settings.MPESA_CONSUMER_SECRET, settings.MPESA_PASSKEY]):
            logger.error("STK push requested but M-Pesa is not configured")
            return Response({"error": "M-Pesa is not configured.", "code": "MPESA_NOT_CONFIGURED"},
                            status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        if payment.status == 'failed':
            # retry on a fresh record so the failed attempt stays on file
            payment = Payment.objects.create(
                job=payment.job, client=payment.client, freelancer=payment.freelancer,
                amount=payment.amount, payment_method='direct', status='processing'
            )
        try:
            data = initiate_stk_push(payment, serializer.validated_data['phone_number'])
        except ValueError as e:
            return Response({"error": str(e), "code": "INVALID_PHONE"}, status=status.HTTP_400_BAD_REQUEST)
        except MpesaError as e:
            logger.error(f"STK push for payment {payment.pk} failed: {str(e)}")
            return Response({"error": str(e), "code": "MPESA_ERROR", "details": e.payload},
                            status=status.HTTP_502_BAD_GATEWAY)
        body = PaymentSerializer(payment).data
        body['customer_message'] = data.get('CustomerMessage', '')
        return Response(body)


class PaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description=(
            "Current payment status. A processing STK payment is refreshed from M-Pesa first. "
            "timed_out is true once the prompt has gone unanswered for too long."
        ),
        responses={200: openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={
                'status': openapi.Schema(type=openapi.TYPE_STRING),
                'timed_out': openapi.Schema(type=openapi.TYPE_BOOLEAN),
                'payment': openapi.Schema(type=openapi.TYPE_OBJECT),
            }
        )}
    )
    def get(self, request, pk):
        payment = get_payment_for(request, pk)
        if payment is None:
            return payment_not_found()
        payment, timed_out = poll_payment(payment)
        return Response({
            'status': payment.status,
            'timed_out': timed_out,
            'result_desc': payment.mpesa_result_desc,
            'payment': PaymentSerializer(payment).data,
        })


class MpesaCallbackView(APIView):
    """Daraja posts STK results here."""
    permission_classes = [AllowAny]
    authentication_classes = []

    @swagger_auto_schema(auto_schema=None)
    def post(self, request):
        secret = settings.MPESA_WEBHOOK_SECRET
        if secret:
            provided = request.headers.get('X-Webhook-Secret', '')
            if not hmac.compare_digest(provided.encode(), secret.encode()):
                logger.warning(f"M-Pesa callback rejected: bad webhook secret from {request.META.get('REMOTE_ADDR')}")
                return Response({"error": "Unauthorized"}, status=status.HTTP_401_UNAUTHORIZED)

        body = request.data.get('Body') if isinstance(request.data, dict) else None
        callback = body.get('stkCallback') if isinstance(body, dict) else None
        if not isinstance(callback, dict):
            callback = {}
        checkout_request_id = callback.get('CheckoutRequestID')
        if not checkout_request_id:
            logger.warning(f"M-Pesa callback without CheckoutRequestID: {request.data}")
            return Response(CALLBACK_ACK)
        try:
            payment = Payment.objects.get(mpesa_checkout_request_id=checkout_request_id)
        except Payment.DoesNotExist:
            logger.warning(f"M-Pesa callback for unknown checkout {checkout_request_id}")
            return Response(CALLBACK_ACK)

        apply_stk_result(
            payment,
            callback.get('ResultCode'),
            callback.get('ResultDesc', ''),
            parse_callback_metadata(callback)
        )
        return Response(CALLBACK_ACK)


class PaymentConfirmView(APIView):
    permission_classes = [IsAuthenticated, IsSuperuser]

    @swagger_auto_schema(
        operation_description=(
            "Confirm (completes the order and credits the writer and manager) "
            "or reject a payment."
        ),
        request_body=PaymentConfirmSerializer,
        responses={200: PaymentSerializer, 400: 'INVALID_TRANSITION or PAYMENT_ERROR', 404: 'Not Found'}
    )
    def post(self, request, pk):
        payment = get_payment_for(request, pk)
        if payment is None:
            return payment_not_found()
        serializer = PaymentConfirmSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        if not serializer.validated_data['confirmed']:
            reason = serializer.validated_data['reason']
            try:
                reject_payment(payment, request.user, reason)
            except PaymentError as e:
                return payment_error(e)
            log_admin_action(request, 'reject_payment', payment, details={'reason': reason})
            return Response(PaymentSerializer(payment).data)

        try:
            invoice = confirm_payment(payment, request.user)
        except InvalidTransition as e:
            return Response({"error": str(e), "code": e.code, "allowed_transitions": list(e.allowed)},
                            status=status.HTTP_400_BAD_REQUEST)
        except PaymentError as e:
            return payment_error(e)
        log_admin_action(request, 'confirm_payment', payment, details={
            'job': payment.job.display_id,
            'amount': str(payment.amount),
            'invoice': invoice.invoice_number,
        })
        body = PaymentSerializer(payment).data
        body['invoice'] = InvoiceSerializer(invoice).data
        return Response(body)


class InvoiceListView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: InvoiceSerializer(many=True)})
    def get(self, request):
        user = request.user
        queryset = Invoice.objects.select_related('job')
        if user.is_client:
            queryset = queryset.filter(client=user)
        elif user.is_freelancer:
            queryset = queryset.filter(freelancer=user)
        elif not user.is_admin_role:
            return Response({"error": "Permission denied"}, status=status.HTTP_403_FORBIDDEN)
        if request.query_params.get('is_paid') in ('true', 'false'):
            queryset = queryset.filter(is_paid=request.query_params['is_paid'] == 'true')
        return Response(InvoiceSerializer(queryset, many=True).data)


class InvoiceMarkPaidView(APIView):
    permission_classes = [IsAuthenticated, IsSuperuser]

    @swagger_auto_schema(responses={200: InvoiceSerializer, 404: 'Not Found'})
    def post(self, request, pk):
        try:
            invoice = Invoice.objects.get(pk=pk)
        except Invoice.DoesNotExist:
            return Response({"error": "Invoice not found"}, status=status.HTTP_404_NOT_FOUND)
        if invoice.is_paid:
            return Response({"error": "Invoice is already paid."}, status=status.HTTP_400_BAD_REQUEST)
        invoice.mark_as_paid()
        log_admin_action(request, 'mark_invoice_paid', invoice)
        return Response(InvoiceSerializer(invoice).data)


class ManagerEarningListView(APIView):
    permission_classes = [IsAuthenticated, RoleBasedPermission]
    required_roles = ['manager', 'admin']

    @swagger_auto_schema(responses={200: ManagerEarningSerializer(many=True)})
    def get(self, request):
        queryset = ManagerEarning.objects.select_related('job')
        if not request.user.is_admin_role:
            queryset = queryset.filter(manager=request.user)
        elif request.query_params.get('manager_id'):
            queryset = queryset.filter(manager_id=request.query_params['manager_id'])
        return Response(ManagerEarningSerializer(queryset, many=True).data)


class PayoutListCreateView(APIView):
    required_roles = {'POST': ['freelancer', 'manager']}

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), RoleBasedPermission(), IsApprovedAccount()]
        return [IsAuthenticated()]

    @swagger_auto_schema(
        manual_parameters=[openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING)],
        responses={200: PayoutRequestSerializer(many=True)}
    )
    def get(self, request):
        queryset = PayoutRequest.objects.select_related('requester')
        if not request.user.is_admin_role:
            queryset = queryset.filter(requester=request.user)
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        return Response(PayoutRequestSerializer(queryset, many=True).data)

    @swagger_auto_schema(
        operation_description="Request a withdrawal of part of your balance.",
        request_body=PayoutRequestSerializer,
        responses={201: PayoutRequestSerializer, 400: 'Bad Request or INSUFFICIENT_BALANCE'}
    )
    def post(self, request):
        serializer = PayoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        request.user.refresh_from_db(fields=['balance'])
        if serializer.validated_data['amount'] > request.user.balance:
            e = InsufficientBalance(request.user.balance)
            return Response({"error": str(e), "code": e.code}, status=status.HTTP_400_BAD_REQUEST)
        payout = serializer.save(requester=request.user)
        notify(request.user, 'payout_requested', 'Payout Requested',
               f"Your payout request of KSh {payout.amount} has been received and is awaiting approval.")
        notify_admins('payout_requested', 'New Payout Request',
                      f"{request.user.name} requested a payout of KSh {payout.amount} via {payout.method}.")
        logger.info(f"Payout {payout.pk} of {payout.amount} requested by user {request.user.pk}")
        return Response(PayoutRequestSerializer(payout).data, status=status.HTTP_201_CREATED)


class PayoutActionView(APIView):
    """Base for the admin payout steps."""
    permission_classes = [IsAuthenticated, IsSuperuser]
    action_name = None

    def get_payout(self, pk):
        try:
            return PayoutRequest.objects.select_related('requester').get(pk=pk)
        except PayoutRequest.DoesNotExist:
            return None

    def perform(self, request, payout):
        raise NotImplementedError

    def post(self, request, pk):
        payout = self.get_payout(pk)
        if payout is None:
            return Response({"error": "Payout request not found"}, status=status.HTTP_404_NOT_FOUND)
        result = self.perform(request, payout)
        if isinstance(result, Response):
            return result
        log_admin_action(request, self.action_name, payout, details={
            'amount': str(payout.amount),
            'requester': payout.requester_id,
            'status': payout.status,
        })
        return Response(PayoutRequestSerializer(payout).data)


class PayoutApproveView(PayoutActionView):
    action_name = 'approve_payout'

    @swagger_auto_schema(responses={200: PayoutRequestSerializer, 400: 'INSUFFICIENT_BALANCE'})
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, payout):
        try:
            approve_payout(payout, request.user)
        except PaymentError as e:
            return payment_error(e)
        return None


class PayoutRejectView(PayoutActionView):
    action_name = 'reject_payout'

    @swagger_auto_schema(request_body=PayoutRejectSerializer, responses={200: PayoutRequestSerializer})
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, payout):
        serializer = PayoutRejectSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            reject_payout(payout, request.user, serializer.validated_data['reason'])
        except PaymentError as e:
            return payment_error(e)
        return None


class PayoutProcessView(PayoutActionView):
    action_name = 'process_payout'

    @swagger_auto_schema(request_body=PayoutProcessSerializer, responses={200: PayoutRequestSerializer})
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, payout):
        serializer = PayoutProcessSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            process_payout(payout, request.user, serializer.validated_data['transaction_reference'])
        except PaymentError as e:
            return payment_error(e)
        return None


class BalanceView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Balance, lifetime earnings and payout totals for the current user.",
        responses={200: openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={
                'balance': openapi.Schema(type=openapi.TYPE_STRING),
                'total_earned': openapi.Schema(type=openapi.TYPE_STRING),
                'pending_payouts': openapi.Schema(type=openapi.TYPE_STRING),
                'approved_payouts': openapi.Schema(type=openapi.TYPE_STRING),
            }
        )}
    )
    def get(self, request):
        user = User.objects.get(pk=request.user.pk)
        return Response({
            'balance': str(user.balance),
            'total_earned': str(user.total_earned),
            'pending_payouts': str(payout_total(user)),
            'approved_payouts': str(payout_total(user, ('approved',))),
        })
