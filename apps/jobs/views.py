import logging
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.http import FileResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from core.pricing import CENTS, client_minimum, manager_submit_fee, urgency_multiplier
from core.utils import IsClient, IsFreelancer, IsStaffRole
from apps.management.permissions import IsSuperuser
from apps.management.utils import log_admin_action
from apps.notifications.utils import notify, notify_admins, email_user, email_admins
from apps.payments.earnings import credit_manager_fee
from .models import Job, Bid, JobAttachment, Revision, JobMessage
from .serializers import (
    JobSerializer, JobCreateSerializer, JobUpdateSerializer, JobStatusUpdateSerializer,
    JobStatusLogSerializer, BidSerializer, BidUpdateSerializer, JobAttachmentSerializer,
    RevisionSerializer, RatingSerializer, JobMessageSerializer
)
from .transitions import InvalidStatus, InvalidTransition, transition_job
from .utils import save_with_identifiers, job_link

User = get_user_model()
logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def job_not_found():
    return Response({"error": "Job not found", "code": "JOB_NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)


def transition_error(exc):
    body = {"error": str(exc), "code": exc.code}
    if isinstance(exc, InvalidTransition):
        body['allowed_transitions'] = list(exc.allowed)
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


def get_visible_job(request, pk):
    """The job if it exists and the user may see it, else None."""
    try:
        job = Job.objects.select_related(
            'client', 'client__assigned_manager', 'assigned_freelancer', 'manager'
        ).get(pk=pk)
    except Job.DoesNotExist:
        return None
    user = request.user
    if job.is_participant(user) or (user.is_freelancer and job.is_open_for_bids):
        return job
    return None


def jobs_visible_to(user):
    queryset = Job.objects.select_related('client', 'assigned_freelancer', 'manager')
    if user.is_admin_role:
        return queryset
    if user.is_client:
        return queryset.filter(client=user)
    if user.is_freelancer:
        return queryset.filter(
            Q(assigned_freelancer=user) | Q(status='accepted', assigned_freelancer__isnull=True)
        )
    if user.is_manager:
        return queryset.filter(
            Q(manager=user) |
            Q(client__assigned_manager=user) |
            Q(client__assigned_manager__isnull=True) |
            Q(assigned_freelancer__assigned_manager=user)
        )
    return queryset.none()


class JobListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="List jobs visible to the current user, newest first.",
        manual_parameters=[
            openapi.Parameter('client_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('assigned_freelancer_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING),
            openapi.Parameter('exclude_bids_of', openapi.IN_QUERY, type=openapi.TYPE_INTEGER,
                              description='Hide jobs this freelancer already bid on'),
            openapi.Parameter('limit', openapi.IN_QUERY, type=openapi.TYPE_INTEGER, default=DEFAULT_LIMIT),
            openapi.Parameter('offset', openapi.IN_QUERY, type=openapi.TYPE_INTEGER, default=0),
        ],
        responses={200: JobSerializer(many=True)}
    )
    def get(self, request):
        params = request.query_params
        queryset = jobs_visible_to(request.user)
        if params.get('client_id'):
            queryset = queryset.filter(client_id=params['client_id'])
        if params.get('assigned_freelancer_id'):
            queryset = queryset.filter(assigned_freelancer_id=params['assigned_freelancer_id'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('exclude_bids_of'):
            queryset = queryset.exclude(bids__freelancer_id=params['exclude_bids_of'])
        try:
            limit = min(int(params.get('limit', DEFAULT_LIMIT)), MAX_LIMIT)
            offset = max(int(params.get('offset', 0)), 0)
        except ValueError:
            return Response({"error": "limit and offset must be integers"}, status=status.HTTP_400_BAD_REQUEST)
        if limit < 1:
            return Response({"error": "limit must be at least 1"}, status=status.HTTP_400_BAD_REQUEST)
        queryset = queryset.order_by('-created_at', '-id')[offset:offset + limit]
        return Response(JobSerializer(queryset, many=True).data)

    @swagger_auto_schema(
        operation_description=(
            "Post a new job. When pages or slides are given the amount must cover the "
            "minimum price for that size of work."
        ),
        request_body=JobCreateSerializer,
        responses={
            201: JobSerializer,
            400: 'Bad Request or AMOUNT_BELOW_MINIMUM',
            403: 'Forbidden',
            409: 'ORDER_NUMBER_EXISTS'
        }
    )
    def post(self, request):
        if not request.user.is_client:
            return Response({"error": "Only clients can post jobs.", "code": "INVALID_ROLE"},
                            status=status.HTTP_403_FORBIDDEN)
        if not request.user.approved:
            return Response({"error": "Your account is awaiting admin approval.", "code": "ACCOUNT_NOT_APPROVED"},
                            status=status.HTTP_403_FORBIDDEN)
        serializer = JobCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = dict(serializer.validated_data)

        pages = data.get('pages') or 0
        slides = data.get('slides') or 0
        if pages or slides:
            minimum = client_minimum(pages, slides, data['work_type'])
            if data['amount'] < minimum:
                return Response({
                    "error": (
                        f"Amount (KSh {data['amount']}) cannot be less than the required minimum "
                        f"(KSh {minimum}) based on {pages} page(s) and {slides} slide(s)."
                    ),
                    "code": "AMOUNT_BELOW_MINIMUM",
                    "minimum_amount": minimum,
                }, status=status.HTTP_400_BAD_REQUEST)

        order_number = (data.pop('order_number', '') or '').strip().upper() or None
        if order_number and Job.objects.filter(order_number=order_number).exists():
            return Response({"error": f"Order number {order_number} already exists.", "code": "ORDER_NUMBER_EXISTS"},
                            status=status.HTTP_409_CONFLICT)

        now = timezone.now()
        deadline = data['deadline']
        multiplier = urgency_multiplier(deadline, now)
        data['actual_deadline'] = data.get('actual_deadline') or deadline
        data['freelancer_deadline'] = data.get('freelancer_deadline') or deadline
        job = Job(
            client=request.user,
            order_number=order_number,
            urgency_multiplier=multiplier,
            calculated_price=(data['amount'] * multiplier).quantize(CENTS),
            status='pending',
            **data
        )
        save_with_identifiers(job)
        logger.info(f"Job {job.display_id} posted by client {request.user.pk}")

        email_admins(
            f"[Order {job.display_id}] New Job Posted",
            f"{request.user.name} posted \"{job.title}\" ({job.work_type}) for KSh {job.amount}.\n"
            f"Deadline: {job.deadline:%Y-%m-%d %H:%M}\n\n{job_link(job)}"
        )
        notify_admins('new_order', 'New Order Posted',
                      f'Order {job.display_id} "{job.title}" was posted by {request.user.name}.', job=job)
        return Response(JobSerializer(job).data, status=status.HTTP_201_CREATED)


class JobDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: JobSerializer, 404: 'Job not found'})
    def get(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        return Response(JobSerializer(job).data)

    @swagger_auto_schema(request_body=JobUpdateSerializer, responses={200: JobSerializer})
    def patch(self, request, pk):
        try:
            job = Job.objects.get(pk=pk, client=request.user)
        except Job.DoesNotExist:
            return job_not_found()
        serializer = JobUpdateSerializer(job, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(JobSerializer(job).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class JobStatusUpdateView(APIView):
    permission_classes = [IsAuthenticated, IsStaffRole]

    @swagger_auto_schema(
        operation_description="Move a job to another status following the allowed transitions.",
        request_body=JobStatusUpdateSerializer,
        responses={200: JobSerializer, 400: 'INVALID_STATUS / INVALID_TRANSITION', 404: 'JOB_NOT_FOUND'}
    )
    def patch(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        serializer = JobStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            if 'status' in serializer.errors:
                return Response({"error": "Status is required", "code": "MISSING_STATUS"},
                                status=status.HTTP_400_BAD_REQUEST)
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = dict(serializer.validated_data)
        new_status = data.pop('status')
        note = data.pop('note', '')
        try:
            transition_job(job, new_status, changed_by=request.user, note=note, **data)
        except (InvalidStatus, InvalidTransition) as e:
            return transition_error(e)
        if request.user.is_admin_role:
            log_admin_action(request, 'update_job_status', job, details={'status': new_status, 'note': note})
        return Response(JobSerializer(job).data)


class JobStatusHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: JobStatusLogSerializer(many=True)})
    def get(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        logs = job.status_logs.select_related('changed_by')
        return Response(JobStatusLogSerializer(logs, many=True).data)


class JobAcceptView(APIView):
    permission_classes = [IsAuthenticated, IsStaffRole]

    @swagger_auto_schema(operation_description="Accept a pending order so it can be assigned.",
                         responses={200: JobSerializer})
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        if job.status != 'pending':
            return Response({"error": f"Only pending orders can be accepted (current status: {job.status}).",
                             "code": "INVALID_TRANSITION"}, status=status.HTTP_400_BAD_REQUEST)
        fields = {'manager': request.user} if request.user.is_manager else {}
        transition_job(job, 'accepted', changed_by=request.user, note='Order accepted by manager/admin', **fields)
        notify(job.client, 'order_accepted', 'Order Accepted',
               f"Your order {job.display_id} has been accepted and will be assigned to a writer shortly.", job=job)
        if request.user.is_admin_role:
            log_admin_action(request, 'accept_job', job)
        return Response(JobSerializer(job).data)


class JobAssignView(APIView):
    permission_classes = [IsAuthenticated, IsStaffRole]

    @swagger_auto_schema(
        operation_description="Assign a freelancer. Their bid is accepted and all other bids rejected.",
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            required=['freelancer_id'],
            properties={
                'freelancer_id': openapi.Schema(type=openapi.TYPE_INTEGER),
                'freelancer_deadline': openapi.Schema(type=openapi.TYPE_STRING, format='date-time'),
            }
        ),
        responses={200: JobSerializer}
    )
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        freelancer_id = request.data.get('freelancer_id')
        if not freelancer_id:
            return Response({"error": "freelancer_id is required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            freelancer = User.objects.get(pk=freelancer_id, role='freelancer')
        except (User.DoesNotExist, ValueError):
            return Response({"error": "Freelancer not found"}, status=status.HTTP_404_NOT_FOUND)
        if not freelancer.approved or freelancer.status != 'active':
            return Response({"error": "Freelancer account is not active and approved.",
                             "code": "ACCOUNT_NOT_APPROVED"}, status=status.HTTP_400_BAD_REQUEST)

        fields = {'assigned_freelancer': freelancer}
        if request.user.is_manager and job.manager_id is None:
            fields['manager'] = request.user
        if request.data.get('freelancer_deadline'):
            freelancer_deadline = parse_datetime(str(request.data['freelancer_deadline']))
            if freelancer_deadline is None:
                return Response({"error": "freelancer_deadline must be an ISO 8601 datetime"},
                                status=status.HTTP_400_BAD_REQUEST)
            fields['freelancer_deadline'] = freelancer_deadline
        try:
            with transaction.atomic():
                transition_job(job, 'assigned', changed_by=request.user, note='Manager assigned writer',
                               notify_parties=False, **fields)
                job.bids.filter(freelancer=freelancer).update(status='accepted')
                job.bids.exclude(freelancer=freelancer).update(status='rejected')
        except (InvalidStatus, InvalidTransition) as e:
            return transition_error(e)
        job.refresh_from_db()

        credit_manager_fee(job, 'assign', acting=request.user)
        log_admin_action(request, 'assign_job', job, details={'freelancer_id': freelancer.pk})

        email_user(
            freelancer,
            f"[Order {job.display_id}] Assigned to You",
            f"Hello {freelancer.name},\n\nOrder {job.display_id} \"{job.title}\" has been assigned to you.\n"
            f"Deadline: {job.freelancer_deadline or job.deadline:%Y-%m-%d %H:%M}\n\n{job_link(job)}"
        )
        notify(freelancer, 'job_assigned', 'New Order Assigned',
               f"Order {job.display_id} has been assigned to you. Please accept to start.", job=job)
        notify(job.client, 'order_assigned', 'Writer Assigned',
               f"A writer has been assigned to your order {job.display_id}.", job=job)
        notify_admins('order_updated', f"Order {job.display_id} Status Updated",
                      f"{freelancer.name} was assigned to order {job.display_id} by {request.user.name}.", job=job)
        return Response(JobSerializer(job).data)


class JobStartView(APIView):
    permission_classes = [IsAuthenticated, IsFreelancer]

    @swagger_auto_schema(operation_description="Start working on an assigned order.", responses={200: JobSerializer})
    def post(self, request, pk):
        try:
            job = Job.objects.get(pk=pk, assigned_freelancer=request.user)
        except Job.DoesNotExist:
            return job_not_found()
        if job.status not in ('assigned', 'revision'):
            return Response({"error": f"Cannot start work on an order that is {job.status}.",
                             "code": "INVALID_TRANSITION"}, status=status.HTTP_400_BAD_REQUEST)
        transition_job(job, 'in_progress', changed_by=request.user, note='Writer started work')
        return Response(JobSerializer(job).data)


class JobSubmitView(APIView):
    permission_classes = [IsAuthenticated, IsFreelancer]

    @swagger_auto_schema(
        operation_description="Submit finished work for review. A final file must be uploaded first.",
        responses={200: JobSerializer}
    )
    def post(self, request, pk):
        try:
            job = Job.objects.select_related('client').get(pk=pk, assigned_freelancer=request.user)
        except Job.DoesNotExist:
            return job_not_found()
        if job.status not in ('assigned', 'in_progress', 'revision'):
            return Response({"error": f"Cannot submit an order that is {job.status}.",
                             "code": "INVALID_TRANSITION"}, status=status.HTTP_400_BAD_REQUEST)
        if not job.attachments.filter(upload_type='final', deleted_at__isnull=True).exists():
            return Response({"error": "Upload the final file before submitting.", "code": "FINAL_FILE_REQUIRED"},
                            status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic():
            transition_job(job, 'editing', changed_by=request.user, note='Writer submitted work for review',
                           notify_parties=False, revision_requested=False)
            job.revisions.exclude(status='resolved').update(status='resolved')

        message = f"{request.user.name} submitted order {job.display_id} for review."
        notify_admins('order_submitted', 'Order Submitted', message, job=job)
        manager = job.manager or job.client.assigned_manager
        if manager is not None:
            notify(manager, 'order_submitted', 'Order Submitted', message, job=job)
        notify(job.client, 'order_updated', f"Order {job.display_id} Status Updated",
               f'Order "{job.title}": Your work is being reviewed before delivery', job=job)
        return Response(JobSerializer(job).data)


class JobDeliverView(APIView):
    permission_classes = [IsAuthenticated, IsStaffRole]

    @swagger_auto_schema(operation_description="Forward reviewed work to the client.", responses={200: JobSerializer})
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        if job.status != 'editing':
            return Response({"error": f"Only orders in editing can be delivered (current status: {job.status}).",
                             "code": "INVALID_TRANSITION"}, status=status.HTTP_400_BAD_REQUEST)
        fee = manager_submit_fee(job.pages)
        transition_job(job, 'delivered', changed_by=request.user,
                       note=f"Delivered to client. Manager earned KSh {fee}")
        notify(job.client, 'order_delivered', 'Order Delivered',
               f"Your order {job.display_id} has been delivered. Please review the work.", job=job)
        return Response(JobSerializer(job).data)


class JobApproveView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(operation_description="Approve delivered work.", responses={200: JobSerializer})
    def post(self, request, pk):
        try:
            job = Job.objects.get(pk=pk, client=request.user)
        except Job.DoesNotExist:
            return job_not_found()
        try:
            transition_job(job, 'approved', changed_by=request.user, note='Client approved the work')
        except InvalidTransition as e:
            return transition_error(e)
        return Response(JobSerializer(job).data)


class JobRequestRevisionView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            required=['notes'],
            properties={'notes': openapi.Schema(type=openapi.TYPE_STRING)}
        ),
        responses={200: JobSerializer}
    )
    def post(self, request, pk):
        try:
            job = Job.objects.get(pk=pk, client=request.user)
        except Job.DoesNotExist:
            return job_not_found()
        notes = (request.data.get('notes') or '').strip()
        if not notes:
            return Response({"error": "Revision notes are required"}, status=status.HTTP_400_BAD_REQUEST)
        if job.status != 'delivered':
            return Response({"error": "Revisions can only be requested on delivered work.",
                             "code": "INVALID_TRANSITION"}, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic():
            transition_job(job, 'revision', changed_by=request.user, note=notes,
                           revision_requested=True, revision_notes=notes)
            Revision.objects.create(job=job, requested_by=request.user, notes=notes)

        message = f"Revision requested on order {job.display_id}: {notes}"
        if job.assigned_freelancer_id:
            notify(job.assigned_freelancer, 'revision_requested', 'Revision Requested', message, job=job)
        notify_admins('revision_requested', 'Revision Requested', message, job=job)
        return Response(JobSerializer(job).data)


class JobCancelView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Clients may cancel pending orders; admins may cancel any open order.",
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={'reason': openapi.Schema(type=openapi.TYPE_STRING)}
        ),
        responses={200: JobSerializer}
    )
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        user = request.user
        if user.is_admin_role:
            pass
        elif user.pk == job.client_id:
            if job.status != 'pending':
                return Response({"error": "Only pending orders can be cancelled. Contact support.",
                                 "code": "INVALID_TRANSITION"}, status=status.HTTP_400_BAD_REQUEST)
        else:
            return Response({"error": "You cannot cancel this order."}, status=status.HTTP_403_FORBIDDEN)
        reason = (request.data.get('reason') or '').strip()
        try:
            transition_job(job, 'cancelled', changed_by=user, note=reason or 'Order cancelled')
        except InvalidTransition as e:
            return transition_error(e)
        if user.is_admin_role:
            log_admin_action(request, 'cancel_job', job, details={'reason': reason})
        return Response(JobSerializer(job).data)


class JobHoldView(APIView):
    permission_classes = [IsAuthenticated, IsStaffRole]

    @swagger_auto_schema(
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={'reason': openapi.Schema(type=openapi.TYPE_STRING)}
        ),
        responses={200: JobSerializer}
    )
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        reason = (request.data.get('reason') or '').strip()
        try:
            transition_job(job, 'on_hold', changed_by=request.user, note=reason or 'Order put on hold')
        except InvalidTransition as e:
            return transition_error(e)
        return Response(JobSerializer(job).data)


class JobBidsView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: BidSerializer(many=True)})
    def get(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        bids = job.bids.select_related('freelancer', 'job')
        if request.user.is_freelancer:
            bids = bids.filter(freelancer=request.user)
        elif not (request.user.is_admin_role or request.user.is_manager):
            return Response({"error": "Not authorized to view bids"}, status=status.HTTP_403_FORBIDDEN)
        return Response(BidSerializer(bids, many=True).data)

    @swagger_auto_schema(
        request_body=BidSerializer,
        responses={201: BidSerializer, 403: 'INVALID_ROLE / ACCOUNT_NOT_APPROVED', 409: 'DUPLICATE_BID'}
    )
    def post(self, request, pk):
        user = request.user
        if not user.is_freelancer:
            return Response({"error": "Only freelancers can place bids.", "code": "INVALID_ROLE"},
                            status=status.HTTP_403_FORBIDDEN)
        if not user.approved:
            return Response({"error": "Your account must be approved before bidding.",
                             "code": "ACCOUNT_NOT_APPROVED"}, status=status.HTTP_403_FORBIDDEN)
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        if Bid.objects.filter(job=job, freelancer=user).exists():
            return Response({"error": "You have already bid on this job.", "code": "DUPLICATE_BID"},
                            status=status.HTTP_409_CONFLICT)
        serializer = BidSerializer(data=request.data, context={'job': job})
        if serializer.is_valid():
            bid = serializer.save(job=job, freelancer=user)
            message = f"{user.name} bid KSh {bid.bid_amount} on order {job.display_id}."
            notify_admins('new_bid', 'New Bid', message, job=job)
            if job.manager_id:
                notify(job.manager, 'new_bid', 'New Bid', message, job=job)
            return Response(BidSerializer(bid).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class BidListView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter('job_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('freelancer_id', openapi.IN_QUERY, type=openapi.TYPE_INTEGER),
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING),
        ],
        responses={200: BidSerializer(many=True)}
    )
    def get(self, request):
        user = request.user
        if user.is_freelancer:
            bids = Bid.objects.filter(freelancer=user)
        elif user.is_admin_role or user.is_manager:
            bids = Bid.objects.all()
        else:
            return Response({"error": "Not authorized to view bids"}, status=status.HTTP_403_FORBIDDEN)
        params = request.query_params
        if params.get('job_id'):
            bids = bids.filter(job_id=params['job_id'])
        if params.get('freelancer_id'):
            bids = bids.filter(freelancer_id=params['freelancer_id'])
        if params.get('status'):
            bids = bids.filter(status=params['status'])
        return Response(BidSerializer(bids.select_related('freelancer', 'job'), many=True).data)


class BidDetailView(APIView):
    permission_classes = [IsAuthenticated, IsFreelancer]

    def get_bid(self, request, bid_id):
        try:
            return Bid.objects.select_related('job').get(pk=bid_id, freelancer=request.user)
        except Bid.DoesNotExist:
            return None

    @swagger_auto_schema(request_body=BidUpdateSerializer, responses={200: BidSerializer})
    def patch(self, request, bid_id):
        bid = self.get_bid(request, bid_id)
        if bid is None:
            return Response({"error": "Bid not found"}, status=status.HTTP_404_NOT_FOUND)
        serializer = BidUpdateSerializer(bid, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(BidSerializer(bid).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    def delete(self, request, bid_id):
        bid = self.get_bid(request, bid_id)
        if bid is None:
            return Response({"error": "Bid not found"}, status=status.HTTP_404_NOT_FOUND)
        if bid.status != 'pending':
            return Response({"error": "Only pending bids can be withdrawn."}, status=status.HTTP_400_BAD_REQUEST)
        bid.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class JobAttachmentListView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]

    @swagger_auto_schema(responses={200: JobAttachmentSerializer(many=True)})
    def get(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None or not job.is_participant(request.user):
            return job_not_found()
        attachments = job.attachments.filter(deleted_at__isnull=True).select_related('uploaded_by')
        return Response(JobAttachmentSerializer(attachments, many=True).data)

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter('file', openapi.IN_FORM, type=openapi.TYPE_FILE, required=True),
            openapi.Parameter('upload_type', openapi.IN_FORM, type=openapi.TYPE_STRING,
                              enum=['initial', 'draft', 'final', 'revision', 'additional']),
        ],
        consumes=['multipart/form-data'],
        responses={201: JobAttachmentSerializer}
    )
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None or not job.is_participant(request.user):
            return job_not_found()
        serializer = JobAttachmentSerializer(data=request.data)
        if serializer.is_valid():
            attachment = serializer.save(job=job, uploaded_by=request.user)
            logger.info(f"{attachment.upload_type} file uploaded to job {job.display_id} by user {request.user.pk}")
            return Response(JobAttachmentSerializer(attachment).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class JobAttachmentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get_attachment(self, request, attachment_id):
        try:
            attachment = JobAttachment.objects.select_related('job', 'job__client').get(pk=attachment_id)
        except JobAttachment.DoesNotExist:
            return None
        if not attachment.job.is_participant(request.user):
            return None
        return attachment

    def get(self, request, attachment_id):
        """Download the stored file."""
        attachment = self.get_attachment(request, attachment_id)
        if attachment is None:
            return Response({"error": "File not found"}, status=status.HTTP_404_NOT_FOUND)
        if attachment.deleted_at is not None or not attachment.file:
            return Response({"error": "This file has been removed."}, status=status.HTTP_410_GONE)
        return FileResponse(attachment.file.open('rb'), as_attachment=True, filename=attachment.file_name)

    def delete(self, request, attachment_id):
        attachment = self.get_attachment(request, attachment_id)
        if attachment is None:
            return Response({"error": "File not found"}, status=status.HTTP_404_NOT_FOUND)
        if attachment.uploaded_by_id != request.user.pk and not request.user.is_admin_role:
            return Response({"error": "Only the uploader can delete this file."}, status=status.HTTP_403_FORBIDDEN)
        if attachment.file:
            attachment.file.delete(save=False)
        attachment.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class JobRevisionListView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: RevisionSerializer(many=True)})
    def get(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None or not job.is_participant(request.user):
            return job_not_found()
        revisions = job.revisions.select_related('requested_by')
        return Response(RevisionSerializer(revisions, many=True).data)


class RevisionSendView(APIView):
    permission_classes = [IsAuthenticated, IsSuperuser]

    @swagger_auto_schema(operation_description="Forward a client's revision request to the freelancer.",
                         responses={200: RevisionSerializer})
    def post(self, request, revision_id):
        try:
            revision = Revision.objects.select_related('job').get(pk=revision_id)
        except Revision.DoesNotExist:
            return Response({"error": "Revision not found"}, status=status.HTTP_404_NOT_FOUND)
        if revision.status != 'pending':
            return Response({"error": "Revision has already been sent."}, status=status.HTTP_400_BAD_REQUEST)
        revision.mark_as_sent()
        job = revision.job
        if job.assigned_freelancer_id:
            notify(job.assigned_freelancer, 'revision_sent', 'Revision Instructions',
                   f"Revision notes for order {job.display_id}: {revision.notes}", job=job)
        log_admin_action(request, 'send_revision', revision)
        return Response(RevisionSerializer(revision).data)


class JobRateView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            required=['score'],
            properties={
                'score': openapi.Schema(type=openapi.TYPE_INTEGER, minimum=1, maximum=5),
                'comment': openapi.Schema(type=openapi.TYPE_STRING),
            }
        ),
        responses={201: RatingSerializer}
    )
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None:
            return job_not_found()
        serializer = RatingSerializer(data=request.data, context={'job': job, 'request': request})
        if serializer.is_valid():
            rating = serializer.save()
            notify(rating.rated_user, 'new_rating', 'New Rating',
                   f"You received a {rating.score}-star rating on order {job.display_id}.", job=job)
            return Response(RatingSerializer(rating).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class JobMessageListView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: JobMessageSerializer(many=True)})
    def get(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None or not job.is_participant(request.user):
            return job_not_found()
        messages = job.messages.select_related('sender')
        if not request.user.is_admin_role:
            messages = messages.filter(Q(admin_approved=True) | Q(sender=request.user))
        return Response(JobMessageSerializer(messages, many=True).data)

    @swagger_auto_schema(request_body=JobMessageSerializer, responses={201: JobMessageSerializer})
    def post(self, request, pk):
        job = get_visible_job(request, pk)
        if job is None or not job.is_participant(request.user):
            return job_not_found()
        serializer = JobMessageSerializer(data=request.data)
        if serializer.is_valid():
            approved = request.user.is_admin_role
            message = serializer.save(job=job, sender=request.user, admin_approved=approved)
            if not approved:
                notify_admins('message_pending', 'Message Awaiting Approval',
                              f"New message from {request.user.name} on order {job.display_id}.", job=job)
            return Response(JobMessageSerializer(message).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class JobMessageApproveView(APIView):
    permission_classes = [IsAuthenticated, IsSuperuser]

    @swagger_auto_schema(responses={200: JobMessageSerializer})
    def post(self, request, message_id):
        try:
            message = JobMessage.objects.select_related('job').get(pk=message_id)
        except JobMessage.DoesNotExist:
            return Response({"error": "Message not found"}, status=status.HTTP_404_NOT_FOUND)
        message.admin_approved = True
        message.save(update_fields=['admin_approved'])
        job = message.job
        for recipient in (job.client, job.assigned_freelancer):
            if recipient is not None and recipient.pk != message.sender_id:
                notify(recipient, 'new_message', 'New Message',
                       f"You have a new message on order {job.display_id}.", job=job)
        log_admin_action(request, 'approve_message', message)
        return Response(JobMessageSerializer(message).data)
