"""
Money movements: payment confirmation, M-Pesa results, invoices and payouts.
"""
import logging
from datetime import timedelta
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone
from core.pricing import writer_earnings, manager_earnings, admin_profit
from apps.jobs.models import Job
from apps.jobs.transitions import PAYMENT_PATH, InvalidTransition, advance_job
from apps.jobs.utils import job_link
from apps.notifications.utils import notify, email_user
from apps.users.models import next_sequence
from .earnings import credit_manager_fee, credit_user, resolve_fee_manager
from .models import Payment, Invoice, PayoutRequest
from .mpesa import MpesaClient, MpesaError, PENDING_RESULT_CODES

User = get_user_model()
logger = logging.getLogger(__name__)


class PaymentError(Exception):
    code = 'PAYMENT_ERROR'


class InsufficientBalance(PaymentError):
    code = 'INSUFFICIENT_BALANCE'

    def __init__(self, available):
        self.available = available
        super().__init__(f"Insufficient balance. Available: KSh {available}")


class InvalidPayoutState(PaymentError):
    code = 'INVALID_PAYOUT_STATUS'


def generate_invoice_number(now=None):
    now = now or timezone.now()
    prefix = f"INV-{timezone.localtime(now):%Y%m%d}-"
    existing = Invoice.objects.filter(invoice_number__startswith=prefix).values_list('invoice_number', flat=True)
    return f"{prefix}{next_sequence(existing, prefix):05d}"


def parse_callback_metadata(callback):
    """CallbackMetadata.Item list -> {Name: Value}"""
    items = (callback.get('CallbackMetadata') or {}).get('Item') or []
    return {item.get('Name'): item.get('Value') for item in items if isinstance(item, dict)}


def mark_job_paid(job):
    """Record a settled client payment on the job without crediting anyone."""
    if job.payment_confirmed:
        return job
    if job.status in ('delivered', 'approved'):
        return advance_job(job, 'paid', note='M-Pesa payment confirmed')
    job.payment_confirmed = True
    job.paid_order_confirmed_at = timezone.now()
    job.save(update_fields=['payment_confirmed', 'paid_order_confirmed_at', 'updated_at'])
    return job


def apply_stk_result(payment, result_code, result_desc='', metadata=None):
    """
    Resolve a payment from an STK callback or query result.

    Already confirmed or failed payments are returned untouched.
    """
    metadata = metadata or {}
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('job', 'client').get(pk=payment.pk)
        if payment.is_resolved:
            return payment
        if str(result_code) == '0':
            payment.status = 'confirmed'
            payment.confirmed_at = timezone.now()
            payment.mpesa_receipt_number = str(metadata.get('MpesaReceiptNumber') or payment.mpesa_receipt_number)
            payment.mpesa_transaction_date = str(metadata.get('TransactionDate') or payment.mpesa_transaction_date)
            if metadata.get('PhoneNumber'):
                payment.phone_number = str(metadata['PhoneNumber'])
            payment.mpesa_result_desc = result_desc or ''
            payment.save()
            mark_job_paid(payment.job)
        else:
            payment.status = 'failed'
            payment.mpesa_result_desc = result_desc or f"Result code {result_code}"
            payment.save()

    job = payment.job
    if payment.status == 'confirmed':
        logger.info(f"M-Pesa payment {payment.pk} confirmed for job {job.display_id}")
        receipt = f" Receipt: {payment.mpesa_receipt_number}." if payment.mpesa_receipt_number else ''
        notify(payment.client, 'payment_confirmed', 'Payment Received',
               f"Your payment of KSh {payment.amount} for order {job.display_id} was received.{receipt}", job=job)
        if job.assigned_freelancer_id:
            notify(job.assigned_freelancer, 'order_paid', 'Order Paid',
                   f"The client has paid for order {job.display_id}.", job=job)
        email_user(
            payment.client,
            f"[Order {job.display_id}] Payment Received",
            f"Hello {payment.client.name},\n\nWe received your M-Pesa payment of KSh {payment.amount}."
            f"{receipt}\n\n{job_link(job)}"
        )
    else:
        logger.info(f"M-Pesa payment {payment.pk} failed: {payment.mpesa_result_desc}")
        notify(payment.client, 'payment_failed', 'Payment Failed',
               f"Your M-Pesa payment for order {job.display_id} failed: {payment.mpesa_result_desc}", job=job)
    return payment


def initiate_stk_push(payment, phone_number, client=None):
    client = client or MpesaClient()
    job = payment.job
    data = client.stk_push(
        phone_number=phone_number,
        amount=payment.amount,
        account_reference=f"TL-{payment.pk}",
        description=f"Order {job.display_id}",
    )
    payment.mpesa_checkout_request_id = data['CheckoutRequestID']
    payment.mpesa_merchant_request_id = data['MerchantRequestID']
    payment.phone_number = phone_number
    payment.payment_method = 'direct'
    payment.status = 'processing'
    payment.initiated_at = timezone.now()
    payment.mpesa_result_desc = ''
    payment.save()
    return data


def poll_payment(payment, client=None):
    """
    Refresh a processing STK payment from Daraja.

    Returns ``(payment, timed_out)``. ``timed_out`` is True once the payment
    has stayed unresolved past PAYMENT_POLL_TIMEOUT_SECONDS.
    """
    if payment.status == 'processing' and payment.mpesa_checkout_request_id:
        client = client or MpesaClient()
        data = None
        try:
            data = client.stk_query(payment.mpesa_checkout_request_id)
        except MpesaError as e:
            error_code = str((e.payload or {}).get('errorCode', ''))
            if error_code not in PENDING_RESULT_CODES:
                logger.warning(f"STK query for payment {payment.pk} failed: {str(e)}")
        if data is not None:
            result_code = str(data.get('ResultCode', ''))
            if result_code and result_code not in PENDING_RESULT_CODES:
                payment = apply_stk_result(payment, result_code, data.get('ResultDesc', ''))

    timed_out = False
    if not payment.is_resolved and payment.initiated_at is not None:
        deadline = payment.initiated_at + timedelta(seconds=settings.PAYMENT_POLL_TIMEOUT_SECONDS)
        timed_out = timezone.now() > deadline
    return payment, timed_out


def confirm_payment(payment, admin):
    """
    Admin confirmation: finish the order and pay everyone out.

    Returns the Invoice created for the order.
    """
    if payment.confirmed_by_admin:
        raise PaymentError("Payment has already been confirmed.")
    if payment.status == 'failed':
        raise PaymentError("A failed payment cannot be confirmed.")
    job = payment.job
    if job.status not in PAYMENT_PATH:
        raise InvalidTransition(job.status, 'completed')

    now = timezone.now()
    with transaction.atomic():
        job = Job.objects.select_for_update().get(pk=payment.job_id)
        already_paid = Payment.objects.filter(job=job, confirmed_by_admin=True).exclude(pk=payment.pk).exists()
        if already_paid or (job.status == 'completed' and job.freelancer_earnings is not None):
            raise PaymentError(f"Order {job.display_id} has already been paid out.")
        payment.job = job
        payment.status = 'confirmed'
        payment.confirmed_by_admin = True
        payment.confirmed_by = admin
        payment.confirmed_at = payment.confirmed_at or now
        payment.save()

        advance_job(job, 'completed', changed_by=admin, note='Payment confirmed by admin; order completed')

        freelancer = job.assigned_freelancer
        writer_amount = writer_earnings(job.pages, job.slides, job.work_type)
        manager_total = manager_earnings(job.pages, assigned=freelancer is not None)
        profit = admin_profit(payment.amount, writer_amount, manager_total)

        job.payment_confirmed = True
        job.paid_order_confirmed_at = job.paid_order_confirmed_at or now
        job.freelancer_earnings = writer_amount
        job.manager_earnings = manager_total
        job.admin_profit = profit
        job.save(update_fields=[
            'payment_confirmed', 'paid_order_confirmed_at', 'freelancer_earnings',
            'manager_earnings', 'admin_profit', 'updated_at'
        ])

        if freelancer is not None:
            credit_user(freelancer, writer_amount)
            User.objects.filter(pk=freelancer.pk).update(completed_jobs=F('completed_jobs') + 1)
            credit_manager_fee(job, 'assign', acting=admin)
        credit_manager_fee(job, 'submit', acting=admin)
        User.objects.filter(pk=job.client_id).update(total_spent=F('total_spent') + payment.amount)

        invoice = Invoice.objects.create(
            invoice_number=generate_invoice_number(now),
            job=job,
            client=job.client,
            freelancer=freelancer,
            amount=payment.amount,
            freelancer_amount=writer_amount,
            admin_commission=profit,
            description=f"Order {job.display_id}: {job.title}",
        )

    logger.info(
        f"Payment {payment.pk} confirmed for job {job.display_id}: writer {writer_amount}, "
        f"manager {manager_total}, admin {profit}"
    )
    if freelancer is not None:
        notify(freelancer, 'order_completed', 'Order Completed',
               f"Order {job.display_id} is complete. KSh {writer_amount} has been added to your balance.", job=job)
    manager = resolve_fee_manager(job, admin)
    if manager is not None and manager_total > 0:
        notify(manager, 'manager_payout', 'Order Earnings',
               f"Order {job.display_id} is complete. Your earnings for this order: KSh {manager_total}.", job=job)
    notify(job.client, 'payment_confirmed', 'Payment Confirmed',
           f"Your payment of KSh {payment.amount} for order {job.display_id} has been confirmed.", job=job)
    email_user(
        job.client,
        f"[Order {job.display_id}] Payment Confirmed",
        f"Hello {job.client.name},\n\nYour payment of KSh {payment.amount} has been confirmed and your "
        f"order is complete. Invoice: {invoice.invoice_number}\n\n{job_link(job)}"
    )
    return invoice


def reject_payment(payment, admin, reason=''):
    if not payment.can_move_to('failed'):
        raise PaymentError(f"Cannot reject a {payment.status} payment.")
    payment.status = 'failed'
    payment.confirmed_by = admin
    payment.mpesa_result_desc = reason or 'Rejected by admin'
    payment.save()
    notify(payment.client, 'payment_rejected', 'Payment Rejected',
           f"Your payment for order {payment.job.display_id} could not be confirmed. {reason}".strip(),
           job=payment.job)
    return payment


def approve_payout(payout, admin):
    if payout.status != 'pending':
        raise InvalidPayoutState(f"Only pending payout requests can be approved (current: {payout.status}).")
    with transaction.atomic():
        requester = User.objects.select_for_update().get(pk=payout.requester_id)
        if requester.balance < payout.amount:
            raise InsufficientBalance(requester.balance)
        User.objects.filter(pk=requester.pk).update(balance=F('balance') - payout.amount)
        payout.status = 'approved'
        payout.processed_by = admin
        payout.processed_at = timezone.now()
        payout.save()
    notify(payout.requester, 'payout_approved', 'Payout Approved',
           f"Your payout request of KSh {payout.amount} has been approved.")
    return payout


def reject_payout(payout, admin, reason):
    if payout.status != 'pending':
        raise InvalidPayoutState(f"Only pending payout requests can be rejected (current: {payout.status}).")
    payout.status = 'rejected'
    payout.rejection_reason = reason
    payout.processed_by = admin
    payout.processed_at = timezone.now()
    payout.save()
    notify(payout.requester, 'payout_rejected', 'Payout Rejected',
           f"Your payout request of KSh {payout.amount} was rejected: {reason}")
    return payout


def process_payout(payout, admin, transaction_reference):
    if payout.status != 'approved':
        raise InvalidPayoutState(f"Only approved payout requests can be processed (current: {payout.status}).")
    payout.status = 'processed'
    payout.transaction_reference = transaction_reference
    payout.processed_by = admin
    payout.processed_at = timezone.now()
    payout.save()
    notify(payout.requester, 'payout_processed', 'Payout Sent',
           f"KSh {payout.amount} has been sent to you. Reference: {transaction_reference}")
    return payout


def payout_total(user, statuses=('pending',)):
    total = PayoutRequest.objects.filter(requester=user, status__in=statuses).aggregate(total=Sum('amount'))['total']
    return total or 0
