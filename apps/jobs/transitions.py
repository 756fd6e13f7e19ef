"""
Job status machine.

Every status change goes through ``transition_job`` so that the allowed
moves, the side effects tied to entering a status, the status log and the
notifications stay in one place.
"""
import logging
from django.db import transaction
from django.utils import timezone
from apps.notifications.utils import notify, notify_admins, email_user
from apps.payments.earnings import credit_manager_fee
from .models import JobStatusLog
from .utils import schedule_file_deletion, job_link

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    'pending': ('accepted', 'cancelled', 'on_hold'),
    'accepted': ('assigned', 'cancelled', 'on_hold'),
    'approved': ('paid', 'cancelled'),
    'assigned': ('in_progress', 'editing', 'cancelled', 'on_hold'),
    'in_progress': ('editing', 'delivered', 'cancelled', 'on_hold'),
    'editing': ('delivered', 'cancelled', 'on_hold'),
    'delivered': ('approved', 'revision', 'completed', 'cancelled', 'on_hold'),
    'revision': ('in_progress', 'editing', 'cancelled', 'on_hold'),
    'revision_pending': ('in_progress', 'cancelled', 'on_hold'),
    'on_hold': ('accepted', 'approved', 'assigned', 'in_progress', 'cancelled'),
    'paid': ('completed',),
    'completed': (),
    'cancelled': (),
}

VALID_STATUSES = frozenset(ALLOWED_TRANSITIONS)

# Route from delivered work to a finished order
PAYMENT_PATH = ('delivered', 'approved', 'paid', 'completed')

STATUS_MESSAGES = {
    'delivered': 'Work has been delivered and is ready for review',
    'accepted': 'Admin/Manager accepted the order - now ready for writer assignment',
    'approved': 'Client approved the delivered work',
    'paid': 'Payment has been confirmed for this order',
    'completed': 'Order has been completed successfully',
    'revision': 'Revision has been requested',
    'cancelled': 'Order has been cancelled',
    'in_progress': 'Work is now in progress',
    'assigned': 'Order has been assigned to a freelancer',
    'on_hold': 'Order has been put on hold',
}

CLIENT_EMAIL_STATUSES = ('paid', 'completed', 'cancelled', 'on_hold')


class InvalidStatus(ValueError):
    code = 'INVALID_STATUS'

    def __init__(self, status):
        self.status = status
        super().__init__(f"Invalid status '{status}'. Valid statuses: {', '.join(sorted(VALID_STATUSES))}")


class InvalidTransition(Exception):
    code = 'INVALID_TRANSITION'

    def __init__(self, current, target):
        self.current = current
        self.target = target
        self.allowed = ALLOWED_TRANSITIONS.get(current, ())
        allowed = ', '.join(self.allowed) if self.allowed else 'none'
        super().__init__(
            f"Invalid status transition from '{current}' to '{target}'. Allowed transitions: {allowed}"
        )


def can_transition(current, target):
    return target == current or target in ALLOWED_TRANSITIONS.get(current, ())


def status_message(old_status, new_status):
    return STATUS_MESSAGES.get(new_status, f"Status changed from {old_status} to {new_status}")


def transition_job(job, new_status, changed_by=None, note='', notify_parties=True, **fields):
    """
    Move ``job`` to ``new_status`` and run the side effects of entering it.

    Extra keyword arguments are written onto the job in the same save.
    Re-applying the current status only saves those fields.
    """
    if new_status not in VALID_STATUSES:
        raise InvalidStatus(new_status)
    old_status = job.status

    if new_status == old_status:
        if fields:
            for name, value in fields.items():
                setattr(job, name, value)
            job.save()
        return job

    if new_status not in ALLOWED_TRANSITIONS.get(old_status, ()):
        raise InvalidTransition(old_status, new_status)

    now = timezone.now()
    with transaction.atomic():
        job.status = new_status
        for name, value in fields.items():
            setattr(job, name, value)
        if new_status == 'accepted':
            job.admin_approved = True
        elif new_status == 'approved':
            if 'client_approved' not in fields:
                job.client_approved = True
            job.approved_by_client_at = now
        elif new_status == 'paid':
            job.payment_confirmed = True
            job.paid_order_confirmed_at = now
        job.save()

        JobStatusLog.objects.create(
            job=job,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by if changed_by is not None and changed_by.is_authenticated else None,
            note=note or '',
        )

        if new_status == 'delivered':
            credit_manager_fee(job, 'submit', acting=changed_by)
        elif new_status == 'completed':
            schedule_file_deletion(job, now)

    logger.info(f"Job {job.display_id} moved from {old_status} to {new_status}")
    if notify_parties:
        notify_status_change(job, old_status, new_status)
    return job


def advance_job(job, target, changed_by=None, note=''):
    """
    Walk ``job`` along PAYMENT_PATH up to ``target``, running each step's
    side effects. Jobs already at or past ``target`` are left alone.
    """
    if target not in PAYMENT_PATH:
        raise InvalidStatus(target)
    if job.status not in PAYMENT_PATH:
        raise InvalidTransition(job.status, target)
    start = PAYMENT_PATH.index(job.status)
    end = PAYMENT_PATH.index(target)
    for step in PAYMENT_PATH[start + 1:end + 1]:
        transition_job(job, step, changed_by=changed_by, note=note)
    return job


def notify_status_change(job, old_status, new_status):
    title = f"Order {job.display_id} Status Updated"
    message = f'Order "{job.title}": {status_message(old_status, new_status)}'
    notify(job.client, 'order_updated', title, message, job=job)
    if job.assigned_freelancer_id:
        notify(job.assigned_freelancer, 'order_updated', title, message, job=job)
    notify_admins('order_updated', title, message, job=job)

    if new_status == 'delivered':
        email_user(
            job.client,
            f"[Order {job.display_id}] Work Delivered",
            f"Hello {job.client.name},\n\nThe work for your order \"{job.title}\" has been delivered "
            f"and is ready for your review.\n\nView it here: {job_link(job)}\n\nTaskLynk"
        )
    elif new_status in CLIENT_EMAIL_STATUSES:
        email_user(
            job.client,
            f"[Order {job.display_id}] {status_message(old_status, new_status)}",
            f"Hello {job.client.name},\n\n{message}.\n\nView your order: {job_link(job)}\n\nTaskLynk"
        )
