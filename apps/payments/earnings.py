import logging
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from core.pricing import MANAGER_ASSIGN_FEE, manager_submit_fee
from apps.notifications.utils import notify
from .models import ManagerEarning

logger = logging.getLogger(__name__)
User = get_user_model()

FEE_NOTIFICATIONS = {
    'assign': (
        'manager_assignment_fee',
        'Assignment Fee Credited',
        "You earned KSh {amount} for assigning order {display_id} to a writer.",
    ),
    'submit': (
        'manager_submission_fee',
        'Submission Fee Credited',
        "You earned KSh {amount} for forwarding order {display_id} to the client.",
    ),
}


def resolve_fee_manager(job, acting=None):
    """Writer's manager, else the client's manager, else the job's manager, else the acting manager."""
    freelancer = job.assigned_freelancer
    if freelancer is not None and freelancer.assigned_manager_id:
        return freelancer.assigned_manager
    if job.client.assigned_manager_id:
        return job.client.assigned_manager
    if job.manager_id:
        return job.manager
    if acting is not None and acting.is_authenticated and acting.is_manager:
        return acting
    return None


def fee_amount(job, earning_type):
    if earning_type == 'assign':
        return MANAGER_ASSIGN_FEE
    return manager_submit_fee(job.pages)


def credit_user(user, amount):
    User.objects.filter(pk=user.pk).update(balance=F('balance') + amount, total_earned=F('total_earned') + amount)


def credit_manager_fee(job, earning_type, acting=None):
    """
    Credit the assign or submit fee for ``job`` once.

    Returns the new ManagerEarning, or None when no manager is attached, the
    fee is zero, or the fee was already credited.
    """
    manager = resolve_fee_manager(job, acting)
    if manager is None:
        logger.info(f"No manager to credit {earning_type} fee for job {job.display_id}")
        return None
    amount = fee_amount(job, earning_type)
    if amount <= 0:
        return None
    with transaction.atomic():
        earning, created = ManagerEarning.objects.get_or_create(
            job=job, earning_type=earning_type,
            defaults={'manager': manager, 'amount': amount}
        )
        if not created:
            return None
        credit_user(manager, amount)
    notification_type, title, message = FEE_NOTIFICATIONS[earning_type]
    notify(manager, notification_type, title, message.format(amount=amount, display_id=job.display_id), job=job)
    logger.info(f"Credited {earning_type} fee {amount} to manager {manager.pk} for job {job.display_id}")
    return earning
