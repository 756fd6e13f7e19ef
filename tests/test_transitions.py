from decimal import Decimal
import pytest
from apps.jobs.models import JobStatusLog
from apps.jobs.transitions import (
    ALLOWED_TRANSITIONS, InvalidStatus, InvalidTransition, advance_job, can_transition, transition_job
)
from apps.notifications.models import Notification
from apps.payments.earnings import resolve_fee_manager
from apps.payments.models import ManagerEarning
from .conftest import create_job, create_user

pytestmark = pytest.mark.django_db


def test_terminal_statuses_have_no_exits():
    assert ALLOWED_TRANSITIONS['completed'] == ()
    assert ALLOWED_TRANSITIONS['cancelled'] == ()
    assert ALLOWED_TRANSITIONS['paid'] == ('completed',)


def test_can_transition():
    assert can_transition('pending', 'accepted')
    assert can_transition('pending', 'pending')
    assert not can_transition('pending', 'delivered')
    assert not can_transition('completed', 'pending')


def test_transition_writes_log_and_notifies(job, admin_user):
    transition_job(job, 'accepted', changed_by=admin_user, note='ok')
    job.refresh_from_db()
    assert job.status == 'accepted'
    assert job.admin_approved is True
    log = JobStatusLog.objects.get(job=job)
    assert (log.old_status, log.new_status, log.changed_by) == ('pending', 'accepted', admin_user)
    assert Notification.objects.filter(user=job.client, type='order_updated').exists()


def test_invalid_transition_is_rejected(job):
    with pytest.raises(InvalidTransition) as excinfo:
        transition_job(job, 'delivered')
    assert excinfo.value.code == 'INVALID_TRANSITION'
    assert 'accepted' in excinfo.value.allowed
    job.refresh_from_db()
    assert job.status == 'pending'
    assert not JobStatusLog.objects.filter(job=job).exists()


def test_unknown_status_is_rejected(job):
    with pytest.raises(InvalidStatus):
        transition_job(job, 'archived')


def test_same_status_only_saves_fields(job):
    transition_job(job, 'pending', revision_notes='x')
    job.refresh_from_db()
    assert job.revision_notes == 'x'
    assert not JobStatusLog.objects.filter(job=job).exists()


def test_delivery_credits_submit_fee_once(client_user, freelancer, manager):
    job = create_job(client_user, status='editing', pages=3, assigned_freelancer=freelancer, manager=manager)
    transition_job(job, 'delivered', changed_by=manager)
    manager.refresh_from_db()
    assert manager.balance == Decimal('20.00')
    assert ManagerEarning.objects.get(job=job).earning_type == 'submit'

    transition_job(job, 'revision')
    transition_job(job, 'editing')
    transition_job(job, 'delivered', changed_by=manager)
    manager.refresh_from_db()
    assert manager.balance == Decimal('20.00')
    assert ManagerEarning.objects.filter(job=job).count() == 1


def test_fee_manager_order(client_user, freelancer, manager):
    writers_manager = create_user('manager')
    clients_manager = create_user('manager')
    acting = create_user('manager')
    job = create_job(client_user, status='editing', assigned_freelancer=freelancer, manager=manager)
    assert resolve_fee_manager(job, acting) == manager

    client_user.assigned_manager = clients_manager
    client_user.save(update_fields=['assigned_manager'])
    assert resolve_fee_manager(job, acting) == clients_manager

    freelancer.assigned_manager = writers_manager
    freelancer.save(update_fields=['assigned_manager'])
    assert resolve_fee_manager(job, acting) == writers_manager

    unhandled = create_job(create_user('client'), status='editing')
    assert resolve_fee_manager(unhandled, acting) == acting
    assert resolve_fee_manager(unhandled, create_user('admin')) is None


def test_delivery_fee_goes_to_handling_manager(client_user, freelancer, manager):
    stand_in = create_user('manager')
    job = create_job(client_user, status='editing', assigned_freelancer=freelancer, manager=manager)
    transition_job(job, 'delivered', changed_by=stand_in)
    assert ManagerEarning.objects.get(job=job).manager == manager
    stand_in.refresh_from_db()
    assert stand_in.balance == Decimal('0.00')


def test_advance_job_walks_payment_path(delivered_job, admin_user):
    advance_job(delivered_job, 'completed', changed_by=admin_user)
    delivered_job.refresh_from_db()
    assert delivered_job.status == 'completed'
    assert delivered_job.client_approved
    assert delivered_job.payment_confirmed
    steps = list(JobStatusLog.objects.filter(job=delivered_job).order_by('id').values_list('new_status', flat=True))
    assert steps == ['approved', 'paid', 'completed']


def test_advance_job_requires_payment_path(job):
    with pytest.raises(InvalidTransition):
        advance_job(job, 'paid')
