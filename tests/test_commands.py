import os
from datetime import timedelta
from decimal import Decimal
from io import StringIO
import pytest
from django.core import mail
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.utils import timezone
from apps.jobs.models import JobAttachment
from apps.notifications.models import Notification
from apps.payments.models import PayoutRequest
from apps.users.models import User
from .conftest import create_job, create_user

pytestmark = pytest.mark.django_db


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


def test_cleanup_files_removes_due_files_only(job, client_user):
    due = JobAttachment.objects.create(
        job=job, uploaded_by=client_user, file=SimpleUploadedFile('old.pdf', b'old'), file_name='old.pdf',
        scheduled_deletion_at=timezone.now() - timedelta(hours=1)
    )
    later = JobAttachment.objects.create(
        job=job, uploaded_by=client_user, file=SimpleUploadedFile('new.pdf', b'new'), file_name='new.pdf',
        scheduled_deletion_at=timezone.now() + timedelta(days=3)
    )
    path = due.file.path

    output = run('cleanup_files')
    assert 'Deleted 1 file(s)' in output
    assert not os.path.exists(path)
    due.refresh_from_db()
    assert due.deleted_at is not None
    assert not due.file
    later.refresh_from_db()
    assert later.deleted_at is None
    assert os.path.exists(later.file.path)

    assert 'Deleted 0 file(s)' in run('cleanup_files')


def test_deadline_reminders(client_user, freelancer, admin_user):
    soon = timezone.now() + timedelta(hours=4, minutes=2)
    assigned = create_job(client_user, status='in_progress', assigned_freelancer=freelancer,
                          deadline=soon, actual_deadline=soon)
    unassigned = create_job(client_user, deadline=soon, actual_deadline=soon)
    far = timezone.now() + timedelta(days=2)
    create_job(client_user, status='assigned', assigned_freelancer=freelancer, deadline=far, actual_deadline=far)

    output = run('deadline_reminders')
    assert 'Sent 2 reminder(s)' in output
    assert Notification.objects.filter(user=freelancer, type='deadline_reminder', job=assigned).count() == 1
    assert Notification.objects.filter(user=admin_user, type='deadline_reminder', job=unassigned).exists()
    subjects = {m.subject for m in mail.outbox}
    assert f"[Order {assigned.display_id}] Deadline Reminder" in subjects
    assert f"[Order {unassigned.display_id}] Deadline Reminder" in subjects


def test_recalculate_balances(client_user):
    writer = create_user('freelancer', balance=Decimal('999.00'))
    create_job(client_user, status='completed', payment_confirmed=True, assigned_freelancer=writer, pages=3)
    create_job(client_user, status='completed', payment_confirmed=False, assigned_freelancer=writer, pages=5)
    PayoutRequest.objects.create(requester=writer, amount=Decimal('100.00'), method='mpesa', status='processed')
    PayoutRequest.objects.create(requester=writer, amount=Decimal('50.00'), method='mpesa', status='rejected')

    output = run('recalculate_balances', '--dry-run')
    assert '999.00 -> 500.00' in output
    assert 'Would update 1 balance(s)' in output
    assert User.objects.get(pk=writer.pk).balance == Decimal('999.00')

    run('recalculate_balances')
    assert User.objects.get(pk=writer.pk).balance == Decimal('500.00')
    assert 'Updated 0 balance(s)' in run('recalculate_balances')
