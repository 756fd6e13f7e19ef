from datetime import datetime
import pytest
from django.utils import timezone
from apps.jobs.models import Job
from apps.jobs.utils import generate_job_display_id, generate_order_number, order_number_prefix
from apps.payments.services import generate_invoice_number
from apps.users.models import next_sequence
from .conftest import create_user, create_job


def test_next_sequence_ignores_foreign_values():
    assert next_sequence([], 'CLT#') == 1
    assert next_sequence(['CLT#0000004', 'CLT#0000012', 'FRL#00000099', None, 'CLT#abc'], 'CLT#') == 13


@pytest.mark.django_db
def test_user_display_ids_follow_role_format():
    first = create_user('client')
    second = create_user('client')
    writer = create_user('freelancer')
    admin = create_user('admin')
    assert first.display_id == 'CLT#0000001'
    assert second.display_id == 'CLT#0000002'
    assert writer.display_id == 'FRL#00000001'
    assert admin.display_id == 'ADMN#0001'


@pytest.mark.django_db
def test_job_display_id_restarts_each_year(client_user):
    now = timezone.make_aware(datetime(2025, 3, 1, 12, 0))
    assert generate_job_display_id(now) == '#25000001'
    Job.objects.create(client=client_user, title='x', instructions='y', work_type='Essay', amount=500,
                       deadline=now, display_id='#25000041')
    assert generate_job_display_id(now) == '#25000042'
    assert generate_job_display_id(timezone.make_aware(datetime(2026, 1, 1))) == '#26000001'


@pytest.mark.django_db
def test_order_numbers_use_client_first_name():
    client = create_user('client', name="O'Neil Kamau")
    assert order_number_prefix(client) == 'ONE'
    assert generate_order_number(client) == 'ONE0001'
    create_job(client)
    assert generate_order_number(client) == 'ONE0002'

    nameless = create_user('client', name='   ')
    assert order_number_prefix(nameless) == 'CLT'


@pytest.mark.django_db
def test_supplied_order_number_is_kept(client_user):
    job = create_job(client_user, order_number='ABC123')
    assert job.order_number == 'ABC123'
    assert job.display_id.startswith('#')


@pytest.mark.django_db
def test_invoice_number_format():
    now = timezone.make_aware(datetime(2025, 6, 30, 10, 0))
    assert generate_invoice_number(now) == 'INV-20250630-00001'
