from datetime import timedelta
from decimal import Decimal
import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient
from apps.jobs.models import Job
from apps.jobs.utils import save_with_identifiers

User = get_user_model()

PHONES = iter(f"07{n:08d}" for n in range(10000000, 99999999))


@pytest.fixture(autouse=True)
def isolated_settings(settings, tmp_path):
    settings.TWILIO_ACCOUNT_SID = ''
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    settings.MPESA_CONSUMER_KEY = 'key'
    settings.MPESA_CONSUMER_SECRET = 'secret'
    settings.MPESA_PASSKEY = 'passkey'
    settings.MPESA_SHORTCODE = '174379'
    settings.MPESA_WEBHOOK_SECRET = 'hook-secret'
    cache.clear()
    yield settings
    cache.clear()


def create_user(role, name=None, approved=True, **extra):
    name = name or f"Test {role.title()}"
    email = extra.pop('email', f"{role}.{next(PHONES)}@gmail.com")
    defaults = {
        'phone': next(PHONES),
        'status': 'active' if approved else 'pending',
        'email_verified': True,
    }
    defaults.update(extra)
    return User.objects.create_user(
        username=email,
        email=email,
        password='password123',
        name=name,
        role=role,
        approved=approved,
        **defaults
    )


def create_job(client, status='pending', pages=2, slides=0, work_type='Essay', amount='1000.00', **extra):
    job = Job(
        client=client,
        title=extra.pop('title', 'Test order'),
        instructions='Write it well.',
        work_type=work_type,
        pages=pages,
        slides=slides,
        amount=Decimal(amount),
        deadline=extra.pop('deadline', timezone.now() + timedelta(days=3)),
        status=status,
        **extra
    )
    save_with_identifiers(job)
    return job


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_user(db):
    return create_user('admin', name='Alice Admin')


@pytest.fixture
def manager(db):
    return create_user('manager', name='Mark Manager')


@pytest.fixture
def client_user(db):
    return create_user('client', name='Carol Client')


@pytest.fixture
def freelancer(db):
    return create_user('freelancer', name='Fred Writer')


@pytest.fixture
def auth(api_client):
    """Log the shared APIClient in as the given user."""
    def _auth(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _auth


@pytest.fixture
def job(client_user):
    return create_job(client_user)


@pytest.fixture
def delivered_job(client_user, freelancer, manager):
    return create_job(client_user, status='delivered', assigned_freelancer=freelancer, manager=manager)
