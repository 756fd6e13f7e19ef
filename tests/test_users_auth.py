from datetime import timedelta
import pytest
from django.core import mail
from django.utils import timezone
from apps.notifications.models import Notification
from apps.users.models import User, VerificationToken
from .conftest import create_user

pytestmark = pytest.mark.django_db

REGISTER_URL = '/users/auth/register/'
LOGIN_URL = '/users/auth/login/'


def register_payload(**overrides):
    payload = {
        'name': 'Jane Wanjiku',
        'email': 'jane@gmail.com',
        'phone': '+254712345678',
        'password': 'secret123',
        'role': 'client',
    }
    payload.update(overrides)
    return payload


def login(api_client, email, password='password123'):
    return api_client.post(LOGIN_URL, {'email': email, 'password': password}, format='json')


def test_register_creates_pending_account_and_sends_code(api_client, admin_user):
    response = api_client.post(REGISTER_URL, register_payload(), format='json')
    assert response.status_code == 201
    user = User.objects.get(email='jane@gmail.com')
    assert user.status == 'pending'
    assert not user.approved
    assert not user.email_verified
    assert user.phone == '0712345678'
    assert user.display_id.startswith('CLT#')
    assert VerificationToken.objects.filter(user=user, purpose='email_verification').exists()
    assert len(mail.outbox) == 1
    assert Notification.objects.filter(user=admin_user, type='new_registration').exists()


@pytest.mark.parametrize('overrides', [
    {'role': 'admin'},
    {'email': 'jane@company.com'},
    {'phone': '0812345678'},
    {'password': '123'},
])
def test_register_rejects_invalid_input(api_client, overrides):
    response = api_client.post(REGISTER_URL, register_payload(**overrides), format='json')
    assert response.status_code == 400


def test_register_rejects_duplicate_email(api_client):
    create_user('client', email='jane@gmail.com')
    response = api_client.post(REGISTER_URL, register_payload(), format='json')
    assert response.status_code == 400
    assert 'email' in response.data


def test_email_must_be_verified_before_login(api_client):
    api_client.post(REGISTER_URL, register_payload(), format='json')
    response = login(api_client, 'jane@gmail.com', 'secret123')
    assert response.status_code == 403
    assert response.data['code'] == 'EMAIL_NOT_VERIFIED'

    code = VerificationToken.objects.get(user__email='jane@gmail.com').code
    response = api_client.post('/users/auth/verify-email/', {'email': 'jane@gmail.com', 'code': code}, format='json')
    assert response.status_code == 200

    response = login(api_client, 'jane@gmail.com', 'secret123')
    assert response.status_code == 200
    assert response.data['token']
    user = User.objects.get(email='jane@gmail.com')
    assert user.login_count == 1
    assert user.last_login_at is not None


def test_wrong_verification_code(api_client):
    api_client.post(REGISTER_URL, register_payload(), format='json')
    response = api_client.post('/users/auth/verify-email/', {'email': 'jane@gmail.com', 'code': '000000'},
                               format='json')
    assert response.status_code == 400
    assert not User.objects.get(email='jane@gmail.com').email_verified


def test_login_with_bad_password(api_client, client_user):
    response = login(api_client, client_user.email, 'nope')
    assert response.status_code == 400


@pytest.mark.parametrize('status_value,code', [
    ('rejected', 'ACCOUNT_REJECTED'),
    ('blacklisted', 'ACCOUNT_BLACKLISTED'),
])
def test_blocked_accounts_cannot_login(api_client, status_value, code):
    user = create_user('freelancer', status=status_value)
    response = login(api_client, user.email)
    assert response.status_code == 403
    assert response.data['code'] == code


def test_active_suspension_blocks_login(api_client):
    user = create_user('freelancer', status='suspended', suspended_until=timezone.now() + timedelta(days=2),
                       suspension_reason='Late delivery')
    response = login(api_client, user.email)
    assert response.status_code == 403
    assert response.data['code'] == 'ACCOUNT_SUSPENDED'
    assert response.data['reason'] == 'Late delivery'


def test_expired_suspension_is_lifted_on_login(api_client):
    user = create_user('freelancer', status='suspended', suspended_until=timezone.now() - timedelta(hours=1))
    response = login(api_client, user.email)
    assert response.status_code == 200
    user.refresh_from_db()
    assert user.status == 'active'
    assert user.suspended_until is None


def test_password_reset_flow(api_client, client_user):
    response = api_client.post('/users/auth/password/forgot/', {'email': client_user.email}, format='json')
    assert response.status_code == 200
    code = VerificationToken.objects.get(user=client_user, purpose='password_reset').code
    response = api_client.post('/users/auth/password/reset/', {
        'email': client_user.email, 'code': code, 'new_password': 'brandnew1'
    }, format='json')
    assert response.status_code == 200
    assert login(api_client, client_user.email, 'brandnew1').status_code == 200


def test_profile_update_validates_phone(auth, client_user):
    api = auth(client_user)
    response = api.patch('/users/profile/', {'phone': '12345'}, format='json')
    assert response.status_code == 400
    response = api.patch('/users/profile/', {'name': 'Carol K'}, format='json')
    assert response.status_code == 200
    assert response.data['name'] == 'Carol K'
