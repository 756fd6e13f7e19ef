from datetime import timedelta
from decimal import Decimal
import pytest
from django.core import mail
from django.utils import timezone
from apps.management.models import AdminAuditLog
from apps.notifications.models import Notification
from apps.payments.models import ManagerEarning, Payment, PayoutRequest
from apps.users.models import User
from .conftest import create_job, create_user

pytestmark = pytest.mark.django_db

USERS_URL = '/management/users/'


def test_only_admins_manage_users(auth, manager):
    assert auth(manager).get(USERS_URL).status_code == 403


def test_list_filters(auth, admin_user, client_user, freelancer):
    pending = create_user('client', approved=False, name='Pending Person')
    api = auth(admin_user)
    response = api.get(USERS_URL, {'role': 'client'})
    assert {row['id'] for row in response.data} == {client_user.pk, pending.pk}

    response = api.get(USERS_URL, {'approved': 'false'})
    assert [row['id'] for row in response.data] == [pending.pk]

    response = api.get(USERS_URL, {'search': 'fred'})
    assert [row['id'] for row in response.data] == [freelancer.pk]


def test_admin_creates_active_account(auth, admin_user):
    response = auth(admin_user).post(USERS_URL, {
        'name': 'Second Admin', 'email': 'Second.Admin@gmail.com', 'phone': '+254722000111',
        'role': 'admin', 'password': 'secret123'
    }, format='json')
    assert response.status_code == 201
    user = User.objects.get(email='second.admin@gmail.com')
    assert user.approved
    assert user.status == 'active'
    assert user.phone == '0722000111'
    assert user.display_id.startswith('ADMN#')
    assert AdminAuditLog.objects.filter(action='create_user', target_id=str(user.pk)).exists()


def test_approve_account(auth, admin_user):
    pending = create_user('freelancer', approved=False)
    response = auth(admin_user).post(f'{USERS_URL}{pending.pk}/approve/')
    assert response.status_code == 200
    pending.refresh_from_db()
    assert pending.approved
    assert pending.status == 'active'
    assert Notification.objects.filter(user=pending, type='account_approved').exists()
    assert len(mail.outbox) == 1
    log = AdminAuditLog.objects.get(action='approve_user')
    assert log.admin == admin_user
    assert log.target_type == 'user'


def test_reject_needs_reason(auth, admin_user):
    pending = create_user('client', approved=False)
    api = auth(admin_user)
    assert api.post(f'{USERS_URL}{pending.pk}/reject/', {}, format='json').status_code == 400

    response = api.post(f'{USERS_URL}{pending.pk}/reject/', {'reason': 'Incomplete details'}, format='json')
    assert response.status_code == 200
    pending.refresh_from_db()
    assert pending.status == 'rejected'
    assert pending.rejection_reason == 'Incomplete details'
    assert pending.rejected_at is not None


def test_suspend_and_unsuspend(auth, admin_user, freelancer):
    api = auth(admin_user)
    response = api.post(f'{USERS_URL}{freelancer.pk}/suspend/', {'duration_days': 0, 'reason': 'x'}, format='json')
    assert response.status_code == 400

    response = api.post(f'{USERS_URL}{freelancer.pk}/suspend/', {'duration_days': 3, 'reason': 'Late work'},
                        format='json')
    assert response.status_code == 200
    freelancer.refresh_from_db()
    assert freelancer.status == 'suspended'
    assert freelancer.suspended_until > timezone.now() + timedelta(days=2)
    assert Notification.objects.filter(user=freelancer, type='account_suspended').exists()

    response = api.post(f'{USERS_URL}{freelancer.pk}/unsuspend/')
    assert response.status_code == 200
    freelancer.refresh_from_db()
    assert freelancer.status == 'active'
    assert freelancer.suspended_until is None
    assert api.post(f'{USERS_URL}{freelancer.pk}/unsuspend/').status_code == 400


def test_admin_cannot_block_self(auth, admin_user):
    api = auth(admin_user)
    response = api.post(f'{USERS_URL}{admin_user.pk}/suspend/', {'duration_days': 1, 'reason': 'x'}, format='json')
    assert response.status_code == 400
    response = api.post(f'{USERS_URL}{admin_user.pk}/blacklist/', {'reason': 'x'}, format='json')
    assert response.status_code == 400


def test_blacklist(auth, admin_user, client_user):
    response = auth(admin_user).post(f'{USERS_URL}{client_user.pk}/blacklist/', {'reason': 'Fraud'}, format='json')
    assert response.status_code == 200
    client_user.refresh_from_db()
    assert client_user.status == 'blacklisted'
    assert client_user.blacklist_reason == 'Fraud'


def test_assign_manager(auth, admin_user, manager, freelancer, client_user):
    api = auth(admin_user)
    response = api.post(f'{USERS_URL}{freelancer.pk}/assign-manager/', {'manager_id': manager.pk}, format='json')
    assert response.status_code == 200
    freelancer.refresh_from_db()
    assert freelancer.assigned_manager == manager
    assert Notification.objects.filter(user=manager, type='manager_assigned').exists()

    response = api.post(f'{USERS_URL}{freelancer.pk}/assign-manager/', {'manager_id': client_user.pk},
                        format='json')
    assert response.status_code == 400

    response = api.post(f'{USERS_URL}{manager.pk}/assign-manager/', {'manager_id': manager.pk}, format='json')
    assert response.status_code == 400

    response = api.post(f'{USERS_URL}{freelancer.pk}/assign-manager/', {'manager_id': None}, format='json')
    assert response.status_code == 200
    freelancer.refresh_from_db()
    assert freelancer.assigned_manager is None


def test_audit_log_filters(auth, admin_user, client_user, freelancer):
    api = auth(admin_user)
    api.post(f'{USERS_URL}{client_user.pk}/blacklist/', {'reason': 'Fraud'}, format='json')
    api.post(f'{USERS_URL}{freelancer.pk}/suspend/', {'duration_days': 1, 'reason': 'Late'}, format='json')

    response = api.get('/management/audit-logs/', {'action': 'blacklist_user'})
    assert len(response.data) == 1
    assert response.data[0]['target_id'] == str(client_user.pk)
    assert response.data[0]['details'] == {'reason': 'Fraud'}

    response = api.get('/management/audit-logs/', {'target_type': 'user'})
    assert len(response.data) == 2


def test_analytics(auth, admin_user, client_user, freelancer):
    job = create_job(client_user, status='completed', payment_confirmed=True, assigned_freelancer=freelancer,
                     freelancer_earnings=Decimal('400.00'), admin_profit=Decimal('575.00'))
    create_job(client_user)
    Payment.objects.create(job=job, client=client_user, amount=Decimal('1000.00'), payment_method='pochi',
                           status='confirmed')
    PayoutRequest.objects.create(requester=freelancer, amount=Decimal('100.00'), method='mpesa')
    create_user('client', approved=False)

    response = auth(admin_user).get('/management/analytics/')
    assert response.status_code == 200
    assert response.data['users']['by_role']['client'] == 2
    assert response.data['users']['pending_approval'] == 1
    assert response.data['jobs']['by_status'] == {'completed': 1, 'pending': 1}
    financial = response.data['financial']
    assert Decimal(financial['confirmed_revenue']) == Decimal('1000.00')
    assert Decimal(financial['writer_earnings']) == Decimal('400.00')
    assert Decimal(financial['admin_profit']) == Decimal('575.00')
    assert Decimal(financial['pending_payouts']) == Decimal('100.00')


def test_manager_dashboard(auth, manager, client_user, freelancer):
    client_user.assigned_manager = manager
    client_user.save(update_fields=['assigned_manager'])
    handled = create_job(client_user, status='delivered', manager=manager)
    create_job(create_user('client'))
    ManagerEarning.objects.create(manager=manager, job=handled, earning_type='submit', amount=Decimal('15.00'))

    response = auth(manager).get('/management/manager/dashboard/')
    assert response.status_code == 200
    assert [row['id'] for row in response.data['clients']] == [client_user.pk]
    assert response.data['writers'] == []
    assert [row['id'] for row in response.data['orders']] == [handled.pk]
    assert response.data['order_counts'] == {'delivered': 1}
    assert Decimal(response.data['earnings']['submit_fees']) == Decimal('15.00')
    assert Decimal(response.data['earnings']['assign_fees']) == Decimal('0')


def test_dashboard_is_for_managers(auth, freelancer):
    assert auth(freelancer).get('/management/manager/dashboard/').status_code == 403
