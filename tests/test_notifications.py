from unittest.mock import MagicMock
import pytest
from django.core import mail
from twilio.base.exceptions import TwilioRestException
from apps.notifications.models import Notification
from apps.notifications.utils import notify, notify_admins, send_notification, to_international
from .conftest import create_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def inbox(client_user):
    older = notify(client_user, 'order_updated', 'Order Updated', 'Status changed')
    newer = notify(client_user, 'payment_confirmed', 'Payment Received', 'Thanks')
    notify(create_user('client'), 'order_updated', 'Other', 'Not yours')
    return older, newer


def test_list_is_newest_first_and_scoped(auth, client_user, inbox):
    older, newer = inbox
    response = auth(client_user).get('/notifications/')
    assert [row['id'] for row in response.data] == [newer.pk, older.pk]


def test_unread_filter_and_count(auth, client_user, inbox):
    older, _ = inbox
    older.mark_as_read()
    api = auth(client_user)
    response = api.get('/notifications/', {'unread': 'true'})
    assert len(response.data) == 1
    assert api.get('/notifications/unread-count/').data == {'unread_count': 1}


def test_mark_one_and_all_read(auth, client_user, inbox):
    older, _ = inbox
    api = auth(client_user)
    response = api.patch(f'/notifications/{older.pk}/', {'read': True}, format='json')
    assert response.status_code == 200
    older.refresh_from_db()
    assert older.read

    response = api.post('/notifications/mark-all-read/')
    assert response.data == {'updated': 1}
    assert not Notification.objects.filter(user=client_user, read=False).exists()


def test_cannot_touch_other_users_notifications(auth, freelancer, inbox):
    older, _ = inbox
    api = auth(freelancer)
    assert api.get(f'/notifications/{older.pk}/').status_code == 404
    assert api.delete(f'/notifications/{older.pk}/').status_code == 404


def test_delete(auth, client_user, inbox):
    older, _ = inbox
    assert auth(client_user).delete(f'/notifications/{older.pk}/').status_code == 204
    assert not Notification.objects.filter(pk=older.pk).exists()


def test_notify_admins_skips_excluded(admin_user):
    other_admin = create_user('admin')
    notify_admins('new_order', 'New Order', 'x', exclude=admin_user)
    assert not Notification.objects.filter(user=admin_user).exists()
    assert Notification.objects.filter(user=other_admin, type='new_order').exists()


def test_notify_without_user_is_a_no_op():
    assert notify(None, 'x', 'y', 'z') is None


@pytest.mark.parametrize('phone,expected', [
    ('0712345678', '+254712345678'),
    ('254712345678', '+254712345678'),
    ('+254712345678', '+254712345678'),
    ('', None),
])
def test_to_international(phone, expected):
    assert to_international(phone) == expected


def test_send_notification_email_only_without_twilio(client_user, monkeypatch):
    twilio = MagicMock()
    monkeypatch.setattr('apps.notifications.utils.TwilioClient', twilio)
    send_notification(client_user, 'Subject', 'Body', 'SMS')
    assert mail.outbox[0].subject == 'Subject'
    twilio.assert_not_called()


def test_send_notification_sms_and_whatsapp(client_user, settings, monkeypatch):
    settings.TWILIO_ACCOUNT_SID = 'AC123'
    settings.TWILIO_AUTH_TOKEN = 'token'
    settings.TWILIO_PHONE_NUMBER = '+15550001111'
    settings.TWILIO_WHATSAPP_NUMBER = '+15550002222'
    twilio = MagicMock()
    monkeypatch.setattr('apps.notifications.utils.TwilioClient', twilio)

    send_notification(client_user, 'Subject', 'Body', 'SMS text')
    twilio.assert_called_once_with('AC123', 'token')
    calls = twilio.return_value.messages.create.call_args_list
    assert calls[0].kwargs == {'body': 'SMS text', 'from_': '+15550001111', 'to': to_international(client_user.phone)}
    assert calls[1].kwargs['to'] == f"whatsapp:{to_international(client_user.phone)}"


def test_sms_failure_does_not_block_whatsapp(client_user, settings, monkeypatch):
    settings.TWILIO_ACCOUNT_SID = 'AC123'
    settings.TWILIO_PHONE_NUMBER = '+15550001111'
    settings.TWILIO_WHATSAPP_NUMBER = '+15550002222'
    twilio = MagicMock()
    twilio.return_value.messages.create.side_effect = [TwilioRestException(400, 'uri', msg='bad number'), None]
    monkeypatch.setattr('apps.notifications.utils.TwilioClient', twilio)

    send_notification(client_user, 'Subject', 'Body', 'SMS text')
    assert twilio.return_value.messages.create.call_count == 2
