import logging
import re
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient
from .models import Notification

logger = logging.getLogger(__name__)


def notify(user, type, title, message, job=None):
    """Create an in-app notification. Returns None when the row could not be written."""
    if user is None:
        return None
    try:
        return Notification.objects.create(user=user, job=job, type=type, title=title, message=message)
    except Exception as e:
        logger.error(f"Failed to create {type} notification for user {user.pk}: {str(e)}")
        return None


def notify_admins(type, title, message, job=None, exclude=None):
    User = get_user_model()
    admins = User.objects.filter(role='admin')
    if exclude is not None:
        admins = admins.exclude(pk=exclude.pk)
    return [notify(admin, type, title, message, job=job) for admin in admins]


def email_user(user, subject, message):
    if not user or not user.email:
        return False
    try:
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            fail_silently=False,
        )
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {user.email}: {str(e)}")
        return False


def email_admins(subject, message):
    User = get_user_model()
    for admin in User.objects.filter(role='admin'):
        email_user(admin, subject, message)


def to_international(phone):
    """0712345678 -> +254712345678"""
    if not phone:
        return None
    phone = re.sub(r'[\s\-()]', '', phone)
    if phone.startswith('+'):
        return phone
    if phone.startswith('0'):
        return '+254' + phone[1:]
    if phone.startswith('254'):
        return '+' + phone
    return None


def send_notification(user, subject, email_message, sms_message):
    """
    Send an e-mail and, when Twilio is configured, an SMS and a WhatsApp message.

    Args:
        user: User object to send notification to
        subject: Email subject
        email_message: Email message content
        sms_message: SMS/WhatsApp message content
    """
    email_user(user, subject, email_message)

    if not settings.TWILIO_ACCOUNT_SID:
        return
    phone = to_international(user.phone)
    if not phone:
        return
    twilio_client = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    if settings.TWILIO_PHONE_NUMBER:
        try:
            twilio_client.messages.create(body=sms_message, from_=settings.TWILIO_PHONE_NUMBER, to=phone)
            logger.info(f"SMS notification sent to {phone}")
        except TwilioRestException as e:
            logger.error(f"Failed to send SMS to {phone}: {str(e)}")
    if settings.TWILIO_WHATSAPP_NUMBER:
        try:
            twilio_client.messages.create(
                body=sms_message,
                from_=f"whatsapp:{settings.TWILIO_WHATSAPP_NUMBER}",
                to=f"whatsapp:{phone}"
            )
        except TwilioRestException as e:
            logger.error(f"Failed to send WhatsApp message to {phone}: {str(e)}")
