import logging
import random
import re
from django.conf import settings
from django.contrib.auth import authenticate, get_user_model
from django.core.mail import send_mail
from rest_framework import serializers
from core.constants import ALLOWED_EMAIL_DOMAINS, KENYAN_PHONE_REGEX, SELF_REGISTER_ROLES
from .models import VerificationToken

User = get_user_model()
logger = logging.getLogger(__name__)

CODE_SUBJECTS = {
    'email_verification': "TaskLynk Verification Code",
    'password_reset': "TaskLynk Password Reset Code",
}


def normalize_phone(phone):
    """+254712345678 -> 0712345678"""
    phone = re.sub(r'[\s\-()]', '', phone or '')
    if phone.startswith('+254'):
        return '0' + phone[4:]
    return phone


def send_verification_code(user, purpose):
    VerificationToken.objects.filter(user=user, purpose=purpose, is_used=False).update(is_used=True)
    code = str(random.randint(100000, 999999))
    VerificationToken.objects.create(user=user, code=code, purpose=purpose)
    send_mail(
        CODE_SUBJECTS[purpose],
        f"Your verification code is: {code}\nThis code expires in 10 minutes.",
        settings.DEFAULT_FROM_EMAIL,
        [user.email],
        fail_silently=False,
    )
    logger.info(f"{purpose} code sent to user {user.pk}")
    return code


def consume_code(user, code, purpose):
    """Mark a valid code as used. Raises ValidationError when it is wrong or expired."""
    token = VerificationToken.objects.filter(
        user=user, code=code, purpose=purpose, is_used=False
    ).order_by('-created_at').first()
    if token is None or token.is_expired:
        raise serializers.ValidationError({"code": "Invalid or expired code."})
    token.is_used = True
    token.save(update_fields=['is_used'])
    return token


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'display_id', 'name', 'email', 'role', 'rating']
        ref_name = 'UserSummary'


class UserSerializer(serializers.ModelSerializer):
    assigned_manager = UserSummarySerializer(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'display_id', 'name', 'email', 'phone', 'role', 'status', 'approved',
            'email_verified', 'balance', 'total_earned', 'total_spent', 'rating',
            'rating_count', 'completed_jobs', 'assigned_manager', 'profile_picture',
            'suspended_until', 'last_login_at', 'login_count', 'date_joined'
        ]
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=15)
    password = serializers.CharField(
        max_length=128,
        write_only=True,
        min_length=6,
        error_messages={'min_length': 'Password must be at least 6 characters long.'}
    )
    role = serializers.ChoiceField(choices=SELF_REGISTER_ROLES)

    def validate_email(self, value):
        value = value.strip().lower()
        domain = value.rsplit('@', 1)[-1]
        if domain not in ALLOWED_EMAIL_DOMAINS:
            raise serializers.ValidationError("Please use a supported email provider (e.g. Gmail, Yahoo, Outlook).")
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already in use.")
        return value

    def validate_phone(self, value):
        value = re.sub(r'[\s\-()]', '', value)
        if not re.match(KENYAN_PHONE_REGEX, value):
            raise serializers.ValidationError("Enter a valid Kenyan phone number, e.g. 0712345678.")
        value = normalize_phone(value)
        if User.objects.filter(phone=value).exists():
            raise serializers.ValidationError("Phone number already in use.")
        return value

    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data['email'],
            email=validated_data['email'],
            password=validated_data['password'],
            name=validated_data['name'].strip(),
            phone=validated_data['phone'],
            role=validated_data['role'],
            status='pending',
            approved=False,
        )
        send_verification_code(user, 'email_verification')
        return user


class EmailCodeSerializer(serializers.Serializer):
    email = serializers.EmailField()
    code = serializers.CharField(max_length=6)

    def validate(self, data):
        try:
            data['user'] = User.objects.get(email__iexact=data['email'])
        except User.DoesNotExist:
            raise serializers.ValidationError({"email": "No account with this email."})
        return data


class EmailSerializer(serializers.Serializer):
    email = serializers.EmailField()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(
            request=self.context.get('request'),
            username=data['email'].strip().lower(),
            password=data['password']
        )
        if user is None:
            raise serializers.ValidationError("Invalid email or password.")
        data['user'] = user
        return data


class PasswordResetConfirmSerializer(EmailCodeSerializer):
    new_password = serializers.CharField(max_length=128, write_only=True, min_length=6)


class ChangePasswordSerializer(serializers.Serializer):
    old_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(max_length=128, write_only=True, min_length=6)

    def validate_old_password(self, value):
        user = self.context['request'].user
        if not user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value


class ProfileUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['name', 'phone', 'profile_picture']

    def validate_phone(self, value):
        if not value:
            return value
        value = re.sub(r'[\s\-()]', '', value)
        if not re.match(KENYAN_PHONE_REGEX, value):
            raise serializers.ValidationError("Enter a valid Kenyan phone number, e.g. 0712345678.")
        value = normalize_phone(value)
        if User.objects.filter(phone=value).exclude(pk=self.instance.pk).exists():
            raise serializers.ValidationError("Phone number already in use.")
        return value
