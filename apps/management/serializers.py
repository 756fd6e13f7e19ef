import re
from rest_framework import serializers
from django.contrib.auth import get_user_model
from core.constants import ROLE_CHOICES, KENYAN_PHONE_REGEX
from apps.users.serializers import UserSerializer, UserSummarySerializer, ProfileUpdateSerializer, normalize_phone
from .models import AdminAuditLog

User = get_user_model()


class ManagementUserSerializer(UserSerializer):
    """User record as admins see it, including moderation fields."""
    rating_stats = serializers.SerializerMethodField()

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + [
            'suspension_reason', 'rejection_reason', 'blacklist_reason', 'rejected_at', 'rating_stats'
        ]
        read_only_fields = fields

    def get_rating_stats(self, obj):
        return obj.get_rating_stats()


class ManagementUserCreateSerializer(serializers.ModelSerializer):
    """Admins create accounts (including other admins) that are active straight away."""
    password = serializers.CharField(write_only=True, min_length=6)

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'phone', 'role', 'password']

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(email=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def validate_phone(self, value):
        value = re.sub(r'[\s\-()]', '', value)
        if not re.match(KENYAN_PHONE_REGEX, value):
            raise serializers.ValidationError("Enter a valid Kenyan phone number, e.g. 0712345678.")
        value = normalize_phone(value)
        if User.objects.filter(phone=value).exists():
            raise serializers.ValidationError("A user with this phone number already exists.")
        return value

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(
            username=validated_data['email'],
            password=password,
            approved=True,
            email_verified=True,
            status='active',
            **validated_data
        )


class ManagementUserUpdateSerializer(ProfileUpdateSerializer):
    role = serializers.ChoiceField(choices=ROLE_CHOICES, required=False)

    class Meta(ProfileUpdateSerializer.Meta):
        fields = ['name', 'phone', 'role']


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField()


class SuspendSerializer(serializers.Serializer):
    duration_days = serializers.IntegerField(min_value=1)
    reason = serializers.CharField()


class AssignManagerSerializer(serializers.Serializer):
    manager_id = serializers.IntegerField(allow_null=True)

    def validate_manager_id(self, value):
        if value is None:
            return None
        try:
            return User.objects.get(pk=value, role='manager')
        except User.DoesNotExist:
            raise serializers.ValidationError("Manager not found.")


class AdminAuditLogSerializer(serializers.ModelSerializer):
    admin = UserSummarySerializer(read_only=True)

    class Meta:
        model = AdminAuditLog
        fields = ['id', 'admin', 'action', 'target_type', 'target_id', 'details', 'ip_address', 'user_agent',
                  'timestamp']
        read_only_fields = fields
