import re
from rest_framework import serializers
from apps.users.serializers import UserSummarySerializer
from .models import Payment, Invoice, ManagerEarning, PayoutRequest

STK_PHONE_REGEX = re.compile(r'^(07|01)\d{8}$')


class PaymentSerializer(serializers.ModelSerializer):
    client = UserSummarySerializer(read_only=True)
    freelancer = UserSummarySerializer(read_only=True)
    job_display_id = serializers.CharField(source='job.display_id', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'job', 'job_display_id', 'client', 'freelancer', 'amount', 'payment_method', 'status',
            'mpesa_code', 'phone_number', 'mpesa_checkout_request_id', 'mpesa_merchant_request_id',
            'mpesa_receipt_number', 'mpesa_transaction_date', 'mpesa_result_desc', 'initiated_at',
            'confirmed_by_admin', 'confirmed_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['job', 'amount', 'payment_method', 'mpesa_code', 'phone_number']

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value

    def validate(self, data):
        job = data['job']
        if job.status in ('cancelled', 'completed'):
            raise serializers.ValidationError({"job": f"Cannot pay for a {job.status} order."})
        if data['payment_method'] == 'pochi' and not data.get('mpesa_code', '').strip():
            raise serializers.ValidationError({"mpesa_code": "An M-Pesa code is required for Pochi payments."})
        return data


class StkPushSerializer(serializers.Serializer):
    phone_number = serializers.CharField(max_length=15)

    def validate_phone_number(self, value):
        value = re.sub(r'\s', '', value)
        if not STK_PHONE_REGEX.match(value):
            raise serializers.ValidationError("Use a Safaricom number in the form 07XXXXXXXX or 01XXXXXXXX.")
        return value


class PaymentConfirmSerializer(serializers.Serializer):
    confirmed = serializers.BooleanField()
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class InvoiceSerializer(serializers.ModelSerializer):
    job_display_id = serializers.CharField(source='job.display_id', read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'job', 'job_display_id', 'client', 'freelancer', 'amount',
            'freelancer_amount', 'admin_commission', 'description', 'status', 'is_paid', 'paid_at', 'created_at'
        ]
        read_only_fields = fields


class ManagerEarningSerializer(serializers.ModelSerializer):
    job_display_id = serializers.CharField(source='job.display_id', read_only=True)

    class Meta:
        model = ManagerEarning
        fields = ['id', 'manager', 'job', 'job_display_id', 'earning_type', 'amount', 'created_at']
        read_only_fields = fields


class PayoutRequestSerializer(serializers.ModelSerializer):
    requester = UserSummarySerializer(read_only=True)

    class Meta:
        model = PayoutRequest
        fields = [
            'id', 'requester', 'amount', 'method', 'account_details', 'status', 'processed_by',
            'processed_at', 'rejection_reason', 'transaction_reference', 'created_at'
        ]
        read_only_fields = [
            'id', 'requester', 'status', 'processed_by', 'processed_at', 'rejection_reason',
            'transaction_reference', 'created_at'
        ]

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value


class PayoutRejectSerializer(serializers.Serializer):
    reason = serializers.CharField()


class PayoutProcessSerializer(serializers.Serializer):
    transaction_reference = serializers.CharField(max_length=100)
