from django.db import models
from django.conf import settings
from django.utils import timezone
from core.constants import (
    PAYMENT_METHOD_CHOICES, PAYMENT_STATUS_CHOICES, INVOICE_STATUS_CHOICES,
    PAYOUT_METHOD_CHOICES, PAYOUT_STATUS_CHOICES, EARNING_TYPE_CHOICES
)
from apps.jobs.models import Job

# Payment status -> statuses it may move to
PAYMENT_TRANSITIONS = {
    'pending': ('processing', 'confirmed', 'failed'),
    'processing': ('confirmed', 'failed'),
    'confirmed': (),
    'failed': (),
}


class Payment(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='payments')
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payments_made')
    freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments_received'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending')

    mpesa_code = models.CharField(max_length=50, blank=True, default='')
    phone_number = models.CharField(max_length=15, blank=True, default='')
    mpesa_checkout_request_id = models.CharField(max_length=100, blank=True, null=True, unique=True)
    mpesa_merchant_request_id = models.CharField(max_length=100, blank=True, default='')
    mpesa_receipt_number = models.CharField(max_length=50, blank=True, default='')
    mpesa_transaction_date = models.CharField(max_length=20, blank=True, default='')
    mpesa_result_desc = models.TextField(blank=True, default='')
    initiated_at = models.DateTimeField(null=True, blank=True)

    confirmed_by_admin = models.BooleanField(default=False)
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments_confirmed'
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Payment {self.pk} of {self.amount} for {self.job.display_id} ({self.status})"

    def can_move_to(self, new_status):
        return new_status in PAYMENT_TRANSITIONS.get(self.status, ())

    @property
    def is_resolved(self):
        return self.status in ('confirmed', 'failed')


class Invoice(models.Model):
    invoice_number = models.CharField(max_length=30, unique=True)
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='invoices')
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='invoices')
    freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='freelancer_invoices'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    freelancer_amount = models.DecimalField(max_digits=12, decimal_places=2)
    admin_commission = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=INVOICE_STATUS_CHOICES, default='pending')
    is_paid = models.BooleanField(default=False)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.invoice_number

    def mark_as_paid(self):
        self.status = 'paid'
        self.is_paid = True
        self.paid_at = timezone.now()
        self.save(update_fields=['status', 'is_paid', 'paid_at'])


class ManagerEarning(models.Model):
    """Fees credited to a manager; one entry per job and fee type."""
    manager = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='manager_earnings')
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='manager_fees')
    earning_type = models.CharField(max_length=20, choices=EARNING_TYPE_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('job', 'earning_type')
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.earning_type} fee {self.amount} for {self.manager.email} on {self.job.display_id}"


class PayoutRequest(models.Model):
    requester = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payout_requests')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=20, choices=PAYOUT_METHOD_CHOICES)
    account_details = models.JSONField(default=dict)
    status = models.CharField(max_length=20, choices=PAYOUT_STATUS_CHOICES, default='pending')
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='payouts_processed'
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default='')
    transaction_reference = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Payout {self.pk} of {self.amount} to {self.requester.email} ({self.status})"
