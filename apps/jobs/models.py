from decimal import Decimal
from django.db import models
from django.conf import settings
from django.utils import timezone
from core.constants import (
    JOB_STATUS_CHOICES, BID_STATUS_CHOICES, UPLOAD_TYPE_CHOICES, REVISION_STATUS_CHOICES
)

TERMINAL_STATUSES = ('completed', 'cancelled')


class Job(models.Model):
    display_id = models.CharField(max_length=20, unique=True, blank=True, null=True)
    order_number = models.CharField(max_length=20, unique=True, blank=True, null=True)
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='jobs')
    assigned_freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_jobs'
    )
    manager = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='managed_jobs'
    )

    title = models.CharField(max_length=255)
    instructions = models.TextField()
    work_type = models.CharField(max_length=100)
    pages = models.PositiveIntegerField(null=True, blank=True)
    slides = models.PositiveIntegerField(null=True, blank=True)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    urgency_multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('1.00'))
    calculated_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    deadline = models.DateTimeField()
    actual_deadline = models.DateTimeField(null=True, blank=True)
    freelancer_deadline = models.DateTimeField(null=True, blank=True)

    request_draft = models.BooleanField(default=False)
    request_printable_sources = models.BooleanField(default=False)
    single_spaced = models.BooleanField(default=False)

    status = models.CharField(max_length=20, choices=JOB_STATUS_CHOICES, default='pending')
    admin_approved = models.BooleanField(default=False)
    client_approved = models.BooleanField(default=False)
    approved_by_client_at = models.DateTimeField(null=True, blank=True)
    revision_requested = models.BooleanField(default=False)
    revision_notes = models.TextField(blank=True, default='')
    payment_confirmed = models.BooleanField(default=False)
    paid_order_confirmed_at = models.DateTimeField(null=True, blank=True)

    freelancer_earnings = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    manager_earnings = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    admin_profit = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    client_rating = models.PositiveSmallIntegerField(null=True, blank=True)
    writer_rating = models.PositiveSmallIntegerField(null=True, blank=True)
    review_comment = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.display_id} - {self.title}"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def is_open_for_bids(self):
        return self.status == 'accepted' and self.assigned_freelancer_id is None

    def is_participant(self, user):
        if user.is_admin_role:
            return True
        if user.pk in (self.client_id, self.assigned_freelancer_id, self.manager_id):
            return True
        if user.is_manager:
            if self.client.assigned_manager_id in (None, user.pk):
                return True
            return self.assigned_freelancer is not None and self.assigned_freelancer.assigned_manager_id == user.pk
        return False


class Bid(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='bids')
    freelancer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bids')
    message = models.TextField(blank=True, default='')
    bid_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=BID_STATUS_CHOICES, default='pending')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('job', 'freelancer')
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.freelancer.email} bid {self.bid_amount} on {self.job.display_id}"


class JobStatusLog(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='status_logs')
    old_status = models.CharField(max_length=20, blank=True, default='')
    new_status = models.CharField(max_length=20)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    note = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.job.display_id}: {self.old_status} -> {self.new_status}"


class JobAttachment(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='attachments')
    uploaded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    file = models.FileField(upload_to='job_files/%Y/%m/')
    file_name = models.CharField(max_length=255)
    file_size = models.PositiveIntegerField(default=0)
    file_type = models.CharField(max_length=100, blank=True, default='')
    upload_type = models.CharField(max_length=20, choices=UPLOAD_TYPE_CHOICES, default='initial')
    scheduled_deletion_at = models.DateTimeField(null=True, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.file_name} ({self.upload_type}) for {self.job.display_id}"

    def purge_file(self):
        """Remove the stored file but keep the row as a record."""
        if self.file:
            self.file.delete(save=False)
        self.deleted_at = timezone.now()
        self.save(update_fields=['file', 'deleted_at'])


class Revision(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='revisions')
    requested_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    notes = models.TextField()
    status = models.CharField(max_length=20, choices=REVISION_STATUS_CHOICES, default='pending')
    sent_to_freelancer = models.BooleanField(default=False)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Revision for {self.job.display_id} ({self.status})"

    def mark_as_sent(self):
        self.status = 'sent'
        self.sent_to_freelancer = True
        self.sent_at = timezone.now()
        self.save(update_fields=['status', 'sent_to_freelancer', 'sent_at'])


class Rating(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='ratings')
    rated_user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='ratings_received')
    rated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='ratings_given')
    score = models.PositiveSmallIntegerField(choices=[(i, i) for i in range(1, 6)])  # 1 to 5 stars
    comment = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('job', 'rated_by')
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.rated_by.email} rated {self.rated_user.email} {self.score}/5 on {self.job.display_id}"


class JobMessage(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='job_messages')
    message = models.TextField()
    admin_approved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Message from {self.sender.email} on {self.job.display_id}"
