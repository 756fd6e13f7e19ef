import logging
import re
from datetime import timedelta
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from apps.users.models import next_sequence
from .models import Job, JobAttachment

logger = logging.getLogger(__name__)

DISPLAY_ID_ATTEMPTS = 5


def generate_job_display_id(now=None):
    """#YY + six digit sequence, restarting every year."""
    now = now or timezone.now()
    prefix = f"#{now:%y}"
    existing = Job.objects.filter(display_id__startswith=prefix).values_list('display_id', flat=True)
    return f"{prefix}{next_sequence(existing, prefix):06d}"


def order_number_prefix(client):
    first_word = (client.name or '').strip().split(' ')[0]
    letters = re.sub(r'[^A-Za-z]', '', first_word).upper()[:3]
    return letters or 'CLT'


def generate_order_number(client):
    prefix = order_number_prefix(client)
    existing = Job.objects.filter(order_number__startswith=prefix).values_list('order_number', flat=True)
    return f"{prefix}{next_sequence(existing, prefix):04d}"


def save_with_identifiers(job):
    """
    Assign display_id and order_number, retrying when a concurrent insert
    takes the same sequence number.
    """
    last_error = None
    generate_order = not job.order_number
    for attempt in range(DISPLAY_ID_ATTEMPTS):
        job.display_id = generate_job_display_id()
        if generate_order:
            job.order_number = generate_order_number(job.client)
        try:
            with transaction.atomic():
                job.save()
            return job
        except IntegrityError as e:
            last_error = e
            logger.warning(f"Identifier collision for job {job.display_id} (attempt {attempt + 1}): {str(e)}")
            job.pk = None
    raise last_error


def schedule_file_deletion(job, now=None):
    now = now or timezone.now()
    deletion_at = now + timedelta(days=settings.FILE_RETENTION_DAYS)
    return JobAttachment.objects.filter(job=job, deleted_at__isnull=True).update(scheduled_deletion_at=deletion_at)


def job_link(job):
    return f"{settings.FRONTEND_URL}/orders/{job.pk}"
