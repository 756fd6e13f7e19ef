import logging
from datetime import timedelta
from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone
from apps.jobs.models import Job
from apps.jobs.utils import job_link
from apps.notifications.utils import notify, notify_admins, email_user, email_admins

logger = logging.getLogger(__name__)

REMINDER_STATUSES = ('pending', 'assigned', 'in_progress')
WINDOW = timedelta(minutes=5)


class Command(BaseCommand):
    help = "Remind freelancers (or admins for unassigned orders) of deadlines a few hours away."

    def handle(self, *args, **options):
        start = timezone.now() + timedelta(hours=settings.DEADLINE_REMINDER_HOURS)
        jobs = Job.objects.filter(
            actual_deadline__gte=start,
            actual_deadline__lte=start + WINDOW,
            status__in=REMINDER_STATUSES
        ).select_related('assigned_freelancer')
        sent = 0
        for job in jobs:
            subject = f"[Order {job.display_id}] Deadline Reminder"
            message = f'Order "{job.title}" is due in about {settings.DEADLINE_REMINDER_HOURS} hours.'
            freelancer = job.assigned_freelancer
            if freelancer is not None and job.status in ('assigned', 'in_progress'):
                email_user(freelancer, subject, f"Hello {freelancer.name},\n\n{message}\n\n{job_link(job)}")
                notify(freelancer, 'deadline_reminder', 'Deadline Reminder', message, job=job)
            else:
                email_admins(subject, f"{message} It has not been assigned yet.\n\n{job_link(job)}")
                notify_admins('deadline_reminder', 'Deadline Reminder', message, job=job)
            sent += 1
        logger.info(f"Sent {sent} deadline reminder(s)")
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} reminder(s)"))
