import logging
from django.core.management.base import BaseCommand
from django.utils import timezone
from apps.jobs.models import JobAttachment

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Delete stored files whose retention period has passed."

    def handle(self, *args, **options):
        due = JobAttachment.objects.filter(
            scheduled_deletion_at__lte=timezone.now(),
            deleted_at__isnull=True
        ).select_related('job')
        deleted = 0
        for attachment in due:
            try:
                attachment.purge_file()
                deleted += 1
            except OSError as e:
                logger.error(f"Failed to delete file {attachment.pk} for job {attachment.job.display_id}: {str(e)}")
        logger.info(f"File cleanup removed {deleted} file(s)")
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} file(s)"))
