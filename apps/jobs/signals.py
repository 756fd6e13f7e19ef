from decimal import Decimal, ROUND_HALF_UP
from django.db.models.signals import post_save
from django.dispatch import receiver
import logging

logger = logging.getLogger(__name__)

RATING_WINDOW = 20


@receiver(post_save, sender='jobs.Rating')
def apply_rating(sender, instance, created, **kwargs):
    """Copy a new rating onto its job and refresh the rated user's average."""
    if not created:
        return
    job = instance.job
    if instance.rated_by_id == job.client_id:
        job.client_rating = instance.score
        job.review_comment = instance.comment
        job.save(update_fields=['client_rating', 'review_comment', 'updated_at'])
    elif instance.rated_by_id == job.assigned_freelancer_id:
        job.writer_rating = instance.score
        job.save(update_fields=['writer_rating', 'updated_at'])

    user = instance.rated_user
    recent = list(
        sender.objects.filter(rated_user=user).order_by('-created_at', '-id').values_list('score', flat=True)[:RATING_WINDOW]
    )
    average = Decimal(sum(recent)) / Decimal(len(recent))
    user.rating = average.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
    user.rating_count = sender.objects.filter(rated_user=user).count()
    user.save(update_fields=['rating', 'rating_count'])
    logger.info(f"Updated rating for user {user.pk} to {user.rating}")
