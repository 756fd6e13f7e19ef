import logging
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db.models import Sum
from core.pricing import writer_earnings
from apps.jobs.models import Job
from apps.payments.models import PayoutRequest

User = get_user_model()
logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Rebuild freelancer balances from completed, paid jobs minus approved and processed payouts."

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help="Report changes without saving them")

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        changed = 0
        for freelancer in User.objects.filter(role='freelancer'):
            jobs = Job.objects.filter(assigned_freelancer=freelancer, status='completed', payment_confirmed=True)
            earned = sum(
                (writer_earnings(job.pages, job.slides, job.work_type) for job in jobs),
                Decimal('0.00')
            )
            paid_out = PayoutRequest.objects.filter(
                requester=freelancer, status__in=('approved', 'processed')
            ).aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
            balance = earned - paid_out
            if balance == freelancer.balance:
                continue
            changed += 1
            self.stdout.write(f"{freelancer.email}: {freelancer.balance} -> {balance}")
            if not dry_run:
                User.objects.filter(pk=freelancer.pk).update(balance=balance)
                logger.info(f"Recalculated balance for user {freelancer.pk}: {freelancer.balance} -> {balance}")
        verb = "Would update" if dry_run else "Updated"
        self.stdout.write(self.style.SUCCESS(f"{verb} {changed} balance(s)"))
