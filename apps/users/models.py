from decimal import Decimal
from django.db import models
from django.contrib.auth.models import AbstractUser, UserManager as DjangoUserManager
from django.utils import timezone
from core.constants import ROLE_CHOICES, ACCOUNT_STATUS_CHOICES, VERIFICATION_PURPOSE_CHOICES

# role -> (prefix, zero padding) for human readable account IDs
DISPLAY_ID_FORMATS = {
    'admin': ('ADMN#', 4),
    'freelancer': ('FRL#', 8),
    'client': ('CLT#', 7),
    'manager': ('MGR#', 4),
}


def next_sequence(values, prefix):
    """Highest numeric suffix among ``values`` that start with ``prefix``, plus one."""
    highest = 0
    for value in values:
        if not value or not value.startswith(prefix):
            continue
        suffix = value[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest + 1


def generate_user_display_id(role):
    prefix, width = DISPLAY_ID_FORMATS.get(role, DISPLAY_ID_FORMATS['client'])
    existing = User.objects.filter(display_id__startswith=prefix).values_list('display_id', flat=True)
    return f"{prefix}{next_sequence(existing, prefix):0{width}d}"


class UserManager(DjangoUserManager):
    def create_superuser(self, username, email=None, password=None, **extra_fields):
        extra_fields.setdefault('role', 'admin')
        extra_fields.setdefault('approved', True)
        extra_fields.setdefault('email_verified', True)
        extra_fields.setdefault('status', 'active')
        return super().create_superuser(username, email, password, **extra_fields)


class User(AbstractUser):
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=150, blank=True, default='')
    phone = models.CharField(max_length=15, blank=True, null=True, unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='client')
    display_id = models.CharField(max_length=20, unique=True, blank=True, null=True)

    approved = models.BooleanField(default=False)
    email_verified = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=ACCOUNT_STATUS_CHOICES, default='pending')
    suspended_until = models.DateTimeField(null=True, blank=True)
    suspension_reason = models.TextField(blank=True, default='')
    rejection_reason = models.TextField(blank=True, default='')
    blacklist_reason = models.TextField(blank=True, default='')
    rejected_at = models.DateTimeField(null=True, blank=True)

    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_earned = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_spent = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    rating = models.DecimalField(max_digits=3, decimal_places=1, null=True, blank=True)
    rating_count = models.PositiveIntegerField(default=0)
    completed_jobs = models.PositiveIntegerField(default=0)

    assigned_manager = models.ForeignKey(
        'self', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='managed_users', limit_choices_to={'role': 'manager'}
    )
    profile_picture = models.ImageField(upload_to='profile_pics/', blank=True, null=True)
    last_login_at = models.DateTimeField(null=True, blank=True)
    login_count = models.PositiveIntegerField(default=0)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    def __str__(self):
        return f"{self.name or self.email} ({self.display_id or self.role})"

    def save(self, *args, **kwargs):
        if not self.display_id:
            self.display_id = generate_user_display_id(self.role)
        super().save(*args, **kwargs)

    @property
    def is_admin_role(self):
        return self.role == 'admin' or self.is_superuser

    @property
    def is_client(self):
        return self.role == 'client'

    @property
    def is_freelancer(self):
        return self.role == 'freelancer'

    @property
    def is_manager(self):
        return self.role == 'manager'

    @property
    def is_suspended(self):
        return (
            self.status == 'suspended' and
            self.suspended_until is not None and
            self.suspended_until > timezone.now()
        )

    def lift_expired_suspension(self):
        """Reactivate an account whose suspension window has passed."""
        if self.status == 'suspended' and not self.is_suspended:
            self.status = 'active'
            self.suspended_until = None
            self.suspension_reason = ''
            self.save(update_fields=['status', 'suspended_until', 'suspension_reason'])
            return True
        return False

    def get_rating_stats(self):
        """Rating breakdown over every rating this user has received."""
        stats = {
            'average_rating': float(self.rating) if self.rating is not None else 0.0,
            'total_ratings': 0,
            'rating_breakdown': {f'{star}_star': 0 for star in range(5, 0, -1)},
        }
        scores = list(self.ratings_received.values_list('score', flat=True))
        if scores:
            stats['total_ratings'] = len(scores)
            for score in scores:
                stats['rating_breakdown'][f'{score}_star'] += 1
        return stats


class VerificationToken(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='verification_tokens')
    code = models.CharField(max_length=6)
    purpose = models.CharField(max_length=20, choices=VERIFICATION_PURPOSE_CHOICES)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    is_used = models.BooleanField(default=False)

    def save(self, *args, **kwargs):
        if not self.expires_at:
            self.expires_at = timezone.now() + timezone.timedelta(minutes=10)
        super().save(*args, **kwargs)

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()

    def __str__(self):
        return f"{self.purpose} token for {self.user.email}"
