from django.conf import settings
from django.db import models
from django.db.models import Q
from django.contrib.auth.models import AbstractUser
from core.constants import USER_TYPE_CHOICES, TRANSCRIBER_STATUS_CHOICES, TRANSCRIBER_LEVEL_CHOICES


class User(AbstractUser):
    email = models.EmailField(blank=True, null=True, unique=True)
    phone_number = models.CharField(max_length=15, blank=True, null=True, unique=True)
    user_type = models.CharField(max_length=20, choices=USER_TYPE_CHOICES, default='client')

    # Availability record. current_job is written only by AvailabilityCoordinator.
    is_online = models.BooleanField(default=False)
    is_available = models.BooleanField(default=True)
    current_job = models.ForeignKey(
        'negotiations.Negotiation', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )

    transcriber_status = models.CharField(
        max_length=30, choices=TRANSCRIBER_STATUS_CHOICES, default='pending_assessment'
    )
    transcriber_user_level = models.CharField(
        max_length=20, choices=TRANSCRIBER_LEVEL_CHOICES, default='transcriber'
    )
    transcriber_completed_jobs = models.PositiveIntegerField(default=0)
    transcriber_average_rating = models.DecimalField(max_digits=3, decimal_places=1, default=0)
    client_completed_jobs = models.PositiveIntegerField(default=0)
    client_average_rating = models.DecimalField(max_digits=3, decimal_places=1, default=0)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_client(self):
        return self.user_type == 'client'

    @property
    def is_transcriber(self):
        return self.user_type == 'transcriber'

    @property
    def is_admin(self):
        return self.user_type == 'admin' or self.is_superuser

    @property
    def full_name(self):
        return self.get_full_name() or self.username

    def save(self, *args, **kwargs):
        # A plain save() of an existing row never writes current_job, so a
        # stale instance cannot undo an acquire/release.
        if not self._state.adding and kwargs.get('update_fields') is None and not kwargs.get('force_insert'):
            kwargs['update_fields'] = [
                f.name for f in self._meta.concrete_fields
                if not f.primary_key and f.name != 'current_job'
            ]
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.username} ({self.user_type})"


class ClientRating(models.Model):
    """Score an admin gives a client; client_average_rating is the mean of these."""
    admin = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='client_ratings_given')
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='client_ratings')
    score = models.PositiveSmallIntegerField()
    comment = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['admin', 'client'], name='one_rating_per_admin_and_client'),
            models.CheckConstraint(condition=Q(score__gte=1, score__lte=5), name='client_rating_range'),
        ]

    def __str__(self):
        return f"{self.client.username} rated {self.score} by {self.admin.username}"
