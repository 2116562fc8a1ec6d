from datetime import timedelta

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.constants import NEGOTIATION_STATUS_CHOICES
from core.exceptions import ValidationFailed

PRE_PAYMENT_STATUSES = ('pending', 'transcriber_counter', 'client_counter', 'accepted_awaiting_payment')
TERMINAL_STATUSES = ('rejected', 'cancelled', 'completed')


class Negotiation(models.Model):
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='client_negotiations')
    transcriber = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='transcriber_negotiations')
    status = models.CharField(max_length=30, choices=NEGOTIATION_STATUS_CHOICES, default='pending')
    requirements = models.TextField(blank=True)
    # Current proposed price in the canonical currency.
    agreed_price_usd = models.DecimalField(max_digits=10, decimal_places=2)
    deadline_hours = models.PositiveIntegerField()
    due_date = models.DateTimeField()
    client_message = models.TextField(blank=True, null=True)
    transcriber_response = models.TextField(blank=True, null=True)
    client_response = models.TextField(blank=True, null=True)
    negotiation_files = models.CharField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    client_feedback_rating = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    client_feedback_comment = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['client', 'transcriber'],
                condition=Q(status='pending'),
                name='unique_pending_negotiation_per_pair',
            ),
            models.CheckConstraint(
                condition=Q(agreed_price_usd__gt=0),
                name='negotiation_price_positive',
            ),
            models.CheckConstraint(
                condition=Q(status='completed') | Q(
                    completed_at__isnull=True,
                    client_feedback_rating__isnull=True,
                ),
                name='negotiation_feedback_only_when_completed',
            ),
            models.CheckConstraint(
                condition=Q(client_feedback_rating__isnull=True) | Q(
                    client_feedback_rating__gte=1, client_feedback_rating__lte=5
                ),
                name='negotiation_rating_range',
            ),
        ]
        indexes = [
            models.Index(fields=['client', 'status']),
            models.Index(fields=['transcriber', 'status']),
        ]

    def __str__(self):
        return f"Negotiation #{self.pk} {self.client_id} -> {self.transcriber_id} ({self.status})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_transcriber_id = instance.__dict__.get('transcriber_id')
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, '_loaded_transcriber_id', None)
        if not self._state.adding and loaded is not None and loaded != self.transcriber_id:
            raise ValidationFailed("The transcriber of a negotiation cannot be changed.")
        super().save(*args, **kwargs)

    @staticmethod
    def compute_due_date(deadline_hours, start=None):
        return (start or timezone.now()) + timedelta(hours=int(deadline_hours))

    @property
    def is_pre_payment(self):
        return self.status in PRE_PAYMENT_STATUSES

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def party_role(self, user):
        if user.pk == self.client_id:
            return 'client'
        if user.pk == self.transcriber_id:
            return 'transcriber'
        return None
