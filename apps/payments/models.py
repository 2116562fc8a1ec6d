from django.conf import settings
from django.db import models
from django.utils import timezone

from core.constants import PAYMENT_PROVIDER_CHOICES, PAYOUT_STATUS_CHOICES


class Payment(models.Model):
    """Settlement record of one negotiation. Written once by verify."""
    # Nullable so that the financial record survives an admin deleting the negotiation.
    negotiation = models.OneToOneField(
        'negotiations.Negotiation', on_delete=models.SET_NULL, null=True, blank=True, related_name='payment'
    )
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='payments_made')
    transcriber = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='payments_received')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2)
    currency_paid = models.CharField(max_length=3)
    exchange_rate_used = models.DecimalField(max_digits=14, decimal_places=6, default=1)
    transcriber_earning = models.DecimalField(max_digits=10, decimal_places=2)
    provider = models.CharField(max_length=20, choices=PAYMENT_PROVIDER_CHOICES)
    provider_reference = models.CharField(max_length=100, unique=True)
    provider_status = models.CharField(max_length=30)
    transaction_date = models.DateTimeField(default=timezone.now)
    payout_status = models.CharField(max_length=30, choices=PAYOUT_STATUS_CHOICES, default='awaiting_completion')
    paid_out_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-transaction_date']
        indexes = [
            models.Index(fields=['transcriber', 'payout_status']),
            models.Index(fields=['client', 'transaction_date']),
        ]

    def __str__(self):
        return f"Payment {self.provider_reference} - {self.amount} {self.currency} ({self.payout_status})"


class ReconciliationItem(models.Model):
    """A charge the provider confirmed but the ledger could not record."""
    # A second successful charge for an already paid negotiation; needs a refund.
    DUPLICATE_CHARGE = 'duplicate_charge'

    provider = models.CharField(max_length=20, choices=PAYMENT_PROVIDER_CHOICES)
    reference = models.CharField(max_length=100, db_index=True)
    negotiation_id = models.BigIntegerField(null=True, blank=True)
    reason = models.CharField(max_length=50)
    detail = models.TextField(blank=True)
    resolved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.provider}:{self.reference} - {self.reason}"

    @classmethod
    def resolve_reference(cls, reference):
        return cls.objects.filter(reference=reference, resolved=False).exclude(
            reason=cls.DUPLICATE_CHARGE
        ).update(
            resolved=True, resolved_at=timezone.now()
        )
