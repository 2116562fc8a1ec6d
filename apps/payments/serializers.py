from decimal import Decimal

from rest_framework import serializers

from core.constants import PAYMENT_PROVIDER_CHOICES

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    negotiation_id = serializers.IntegerField(read_only=True)
    requirements = serializers.CharField(source='negotiation.requirements', read_only=True, default=None)
    deadline_hours = serializers.IntegerField(source='negotiation.deadline_hours', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            'id', 'negotiation_id', 'client', 'transcriber', 'amount', 'currency', 'amount_paid',
            'currency_paid', 'exchange_rate_used', 'transcriber_earning', 'provider',
            'provider_reference', 'provider_status', 'transaction_date', 'payout_status',
            'paid_out_at', 'requirements', 'deadline_hours',
        ]
        read_only_fields = fields


class InitializePaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    client_email = serializers.EmailField(required=False)
    currency = serializers.CharField(required=False, max_length=3)
    provider = serializers.ChoiceField(choices=PAYMENT_PROVIDER_CHOICES, default='paystack')


class PayoutUpdateSerializer(serializers.Serializer):
    payout_status = serializers.ChoiceField(choices=['completed', 'failed'])
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class WeeklyPayoutSerializer(serializers.Serializer):
    week_ending = serializers.DateField()
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    payments = PaymentSerializer(many=True)
