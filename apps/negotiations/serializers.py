from decimal import Decimal

from rest_framework import serializers

from apps.users.serializers import ProfileSummarySerializer

from .models import Negotiation


class NegotiationSerializer(serializers.ModelSerializer):
    client = ProfileSummarySerializer(read_only=True)
    transcriber = ProfileSummarySerializer(read_only=True)

    class Meta:
        model = Negotiation
        fields = [
            'id', 'client', 'transcriber', 'status', 'requirements', 'agreed_price_usd',
            'deadline_hours', 'due_date', 'client_message', 'transcriber_response',
            'client_response', 'negotiation_files', 'created_at', 'updated_at',
            'completed_at', 'client_feedback_rating', 'client_feedback_comment',
        ]
        read_only_fields = fields


class ProposeSerializer(serializers.Serializer):
    transcriber_id = serializers.IntegerField()
    proposed_price_usd = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    deadline_hours = serializers.IntegerField(min_value=1)
    requirements = serializers.CharField(required=False, allow_blank=True, default='')
    client_message = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    negotiation_files = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)


class CounterSerializer(serializers.Serializer):
    proposed_price_usd = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    message = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    deadline_hours = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    negotiation_files = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=500)


class RejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CompleteSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PriceQuoteSerializer(serializers.Serializer):
    audio_quality = serializers.CharField(required=False, allow_blank=True)
    deadline_type = serializers.CharField(required=False, allow_blank=True)
    duration_minutes = serializers.FloatField(required=False, min_value=0)
    special_requirements = serializers.CharField(
        required=False, allow_blank=True, help_text='Comma separated, e.g. "timestamps,full_verbatim"'
    )

    def validate_special_requirements(self, value):
        return [item.strip() for item in value.split(',') if item.strip()]
