import logging
from decimal import Decimal

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.negotiations.models import Negotiation
from core.exceptions import (
    NotFound, ScribeLinkError, Unauthorized, error_response,
)
from core.utils import IsAdmin, IsClient, IsTranscriber

from .serializers import (
    InitializePaymentSerializer, PaymentSerializer, PayoutUpdateSerializer, WeeklyPayoutSerializer,
)
from .settlement import SettlementEngine

logger = logging.getLogger(__name__)

error_responses = {
    400: 'Bad Request (invalid data or amount mismatch)',
    401: 'Unauthorized',
    402: 'Payment not successful',
    403: 'Forbidden',
    404: 'Not Found',
    409: 'Conflict (negotiation not payable)',
    503: 'Payment provider unavailable, retry with the same reference',
}

provider_param = openapi.Parameter(
    'provider', openapi.IN_QUERY, type=openapi.TYPE_STRING,
    enum=['paystack', 'korapay', 'chapa'], default='paystack'
)


def money_summary(summary):
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in summary.items()}


class InitializePaymentView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Start a charge for an accepted negotiation. The amount is the agreed "
                              "price in the platform currency; the charge is made in the payer currency.",
        request_body=InitializePaymentSerializer,
        responses={
            200: openapi.Schema(
                type=openapi.TYPE_OBJECT,
                properties={
                    'reference': openapi.Schema(type=openapi.TYPE_STRING),
                    'authorization_url': openapi.Schema(type=openapi.TYPE_STRING, x_nullable=True),
                    'amount': openapi.Schema(type=openapi.TYPE_STRING),
                    'currency': openapi.Schema(type=openapi.TYPE_STRING),
                    'data': openapi.Schema(type=openapi.TYPE_OBJECT),
                }
            ),
            **error_responses
        }
    )
    def post(self, request, negotiation_id):
        serializer = InitializePaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        try:
            handle = SettlementEngine().initialize(
                negotiation_id,
                request.user,
                data.get('client_email') or request.user.email,
                data['amount'],
                payer_currency=data.get('currency'),
                provider=data['provider'],
            )
        except ScribeLinkError as e:
            return error_response(e)
        return Response(handle.as_dict(), status=status.HTTP_200_OK)


class VerifyPaymentView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Confirm a charge and start the job. Safe to call repeatedly.",
        manual_parameters=[provider_param],
        responses={200: PaymentSerializer, 500: 'Payment could not be recorded, retry', **error_responses}
    )
    def get(self, request, negotiation_id, reference):
        try:
            negotiation = Negotiation.objects.get(pk=negotiation_id)
        except Negotiation.DoesNotExist:
            return error_response(NotFound("Negotiation not found."))
        if negotiation.party_role(request.user) is None and not request.user.is_admin:
            return error_response(Unauthorized())

        provider = request.query_params.get('provider', 'paystack')
        try:
            payment, created = SettlementEngine().verify(reference, negotiation_id, provider)
        except ScribeLinkError as e:
            return error_response(e)
        message = "Payment verified and job is now active." if created else "Payment already verified."
        return Response({"message": message, "payment": PaymentSerializer(payment).data}, status=status.HTTP_200_OK)


class PaymentWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @swagger_auto_schema(
        operation_description="Provider webhook. Requests must carry the provider's signature header.",
        responses={200: 'Processed', 401: 'Invalid signature', 503: 'Retry later'}
    )
    def post(self, request, provider):
        logger.debug(f"Received {provider} webhook")
        engine = SettlementEngine()
        try:
            result = engine.handle_webhook(provider, request.headers, request.body)
        except Unauthorized as e:
            return Response({'error': str(e)}, status=status.HTTP_401_UNAUTHORIZED)
        except ScribeLinkError as e:
            if e.retryable:
                # Non-2xx makes the provider redeliver.
                return error_response(e)
            logger.warning(f"{provider} webhook not applied: {str(e)}")
            return Response({'status': 'ignored', 'error': str(e), 'code': e.code}, status=status.HTTP_200_OK)

        if result is None:
            return Response({'status': 'ignored'}, status=status.HTTP_200_OK)
        payment, created = result
        return Response({'status': 'processed' if created else 'duplicate',
                         'reference': payment.provider_reference}, status=status.HTTP_200_OK)


class ClientPaymentHistoryView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(responses={200: PaymentSerializer(many=True)})
    def get(self, request):
        history = SettlementEngine().client_history(request.user)
        return Response({
            "payments": PaymentSerializer(history['payments'], many=True).data,
            "summary": money_summary(history['summary']),
        }, status=status.HTTP_200_OK)


class TranscriberPaymentHistoryView(APIView):
    permission_classes = [IsAuthenticated, IsTranscriber]

    @swagger_auto_schema(responses={200: WeeklyPayoutSerializer(many=True)})
    def get(self, request):
        history = SettlementEngine().transcriber_history(request.user)
        return Response({
            "upcoming_payouts": WeeklyPayoutSerializer(history['upcoming_payouts'], many=True).data,
            "completed_payouts": PaymentSerializer(history['completed_payouts'], many=True).data,
            "summary": money_summary(history['summary']),
        }, status=status.HTTP_200_OK)


class PayoutUpdateView(APIView):
    permission_classes = [IsAuthenticated, IsAdmin]

    @swagger_auto_schema(
        operation_description="Mark a pending payout as paid out or failed.",
        request_body=PayoutUpdateSerializer,
        responses={200: PaymentSerializer, **error_responses}
    )
    def put(self, request, pk):
        serializer = PayoutUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        engine = SettlementEngine()
        try:
            if serializer.validated_data['payout_status'] == 'completed':
                payment = engine.mark_payout_completed(request.user, pk)
            else:
                payment = engine.mark_payout_failed(request.user, pk, serializer.validated_data['reason'])
        except ScribeLinkError as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data, status=status.HTTP_200_OK)
