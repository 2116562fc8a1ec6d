import logging

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.payments.pricing import quote_price_per_minute
from core.config import PlatformConfig, quantize, to_decimal
from core.exceptions import ScribeLinkError, error_response
from core.utils import IsClient, IsTranscriber

from .completion import CompletionHandler
from .serializers import (
    CompleteSerializer, CounterSerializer, NegotiationSerializer, PriceQuoteSerializer,
    ProposeSerializer, RejectSerializer,
)
from .services import NegotiationService

logger = logging.getLogger(__name__)

error_responses = {
    400: 'Bad Request',
    401: 'Unauthorized',
    403: 'Forbidden',
    404: 'Not Found',
    409: 'Conflict (invalid state, lost race, not eligible, duplicate pending)',
}


class NegotiationCreateView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Send a negotiation request to an available transcriber.",
        request_body=ProposeSerializer,
        responses={201: NegotiationSerializer, **error_responses}
    )
    def post(self, request):
        serializer = ProposeSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        try:
            negotiation = NegotiationService().propose(
                request.user,
                data['transcriber_id'],
                data['proposed_price_usd'],
                data['deadline_hours'],
                requirements=data.get('requirements', ''),
                attachment=data.get('negotiation_files'),
                message=data.get('client_message'),
            )
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_201_CREATED)


class ClientNegotiationListView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(responses={200: NegotiationSerializer(many=True)})
    def get(self, request):
        negotiations = NegotiationService().list_for_client(request.user).select_related('client')
        return Response({"negotiations": NegotiationSerializer(negotiations, many=True).data},
                        status=status.HTTP_200_OK)


class TranscriberNegotiationListView(APIView):
    permission_classes = [IsAuthenticated, IsTranscriber]

    @swagger_auto_schema(responses={200: NegotiationSerializer(many=True)})
    def get(self, request):
        negotiations = NegotiationService().list_for_transcriber(request.user).select_related('transcriber')
        return Response({"negotiations": NegotiationSerializer(negotiations, many=True).data},
                        status=status.HTTP_200_OK)


class NegotiationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: NegotiationSerializer, 403: 'Forbidden', 404: 'Not Found'})
    def get(self, request, pk):
        try:
            negotiation = NegotiationService().get_for_party(pk, request.user)
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_200_OK)

    @swagger_auto_schema(
        operation_description="Delete a negotiation. Clients may delete any negotiation that is not "
                              "hired or completed; admins may delete any negotiation.",
        responses={204: 'Deleted', **error_responses}
    )
    def delete(self, request, pk):
        try:
            NegotiationService().delete(pk, request.user)
        except ScribeLinkError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class NegotiationAcceptView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Accept the current offer. Transcribers accept pending requests and client "
                              "counters, clients accept transcriber counters.",
        responses={200: NegotiationSerializer, **error_responses}
    )
    def put(self, request, pk):
        try:
            negotiation = NegotiationService().accept(pk, request.user)
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_200_OK)


class NegotiationCounterView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Counter with a new price. Deadline and attachment are kept unless resupplied.",
        request_body=CounterSerializer,
        responses={200: NegotiationSerializer, **error_responses}
    )
    def put(self, request, pk):
        serializer = CounterSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        try:
            negotiation = NegotiationService().counter(
                pk, request.user, data['proposed_price_usd'], data.get('message'),
                deadline_hours=data.get('deadline_hours'),
                attachment=data.get('negotiation_files'),
            )
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_200_OK)


class NegotiationRejectView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        request_body=RejectSerializer,
        responses={200: NegotiationSerializer, **error_responses}
    )
    def put(self, request, pk):
        serializer = RejectSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            negotiation = NegotiationService().reject(pk, request.user, serializer.validated_data.get('reason'))
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_200_OK)


class NegotiationCancelView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(responses={200: NegotiationSerializer, **error_responses})
    def put(self, request, pk):
        try:
            negotiation = NegotiationService().cancel(pk, request.user)
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_200_OK)


class NegotiationCompleteView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Mark a hired job complete and leave feedback for the transcriber.",
        request_body=CompleteSerializer,
        responses={200: NegotiationSerializer, 500: 'Could not save changes', **error_responses}
    )
    def post(self, request, pk):
        serializer = CompleteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            negotiation = CompletionHandler().complete(
                request.user, pk, serializer.validated_data['rating'], serializer.validated_data.get('comment')
            )
        except ScribeLinkError as e:
            return error_response(e)
        return Response(NegotiationSerializer(negotiation).data, status=status.HTTP_200_OK)


class PriceQuoteView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Quote a price per minute from the configured pricing rules.",
        query_serializer=PriceQuoteSerializer,
        responses={
            200: openapi.Schema(
                type=openapi.TYPE_OBJECT,
                properties={
                    'price_per_minute_usd': openapi.Schema(type=openapi.TYPE_STRING, x_nullable=True),
                    'estimated_total_usd': openapi.Schema(type=openapi.TYPE_STRING, x_nullable=True),
                }
            ),
            400: 'Bad Request'
        }
    )
    def get(self, request):
        serializer = PriceQuoteSerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        duration = data.get('duration_minutes')
        price = quote_price_per_minute(
            PlatformConfig.from_settings(),
            audio_quality=data.get('audio_quality') or None,
            deadline_type=data.get('deadline_type') or None,
            duration_minutes=duration,
            special_requirements=data.get('special_requirements') or [],
        )
        total = None
        if price is not None and duration:
            total = quantize(price * to_decimal(duration))
        return Response({
            "price_per_minute_usd": str(price) if price is not None else None,
            "estimated_total_usd": str(total) if total is not None else None,
        }, status=status.HTTP_200_OK)
