import logging

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ScribeLinkError, error_response
from core.utils import IsAdmin, IsClient, IsTranscriber

from . import directory
from .availability import AvailabilityCoordinator
from .serializers import (
    AvailableTranscriberSerializer, ClientRatingSerializer, LoginSerializer, StatusToggleSerializer, UserSerializer,
)

logger = logging.getLogger(__name__)

toggle_body = openapi.Schema(
    type=openapi.TYPE_OBJECT,
    required=['value'],
    properties={'value': openapi.Schema(type=openapi.TYPE_BOOLEAN)},
)


class AuthLoginView(APIView):
    permission_classes = []

    @swagger_auto_schema(
        request_body=LoginSerializer,
        responses={
            200: openapi.Response(
                description='Login successful',
                schema=openapi.Schema(
                    type=openapi.TYPE_OBJECT,
                    properties={
                        'token': openapi.Schema(type=openapi.TYPE_STRING),
                        'user': openapi.Schema(type=openapi.TYPE_OBJECT),
                    }
                )
            ),
            400: 'Bad Request'
        }
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        user = serializer.validated_data['user']
        token, _ = Token.objects.get_or_create(user=user)
        AvailabilityCoordinator().set_online(user, True)
        user.refresh_from_db()
        return Response({"token": token.key, "user": UserSerializer(user).data}, status=status.HTTP_200_OK)


class UserProfileView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(responses={200: UserSerializer, 401: 'Unauthorized'})
    def get(self, request):
        return Response(UserSerializer(request.user).data, status=status.HTTP_200_OK)


class AvailableTranscribersView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Transcribers who can receive a negotiation request right now, best rated first.",
        responses={200: AvailableTranscriberSerializer(many=True), 401: 'Unauthorized', 403: 'Forbidden'}
    )
    def get(self, request):
        transcribers = AvailabilityCoordinator().listed_transcribers()
        serializer = AvailableTranscriberSerializer(transcribers, many=True)
        return Response({"transcribers": serializer.data}, status=status.HTTP_200_OK)


class OnlineStatusView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Set online presence. Going offline also marks the user unavailable.",
        request_body=toggle_body,
        responses={200: UserSerializer, 400: 'Bad Request'}
    )
    def put(self, request):
        serializer = StatusToggleSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        AvailabilityCoordinator().set_online(request.user, serializer.validated_data['value'])
        request.user.refresh_from_db()
        return Response(UserSerializer(request.user).data, status=status.HTTP_200_OK)


class AvailabilityStatusView(APIView):
    permission_classes = [IsAuthenticated, IsTranscriber]

    @swagger_auto_schema(
        operation_description="Toggle whether the transcriber accepts new negotiation requests.",
        request_body=toggle_body,
        responses={200: UserSerializer, 400: 'Bad Request', 403: 'Forbidden'}
    )
    def put(self, request):
        serializer = StatusToggleSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        AvailabilityCoordinator().set_available(request.user, serializer.validated_data['value'])
        request.user.refresh_from_db()
        return Response(UserSerializer(request.user).data, status=status.HTTP_200_OK)


class ClientRatingView(APIView):
    permission_classes = [IsAuthenticated, IsAdmin]

    @swagger_auto_schema(
        operation_description="Admin rates a client. Each admin can rate a client once.",
        request_body=ClientRatingSerializer,
        responses={
            201: openapi.Schema(
                type=openapi.TYPE_OBJECT,
                properties={
                    'message': openapi.Schema(type=openapi.TYPE_STRING),
                    'score': openapi.Schema(type=openapi.TYPE_INTEGER),
                    'average_rating': openapi.Schema(type=openapi.TYPE_STRING),
                }
            ),
            400: 'Bad Request', 403: 'Forbidden', 404: 'Client not found', 409: 'Already rated'
        }
    )
    def post(self, request, client_id):
        serializer = ClientRatingSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            rating, average = directory.rate_client(
                request.user, client_id, serializer.validated_data['score'], serializer.validated_data.get('comment')
            )
        except ScribeLinkError as e:
            return error_response(e)
        return Response({
            "message": "Client rated successfully.",
            "score": rating.score,
            "average_rating": str(average),
        }, status=status.HTTP_201_CREATED)
