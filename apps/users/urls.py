from django.urls import path
from .views import (
    AuthLoginView, UserProfileView, AvailableTranscribersView, OnlineStatusView, AvailabilityStatusView,
    ClientRatingView,
)

urlpatterns = [
    path('auth/login/', AuthLoginView.as_view(), name='auth_login'),
    path('me/', UserProfileView.as_view(), name='user_profile'),
    path('me/online-status/', OnlineStatusView.as_view(), name='user_online_status'),
    path('me/availability-status/', AvailabilityStatusView.as_view(), name='user_availability_status'),
    path('transcribers/available/', AvailableTranscribersView.as_view(), name='available_transcribers'),
    path('clients/<int:client_id>/ratings/', ClientRatingView.as_view(), name='client_rating'),
]
