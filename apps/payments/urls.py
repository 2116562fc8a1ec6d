from django.urls import path
from .views import (
    InitializePaymentView, VerifyPaymentView, PaymentWebhookView, ClientPaymentHistoryView,
    TranscriberPaymentHistoryView, PayoutUpdateView
)

urlpatterns = [
    path('negotiations/<int:negotiation_id>/initialize/', InitializePaymentView.as_view(), name='payment_initialize'),
    path('negotiations/<int:negotiation_id>/verify/<str:reference>/', VerifyPaymentView.as_view(), name='payment_verify'),
    path('webhooks/<str:provider>/', PaymentWebhookView.as_view(), name='payment_webhook'),
    path('history/client/', ClientPaymentHistoryView.as_view(), name='client_payment_history'),
    path('history/transcriber/', TranscriberPaymentHistoryView.as_view(), name='transcriber_payment_history'),
    path('<int:pk>/payout/', PayoutUpdateView.as_view(), name='payment_payout'),
]
