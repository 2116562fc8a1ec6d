from django.urls import path
from .views import (
    NegotiationCreateView, ClientNegotiationListView, TranscriberNegotiationListView,
    NegotiationDetailView, NegotiationAcceptView, NegotiationCounterView, NegotiationRejectView,
    NegotiationCancelView, NegotiationCompleteView, PriceQuoteView
)

urlpatterns = [
    path('', NegotiationCreateView.as_view(), name='negotiation_create'),
    path('client/', ClientNegotiationListView.as_view(), name='client_negotiations'),
    path('transcriber/', TranscriberNegotiationListView.as_view(), name='transcriber_negotiations'),
    path('pricing/quote/', PriceQuoteView.as_view(), name='price_quote'),
    path('<int:pk>/', NegotiationDetailView.as_view(), name='negotiation_detail'),
    path('<int:pk>/accept/', NegotiationAcceptView.as_view(), name='negotiation_accept'),
    path('<int:pk>/counter/', NegotiationCounterView.as_view(), name='negotiation_counter'),
    path('<int:pk>/reject/', NegotiationRejectView.as_view(), name='negotiation_reject'),
    path('<int:pk>/cancel/', NegotiationCancelView.as_view(), name='negotiation_cancel'),
    path('<int:pk>/complete/', NegotiationCompleteView.as_view(), name='negotiation_complete'),
]
