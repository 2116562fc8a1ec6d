from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.negotiations.completion import CompletionHandler
from apps.negotiations.models import Negotiation
from apps.negotiations.services import NegotiationService
from apps.payments.providers import ChargeHandle, ChargeStatus
from apps.payments.settlement import SettlementEngine
from apps.users.availability import AvailabilityCoordinator
from core.config import PlatformConfig
from core.exceptions import ProviderUnavailable


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, user_id, event_type, payload=None):
        self.events.append((user_id, event_type, payload or {}))

    def events_for(self, user_id):
        return [event for uid, event, _ in self.events if uid == user_id]

    def payload(self, user_id, event_type):
        for uid, event, payload in self.events:
            if uid == user_id and event == event_type:
                return payload
        return None


class FakeProvider:
    """Provider double: charges are registered by tests, nothing goes over HTTP."""
    name = 'paystack'
    currency = 'KES'

    def __init__(self):
        self.charges = {}
        self.initialized = []
        self.verify_calls = 0
        self.unavailable = False

    def add_charge(self, reference, amount, currency='KES', status='success', metadata=None):
        self.charges[reference] = ChargeStatus(
            reference=reference,
            status=status,
            amount=Decimal(str(amount)),
            currency=currency,
            paid_at=timezone.now(),
            metadata=metadata or {},
        )

    def initialize_charge(self, reference, amount, currency, customer, callback_url, metadata=None):
        self.initialized.append({'reference': reference, 'amount': amount, 'currency': currency,
                                 'customer': customer, 'metadata': metadata})
        return ChargeHandle(provider=self.name, reference=reference, amount=amount, currency=currency,
                            authorization_url=f'https://checkout.test/{reference}')

    def verify_charge(self, reference):
        self.verify_calls += 1
        if self.unavailable:
            raise ProviderUnavailable()
        return self.charges[reference]


@pytest.fixture(autouse=True)
def platform_settings(settings, tmp_path):
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.NOTIFICATION_SINKS = ['apps.notifications.sinks.EmailSink']
    settings.CANONICAL_CURRENCY = 'USD'
    settings.EXCHANGE_RATES = {'KES': '129.00', 'NGN': '1550.00', 'ETB': '57.00'}
    settings.TRANSCRIBER_SHARE = '0.80'
    settings.PAYOUT_SPLIT_FUNCTION = 'apps.payments.pricing.fixed_share_split'
    settings.PRICING_RULES = []
    settings.PAYMENT_PROVIDER_TIMEOUT = 5.0
    settings.PAYMENT_CALLBACK_URL = 'https://scribelink.test/payment-callback'
    settings.PAYMENT_PROVIDERS = {
        'paystack': {'SECRET_KEY': 'sk_test_paystack', 'BASE_URL': 'https://api.paystack.test', 'CURRENCY': 'KES'},
        'korapay': {'SECRET_KEY': 'sk_test_korapay', 'PUBLIC_KEY': 'pk_test_korapay',
                    'BASE_URL': 'https://api.korapay.test/merchant/api/v1',
                    'WEBHOOK_URL': 'https://scribelink.test/payments/webhooks/korapay/', 'CURRENCY': 'KES'},
        'chapa': {'SECRET_KEY': 'sk_test_chapa', 'BASE_URL': 'https://api.chapa.test/v1',
                  'WEBHOOK_SECRET': 'whsec_chapa', 'CURRENCY': 'ETB'},
    }
    settings.TWILIO_ACCOUNT_SID = ''
    settings.TWILIO_AUTH_TOKEN = ''
    return settings


@pytest.fixture
def config(platform_settings):
    return PlatformConfig.from_settings()


@pytest.fixture
def make_user(django_user_model):
    counter = {'n': 0}

    def _make(user_type='client', **fields):
        counter['n'] += 1
        username = fields.pop('username', f"{user_type}{counter['n']}")
        defaults = {
            'email': f"{username}@example.com",
            'first_name': username.capitalize(),
            'user_type': user_type,
        }
        if user_type == 'transcriber':
            defaults.update(is_online=True, is_available=True, transcriber_status='active')
        defaults.update(fields)
        return django_user_model.objects.create_user(username=username, password='pass1234', **defaults)

    return _make


@pytest.fixture
def client_user(make_user):
    return make_user('client', username='alice')


@pytest.fixture
def transcriber(make_user):
    return make_user('transcriber', username='tom')


@pytest.fixture
def other_client(make_user):
    return make_user('client', username='carol')


@pytest.fixture
def staff_admin(make_user):
    return make_user('admin', username='root', is_staff=True)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def availability(config):
    return AvailabilityCoordinator(config)


@pytest.fixture
def service(config, availability, notifier):
    return NegotiationService(config=config, availability=availability, notifier=notifier)


@pytest.fixture
def engine(config, availability, notifier, fake_provider):
    return SettlementEngine(config=config, availability=availability, notifier=notifier,
                            providers={'paystack': fake_provider})


@pytest.fixture
def completion(config, availability, notifier):
    return CompletionHandler(config=config, availability=availability, notifier=notifier)


@pytest.fixture
def make_negotiation():
    def _make(client, transcriber, status='pending', price='50.00', deadline_hours=24, **fields):
        return Negotiation.objects.create(
            client=client,
            transcriber=transcriber,
            status=status,
            requirements=fields.pop('requirements', 'Interview, two speakers'),
            agreed_price_usd=Decimal(price),
            deadline_hours=deadline_hours,
            due_date=timezone.now() + timedelta(hours=deadline_hours),
            **fields,
        )
    return _make


@pytest.fixture
def accepted_negotiation(make_negotiation, client_user, transcriber):
    return make_negotiation(client_user, transcriber, status='accepted_awaiting_payment', price='65.00')


@pytest.fixture
def hired_negotiation(engine, fake_provider, accepted_negotiation):
    reference = f'NEG-{accepted_negotiation.pk}-abc123'
    fake_provider.add_charge(reference, '8385.00', 'KES')
    engine.verify(reference, accepted_negotiation.pk, 'paystack')
    accepted_negotiation.refresh_from_db()
    return accepted_negotiation


@pytest.fixture
def api_client():
    return APIClient()
