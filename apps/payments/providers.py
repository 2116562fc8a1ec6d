"""Payment provider clients behind one contract.

``initialize_charge`` returns a ``ChargeHandle`` the client uses to pay,
``verify_charge`` returns a ``ChargeStatus`` with the amount in major units.
Timeouts, connection errors and provider 5xx answers raise
``ProviderUnavailable`` (retry with the same reference); a declined or
unknown charge raises ``PaymentNotSuccessful``.
"""
import hashlib
import hmac
import json
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import requests
from django.utils.dateparse import parse_datetime

from core.config import quantize, to_decimal
from core.exceptions import PaymentNotSuccessful, ProviderUnavailable, ValidationFailed

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r'^NEG-(?P<negotiation_id>\d+)-[0-9a-f]+$')


def negotiation_id_from_reference(reference):
    match = REFERENCE_RE.match(reference or '')
    return int(match.group('negotiation_id')) if match else None


@dataclass
class ChargeHandle:
    provider: str
    reference: str
    amount: Decimal
    currency: str
    authorization_url: Optional[str] = None
    data: dict = field(default_factory=dict)

    def as_dict(self):
        return {
            'provider': self.provider,
            'reference': self.reference,
            'amount': str(self.amount),
            'currency': self.currency,
            'authorization_url': self.authorization_url,
            'data': self.data,
        }


@dataclass
class ChargeStatus:
    reference: str
    status: str
    amount: Decimal
    currency: str
    paid_at: Optional[object] = None
    metadata: dict = field(default_factory=dict)
    message: str = ''

    @property
    def succeeded(self):
        return self.status == 'success'


class PaymentProvider:
    name = None
    signature_header = None

    def __init__(self, settings, timeout=15.0):
        self.settings = settings or {}
        self.timeout = timeout

    @property
    def secret_key(self):
        return (self.settings.get('SECRET_KEY') or '').strip()

    @property
    def base_url(self):
        return (self.settings.get('BASE_URL') or '').rstrip('/')

    @property
    def currency(self):
        return self.settings.get('CURRENCY')

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json',
        }

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error(f"{self.name} request to {url} timed out: {str(e)}")
            raise ProviderUnavailable(f"{self.name} did not respond in time.") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.name} request to {url} failed: {str(e)}")
            raise ProviderUnavailable(f"Could not reach {self.name}.") from e

        if response.status_code >= 500:
            logger.error(f"{self.name} server error {response.status_code}: {response.text}")
            raise ProviderUnavailable(f"{self.name} is unavailable.")
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"{self.name} returned a non-JSON response: {response.text}")
            raise ProviderUnavailable(f"{self.name} returned an unreadable response.") from e
        if response.status_code >= 400:
            logger.error(f"{self.name} rejected request to {url}: {data}")
            raise PaymentNotSuccessful(data.get('message') or f"{self.name} rejected the request.")
        return data

    def _hmac(self, digestmod, secret, message):
        return hmac.new(secret.encode('utf-8'), message, digestmod).hexdigest()

    def verify_signature(self, headers, body):
        headers = {key.lower(): value for key, value in headers.items()}
        signature = headers.get(self.signature_header.lower())
        secret = self.webhook_secret
        if not signature or not secret:
            return False
        return hmac.compare_digest(self.compute_signature(secret, body), signature)

    @property
    def webhook_secret(self):
        return self.secret_key

    def compute_signature(self, secret, body):
        raise NotImplementedError

    def initialize_charge(self, reference, amount, currency, customer, callback_url, metadata=None):
        raise NotImplementedError

    def verify_charge(self, reference):
        raise NotImplementedError

    def parse_webhook(self, payload):
        raise NotImplementedError


class PaystackProvider(PaymentProvider):
    name = 'paystack'
    signature_header = 'x-paystack-signature'

    def initialize_charge(self, reference, amount, currency, customer, callback_url, metadata=None):
        payload = {
            'email': customer.get('email'),
            # Paystack amounts are in the minor unit.
            'amount': int(quantize(amount) * 100),
            'currency': currency,
            'reference': reference,
            'callback_url': callback_url,
            'metadata': metadata or {},
        }
        logger.info(f"Initializing Paystack charge {reference} for {amount} {currency}")
        data = self._request('POST', '/transaction/initialize', json=payload)
        if not data.get('status'):
            logger.error(f"Paystack initialization failed: {data}")
            raise PaymentNotSuccessful(data.get('message') or 'Failed to initialize payment with Paystack.')
        return ChargeHandle(
            provider=self.name,
            reference=reference,
            amount=quantize(amount),
            currency=currency,
            authorization_url=data['data'].get('authorization_url'),
            data=data['data'],
        )

    def verify_charge(self, reference):
        data = self._request('GET', f'/transaction/verify/{reference}')
        transaction = data.get('data') or {}
        if not data.get('status') or not transaction:
            raise PaymentNotSuccessful(data.get('message') or 'Payment verification failed.')
        return ChargeStatus(
            reference=transaction.get('reference', reference),
            status=transaction.get('status', ''),
            amount=to_decimal(transaction.get('amount', 0)) / 100,
            currency=transaction.get('currency', ''),
            paid_at=parse_datetime(transaction['paid_at']) if transaction.get('paid_at') else None,
            metadata=transaction.get('metadata') or {},
            message=transaction.get('gateway_response') or '',
        )

    def compute_signature(self, secret, body):
        return self._hmac(hashlib.sha512, secret, body)

    def parse_webhook(self, payload):
        if payload.get('event') != 'charge.success':
            return None
        return (payload.get('data') or {}).get('reference')


class KoraPayProvider(PaymentProvider):
    """KoraPay checkout runs client side; initialize only prepares its parameters."""
    name = 'korapay'
    signature_header = 'x-korapay-signature'

    def initialize_charge(self, reference, amount, currency, customer, callback_url, metadata=None):
        if not self.settings.get('PUBLIC_KEY'):
            raise ValidationFailed("KoraPay is not configured.")
        data = {
            'key': self.settings['PUBLIC_KEY'],
            'reference': reference,
            'amount': str(quantize(amount)),
            'currency': currency,
            'customer': {
                'name': customer.get('name'),
                'email': customer.get('email'),
            },
            'notification_url': self.settings.get('WEBHOOK_URL'),
            'redirect_url': callback_url,
            'metadata': metadata or {},
        }
        logger.info(f"Prepared KoraPay checkout {reference} for {amount} {currency}")
        return ChargeHandle(provider=self.name, reference=reference, amount=quantize(amount),
                            currency=currency, data=data)

    def verify_charge(self, reference):
        data = self._request('GET', f'/charges/{reference}')
        charge = data.get('data') or {}
        if not data.get('status') or not charge:
            raise PaymentNotSuccessful(data.get('message') or 'Payment verification failed.')
        paid_at = charge.get('transaction_date') or charge.get('paid_at')
        return ChargeStatus(
            reference=charge.get('reference', reference),
            status=charge.get('status', ''),
            amount=to_decimal(charge.get('amount', 0)),
            currency=charge.get('currency', ''),
            paid_at=parse_datetime(paid_at) if paid_at else None,
            metadata=charge.get('metadata') or {},
            message=data.get('message') or '',
        )

    def compute_signature(self, secret, body):
        # KoraPay signs the "data" object only, serialized without whitespace.
        try:
            payload = json.loads(body)
        except ValueError:
            return ''
        message = json.dumps(payload.get('data'), separators=(',', ':')).encode('utf-8')
        return self._hmac(hashlib.sha256, secret, message)

    def parse_webhook(self, payload):
        if payload.get('event') != 'charge.success':
            return None
        return (payload.get('data') or {}).get('reference')


class ChapaProvider(PaymentProvider):
    name = 'chapa'
    signature_header = 'Chapa-Signature'

    @property
    def webhook_secret(self):
        return (self.settings.get('WEBHOOK_SECRET') or '').strip()

    def initialize_charge(self, reference, amount, currency, customer, callback_url, metadata=None):
        first_name, _, last_name = (customer.get('name') or '').partition(' ')
        payload = {
            'amount': str(quantize(amount)),
            'currency': currency,
            'email': customer.get('email'),
            'first_name': first_name,
            'last_name': last_name,
            'phone_number': customer.get('phone_number') or '',
            'tx_ref': reference,
            'callback_url': callback_url,
            'meta': metadata or {},
            'customization': {
                'title': 'ScribeLink Job'[:16],
                'description': f"Payment for {reference}",
            },
        }
        logger.info(f"Sending Chapa request for {reference}")
        data = self._request('POST', '/transaction/initialize', json=payload)
        if data.get('status') != 'success':
            logger.error(f"Chapa initialization failed: {data}")
            raise PaymentNotSuccessful(f"Chapa initialization failed: {data.get('message', 'Unknown error')}")
        return ChargeHandle(
            provider=self.name,
            reference=reference,
            amount=quantize(amount),
            currency=currency,
            authorization_url=data['data'].get('checkout_url'),
            data=data['data'],
        )

    def verify_charge(self, reference):
        data = self._request('GET', f'/transaction/verify/{reference}')
        transaction = data.get('data') or {}
        if data.get('status') != 'success' or not transaction:
            raise PaymentNotSuccessful(data.get('message') or 'Payment verification failed.')
        paid_at = transaction.get('updated_at') or transaction.get('created_at')
        return ChargeStatus(
            reference=transaction.get('tx_ref', reference),
            status=transaction.get('status', ''),
            amount=to_decimal(transaction.get('amount', 0)),
            currency=transaction.get('currency', ''),
            paid_at=parse_datetime(paid_at) if paid_at else None,
            metadata=transaction.get('meta') or {},
            message=data.get('message') or '',
        )

    def compute_signature(self, secret, body):
        return self._hmac(hashlib.sha256, secret, body)

    def parse_webhook(self, payload):
        if payload.get('status') not in (None, 'success'):
            return None
        return payload.get('tx_ref') or payload.get('reference')


PROVIDERS = {
    PaystackProvider.name: PaystackProvider,
    KoraPayProvider.name: KoraPayProvider,
    ChapaProvider.name: ChapaProvider,
}


def get_provider(name, config):
    try:
        provider_class = PROVIDERS[name]
    except KeyError:
        raise ValidationFailed(f"Unsupported payment provider: {name}.")
    return provider_class(config.provider_settings(name), timeout=config.provider_timeout)
