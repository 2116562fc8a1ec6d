"""Platform configuration gathered once from Django settings.

Components receive a ``PlatformConfig`` when they are constructed instead of
reading ``django.conf.settings`` while handling a request, so a rate snapshot
or payout rule is fixed for the lifetime of the component using it.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.utils.module_loading import import_string

from core.exceptions import ValidationFailed

CENT = Decimal('0.01')
HALF_CENT = Decimal('0.005')


def to_decimal(value):
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(amount):
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_match(a, b):
    """Equal within half a minor unit of the currency."""
    return abs(to_decimal(a) - to_decimal(b)) <= HALF_CENT


@dataclass(frozen=True)
class PlatformConfig:
    canonical_currency: str = 'USD'
    # Units of the foreign currency per one unit of the canonical currency.
    exchange_rates: dict = field(default_factory=dict)
    transcriber_share: Decimal = Decimal('0.80')
    payout_split_function: str = 'apps.payments.pricing.fixed_share_split'
    pricing_rules: tuple = ()
    provider_timeout: float = 15.0
    callback_url: str = ''
    providers: dict = field(default_factory=dict)
    eligible_transcriber_status: str = 'active'
    listing_excluded_levels: tuple = ('trainee',)

    @classmethod
    def from_settings(cls):
        rates = {
            code.upper(): to_decimal(rate)
            for code, rate in getattr(settings, 'EXCHANGE_RATES', {}).items()
        }
        return cls(
            canonical_currency=settings.CANONICAL_CURRENCY.upper(),
            exchange_rates=rates,
            transcriber_share=to_decimal(settings.TRANSCRIBER_SHARE),
            payout_split_function=settings.PAYOUT_SPLIT_FUNCTION,
            pricing_rules=tuple(settings.PRICING_RULES),
            provider_timeout=float(settings.PAYMENT_PROVIDER_TIMEOUT),
            callback_url=settings.PAYMENT_CALLBACK_URL,
            providers=dict(settings.PAYMENT_PROVIDERS),
        )

    def rate_for(self, currency):
        currency = (currency or '').upper()
        if currency == self.canonical_currency:
            return Decimal('1')
        try:
            return self.exchange_rates[currency]
        except KeyError:
            raise ValidationFailed(f"No exchange rate configured for {currency or 'unknown currency'}.")

    def to_canonical(self, amount, currency):
        return quantize(to_decimal(amount) / self.rate_for(currency))

    def from_canonical(self, amount, currency):
        return quantize(to_decimal(amount) * self.rate_for(currency))

    def transcriber_earning(self, amount):
        split = import_string(self.payout_split_function)
        return quantize(split(to_decimal(amount), self))

    def provider_settings(self, name):
        return self.providers.get(name, {})
