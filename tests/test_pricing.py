from dataclasses import replace
from decimal import Decimal

import pytest

from apps.payments.pricing import fixed_share_split, quote_price_per_minute, rule_specificity
from core.config import PlatformConfig, amounts_match

RULES = (
    {'name': 'Base', 'price_per_minute_usd': 0.50, 'is_active': True},
    {'name': 'Urgent', 'deadline_type': 'urgent', 'price_per_minute_usd': 0.90, 'is_active': True},
    {'name': 'Difficult audio', 'audio_quality': 'difficult', 'price_per_minute_usd': 1.10, 'is_active': True},
    {'name': 'Timestamps', 'special_requirements': ['timestamps'], 'price_per_minute_usd': 1.25, 'is_active': True},
    {'name': 'Long files', 'min_duration_minutes': 120, 'price_per_minute_usd': 0.40, 'is_active': True},
    {'name': 'Retired', 'audio_quality': 'excellent', 'price_per_minute_usd': 0.10, 'is_active': False},
)


@pytest.fixture
def rated_config():
    return PlatformConfig(pricing_rules=RULES)


def test_fixed_share_split():
    config = PlatformConfig(transcriber_share=Decimal('0.80'))
    assert fixed_share_split(Decimal('65.00'), config) == Decimal('52.0000')
    assert config.transcriber_earning(Decimal('65.00')) == Decimal('52.00')


def test_split_function_is_configurable():
    config = PlatformConfig(payout_split_function='tests.test_pricing.flat_fee_split')
    assert config.transcriber_earning(Decimal('65.00')) == Decimal('60.00')


def flat_fee_split(amount, config):
    return amount - Decimal('5')


def test_specificity_order():
    scores = [rule_specificity(rule) for rule in RULES]
    assert scores == [0, 2, 4, 8, 1, 4]


@pytest.mark.parametrize('params,expected', [
    ({}, Decimal('0.50')),
    ({'deadline_type': 'urgent'}, Decimal('0.90')),
    ({'deadline_type': 'urgent', 'audio_quality': 'difficult'}, Decimal('1.10')),
    ({'audio_quality': 'difficult', 'special_requirements': ['timestamps', 'full_verbatim']}, Decimal('1.25')),
    ({'duration_minutes': 180}, Decimal('0.40')),
    ({'duration_minutes': 30}, Decimal('0.50')),
    ({'audio_quality': 'excellent'}, Decimal('0.50')),
])
def test_quote_picks_most_specific_matching_rule(rated_config, params, expected):
    assert quote_price_per_minute(rated_config, **params) == expected


def test_no_rules_no_quote():
    assert quote_price_per_minute(PlatformConfig()) is None


def test_invalid_rule_price_is_skipped(rated_config):
    config = replace(rated_config, pricing_rules=(
        {'name': 'Broken', 'deadline_type': 'urgent', 'price_per_minute_usd': 'n/a'},
    ) + RULES)
    assert quote_price_per_minute(config, deadline_type='urgent') == Decimal('0.90')


def test_max_duration_bound():
    config = PlatformConfig(pricing_rules=(
        {'name': 'Short', 'max_duration_minutes': 10, 'price_per_minute_usd': 2},
    ))
    assert quote_price_per_minute(config, duration_minutes=5) == Decimal('2.00')
    assert quote_price_per_minute(config, duration_minutes=15) is None


def test_currency_conversion_through_rate_snapshot():
    config = PlatformConfig(exchange_rates={'KES': Decimal('129.00')})
    assert config.from_canonical(Decimal('65.00'), 'KES') == Decimal('8385.00')
    assert config.to_canonical(Decimal('8385.00'), 'kes') == Decimal('65.00')
    assert config.to_canonical(Decimal('65.00'), 'USD') == Decimal('65.00')


@pytest.mark.parametrize('a,b,match', [
    ('65.00', '65.00', True),
    ('65.00', '65.005', True),
    ('65.00', '65.006', False),
    ('40.00', '65.00', False),
])
def test_amounts_match_within_half_a_cent(a, b, match):
    assert amounts_match(Decimal(a), Decimal(b)) is match
