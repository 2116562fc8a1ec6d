"""Payout split and per-minute price quotes.

Both are driven by configuration: ``PAYOUT_SPLIT_FUNCTION`` names the split
callable and ``PRICING_RULES`` holds the rate card.

A pricing rule is a dict such as::

    {
        "name": "Urgent, timestamps",
        "audio_quality": "excellent",           # optional
        "deadline_type": "urgent",              # optional
        "special_requirements": ["timestamps"], # optional, all must be requested
        "min_duration_minutes": 0,              # optional
        "max_duration_minutes": 60,             # optional
        "price_per_minute_usd": 0.75,
        "is_active": true
    }
"""
import logging
from decimal import InvalidOperation

from core.config import quantize, to_decimal

logger = logging.getLogger(__name__)


def fixed_share_split(amount, config):
    """Transcriber earns ``config.transcriber_share`` of the paid amount."""
    return amount * config.transcriber_share


def rule_specificity(rule):
    score = 0
    if rule.get('special_requirements'):
        score += 8
    if rule.get('audio_quality'):
        score += 4
    if rule.get('deadline_type'):
        score += 2
    if isinstance(rule.get('min_duration_minutes'), (int, float)) and rule['min_duration_minutes'] > 0:
        score += 1
    if isinstance(rule.get('max_duration_minutes'), (int, float)):
        score += 1
    return score


def rule_matches(rule, audio_quality=None, deadline_type=None, duration_minutes=None, special_requirements=()):
    if rule.get('audio_quality') and rule['audio_quality'] != audio_quality:
        return False
    if rule.get('deadline_type') and rule['deadline_type'] != deadline_type:
        return False
    required = rule.get('special_requirements') or []
    if not set(required).issubset(special_requirements or ()):
        return False

    minimum = rule.get('min_duration_minutes')
    maximum = rule.get('max_duration_minutes')
    if duration_minutes is not None and duration_minutes > 0:
        if isinstance(minimum, (int, float)) and duration_minutes < minimum:
            return False
        if isinstance(maximum, (int, float)) and duration_minutes > maximum:
            return False
    elif isinstance(minimum, (int, float)) and minimum > 0:
        return False
    return True


def quote_price_per_minute(config, audio_quality=None, deadline_type=None, duration_minutes=None,
                           special_requirements=()):
    """Price per minute in the canonical currency from the most specific matching
    active rule, or None when no rule applies."""
    rules = [rule for rule in config.pricing_rules if rule.get('is_active', True)]
    rules.sort(key=rule_specificity, reverse=True)

    for rule in rules:
        if not rule_matches(rule, audio_quality, deadline_type, duration_minutes, special_requirements):
            continue
        try:
            price = to_decimal(rule['price_per_minute_usd'])
        except (KeyError, InvalidOperation, TypeError, ValueError):
            logger.warning(f"Pricing rule '{rule.get('name')}' matched but has an invalid price")
            continue
        if price < 0:
            logger.warning(f"Pricing rule '{rule.get('name')}' matched but has a negative price")
            continue
        return quantize(price)

    logger.info(f"No pricing rule matched quality={audio_quality} deadline={deadline_type} duration={duration_minutes}")
    return None
