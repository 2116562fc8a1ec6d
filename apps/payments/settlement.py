"""Settlement of accepted negotiations.

``initialize`` asks a provider for a charge without touching the negotiation.
``verify`` records the charge: the Payment insert, the ``hired`` transition
and the transcriber lock commit together or not at all. The provider's
reference is the idempotency key, so re-running ``verify`` (user poll,
duplicate webhook, retry after ``ProviderUnavailable``) never creates a
second Payment. Once a negotiation is paid, verifying any of its references
returns the recorded Payment; a second successful charge is queued for refund
as a reconciliation item.
"""
import json
import logging
import uuid
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from apps.management.models import ManagementLog
from apps.negotiations.models import Negotiation
from apps.notifications.notifier import Notifier
from apps.users.availability import AvailabilityCoordinator
from core.config import PlatformConfig, amounts_match, quantize, to_decimal
from core.exceptions import (
    AmountMismatch, InvalidState, NotEligible, NotFound, PaymentNotSuccessful,
    PersistenceError, Unauthorized, ValidationFailed,
)

from .models import Payment, ReconciliationItem
from .providers import get_provider, negotiation_id_from_reference

logger = logging.getLogger(__name__)

SETTLED_STATUSES = ('hired', 'completed')


def week_ending_friday(day):
    return day + timedelta(days=(4 - day.weekday()) % 7)


def _total(payments, field):
    return quantize(payments.aggregate(total=Sum(field))['total'] or Decimal('0'))


class SettlementEngine:

    def __init__(self, config=None, availability=None, notifier=None, providers=None):
        self.config = config or PlatformConfig.from_settings()
        self.availability = availability or AvailabilityCoordinator(self.config)
        self.notifier = notifier or Notifier()
        self._providers = dict(providers or {})

    def provider(self, name):
        if name not in self._providers:
            self._providers[name] = get_provider(name, self.config)
        return self._providers[name]

    def _get_negotiation(self, negotiation):
        if isinstance(negotiation, Negotiation):
            return negotiation
        try:
            return Negotiation.objects.select_related('client', 'transcriber').get(pk=negotiation)
        except Negotiation.DoesNotExist:
            raise NotFound("Negotiation not found.")

    def initialize(self, negotiation, client, client_email, amount, payer_currency=None, provider='paystack'):
        negotiation = self._get_negotiation(negotiation)
        if negotiation.party_role(client) != 'client':
            raise Unauthorized("Only the client of this negotiation can pay for it.")
        if negotiation.status != 'accepted_awaiting_payment':
            raise InvalidState(f"Negotiation is '{negotiation.status}', payment requires an accepted negotiation.")
        if not client_email:
            raise ValidationFailed("Client email is required.")
        try:
            amount = to_decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationFailed("Invalid payment amount.")
        if not amounts_match(amount, negotiation.agreed_price_usd):
            logger.error(f"Payment amount mismatch for negotiation {negotiation.pk}: {amount} vs {negotiation.agreed_price_usd}")
            raise AmountMismatch(
                f"Payment amount {amount} does not match the agreed price {negotiation.agreed_price_usd}."
            )

        gateway = self.provider(provider)
        currency = (payer_currency or gateway.currency or self.config.canonical_currency).upper()
        rate = self.config.rate_for(currency)
        charge_amount = self.config.from_canonical(negotiation.agreed_price_usd, currency)
        reference = f"NEG-{negotiation.pk}-{uuid.uuid4().hex[:12]}"

        handle = gateway.initialize_charge(
            reference,
            charge_amount,
            currency,
            customer={
                'email': client_email,
                'name': client.full_name,
                'phone_number': client.phone_number,
            },
            callback_url=self.config.callback_url,
            metadata={
                'negotiation_id': negotiation.pk,
                'client_id': client.pk,
                'agreed_price': str(negotiation.agreed_price_usd),
                'canonical_currency': self.config.canonical_currency,
                'exchange_rate': str(rate),
            },
        )
        logger.info(f"Initialized {provider} charge {reference} for negotiation {negotiation.pk}: {charge_amount} {currency}")
        return handle

    def verify(self, reference, negotiation_id=None, provider='paystack'):
        """Record a successful charge. Returns ``(payment, created)``."""
        reference_negotiation_id = negotiation_id_from_reference(reference)
        if negotiation_id is None:
            negotiation_id = reference_negotiation_id
        if negotiation_id is None:
            raise ValidationFailed("Reference does not identify a negotiation.")
        negotiation_id = int(negotiation_id)
        if reference_negotiation_id is not None and reference_negotiation_id != negotiation_id:
            raise PaymentNotSuccessful("This payment belongs to another negotiation.")

        existing = Payment.objects.filter(provider_reference=reference).first()
        if existing is not None:
            if existing.negotiation_id not in (None, negotiation_id):
                raise PaymentNotSuccessful("This payment belongs to another negotiation.")
            ReconciliationItem.resolve_reference(reference)
            logger.info(f"Payment {reference} already recorded, verify is a no-op")
            return existing, False

        negotiation = self._get_negotiation(negotiation_id)
        if negotiation.status in SETTLED_STATUSES:
            paid = Payment.objects.filter(negotiation_id=negotiation_id).first()
            if paid is not None:
                logger.info(f"Negotiation {negotiation_id} already paid under {paid.provider_reference}, "
                            f"verify of {reference} is a no-op")
                return paid, False

        charge = self.provider(provider).verify_charge(reference)
        if not charge.succeeded:
            logger.warning(f"Charge {reference} not successful: {charge.status} {charge.message}")
            raise PaymentNotSuccessful(charge.message or f"Payment status is '{charge.status}'.")
        charged_for = charge.metadata.get('negotiation_id') if isinstance(charge.metadata, dict) else None
        if charged_for is not None and str(charged_for) != str(negotiation_id):
            raise PaymentNotSuccessful("This payment belongs to another negotiation.")

        rate = self.config.rate_for(charge.currency)
        amount = self.config.to_canonical(charge.amount, charge.currency)
        if not amounts_match(amount, negotiation.agreed_price_usd):
            logger.error(
                f"Charge {reference} converts to {amount} {self.config.canonical_currency}, "
                f"negotiation {negotiation_id} expects {negotiation.agreed_price_usd}"
            )
            raise AmountMismatch(
                f"Paid amount {amount} does not match the agreed price {negotiation.agreed_price_usd}."
            )
        earning = self.config.transcriber_earning(amount)

        try:
            payment, created = self._record(reference, negotiation_id, provider, charge, amount, rate, earning)
        except IntegrityError as e:
            payment = Payment.objects.filter(provider_reference=reference).first() or \
                Payment.objects.filter(negotiation_id=negotiation_id).first()
            if payment is None:
                self._reconcile(provider, reference, negotiation_id, 'persistence_error', str(e))
                raise PersistenceError("Payment could not be recorded, retry verification.") from e
            logger.info(f"Payment for negotiation {negotiation_id} was recorded concurrently")
            created = False
        except InvalidState as e:
            self._reconcile(provider, reference, negotiation_id, 'negotiation_not_payable', str(e))
            raise
        except NotEligible as e:
            self._reconcile(provider, reference, negotiation_id, 'transcriber_engaged', str(e))
            raise
        except (DatabaseError, PersistenceError) as e:
            self._reconcile(provider, reference, negotiation_id, 'persistence_error', str(e))
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError("Payment could not be recorded, retry verification.") from e

        if payment.provider_reference != reference:
            self._reconcile(
                provider, reference, negotiation_id, ReconciliationItem.DUPLICATE_CHARGE,
                f"Negotiation already paid under {payment.provider_reference}.",
            )
            return payment, False

        ReconciliationItem.resolve_reference(reference)
        if created:
            self._notify_hired(payment)
        return payment, created

    def _record(self, reference, negotiation_id, provider, charge, amount, rate, earning):
        with transaction.atomic():
            negotiation = Negotiation.objects.select_for_update().get(pk=negotiation_id)
            if negotiation.status in SETTLED_STATUSES:
                payment = Payment.objects.filter(negotiation_id=negotiation_id).first()
                if payment is not None:
                    return payment, False
                raise InvalidState(f"Negotiation {negotiation_id} is '{negotiation.status}' without a payment.")
            if negotiation.status != 'accepted_awaiting_payment':
                raise InvalidState(f"Negotiation {negotiation_id} is '{negotiation.status}' and cannot be paid.")

            payment = Payment.objects.create(
                negotiation=negotiation,
                client_id=negotiation.client_id,
                transcriber_id=negotiation.transcriber_id,
                amount=amount,
                currency=self.config.canonical_currency,
                amount_paid=quantize(charge.amount),
                currency_paid=charge.currency.upper(),
                exchange_rate_used=rate,
                transcriber_earning=earning,
                provider=provider,
                provider_reference=reference,
                provider_status=charge.status,
                transaction_date=charge.paid_at or timezone.now(),
            )
            updated = Negotiation.objects.filter(pk=negotiation_id, status='accepted_awaiting_payment').update(
                status='hired', updated_at=timezone.now()
            )
            if not updated:
                raise InvalidState(f"Negotiation {negotiation_id} changed while recording payment.")
            self.availability.acquire(negotiation.transcriber_id, negotiation_id)

        logger.info(f"Negotiation {negotiation_id} hired, payment {reference} recorded ({amount} {payment.currency})")
        return payment, True

    def _reconcile(self, provider, reference, negotiation_id, reason, detail):
        logger.error(f"Reconciliation needed for {provider} charge {reference} (negotiation {negotiation_id}): {reason} {detail}")
        try:
            ReconciliationItem.objects.create(
                provider=provider, reference=reference, negotiation_id=negotiation_id,
                reason=reason, detail=detail,
            )
        except DatabaseError as e:
            logger.error(f"Failed to write reconciliation item for {reference}: {str(e)}")

    def _notify_hired(self, payment):
        negotiation = payment.negotiation
        self._notify(payment.client_id, 'payment_successful', {
            'negotiation_id': negotiation.pk,
            'amount': payment.amount,
            'currency': payment.currency,
            'reference': payment.provider_reference,
            'due_date': negotiation.due_date,
        })
        self._notify(payment.transcriber_id, 'job_hired', {
            'negotiation_id': negotiation.pk,
            'earning': payment.transcriber_earning,
            'currency': payment.currency,
            'due_date': negotiation.due_date,
        })

    def handle_webhook(self, provider, headers, body):
        """Verify a signed provider callback. Returns ``(payment, created)`` or
        None when the event is not a successful charge of a negotiation."""
        gateway = self.provider(provider)
        if not gateway.verify_signature(headers, body):
            logger.error(f"Invalid {provider} webhook signature")
            raise Unauthorized("Invalid webhook signature.")
        try:
            payload = json.loads(body)
        except ValueError:
            raise ValidationFailed("Webhook body is not valid JSON.")

        reference = gateway.parse_webhook(payload)
        negotiation_id = negotiation_id_from_reference(reference)
        if reference is None or negotiation_id is None:
            logger.info(f"Ignoring {provider} webhook without a negotiation charge reference")
            return None
        logger.info(f"Received {provider} webhook for {reference}")
        return self.verify(reference, negotiation_id, provider)

    def _get_payment(self, payment):
        if isinstance(payment, Payment):
            return payment
        try:
            return Payment.objects.get(pk=payment)
        except Payment.DoesNotExist:
            raise NotFound("Payment not found.")

    def mark_payout_completed(self, admin, payment):
        payment = self._get_payment(payment)
        if not admin.is_admin:
            raise Unauthorized("Only admins can mark payouts as paid.")
        now = timezone.now()
        updated = Payment.objects.filter(pk=payment.pk, payout_status='pending').update(
            payout_status='completed', paid_out_at=now, updated_at=now
        )
        if not updated:
            raise InvalidState(f"Payout is '{payment.payout_status}', only pending payouts can be paid out.")
        payment.payout_status, payment.paid_out_at = 'completed', now
        ManagementLog.record(admin, 'payout_completed', f"Paid out payment {payment.provider_reference}")
        logger.info(f"Payment {payment.pk} paid out to transcriber {payment.transcriber_id}")
        self._notify(payment.transcriber_id, 'payout_processed', {
            'negotiation_id': payment.negotiation_id,
            'amount': payment.transcriber_earning,
            'currency': payment.currency,
        })
        return payment

    def mark_payout_failed(self, admin, payment, reason=''):
        payment = self._get_payment(payment)
        if not admin.is_admin:
            raise Unauthorized("Only admins can update payouts.")
        updated = Payment.objects.filter(pk=payment.pk, payout_status='pending').update(
            payout_status='failed', updated_at=timezone.now()
        )
        if not updated:
            raise InvalidState(f"Payout is '{payment.payout_status}', only pending payouts can fail.")
        payment.payout_status = 'failed'
        ManagementLog.record(admin, 'payout_failed', f"Payout of {payment.provider_reference} failed: {reason}")
        logger.warning(f"Payout for payment {payment.pk} marked failed: {reason}")
        return payment

    def client_history(self, client):
        payments = Payment.objects.filter(client=client).select_related('negotiation', 'transcriber')
        month_start = timezone.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return {
            'payments': payments,
            'summary': {
                'total_payments': _total(payments, 'amount'),
                'monthly_payments': _total(payments.filter(transaction_date__gte=month_start), 'amount'),
                'count': payments.count(),
            },
        }

    def transcriber_history(self, transcriber):
        payments = Payment.objects.filter(transcriber=transcriber).select_related('negotiation', 'client')
        upcoming = OrderedDict()
        for payment in payments.filter(payout_status__in=['awaiting_completion', 'pending']).order_by('transaction_date'):
            week = week_ending_friday(timezone.localdate(payment.transaction_date))
            group = upcoming.setdefault(week, {'week_ending': week, 'total': Decimal('0'), 'payments': []})
            group['total'] += payment.transcriber_earning
            group['payments'].append(payment)

        paid = payments.filter(payout_status='completed')
        month_start = timezone.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return {
            'upcoming_payouts': list(upcoming.values()),
            'completed_payouts': paid,
            'summary': {
                'total_earnings': _total(paid, 'transcriber_earning'),
                'monthly_earnings': _total(paid.filter(paid_out_at__gte=month_start), 'transcriber_earning'),
                'pending_earnings': quantize(sum((group['total'] for group in upcoming.values()), Decimal('0'))),
            },
        }

    def _notify(self, user_id, event_type, payload):
        try:
            self.notifier.publish(user_id, event_type, payload)
        except Exception as e:
            logger.error(f"Failed to publish {event_type} to user {user_id}: {str(e)}")
