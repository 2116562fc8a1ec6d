"""Negotiation lifecycle: propose, counter, accept, reject, cancel, delete.

Every transition is a compare-and-set on the status that was read: the UPDATE
is filtered on ``status=<observed>`` and a zero row count means another
request got there first, which surfaces as ``InvalidState``. Notifications
are published only after the write has been committed.
"""
import logging
from decimal import InvalidOperation

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from apps.management.models import ManagementLog
from apps.notifications.notifier import Notifier
from apps.users.availability import AvailabilityCoordinator
from core.config import PlatformConfig, quantize, to_decimal
from core.exceptions import (
    DuplicatePending, InvalidState, NotEligible, NotFound, PersistenceError,
    Unauthorized, ValidationFailed,
)

from .models import Negotiation
from .state import RESPONSE_FIELD, resolve

logger = logging.getLogger(__name__)


def clean_price(value):
    try:
        price = quantize(to_decimal(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailed("Price must be a number.")
    if price <= 0:
        raise ValidationFailed("Price must be greater than zero.")
    return price


def clean_deadline(value):
    try:
        hours = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("Deadline must be a whole number of hours.")
    if hours <= 0:
        raise ValidationFailed("Deadline must be at least one hour.")
    return hours


class NegotiationService:

    def __init__(self, config=None, availability=None, notifier=None):
        self.config = config or PlatformConfig.from_settings()
        self.availability = availability or AvailabilityCoordinator(self.config)
        self.notifier = notifier or Notifier()

    def get(self, negotiation_id):
        try:
            return Negotiation.objects.select_related('client', 'transcriber').get(pk=negotiation_id)
        except Negotiation.DoesNotExist:
            raise NotFound("Negotiation not found.")

    def _load(self, negotiation):
        if isinstance(negotiation, Negotiation):
            return negotiation
        return self.get(negotiation)

    def get_for_party(self, negotiation_id, user):
        negotiation = self.get(negotiation_id)
        if negotiation.party_role(user) is None and not user.is_admin:
            raise Unauthorized()
        return negotiation

    def propose(self, client, transcriber_id, price, deadline_hours, requirements='',
                attachment=None, message=None):
        if not client.is_client:
            raise Unauthorized("Only clients can create negotiation requests.")
        price = clean_price(price)
        deadline_hours = clean_deadline(deadline_hours)

        User = get_user_model()
        try:
            transcriber = User.objects.get(pk=transcriber_id)
        except User.DoesNotExist:
            raise NotFound("Transcriber not found.")
        if not transcriber.is_transcriber or transcriber.pk == client.pk:
            raise NotEligible("The selected user is not a transcriber.")
        if not self.availability.is_eligible(transcriber.pk):
            raise NotEligible("Transcriber is not available for new negotiations.")
        if Negotiation.objects.filter(client=client, transcriber=transcriber, status='pending').exists():
            raise DuplicatePending()

        try:
            with transaction.atomic():
                negotiation = Negotiation.objects.create(
                    client=client,
                    transcriber=transcriber,
                    requirements=requirements or '',
                    agreed_price_usd=price,
                    deadline_hours=deadline_hours,
                    due_date=Negotiation.compute_due_date(deadline_hours),
                    client_message=message,
                    negotiation_files=attachment,
                )
        except IntegrityError:
            raise DuplicatePending()
        except DatabaseError as e:
            logger.error(f"Failed to create negotiation for client {client.pk}: {str(e)}")
            raise PersistenceError("Could not create negotiation.") from e

        logger.info(f"Negotiation {negotiation.pk} proposed by client {client.pk} to transcriber {transcriber.pk}")
        self._notify(transcriber.pk, 'new_negotiation_request', {
            'negotiation_id': negotiation.pk,
            'client_name': client.full_name,
            'price': negotiation.agreed_price_usd,
            'currency': self.config.canonical_currency,
            'deadline_hours': deadline_hours,
            'requirements': negotiation.requirements,
        })
        return negotiation

    def _transition(self, negotiation, actor, action, **fields):
        role = negotiation.party_role(actor)
        observed = negotiation.status
        target = resolve(action, role, observed)
        fields['status'] = target
        fields['updated_at'] = timezone.now()
        try:
            updated = Negotiation.objects.filter(pk=negotiation.pk, status=observed).update(**fields)
        except DatabaseError as e:
            logger.error(f"Failed to {action} negotiation {negotiation.pk}: {str(e)}")
            raise PersistenceError(f"Could not {action} negotiation.") from e
        if not updated:
            logger.warning(f"Lost race to {action} negotiation {negotiation.pk} from '{observed}'")
            raise InvalidState(f"Negotiation {negotiation.pk} is no longer '{observed}'.")

        for name, value in fields.items():
            setattr(negotiation, name, value)
        logger.info(f"Negotiation {negotiation.pk} {observed} -> {target} by {role} {actor.pk}")
        return role

    def accept(self, negotiation, actor):
        negotiation = self._load(negotiation)
        role = self._transition(
            negotiation, actor, 'accept',
            due_date=Negotiation.compute_due_date(negotiation.deadline_hours),
        )
        self._notify(self._counterpart_id(negotiation, role), 'negotiation_accepted', {
            'negotiation_id': negotiation.pk,
            'actor_name': actor.full_name,
            'price': negotiation.agreed_price_usd,
            'currency': self.config.canonical_currency,
            'due_date': negotiation.due_date,
        })
        return negotiation

    def counter(self, negotiation, actor, new_price, message, deadline_hours=None, attachment=None):
        negotiation = self._load(negotiation)
        role = negotiation.party_role(actor)
        fields = {'agreed_price_usd': clean_price(new_price)}
        if role in RESPONSE_FIELD:
            fields[RESPONSE_FIELD[role]] = message
        if deadline_hours is not None:
            fields['deadline_hours'] = clean_deadline(deadline_hours)
            fields['due_date'] = Negotiation.compute_due_date(fields['deadline_hours'])
        if attachment:
            fields['negotiation_files'] = attachment

        self._transition(negotiation, actor, 'counter', **fields)
        self._notify(self._counterpart_id(negotiation, role), 'negotiation_countered', {
            'negotiation_id': negotiation.pk,
            'actor_name': actor.full_name,
            'price': negotiation.agreed_price_usd,
            'currency': self.config.canonical_currency,
            'deadline_hours': negotiation.deadline_hours,
            'message': message,
        })
        return negotiation

    def reject(self, negotiation, actor, reason=None):
        negotiation = self._load(negotiation)
        role = negotiation.party_role(actor)
        fields = {RESPONSE_FIELD[role]: reason} if role in RESPONSE_FIELD else {}
        self._transition(negotiation, actor, 'reject', **fields)
        self._notify(self._counterpart_id(negotiation, role), 'negotiation_rejected', {
            'negotiation_id': negotiation.pk,
            'actor_name': actor.full_name,
            'reason': reason or 'No reason provided',
        })
        return negotiation

    def cancel(self, negotiation, actor):
        negotiation = self._load(negotiation)
        self._transition(negotiation, actor, 'cancel')
        self._notify(negotiation.transcriber_id, 'negotiation_cancelled', {
            'negotiation_id': negotiation.pk,
            'actor_name': actor.full_name,
        })
        return negotiation

    def delete(self, negotiation, actor):
        """Hard delete. Clients may delete anything not hired or completed;
        admins may delete anything and a held transcriber is released first."""
        negotiation = self._load(negotiation)
        observed = negotiation.status
        if not actor.is_admin:
            if negotiation.party_role(actor) != 'client':
                raise Unauthorized("You are not authorized to delete this negotiation.")
            if observed in ('hired', 'completed'):
                raise InvalidState(f"Negotiations with status '{observed}' can only be deleted by an admin.")

        negotiation_id, transcriber_id = negotiation.pk, negotiation.transcriber_id
        try:
            with transaction.atomic():
                if observed in ('hired', 'completed'):
                    self.availability.release_job(transcriber_id, negotiation_id)
                deleted, _ = Negotiation.objects.filter(pk=negotiation_id, status=observed).delete()
                if not deleted:
                    raise InvalidState(f"Negotiation {negotiation_id} is no longer '{observed}'.")
                if actor.is_admin:
                    ManagementLog.record(
                        actor, 'delete_negotiation',
                        f"Deleted negotiation {negotiation_id} in status '{observed}'",
                    )
        except DatabaseError as e:
            logger.error(f"Failed to delete negotiation {negotiation_id}: {str(e)}")
            raise PersistenceError("Could not delete negotiation.") from e

        logger.info(f"Negotiation {negotiation_id} ({observed}) deleted by user {actor.pk}")
        if observed not in ('rejected', 'cancelled', 'completed') and actor.pk != transcriber_id:
            self._notify(transcriber_id, 'negotiation_cancelled', {
                'negotiation_id': negotiation_id,
                'actor_name': actor.full_name,
            })
        return negotiation_id

    def list_for_client(self, client):
        return Negotiation.objects.filter(client=client).select_related('transcriber')

    def list_for_transcriber(self, transcriber):
        return Negotiation.objects.filter(transcriber=transcriber).select_related('client')

    @staticmethod
    def _counterpart_id(negotiation, role):
        return negotiation.client_id if role == 'transcriber' else negotiation.transcriber_id

    def _notify(self, user_id, event_type, payload):
        try:
            self.notifier.publish(user_id, event_type, payload)
        except Exception as e:
            logger.error(f"Failed to publish {event_type} to user {user_id}: {str(e)}")
