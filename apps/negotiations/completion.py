import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.notifications.notifier import Notifier
from apps.payments.models import Payment
from apps.users import directory
from apps.users.availability import AvailabilityCoordinator
from core.config import PlatformConfig
from core.exceptions import InvalidState, NotFound, PersistenceError, ValidationFailed

from .models import Negotiation
from .state import resolve

logger = logging.getLogger(__name__)


def clean_rating(value):
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("Rating must be a whole number between 1 and 5.")
    if not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5.")
    return rating


class CompletionHandler:
    """Close a hired job.

    The status change, payout release and transcriber release commit together.
    Counter and rating updates run afterwards; if they fail the completion
    stands and ``manage.py sync_user_counters`` recomputes them.
    """

    def __init__(self, config=None, availability=None, notifier=None):
        self.config = config or PlatformConfig.from_settings()
        self.availability = availability or AvailabilityCoordinator(self.config)
        self.notifier = notifier or Notifier()

    def complete(self, client, negotiation_id, rating, comment=None):
        rating = clean_rating(rating)
        try:
            negotiation = Negotiation.objects.get(pk=negotiation_id)
        except Negotiation.DoesNotExist:
            raise NotFound("Negotiation not found.")
        resolve('complete', negotiation.party_role(client), negotiation.status)

        now = timezone.now()
        try:
            with transaction.atomic():
                updated = Negotiation.objects.filter(pk=negotiation.pk, status='hired').update(
                    status='completed',
                    completed_at=now,
                    updated_at=now,
                    client_feedback_rating=rating,
                    client_feedback_comment=comment,
                )
                if not updated:
                    logger.warning(f"Lost race to complete negotiation {negotiation.pk}")
                    raise InvalidState(f"Negotiation {negotiation.pk} is no longer 'hired'.")
                released = Payment.objects.filter(
                    negotiation_id=negotiation.pk, payout_status='awaiting_completion'
                ).update(payout_status='pending', updated_at=now)
                if not released:
                    logger.warning(f"No payment awaiting completion for negotiation {negotiation.pk}")
                self.availability.release(negotiation.transcriber_id)
        except DatabaseError as e:
            logger.error(f"Failed to complete negotiation {negotiation.pk}: {str(e)}")
            raise PersistenceError("Could not complete the job.") from e

        negotiation.refresh_from_db()
        logger.info(f"Negotiation {negotiation.pk} completed by client {client.pk} with rating {rating}")
        self._update_counters(negotiation)
        self._notify_completed(negotiation)
        return negotiation

    def _update_counters(self, negotiation):
        try:
            directory.increment_completed_jobs(negotiation.client_id, 'client')
            directory.increment_completed_jobs(negotiation.transcriber_id, 'transcriber')
            directory.refresh_transcriber_rating(negotiation.transcriber_id)
        except Exception as e:
            logger.error(
                f"Failed to update counters after completing negotiation {negotiation.pk}, "
                f"run sync_user_counters: {str(e)}"
            )
            return False
        return True

    def _notify_completed(self, negotiation):
        client = negotiation.client
        transcriber = negotiation.transcriber
        client.refresh_from_db()
        transcriber.refresh_from_db()
        base = {
            'negotiation_id': negotiation.pk,
            'rating': negotiation.client_feedback_rating,
            'comment': negotiation.client_feedback_comment or 'No comment provided',
        }
        self._notify(transcriber.pk, 'job_completed', dict(
            base,
            counterpart_completed_jobs=client.client_completed_jobs,
            counterpart_average_rating=client.client_average_rating,
        ))
        self._notify(client.pk, 'job_completed', dict(
            base,
            counterpart_completed_jobs=transcriber.transcriber_completed_jobs,
            counterpart_average_rating=transcriber.transcriber_average_rating,
        ))

    def _notify(self, user_id, event_type, payload):
        try:
            self.notifier.publish(user_id, event_type, payload)
        except Exception as e:
            logger.error(f"Failed to publish {event_type} to user {user_id}: {str(e)}")
