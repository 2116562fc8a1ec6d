"""Transcriber availability locking.

``AvailabilityCoordinator`` is the only code that writes ``User.current_job``.
Both writes are single UPDATE statements so that eligibility is never read
from a half-written record, and ``acquire`` is conditional on the transcriber
being free, which makes it linearizable per transcriber.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.utils import timezone

from core.config import PlatformConfig
from core.exceptions import NotEligible, NotFound, PersistenceError

from . import directory

logger = logging.getLogger(__name__)


class AvailabilityCoordinator:

    def __init__(self, config=None):
        self.config = config or PlatformConfig.from_settings()

    @property
    def users(self):
        return get_user_model().objects

    def acquire(self, transcriber_id, job_id):
        """Lock the transcriber to ``job_id``. Re-acquiring the same job is a no-op."""
        try:
            updated = self.users.filter(pk=transcriber_id, current_job__isnull=True).update(
                current_job_id=job_id, updated_at=timezone.now()
            )
        except DatabaseError as e:
            logger.error(f"Failed to acquire transcriber {transcriber_id} for job {job_id}: {str(e)}")
            raise PersistenceError(f"Could not lock transcriber {transcriber_id}.") from e

        if updated:
            logger.info(f"Transcriber {transcriber_id} acquired by job {job_id}")
            return

        holder = self.users.filter(pk=transcriber_id).values_list('current_job_id', flat=True).first()
        if holder is None and not self.users.filter(pk=transcriber_id).exists():
            raise NotFound(f"Transcriber {transcriber_id} not found.")
        if holder == job_id:
            return
        logger.warning(f"Transcriber {transcriber_id} already engaged on job {holder}, refused job {job_id}")
        raise NotEligible("Transcriber is already engaged on another job.")

    def release(self, transcriber_id):
        try:
            updated = self.users.filter(pk=transcriber_id).update(
                current_job=None, updated_at=timezone.now()
            )
        except DatabaseError as e:
            logger.error(f"Failed to release transcriber {transcriber_id}: {str(e)}")
            raise PersistenceError(f"Could not release transcriber {transcriber_id}.") from e
        if not updated:
            raise PersistenceError(f"Transcriber {transcriber_id} does not exist, nothing released.")
        logger.info(f"Transcriber {transcriber_id} released")

    def release_job(self, transcriber_id, job_id):
        """Release only if the transcriber is still locked to ``job_id``."""
        try:
            updated = self.users.filter(pk=transcriber_id, current_job_id=job_id).update(
                current_job=None, updated_at=timezone.now()
            )
        except DatabaseError as e:
            logger.error(f"Failed to release transcriber {transcriber_id} from job {job_id}: {str(e)}")
            raise PersistenceError(f"Could not release transcriber {transcriber_id}.") from e
        if updated:
            logger.info(f"Transcriber {transcriber_id} released from job {job_id}")
        return bool(updated)

    def eligible_transcribers(self):
        return self.users.filter(
            user_type='transcriber',
            is_online=True,
            is_available=True,
            current_job__isnull=True,
            transcriber_status=self.config.eligible_transcriber_status,
        )

    def listed_transcribers(self):
        """Eligible transcribers shown to clients, best rated first."""
        return self.eligible_transcribers().exclude(
            transcriber_user_level__in=self.config.listing_excluded_levels
        ).order_by('-transcriber_average_rating', '-transcriber_completed_jobs')

    def is_eligible(self, transcriber_id):
        record = directory.get_eligibility(transcriber_id)
        return (
            record['role'] == 'transcriber'
            and record['online']
            and record['available']
            and record['current_job'] is None
            and record['status'] == self.config.eligible_transcriber_status
        )

    def set_online(self, user, is_online):
        fields = {'is_online': is_online, 'updated_at': timezone.now()}
        if not is_online:
            fields['is_available'] = False
        self.users.filter(pk=user.pk).update(**fields)
        logger.info(f"User {user.pk} is_online set to {is_online}")

    def set_available(self, user, is_available):
        self.users.filter(pk=user.pk).update(is_available=is_available, updated_at=timezone.now())
        logger.info(f"User {user.pk} is_available set to {is_available}")
