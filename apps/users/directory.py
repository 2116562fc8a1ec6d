"""Read/write seam onto the user directory used by the negotiation core."""
import logging
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Avg, F

from core.exceptions import AlreadyRated, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

COMPLETED_JOBS_FIELD = {
    'client': 'client_completed_jobs',
    'transcriber': 'transcriber_completed_jobs',
}


def _get_user(user_id):
    User = get_user_model()
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise NotFound(f"User {user_id} not found.")


def _one_decimal(average):
    return Decimal(str(round(average, 1))) if average is not None else Decimal("0")


def get_eligibility(user_id):
    user = _get_user(user_id)
    return {
        'role': user.user_type,
        'online': user.is_online,
        'available': user.is_available,
        'status': user.transcriber_status,
        'current_job': user.current_job_id,
    }


def get_profile(user_id):
    user = _get_user(user_id)
    return {
        'id': user.id,
        'name': user.full_name,
        'email': user.email,
        'phone_number': user.phone_number,
    }


def increment_completed_jobs(user_id, role):
    field = COMPLETED_JOBS_FIELD[role]
    get_user_model().objects.filter(pk=user_id).update(**{field: F(field) + 1})


def refresh_transcriber_rating(transcriber_id):
    from apps.negotiations.models import Negotiation

    average = Negotiation.objects.filter(
        transcriber_id=transcriber_id, status='completed', client_feedback_rating__isnull=False
    ).aggregate(avg=Avg('client_feedback_rating'))['avg']
    rating = _one_decimal(average)
    get_user_model().objects.filter(pk=transcriber_id).update(transcriber_average_rating=rating)
    return rating


def refresh_client_rating(client_id):
    from .models import ClientRating

    average = ClientRating.objects.filter(client_id=client_id).aggregate(avg=Avg('score'))['avg']
    rating = _one_decimal(average)
    get_user_model().objects.filter(pk=client_id).update(client_average_rating=rating)
    return rating


def rate_client(admin, client_id, score, comment=None):
    """Record an admin's score for a client. Each admin rates a client once."""
    from apps.management.models import ManagementLog
    from .models import ClientRating

    if not 1 <= score <= 5:
        raise ValidationFailed("Score must be between 1 and 5.")
    client = _get_user(client_id)
    if not client.is_client:
        raise NotFound("Client not found.")

    try:
        with transaction.atomic():
            rating = ClientRating.objects.create(admin=admin, client=client, score=score, comment=comment)
            ManagementLog.record(admin, 'rate_client', f"Rated client {client.pk} {score}/5")
    except IntegrityError:
        raise AlreadyRated()

    average = refresh_client_rating(client.pk)
    logger.info(f"Client {client.pk} rated {score} by admin {admin.pk}, average now {average}")
    return rating, average


def recount_completed_jobs(user):
    """Recompute both completed-job counters of ``user`` from the ledger."""
    from apps.negotiations.models import Negotiation

    completed = Negotiation.objects.filter(status='completed')
    counts = {
        'client_completed_jobs': completed.filter(client=user).count(),
        'transcriber_completed_jobs': completed.filter(transcriber=user).count(),
    }
    get_user_model().objects.filter(pk=user.pk).update(**counts)
    return counts
