"""Error taxonomy shared by the negotiation, settlement and availability layers.

Each error carries the HTTP status a view should answer with and a stable
``code`` that clients can switch on. Views turn them into
``{"error": ..., "code": ...}`` responses through ``error_response``.
"""
from rest_framework import status
from rest_framework.response import Response


class ScribeLinkError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'error'
    default_message = 'Request could not be processed.'
    # Whether re-running the same request can succeed.
    retryable = False

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class NotFound(ScribeLinkError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'
    default_message = 'Not found.'


class ValidationFailed(ScribeLinkError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'validation_failed'
    default_message = 'Invalid request.'


class NotEligible(ScribeLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = 'not_eligible'
    default_message = 'Transcriber is not available for new jobs.'


class DuplicatePending(ScribeLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = 'duplicate_pending'
    default_message = 'A pending negotiation with this transcriber already exists.'


class InvalidState(ScribeLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = 'invalid_state'
    default_message = 'Negotiation is not in a state that allows this action.'


class Unauthorized(ScribeLinkError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'unauthorized'
    default_message = 'You are not a party to this negotiation.'


class AlreadyRated(ScribeLinkError):
    status_code = status.HTTP_409_CONFLICT
    code = 'already_rated'
    default_message = 'You have already rated this client.'


class AmountMismatch(ScribeLinkError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'amount_mismatch'
    default_message = 'Payment amount does not match the agreed price.'


class PaymentNotSuccessful(ScribeLinkError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = 'payment_not_successful'
    default_message = 'Payment was not successful.'


class ProviderUnavailable(ScribeLinkError):
    """Timeout or network failure talking to a payment provider. Retryable."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'provider_unavailable'
    default_message = 'Payment provider is unavailable, retry with the same reference.'
    retryable = True


class PersistenceError(ScribeLinkError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = 'persistence_error'
    default_message = 'Could not save changes.'
    retryable = True


def error_response(exc):
    return Response({"error": str(exc), "code": exc.code}, status=exc.status_code)
