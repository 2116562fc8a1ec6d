"""Subject and body templates per event type.

Templates are ``str.format`` strings rendered against the event payload plus
``recipient_name``. Missing keys render as an empty string.
"""
from string import Formatter

SIGNATURE = "\n\nBest regards,\nScribeLink Team"

EVENT_MESSAGES = {
    'new_negotiation_request': (
        "New negotiation request from {client_name}",
        "Dear {recipient_name},\n\n"
        "{client_name} has sent you a negotiation request.\n"
        "- Proposed price: {price} {currency}\n"
        "- Deadline: {deadline_hours} hours\n\n"
        "Please log in to ScribeLink to accept, counter or reject it."
    ),
    'negotiation_countered': (
        "Counter-offer on negotiation #{negotiation_id}",
        "Dear {recipient_name},\n\n"
        "{actor_name} has sent a counter-offer of {price} {currency} "
        "with a deadline of {deadline_hours} hours.\n"
        "Message: {message}"
    ),
    'negotiation_accepted': (
        "Negotiation #{negotiation_id} accepted",
        "Dear {recipient_name},\n\n"
        "{actor_name} accepted the negotiation at {price} {currency}.\n"
        "The job starts as soon as the client's payment is confirmed."
    ),
    'negotiation_rejected': (
        "Negotiation #{negotiation_id} rejected",
        "Dear {recipient_name},\n\n"
        "{actor_name} rejected the negotiation.\n"
        "Reason: {reason}"
    ),
    'negotiation_cancelled': (
        "Negotiation #{negotiation_id} cancelled",
        "Dear {recipient_name},\n\n"
        "The negotiation request from {actor_name} was cancelled."
    ),
    'payment_successful': (
        "Payment confirmed for negotiation #{negotiation_id}",
        "Dear {recipient_name},\n\n"
        "Your payment of {amount} {currency} was successful and the job is now active.\n"
        "Due date: {due_date}"
    ),
    'job_hired': (
        "You have been hired for negotiation #{negotiation_id}",
        "Dear {recipient_name},\n\n"
        "The client has paid for your accepted job. The job is now active.\n"
        "Due date: {due_date}"
    ),
    'job_completed': (
        "Job #{negotiation_id} completed",
        "Dear {recipient_name},\n\n"
        "Job #{negotiation_id} has been marked as complete.\n"
        "Rating: {rating}/5\n"
        "Comment: {comment}"
    ),
    'payout_processed': (
        "Payout processed",
        "Dear {recipient_name},\n\n"
        "Your earning of {amount} {currency} for job #{negotiation_id} has been paid out."
    ),
}

DEFAULT_MESSAGE = (
    "ScribeLink update",
    "Dear {recipient_name},\n\nThere is an update on your ScribeLink account."
)


class _LenientFormatter(Formatter):
    def get_value(self, key, args, kwargs):
        if isinstance(key, str):
            value = kwargs.get(key)
            return '' if value is None else value
        return super().get_value(key, args, kwargs)


_formatter = _LenientFormatter()


def render(event_type, payload, recipient_name):
    subject, body = EVENT_MESSAGES.get(event_type, DEFAULT_MESSAGE)
    context = dict(payload, recipient_name=recipient_name)
    return _formatter.format(subject, **context), _formatter.format(body, **context) + SIGNATURE
