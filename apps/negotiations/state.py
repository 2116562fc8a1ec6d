"""Negotiation transition table.

Each action maps the acting role to the statuses it may act from and the
status it moves the negotiation to. Anything not listed is an invalid
transition. ``hired`` is entered only by settlement and ``completed`` only
by the completion handler, so neither appears as a user action target here.
"""
from core.exceptions import InvalidState, Unauthorized

TRANSITIONS = {
    'accept': {
        'transcriber': (('pending', 'client_counter'), 'accepted_awaiting_payment'),
        'client': (('transcriber_counter',), 'accepted_awaiting_payment'),
    },
    'counter': {
        'transcriber': (('pending', 'client_counter'), 'transcriber_counter'),
        'client': (('transcriber_counter',), 'client_counter'),
    },
    'reject': {
        'transcriber': (('pending', 'client_counter'), 'rejected'),
        'client': (('transcriber_counter',), 'rejected'),
    },
    'cancel': {
        'client': (('pending', 'transcriber_counter', 'client_counter', 'accepted_awaiting_payment'), 'cancelled'),
    },
    'pay': {
        'system': (('accepted_awaiting_payment',), 'hired'),
    },
    'complete': {
        'client': (('hired',), 'completed'),
    },
}

# Field that stores the free-text message of each side.
RESPONSE_FIELD = {
    'client': 'client_response',
    'transcriber': 'transcriber_response',
}


def resolve(action, role, current_status):
    """Return the target status of ``action`` by ``role`` from ``current_status``.

    Raises ``Unauthorized`` if the role may never perform the action and
    ``InvalidState`` if it may, but not from the current status.
    """
    rules = TRANSITIONS[action]
    if role not in rules:
        raise Unauthorized(f"A {role or 'non-party'} cannot {action} this negotiation.")
    sources, target = rules[role]
    if current_status not in sources:
        raise InvalidState(
            f"Cannot {action} a negotiation in status '{current_status}'."
        )
    return target

