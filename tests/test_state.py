import pytest

from apps.negotiations.state import TRANSITIONS, resolve
from core.constants import NEGOTIATION_STATUS_CHOICES
from core.exceptions import InvalidState, Unauthorized


@pytest.mark.parametrize('action,role,current,expected', [
    ('accept', 'transcriber', 'pending', 'accepted_awaiting_payment'),
    ('accept', 'transcriber', 'client_counter', 'accepted_awaiting_payment'),
    ('accept', 'client', 'transcriber_counter', 'accepted_awaiting_payment'),
    ('counter', 'transcriber', 'pending', 'transcriber_counter'),
    ('counter', 'transcriber', 'client_counter', 'transcriber_counter'),
    ('counter', 'client', 'transcriber_counter', 'client_counter'),
    ('reject', 'transcriber', 'pending', 'rejected'),
    ('reject', 'client', 'transcriber_counter', 'rejected'),
    ('cancel', 'client', 'accepted_awaiting_payment', 'cancelled'),
    ('pay', 'system', 'accepted_awaiting_payment', 'hired'),
    ('complete', 'client', 'hired', 'completed'),
])
def test_valid_transitions(action, role, current, expected):
    assert resolve(action, role, current) == expected


@pytest.mark.parametrize('action,role,current', [
    ('accept', 'client', 'pending'),
    ('accept', 'transcriber', 'transcriber_counter'),
    ('counter', 'client', 'pending'),
    ('counter', 'transcriber', 'accepted_awaiting_payment'),
    ('reject', 'transcriber', 'hired'),
    ('cancel', 'client', 'hired'),
    ('cancel', 'client', 'completed'),
    ('complete', 'client', 'accepted_awaiting_payment'),
])
def test_transition_from_wrong_status_is_invalid_state(action, role, current):
    with pytest.raises(InvalidState):
        resolve(action, role, current)


@pytest.mark.parametrize('action,role', [
    ('cancel', 'transcriber'),
    ('complete', 'transcriber'),
    ('accept', None),
])
def test_role_not_allowed_is_unauthorized(action, role):
    with pytest.raises(Unauthorized):
        resolve(action, role, 'pending')


def test_every_status_is_reachable_from_pending():
    edges = {}
    for rules in TRANSITIONS.values():
        for sources, target in rules.values():
            for source in sources:
                edges.setdefault(source, set()).add(target)
    seen, frontier = {'pending'}, ['pending']
    while frontier:
        for target in edges.get(frontier.pop(), ()):
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    assert seen == {value for value, _ in NEGOTIATION_STATUS_CHOICES}


def test_terminal_statuses_have_no_outgoing_transitions():
    for status in ('rejected', 'cancelled', 'completed'):
        for rules in TRANSITIONS.values():
            for sources, _ in rules.values():
                assert status not in sources


def test_counters_can_alternate():
    assert resolve('counter', 'client', 'transcriber_counter') == 'client_counter'
    assert resolve('counter', 'transcriber', 'client_counter') == 'transcriber_counter'
