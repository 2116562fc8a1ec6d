import hashlib
import hmac
import json
from decimal import Decimal
from io import StringIO
from unittest import mock

import pytest
import requests
from django.core.management import call_command
from django.urls import reverse

from apps.negotiations.models import Negotiation
from apps.payments.models import Payment, ReconciliationItem
from apps.users.models import User

pytestmark = pytest.mark.django_db


def paystack_verify_response(reference, amount_minor=838500, status='success'):
    response = mock.Mock(status_code=200)
    response.json.return_value = {
        'status': True,
        'message': 'Verification successful',
        'data': {
            'reference': reference, 'status': status, 'amount': amount_minor, 'currency': 'KES',
            'paid_at': '2026-03-02T10:15:00Z', 'gateway_response': 'Approved',
        },
    }
    return response


def signed(body, secret=b'sk_test_paystack'):
    return hmac.new(secret, body, hashlib.sha512).hexdigest()


@pytest.fixture
def as_user(api_client):
    def _as(user):
        api_client.force_authenticate(user=user)
        return api_client
    return _as


@pytest.fixture
def http():
    with mock.patch('apps.payments.providers.requests.request') as request:
        yield request


def test_login_issues_token_and_sets_online(api_client, make_user):
    make_user('transcriber', username='sam', is_online=False, is_available=False)

    response = api_client.post(reverse('auth_login'), {'identifier': 'SAM@example.com', 'password': 'pass1234'},
                               format='json')

    assert response.status_code == 200
    assert response.data['token']
    assert response.data['user']['role'] == 'transcriber'
    assert response.data['user']['is_online'] is True

    bad = api_client.post(reverse('auth_login'), {'identifier': 'sam', 'password': 'wrong'}, format='json')
    assert bad.status_code == 400


def test_available_transcribers_for_clients_only(as_user, client_user, transcriber):
    response = as_user(client_user).get(reverse('available_transcribers'))
    assert response.status_code == 200
    assert [row['id'] for row in response.data['transcribers']] == [transcriber.pk]

    assert as_user(transcriber).get(reverse('available_transcribers')).status_code == 403


def test_availability_toggles(as_user, transcriber, client_user):
    response = as_user(transcriber).put(reverse('user_availability_status'), {'value': False}, format='json')
    assert response.status_code == 200
    assert response.data['is_available'] is False

    response = as_user(transcriber).put(reverse('user_online_status'), {'value': False}, format='json')
    assert response.data['is_online'] is False

    assert as_user(client_user).put(reverse('user_availability_status'), {'value': True},
                                    format='json').status_code == 403


def test_propose_and_duplicate(as_user, client_user, transcriber):
    api = as_user(client_user)
    payload = {'transcriber_id': transcriber.pk, 'proposed_price_usd': '50.00', 'deadline_hours': 24,
               'requirements': 'Interview, two speakers'}

    response = api.post(reverse('negotiation_create'), payload, format='json')
    assert response.status_code == 201
    assert response.data['status'] == 'pending'
    assert response.data['transcriber']['id'] == transcriber.pk

    duplicate = api.post(reverse('negotiation_create'), payload, format='json')
    assert duplicate.status_code == 409
    assert duplicate.data['code'] == 'duplicate_pending'


def test_propose_validates_input(as_user, client_user, transcriber):
    response = as_user(client_user).post(reverse('negotiation_create'), {
        'transcriber_id': transcriber.pk, 'proposed_price_usd': '0', 'deadline_hours': 24,
    }, format='json')
    assert response.status_code == 400


def test_propose_to_unavailable_transcriber(as_user, client_user, make_user):
    busy = make_user('transcriber', is_available=False)
    response = as_user(client_user).post(reverse('negotiation_create'), {
        'transcriber_id': busy.pk, 'proposed_price_usd': '50.00', 'deadline_hours': 24,
    }, format='json')
    assert response.status_code == 409
    assert response.data['code'] == 'not_eligible'


def test_counter_then_accept_flow(as_user, client_user, transcriber, make_negotiation):
    negotiation = make_negotiation(client_user, transcriber)

    response = as_user(transcriber).put(reverse('negotiation_counter', args=[negotiation.pk]),
                                        {'proposed_price_usd': '65.00', 'message': 'Heavy accents'},
                                        format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'transcriber_counter'
    assert response.data['transcriber_response'] == 'Heavy accents'

    # The transcriber cannot accept their own counter.
    assert as_user(transcriber).put(reverse('negotiation_accept', args=[negotiation.pk])).status_code == 409

    response = as_user(client_user).put(reverse('negotiation_accept', args=[negotiation.pk]))
    assert response.status_code == 200
    assert response.data['status'] == 'accepted_awaiting_payment'
    assert Decimal(response.data['agreed_price_usd']) == Decimal('65.00')

    again = as_user(client_user).put(reverse('negotiation_accept', args=[negotiation.pk]))
    assert again.status_code == 409
    assert again.data['code'] == 'invalid_state'


def test_strangers_cannot_see_or_act(as_user, other_client, client_user, transcriber, make_negotiation):
    negotiation = make_negotiation(client_user, transcriber)
    api = as_user(other_client)
    assert api.get(reverse('negotiation_detail', args=[negotiation.pk])).status_code == 403
    assert api.put(reverse('negotiation_reject', args=[negotiation.pk]), {}, format='json').status_code == 403
    assert api.get(reverse('negotiation_detail', args=[999999])).status_code == 404


def test_reject_and_listings(as_user, client_user, transcriber, make_negotiation):
    negotiation = make_negotiation(client_user, transcriber)
    response = as_user(transcriber).put(reverse('negotiation_reject', args=[negotiation.pk]),
                                        {'reason': 'Fully booked'}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'rejected'

    listed = as_user(client_user).get(reverse('client_negotiations')).data['negotiations']
    assert [row['id'] for row in listed] == [negotiation.pk]
    listed = as_user(transcriber).get(reverse('transcriber_negotiations')).data['negotiations']
    assert [row['id'] for row in listed] == [negotiation.pk]


def test_client_deletes_pending_negotiation(as_user, client_user, transcriber, make_negotiation):
    negotiation = make_negotiation(client_user, transcriber)
    response = as_user(client_user).delete(reverse('negotiation_detail', args=[negotiation.pk]))
    assert response.status_code == 204
    assert not Negotiation.objects.filter(pk=negotiation.pk).exists()


def test_initialize_payment(as_user, client_user, accepted_negotiation, http):
    checkout = mock.Mock(status_code=200)
    checkout.json.return_value = {'status': True, 'data': {'authorization_url': 'https://checkout.paystack.test/z'}}
    http.return_value = checkout

    response = as_user(client_user).post(
        reverse('payment_initialize', args=[accepted_negotiation.pk]), {'amount': '65.00'}, format='json'
    )

    assert response.status_code == 200
    assert response.data['authorization_url'] == 'https://checkout.paystack.test/z'
    assert response.data['reference'].startswith(f'NEG-{accepted_negotiation.pk}-')
    assert response.data['amount'] == '8385.00'
    assert http.call_args.kwargs['json']['amount'] == 838500


def test_initialize_rejects_wrong_amount(as_user, client_user, accepted_negotiation, http):
    response = as_user(client_user).post(
        reverse('payment_initialize', args=[accepted_negotiation.pk]), {'amount': '40.00'}, format='json'
    )
    assert response.status_code == 400
    assert response.data['code'] == 'amount_mismatch'
    http.assert_not_called()


def test_verify_endpoint_is_idempotent(as_user, client_user, transcriber, accepted_negotiation, http):
    reference = f'NEG-{accepted_negotiation.pk}-0a1b2c'
    http.return_value = paystack_verify_response(reference)
    url = reverse('payment_verify', args=[accepted_negotiation.pk, reference])

    first = as_user(client_user).get(url)
    second = as_user(client_user).get(url)

    assert first.status_code == 200
    assert first.data['message'] == 'Payment verified and job is now active.'
    assert Decimal(first.data['payment']['amount']) == Decimal('65.00')
    assert Decimal(first.data['payment']['transcriber_earning']) == Decimal('52.00')
    assert second.data['message'] == 'Payment already verified.'
    assert http.call_count == 1
    assert Payment.objects.count() == 1

    accepted_negotiation.refresh_from_db()
    transcriber.refresh_from_db()
    assert accepted_negotiation.status == 'hired'
    assert transcriber.current_job_id == accepted_negotiation.pk


def test_verify_endpoint_provider_down(as_user, client_user, accepted_negotiation, http):
    http.side_effect = requests.exceptions.Timeout('slow')
    reference = f'NEG-{accepted_negotiation.pk}-0a1b2c'

    response = as_user(client_user).get(reverse('payment_verify', args=[accepted_negotiation.pk, reference]))

    assert response.status_code == 503
    assert response.data['code'] == 'provider_unavailable'
    accepted_negotiation.refresh_from_db()
    assert accepted_negotiation.status == 'accepted_awaiting_payment'


def test_verify_endpoint_for_strangers(as_user, other_client, accepted_negotiation, http):
    reference = f'NEG-{accepted_negotiation.pk}-0a1b2c'
    response = as_user(other_client).get(reverse('payment_verify', args=[accepted_negotiation.pk, reference]))
    assert response.status_code == 403
    http.assert_not_called()


def test_signed_webhook_hires_once(api_client, accepted_negotiation, http):
    reference = f'NEG-{accepted_negotiation.pk}-0a1b2c'
    http.return_value = paystack_verify_response(reference)
    body = json.dumps({'event': 'charge.success', 'data': {'reference': reference}}).encode()
    url = reverse('payment_webhook', args=['paystack'])

    first = api_client.post(url, body, content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signed(body))
    second = api_client.post(url, body, content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signed(body))

    assert first.status_code == 200
    assert first.data['status'] == 'processed'
    assert second.data['status'] == 'duplicate'
    assert Payment.objects.filter(provider_reference=reference).count() == 1
    accepted_negotiation.refresh_from_db()
    assert accepted_negotiation.status == 'hired'


def test_webhook_with_bad_signature(api_client, accepted_negotiation, http):
    body = json.dumps({'event': 'charge.success',
                       'data': {'reference': f'NEG-{accepted_negotiation.pk}-0a1b2c'}}).encode()
    response = api_client.post(reverse('payment_webhook', args=['paystack']), body,
                               content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE='forged')
    assert response.status_code == 401
    http.assert_not_called()
    assert not Payment.objects.exists()


def test_webhook_ignores_other_events(api_client, http):
    body = json.dumps({'event': 'transfer.success', 'data': {'reference': 'TRF-1'}}).encode()
    response = api_client.post(reverse('payment_webhook', args=['paystack']), body,
                               content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signed(body))
    assert response.status_code == 200
    assert response.data['status'] == 'ignored'


def test_webhook_for_cancelled_negotiation_is_acknowledged(api_client, client_user, transcriber,
                                                           make_negotiation, http):
    negotiation = make_negotiation(client_user, transcriber, status='cancelled', price='65.00')
    reference = f'NEG-{negotiation.pk}-0a1b2c'
    http.return_value = paystack_verify_response(reference)
    body = json.dumps({'event': 'charge.success', 'data': {'reference': reference}}).encode()

    response = api_client.post(reverse('payment_webhook', args=['paystack']), body,
                               content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signed(body))

    assert response.status_code == 200
    assert response.data['status'] == 'ignored'
    assert response.data['code'] == 'invalid_state'
    assert not Payment.objects.exists()


def test_webhook_redelivered_while_provider_down(api_client, accepted_negotiation, http):
    http.side_effect = requests.exceptions.ConnectionError('down')
    reference = f'NEG-{accepted_negotiation.pk}-0a1b2c'
    body = json.dumps({'event': 'charge.success', 'data': {'reference': reference}}).encode()

    response = api_client.post(reverse('payment_webhook', args=['paystack']), body,
                               content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signed(body))

    assert response.status_code == 503
    assert response.data['code'] == 'provider_unavailable'


def test_verify_second_reference_of_hired_negotiation(as_user, client_user, hired_negotiation, http):
    reference = f'NEG-{hired_negotiation.pk}-5ec0d1'
    http.side_effect = requests.exceptions.Timeout('slow')

    response = as_user(client_user).get(reverse('payment_verify', args=[hired_negotiation.pk, reference]))

    assert response.status_code == 200
    assert response.data['message'] == 'Payment already verified.'
    assert response.data['payment']['provider_reference'] == f'NEG-{hired_negotiation.pk}-abc123'
    http.assert_not_called()


def test_complete_then_payout(as_user, client_user, transcriber, staff_admin, hired_negotiation):
    response = as_user(client_user).post(reverse('negotiation_complete', args=[hired_negotiation.pk]),
                                         {'rating': 5, 'comment': 'Great work'}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'completed'
    assert response.data['client_feedback_rating'] == 5

    payment = Payment.objects.get(negotiation=hired_negotiation)
    history = as_user(transcriber).get(reverse('transcriber_payment_history')).data
    assert history['summary']['pending_earnings'] == '52.00'
    assert len(history['upcoming_payouts']) == 1

    assert as_user(client_user).put(reverse('payment_payout', args=[payment.pk]),
                                    {'payout_status': 'completed'}, format='json').status_code == 403
    response = as_user(staff_admin).put(reverse('payment_payout', args=[payment.pk]),
                                        {'payout_status': 'completed'}, format='json')
    assert response.status_code == 200
    assert response.data['payout_status'] == 'completed'

    history = as_user(transcriber).get(reverse('transcriber_payment_history')).data
    assert history['summary']['total_earnings'] == '52.00'
    assert history['upcoming_payouts'] == []

    client_history = as_user(client_user).get(reverse('client_payment_history')).data
    assert client_history['summary']['count'] == 1
    assert client_history['summary']['total_payments'] == '65.00'
    assert [row['negotiation_id'] for row in client_history['payments']] == [hired_negotiation.pk]


def test_complete_rejects_bad_rating(as_user, client_user, hired_negotiation):
    response = as_user(client_user).post(reverse('negotiation_complete', args=[hired_negotiation.pk]),
                                         {'rating': 9}, format='json')
    assert response.status_code == 400


def test_price_quote(as_user, client_user, settings):
    settings.PRICING_RULES = [
        {'name': 'Base', 'price_per_minute_usd': 0.5},
        {'name': 'Timestamps', 'special_requirements': ['timestamps'], 'price_per_minute_usd': 1.25},
    ]
    response = as_user(client_user).get(reverse('price_quote'), {
        'duration_minutes': 30, 'special_requirements': 'timestamps, full_verbatim',
    })
    assert response.status_code == 200
    assert response.data == {'price_per_minute_usd': '1.25', 'estimated_total_usd': '37.50'}


def test_price_quote_without_rules(as_user, client_user):
    response = as_user(client_user).get(reverse('price_quote'))
    assert response.data == {'price_per_minute_usd': None, 'estimated_total_usd': None}


def test_profile(as_user, client_user):
    response = as_user(client_user).get(reverse('user_profile'))
    assert response.status_code == 200
    assert response.data['username'] == 'alice'
    assert User.objects.get(pk=response.data['id']).is_client


def test_reconcile_payments_command(api_client, client_user, other_client, transcriber, make_negotiation, http):
    ongoing = make_negotiation(other_client, transcriber, status='hired')
    User.objects.filter(pk=transcriber.pk).update(current_job=ongoing)
    negotiation = make_negotiation(client_user, transcriber, status='accepted_awaiting_payment', price='65.00')
    reference = f'NEG-{negotiation.pk}-0a1b2c'
    http.return_value = paystack_verify_response(reference)
    body = json.dumps({'event': 'charge.success', 'data': {'reference': reference}}).encode()

    response = api_client.post(reverse('payment_webhook', args=['paystack']), body,
                               content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signed(body))
    assert response.status_code == 200
    assert response.data['code'] == 'not_eligible'
    assert ReconciliationItem.objects.filter(reference=reference, resolved=False).exists()

    User.objects.filter(pk=transcriber.pk).update(current_job=None)
    out = StringIO()
    call_command('reconcile_payments', stdout=out)

    assert f'{reference}: resolved' in out.getvalue()
    assert not ReconciliationItem.objects.filter(reference=reference, resolved=False).exists()
    negotiation.refresh_from_db()
    assert negotiation.status == 'hired'


def test_admin_rates_client_once(as_user, staff_admin, client_user):
    url = reverse('client_rating', args=[client_user.pk])

    assert as_user(client_user).post(url, {'score': 5}, format='json').status_code == 403
    assert as_user(staff_admin).post(url, {'score': 0}, format='json').status_code == 400

    response = as_user(staff_admin).post(url, {'score': 4, 'comment': 'Pays on time'}, format='json')
    assert response.status_code == 201
    assert response.data['average_rating'] == '4.0'

    again = as_user(staff_admin).post(url, {'score': 2}, format='json')
    assert again.status_code == 409
    assert again.data['code'] == 'already_rated'
