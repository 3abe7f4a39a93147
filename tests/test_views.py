import json
from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.urls import reverse

from billing import views
from billing.models import Bill, CreditAdjustment

from .conftest import JAN_2024

pytestmark = pytest.mark.django_db


@pytest.fixture
def cashier(django_user_model):
    return django_user_model.objects.create_user(
        username='cashier', password='secret', first_name='Ana', last_name='Reyes')


@pytest.fixture
def api(client, cashier):
    client.force_login(cashier)

    def call(name, data=None, method='post', **kwargs):
        url = reverse(name, kwargs=kwargs)
        if method == 'get':
            return client.get(url)
        return client.post(url, data=json.dumps(data or {}), content_type='application/json')

    return call


def test_login_is_required(client, customer):
    response = client.get(reverse('open-bills', kwargs={'customer_pk': customer.pk}))

    assert response.status_code == 302


def test_wrong_method_is_refused(api, customer):
    response = api('open-bills', method='post', customer_pk=customer.pk)

    assert response.status_code == 405


# ── bills ────────────────────────────────────────────────

def test_create_bill(api, customer):
    response = api('bill-create', {'customer': customer.pk, 'billed_month': '2024-01',
                                   'previous_reading': '0', 'current_reading': '7'})

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['data']['basic_amount'] == '120.00'
    assert body['data']['billed_month'] == '2024-01-01'
    assert body['data']['encoded_by'] == 'Ana Reyes'
    assert Bill.objects.get().bill_number == body['data']['bill_number']


def test_create_bill_with_bad_readings(api, customer):
    response = api('bill-create', {'customer': customer.pk, 'billed_month': '2024-01',
                                   'previous_reading': '50', 'current_reading': '40'})

    assert response.status_code == 400
    body = response.json()
    assert body['success'] is False
    assert body['error'] == 'validation_error'
    assert 'cannot be less than' in body['fields']['__all__'][0]


def test_create_duplicate_bill(api, customer, make_bill):
    make_bill(billed_month=JAN_2024)

    response = api('bill-create', {'customer': customer.pk, 'billed_month': '2024-01',
                                   'previous_reading': '7', 'current_reading': '9'})

    assert response.status_code == 409
    assert response.json()['error'] == 'duplicate_bill'


def test_edit_bill(api, make_bill):
    bill = make_bill()

    response = api('bill-edit', {'billed_month': '2024-01', 'previous_reading': '0',
                                 'current_reading': '5'}, bill_number=bill.pk)

    assert response.status_code == 200
    assert response.json()['data']['basic_amount'] == '90.00'


def test_next_bill_defaults(api, customer, make_bill):
    make_bill(billed_month=JAN_2024, previous='0', current='7')

    response = api('next-bill', method='get', customer_pk=customer.pk)

    assert response.json()['data']['billed_month'] == '2024-02-01'
    assert response.json()['data']['previous_reading'] == '7.00'


def test_unknown_customer_is_not_found(api):
    response = api('next-bill', method='get', customer_pk=999)

    assert response.status_code == 404
    assert response.json()['error'] == 'not_found'


# ── payments ─────────────────────────────────────────────

def test_open_bills_quote(api, customer, fund, make_bill):
    fund(customer, '100')
    make_bill(billed_month=JAN_2024)

    data = api('open-bills', method='get', customer_pk=customer.pk).json()['data']

    # a 2024 bill is long past both surcharge dates
    assert data['grand_total'] == '151.80'
    assert data['credit_to_apply'] == '100.00'
    assert data['amount_after_credit'] == '51.80'
    assert data['bills'][0]['computed_surcharge'] == '31.80'
    assert data['bills'][0]['surcharge_type'] == 'both'


def test_payment_with_credit_and_overpayment(api, customer, fund, make_bill):
    fund(customer, '100')
    bill = make_bill(billed_month=JAN_2024)

    response = api('payment-create', {'bill_numbers': [bill.pk], 'amount_received': '60',
                                      'credit_balance': '100'})

    assert response.status_code == 200
    data = response.json()['data']
    assert data['credit_consumed'] == '100.00'
    assert data['credit_added'] == '8.20'
    bill.refresh_from_db()
    assert bill.payment_status == Bill.PAID
    assert bill.paid_by == 'Ana Reyes'


def test_short_payment_is_reported(api, make_bill):
    bill = make_bill(billed_month=JAN_2024)

    response = api('payment-create', {'bill_numbers': [bill.pk], 'amount_received': '100'})

    assert response.status_code == 400
    assert response.json()['error'] == 'insufficient_payment'


def test_stale_balance_is_reported(api, customer, fund, make_bill):
    fund(customer, '100')
    bill = make_bill(billed_month=JAN_2024)

    response = api('payment-create', {'bill_numbers': [bill.pk], 'amount_received': '200',
                                      'credit_balance': '0'})

    assert response.status_code == 409
    assert response.json()['error'] == 'stale_credit_balance'


def test_payment_form_needs_bills(api):
    response = api('payment-create', {'bill_numbers': [], 'amount_received': '100'})

    assert response.status_code == 400
    assert 'bill_numbers' in response.json()['fields']


def test_reverse_payment(api, customer, fund, make_bill):
    fund(customer, '200')
    bill = make_bill(billed_month=JAN_2024)
    api('payment-create', {'bill_numbers': [bill.pk], 'amount_received': '0'})

    response = api('bill-reverse', bill_number=bill.pk)

    data = response.json()['data']
    assert data['payment_status'] == Bill.UNPAID
    assert data['credit_restored'] == '151.80'


def test_reverse_unpaid_bill(api, make_bill):
    bill = make_bill()

    response = api('bill-reverse', bill_number=bill.pk)

    assert response.status_code == 409
    assert response.json()['error'] == 'invalid_bill_state'


# ── credit ───────────────────────────────────────────────

def test_adjust_credit(api, customer):
    response = api('credit-adjust', {'adjustment_type': 'add', 'amount': '250',
                                     'remarks': 'Refund'}, customer_pk=customer.pk)

    assert response.json()['data'] == {
        'customer_id': customer.pk,
        'previous_balance': '0.00',
        'adjustment': '250.00',
        'new_balance': '250.00',
        'remarks': 'Refund',
    }
    assert customer.credit_adjustments.get().actor == 'Ana Reyes'


def test_deduct_beyond_balance(api, customer):
    response = api('credit-adjust', {'adjustment_type': 'deduct', 'amount': '10'},
                   customer_pk=customer.pk)

    assert response.status_code == 409
    assert response.json()['error'] == 'insufficient_credit'


def test_adjust_credit_rejects_zero(api, customer):
    response = api('credit-adjust', {'adjustment_type': 'add', 'amount': '0'},
                   customer_pk=customer.pk)

    assert response.status_code == 400
    assert 'amount' in response.json()['fields']


def test_apply_credit_and_read_history(api, customer, fund, make_bill):
    fund(customer, '200')
    bill = make_bill(billed_month=JAN_2024)

    response = api('credit-apply', {'selections': [{'bill_number': bill.pk,
                                                    'amount': '151.80'}],
                                    'total_to_apply': '151.80'}, customer_pk=customer.pk)

    assert response.json()['data']['bills_paid'] == 1
    history = api('credit-history', method='get', customer_pk=customer.pk).json()['data']
    assert [e['kind'] for e in history['entries']] == [
        CreditAdjustment.MANUAL_ADD, CreditAdjustment.APPLIED_TO_BILL]
    assert history['entries'][1]['bill_number'] == bill.pk


def test_database_failure_is_reported(api, customer, monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError('disk I/O error')
    monkeypatch.setattr(views, 'adjust_credit', broken)

    response = api('credit-adjust', {'adjustment_type': 'add', 'amount': '10'},
                   customer_pk=customer.pk)

    assert response.status_code == 503
    assert response.json()['error'] == 'persistence_error'
    assert customer.credit_adjustments.count() == 0
