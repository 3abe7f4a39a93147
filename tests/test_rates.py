from decimal import Decimal

import pytest

from billing.models import Bill, Customer, CustomerType
from billing.services import compute_basic_amount, compute_consumption, resolve_discount


def tariff(rate1, rate2):
    return CustomerType(code='T', rate1=Decimal(rate1), rate2=Decimal(rate2))


@pytest.mark.parametrize('rate1, rate2', [('20', '15'), ('12.50', '18.75'), ('0', '0')])
def test_tier_boundaries(rate1, rate2):
    t = tariff(rate1, rate2)
    r1, r2 = Decimal(rate1), Decimal(rate2)

    assert compute_basic_amount(0, t) == r1
    assert compute_basic_amount(3, t) == 3 * r1
    assert compute_basic_amount(5, t) == 3 * r1 + 2 * r2


def test_first_tier_is_charged_per_cubic_meter():
    assert compute_basic_amount(Decimal('2.5'), tariff('20', '15')) == Decimal('50.00')


def test_zero_consumption_pays_minimum_charge():
    consumption = compute_consumption(Decimal('42'), Decimal('42'))

    assert consumption == 0
    assert compute_basic_amount(consumption, tariff('20', '15')) == Decimal('20.00')


def test_reading_scenario_zero_to_seven():
    consumption = compute_consumption(0, 7)

    assert consumption == 7
    assert compute_basic_amount(consumption, tariff('20', '15')) == Decimal('120.00')


def test_negative_consumption_is_clamped_to_zero():
    assert compute_consumption(Decimal('10'), Decimal('4')) == 0


def test_result_rounds_half_up_to_centavos():
    assert compute_basic_amount(1, tariff('10.125', '0')) == Decimal('10.13')


# ── discount resolution ──────────────────────────────────

def test_stored_discount_wins_over_customer_percent():
    bill = Bill(basic_amount=Decimal('120.00'), discount_amount=Decimal('5.00'))
    customer = Customer(discount=Decimal('20.00'))

    assert resolve_discount(bill, customer) == Decimal('5.00')


def test_customer_percent_applies_without_stored_discount():
    bill = Bill(basic_amount=Decimal('120.00'), discount_amount=Decimal('0.00'))
    customer = Customer(discount=Decimal('20.00'))

    assert resolve_discount(bill, customer) == Decimal('24.00')


def test_no_discount_without_percent_or_stored_value():
    bill = Bill(basic_amount=Decimal('120.00'), discount_amount=Decimal('0.00'))

    assert resolve_discount(bill, Customer(discount=Decimal('0'))) == 0
    assert resolve_discount(bill, None) == 0
