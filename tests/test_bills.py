from datetime import date
from decimal import Decimal

import pytest

from billing import services
from billing.exceptions import (
    BillingValidationError, DuplicateBillError, IdExhaustedError,
    InvalidBillStateError, NotFoundError,
)
from billing.models import Bill, BILL_NUMBER_MAX, BILL_NUMBER_MIN
from billing.services import (
    allocate_bill_number, check_duplicate_bill, create_bill, generate_bill_number,
    next_bill_defaults, update_bill,
)

from .conftest import FEB_2024, JAN_2024

pytestmark = pytest.mark.django_db


def sequence(*numbers):
    """Generator stub that hands out the given numbers in order."""
    it = iter(numbers)
    return lambda: next(it)


def test_generated_numbers_have_eight_digits():
    for _ in range(500):
        number = generate_bill_number()
        assert BILL_NUMBER_MIN <= number < BILL_NUMBER_MAX
        assert len(str(number)) == 8


def test_allocation_succeeds_on_last_allowed_attempt(make_bill):
    taken = [make_bill(billed_month=date(2023, m, 1)).pk for m in range(1, 10)]

    number = allocate_bill_number(sequence(*taken, 55_555_555))

    assert number == 55_555_555


def test_allocation_gives_up_after_ten_collisions(make_bill):
    taken = [make_bill(billed_month=date(2023, m, 1)).pk for m in range(1, 11)]

    with pytest.raises(IdExhaustedError, match='after 10 attempts'):
        allocate_bill_number(sequence(*taken, 55_555_555))


def test_attempt_limit_follows_settings(settings, make_bill):
    settings.BILLING_BILL_NUMBER_ATTEMPTS = 2
    taken = [make_bill(billed_month=date(2023, m, 1)).pk for m in range(1, 3)]

    with pytest.raises(IdExhaustedError, match='after 2 attempts'):
        allocate_bill_number(sequence(*taken, 55_555_555))


def test_duplicate_check_can_exclude_a_bill(customer, make_bill):
    bill = make_bill(billed_month=JAN_2024)

    assert check_duplicate_bill(customer.pk, '2024-01')
    assert not check_duplicate_bill(customer.pk, JAN_2024, exclude_bill_number=bill.pk)
    assert not check_duplicate_bill(customer.pk, FEB_2024)


# ── create_bill ──────────────────────────────────────────

def test_create_bill_computes_amounts(customer):
    bill = create_bill(customer.pk, '2024-01', '0', '7', 'Ana Reyes',
                       generator=sequence(12_345_678))

    bill.refresh_from_db()
    assert bill.bill_number == 12_345_678
    assert bill.billed_month == JAN_2024
    assert bill.consumption == Decimal('7.00')
    assert bill.basic_amount == Decimal('120.00')
    assert bill.total_bill_amount == Decimal('120.00')
    assert bill.surcharge_amount == 0
    assert bill.payment_status == Bill.UNPAID
    assert bill.encoded_by == 'Ana Reyes'


def test_create_bill_rejects_reading_below_previous(customer):
    with pytest.raises(BillingValidationError, match='cannot be less than'):
        create_bill(customer.pk, '2024-01', '50', '40', 'Ana Reyes')

    assert not Bill.objects.exists()


@pytest.mark.parametrize('month, previous, current', [
    (None, '0', '7'),
    ('January', '0', '7'),
    ('2024-01', 'abc', '7'),
    ('2024-01', '-1', '7'),
])
def test_create_bill_rejects_bad_input(customer, month, previous, current):
    with pytest.raises(BillingValidationError):
        create_bill(customer.pk, month, previous, current, 'Ana Reyes')


def test_create_bill_unknown_customer(db):
    with pytest.raises(NotFoundError):
        create_bill(999, '2024-01', '0', '7', 'Ana Reyes')


def test_second_bill_for_same_month_is_rejected(customer, make_bill):
    make_bill(billed_month=JAN_2024)

    with pytest.raises(DuplicateBillError):
        create_bill(customer.pk, '2024-01-15', '7', '9', 'Ana Reyes')

    assert Bill.objects.count() == 1


def test_exhausted_numbers_create_nothing(customer, make_bill):
    taken = [make_bill(billed_month=date(2023, m, 1)).pk for m in range(1, 11)]

    with pytest.raises(IdExhaustedError):
        create_bill(customer.pk, '2024-01', '0', '7', 'Ana Reyes',
                    generator=sequence(*taken))

    assert Bill.objects.count() == 10


def test_number_taken_between_lookup_and_insert(monkeypatch, customer, make_bill):
    taken = make_bill(billed_month=date(2023, 1, 1)).pk
    monkeypatch.setattr(services, 'bill_number_exists', lambda number: False)

    with pytest.raises(IdExhaustedError, match='taken by another request'):
        create_bill(customer.pk, '2024-01', '0', '7', 'Ana Reyes',
                    generator=sequence(taken))

    assert not Bill.objects.filter(billed_month=JAN_2024).exists()


# ── update_bill ──────────────────────────────────────────

def test_update_recomputes_and_keeps_own_month(make_bill):
    bill = make_bill(billed_month=JAN_2024)

    updated = update_bill(bill.pk, billed_month='2024-01', previous_reading='0',
                          current_reading='3', encoded_by='Ben Cruz')

    assert updated.consumption == Decimal('3.00')
    assert updated.basic_amount == Decimal('60.00')
    assert updated.total_bill_amount == Decimal('60.00')
    assert updated.encoded_by == 'Ben Cruz'


def test_update_into_taken_month_is_rejected(make_bill):
    make_bill(billed_month=JAN_2024)
    february = make_bill(billed_month=FEB_2024)

    with pytest.raises(DuplicateBillError):
        update_bill(february.pk, billed_month='2024-01')

    february.refresh_from_db()
    assert february.billed_month == FEB_2024


def test_paid_bill_cannot_be_edited(make_bill):
    bill = make_bill(payment_status=Bill.PAID)

    with pytest.raises(InvalidBillStateError):
        update_bill(bill.pk, current_reading='10')


def test_update_unknown_bill(db):
    with pytest.raises(NotFoundError):
        update_bill(10_000_000, current_reading='10')


# ── next bill defaults ───────────────────────────────────

def test_next_bill_continues_from_last_reading(customer, make_bill):
    make_bill(billed_month=JAN_2024, previous='0', current='7')
    make_bill(billed_month=FEB_2024, previous='7', current='12')

    defaults = next_bill_defaults(customer)

    assert defaults == {'billed_month': date(2024, 3, 1),
                        'previous_reading': Decimal('12.00')}


def test_first_bill_starts_at_zero(customer):
    defaults = next_bill_defaults(customer)

    assert defaults['previous_reading'] == 0
    assert defaults['billed_month'].day == 1
