"""Shared fixtures: a 20/15 tariff, one customer and a bill factory."""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest

from billing.ledger import adjust_credit
from billing.models import Bill, Customer, CustomerType, SurchargePolicy
from billing.services import compute_basic_amount, compute_consumption

JAN_2024 = date(2024, 1, 1)
FEB_2024 = date(2024, 2, 1)

# January 2024 bills fall due on 2024-02-10
BEFORE_DUE = datetime(2024, 2, 5, 2, 0, tzinfo=dt_timezone.utc)
FIRST_TIER = datetime(2024, 2, 15, 2, 0, tzinfo=dt_timezone.utc)
SECOND_TIER = datetime(2024, 3, 5, 2, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def residential(db):
    return CustomerType.objects.create(code='RESIDENTIAL',
                                       rate1=Decimal('20.00'), rate2=Decimal('15.00'))


@pytest.fixture
def policy(db):
    return SurchargePolicy.objects.create(due_day=10,
                                          first_surcharge_percent=Decimal('10.00'),
                                          second_surcharge_percent=Decimal('15.00'))


@pytest.fixture
def customer(residential):
    return Customer.objects.create(name='Juan Dela Cruz', barangay='Poblacion',
                                   customer_type=residential)


@pytest.fixture
def other_customer(residential):
    return Customer.objects.create(name='Maria Santos', barangay='San Isidro',
                                   customer_type=residential)


@pytest.fixture
def make_bill(customer):
    numbers = iter(range(10_000_001, 10_100_000))

    def make(billed_month=JAN_2024, previous='0', current='7', owner=None, **extra):
        owner       = owner or customer
        previous    = Decimal(previous)
        current     = Decimal(current)
        consumption = compute_consumption(previous, current)
        basic       = compute_basic_amount(consumption, owner.customer_type)
        fields = {
            'bill_number':       next(numbers),
            'customer':          owner,
            'billed_month':      billed_month,
            'previous_reading':  previous,
            'current_reading':   current,
            'consumption':       consumption,
            'basic_amount':      basic,
            'total_bill_amount': basic,
            'encoded_by':        'Test Encoder',
        }
        fields.update(extra)
        return Bill.objects.create(**fields)

    return make


@pytest.fixture
def fund():
    """Opens a credit balance through the ledger so replays stay consistent."""
    def fund_customer(customer, amount):
        adjust_credit(customer.pk, amount, 'add', remarks='Opening credit', actor='Test')
        customer.refresh_from_db()
        return customer

    return fund_customer
