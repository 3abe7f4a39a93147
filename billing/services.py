import calendar
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import (
    BillingValidationError, DuplicateBillError, IdExhaustedError,
    InvalidBillStateError, NotFoundError,
)
from .models import Bill, Customer, SurchargePolicy, BILL_NUMBER_MIN, BILL_NUMBER_MAX

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Cubic meters billed at rate1 before rate2 applies
FIRST_TIER_VOLUME = Decimal('3')

DEFAULT_SURCHARGE_POLICY = {
    'due_day': 10,
    'first_surcharge_percent': Decimal('10'),
    'second_surcharge_percent': Decimal('15'),
}
DEFAULT_BILL_NUMBER_ATTEMPTS = 10


# ══════════════════════════════════════════════════════════
#   HELPERS — money and month parsing
#   Every money value in the engine is quantized to centavos
#   with ROUND_HALF_UP.
# ══════════════════════════════════════════════════════════
def as_decimal(value):
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value):
    return as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value, field='amount'):
    """Parses caller input into a money Decimal or raises BillingValidationError."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise BillingValidationError(f'{field} is required.')
    if isinstance(value, bool):
        raise BillingValidationError(f'{field} must be a number.')
    try:
        amount = as_decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, ValueError):
        raise BillingValidationError(f'{field} must be a number.')
    if not amount.is_finite():
        raise BillingValidationError(f'{field} must be a number.')
    return quantize_money(amount)


def to_month(value):
    """Normalizes a date, datetime, 'YYYY-MM' or 'YYYY-MM-DD' to the first of its month."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.replace(day=1)
    if isinstance(value, str):
        text = value.strip()
        for fmt in ('%Y-%m-%d', '%Y-%m'):
            try:
                return datetime.strptime(text, fmt).date().replace(day=1)
            except ValueError:
                continue
    raise BillingValidationError(f'Invalid billing month: {value!r}. Use YYYY-MM.')


def next_month(month):
    if month.month == 12:
        return date(month.year + 1, 1, 1)
    return date(month.year, month.month + 1, 1)


def local_date(now):
    if isinstance(now, datetime):
        if timezone.is_aware(now):
            now = timezone.localtime(now)
        return now.date()
    return now


# ══════════════════════════════════════════════════════════
#   FUNCTION 1 — compute_basic_amount
#   Tiered tariff: first 3 cu.m at rate1, the excess at rate2,
#   zero consumption pays rate1 as the minimum charge.
# ══════════════════════════════════════════════════════════
def compute_consumption(previous_reading, current_reading):
    consumption = as_decimal(current_reading) - as_decimal(previous_reading)
    return max(ZERO, consumption)


def compute_basic_amount(consumption, tariff):
    rate1 = as_decimal(tariff.rate1 or 0)
    rate2 = as_decimal(tariff.rate2 or 0)
    consumption = max(ZERO, as_decimal(consumption))

    if consumption == 0:
        basic = rate1
    elif consumption <= FIRST_TIER_VOLUME:
        basic = consumption * rate1
    else:
        basic = (FIRST_TIER_VOLUME * rate1) + ((consumption - FIRST_TIER_VOLUME) * rate2)

    return quantize_money(basic)


# ══════════════════════════════════════════════════════════
#   FUNCTION 2 — resolve_discount
#   A positive discount stored on the bill wins over the
#   customer's current discount percentage.
# ══════════════════════════════════════════════════════════
def resolve_discount(bill, customer):
    stored = bill.discount_amount
    if stored and stored > 0:
        return quantize_money(stored)

    percent = customer.discount if customer is not None else None
    if not percent or percent <= 0:
        return ZERO

    return quantize_money(as_decimal(bill.basic_amount or 0) * as_decimal(percent) / 100)


# ══════════════════════════════════════════════════════════
#   FUNCTION 3 — compute_surcharge
#   Late payment penalties relative to the due date:
#     day after due date      -> first surcharge on basic
#     after the due month end -> second surcharge on basic + first
# ══════════════════════════════════════════════════════════
@dataclass(frozen=True)
class SurchargeBreakdown:
    first_surcharge: Decimal = ZERO
    second_surcharge: Decimal = ZERO
    total_surcharge: Decimal = ZERO
    days_overdue: int = 0
    due_date: Optional[date] = None
    end_of_due_month: Optional[date] = None
    surcharge_type: Optional[str] = None
    first_surcharge_percent: Decimal = ZERO
    second_surcharge_percent: Decimal = ZERO


def get_surcharge_policy():
    """Active policy row, or an unsaved policy built from the configured defaults."""
    policy = SurchargePolicy.objects.filter(is_active=True).first()
    if policy is not None:
        return policy

    defaults = {**DEFAULT_SURCHARGE_POLICY,
                **getattr(settings, 'BILLING_SURCHARGE_DEFAULTS', {})}
    return SurchargePolicy(
        due_day                  = int(defaults['due_day']),
        first_surcharge_percent  = as_decimal(defaults['first_surcharge_percent']),
        second_surcharge_percent = as_decimal(defaults['second_surcharge_percent']),
    )


def compute_due_date(billed_month, due_day):
    """Returns (due_date, last day of the due month) for a billed month.

    A due day past the end of a short month falls on that month's last day.
    """
    due_month = next_month(to_month(billed_month))
    last_day  = calendar.monthrange(due_month.year, due_month.month)[1]
    return (due_month.replace(day=min(int(due_day), last_day)),
            due_month.replace(day=last_day))


def compute_surcharge(bill, policy, now=None):
    first_pct  = as_decimal(policy.first_surcharge_percent or 0)
    second_pct = as_decimal(policy.second_surcharge_percent or 0)
    percents   = {'first_surcharge_percent': first_pct,
                  'second_surcharge_percent': second_pct}

    if not bill.billed_month or not bill.basic_amount:
        return SurchargeBreakdown(**percents)

    due_date, end_of_due_month = compute_due_date(bill.billed_month, policy.due_day)
    today        = local_date(now if now is not None else timezone.now())
    days_overdue = (today - due_date).days

    if days_overdue <= 0:
        return SurchargeBreakdown(due_date=due_date,
                                  end_of_due_month=end_of_due_month, **percents)

    basic  = as_decimal(bill.basic_amount)
    first  = quantize_money(basic * first_pct / 100)
    second = ZERO
    surcharge_type = 'first'

    if today > end_of_due_month:
        second = quantize_money((basic + first) * second_pct / 100)
        surcharge_type = 'both'

    return SurchargeBreakdown(
        first_surcharge  = first,
        second_surcharge = second,
        total_surcharge  = first + second,
        days_overdue     = days_overdue,
        due_date         = due_date,
        end_of_due_month = end_of_due_month,
        surcharge_type   = surcharge_type,
        **percents,
    )


# ══════════════════════════════════════════════════════════
#   FUNCTION 4 — compute_bill_charges
#   total = basic + surcharge - discount, as owed "now",
#   never below zero
# ══════════════════════════════════════════════════════════
@dataclass(frozen=True)
class BillCharges:
    bill: Bill
    basic_amount: Decimal
    surcharge: SurchargeBreakdown
    discount_amount: Decimal
    total: Decimal


def compute_bill_charges(bill, customer, policy, now=None):
    basic     = quantize_money(bill.basic_amount or 0)
    surcharge = compute_surcharge(bill, policy, now)
    discount  = resolve_discount(bill, customer)
    return BillCharges(
        bill            = bill,
        basic_amount    = basic,
        surcharge       = surcharge,
        discount_amount = discount,
        total           = max(ZERO, basic + surcharge.total_surcharge - discount),
    )


# ══════════════════════════════════════════════════════════
#   FUNCTION 5 — allocate_bill_number
#   Random 8-digit numbers checked against existing bills.
#   The primary key constraint stays the real guard.
# ══════════════════════════════════════════════════════════
def generate_bill_number():
    return random.randrange(BILL_NUMBER_MIN, BILL_NUMBER_MAX)


def bill_number_exists(bill_number):
    return Bill.objects.filter(pk=bill_number).exists()


def allocate_bill_number(generator=None, max_attempts=None):
    generator = generator or generate_bill_number
    if max_attempts is None:
        max_attempts = getattr(settings, 'BILLING_BILL_NUMBER_ATTEMPTS',
                               DEFAULT_BILL_NUMBER_ATTEMPTS)

    for attempt in range(1, max_attempts + 1):
        candidate = generator()
        if not bill_number_exists(candidate):
            return candidate
        logger.debug('Bill number %s already taken (attempt %s/%s)',
                     candidate, attempt, max_attempts)

    logger.error('Bill number allocation failed after %s attempts', max_attempts)
    raise IdExhaustedError(
        f'Could not generate unique bill ID after {max_attempts} attempts.')


def check_duplicate_bill(customer_id, billed_month, exclude_bill_number=None):
    qs = Bill.objects.filter(customer_id=customer_id,
                             billed_month=to_month(billed_month))
    if exclude_bill_number is not None:
        qs = qs.exclude(pk=exclude_bill_number)
    return qs.exists()


# ══════════════════════════════════════════════════════════
#   FUNCTION 6 — create_bill / update_bill
#   Encodes a reading for a customer and month
# ══════════════════════════════════════════════════════════
def get_customer(customer_id):
    try:
        return Customer.objects.select_related('customer_type').get(pk=customer_id)
    except (Customer.DoesNotExist, ValueError):
        raise NotFoundError(f'Customer {customer_id} not found.')


def lock_bill(bill_number):
    """Fetches a bill row for update. Call inside transaction.atomic()."""
    try:
        return (Bill.objects.select_for_update()
                .select_related('customer__customer_type')
                .get(pk=bill_number))
    except (Bill.DoesNotExist, ValueError):
        raise NotFoundError(f'Bill {bill_number} not found.')


def validate_readings(previous_reading, current_reading):
    previous = to_money(previous_reading, 'Previous reading')
    current  = to_money(current_reading, 'Current reading')
    if previous < 0 or current < 0:
        raise BillingValidationError('Meter readings cannot be negative.')
    if current < previous:
        raise BillingValidationError(
            'Current reading cannot be less than previous reading.')
    return previous, current


def _duplicate_message(customer_id, month):
    return (f'A bill for customer {customer_id} and '
            f'{month:%B %Y} already exists.')


def create_bill(customer_id, billed_month, previous_reading, current_reading,
                encoded_by, generator=None):
    if customer_id in (None, ''):
        raise BillingValidationError('Please select a customer.')
    if not billed_month:
        raise BillingValidationError('Please select billing month.')

    month              = to_month(billed_month)
    previous, current  = validate_readings(previous_reading, current_reading)
    customer           = get_customer(customer_id)

    if check_duplicate_bill(customer.pk, month):
        logger.warning('Duplicate bill rejected: customer %s, %s', customer.pk, month)
        raise DuplicateBillError(_duplicate_message(customer.pk, month))

    consumption = compute_consumption(previous, current)
    basic       = compute_basic_amount(consumption, customer.customer_type)
    bill_number = allocate_bill_number(generator)

    try:
        with transaction.atomic():
            bill = Bill.objects.create(
                bill_number       = bill_number,
                customer          = customer,
                billed_month      = month,
                previous_reading  = previous,
                current_reading   = current,
                consumption       = consumption,
                basic_amount      = basic,
                total_bill_amount = basic,
                encoded_by        = encoded_by or 'Unknown',
            )
    except IntegrityError:
        if check_duplicate_bill(customer.pk, month):
            raise DuplicateBillError(_duplicate_message(customer.pk, month))
        raise IdExhaustedError(
            f'Bill number {bill_number} was taken by another request. Please retry.')

    logger.info('Bill %s created for customer %s (%s): %s cu.m, P%s',
                bill.bill_number, customer.pk, month, consumption, basic)
    return bill


def update_bill(bill_number, billed_month=None, previous_reading=None,
                current_reading=None, encoded_by=None):
    try:
        with transaction.atomic():
            bill = lock_bill(bill_number)
            if bill.payment_status == Bill.PAID:
                raise InvalidBillStateError(
                    f'Bill {bill_number} is already paid. Reverse the payment first.')

            month = to_month(billed_month) if billed_month else bill.billed_month
            previous, current = validate_readings(
                bill.previous_reading if previous_reading is None else previous_reading,
                bill.current_reading if current_reading is None else current_reading,
            )
            if check_duplicate_bill(bill.customer_id, month, exclude_bill_number=bill.pk):
                raise DuplicateBillError(_duplicate_message(bill.customer_id, month))

            bill.billed_month      = month
            bill.previous_reading  = previous
            bill.current_reading   = current
            bill.consumption       = compute_consumption(previous, current)
            bill.basic_amount      = compute_basic_amount(bill.consumption,
                                                          bill.customer.customer_type)
            bill.total_bill_amount = (bill.basic_amount + bill.surcharge_amount
                                      - bill.discount_amount)
            if encoded_by:
                bill.encoded_by = encoded_by
            bill.save()
    except IntegrityError:
        raise DuplicateBillError(_duplicate_message(bill.customer_id, month))

    logger.info('Bill %s updated: %s cu.m, P%s',
                bill.bill_number, bill.consumption, bill.basic_amount)
    return bill


def next_bill_defaults(customer):
    """Month after the customer's last bill, starting from its current reading."""
    last = customer.bills.order_by('-billed_month').first()
    if last is None:
        today = timezone.localdate()
        return {'billed_month': date(today.year, today.month, 1),
                'previous_reading': ZERO}
    return {'billed_month': next_month(last.billed_month),
            'previous_reading': last.current_reading}
