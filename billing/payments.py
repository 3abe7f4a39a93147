import logging
from collections import namedtuple

from django.db import transaction
from django.utils import timezone

from .exceptions import (
    BillingValidationError, InsufficientPaymentError, InvalidBillStateError,
    NotFoundError, StaleCreditBalanceError,
)
from .ledger import lock_customer, record_payment_credit, restore_credit_on_reversal
from .models import Bill
from .services import (
    ZERO, compute_bill_charges, get_customer, get_surcharge_policy,
    lock_bill, to_money,
)

logger = logging.getLogger(__name__)

PaymentQuote = namedtuple('PaymentQuote', [
    'customer', 'charges', 'grand_total', 'credit_balance',
    'credit_to_apply', 'amount_after_credit',
])
PaymentOutcome = namedtuple('PaymentOutcome', [
    'paid_count', 'credit_consumed', 'credit_added',
    'grand_total', 'amount_after_credit', 'remaining_credit',
])


def _split_credit(grand_total, credit_balance):
    """Returns (credit_to_apply, amount_after_credit)."""
    credit_to_apply = min(credit_balance, grand_total)
    return credit_to_apply, grand_total - credit_to_apply


def _allocate_credit(charges, credit_to_apply):
    """Spreads consumed credit over the bills, oldest billed month first."""
    shares = []
    remaining = credit_to_apply
    for item in charges:
        if remaining <= 0:
            break
        share = min(remaining, item.total)
        if share > 0:
            shares.append((item.bill, share))
            remaining -= share
    return shares


# ══════════════════════════════════════════════════════════
#   FUNCTION 1 — quote_payment
#   Open bills with today's surcharge and discount applied,
#   and how much cash is due after credit.
# ══════════════════════════════════════════════════════════
def quote_payment(customer_id, now=None):
    customer = get_customer(customer_id)
    policy   = get_surcharge_policy()
    bills    = (customer.bills.filter(payment_status__in=Bill.OPEN_STATUSES)
                .order_by('billed_month', 'bill_number'))

    charges     = [compute_bill_charges(bill, customer, policy, now) for bill in bills]
    grand_total = sum((item.total for item in charges), ZERO)
    credit_to_apply, amount_after_credit = _split_credit(grand_total, customer.credit_balance)

    return PaymentQuote(
        customer            = customer,
        charges             = charges,
        grand_total         = grand_total,
        credit_balance      = customer.credit_balance,
        credit_to_apply     = credit_to_apply,
        amount_after_credit = amount_after_credit,
    )


# ══════════════════════════════════════════════════════════
#   FUNCTION 2 — process_payment
#   Settles one customer's open bills at once: stored credit
#   is used first, the cashier collects at least the rest,
#   and anything paid beyond it becomes new credit. Bill
#   updates and the credit move commit together.
#   Lock order: customer row, then bill rows.
# ══════════════════════════════════════════════════════════
def _missing_message(numbers, found):
    missing = [number for number in numbers if number not in found]
    return f'Bill(s) not found: {", ".join(map(str, missing))}.'


def process_payment(bill_numbers, paid_by, amount_received, credit_balance=None, now=None):
    if not bill_numbers:
        raise BillingValidationError('Please select at least one bill.')
    if not paid_by:
        raise BillingValidationError('Paid by is required.')
    amount_received = to_money(amount_received, 'Amount received')
    if amount_received < 0:
        raise BillingValidationError('Amount received cannot be negative.')
    if credit_balance is not None:
        credit_balance = to_money(credit_balance, 'Credit balance')
    try:
        numbers = sorted({int(number) for number in bill_numbers})
    except (TypeError, ValueError):
        raise BillingValidationError('Bill numbers must be numeric.')
    now = now or timezone.now()

    with transaction.atomic():
        owners = dict(Bill.objects.filter(pk__in=numbers).values_list('pk', 'customer_id'))
        if len(owners) != len(numbers):
            raise NotFoundError(_missing_message(numbers, owners))
        customer_ids = set(owners.values())
        if len(customer_ids) > 1:
            raise BillingValidationError('All bills in one payment must belong to one customer.')

        customer = lock_customer(customer_ids.pop())
        bills = list(Bill.objects.select_for_update()
                     .filter(pk__in=numbers, customer_id=customer.pk)
                     .order_by('billed_month', 'bill_number'))
        if len(bills) != len(numbers):
            raise NotFoundError(_missing_message(numbers, {bill.pk for bill in bills}))
        for bill in bills:
            if not bill.is_open:
                raise InvalidBillStateError(f'Bill {bill.pk} is already paid.')

        if credit_balance is not None and credit_balance != customer.credit_balance:
            raise StaleCreditBalanceError(
                f'Credit balance changed from {credit_balance} to '
                f'{customer.credit_balance}. Please review the payment again.')

        policy      = get_surcharge_policy()
        charges     = [compute_bill_charges(bill, customer, policy, now) for bill in bills]
        grand_total = sum((item.total for item in charges), ZERO)
        credit_to_apply, amount_after_credit = _split_credit(grand_total, customer.credit_balance)

        if amount_received < amount_after_credit:
            logger.warning('Payment rejected for customer %s: received %s, due %s',
                           customer.pk, amount_received, amount_after_credit)
            raise InsufficientPaymentError(
                f'Amount received (P{amount_received}) is less than '
                f'required (P{amount_after_credit}).')

        overpayment = amount_received - amount_after_credit
        shares      = _allocate_credit(charges, credit_to_apply)
        advance     = {bill.pk: share for bill, share in shares}

        for item in charges:
            bill = item.bill
            bill.surcharge_amount       = item.surcharge.total_surcharge
            bill.total_bill_amount      = item.total
            bill.payment_status         = Bill.PAID
            bill.paid_by                = paid_by
            bill.date_paid              = now
            bill.advance_payment_amount = advance.get(bill.pk)
            bill.save()

        balance = record_payment_credit(customer, shares, overpayment, paid_by)

    logger.info('Payment by %s settled %s bill(s) for customer %s: total %s, '
                'credit used %s, credit added %s',
                paid_by, len(bills), customer.pk, grand_total, credit_to_apply, overpayment)
    return PaymentOutcome(
        paid_count          = len(bills),
        credit_consumed     = credit_to_apply,
        credit_added        = overpayment,
        grand_total         = grand_total,
        amount_after_credit = amount_after_credit,
        remaining_credit    = balance,
    )


# ══════════════════════════════════════════════════════════
#   FUNCTION 3 — reverse_payment
#   Paid -> Unpaid, giving back any credit the bill consumed
# ══════════════════════════════════════════════════════════
def reverse_payment(bill_number, actor='System'):
    with transaction.atomic():
        owner = (Bill.objects.filter(pk=bill_number)
                 .values_list('customer_id', flat=True).first())
        if owner is None:
            raise NotFoundError(f'Bill {bill_number} not found.')
        lock_customer(owner)

        bill = lock_bill(bill_number)
        if bill.payment_status != Bill.PAID:
            raise InvalidBillStateError(f'Bill {bill_number} is not paid.')

        restored = restore_credit_on_reversal(bill, actor)

        bill.payment_status         = Bill.UNPAID
        bill.paid_by                = None
        bill.date_paid              = None
        bill.advance_payment_amount = None
        bill.save(update_fields=['payment_status', 'paid_by', 'date_paid',
                                 'advance_payment_amount', 'updated_at'])

    logger.info('Payment of bill %s reversed by %s; credit restored %s',
                bill.pk, actor, restored)
    return bill, restored
