import logging
from collections import namedtuple
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.db.models.functions import Round
from django.utils import timezone

from .exceptions import (
    BillingValidationError, InsufficientCreditError,
    InvalidBillStateError, NotFoundError,
)
from .models import Bill, Customer, CreditAdjustment
from .services import ZERO, as_decimal, compute_bill_charges, get_surcharge_policy, to_money

logger = logging.getLogger(__name__)

# Stored balances are whole centavos; the overdraw guard allows half a
# centavo of floating point error
HALF_CENT = Decimal('0.005')

CreditApplication = namedtuple('CreditApplication',
                               ['bills_paid', 'credit_used', 'remaining_credit'])


# ══════════════════════════════════════════════════════════
#   CREDIT LEDGER
#   The only code that changes Customer.credit_balance.
#   Each operation locks the customer row first, moves the
#   balance with one conditional UPDATE and appends the
#   CreditAdjustment rows explaining the move, all in one
#   transaction. The balance never goes below zero.
# ══════════════════════════════════════════════════════════
def lock_customer(customer_id):
    """Fetches the customer row for update. Call inside transaction.atomic()."""
    try:
        return (Customer.objects.select_for_update()
                .select_related('customer_type')
                .get(pk=customer_id))
    except (Customer.DoesNotExist, ValueError):
        raise NotFoundError(f'Customer {customer_id} not found.')


def _move_balance(customer, delta):
    """Adds ``delta`` to the stored balance in one conditional update.

    Returns the balance after the move. A negative delta larger than the
    stored balance raises InsufficientCreditError and changes nothing. The
    stored value is re-rounded to centavos on every write.
    """
    delta = as_decimal(delta)
    if delta == 0:
        return customer.credit_balance

    qs = Customer.objects.filter(pk=customer.pk)
    if delta < 0:
        qs = qs.filter(credit_balance__gte=-delta - HALF_CENT)

    if qs.update(credit_balance=Round(F('credit_balance') + delta, 2)) == 0:
        raise InsufficientCreditError(
            'Cannot deduct more than available credit balance.')

    customer.refresh_from_db(fields=['credit_balance'])
    return customer.credit_balance


def _record(customer, kind, amount, balance_after, actor, remarks='', bill=None):
    return CreditAdjustment.objects.create(
        customer      = customer,
        bill          = bill,
        kind          = kind,
        amount        = amount,
        balance_after = balance_after,
        remarks       = remarks,
        actor         = actor,
    )


# ══════════════════════════════════════════════════════════
#   OPERATION 1 — adjust_credit  (manual add / deduct)
# ══════════════════════════════════════════════════════════
def adjust_credit(customer_id, amount, adjustment_type, remarks='', actor='System'):
    amount = to_money(amount, 'Amount')
    if amount <= 0:
        raise BillingValidationError('Please enter a valid amount.')
    if adjustment_type == 'add':
        kind, delta = CreditAdjustment.MANUAL_ADD, amount
    elif adjustment_type == 'deduct':
        kind, delta = CreditAdjustment.MANUAL_DEDUCT, -amount
    else:
        raise BillingValidationError('Invalid adjustment type.')

    with transaction.atomic():
        customer = lock_customer(customer_id)
        if delta < 0 and customer.credit_balance < amount:
            logger.warning('Credit deduct of %s rejected for customer %s (balance %s)',
                           amount, customer.pk, customer.credit_balance)
            raise InsufficientCreditError(
                'Cannot deduct more than available credit balance.')

        balance = _move_balance(customer, delta)
        entry   = _record(customer, kind, delta, balance, actor, remarks)

    logger.info('Credit %s of %s for customer %s by %s; balance now %s',
                adjustment_type, amount, customer.pk, actor, balance)
    return entry


# ══════════════════════════════════════════════════════════
#   OPERATION 2 — apply_credit_to_bills
#   Settles selected bills entirely from the credit balance.
#   selections: iterable of {'bill_number': ..., 'amount': ...}
# ══════════════════════════════════════════════════════════
def _parse_selections(selections):
    parsed = []
    for item in selections or []:
        try:
            bill_number = int(item['bill_number'])
        except (KeyError, TypeError, ValueError):
            raise BillingValidationError('Each selection needs a bill_number.')
        amount = to_money(item.get('amount'), f'Amount for bill {bill_number}')
        if amount <= 0:
            raise BillingValidationError(
                f'Amount for bill {bill_number} must be greater than zero.')
        parsed.append((bill_number, amount))

    if not parsed:
        raise BillingValidationError('Please select at least one bill.')
    if len({number for number, _ in parsed}) != len(parsed):
        raise BillingValidationError('A bill was selected more than once.')
    return parsed


def apply_credit_to_bills(customer_id, selections, total_to_apply=None,
                          paid_by='System', now=None):
    parsed = _parse_selections(selections)
    total  = sum((amount for _, amount in parsed), ZERO)
    if total_to_apply is not None and to_money(total_to_apply, 'Total to apply') != total:
        raise BillingValidationError(
            'Total to apply does not match the selected bill amounts.')
    now = now or timezone.now()

    with transaction.atomic():
        customer = lock_customer(customer_id)
        if total > customer.credit_balance:
            logger.warning('Credit application of %s rejected for customer %s (balance %s)',
                           total, customer.pk, customer.credit_balance)
            raise InsufficientCreditError('Insufficient credit balance.')

        bills = {bill.pk: bill for bill in Bill.objects.select_for_update()
                 .filter(pk__in=[number for number, _ in parsed])}
        policy = get_surcharge_policy()
        running = customer.credit_balance
        entries = []

        for bill_number, amount in parsed:
            bill = bills.get(bill_number)
            if bill is None or bill.customer_id != customer.pk:
                raise NotFoundError(
                    f'Bill {bill_number} not found for customer {customer.pk}.')
            if not bill.is_open:
                raise InvalidBillStateError(f'Bill {bill_number} is already paid.')

            charges = compute_bill_charges(bill, customer, policy, now)
            bill.surcharge_amount       = charges.surcharge.total_surcharge
            bill.total_bill_amount      = charges.total
            bill.payment_status         = Bill.PAID
            bill.advance_payment_amount = amount
            bill.paid_by                = paid_by
            bill.date_paid              = now
            bill.save()

            running -= amount
            entries.append((bill, amount, running))

        balance = _move_balance(customer, -total)
        for bill, amount, balance_after in entries:
            _record(customer, CreditAdjustment.APPLIED_TO_BILL, -amount, balance_after,
                    paid_by, f'Credit applied to bill {bill.pk}', bill=bill)

    logger.info('Credit of %s applied to %s bill(s) for customer %s by %s; balance now %s',
                total, len(parsed), customer.pk, paid_by, balance)
    return CreditApplication(bills_paid=len(parsed), credit_used=total,
                             remaining_credit=balance)


# ══════════════════════════════════════════════════════════
#   OPERATION 3 — record_payment_credit
#   Used by the payment processor: consumes credit for the
#   bills it settles and books any overpayment, as one move.
#   credit_shares: list of (bill, amount consumed)
# ══════════════════════════════════════════════════════════
def record_payment_credit(customer, credit_shares, overpayment, actor):
    consumed = sum((amount for _, amount in credit_shares), ZERO)
    overpayment = as_decimal(overpayment)
    running = customer.credit_balance

    balance = _move_balance(customer, overpayment - consumed)

    for bill, amount in credit_shares:
        running -= amount
        _record(customer, CreditAdjustment.APPLIED_TO_BILL, -amount, running,
                actor, f'Credit applied to bill {bill.pk} at payment', bill=bill)
    if overpayment > 0:
        _record(customer, CreditAdjustment.OVERPAYMENT, overpayment, balance,
                actor, 'Overpayment saved as credit')
    return balance


# ══════════════════════════════════════════════════════════
#   OPERATION 4 — restore_credit_on_reversal
#   Gives back the advance payment of a bill being reverted.
#   The caller holds the customer and bill locks and clears
#   the payment fields.
# ══════════════════════════════════════════════════════════
def restore_credit_on_reversal(bill, actor='System'):
    if not bill.paid_from_credit:
        return ZERO

    restored = as_decimal(bill.advance_payment_amount)
    with transaction.atomic():
        customer = lock_customer(bill.customer_id)
        balance  = _move_balance(customer, restored)
        _record(customer, CreditAdjustment.RESTORED_ON_REVERSAL, restored, balance,
                actor, f'Payment of bill {bill.pk} reversed', bill=bill)

    logger.info('Restored credit of %s to customer %s from reversed bill %s',
                restored, bill.customer_id, bill.pk)
    return restored


# ══════════════════════════════════════════════════════════
#   OPERATION 5 — audit trail
# ══════════════════════════════════════════════════════════
def get_credit_history(customer_id):
    return (CreditAdjustment.objects.filter(customer_id=customer_id)
            .select_related('bill').order_by('created_at', 'id'))


def replay_balance(customer):
    """Balance implied by the customer's ledger rows."""
    return customer.get_ledger_balance()
