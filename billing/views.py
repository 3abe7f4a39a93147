import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .exceptions import BillingError, BillingValidationError, PersistenceError
from .forms import ApplyCreditForm, BillForm, CreditAdjustmentForm, PaymentForm
from .ledger import adjust_credit, apply_credit_to_bills, get_credit_history
from .payments import process_payment, quote_payment, reverse_payment
from .services import create_bill, get_customer, next_bill_defaults, update_bill

logger = logging.getLogger(__name__)

HTTP_STATUS = {
    'validation_error':     400,
    'stale_credit_balance': 409,
    'invalid_bill_state':   409,
    'not_found':            404,
    'duplicate_bill':       409,
    'id_exhausted':         503,
    'insufficient_credit':  409,
    'insufficient_payment': 400,
    'persistence_error':    503,
}


# ══════════════════════════════════════════════════════════
#   HELPERS — request parsing and structured results
# ══════════════════════════════════════════════════════════
def _payload(request):
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except ValueError:
            raise BillingValidationError('Request body is not valid JSON.')
        if not isinstance(data, dict):
            raise BillingValidationError('Request body must be a JSON object.')
        return data
    return request.POST


def _actor(request):
    return request.user.get_full_name() or request.user.username


def _ok(data, status=200):
    return JsonResponse({'success': True, 'data': data},
                        status=status, encoder=DjangoJSONEncoder)


def _fail(exc):
    return JsonResponse({'success': False, 'error': exc.code, 'message': str(exc)},
                        status=HTTP_STATUS.get(exc.code, 400))


def _form_fail(form):
    fields = {name: [e['message'] for e in errors]
              for name, errors in form.errors.get_json_data().items()}
    return JsonResponse({'success': False, 'error': 'validation_error',
                         'message': 'Please correct the highlighted fields.',
                         'fields': fields}, status=400)


def billing_endpoint(view):
    """Reports engine errors and database failures as structured results."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except BillingError as exc:
            return _fail(exc)
        except DatabaseError:
            logger.exception('Database failure in %s', view.__name__)
            return _fail(PersistenceError(
                'The billing database could not complete the request. No changes were saved.'))
    return wrapper


def _bill_data(bill):
    return {
        'bill_number':            bill.bill_number,
        'customer_id':            bill.customer_id,
        'billed_month':           bill.billed_month,
        'previous_reading':       bill.previous_reading,
        'current_reading':        bill.current_reading,
        'consumption':            bill.consumption,
        'basic_amount':           bill.basic_amount,
        'surcharge_amount':       bill.surcharge_amount,
        'discount_amount':        bill.discount_amount,
        'total_bill_amount':      bill.total_bill_amount,
        'payment_status':         bill.payment_status,
        'advance_payment_amount': bill.advance_payment_amount,
        'paid_by':                bill.paid_by,
        'date_paid':              bill.date_paid,
        'encoded_by':             bill.encoded_by,
    }


def _charges_data(item):
    surcharge = item.surcharge
    return {
        **_bill_data(item.bill),
        'computed_basic_amount':    item.basic_amount,
        'computed_discount_amount': item.discount_amount,
        'first_surcharge':          surcharge.first_surcharge,
        'second_surcharge':         surcharge.second_surcharge,
        'computed_surcharge':       surcharge.total_surcharge,
        'surcharge_type':           surcharge.surcharge_type,
        'days_overdue':             surcharge.days_overdue,
        'due_date':                 surcharge.due_date,
        'computed_total':           item.total,
    }


# ══════════════════════════════════════════════════════════
#   VIEWS 1–3 — Bill encoding and reversal
# ══════════════════════════════════════════════════════════
@login_required
@require_POST
@billing_endpoint
def bill_create(request):
    form = BillForm(_payload(request))
    if not form.is_valid():
        return _form_fail(form)

    bill = create_bill(
        customer_id      = form.cleaned_data['customer'].pk,
        billed_month     = form.cleaned_data['billed_month'],
        previous_reading = form.cleaned_data['previous_reading'],
        current_reading  = form.cleaned_data['current_reading'],
        encoded_by       = _actor(request),
    )
    return _ok(_bill_data(bill), status=201)


@login_required
@require_POST
@billing_endpoint
def bill_edit(request, bill_number):
    form = BillForm(_payload(request), require_customer=False)
    if not form.is_valid():
        return _form_fail(form)

    bill = update_bill(
        bill_number,
        billed_month     = form.cleaned_data['billed_month'],
        previous_reading = form.cleaned_data['previous_reading'],
        current_reading  = form.cleaned_data['current_reading'],
        encoded_by       = _actor(request),
    )
    return _ok(_bill_data(bill))


@login_required
@require_POST
@billing_endpoint
def bill_reverse(request, bill_number):
    bill, restored = reverse_payment(bill_number, actor=_actor(request))
    return _ok({**_bill_data(bill), 'credit_restored': restored})


# ══════════════════════════════════════════════════════════
#   VIEWS 4–6 — Payments
# ══════════════════════════════════════════════════════════
@login_required
@require_GET
@billing_endpoint
def next_bill(request, customer_pk):
    defaults = next_bill_defaults(get_customer(customer_pk))
    return _ok({'customer_id': customer_pk, **defaults})


@login_required
@require_GET
@billing_endpoint
def open_bills(request, customer_pk):
    quote = quote_payment(customer_pk)
    return _ok({
        'customer_id':         quote.customer.pk,
        'customer_name':       quote.customer.name,
        'discount':            quote.customer.discount,
        'credit_balance':      quote.credit_balance,
        'bills':               [_charges_data(item) for item in quote.charges],
        'grand_total':         quote.grand_total,
        'credit_to_apply':     quote.credit_to_apply,
        'amount_after_credit': quote.amount_after_credit,
    })


@login_required
@require_POST
@billing_endpoint
def payment_create(request):
    form = PaymentForm(_payload(request))
    if not form.is_valid():
        return _form_fail(form)

    outcome = process_payment(
        bill_numbers    = form.cleaned_data['bill_numbers'],
        paid_by         = form.cleaned_data['paid_by'] or _actor(request),
        amount_received = form.cleaned_data['amount_received'],
        credit_balance  = form.cleaned_data['credit_balance'],
    )
    return _ok(outcome._asdict())


# ══════════════════════════════════════════════════════════
#   VIEWS 7–9 — Credit management
# ══════════════════════════════════════════════════════════
@login_required
@require_POST
@billing_endpoint
def credit_adjust(request, customer_pk):
    form = CreditAdjustmentForm(_payload(request))
    if not form.is_valid():
        return _form_fail(form)

    entry = adjust_credit(
        customer_pk,
        amount          = form.cleaned_data['amount'],
        adjustment_type = form.cleaned_data['adjustment_type'],
        remarks         = form.cleaned_data['remarks'],
        actor           = _actor(request),
    )
    return _ok({
        'customer_id':      customer_pk,
        'previous_balance': entry.balance_after - entry.amount,
        'adjustment':       entry.amount,
        'new_balance':      entry.balance_after,
        'remarks':          entry.remarks,
    })


@login_required
@require_POST
@billing_endpoint
def credit_apply(request, customer_pk):
    form = ApplyCreditForm(_payload(request))
    if not form.is_valid():
        return _form_fail(form)

    result = apply_credit_to_bills(
        customer_pk,
        selections     = form.cleaned_data['selections'],
        total_to_apply = form.cleaned_data['total_to_apply'],
        paid_by        = _actor(request),
    )
    return _ok(result._asdict())


@login_required
@require_GET
@billing_endpoint
def credit_history(request, customer_pk):
    customer = get_customer(customer_pk)
    entries  = get_credit_history(customer.pk)
    return _ok({
        'customer_id':    customer.pk,
        'credit_balance': customer.credit_balance,
        'entries': [{
            'kind':          entry.kind,
            'amount':        entry.amount,
            'balance_after': entry.balance_after,
            'bill_number':   entry.bill_id,
            'remarks':       entry.remarks,
            'actor':         entry.actor,
            'created_at':    entry.created_at,
        } for entry in entries],
    })
