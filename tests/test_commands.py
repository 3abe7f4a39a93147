from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from billing.models import Customer

pytestmark = pytest.mark.django_db


def run(*args):
    out = StringIO()
    call_command('reconcile_credit', *args, stdout=out)
    return out.getvalue()


def test_consistent_balances_report_no_drift(customer, other_customer, fund):
    fund(customer, '125.50')

    output = run()

    assert 'Done. 2 customers checked. 0 with drift.' in output


def test_balance_changed_outside_ledger_is_reported(customer, fund):
    fund(customer, '100')
    Customer.objects.filter(pk=customer.pk).update(credit_balance=Decimal('140.00'))

    output = run()

    assert 'Drift for' in output
    assert 'difference P40.00' in output
    assert '1 with drift.' in output


def test_fail_on_drift_raises(customer):
    Customer.objects.filter(pk=customer.pk).update(credit_balance=Decimal('5.00'))

    with pytest.raises(CommandError, match='1 with drift'):
        run('--fail-on-drift')


def test_single_customer(customer, other_customer):
    Customer.objects.filter(pk=other_customer.pk).update(credit_balance=Decimal('5.00'))

    output = run('--customer', str(customer.pk))

    assert '1 customers checked. 0 with drift.' in output


def test_unknown_customer(db):
    with pytest.raises(CommandError, match='not found'):
        run('--customer', '999')
