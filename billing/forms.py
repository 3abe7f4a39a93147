from decimal import Decimal

from django import forms
from .models import Customer


# ──────────────────────────────────────────────────────────
#   FORM 1 — BillForm  (encode a reading for a month)
# ──────────────────────────────────────────────────────────
class BillForm(forms.Form):
    customer         = forms.ModelChoiceField(queryset=Customer.objects.all(),
                           required=False)
    billed_month     = forms.DateField(
                           input_formats=['%Y-%m', '%Y-%m-%d'],
                           label='Billed Month (YYYY-MM)')
    previous_reading = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    current_reading  = forms.DecimalField(max_digits=12, decimal_places=2, min_value=0)

    def __init__(self, *args, require_customer=True, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['customer'].required = require_customer

    def clean(self):
        cleaned = super().clean()
        prev = cleaned.get('previous_reading')
        curr = cleaned.get('current_reading')

        if prev is not None and curr is not None and curr < prev:
            raise forms.ValidationError(
                'Current reading cannot be less than previous reading.')

        month = cleaned.get('billed_month')
        if month is not None:
            cleaned['billed_month'] = month.replace(day=1)
        return cleaned


# ──────────────────────────────────────────────────────────
#   FORM 2 — PaymentForm
# ──────────────────────────────────────────────────────────
class PaymentForm(forms.Form):
    bill_numbers    = forms.JSONField(label='Bills to settle')
    amount_received = forms.DecimalField(
        max_digits=12, decimal_places=2, min_value=0,
        label='Amount Received (₱)',
    )
    credit_balance  = forms.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False,
        label='Credit balance shown to the cashier',
    )
    paid_by         = forms.CharField(max_length=100, required=False,
                          label='Paid By')

    def clean_bill_numbers(self):
        numbers = self.cleaned_data['bill_numbers']
        if not isinstance(numbers, list) or not numbers:
            raise forms.ValidationError('Please select at least one bill.')
        try:
            return [int(number) for number in numbers]
        except (TypeError, ValueError):
            raise forms.ValidationError('Bill numbers must be numeric.')


# ──────────────────────────────────────────────────────────
#   FORM 3 — CreditAdjustmentForm
# ──────────────────────────────────────────────────────────
class CreditAdjustmentForm(forms.Form):
    ADJUSTMENT_CHOICES = [
        ('add',    'Add Credit'),
        ('deduct', 'Deduct Credit'),
    ]

    adjustment_type = forms.ChoiceField(choices=ADJUSTMENT_CHOICES)
    amount          = forms.DecimalField(max_digits=12, decimal_places=2,
                          min_value=Decimal('0.01'), label='Amount (₱)')
    remarks         = forms.CharField(max_length=255, required=False,
                          label='Remarks (optional)')


# ──────────────────────────────────────────────────────────
#   FORM 4 — ApplyCreditForm
#   selections: [{"bill_number": 12345678, "amount": "120.00"}, ...]
# ──────────────────────────────────────────────────────────
class ApplyCreditForm(forms.Form):
    selections     = forms.JSONField()
    total_to_apply = forms.DecimalField(max_digits=12, decimal_places=2,
                         min_value=0, required=False)

    def clean_selections(self):
        selections = self.cleaned_data['selections']
        if not isinstance(selections, list) or not selections:
            raise forms.ValidationError('Please select at least one bill.')
        for item in selections:
            if not isinstance(item, dict) or 'bill_number' not in item or 'amount' not in item:
                raise forms.ValidationError(
                    'Each selection needs a bill_number and an amount.')
        return selections
