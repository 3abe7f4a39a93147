from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q, Sum
from decimal import Decimal


BILL_NUMBER_MIN = 10_000_000
BILL_NUMBER_MAX = 99_999_999   # exclusive


# ═══════════════════════════════════════════════════════════
#   MODEL 1 — CustomerType  (tariff per customer classification)
# ═══════════════════════════════════════════════════════════
class CustomerType(models.Model):
    code         = models.CharField(max_length=30, unique=True,
                       help_text='e.g. RESIDENTIAL, COMMERCIAL')
    description  = models.CharField(max_length=100, blank=True)
    rate1        = models.DecimalField(max_digits=10, decimal_places=2,
                       validators=[MinValueValidator(Decimal('0'))],
                       help_text='Price per cu.m for the first 3 cu.m '
                                 '(also the minimum charge)')
    rate2        = models.DecimalField(max_digits=10, decimal_places=2,
                       validators=[MinValueValidator(Decimal('0'))],
                       help_text='Price per cu.m beyond the first 3 cu.m')

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f'{self.code} | P{self.rate1} / P{self.rate2}'


# ═══════════════════════════════════════════════════════════
#   MODEL 2 — Customer  (account holder as seen by the ledger)
# ═══════════════════════════════════════════════════════════
class Customer(models.Model):
    STATUS_CHOICES = [
        ('ACTIVE',       'Active'),
        ('DISCONNECTED', 'Disconnected'),
        ('INACTIVE',     'Inactive'),
    ]

    name            = models.CharField(max_length=200)
    barangay        = models.CharField(max_length=100, blank=True)
    customer_type   = models.ForeignKey(CustomerType,
                          on_delete=models.PROTECT, related_name='customers')
    status          = models.CharField(max_length=20,
                          choices=STATUS_CHOICES, default='ACTIVE')

#     ── Financial ─────────────────────────────────────────────
    discount        = models.DecimalField(max_digits=5, decimal_places=2,
                          default=Decimal('0.00'),
                          validators=[MinValueValidator(Decimal('0')),
                                      MaxValueValidator(Decimal('100'))],
                          help_text='Discount in percent of the basic amount')
    credit_balance  = models.DecimalField(max_digits=12, decimal_places=2,
                          default=Decimal('0.00'),
                          help_text='Changed only through the credit ledger')

    created_at      = models.DateTimeField(auto_now_add=True)
    updated_at      = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.CheckConstraint(condition=Q(credit_balance__gte=0),
                                   name='customer_credit_balance_non_negative'),
            models.CheckConstraint(condition=Q(discount__gte=0) & Q(discount__lte=100),
                                   name='customer_discount_percent_range'),
        ]

    def __str__(self):
        return f'{self.pk} - {self.name}'

    def get_ledger_balance(self):
        total = self.credit_adjustments.aggregate(Sum('amount'))['amount__sum']
        return total or Decimal('0.00')


# ═══════════════════════════════════════════════════════════
#   MODEL 3 — SurchargePolicy  (due day and late penalties)
# ═══════════════════════════════════════════════════════════
class SurchargePolicy(models.Model):
    due_day                  = models.PositiveSmallIntegerField(default=10,
                                   validators=[MinValueValidator(1), MaxValueValidator(31)],
                                   help_text='Day of the month after billing when payment is due')
    first_surcharge_percent  = models.DecimalField(max_digits=5, decimal_places=2,
                                   default=Decimal('10.00'),
                                   help_text='Applied from the day after the due date')
    second_surcharge_percent = models.DecimalField(max_digits=5, decimal_places=2,
                                   default=Decimal('15.00'),
                                   help_text='Applied after the due month ends, '
                                             'on basic + first surcharge')
    is_active                = models.BooleanField(default=True)
    updated_at               = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-updated_at']
        verbose_name_plural = 'Surcharge policies'

    def __str__(self):
        return (f'Due day {self.due_day} | '
                f'{self.first_surcharge_percent}% / {self.second_surcharge_percent}%')


# ═══════════════════════════════════════════════════════════
#   MODEL 4 — Bill  (one per customer per billed month)
# ═══════════════════════════════════════════════════════════
class Bill(models.Model):
    UNPAID  = 'UNPAID'
    PARTIAL = 'PARTIAL'
    PAID    = 'PAID'
    STATUS_CHOICES = [
        (UNPAID,  'Unpaid'),
        (PARTIAL, 'Partial'),
        (PAID,    'Paid'),
    ]
    OPEN_STATUSES = [UNPAID, PARTIAL]

    bill_number      = models.PositiveIntegerField(primary_key=True,
                           help_text='8-digit number printed on the bill')
    customer         = models.ForeignKey(Customer,
                           on_delete=models.CASCADE, related_name='bills')
    billed_month     = models.DateField(
                           help_text='First day of the billed month, e.g. 2024-01-01')

#     ── Reading ───────────────────────────────────────────────
    previous_reading = models.DecimalField(max_digits=12, decimal_places=2)
    current_reading  = models.DecimalField(max_digits=12, decimal_places=2)
    consumption      = models.DecimalField(max_digits=12, decimal_places=2)

#     ── Charge Breakdown ──────────────────────────────────────
    basic_amount     = models.DecimalField(max_digits=10, decimal_places=2)
    surcharge_amount = models.DecimalField(max_digits=10, decimal_places=2,
                           default=Decimal('0.00'))
    discount_amount  = models.DecimalField(max_digits=10, decimal_places=2,
                           default=Decimal('0.00'),
                           help_text='A positive stored value overrides the customer discount')
    total_bill_amount = models.DecimalField(max_digits=10, decimal_places=2,
                           default=Decimal('0.00'))

#     ── Payment ───────────────────────────────────────────────
    payment_status   = models.CharField(max_length=10,
                           choices=STATUS_CHOICES, default=UNPAID)
    advance_payment_amount = models.DecimalField(max_digits=10, decimal_places=2,
                           null=True, blank=True,
                           help_text='Portion settled from the customer credit balance')
    paid_by          = models.CharField(max_length=100, null=True, blank=True)
    date_paid        = models.DateTimeField(null=True, blank=True)

#     ── Audit ─────────────────────────────────────────────────
    encoded_by       = models.CharField(max_length=100)
    created_at       = models.DateTimeField(auto_now_add=True)
    updated_at       = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-billed_month']
        constraints = [
            models.UniqueConstraint(fields=['customer', 'billed_month'],
                                    name='unique_bill_per_customer_month'),
            models.CheckConstraint(condition=Q(current_reading__gte=models.F('previous_reading')),
                                   name='bill_current_reading_not_below_previous'),
            models.CheckConstraint(condition=Q(previous_reading__gte=0),
                                   name='bill_previous_reading_non_negative'),
            models.CheckConstraint(condition=Q(bill_number__gte=BILL_NUMBER_MIN)
                                             & Q(bill_number__lt=BILL_NUMBER_MAX),
                                   name='bill_number_eight_digits'),
        ]

    def __str__(self):
        return (f'Bill {self.bill_number} | {self.customer_id} | '
                f'{self.billed_month:%B %Y} | {self.get_payment_status_display()}')

    @property
    def is_open(self):
        return self.payment_status in self.OPEN_STATUSES

    @property
    def paid_from_credit(self):
        return bool(self.advance_payment_amount and self.advance_payment_amount > 0)


# ═══════════════════════════════════════════════════════════
#   MODEL 5 — CreditAdjustment  (append-only credit ledger)
# ═══════════════════════════════════════════════════════════
class CreditAdjustment(models.Model):
    MANUAL_ADD           = 'MANUAL_ADD'
    MANUAL_DEDUCT        = 'MANUAL_DEDUCT'
    APPLIED_TO_BILL      = 'APPLIED_TO_BILL'
    OVERPAYMENT          = 'OVERPAYMENT'
    RESTORED_ON_REVERSAL = 'RESTORED_ON_REVERSAL'
    KIND_CHOICES = [
        (MANUAL_ADD,           'Manual Add'),
        (MANUAL_DEDUCT,        'Manual Deduct'),
        (APPLIED_TO_BILL,      'Applied to Bill'),
        (OVERPAYMENT,          'Overpayment'),
        (RESTORED_ON_REVERSAL, 'Restored on Reversal'),
    ]

    customer       = models.ForeignKey(Customer,
                         on_delete=models.CASCADE,
                         related_name='credit_adjustments')
    bill           = models.ForeignKey(Bill,
                         on_delete=models.SET_NULL,
                         null=True, blank=True,
                         related_name='credit_adjustments')
    kind           = models.CharField(max_length=25, choices=KIND_CHOICES)
    amount         = models.DecimalField(max_digits=12, decimal_places=2,
                         help_text='Signed: positive adds credit, negative consumes it')
    balance_after  = models.DecimalField(max_digits=12, decimal_places=2)
    remarks        = models.TextField(blank=True)
    actor          = models.CharField(max_length=100)
    created_at     = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return (f'{self.customer_id} | {self.get_kind_display()} | '
                f'{self.amount:+} -> {self.balance_after}')
