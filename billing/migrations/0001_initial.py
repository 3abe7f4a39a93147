import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='CustomerType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='e.g. RESIDENTIAL, COMMERCIAL', max_length=30, unique=True)),
                ('description', models.CharField(blank=True, max_length=100)),
                ('rate1', models.DecimalField(
                    decimal_places=2, max_digits=10,
                    help_text='Price per cu.m for the first 3 cu.m (also the minimum charge)',
                    validators=[django.core.validators.MinValueValidator(Decimal('0'))],
                )),
                ('rate2', models.DecimalField(
                    decimal_places=2, max_digits=10,
                    help_text='Price per cu.m beyond the first 3 cu.m',
                    validators=[django.core.validators.MinValueValidator(Decimal('0'))],
                )),
            ],
            options={
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='SurchargePolicy',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('due_day', models.PositiveSmallIntegerField(
                    default=10,
                    help_text='Day of the month after billing when payment is due',
                    validators=[django.core.validators.MinValueValidator(1),
                                django.core.validators.MaxValueValidator(31)],
                )),
                ('first_surcharge_percent', models.DecimalField(
                    decimal_places=2, default=Decimal('10.00'), max_digits=5,
                    help_text='Applied from the day after the due date',
                )),
                ('second_surcharge_percent', models.DecimalField(
                    decimal_places=2, default=Decimal('15.00'), max_digits=5,
                    help_text='Applied after the due month ends, on basic + first surcharge',
                )),
                ('is_active', models.BooleanField(default=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-updated_at'],
                'verbose_name_plural': 'Surcharge policies',
            },
        ),
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('barangay', models.CharField(blank=True, max_length=100)),
                ('status', models.CharField(
                    choices=[('ACTIVE', 'Active'), ('DISCONNECTED', 'Disconnected'), ('INACTIVE', 'Inactive')],
                    default='ACTIVE', max_length=20,
                )),
                ('discount', models.DecimalField(
                    decimal_places=2, default=Decimal('0.00'), max_digits=5,
                    help_text='Discount in percent of the basic amount',
                    validators=[django.core.validators.MinValueValidator(Decimal('0')),
                                django.core.validators.MaxValueValidator(Decimal('100'))],
                )),
                ('credit_balance', models.DecimalField(
                    decimal_places=2, default=Decimal('0.00'), max_digits=12,
                    help_text='Changed only through the credit ledger',
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('customer_type', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='customers', to='billing.customertype',
                )),
            ],
            options={
                'ordering': ['name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('credit_balance__gte', 0)),
                                           name='customer_credit_balance_non_negative'),
                    models.CheckConstraint(condition=models.Q(('discount__gte', 0), ('discount__lte', 100)),
                                           name='customer_discount_percent_range'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Bill',
            fields=[
                ('bill_number', models.PositiveIntegerField(
                    help_text='8-digit number printed on the bill',
                    primary_key=True, serialize=False,
                )),
                ('billed_month', models.DateField(help_text='First day of the billed month, e.g. 2024-01-01')),
                ('previous_reading', models.DecimalField(decimal_places=2, max_digits=12)),
                ('current_reading', models.DecimalField(decimal_places=2, max_digits=12)),
                ('consumption', models.DecimalField(decimal_places=2, max_digits=12)),
                ('basic_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('surcharge_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('discount_amount', models.DecimalField(
                    decimal_places=2, default=Decimal('0.00'), max_digits=10,
                    help_text='A positive stored value overrides the customer discount',
                )),
                ('total_bill_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('payment_status', models.CharField(
                    choices=[('UNPAID', 'Unpaid'), ('PARTIAL', 'Partial'), ('PAID', 'Paid')],
                    default='UNPAID', max_length=10,
                )),
                ('advance_payment_amount', models.DecimalField(
                    blank=True, decimal_places=2, max_digits=10, null=True,
                    help_text='Portion settled from the customer credit balance',
                )),
                ('paid_by', models.CharField(blank=True, max_length=100, null=True)),
                ('date_paid', models.DateTimeField(blank=True, null=True)),
                ('encoded_by', models.CharField(max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('customer', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='bills', to='billing.customer',
                )),
            ],
            options={
                'ordering': ['-billed_month'],
                'constraints': [
                    models.UniqueConstraint(fields=('customer', 'billed_month'),
                                            name='unique_bill_per_customer_month'),
                    models.CheckConstraint(condition=models.Q(('current_reading__gte', models.F('previous_reading'))),
                                           name='bill_current_reading_not_below_previous'),
                    models.CheckConstraint(condition=models.Q(('previous_reading__gte', 0)),
                                           name='bill_previous_reading_non_negative'),
                    models.CheckConstraint(condition=models.Q(('bill_number__gte', 10000000), ('bill_number__lt', 99999999)),
                                           name='bill_number_eight_digits'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CreditAdjustment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(
                    choices=[('MANUAL_ADD', 'Manual Add'), ('MANUAL_DEDUCT', 'Manual Deduct'),
                             ('APPLIED_TO_BILL', 'Applied to Bill'), ('OVERPAYMENT', 'Overpayment'),
                             ('RESTORED_ON_REVERSAL', 'Restored on Reversal')],
                    max_length=25,
                )),
                ('amount', models.DecimalField(
                    decimal_places=2, max_digits=12,
                    help_text='Signed: positive adds credit, negative consumes it',
                )),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12)),
                ('remarks', models.TextField(blank=True)),
                ('actor', models.CharField(max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('bill', models.ForeignKey(
                    blank=True, null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='credit_adjustments', to='billing.bill',
                )),
                ('customer', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='credit_adjustments', to='billing.customer',
                )),
            ],
            options={
                'ordering': ['created_at', 'id'],
            },
        ),
    ]
