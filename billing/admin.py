from django.contrib import admin
from .models import (
    CustomerType, Customer, SurchargePolicy, Bill, CreditAdjustment
)

# ── Customize admin site headers ─────────────────────────────
admin.site.site_header  = 'Water District Billing'
admin.site.site_title   = 'Water Billing Admin'
admin.site.index_title  = 'Billing & Credit Administration'


@admin.register(CustomerType)
class CustomerTypeAdmin(admin.ModelAdmin):
    list_display  = ['code', 'description', 'rate1', 'rate2']
    search_fields = ['code']


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display    = ['id', 'name', 'barangay', 'customer_type', 'status',
                       'discount', 'credit_balance']
    list_filter     = ['customer_type', 'status', 'barangay']
    search_fields   = ['id', 'name']
    ordering        = ['name']
    # credit_balance moves only through the credit ledger
    readonly_fields = ['credit_balance', 'get_ledger_balance', 'created_at', 'updated_at']
    fieldsets = (
        ('Account',   {'fields': ('name', 'barangay', 'customer_type', 'status')}),
        ('Financial', {'fields': ('discount', 'credit_balance', 'get_ledger_balance')}),
        ('Audit',     {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


@admin.register(SurchargePolicy)
class SurchargePolicyAdmin(admin.ModelAdmin):
    list_display = ['due_day', 'first_surcharge_percent',
                    'second_surcharge_percent', 'is_active', 'updated_at']
    list_filter  = ['is_active']


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display    = ['bill_number', 'customer', 'billed_month', 'consumption',
                       'basic_amount', 'surcharge_amount', 'discount_amount',
                       'total_bill_amount', 'payment_status']
    list_filter     = ['payment_status', 'billed_month']
    search_fields   = ['bill_number', 'customer__name']
    ordering        = ['-billed_month']
    readonly_fields = ['bill_number', 'payment_status', 'advance_payment_amount',
                       'paid_by', 'date_paid', 'created_at', 'updated_at']


@admin.register(CreditAdjustment)
class CreditAdjustmentAdmin(admin.ModelAdmin):
    list_display  = ['customer', 'created_at', 'kind', 'amount',
                     'balance_after', 'bill', 'actor']
    list_filter   = ['kind']
    search_fields = ['customer__name', 'remarks']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
