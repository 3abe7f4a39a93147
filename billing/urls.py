from django.urls import path
from . import views

urlpatterns = [

#     ── Bills ─────────────────────────────────────────────
    path('bills/add/',                              views.bill_create,    name='bill-create'),
    path('bills/<int:bill_number>/edit/',           views.bill_edit,      name='bill-edit'),
    path('bills/<int:bill_number>/reverse/',        views.bill_reverse,   name='bill-reverse'),

#     ── Payments ──────────────────────────────────────────
    path('customers/<int:customer_pk>/next-bill/',  views.next_bill,      name='next-bill'),
    path('customers/<int:customer_pk>/open-bills/', views.open_bills,     name='open-bills'),
    path('payments/',                               views.payment_create, name='payment-create'),

#     ── Credit ────────────────────────────────────────────
    path('customers/<int:customer_pk>/credit/adjust/',  views.credit_adjust,  name='credit-adjust'),
    path('customers/<int:customer_pk>/credit/apply/',   views.credit_apply,   name='credit-apply'),
    path('customers/<int:customer_pk>/credit/history/', views.credit_history, name='credit-history'),
]
