from django.urls import path
from .views import (
    PaymentListCreateView, PaymentDetailView, MpesaStkPushView, PaymentStatusView, MpesaCallbackView,
    PaymentConfirmView, InvoiceListView, InvoiceMarkPaidView, ManagerEarningListView,
    PayoutListCreateView, PayoutApproveView, PayoutRejectView, PayoutProcessView, BalanceView
)

urlpatterns = [
    path('', PaymentListCreateView.as_view(), name='payment_list_create'),
    path('<int:pk>/', PaymentDetailView.as_view(), name='payment_detail'),
    path('<int:pk>/confirm/', PaymentConfirmView.as_view(), name='payment_confirm'),

    # M-Pesa
    path('<int:pk>/mpesa/stk-push/', MpesaStkPushView.as_view(), name='mpesa_stk_push'),
    path('<int:pk>/status/', PaymentStatusView.as_view(), name='payment_status'),
    path('mpesa/callback/', MpesaCallbackView.as_view(), name='mpesa_callback'),

    # Invoices and earnings
    path('invoices/', InvoiceListView.as_view(), name='invoice_list'),
    path('invoices/<int:pk>/mark-paid/', InvoiceMarkPaidView.as_view(), name='invoice_mark_paid'),
    path('manager-earnings/', ManagerEarningListView.as_view(), name='manager_earning_list'),
    path('balance/', BalanceView.as_view(), name='balance'),

    # Payouts
    path('payouts/', PayoutListCreateView.as_view(), name='payout_list_create'),
    path('payouts/<int:pk>/approve/', PayoutApproveView.as_view(), name='payout_approve'),
    path('payouts/<int:pk>/reject/', PayoutRejectView.as_view(), name='payout_reject'),
    path('payouts/<int:pk>/process/', PayoutProcessView.as_view(), name='payout_process'),
]
