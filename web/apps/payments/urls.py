from django.urls import path

from .views import (
    ProcessPaymentView,
    RecipientDetailView,
    RecipientsCollectionView,
    TransactionCaptureView,
    TransactionRefundView,
    TransactionStatusView,
)

app_name = "payments"

urlpatterns = [
    path("process/", ProcessPaymentView.as_view(), name="process"),
    path("transactions/<str:tid>/", TransactionStatusView.as_view(), name="transaction-status"),
    path("transactions/<str:tid>/capture/", TransactionCaptureView.as_view(), name="transaction-capture"),
    path("transactions/<str:tid>/refund/", TransactionRefundView.as_view(), name="transaction-refund"),
    path("recipients/", RecipientsCollectionView.as_view(), name="recipients"),
    path("recipients/<str:rid>/", RecipientDetailView.as_view(), name="recipient-detail"),
]
