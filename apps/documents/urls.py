from django.urls import path
from . import views

urlpatterns = [
    path('requests/<uuid:pk>/slip/', views.ApprovalSlipView.as_view(), name='approval-slip'),
    path('receipts/<str:token>/', views.ReceiptDownloadView.as_view(), name='receipt-download'),
]
