from django.urls import path

from .views import DayEndReportView, TransactionReportView

urlpatterns = [
    path('api/day-end/', DayEndReportView.as_view(), name='day-end-report'),
    path('api/transactions/', TransactionReportView.as_view(), name='transaction-report'),
]
