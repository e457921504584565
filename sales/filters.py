"""
Sales Filters for advanced querying
"""
from datetime import timedelta
from decimal import Decimal

from django.db.models import Q
from django.utils import timezone
from django_filters import rest_framework as filters

from .models import ReturnTransaction, Sale


class SaleFilter(filters.FilterSet):
    """Advanced filtering for Sales"""

    # Date range filters
    date_from = filters.DateTimeFilter(field_name='sale_date', lookup_expr='gte')
    date_to = filters.DateTimeFilter(field_name='sale_date', lookup_expr='lte')

    # Quick date range filter
    date_range = filters.CharFilter(method='filter_date_range')

    # Amount range filters
    amount_min = filters.NumberFilter(field_name='total_amount', lookup_expr='gte')
    amount_max = filters.NumberFilter(field_name='total_amount', lookup_expr='lte')

    customer = filters.CharFilter(field_name='customer_id')
    staff = filters.CharFilter(field_name='staff_id')

    # Search filter (receipt, customer name, product name)
    search = filters.CharFilter(method='filter_search')

    has_outstanding_balance = filters.BooleanFilter(
        method='filter_outstanding_balance',
        label='Has Outstanding Balance'
    )

    payment_status = filters.ChoiceFilter(
        method='filter_payment_status',
        choices=[
            ('unpaid', 'Unpaid'),
            ('partial', 'Partially Paid'),
            ('paid', 'Fully Paid'),
        ],
        label='Payment Status'
    )

    class Meta:
        model = Sale
        fields = ['customer', 'staff']

    def filter_date_range(self, queryset, name, value):
        """Filter by predefined date ranges"""
        now = timezone.localtime()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        if value == 'today':
            return queryset.filter(sale_date__gte=today)

        elif value == 'yesterday':
            return queryset.filter(sale_date__gte=today - timedelta(days=1), sale_date__lt=today)

        elif value == 'this_week':
            return queryset.filter(sale_date__gte=today - timedelta(days=now.weekday()))

        elif value == 'this_month':
            return queryset.filter(sale_date__gte=today.replace(day=1))

        elif value == 'last_30_days':
            return queryset.filter(sale_date__gte=now - timedelta(days=30))

        return queryset

    def filter_search(self, queryset, name, value):
        """Search across receipt number, customer name, and product names"""
        if not value:
            return queryset

        search_term = value.strip()

        return queryset.filter(
            Q(receipt_number__icontains=search_term) |
            Q(customer_name__icontains=search_term) |
            Q(items__product_name__icontains=search_term) |
            Q(items__product_sku__icontains=search_term)
        ).distinct()

    def filter_outstanding_balance(self, queryset, name, value):
        """Filter sales with outstanding balances"""
        if value:
            return queryset.filter(outstanding_balance__gt=Decimal('0.00'))
        return queryset.filter(outstanding_balance=Decimal('0.00'))

    def filter_payment_status(self, queryset, name, value):
        """Nothing paid, partly paid or settled"""
        if value == 'unpaid':
            return queryset.filter(
                total_amount_paid=Decimal('0.00'),
                outstanding_balance__gt=Decimal('0.00')
            )
        elif value == 'partial':
            return queryset.filter(
                total_amount_paid__gt=Decimal('0.00'),
                outstanding_balance__gt=Decimal('0.00')
            )
        elif value == 'paid':
            return queryset.filter(outstanding_balance=Decimal('0.00'))
        return queryset


class ReturnTransactionFilter(filters.FilterSet):
    date_from = filters.DateTimeFilter(field_name='return_date', lookup_expr='gte')
    date_to = filters.DateTimeFilter(field_name='return_date', lookup_expr='lte')
    sale = filters.UUIDFilter(field_name='original_sale_id')
    has_refund = filters.BooleanFilter(field_name='refund_amount', lookup_expr='isnull', exclude=True)

    class Meta:
        model = ReturnTransaction
        fields = ['sale', 'staff_id']
