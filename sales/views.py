import logging

from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .exceptions import LedgerError, LedgerIntegrityError
from .filters import ReturnTransactionFilter, SaleFilter
from .models import AuditLog, Payment, ReturnTransaction, Sale
from .serializers import (
    AuditLogSerializer,
    CheckoutSerializer,
    PaymentSerializer,
    RecordPaymentSerializer,
    ReturnExchangeSerializer,
    ReturnTransactionSerializer,
    SaleSerializer,
    TenderSetSerializer,
)
from .services import apply_payment, create_sale, process_return_exchange
from .validators import LedgerIntegrityValidator

logger = logging.getLogger(__name__)


class LedgerErrorMixin:
    """Render ledger errors as {"error": code, "detail": message} with their status."""

    def handle_exception(self, exc):
        if isinstance(exc, LedgerError):
            if exc.status_code >= 500:
                logger.error(f"{exc.code}: {exc.message}")
            return Response(exc.as_dict(), status=exc.status_code)
        return super().handle_exception(exc)

    def staff_id_for(self, data):
        staff_id = data.get('staff_id')
        if staff_id:
            return staff_id
        user = getattr(self.request, 'user', None)
        if user is not None and user.is_authenticated:
            return user.get_username()
        return None


class SaleViewSet(LedgerErrorMixin,
                  mixins.CreateModelMixin,
                  viewsets.ReadOnlyModelViewSet):
    """
    Sales with their ledger.

    Sales are created through checkout and only change through payments and
    returns; there is no update or delete.
    """
    serializer_class = SaleSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_class = SaleFilter
    filter_backends = [DjangoFilterBackend]

    def get_queryset(self):
        return Sale.objects.prefetch_related(
            'items',
            Prefetch('additional_payments', queryset=Payment.objects.select_related('return_transaction')),
        )

    def create(self, request, *args, **kwargs):
        """
        Checkout

        POST /sales/api/sales/
        Body:
        {
            "items": [{"product_id": "...", "quantity": 2}],
            "customer_id": "C-001",
            "payment": {"cash": "600.00"}
        }
        """
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = create_sale(
            serializer.build_lines(),
            staff_id=self.staff_id_for(data),
            tenders=TenderSetSerializer.build(data.get('payment')),
            discount_amount=data.get('discount_amount'),
            customer_id=data.get('customer_id'),
            customer_name=data.get('customer_name'),
            sale_date=data.get('sale_date'),
            notes=data.get('notes'),
        )
        return Response({
            'message': 'Sale created successfully',
            'sale': SaleSerializer(self.get_queryset().get(pk=result.sale.pk)).data,
            'warnings': result.warnings,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='payments')
    def record_payment(self, request, pk=None):
        """
        Record a payment against a sale

        POST /sales/api/sales/{sale_id}/payments/
        Body:
        {
            "amount": "400.00",
            "method": "CHEQUE",
            "cheque": {"number": "000123", "bank": "GCB"},
            "notes": "Second installment"
        }
        """
        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        sale = apply_payment(
            pk,
            amount=data['amount'],
            method=data['method'],
            date=data.get('date'),
            staff_id=self.staff_id_for(data),
            notes=data.get('notes'),
            detail=serializer.detail_payload(),
        )
        return Response({
            'message': 'Payment recorded successfully',
            'payment': PaymentSerializer(sale.applied_payment).data,
            'sale': SaleSerializer(self.get_queryset().get(pk=sale.pk)).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def integrity(self, request, pk=None):
        """Replay the sale's history and compare it with the stored aggregate."""
        sale = self.get_object()
        try:
            LedgerIntegrityValidator.validate(sale)
        except LedgerIntegrityError as exc:
            return Response({
                'sale': str(sale.pk),
                'consistent': False,
                'mismatches': {
                    field: {'stored': str(stored), 'expected': str(expected)}
                    for field, (stored, expected) in exc.mismatches.items()
                },
            })
        return Response({'sale': str(sale.pk), 'consistent': True, 'mismatches': {}})


class ReturnTransactionViewSet(LedgerErrorMixin,
                               mixins.CreateModelMixin,
                               viewsets.ReadOnlyModelViewSet):
    """Returns and exchanges against existing sales"""
    serializer_class = ReturnTransactionSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_class = ReturnTransactionFilter
    filter_backends = [DjangoFilterBackend]

    def get_queryset(self):
        return ReturnTransaction.objects.select_related('original_sale').prefetch_related(
            'returned_items__sale_item',
            'exchanged_items__product',
        )

    def create(self, request, *args, **kwargs):
        """
        Process a return and/or exchange

        POST /sales/api/returns/
        Body:
        {
            "sale_id": "...",
            "returned_items": [{"product_id": "...", "quantity": 1, "is_resellable": true}],
            "exchanged_items": [{"product_id": "...", "quantity": 1}],
            "apply_credit_to_outstanding": true,
            "payment": {"cash": "250.00"}
        }
        """
        serializer = ReturnExchangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        returned, exchanged = serializer.build_lines()

        result = process_return_exchange(
            data['sale_id'],
            returned_items=returned,
            exchanged_items=exchanged,
            apply_credit_to_outstanding=data['apply_credit_to_outstanding'],
            payment=TenderSetSerializer.build(data.get('payment')),
            staff_id=self.staff_id_for(data),
            notes=data.get('notes'),
        )
        netting = result.netting
        return Response({
            'message': 'Return processed successfully',
            'return_transaction': ReturnTransactionSerializer(
                self.get_queryset().get(pk=result.return_transaction.pk)
            ).data,
            'sale': SaleSerializer(
                Sale.objects.prefetch_related('items', 'additional_payments').get(pk=result.sale.pk)
            ).data,
            'netting': {
                'return_total_value': f'{netting.return_total_value:.2f}',
                'outstanding_to_settle': f'{netting.outstanding_to_settle:.2f}',
                'net_credit_after_settle': f'{netting.net_credit_after_settle:.2f}',
                'exchange_total_value': f'{netting.exchange_total_value:.2f}',
                'final_amount_due': f'{netting.final_amount_due:.2f}',
                'refund_to_customer': f'{netting.refund_to_customer:.2f}',
                'change_given': f'{result.settlement.change_given:.2f}',
            },
            'warnings': result.warnings,
        }, status=status.HTTP_201_CREATED)


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only access to the ledger audit trail"""
    serializer_class = AuditLogSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = AuditLog.objects.select_related('sale')
        sale_filter = self.request.query_params.get('sale')
        if sale_filter:
            queryset = queryset.filter(sale_id=sale_filter)
        event_type = self.request.query_params.get('event_type')
        if event_type:
            queryset = queryset.filter(event_type=event_type)
        return queryset
