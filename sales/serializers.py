"""
Serializers for Sales API
"""
from decimal import Decimal

from rest_framework import serializers

from .exceptions import InvalidPaymentMethod
from .models import AuditLog, ExchangedItem, Payment, ReturnedItem, ReturnTransaction, Sale, SaleItem
from .services import CartLine, ExchangeLine, ReturnLine
from .tenders import BankTransferDetail, ChequeDetail, PaymentMethod, TenderSet, normalize_method


class SaleItemSerializer(serializers.ModelSerializer):
    """Serializer for SaleItem model"""
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    returnable_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = SaleItem
        fields = [
            'id', 'product', 'product_name', 'product_sku', 'sale_type',
            'quantity', 'applied_price', 'line_total', 'returned_quantity',
            'returnable_quantity', 'is_offer_item'
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    """Serializer for entries in a sale's payment log"""
    method_display = serializers.CharField(source='get_method_display', read_only=True)
    retained_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    return_reference = serializers.CharField(
        source='return_transaction.reference',
        read_only=True,
        allow_null=True
    )

    class Meta:
        model = Payment
        fields = [
            'id', 'position', 'amount', 'change_given', 'retained_amount',
            'method', 'method_display', 'date', 'staff_id', 'notes', 'details',
            'return_reference', 'created_at'
        ]
        read_only_fields = fields


class SaleSerializer(serializers.ModelSerializer):
    """Serializer for Sale model"""
    items = SaleItemSerializer(many=True, read_only=True)
    additional_payments = PaymentSerializer(many=True, read_only=True)
    amount_due = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id', 'receipt_number', 'customer_id', 'customer_name', 'staff_id',
            'sub_total', 'discount_amount', 'total_amount', 'amount_due',
            'cash_tendered', 'paid_amount_cash', 'paid_amount_cheque',
            'paid_amount_bank_transfer', 'cheque_details', 'bank_transfer_details',
            'change_given', 'total_amount_paid', 'credit_settled', 'exchange_charges',
            'outstanding_balance', 'initial_outstanding_balance', 'payment_summary',
            'version', 'notes', 'sale_date', 'created_at', 'updated_at',
            'items', 'additional_payments'
        ]
        read_only_fields = fields


class ReturnedItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='sale_item.product_name', read_only=True)

    class Meta:
        model = ReturnedItem
        fields = ['id', 'sale_item', 'product', 'product_name', 'sale_type', 'quantity',
                  'applied_price', 'is_resellable']
        read_only_fields = fields


class ExchangedItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = ExchangedItem
        fields = ['id', 'product', 'product_name', 'sale_type', 'quantity', 'applied_price']
        read_only_fields = fields


class ReturnTransactionSerializer(serializers.ModelSerializer):
    """Serializer for ReturnTransaction (read-only)"""
    returned_items = ReturnedItemSerializer(many=True, read_only=True)
    exchanged_items = ExchangedItemSerializer(many=True, read_only=True)
    original_sale_receipt = serializers.CharField(source='original_sale.receipt_number', read_only=True)

    class Meta:
        model = ReturnTransaction
        fields = [
            'id', 'reference', 'original_sale', 'original_sale_receipt', 'return_date',
            'staff_id', 'customer_id', 'customer_name', 'notes',
            'apply_credit_to_outstanding', 'return_total_value', 'exchange_total_value',
            'settle_outstanding_amount', 'refund_amount', 'amount_paid',
            'payment_summary', 'change_given', 'cheque_details', 'bank_transfer_details',
            'returned_items', 'exchanged_items', 'created_at'
        ]
        read_only_fields = fields


class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for AuditLog (read-only)"""
    sale_receipt = serializers.CharField(source='sale.receipt_number', read_only=True, allow_null=True)

    class Meta:
        model = AuditLog
        fields = [
            'id', 'event_type', 'sale', 'sale_receipt', 'payment',
            'return_transaction', 'staff_id', 'event_data', 'description', 'timestamp'
        ]
        read_only_fields = fields


# Action serializers for specific endpoints

class ChequeDetailSerializer(serializers.Serializer):
    number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    bank = serializers.CharField(max_length=255, required=False, allow_blank=True)
    date = serializers.DateField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)


class BankTransferDetailSerializer(serializers.Serializer):
    bank_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    reference_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)


class RecordPaymentSerializer(serializers.Serializer):
    """
    Serializer for recording an installment against a sale.

    Amount and detail rules are enforced by the payment engine so that API and
    service callers get the same errors.
    """
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.CharField(max_length=30)
    date = serializers.DateTimeField(required=False, allow_null=True)
    staff_id = serializers.CharField(max_length=150, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    cheque = ChequeDetailSerializer(required=False)
    bank_transfer = BankTransferDetailSerializer(required=False)

    def detail_payload(self):
        """The detail object that belongs to the chosen method, if any."""
        data = self.validated_data
        try:
            method = normalize_method(data['method'])
        except InvalidPaymentMethod:
            return None
        if method == PaymentMethod.CHEQUE:
            return data.get('cheque')
        if method == PaymentMethod.BANK_TRANSFER:
            return data.get('bank_transfer')
        return None


class TenderSetSerializer(serializers.Serializer):
    """Cash / cheque / bank transfer tendered together."""
    cash = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'))
    cheque = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'))
    bank_transfer = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        default=Decimal('0.00')
    )
    cheque_details = ChequeDetailSerializer(required=False)
    bank_transfer_details = BankTransferDetailSerializer(required=False)

    @staticmethod
    def build(data):
        if not data:
            return None
        return TenderSet(
            cash=data.get('cash', Decimal('0.00')),
            cheque=data.get('cheque', Decimal('0.00')),
            bank_transfer=data.get('bank_transfer', Decimal('0.00')),
            cheque_detail=ChequeDetail.from_dict(data.get('cheque_details')),
            bank_transfer_detail=BankTransferDetail.from_dict(data.get('bank_transfer_details')),
        )


class ReturnLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    sale_item_id = serializers.UUIDField(required=False, allow_null=True)
    sale_type = serializers.ChoiceField(choices=Sale.TYPE_CHOICES, default=Sale.TYPE_RETAIL)
    quantity = serializers.IntegerField(min_value=0)
    is_resellable = serializers.BooleanField(default=True)


class ExchangeLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    sale_type = serializers.ChoiceField(choices=Sale.TYPE_CHOICES, default=Sale.TYPE_RETAIL)
    quantity = serializers.IntegerField(min_value=0)
    applied_price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal('0.00')
    )


class ReturnExchangeSerializer(serializers.Serializer):
    """Serializer for processing a return and/or exchange against a sale."""
    sale_id = serializers.UUIDField()
    staff_id = serializers.CharField(max_length=150, required=False, allow_blank=True)
    returned_items = ReturnLineSerializer(many=True, required=False, default=list)
    exchanged_items = ExchangeLineSerializer(many=True, required=False, default=list)
    apply_credit_to_outstanding = serializers.BooleanField(default=True)
    payment = TenderSetSerializer(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def build_lines(self):
        data = self.validated_data
        returned = [ReturnLine(**line) for line in data.get('returned_items', [])]
        exchanged = [ExchangeLine(**line) for line in data.get('exchanged_items', [])]
        return returned, exchanged


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    applied_price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal('0.00')
    )
    sale_type = serializers.ChoiceField(choices=Sale.TYPE_CHOICES, default=Sale.TYPE_RETAIL)
    is_offer_item = serializers.BooleanField(default=False)


class CheckoutSerializer(serializers.Serializer):
    """Serializer for creating a sale at the till."""
    items = CartLineSerializer(many=True)
    staff_id = serializers.CharField(max_length=150, required=False, allow_blank=True)
    customer_id = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    discount_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        default=Decimal('0.00')
    )
    payment = TenderSetSerializer(required=False, allow_null=True)
    sale_date = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def build_lines(self):
        return [CartLine(**line) for line in self.validated_data['items']]

