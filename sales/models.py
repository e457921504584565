import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from inventory.models import Product

from .money import ZERO, to_decimal
from .tenders import PaymentMethod, Tender


class Sale(models.Model):
    """
    Ledger root for one checkout.

    The aggregate fields (total_amount_paid, credit_settled, exchange_charges,
    outstanding_balance, payment_summary) are a cache over the creation-time
    tenders, the append-only ``additional_payments`` log and the sale's return
    transactions. They are only written through the transaction coordinator,
    which bumps ``version`` on every commit.
    """
    TYPE_RETAIL = 'RETAIL'
    TYPE_WHOLESALE = 'WHOLESALE'

    TYPE_CHOICES = [
        (TYPE_RETAIL, 'Retail'),
        (TYPE_WHOLESALE, 'Wholesale'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    receipt_number = models.CharField(max_length=100, unique=True, db_index=True, null=True, blank=True)

    # Customer snapshot (customer management lives elsewhere)
    customer_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    customer_name = models.CharField(max_length=255, blank=True, null=True)
    staff_id = models.CharField(max_length=150)

    # Amounts
    sub_total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sum of line items before discount"
    )
    discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Amount due before any payment"
    )

    # Creation-time tenders (retained amounts, i.e. cash net of change)
    cash_tendered = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount_cash = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount_cheque = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount_bank_transfer = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    cheque_details = models.JSONField(default=dict, blank=True)
    bank_transfer_details = models.JSONField(default=dict, blank=True)
    change_given = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Cash handed back at checkout"
    )

    # Ledger aggregate
    total_amount_paid = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Sum of all retained payments"
    )
    credit_settled = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Return credit applied against the outstanding balance"
    )
    exchange_charges = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Exchanged value not covered by return credit"
    )
    outstanding_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    initial_outstanding_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Balance right after checkout, kept for reporting"
    )
    payment_summary = models.CharField(max_length=500, blank=True)

    version = models.PositiveIntegerField(default=1)
    notes = models.TextField(blank=True, null=True)

    # Timestamps
    sale_date = models.DateTimeField(default=timezone.now, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sales'
        ordering = ['-sale_date']
        indexes = [
            models.Index(fields=['customer_id', 'sale_date'], name='sales_customer_date_idx'),
            models.Index(fields=['outstanding_balance'], name='sales_outstanding_idx'),
            models.Index(fields=['staff_id', 'sale_date'], name='sales_staff_date_idx'),
        ]

    def __str__(self):
        return f"Sale {self.receipt_number or self.id} - {self.total_amount}"

    @property
    def amount_due(self) -> Decimal:
        """Everything this sale asks the customer for, including exchange charges."""
        return to_decimal(self.total_amount) + to_decimal(self.exchange_charges)

    @property
    def is_fully_paid(self) -> bool:
        return to_decimal(self.outstanding_balance) <= ZERO

    def creation_tenders(self):
        """Retained tenders captured at checkout."""
        tenders = []
        if self.paid_amount_cash > ZERO:
            tenders.append(Tender(PaymentMethod.CASH, to_decimal(self.paid_amount_cash)))
        if self.paid_amount_cheque > ZERO:
            tenders.append(Tender(
                PaymentMethod.CHEQUE,
                to_decimal(self.paid_amount_cheque),
                (self.cheque_details or {}).get('number'),
            ))
        if self.paid_amount_bank_transfer > ZERO:
            tenders.append(Tender(
                PaymentMethod.BANK_TRANSFER,
                to_decimal(self.paid_amount_bank_transfer),
                (self.bank_transfer_details or {}).get('reference_number'),
            ))
        return tenders

    @property
    def creation_total_paid(self) -> Decimal:
        return (
            to_decimal(self.paid_amount_cash)
            + to_decimal(self.paid_amount_cheque)
            + to_decimal(self.paid_amount_bank_transfer)
        )


class SaleItem(models.Model):
    """Individual line items in a sale"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='sale_items')
    line_number = models.PositiveIntegerField(default=0)
    sale_type = models.CharField(max_length=20, choices=Sale.TYPE_CHOICES, default=Sale.TYPE_RETAIL)

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    applied_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    returned_quantity = models.PositiveIntegerField(default=0)
    is_offer_item = models.BooleanField(default=False)

    # Product snapshot (for historical reference)
    product_name = models.CharField(max_length=255, blank=True)
    product_sku = models.CharField(max_length=100, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sales_items'
        ordering = ['line_number']
        indexes = [
            models.Index(fields=['sale', 'product'], name='sales_items_sale_prod_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(returned_quantity__lte=models.F('quantity')),
                name='sale_item_returned_lte_quantity',
            ),
        ]

    def __str__(self):
        return f"{self.product_name} x {self.quantity} - {self.line_total}"

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.applied_price) * self.quantity

    @property
    def returnable_quantity(self) -> int:
        """Maximum quantity still available to return."""
        remaining = self.quantity - self.returned_quantity
        return remaining if remaining > 0 else 0

    def save(self, *args, **kwargs):
        if not self.product_name:
            self.product_name = self.product.name
        if not self.product_sku:
            self.product_sku = self.product.sku
        super().save(*args, **kwargs)


class ImmutableRecordMixin:
    """Rows that are written once and never edited or removed."""

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(f"{self._meta.verbose_name.title()} records cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{self._meta.verbose_name.title()} records cannot be deleted")


class ReturnTransaction(ImmutableRecordMixin, models.Model):
    """
    One processed return/exchange against a sale.

    Permanent history: a later return against the same sale is a new record
    bounded by the then-current returnable quantities.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference = models.CharField(max_length=50, unique=True)
    original_sale = models.ForeignKey(Sale, on_delete=models.PROTECT, related_name='returns')
    return_date = models.DateTimeField(default=timezone.now, db_index=True)
    staff_id = models.CharField(max_length=150)
    customer_id = models.CharField(max_length=100, blank=True, null=True)
    customer_name = models.CharField(max_length=255, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    apply_credit_to_outstanding = models.BooleanField(default=True)
    return_total_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    exchange_total_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    settle_outstanding_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    # Payment collected when the exchange cost more than the return credit
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_summary = models.CharField(max_length=500, blank=True, null=True)
    change_given = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    cheque_details = models.JSONField(default=dict, blank=True)
    bank_transfer_details = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'return_transactions'
        ordering = ['-return_date']
        indexes = [
            models.Index(fields=['original_sale', 'return_date'], name='returns_sale_date_idx'),
        ]

    def __str__(self):
        return f"{self.reference} for Sale {self.original_sale_id}"


class ReturnedItem(models.Model):
    """A sold line coming back"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    return_transaction = models.ForeignKey(ReturnTransaction, on_delete=models.CASCADE, related_name='returned_items')
    sale_item = models.ForeignKey(SaleItem, on_delete=models.PROTECT, related_name='returns')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='returned_lines')
    sale_type = models.CharField(max_length=20, choices=Sale.TYPE_CHOICES, default=Sale.TYPE_RETAIL)
    quantity = models.PositiveIntegerField()
    applied_price = models.DecimalField(max_digits=12, decimal_places=2)
    is_resellable = models.BooleanField(default=True)

    class Meta:
        db_table = 'return_transaction_returned_items'

    def __str__(self):
        return f"Return {self.quantity} x {self.sale_item.product_name}"

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.applied_price) * self.quantity


class ExchangedItem(models.Model):
    """A product handed out in exchange"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    return_transaction = models.ForeignKey(ReturnTransaction, on_delete=models.CASCADE, related_name='exchanged_items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='exchanged_lines')
    sale_type = models.CharField(max_length=20, choices=Sale.TYPE_CHOICES, default=Sale.TYPE_RETAIL)
    quantity = models.PositiveIntegerField()
    applied_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'return_transaction_exchanged_items'

    def __str__(self):
        return f"Exchange {self.quantity} x {self.product.name}"

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.applied_price) * self.quantity


class Payment(ImmutableRecordMixin, models.Model):
    """
    Entry in a sale's append-only payment log.

    Installments, exchange tenders and return-credit settlements all land
    here. ``position`` is the 0-based ordinal in the sale's log.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.PROTECT, related_name='additional_payments')
    position = models.PositiveIntegerField()
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text="Amount tendered"
    )
    change_given = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    date = models.DateTimeField(default=timezone.now)
    staff_id = models.CharField(max_length=150)
    notes = models.TextField(blank=True, null=True)
    details = models.JSONField(default=dict, blank=True)
    return_transaction = models.ForeignKey(
        ReturnTransaction,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sale_payments'
        ordering = ['sale', 'position']
        constraints = [
            models.UniqueConstraint(fields=['sale', 'position'], name='unique_sale_payment_position'),
        ]
        indexes = [
            models.Index(fields=['method', 'date'], name='payments_method_date_idx'),
        ]

    def __str__(self):
        return f"Payment {self.amount} - {self.get_method_display()} - Sale {self.sale_id}"

    @property
    def retained_amount(self) -> Decimal:
        return to_decimal(self.amount) - to_decimal(self.change_given)

    @property
    def is_settlement(self) -> bool:
        return self.method == PaymentMethod.RETURN_CREDIT

    def as_tender(self) -> Tender:
        details = self.details or {}
        reference = None
        if self.method == PaymentMethod.CHEQUE:
            reference = details.get('number')
        elif self.method == PaymentMethod.BANK_TRANSFER:
            reference = details.get('reference_number')
        return Tender(self.method, self.retained_amount, reference)


class AuditLog(ImmutableRecordMixin, models.Model):
    """
    Audit log for ledger events
    Immutable - records cannot be deleted or modified
    """
    EVENT_TYPES = [
        ('sale.created', 'Sale Created'),
        ('payment.applied', 'Payment Applied'),
        ('return.processed', 'Return Processed'),
        ('stock.adjustment_failed', 'Stock Adjustment Failed'),
        ('ledger.integrity_failed', 'Ledger Integrity Failed'),
        ('ledger.repaired', 'Ledger Repaired'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_type = models.CharField(max_length=50, choices=EVENT_TYPES, db_index=True)
    sale = models.ForeignKey(Sale, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    payment = models.ForeignKey(Payment, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    return_transaction = models.ForeignKey(
        ReturnTransaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    staff_id = models.CharField(max_length=150, blank=True, null=True)
    event_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="JSON data about the event"
    )
    description = models.TextField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'sales_audit_logs'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['event_type', 'timestamp'], name='audit_event_time_idx'),
            models.Index(fields=['sale', 'timestamp'], name='audit_sale_time_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} at {self.timestamp} by {self.staff_id}"

    @classmethod
    def log_event(cls, event_type, staff_id=None, sale=None, payment=None,
                  return_transaction=None, event_data=None, description=None):
        """
        Create an audit log entry

        Args:
            event_type: Type of event (from EVENT_TYPES)
            staff_id: Staff member who performed the action
            sale: Related Sale object
            payment: Related Payment object
            return_transaction: Related ReturnTransaction object
            event_data: Additional data as dict
            description: Human-readable description

        Returns:
            AuditLog instance
        """
        return cls.objects.create(
            event_type=event_type,
            staff_id=staff_id,
            sale=sale,
            payment=payment,
            return_transaction=return_transaction,
            event_data=event_data or {},
            description=description,
        )
