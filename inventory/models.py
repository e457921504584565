import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Category(models.Model):
    """Product categories"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'categories'
        ordering = ['name']
        verbose_name_plural = 'categories'

    def __str__(self):
        return self.name


class Product(models.Model):
    """Products that can be sold, returned and exchanged"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, unique=True)
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='products'
    )
    retail_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    wholesale_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    quantity = models.IntegerField(
        default=0,
        help_text='Units on hand. Only changed through StockAdjustment.'
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['sku'], name='products_sku_idx'),
            models.Index(fields=['category', 'is_active'], name='products_cat_active_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.sku})"

    def price_for(self, sale_type):
        """Wholesale price when requested and configured, retail otherwise."""
        if sale_type == 'WHOLESALE' and self.wholesale_price:
            return self.wholesale_price
        return self.retail_price


class StockAdjustment(models.Model):
    """
    Journal of every stock level change.

    Each row is written in the same transaction as the quantity update, and
    the idempotency key makes a replayed adjustment a no-op.
    """

    ADJUSTMENT_TYPES = [
        ('SALE', 'Sale'),
        ('CUSTOMER_RETURN', 'Customer Return'),
        ('EXCHANGE_ISSUE', 'Exchange Issue'),
        ('CORRECTION', 'Inventory Count Correction'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='adjustments')
    adjustment_type = models.CharField(max_length=50, choices=ADJUSTMENT_TYPES)
    quantity = models.IntegerField(help_text='Positive for increases, negative for decreases')
    quantity_before = models.IntegerField()
    quantity_after = models.IntegerField()
    reference = models.CharField(
        max_length=100,
        blank=True,
        help_text='Sale receipt or return reference that caused the change'
    )
    idempotency_key = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'stock_adjustments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='stock_adj_product_idx'),
            models.Index(fields=['adjustment_type', 'created_at'], name='stock_adj_type_idx'),
        ]

    def __str__(self):
        return f"{self.get_adjustment_type_display()} - {self.quantity} units - {self.product.name}"

    @property
    def is_increase(self):
        return self.quantity > 0
