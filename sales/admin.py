from django.contrib import admin
from .models import AuditLog, ExchangedItem, Payment, ReturnedItem, ReturnTransaction, Sale, SaleItem


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class SaleItemInline(ReadOnlyInline):
    model = SaleItem
    fields = ['product_name', 'product_sku', 'sale_type', 'quantity', 'applied_price', 'returned_quantity']
    readonly_fields = fields


class PaymentInline(ReadOnlyInline):
    model = Payment
    fields = ['position', 'method', 'amount', 'change_given', 'date', 'staff_id', 'return_transaction']
    readonly_fields = fields


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    """Ledger fields are only changed by the payment and return services."""
    list_display = ['receipt_number', 'customer_name', 'total_amount', 'total_amount_paid',
                    'outstanding_balance', 'payment_summary', 'sale_date']
    search_fields = ['receipt_number', 'customer_name', 'customer_id', 'staff_id']
    list_filter = ['sale_date']
    readonly_fields = [field.name for field in Sale._meta.fields]
    inlines = [SaleItemInline, PaymentInline]
    ordering = ['-sale_date']

    def has_delete_permission(self, request, obj=None):
        return False


class ReturnedItemInline(ReadOnlyInline):
    model = ReturnedItem
    fields = ['sale_item', 'quantity', 'applied_price', 'is_resellable']
    readonly_fields = fields


class ExchangedItemInline(ReadOnlyInline):
    model = ExchangedItem
    fields = ['product', 'quantity', 'applied_price']
    readonly_fields = fields


@admin.register(ReturnTransaction)
class ReturnTransactionAdmin(admin.ModelAdmin):
    list_display = ['reference', 'original_sale', 'return_total_value', 'exchange_total_value',
                    'settle_outstanding_amount', 'refund_amount', 'amount_paid', 'return_date']
    search_fields = ['reference', 'original_sale__receipt_number']
    list_filter = ['return_date', 'apply_credit_to_outstanding']
    readonly_fields = [field.name for field in ReturnTransaction._meta.fields]
    inlines = [ReturnedItemInline, ExchangedItemInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'sale', 'staff_id', 'timestamp']
    search_fields = ['description', 'sale__receipt_number', 'staff_id']
    list_filter = ['event_type', 'timestamp']
    readonly_fields = [field.name for field in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
