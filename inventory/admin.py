from django.contrib import admin
from .models import Category, Product, StockAdjustment


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at']
    ordering = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'category', 'retail_price', 'wholesale_price', 'quantity', 'is_active']
    search_fields = ['name', 'sku']
    list_filter = ['category', 'is_active', 'created_at']
    readonly_fields = ['id', 'quantity', 'created_at', 'updated_at']
    ordering = ['name']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'name', 'sku', 'category', 'is_active')
        }),
        ('Pricing', {
            'fields': ('retail_price', 'wholesale_price')
        }),
        ('Stock', {
            'fields': ('quantity',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ['product', 'adjustment_type', 'quantity', 'quantity_before', 'quantity_after',
                    'reference', 'created_at']
    search_fields = ['product__name', 'product__sku', 'reference', 'idempotency_key']
    list_filter = ['adjustment_type', 'created_at']
    readonly_fields = [field.name for field in StockAdjustment._meta.fields]
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
