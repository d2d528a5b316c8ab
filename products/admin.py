from django.contrib import admin

from .models import PriceHistory, Product, StockMovement


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'price', 'stock_quantity', 'is_active', 'updated_at']
    list_filter = ['is_active', 'category']
    search_fields = ['name', 'category']
    # Stock changes must go through the ledger.
    readonly_fields = ['stock_quantity', 'created_at', 'updated_at']


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyLedgerAdmin):
    list_display = ['product', 'movement_type', 'quantity', 'previous_stock', 'new_stock', 'created_by', 'created_at']
    list_filter = ['movement_type', 'created_at']
    search_fields = ['product__name', 'reason', 'created_by']
    date_hierarchy = 'created_at'


@admin.register(PriceHistory)
class PriceHistoryAdmin(ReadOnlyLedgerAdmin):
    list_display = ['product', 'old_price', 'new_price', 'changed_by', 'changed_at']
    search_fields = ['product__name', 'changed_by']
    date_hierarchy = 'changed_at'
