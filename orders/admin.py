from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ['product', 'quantity', 'unit_price', 'total_price', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-mostly view of orders. Status, payment and cancellation changes go
    through the API so that stock movements are recorded.
    """

    list_display = ['id', 'customer', 'status', 'payment_status', 'total_amount', 'created_at']
    list_filter = ['status', 'payment_status', 'payment_method', 'created_at']
    search_fields = ['id', 'customer__email', 'transaction_id']
    readonly_fields = [
        'customer', 'total_amount', 'status', 'payment_status', 'payment_method', 'payment_date',
        'transaction_id', 'created_at', 'updated_at', 'shipped_at', 'delivered_at',
    ]
    inlines = [OrderItemInline]
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False
