"""
Order models for the order management application.

Order is the aggregate root of the fulfillment workflow. It owns its line
items, and every method that changes the item collection recalculates
``total_amount`` before returning, so the stored total always equals the sum
of the line totals. Status legality is enforced by ``orders.services``; the
model only answers whether the order can still be cancelled.
"""

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.exceptions import BusinessRuleViolation, InvalidQuantity


class Order(models.Model):
    """
    A customer purchase.

    - Money is stored as Decimal with 2 places
    - ``unit_price`` on each item is a snapshot, later price edits never
      change an existing order
    - Customers and products referenced by orders cannot be deleted (PROTECT)
    """

    class OrderStatus(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        CONFIRMED = 'CONFIRMED', _('Confirmed')
        PROCESSING = 'PROCESSING', _('Processing')
        SHIPPED = 'SHIPPED', _('Shipped')
        DELIVERED = 'DELIVERED', _('Delivered')
        CANCELLED = 'CANCELLED', _('Cancelled')

    class PaymentStatus(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        APPROVED = 'APPROVED', _('Approved')
        REJECTED = 'REJECTED', _('Rejected')
        REFUNDED = 'REFUNDED', _('Refunded')
        CANCELLED = 'CANCELLED', _('Cancelled')

    class PaymentMethod(models.TextChoices):
        CREDIT_CARD = 'CREDIT_CARD', _('Credit card')
        DEBIT_CARD = 'DEBIT_CARD', _('Debit card')
        PIX = 'PIX', _('PIX')
        BANK_SLIP = 'BANK_SLIP', _('Bank slip')
        BANK_TRANSFER = 'BANK_TRANSFER', _('Bank transfer')

    customer = models.ForeignKey(
        'authentication.User',
        on_delete=models.PROTECT,
        related_name='orders',
        help_text=_("Customer who placed this order"),
    )
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Sum of all line totals"),
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        blank=True,
    )
    payment_date = models.DateTimeField(null=True, blank=True)
    transaction_id = models.CharField(
        max_length=100,
        blank=True,
        help_text=_("Payment provider transaction reference"),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['customer', 'created_at'], name='order_customer_ts_idx'),
            models.Index(fields=['status', 'created_at'], name='order_status_ts_idx'),
        ]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")

    def __str__(self):
        return f"Order {self.pk} - {self.status} - {self.total_amount}"

    def can_be_cancelled(self) -> bool:
        return self.status in (self.OrderStatus.PENDING, self.OrderStatus.CONFIRMED)

    def is_paid(self) -> bool:
        return self.payment_status == self.PaymentStatus.APPROVED

    def recalculate_total_amount(self) -> Decimal:
        """Set ``total_amount`` to the sum of the stored line totals (0 for an empty order)."""
        total = self.items.aggregate(total=Sum('total_price'))['total']
        self.total_amount = total if total is not None else Decimal('0.00')
        return self.total_amount

    def _persist_total(self) -> None:
        self.recalculate_total_amount()
        self.save(update_fields=['total_amount', 'updated_at'])

    def add_item(self, item: 'OrderItem') -> 'OrderItem':
        """Attach a line item, store it and refresh the order total."""
        item.order = self
        item.calculate_total_price()
        item.save()
        self._persist_total()
        return item

    def remove_item(self, item: 'OrderItem') -> None:
        if item.order_id != self.pk:
            raise BusinessRuleViolation(f"Item {item.pk} does not belong to order {self.pk}.")
        item.delete()
        self._persist_total()

    def update_item_quantity(self, item: 'OrderItem', quantity: int) -> 'OrderItem':
        if item.order_id != self.pk:
            raise BusinessRuleViolation(f"Item {item.pk} does not belong to order {self.pk}.")
        if quantity <= 0:
            raise InvalidQuantity("Quantity must be positive.")
        item.quantity = quantity
        item.calculate_total_price()
        item.save(update_fields=['quantity', 'total_price'])
        self._persist_total()
        return item

    def record_payment(self, payment_status: str, payment_method: str = None, transaction_id: str = None) -> None:
        """
        Apply a payment update in memory. An approved payment stamps
        ``payment_date`` and confirms a pending order. Call ``save()`` afterwards.
        """
        self.payment_status = payment_status
        self.payment_method = payment_method or ''
        self.transaction_id = transaction_id or ''
        if payment_status == self.PaymentStatus.APPROVED:
            self.payment_date = timezone.now()
            if self.status == self.OrderStatus.PENDING:
                self.status = self.OrderStatus.CONFIRMED


OrderStatus = Order.OrderStatus
PaymentStatus = Order.PaymentStatus
PaymentMethod = Order.PaymentMethod


class OrderItem(models.Model):
    """
    One product and quantity within an order, priced at order time.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
    )
    product = models.ForeignKey(
        'products.Product',
        on_delete=models.PROTECT,
        related_name='order_items',
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Price per unit at time of order (snapshot)"),
    )
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text=_("unit_price x quantity"),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['order', 'product'], name='order_item_order_product_idx'),
        ]
        verbose_name = _("Order item")
        verbose_name_plural = _("Order items")

    def __str__(self):
        return f"{self.quantity}x product {self.product_id} in order {self.order_id}"

    def calculate_total_price(self) -> Decimal:
        self.total_price = self.unit_price * self.quantity
        return self.total_price
