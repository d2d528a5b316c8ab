"""
Product catalog and inventory ledger models.

Product holds the live stock count. Every change to that count goes through
the inventory ledger (``products.services.apply_stock_movement``), which
appends a StockMovement row with the before/after snapshot. Price edits
append a PriceHistory row. Both ledgers are append-only: saving an existing
row or deleting one raises.
"""

from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class Product(models.Model):
    """
    An item available for sale.

    - Prices are Decimal with 2 places, never negative
    - ``stock_quantity`` is never negative; it is written only by the ledger
    - Soft deletion (``is_active=False``) keeps order history intact
    """

    name = models.CharField(
        max_length=255,
        db_index=True,
        help_text=_("Product name (max 255 characters)"),
    )
    description = models.TextField(
        blank=True,
        help_text=_("Detailed product description"),
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Current unit price"),
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text=_("Catalog category, matched case-insensitively"),
    )
    stock_quantity = models.PositiveIntegerField(
        default=0,
        help_text=_("Units on hand. Changed only through stock movements."),
    )
    is_active = models.BooleanField(
        default=True,
        help_text=_("If False, product is hidden from customers but preserved for order history"),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['category', 'is_active'], name='product_category_active_idx'),
            models.Index(fields=['is_active', 'stock_quantity'], name='product_active_stock_idx'),
        ]
        constraints = [
            models.CheckConstraint(check=models.Q(price__gte=0), name='product_price_non_negative'),
        ]
        verbose_name = _("Product")
        verbose_name_plural = _("Products")

    def __str__(self):
        return f"{self.name} (stock: {self.stock_quantity})"

    @property
    def is_available(self) -> bool:
        return self.is_active and self.stock_quantity > 0

    def has_stock(self, quantity: int) -> bool:
        return self.stock_quantity >= quantity


class AppendOnlyModel(models.Model):
    """Rows are written once and never updated or deleted."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValidationError(f"{self.__class__.__name__} records are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{self.__class__.__name__} records cannot be deleted.")


class StockMovement(AppendOnlyModel):
    """
    One applied change to a product's stock count.

    ``quantity`` is the amount requested: units received or shipped, or the
    target level for an absolute adjustment. ``previous_stock`` and
    ``new_stock`` snapshot the count around the change.
    """

    class MovementType(models.TextChoices):
        INBOUND = 'INBOUND', _('Inbound')
        OUTBOUND = 'OUTBOUND', _('Outbound')
        ABSOLUTE_ADJUSTMENT = 'ABSOLUTE_ADJUSTMENT', _('Absolute adjustment')

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='stock_movements',
    )
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.PositiveIntegerField()
    previous_stock = models.PositiveIntegerField()
    new_stock = models.PositiveIntegerField()
    reason = models.CharField(max_length=255)
    created_by = models.CharField(
        max_length=254,
        help_text=_("Email or name of the actor that applied the movement"),
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='stock_move_product_ts_idx'),
        ]
        verbose_name = _("Stock movement")
        verbose_name_plural = _("Stock movements")

    def __str__(self):
        return f"{self.movement_type} {self.quantity} of product {self.product_id}: {self.previous_stock} -> {self.new_stock}"

    @property
    def stock_variation(self) -> int:
        return self.new_stock - self.previous_stock


class PriceHistory(AppendOnlyModel):
    """A product price change and who made it."""

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='price_history',
    )
    old_price = models.DecimalField(max_digits=10, decimal_places=2)
    new_price = models.DecimalField(max_digits=10, decimal_places=2)
    changed_by = models.CharField(max_length=254)
    changed_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-changed_at', '-id']
        indexes = [
            models.Index(fields=['product', 'changed_at'], name='price_hist_product_ts_idx'),
        ]
        verbose_name = _("Price history entry")
        verbose_name_plural = _("Price history")

    def __str__(self):
        return f"Product {self.product_id}: {self.old_price} -> {self.new_price}"

    @property
    def price_difference(self) -> Decimal:
        return self.new_price - self.old_price

    @property
    def percentage_change(self) -> Decimal:
        if not self.old_price:
            return Decimal('0.00')
        change = self.price_difference / self.old_price * 100
        return change.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
