from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from catalog.models import Product, ProductVariant
from shop.models import Shop


class StockMovement(models.Model):
    """
    Append-only stock ledger entry.

    Current stock of a (shop, product, variant) track is never stored on the
    product: it is the fold of these rows in (created_at, id) order. Rows are
    created once and never edited or deleted.
    """

    class Kind(models.TextChoices):
        IN = "IN", "Stock In"
        OUT = "OUT", "Stock Out"
        ADJUST = "ADJUST", "Adjustment"

    class Origin(models.TextChoices):
        MANUAL = "manual", "Manual"
        ADJUSTMENT = "adjustment", "Adjustment"
        RETURN = "return", "Return"
        ORDER = "order", "Online order"
        ORDER_CANCELLATION = "order_cancellation", "Order cancellation"
        PHYSICAL_SALE = "physical_sale", "Physical sale"

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="stock_movements")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="stock_movements")
    variant = models.ForeignKey(
        ProductVariant, on_delete=models.CASCADE, null=True, blank=True, related_name="stock_movements"
    )

    kind = models.CharField(max_length=6, choices=Kind.choices)
    quantity = models.PositiveIntegerField()
    # Only for ADJUST: when set, the running total is replaced by this value.
    final_quantity = models.PositiveIntegerField(null=True, blank=True)
    origin = models.CharField(max_length=30, choices=Origin.choices, default=Origin.MANUAL)
    reason = models.CharField(max_length=255, blank=True)

    order = models.ForeignKey(
        "order.Order", on_delete=models.PROTECT, null=True, blank=True, related_name="stock_movements"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements",
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["shop", "product", "variant", "created_at"], name="inventory_mv_track_idx"),
            models.Index(fields=["origin"], name="inventory_mv_origin_idx"),
        ]

    def clean(self):
        if self.kind not in self.Kind.values:
            raise ValidationError(f"Unknown movement kind {self.kind!r}")
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError("quantity must be greater than zero")
        if self.final_quantity is not None:
            if self.kind != self.Kind.ADJUST:
                raise ValidationError("final_quantity is only allowed on ADJUST movements")
            if self.final_quantity < 0:
                raise ValidationError("final_quantity cannot be negative")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("StockMovement records are immutable")
        self.clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("StockMovement records are immutable and cannot be deleted")

    def __str__(self):
        return f"{self.product_id} | {self.kind} {self.quantity} | {self.origin}"


class StockLevel(models.Model):
    """
    Materialized running total of one stock track, kept in step with the
    ledger inside the same transaction as every append. Its row is what
    order commits lock to serialize stock checks.
    """

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="stock_levels")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="stock_levels")
    variant = models.ForeignKey(
        ProductVariant, on_delete=models.CASCADE, null=True, blank=True, related_name="stock_levels"
    )

    raw_total = models.IntegerField(default=0)  # unclamped fold
    movement_count = models.PositiveIntegerField(default=0)
    last_movement_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["shop", "product"],
                condition=models.Q(variant__isnull=True),
                name="inventory_level_unique_base_track",
            ),
            models.UniqueConstraint(
                fields=["shop", "product", "variant"],
                condition=models.Q(variant__isnull=False),
                name="inventory_level_unique_variant_track",
            ),
        ]

    @property
    def current_stock(self):
        return max(0, self.raw_total)

    def __str__(self):
        return f"{self.product_id}/{self.variant_id or '-'}: {self.current_stock}"
