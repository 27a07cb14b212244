import uuid
from django.conf import settings
from django.db import models

from catalog.models import Product, ProductVariant
from shop.models import Shop


class PosCart(models.Model):
    """Counter cart owned by one seller; converted into a completed order at checkout."""

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        CONVERTED = "converted", "Converted"
        ABANDONED = "abandoned", "Abandoned"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="pos_carts")
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="pos_carts")
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="pos_purchases"
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    origin = models.CharField(max_length=20, default="pdv")

    coupon = models.ForeignKey(
        "coupon.Coupon", on_delete=models.SET_NULL, null=True, blank=True, related_name="pos_carts"
    )
    discount_amount = models.PositiveIntegerField(default=0)  # cart-level discount, minor units

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class PosCartItem(models.Model):
    cart = models.ForeignKey(PosCart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey(Product, on_delete=models.CASCADE)
    variant = models.ForeignKey(ProductVariant, null=True, blank=True, on_delete=models.CASCADE)

    quantity = models.PositiveIntegerField()
    price = models.PositiveIntegerField()  # unit price, minor units
    discount = models.PositiveIntegerField(default=0)  # on the whole line

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("cart", "product", "variant")

    @property
    def gross_total(self):
        return self.price * self.quantity

    @property
    def net_total(self):
        return self.gross_total - self.discount


class PhysicalSale(models.Model):
    """Per-item reporting row of a finalized POS sale."""

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="physical_sales")
    order = models.ForeignKey("order.Order", on_delete=models.CASCADE, related_name="physical_sales")
    cart = models.ForeignKey(PosCart, on_delete=models.SET_NULL, null=True, blank=True, related_name="physical_sales")
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True)
    variant = models.ForeignKey(ProductVariant, on_delete=models.SET_NULL, null=True, blank=True)
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="physical_sales"
    )
    coupon = models.ForeignKey("coupon.Coupon", on_delete=models.SET_NULL, null=True, blank=True)

    quantity = models.PositiveIntegerField()
    subtotal = models.PositiveIntegerField()
    discount_amount = models.PositiveIntegerField(default=0)
    total = models.PositiveIntegerField()
    status = models.CharField(max_length=20, default="completed")

    created_at = models.DateTimeField(auto_now_add=True)
