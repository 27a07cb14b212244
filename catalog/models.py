from django.db import models
from shop.models import Shop
import uuid
from django.utils.text import slugify


class Product(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        DRAFT = "draft", "Draft"
        ARCHIVED = "archived", "Archived"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="products")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    sku = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    price = models.PositiveIntegerField(default=0)  # minor units

    # Package data used for shipping quotes; settings.SHIPPING_DEFAULT_PACKAGE fills the gaps.
    weight = models.FloatField(blank=True, null=True)  # kg
    height = models.PositiveIntegerField(blank=True, null=True)  # cm
    width = models.PositiveIntegerField(blank=True, null=True)  # cm
    length = models.PositiveIntegerField(blank=True, null=True)  # cm

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["shop", "sku"],
                condition=~models.Q(sku=""),
                name="catalog_product_unique_sku_per_shop",
            ),
        ]

    @property
    def is_orderable(self):
        return self.status == self.Status.ACTIVE

    def save(self, *args, **kwargs):
        if not self.sku:
            base = slugify(self.name) if self.name else "product"
            base = (base or "product").upper().replace("-", "")[:12] or "PRODUCT"
            self.sku = f"{base}-{uuid.uuid4().hex[:6].upper()}"
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class ProductVariant(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, related_name="variants", on_delete=models.CASCADE)
    variant_name = models.CharField(max_length=255)  # e.g., "Red / Large"
    sku = models.CharField(max_length=100, blank=True)
    price = models.PositiveIntegerField(null=True, blank=True)  # minor units, overrides product price
    attributes = models.JSONField(blank=True, default=dict)  # {"color": "red", "size": "L"}
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.name} - {self.variant_name}"
