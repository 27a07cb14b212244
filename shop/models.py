from django.db import models
from django.conf import settings
import uuid


class Shop(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_shops"
    )

    domain = models.CharField(max_length=255, unique=True, blank=True, null=True)
    # Orders whose item subtotal reaches this value (minor units) ship for free.
    free_shipping_min_total = models.PositiveIntegerField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def qualifies_for_free_shipping(self, subtotal):
        return self.free_shipping_min_total is not None and subtotal >= self.free_shipping_min_total

    def __str__(self):
        return self.name


class PickupPoint(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="pickup_points")
    name = models.CharField(max_length=255)

    street = models.CharField(max_length=255)
    number = models.CharField(max_length=20, blank=True)
    complement = models.CharField(max_length=255, blank=True)
    neighborhood = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=120)
    state = models.CharField(max_length=60)
    zip_code = models.CharField(max_length=20, blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    @property
    def address_line(self):
        parts = [f"{self.street}, {self.number}".strip(", ")]
        if self.neighborhood:
            parts.append(self.neighborhood)
        parts.append(f"{self.city} - {self.state}")
        return " - ".join(parts)

    def __str__(self):
        return f"{self.name} ({self.shop.name})"
