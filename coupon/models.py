import uuid

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from shop.models import Shop


def normalize_code(code):
    return (code or "").strip().upper()


class Coupon(models.Model):
    class Type(models.TextChoices):
        PERCENT = "percent", "Percent"
        FIXED = "fixed", "Fixed amount"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="coupons")
    code = models.CharField(max_length=50)
    type = models.CharField(max_length=10, choices=Type.choices)
    # Percent points for PERCENT, minor units for FIXED.
    value = models.PositiveIntegerField()
    min_value = models.PositiveIntegerField(null=True, blank=True)  # minor units
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    expires_at = models.DateTimeField(null=True, blank=True)
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["shop", "code"], name="coupon_unique_code_per_shop"),
            models.CheckConstraint(
                condition=~models.Q(type="percent") | models.Q(value__lte=100),
                name="coupon_percent_value_at_most_100",
            ),
        ]

    def clean(self):
        if self.type == self.Type.PERCENT and self.value is not None and self.value > 100:
            raise ValidationError({"value": "Percent coupons cannot exceed 100."})

    def save(self, *args, **kwargs):
        self.code = normalize_code(self.code)
        super().save(*args, **kwargs)

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at <= now

    def is_exhausted(self):
        return self.max_uses is not None and self.used_count >= self.max_uses

    def __str__(self):
        return f"{self.code} ({self.shop_id})"
