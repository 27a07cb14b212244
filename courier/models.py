import uuid
from django.db import models


class CourierPartner(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    provider_code = models.CharField(max_length=50, unique=True)  # e.g. melhor_envio
    # Empty URL means quotes come from settings.SHIPPING_MOCK_QUOTES.
    api_base_url = models.URLField(blank=True)
    api_key = models.CharField(max_length=255, blank=True)
    origin_postal_code = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)
    priority = models.PositiveIntegerField(default=100)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["priority", "name"]

    def __str__(self):
        return f"{self.name} ({self.provider_code})"
