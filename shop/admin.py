from django.contrib import admin

from .models import Shop, PickupPoint


@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "domain", "free_shipping_min_total", "created_at")
    search_fields = ("name", "domain")


@admin.register(PickupPoint)
class PickupPointAdmin(admin.ModelAdmin):
    list_display = ("name", "shop", "city", "state", "is_active")
    list_filter = ("is_active", "state")
    search_fields = ("name", "city", "shop__name")
