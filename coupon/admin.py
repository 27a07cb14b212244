from django.contrib import admin

from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "shop", "type", "value", "used_count", "max_uses", "expires_at", "active")
    list_filter = ("type", "active", "shop")
    search_fields = ("code",)
    readonly_fields = ("used_count",)
