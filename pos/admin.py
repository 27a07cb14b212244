from django.contrib import admin

from .models import PhysicalSale, PosCart, PosCartItem


class PosCartItemInline(admin.TabularInline):
    model = PosCartItem
    extra = 0


@admin.register(PosCart)
class PosCartAdmin(admin.ModelAdmin):
    list_display = ("id", "shop", "seller", "status", "discount_amount", "updated_at")
    list_filter = ("status", "shop")
    inlines = [PosCartItemInline]


@admin.register(PhysicalSale)
class PhysicalSaleAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "product", "quantity", "subtotal", "discount_amount", "total", "seller", "created_at")
    list_filter = ("shop", "status")
