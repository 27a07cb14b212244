from django.contrib import admin

from .models import Product, ProductVariant


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "shop", "sku", "status", "price", "updated_at")
    list_filter = ("status", "shop")
    search_fields = ("name", "sku")
    inlines = [ProductVariantInline]
