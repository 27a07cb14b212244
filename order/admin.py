from django.contrib import admin

from .models import Cart, CartItem, Order, OrderItem, OrderShippingAddress


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "shop", "customer", "status", "updated_at")
    list_filter = ("status", "shop")
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "variant", "product_name", "price", "quantity")


class OrderShippingAddressInline(admin.StackedInline):
    model = OrderShippingAddress
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "shop", "channel", "status", "payment_status", "total", "created_at")
    list_filter = ("channel", "status", "payment_status", "shop")
    search_fields = ("id", "tracking_code")
    readonly_fields = ("subtotal", "discount", "shipping_cost", "total")
    inlines = [OrderShippingAddressInline, OrderItemInline]
