from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Order, OrderItem, OrderShippingAddress

User = get_user_model()


class CartItemCreateSerializer(serializers.Serializer):
    cart_id = serializers.UUIDField(required=False, allow_null=True)
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=1)  # unit price, minor units


class ShippingAddressSerializer(serializers.Serializer):
    zip_code = serializers.CharField(max_length=20)
    street = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    number = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    complement = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True, default="")
    neighborhood = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    state = serializers.CharField(max_length=60, required=False, allow_blank=True, default="")
    country = serializers.CharField(max_length=2, required=False, default="BR")

    def validate_complement(self, value):
        return value or ""


class CreateOrderSerializer(serializers.Serializer):
    customer_id = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), source="customer", required=False, allow_null=True
    )
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    delivery_type = serializers.ChoiceField(choices=Order.DeliveryType.choices)
    delivery_option_id = serializers.CharField(max_length=64)
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    shipping_address = ShippingAddressSerializer(required=False, allow_null=True)
    cart_id = serializers.UUIDField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs["delivery_type"] == Order.DeliveryType.SHIPPING and not attrs.get("shipping_address"):
            raise serializers.ValidationError({"shipping_address": "Required for shipping orders."})
        return attrs


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")


class OrderItemSerializer(serializers.ModelSerializer):
    product_id = serializers.UUIDField(read_only=True, allow_null=True)
    variant_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = OrderItem
        fields = ["id", "product_id", "variant_id", "product_name", "quantity", "price"]


class OrderShippingAddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderShippingAddress
        fields = ["zip_code", "street", "number", "complement", "neighborhood", "city", "state", "country"]


class OrderSerializer(serializers.ModelSerializer):
    store_id = serializers.UUIDField(source="shop_id", read_only=True)
    customer_id = serializers.IntegerField(read_only=True, allow_null=True)
    cart_id = serializers.UUIDField(read_only=True, allow_null=True)
    coupon_code = serializers.SerializerMethodField()
    shipping_address = serializers.SerializerMethodField()
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "store_id",
            "customer_id",
            "cart_id",
            "channel",
            "status",
            "payment_status",
            "payment_method",
            "subtotal",
            "discount",
            "shipping_cost",
            "total",
            "delivery_type",
            "delivery_option_id",
            "coupon_code",
            "shipping_address",
            "tracking_code",
            "items",
            "created_at",
        ]

    def get_coupon_code(self, obj):
        return obj.coupon.code if obj.coupon_id else None

    def get_shipping_address(self, obj):
        address = getattr(obj, "shipping_address", None)
        return OrderShippingAddressSerializer(address).data if address else None
