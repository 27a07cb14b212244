from django.contrib.auth import get_user_model
from rest_framework import serializers

from order.models import Order

from .models import PhysicalSale, PosCart, PosCartItem

User = get_user_model()


class PosCartCreateSerializer(serializers.Serializer):
    customer_id = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), source="customer", required=False, allow_null=True
    )


class PosCartItemCreateSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=1, required=False)
    discount = serializers.IntegerField(min_value=0, required=False, default=0)


class PosCartItemUpdateSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    quantity = serializers.IntegerField(min_value=0)  # 0 removes the line


class PosDiscountSerializer(serializers.Serializer):
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    discount_amount = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class FinalizeSaleSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(
        choices=Order.PaymentMethod.choices, required=False, default=Order.PaymentMethod.CASH
    )


class PosCartItemSerializer(serializers.ModelSerializer):
    product_id = serializers.UUIDField(read_only=True)
    variant_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = PosCartItem
        fields = ["id", "product_id", "variant_id", "quantity", "price", "discount"]


class PosCartSerializer(serializers.ModelSerializer):
    store_id = serializers.UUIDField(source="shop_id", read_only=True)
    seller_user_id = serializers.IntegerField(source="seller_id", read_only=True)
    customer_id = serializers.IntegerField(read_only=True, allow_null=True)
    coupon_code = serializers.SerializerMethodField()
    subtotal = serializers.SerializerMethodField()
    items = PosCartItemSerializer(many=True, read_only=True)

    class Meta:
        model = PosCart
        fields = [
            "id",
            "store_id",
            "seller_user_id",
            "customer_id",
            "status",
            "origin",
            "coupon_code",
            "discount_amount",
            "subtotal",
            "items",
            "created_at",
        ]

    def get_coupon_code(self, obj):
        return obj.coupon.code if obj.coupon_id else None

    def get_subtotal(self, obj):
        return sum(item.net_total for item in obj.items.all())


class PhysicalSaleSerializer(serializers.ModelSerializer):
    product_id = serializers.UUIDField(read_only=True, allow_null=True)
    variant_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = PhysicalSale
        fields = ["id", "product_id", "variant_id", "quantity", "subtotal", "discount_amount", "total", "status"]
