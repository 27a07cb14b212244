from rest_framework import serializers

from .models import StockMovement


class StockProjectionSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(allow_null=True)
    current_stock = serializers.IntegerField()
    last_movement_at = serializers.DateTimeField(allow_null=True)


class StockMovementSerializer(serializers.ModelSerializer):
    store_id = serializers.UUIDField(source="shop_id", read_only=True)
    product_id = serializers.UUIDField(read_only=True)
    variant_id = serializers.UUIDField(read_only=True, allow_null=True)
    order_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "store_id",
            "product_id",
            "variant_id",
            "kind",
            "quantity",
            "final_quantity",
            "origin",
            "reason",
            "order_id",
            "created_by",
            "created_at",
        ]


class ManualMovementSerializer(serializers.Serializer):
    """Stock entries recorded by staff; order-driven origins are reserved for the orchestrators."""

    MANUAL_ORIGINS = (
        StockMovement.Origin.MANUAL,
        StockMovement.Origin.ADJUSTMENT,
        StockMovement.Origin.RETURN,
    )

    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    kind = serializers.ChoiceField(choices=StockMovement.Kind.choices)
    quantity = serializers.IntegerField(min_value=1, required=False)
    final_quantity = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    origin = serializers.ChoiceField(choices=MANUAL_ORIGINS, default=StockMovement.Origin.MANUAL)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        final_quantity = attrs.get("final_quantity")
        if final_quantity is not None and attrs["kind"] != StockMovement.Kind.ADJUST:
            raise serializers.ValidationError({"final_quantity": "Only allowed for ADJUST movements."})
        if attrs.get("quantity") is None and final_quantity is None:
            raise serializers.ValidationError({"quantity": "This field is required."})
        return attrs
