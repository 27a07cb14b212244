from rest_framework import serializers


class QuoteItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.IntegerField(min_value=1)  # minor units


class DeliveryOptionsSerializer(serializers.Serializer):
    destination_zip_code = serializers.CharField(required=False, allow_blank=True)
    items = QuoteItemSerializer(many=True, allow_empty=False)
