from rest_framework import serializers


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    order_total = serializers.IntegerField(min_value=0)
