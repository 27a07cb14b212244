from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions

from core.exceptions import CommerceError, ValidationError, error_response
from shop.tenancy import resolve_shop

from .serializers import CouponValidateSerializer
from .services import CouponValidator


class ValidateCouponView(APIView):
    """Checkout preview of a coupon; nothing is reserved or consumed."""

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = CouponValidateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid coupon request", errors=serializer.errors))
        try:
            shop = resolve_shop(request)
        except CommerceError as exc:
            return error_response(exc)

        result = CouponValidator.validate(
            shop,
            serializer.validated_data["code"],
            serializer.validated_data["order_total"],
        )
        if not result.valid:
            return Response({"valid": False, "message": result.message}, status=status.HTTP_200_OK)
        return Response({
            "valid": True,
            "discountType": result.discount_type,
            "discountValue": result.discount_value,
            "finalPrice": result.final_price,
            "message": result.message,
        }, status=status.HTTP_200_OK)
