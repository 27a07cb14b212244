from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions

from core.exceptions import CommerceError, ValidationError, error_response
from order.serializers import OrderSerializer
from shop.tenancy import resolve_owned_shop

from .serializers import (
    FinalizeSaleSerializer,
    PhysicalSaleSerializer,
    PosCartCreateSerializer,
    PosCartItemCreateSerializer,
    PosCartItemUpdateSerializer,
    PosCartSerializer,
    PosDiscountSerializer,
)
from .services import PhysicalSaleService


class PosCartCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = PosCartCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid cart", errors=serializer.errors))
        try:
            shop = resolve_owned_shop(request)
            cart = PhysicalSaleService.create_cart(shop, request.user, **serializer.validated_data)
        except CommerceError as e:
            return error_response(e)
        return Response(PosCartSerializer(cart).data, status=status.HTTP_201_CREATED)


class PosCartItemsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, cart_id):
        serializer = PosCartItemCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid cart item", errors=serializer.errors))
        try:
            shop = resolve_owned_shop(request)
            cart = PhysicalSaleService.add_item(shop, request.user, cart_id, **serializer.validated_data)
        except CommerceError as e:
            return error_response(e)
        return Response(PosCartSerializer(cart).data)

    def patch(self, request, cart_id):
        serializer = PosCartItemUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid cart item", errors=serializer.errors))
        try:
            shop = resolve_owned_shop(request)
            cart = PhysicalSaleService.update_item_quantity(shop, request.user, cart_id, **serializer.validated_data)
        except CommerceError as e:
            return error_response(e)
        return Response(PosCartSerializer(cart).data)


class PosCartDiscountView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, cart_id):
        serializer = PosDiscountSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid discount", errors=serializer.errors))
        try:
            shop = resolve_owned_shop(request)
            cart = PhysicalSaleService.apply_discount(
                shop,
                request.user,
                cart_id,
                coupon_code=serializer.validated_data.get("coupon_code"),
                discount_amount=serializer.validated_data.get("discount_amount"),
            )
        except CommerceError as e:
            return error_response(e)
        return Response(PosCartSerializer(cart).data)


class FinalizeSaleView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, cart_id):
        serializer = FinalizeSaleSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid sale", errors=serializer.errors))
        try:
            shop = resolve_owned_shop(request)
            order = PhysicalSaleService.finalize_sale(
                shop, request.user, cart_id, payment_method=serializer.validated_data["payment_method"]
            )
        except CommerceError as e:
            return error_response(e)

        data = OrderSerializer(order).data
        data["physical_sales"] = PhysicalSaleSerializer(order.physical_sales.order_by("id"), many=True).data
        return Response(data, status=status.HTTP_201_CREATED)
