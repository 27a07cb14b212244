from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions

from core.exceptions import CommerceError, ValidationError, error_response
from shop.tenancy import resolve_owned_shop, resolve_shop

from .serializers import CancelOrderSerializer, CartItemCreateSerializer, OrderSerializer
from .services import CartService, OrderService


class AddToCartView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = CartItemCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid cart item", errors=serializer.errors))

        customer = request.user if request.user.is_authenticated else None
        try:
            shop = resolve_shop(request)
            cart = CartService.add_to_cart(shop, customer=customer, **serializer.validated_data)
        except CommerceError as e:
            return error_response(e)

        items = cart.items.select_related("product", "variant").all()
        data = [
            {
                "id": i.id,
                "product_id": str(i.product_id),
                "product": i.product.name,
                "variant_id": str(i.variant_id) if i.variant_id else None,
                "variant": i.variant.variant_name if i.variant else None,
                "quantity": i.quantity,
                "price": i.price,
            } for i in items
        ]

        return Response({
            "message": "Item added successfully",
            "cart_id": str(cart.id),
            "items_count": len(data),
            "subtotal": sum(i.price * i.quantity for i in items),
            "items": data
        }, status=status.HTTP_200_OK)


class CreateOrderView(APIView):
    """
    Place an online order. Guests may check out; stock, delivery cost and
    coupon are all resolved server side.
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        try:
            shop = resolve_shop(request)
            order = OrderService.create_order(shop, request.data)
        except CommerceError as e:
            return error_response(e)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

# e.g
# {
#   "items": [{"product_id": "223be6e6-5752-441f-82e6-14f2812acb84", "variant_id": null, "quantity": 2, "price": 4990}],
#   "delivery_type": "shipping",
#   "delivery_option_id": "standard",
#   "coupon_code": "WELCOME10",
#   "shipping_address": {"zip_code": "01310-100", "street": "Av. Paulista", "number": "1000", "city": "Sao Paulo", "state": "SP"}
# }


class OrderDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, order_id):
        try:
            shop = resolve_owned_shop(request)
            order = OrderService.get_order(shop, order_id)
        except CommerceError as e:
            return error_response(e)
        return Response(OrderSerializer(order).data)


class CancelOrderView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, order_id):
        serializer = CancelOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid cancellation", errors=serializer.errors))
        try:
            shop = resolve_owned_shop(request)
            order = OrderService.cancel_order(
                shop,
                order_id,
                reason=serializer.validated_data["reason"],
                actor=request.user,
            )
        except CommerceError as e:
            return error_response(e)
        return Response(OrderSerializer(order).data)
