from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions

from catalog.services import ProductCatalog
from core.exceptions import CommerceError, NotFoundError, ValidationError, error_response
from shop.tenancy import resolve_owned_shop

from .serializers import ManualMovementSerializer, StockMovementSerializer, StockProjectionSerializer
from .services import StockLedger


class ProductStockView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, product_id):
        try:
            shop = resolve_owned_shop(request)
            product = ProductCatalog.find_by_id(shop, product_id)
            if not product:
                raise NotFoundError("Product not found")
        except CommerceError as exc:
            return error_response(exc)

        stocks = StockLedger.stocks_for_product(shop, product)
        return Response({
            "product_id": str(product.id),
            "stocks": StockProjectionSerializer(stocks, many=True).data,
        })


class StockMovementListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        product_id = request.query_params.get("product_id")
        variant_id = request.query_params.get("variant_id") or None
        try:
            shop = resolve_owned_shop(request)
            product = ProductCatalog.find_by_id(shop, product_id)
            if not product:
                raise NotFoundError("Product not found")
            if variant_id and not ProductCatalog.find_variant(product, variant_id):
                raise NotFoundError("Variant not found")
        except CommerceError as exc:
            return error_response(exc)

        movements = StockLedger.movements(shop, product.id, variant_id, limit=200)
        return Response({"movements": StockMovementSerializer(movements, many=True).data})

    def post(self, request):
        serializer = ManualMovementSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid movement", errors=serializer.errors))
        data = serializer.validated_data

        try:
            shop = resolve_owned_shop(request)
            product = ProductCatalog.find_by_id(shop, data["product_id"])
            if not product:
                raise NotFoundError("Product not found")
            variant_id = data.get("variant_id")
            if variant_id and not ProductCatalog.find_variant(product, variant_id):
                raise NotFoundError("Variant not found")

            quantity = data.get("quantity")
            final_quantity = data.get("final_quantity")
            if quantity is None:
                # A checkpoint without an explicit quantity records the size of the correction.
                current = StockLedger.current_stock(shop, product.id, variant_id).current_stock
                quantity = max(1, abs(final_quantity - current))

            movement = StockLedger.append(
                shop,
                product.id,
                data["kind"],
                quantity,
                origin=data["origin"],
                variant_id=variant_id,
                final_quantity=final_quantity,
                reason=data["reason"],
                created_by=request.user,
            )
        except CommerceError as exc:
            return error_response(exc)

        projection = StockLedger.current_stock(shop, product.id, variant_id)
        return Response({
            "movement": StockMovementSerializer(movement).data,
            "current_stock": projection.current_stock,
        }, status=status.HTTP_201_CREATED)
