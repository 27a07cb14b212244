from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status, permissions

from catalog.services import ProductCatalog
from core.exceptions import CommerceError, NotFoundError, ValidationError, error_response
from shop.tenancy import resolve_shop

from .serializers import DeliveryOptionsSerializer
from .services import get_delivery_options


class DeliveryOptionsView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = DeliveryOptionsSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationError("Invalid delivery options request", errors=serializer.errors))
        data = serializer.validated_data

        try:
            shop = resolve_shop(request)
            lines = []
            for item in data["items"]:
                product = ProductCatalog.find_by_id(shop, item["product_id"])
                if not product:
                    raise NotFoundError(f"Product {item['product_id']} not found")
                lines.append({"product": product, "quantity": item["quantity"], "price": item["price"]})
            options = get_delivery_options(shop, data.get("destination_zip_code"), lines)
        except CommerceError as exc:
            return error_response(exc)

        return Response(options, status=status.HTTP_200_OK)
