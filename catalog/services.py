import uuid

from django.conf import settings

from .models import Product, ProductVariant


def _as_uuid(value):
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class ProductCatalog:

    @staticmethod
    def find_by_id(shop, product_id):
        """Product of ``shop`` with ``product_id``, or None (also for malformed ids)."""
        product_id = _as_uuid(product_id)
        if product_id is None:
            return None
        return Product.objects.filter(shop=shop, id=product_id).first()

    @staticmethod
    def find_variant(product, variant_id):
        variant_id = _as_uuid(variant_id)
        if variant_id is None:
            return None
        return ProductVariant.objects.filter(product=product, id=variant_id).first()

    @staticmethod
    def package_for(product):
        """Shipping package of one unit of ``product`` (kg / cm)."""
        defaults = settings.SHIPPING_DEFAULT_PACKAGE
        return {
            "weight": product.weight or defaults["weight"],
            "height": product.height or defaults["height"],
            "width": product.width or defaults["width"],
            "length": product.length or defaults["length"],
        }
