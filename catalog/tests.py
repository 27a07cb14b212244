from django.db import IntegrityError
from django.test import TestCase, override_settings

from catalog.models import Product, ProductVariant
from catalog.services import ProductCatalog
from shop.models import Shop


class CatalogModelTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="SKU Shop")

    def test_product_sku_is_auto_generated(self):
        product = Product.objects.create(shop=self.shop, name="Wireless Earbuds", price=19900)
        self.assertTrue(product.sku.startswith("WIRELESSEARB-"))

    def test_explicit_sku_is_kept(self):
        product = Product.objects.create(shop=self.shop, name="Cable", sku="CBL-1", price=900)
        self.assertEqual(product.sku, "CBL-1")

    def test_sku_is_unique_per_shop(self):
        Product.objects.create(shop=self.shop, name="Cable", sku="CBL-1", price=900)
        Product.objects.create(shop=Shop.objects.create(name="Other SKU Shop"), name="Cable", sku="CBL-1", price=900)
        with self.assertRaises(IntegrityError):
            Product.objects.create(shop=self.shop, name="Cable copy", sku="CBL-1", price=900)

    def test_only_active_products_are_orderable(self):
        product = Product.objects.create(shop=self.shop, name="Draft Lamp", status=Product.Status.DRAFT)
        self.assertFalse(product.is_orderable)
        product.status = Product.Status.ACTIVE
        self.assertTrue(product.is_orderable)


class ProductCatalogTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Catalog Shop")
        self.other_shop = Shop.objects.create(name="Other Catalog Shop")
        self.product = Product.objects.create(shop=self.shop, name="Desk", price=45000, weight=12.5, height=80)
        self.variant = ProductVariant.objects.create(product=self.product, variant_name="Oak", price=49000)

    def test_find_by_id_is_scoped_to_shop(self):
        self.assertEqual(ProductCatalog.find_by_id(self.shop, self.product.id), self.product)
        self.assertEqual(ProductCatalog.find_by_id(self.shop, str(self.product.id)), self.product)
        self.assertIsNone(ProductCatalog.find_by_id(self.other_shop, self.product.id))

    def test_malformed_ids_find_nothing(self):
        self.assertIsNone(ProductCatalog.find_by_id(self.shop, "not-a-uuid"))
        self.assertIsNone(ProductCatalog.find_by_id(self.shop, None))
        self.assertIsNone(ProductCatalog.find_variant(self.product, "42"))

    def test_find_variant_requires_matching_product(self):
        chair = Product.objects.create(shop=self.shop, name="Chair", price=9000)
        self.assertEqual(ProductCatalog.find_variant(self.product, self.variant.id), self.variant)
        self.assertIsNone(ProductCatalog.find_variant(chair, self.variant.id))

    @override_settings(SHIPPING_DEFAULT_PACKAGE={"weight": 1.0, "height": 10, "width": 20, "length": 30})
    def test_package_falls_back_to_defaults(self):
        self.assertEqual(
            ProductCatalog.package_for(self.product),
            {"weight": 12.5, "height": 80, "width": 20, "length": 30},
        )
