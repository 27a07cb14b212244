from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Product
from core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from order.models import Order
from shop.models import PickupPoint, Shop

from .models import CourierPartner
from .services import (
    HttpQuoteAdapter,
    LocalQuoteAdapter,
    ShippingCostResolver,
    ShippingGatewayError,
    ShippingItem,
    ShippingQuote,
    _adapter_for,
    to_minor_units,
    validate_postal_code,
)

MOCK_QUOTES = [
    {"option_id": "standard", "name": "Standard", "price": 1990, "delivery_min_days": 5, "delivery_max_days": 8},
    {"option_id": "express", "name": "Express", "price": 3490, "delivery_min_days": 1, "delivery_max_days": 1},
]

ITEMS = [ShippingItem(quantity=1, weight=0.3, height=4, width=12, length=17, insurance_value=5000)]


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


class PostalCodeTests(TestCase):
    def test_separators_are_stripped(self):
        self.assertEqual(validate_postal_code("01310-100"), "01310100")
        self.assertEqual(validate_postal_code(" 01310 100 "), "01310100")

    def test_wrong_length_or_letters_are_rejected(self):
        for value in ("0131010", "013101000", "ABCDE-123", "", None):
            with self.assertRaises(ValidationError):
                validate_postal_code(value)

    @override_settings(POSTAL_CODE_DIGITS=5)
    def test_digit_count_comes_from_settings(self):
        self.assertEqual(validate_postal_code("90210"), "90210")

    def test_decimal_prices_become_minor_units(self):
        self.assertEqual(to_minor_units("23.50"), 2350)
        self.assertEqual(to_minor_units("10.005"), 1001)
        self.assertEqual(to_minor_units(None), 0)


class ShippingQuoteTests(TestCase):
    def test_delivery_time_labels(self):
        self.assertEqual(ShippingQuote("1", "A", 100, delivery_min_days=3, delivery_max_days=5).delivery_time, "3 to 5 business days")
        self.assertEqual(ShippingQuote("1", "A", 100, delivery_min_days=1, delivery_max_days=1).delivery_time, "1 business day")
        self.assertEqual(ShippingQuote("1", "A", 100).delivery_time, "On request")

    def test_partner_without_api_url_uses_local_table(self):
        partner = CourierPartner.objects.create(name="Local", provider_code="local", priority=1)
        self.assertIsInstance(_adapter_for(partner), LocalQuoteAdapter)
        self.assertIsInstance(_adapter_for(None), LocalQuoteAdapter)

    @override_settings(SHIPPING_MOCK_QUOTES=MOCK_QUOTES)
    def test_quote_without_partner_uses_local_table(self):
        quotes = ShippingCostResolver.quote("01310-100", ITEMS)
        self.assertEqual([q.option_id for q in quotes], ["standard", "express"])
        self.assertEqual(quotes[0].price, 1990)

    def test_quote_rejects_malformed_destination(self):
        with self.assertRaises(ValidationError):
            ShippingCostResolver.quote("123", ITEMS)


@override_settings(SHIPPING_QUOTE_TIMEOUT=7)
class HttpQuoteAdapterTests(TestCase):
    def setUp(self):
        self.partner = CourierPartner.objects.create(
            name="Melhor Envio",
            provider_code="melhor_envio",
            api_base_url="https://carrier.example.com/api/v2/me",
            api_key="secret",
            origin_postal_code="01001-000",
            priority=1,
        )

    @patch("courier.services.requests.post")
    def test_quotes_are_parsed_and_errored_services_skipped(self, post):
        post.return_value = _response(payload=[
            {"id": 1, "name": "PAC", "price": "23.50", "delivery_range": {"min": 4, "max": 6}, "company": {"name": "Correios"}},
            {"id": 2, "name": "SEDEX", "custom_price": "41.10", "price": "45.00", "delivery_time": 2},
            {"id": 3, "name": "Jadlog", "error": "Service unavailable for this route"},
        ])

        quotes = ShippingCostResolver.quote("01310100", ITEMS)

        self.assertEqual([(q.option_id, q.price) for q in quotes], [("1", 2350), ("2", 4110)])
        self.assertEqual(quotes[0].carrier, "Correios")
        self.assertEqual(quotes[1].delivery_time, "2 business days")

        args, kwargs = post.call_args
        self.assertEqual(args[0], "https://carrier.example.com/api/v2/me/shipment/calculate")
        self.assertEqual(kwargs["timeout"], 7)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(kwargs["json"]["from"]["postal_code"], "01001000")
        self.assertEqual(kwargs["json"]["to"]["postal_code"], "01310100")
        self.assertEqual(kwargs["json"]["products"][0]["insurance_value"], 50.0)

    @patch("courier.services.requests.post", side_effect=requests.Timeout("slow"))
    def test_timeout_becomes_gateway_error(self, post):
        with self.assertRaises(ShippingGatewayError):
            HttpQuoteAdapter(self.partner).quote("01310100", ITEMS)

    @patch("courier.services.requests.post")
    def test_error_status_becomes_gateway_error(self, post):
        post.return_value = _response(status_code=503, payload={"message": "down"})
        with self.assertRaises(ShippingGatewayError):
            HttpQuoteAdapter(self.partner).quote("01310100", ITEMS)


@override_settings(SHIPPING_MOCK_QUOTES=MOCK_QUOTES)
class DeliveryCostTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Delivery Shop", free_shipping_min_total=20000)
        self.product = Product.objects.create(shop=self.shop, name="Delivery Vase", price=5000)
        self.point = PickupPoint.objects.create(
            shop=self.shop, name="Downtown", street="Rua A", number="10", city="Sao Paulo", state="SP"
        )
        self.lines = [{"product": self.product, "quantity": 1, "price": 5000}]
        self.address = {"zip_code": "01310-100"}

    def test_pickup_point_is_free(self):
        cost = ShippingCostResolver.resolve(
            self.shop, Order.DeliveryType.PICKUP_POINT, str(self.point.id), None, self.lines, 5000
        )
        self.assertEqual(cost.price, 0)
        self.assertEqual(cost.pickup_point, self.point)

    def test_inactive_pickup_point_is_rejected(self):
        self.point.is_active = False
        self.point.save()
        with self.assertRaises(BusinessRuleError):
            ShippingCostResolver.resolve(
                self.shop, Order.DeliveryType.PICKUP_POINT, str(self.point.id), None, self.lines, 5000
            )

    def test_pickup_point_of_another_shop_is_not_found(self):
        other = Shop.objects.create(name="Other Delivery Shop")
        foreign = PickupPoint.objects.create(shop=other, name="Far", street="Rua B", city="Rio", state="RJ")
        with self.assertRaises(NotFoundError):
            ShippingCostResolver.resolve(
                self.shop, Order.DeliveryType.PICKUP_POINT, str(foreign.id), None, self.lines, 5000
            )

    def test_shipping_uses_chosen_quote(self):
        cost = ShippingCostResolver.resolve(
            self.shop, Order.DeliveryType.SHIPPING, "express", self.address, self.lines, 5000
        )
        self.assertEqual((cost.option_id, cost.price), ("express", 3490))

    def test_free_shipping_threshold_forces_zero(self):
        cost = ShippingCostResolver.resolve(
            self.shop, Order.DeliveryType.SHIPPING, "express", self.address, self.lines, 20000
        )
        self.assertEqual(cost.price, 0)

    def test_unknown_option_is_rejected(self):
        with self.assertRaises(BusinessRuleError):
            ShippingCostResolver.resolve(
                self.shop, Order.DeliveryType.SHIPPING, "teleport", self.address, self.lines, 5000
            )

    def test_shipping_requires_address(self):
        with self.assertRaises(ValidationError):
            ShippingCostResolver.resolve(self.shop, Order.DeliveryType.SHIPPING, "standard", None, self.lines, 5000)


@override_settings(SHIPPING_MOCK_QUOTES=MOCK_QUOTES)
class DeliveryOptionsApiTests(APITestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Options Shop", free_shipping_min_total=10000)
        self.product = Product.objects.create(shop=self.shop, name="Options Plate", price=4000)
        PickupPoint.objects.create(shop=self.shop, name="Store", street="Rua C", city="Curitiba", state="PR")
        PickupPoint.objects.create(shop=self.shop, name="Closed", street="Rua D", city="Curitiba", state="PR", is_active=False)

    def _post(self, payload):
        return self.client.post(
            "/checkout/delivery-options/", payload, format="json", HTTP_X_STORE_ID=str(self.shop.id)
        )

    def test_lists_shipping_and_active_pickup_options(self):
        response = self._post({
            "destination_zip_code": "80010-000",
            "items": [{"product_id": str(self.product.id), "quantity": 1, "price": 4000}],
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o["price"] for o in response.data["shippingOptions"]], [1990, 3490])
        self.assertEqual([o["name"] for o in response.data["pickupOptions"]], ["Store"])
        self.assertEqual(response.data["pickupOptions"][0]["price"], 0)

    def test_free_shipping_applies_to_every_quote(self):
        response = self._post({
            "destination_zip_code": "80010000",
            "items": [{"product_id": str(self.product.id), "quantity": 3, "price": 4000}],
        })
        self.assertEqual([o["price"] for o in response.data["shippingOptions"]], [0, 0])

    def test_without_zip_code_only_pickup_is_offered(self):
        response = self._post({"items": [{"product_id": str(self.product.id), "quantity": 1, "price": 4000}]})
        self.assertEqual(response.data["shippingOptions"], [])
        self.assertEqual(len(response.data["pickupOptions"]), 1)

    def test_bad_zip_code_is_rejected(self):
        response = self._post({
            "destination_zip_code": "800",
            "items": [{"product_id": str(self.product.id), "quantity": 1, "price": 4000}],
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
