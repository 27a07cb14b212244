from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch
import threading

from django.contrib.auth import get_user_model
from django.db import DatabaseError, close_old_connections, connection
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Product, ProductVariant
from core.exceptions import BusinessRuleError, InternalError, NotFoundError, ValidationError
from coupon.models import Coupon
from inventory.models import StockMovement
from inventory.services import StockLedger
from shop.models import PickupPoint, Shop

from .models import Cart, CartItem, Order
from .services import CartService, OrderService

User = get_user_model()

MOCK_QUOTES = [
    {"option_id": "standard", "name": "Standard", "price": 1990, "delivery_min_days": 5, "delivery_max_days": 8},
]


def _stock(shop, product, variant=None):
    return StockLedger.current_stock(shop, product.id, variant.id if variant else None).current_stock


@override_settings(SHIPPING_MOCK_QUOTES=MOCK_QUOTES)
class OrderServiceTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Order Test Shop")
        self.product = Product.objects.create(shop=self.shop, name="Order Test Product", price=5000)
        self.variant = ProductVariant.objects.create(product=self.product, variant_name="Large", price=6000)
        self.pickup = PickupPoint.objects.create(
            shop=self.shop, name="Counter", street="Rua A", number="1", city="Sao Paulo", state="SP"
        )
        StockLedger.append(self.shop, self.product.id, StockMovement.Kind.IN, 10)
        StockLedger.append(self.shop, self.product.id, StockMovement.Kind.IN, 4, variant_id=self.variant.id)

    def _payload(self, **overrides):
        payload = {
            "items": [{"product_id": str(self.product.id), "quantity": 2, "price": 5000}],
            "delivery_type": "shipping",
            "delivery_option_id": "standard",
            "shipping_address": {"zip_code": "01310-100", "street": "Av. Paulista", "number": "1000"},
        }
        payload.update(overrides)
        return payload

    def _assert_nothing_written(self):
        self.assertFalse(Order.objects.exists())
        self.assertFalse(StockMovement.objects.filter(origin=StockMovement.Origin.ORDER).exists())
        self.assertEqual(_stock(self.shop, self.product), 10)

    def test_shipping_order_is_committed_with_its_movements(self):
        order = OrderService.create_order(self.shop, self._payload())

        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.subtotal, 10000)
        self.assertEqual(order.shipping_cost, 1990)
        self.assertEqual(order.total, 11990)
        self.assertEqual(order.delivery_option_id, "standard")
        self.assertEqual(order.shipping_address.zip_code, "01310100")
        self.assertEqual(order.items.count(), 1)

        movement = StockMovement.objects.get(order=order)
        self.assertEqual((movement.kind, movement.quantity, movement.origin), ("OUT", 2, "order"))
        self.assertIn(str(order.id), movement.reason)
        self.assertEqual(_stock(self.shop, self.product), 8)

    def test_every_item_gets_exactly_one_out_movement(self):
        order = OrderService.create_order(self.shop, self._payload(items=[
            {"product_id": str(self.product.id), "quantity": 1, "price": 5000},
            {"product_id": str(self.product.id), "variant_id": str(self.variant.id), "quantity": 3, "price": 6000},
        ]))

        self.assertEqual(order.items.count(), 2)
        self.assertEqual(StockMovement.objects.filter(order=order, kind="OUT").count(), 2)
        self.assertEqual(_stock(self.shop, self.product), 9)
        self.assertEqual(_stock(self.shop, self.product, self.variant), 1)

    def test_pickup_order_has_no_shipping_cost(self):
        order = OrderService.create_order(self.shop, self._payload(
            delivery_type="pickup_point", delivery_option_id=str(self.pickup.id), shipping_address=None
        ))
        self.assertEqual(order.shipping_cost, 0)
        self.assertEqual(order.total, 10000)
        self.assertEqual(order.delivery_type, Order.DeliveryType.PICKUP_POINT)

    def test_free_shipping_threshold(self):
        self.shop.free_shipping_min_total = 10000
        self.shop.save()
        order = OrderService.create_order(self.shop, self._payload())
        self.assertEqual(order.shipping_cost, 0)
        self.assertEqual(order.total, 10000)

    def test_coupon_discount_and_usage(self):
        coupon = Coupon.objects.create(shop=self.shop, code="TEN", type=Coupon.Type.PERCENT, value=10, max_uses=5)

        order = OrderService.create_order(self.shop, self._payload(coupon_code="ten"))

        self.assertEqual(order.discount, 1000)
        self.assertEqual(order.total, 10000 - 1000 + 1990)
        self.assertEqual(order.coupon, coupon)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)

    def test_full_percent_coupon_leaves_only_shipping(self):
        Coupon.objects.create(shop=self.shop, code="ALL", type=Coupon.Type.PERCENT, value=100)

        order = OrderService.create_order(self.shop, self._payload(coupon_code="ALL"))

        self.assertEqual(order.discount, order.subtotal)
        self.assertEqual(order.total, 1990)

    def test_unknown_coupon_rejects_order(self):
        with self.assertRaises(NotFoundError):
            OrderService.create_order(self.shop, self._payload(coupon_code="GHOST"))
        self._assert_nothing_written()

    def test_exhausted_coupon_rejects_order(self):
        coupon = Coupon.objects.create(
            shop=self.shop, code="ONCE", type=Coupon.Type.FIXED, value=500, max_uses=1, used_count=1
        )
        with self.assertRaises(BusinessRuleError):
            OrderService.create_order(self.shop, self._payload(coupon_code="ONCE"))
        self._assert_nothing_written()
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)

    def test_insufficient_stock_names_the_product(self):
        with self.assertRaises(BusinessRuleError) as ctx:
            OrderService.create_order(self.shop, self._payload(
                items=[{"product_id": str(self.product.id), "quantity": 11, "price": 5000}]
            ))
        self.assertEqual(ctx.exception.message, "Insufficient stock for product Order Test Product")
        self._assert_nothing_written()

    def test_lines_on_the_same_track_are_checked_together(self):
        with self.assertRaises(BusinessRuleError):
            OrderService.create_order(self.shop, self._payload(items=[
                {"product_id": str(self.product.id), "quantity": 6, "price": 5000},
                {"product_id": str(self.product.id), "quantity": 6, "price": 5000},
            ]))
        self._assert_nothing_written()

    def test_unknown_product_is_not_found(self):
        other_shop = Shop.objects.create(name="Foreign Shop")
        foreign = Product.objects.create(shop=other_shop, name="Foreign Product", price=100)
        with self.assertRaises(NotFoundError):
            OrderService.create_order(self.shop, self._payload(
                items=[{"product_id": str(foreign.id), "quantity": 1, "price": 100}]
            ))

    def test_inactive_product_is_rejected(self):
        self.product.status = Product.Status.ARCHIVED
        self.product.save()
        with self.assertRaises(BusinessRuleError):
            OrderService.create_order(self.shop, self._payload())

    def test_malformed_input_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.shop, self._payload(items=[]))
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.shop, self._payload(
                items=[{"product_id": str(self.product.id), "quantity": 0, "price": 5000}]
            ))
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.shop, self._payload(shipping_address=None))

    def test_bad_postal_code_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            OrderService.create_order(self.shop, self._payload(shipping_address={"zip_code": "12-3"}))
        self._assert_nothing_written()

    def test_unknown_delivery_option_is_rejected(self):
        with self.assertRaises(BusinessRuleError):
            OrderService.create_order(self.shop, self._payload(delivery_option_id="overnight"))

    def test_cart_is_converted(self):
        cart = Cart.objects.create(shop=self.shop)
        order = OrderService.create_order(self.shop, self._payload(cart_id=str(cart.id)))
        cart.refresh_from_db()
        self.assertEqual(cart.status, Cart.Status.CONVERTED)
        self.assertEqual(order.cart, cart)

    def test_converted_cart_cannot_be_ordered_again(self):
        cart = Cart.objects.create(shop=self.shop, status=Cart.Status.CONVERTED)
        with self.assertRaises(BusinessRuleError):
            OrderService.create_order(self.shop, self._payload(cart_id=str(cart.id)))
        self._assert_nothing_written()

    def test_failure_during_commit_rolls_everything_back(self):
        coupon = Coupon.objects.create(shop=self.shop, code="TEN", type=Coupon.Type.PERCENT, value=10)
        cart = Cart.objects.create(shop=self.shop)

        with patch("order.services.CouponStore.increment_used", side_effect=DatabaseError("disk full")):
            with self.assertLogs("order.services", level="ERROR"):
                with self.assertRaises(InternalError) as ctx:
                    OrderService.create_order(self.shop, self._payload(coupon_code="TEN", cart_id=str(cart.id)))

        self.assertNotIn("disk full", ctx.exception.message)
        self._assert_nothing_written()
        cart.refresh_from_db()
        coupon.refresh_from_db()
        self.assertEqual(cart.status, Cart.Status.ACTIVE)
        self.assertEqual(coupon.used_count, 0)

    def test_cancel_returns_stock_with_compensating_movements(self):
        order = OrderService.create_order(self.shop, self._payload())
        Order.objects.filter(pk=order.pk).update(payment_status=Order.PaymentStatus.PAID)

        cancelled = OrderService.cancel_order(self.shop, order.id, reason="customer request")

        self.assertEqual(cancelled.status, Order.Status.CANCELLED)
        self.assertEqual(cancelled.payment_status, Order.PaymentStatus.REFUNDED)
        movement = StockMovement.objects.get(order=order, origin=StockMovement.Origin.ORDER_CANCELLATION)
        self.assertEqual((movement.kind, movement.quantity), ("IN", 2))
        self.assertEqual(_stock(self.shop, self.product), 10)

    def test_cancel_is_not_repeatable(self):
        order = OrderService.create_order(self.shop, self._payload())
        OrderService.cancel_order(self.shop, order.id)
        with self.assertRaises(BusinessRuleError):
            OrderService.cancel_order(self.shop, order.id)
        self.assertEqual(_stock(self.shop, self.product), 10)

    def test_delivered_order_cannot_be_cancelled(self):
        order = OrderService.create_order(self.shop, self._payload())
        Order.objects.filter(pk=order.pk).update(status=Order.Status.DELIVERED)
        with self.assertRaises(BusinessRuleError):
            OrderService.cancel_order(self.shop, order.id)


class CartServiceTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Cart Shop")
        self.customer = User.objects.create_user(username="cart-buyer", password="pass1234")
        self.product = Product.objects.create(shop=self.shop, name="Cart Candle", price=1500)
        StockLedger.append(self.shop, self.product.id, StockMovement.Kind.IN, 3)

    def test_add_to_cart_reuses_active_cart_and_merges_quantity(self):
        cart = CartService.add_to_cart(self.shop, self.product.id, quantity=1, customer=self.customer)
        again = CartService.add_to_cart(self.shop, self.product.id, quantity=2, customer=self.customer)

        self.assertEqual(cart.id, again.id)
        item = CartItem.objects.get(cart=cart)
        self.assertEqual((item.quantity, item.price), (3, 1500))

    def test_add_to_cart_checks_ledger_stock(self):
        CartService.add_to_cart(self.shop, self.product.id, quantity=3, customer=self.customer)
        with self.assertRaises(BusinessRuleError):
            CartService.add_to_cart(self.shop, self.product.id, quantity=1, customer=self.customer)
        self.assertEqual(CartItem.objects.get().quantity, 3)


@override_settings(SHIPPING_MOCK_QUOTES=MOCK_QUOTES)
class OrderViewsTests(APITestCase):
    def setUp(self):
        self.staff = User.objects.create_user(username="order-staff", password="pass1234")
        self.shop = Shop.objects.create(name="Order Api Shop", owner=self.staff)
        self.product = Product.objects.create(shop=self.shop, name="Order Api Product", price=2500)
        StockLedger.append(self.shop, self.product.id, StockMovement.Kind.IN, 5)
        self.headers = {"HTTP_X_STORE_ID": str(self.shop.id)}
        self.payload = {
            "items": [{"product_id": str(self.product.id), "quantity": 2, "price": 2500}],
            "delivery_type": "shipping",
            "delivery_option_id": "standard",
            "shipping_address": {"zip_code": "01310100"},
        }

    def test_guest_can_place_order(self):
        response = self.client.post("/orders/", self.payload, format="json", **self.headers)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["store_id"], str(self.shop.id))
        self.assertIsNone(response.data["customer_id"])
        self.assertEqual(response.data["total"], 5000 + 1990)
        self.assertEqual(len(response.data["items"]), 1)
        self.assertEqual(response.data["shipping_address"]["zip_code"], "01310100")

    def test_insufficient_stock_is_a_conflict(self):
        self.payload["items"][0]["quantity"] = 6
        response = self.client.post("/orders/", self.payload, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "business_rule")

    def test_invalid_payload_lists_field_errors(self):
        response = self.client.post("/orders/", {"items": []}, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("items", response.data["errors"])

    def test_unknown_store_is_not_found(self):
        response = self.client.post(
            "/orders/", self.payload, format="json", HTTP_X_STORE_ID="1f0e1b4e-7a36-4a59-9d8c-0c5b4b1b2a10"
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_staff_can_read_and_cancel_order(self):
        created = self.client.post("/orders/", self.payload, format="json", **self.headers)
        self.client.force_authenticate(user=self.staff)

        detail = self.client.get(f"/orders/{created.data['id']}/", **self.headers)
        self.assertEqual(detail.status_code, status.HTTP_200_OK)

        cancelled = self.client.post(f"/orders/{created.data['id']}/cancel/", {}, format="json", **self.headers)
        self.assertEqual(cancelled.status_code, status.HTTP_200_OK)
        self.assertEqual(cancelled.data["status"], "cancelled")

    def test_only_shop_owner_can_read_or_cancel_order(self):
        created = self.client.post("/orders/", self.payload, format="json", **self.headers)
        stranger = User.objects.create_user(username="order-stranger", password="pass1234")
        self.client.force_authenticate(user=stranger)

        detail = self.client.get(f"/orders/{created.data['id']}/", **self.headers)
        self.assertEqual(detail.status_code, status.HTTP_404_NOT_FOUND)

        cancelled = self.client.post(f"/orders/{created.data['id']}/cancel/", {}, format="json", **self.headers)
        self.assertEqual(cancelled.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(Order.objects.get().status, Order.Status.PENDING)

    def test_invalid_cancellation_uses_error_body(self):
        created = self.client.post("/orders/", self.payload, format="json", **self.headers)
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            f"/orders/{created.data['id']}/cancel/", {"reason": "x" * 201}, format="json", **self.headers
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertIn("reason", response.data["errors"])

    def test_add_to_cart_endpoint(self):
        response = self.client.post(
            "/orders/cart/items/",
            {"product_id": str(self.product.id), "quantity": 2},
            format="json",
            **self.headers,
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["subtotal"], 5000)


class OrderConcurrencyTests(TransactionTestCase):
    reset_sequences = True

    def setUp(self):
        self.shop = Shop.objects.create(name="Concurrency Shop")
        self.product = Product.objects.create(shop=self.shop, name="Last Units", price=1000)
        self.pickup = PickupPoint.objects.create(
            shop=self.shop, name="Counter", street="Rua A", city="Sao Paulo", state="SP"
        )
        StockLedger.append(self.shop, self.product.id, StockMovement.Kind.IN, 5)

    def _attempt_order_create(self, barrier):
        close_old_connections()
        try:
            barrier.wait(timeout=5)
            order = OrderService.create_order(self.shop, {
                "items": [{"product_id": str(self.product.id), "quantity": 3, "price": 1000}],
                "delivery_type": "pickup_point",
                "delivery_option_id": str(self.pickup.id),
            })
            return ("ok", str(order.id))
        except Exception as exc:
            return ("err", exc)
        finally:
            close_old_connections()

    def test_parallel_orders_only_one_succeeds_for_limited_stock(self):
        barrier = threading.Barrier(2)
        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(self._attempt_order_create, barrier) for _ in range(2)]
            results = [f.result(timeout=20) for f in futures]

        successes = [value for state, value in results if state == "ok"]
        errors = [value for state, value in results if state == "err"]
        self.assertEqual(len(successes), 1, results)
        self.assertEqual(len(errors), 1, results)

        # SQLite has no row locks: the losing writer fails on the table lock
        # instead of reaching the stock recheck.
        if connection.vendor == "sqlite":
            self.assertIsInstance(errors[0], (BusinessRuleError, InternalError), results)
        else:
            self.assertIsInstance(errors[0], BusinessRuleError, results)
            self.assertIn("Insufficient stock", errors[0].message)

        self.assertEqual(Order.objects.count(), 1)
        remaining = StockLedger.current_stock(self.shop, self.product.id).current_stock
        self.assertEqual(remaining, 2)
        self.assertEqual(StockLedger.cached_stock(self.shop, self.product.id).current_stock, 2)
