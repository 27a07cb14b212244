from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Product
from core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from coupon.models import Coupon
from inventory.models import StockMovement
from inventory.services import StockLedger
from order.models import Order
from order.services import ensure_stock
from shop.models import Shop

from .models import PhysicalSale, PosCart
from .services import PhysicalSaleService, distribute_discount

User = get_user_model()


class DistributeDiscountTests(TestCase):
    def test_shares_follow_line_subtotals(self):
        self.assertEqual(distribute_discount([2000, 3000], 1000), [400, 600])
        self.assertEqual(distribute_discount([333, 667], 100), [33, 67])

    def test_each_share_is_rounded_on_its_own(self):
        shares = distribute_discount([1, 1, 1], 10)
        self.assertEqual(shares, [3, 3, 3])
        self.assertEqual(sum(shares), 9)

    def test_nothing_to_distribute(self):
        self.assertEqual(distribute_discount([500, 500], 0), [0, 0])
        self.assertEqual(distribute_discount([0, 0], 100), [0, 0])
        self.assertEqual(distribute_discount([], 100), [])


class PhysicalSaleServiceTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="pos-seller", password="pass1234")
        self.other_seller = User.objects.create_user(username="pos-seller-2", password="pass1234")
        self.shop = Shop.objects.create(name="Counter Shop", owner=self.seller)
        self.soap = Product.objects.create(shop=self.shop, name="Soap", price=1000)
        self.towel = Product.objects.create(shop=self.shop, name="Towel", price=3000)
        StockLedger.append(self.shop, self.soap.id, StockMovement.Kind.IN, 10)
        StockLedger.append(self.shop, self.towel.id, StockMovement.Kind.IN, 5)

        self.cart = PhysicalSaleService.create_cart(self.shop, self.seller)
        PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.soap.id, quantity=2)
        PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.towel.id, quantity=1)

    def _stock(self, product):
        return StockLedger.current_stock(self.shop, product.id).current_stock

    def test_finalize_with_manual_discount(self):
        PhysicalSaleService.apply_discount(self.shop, self.seller, self.cart.id, discount_amount=1000)

        order = PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)

        self.assertEqual(order.channel, Order.Channel.POS)
        self.assertEqual(order.status, Order.Status.COMPLETED)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(order.payment_method, Order.PaymentMethod.CASH)
        self.assertIsNone(order.delivery_type)
        self.assertEqual((order.subtotal, order.discount, order.shipping_cost, order.total), (5000, 1000, 0, 4000))
        self.assertEqual(order.seller, self.seller)

        sales = list(PhysicalSale.objects.filter(order=order).order_by("id"))
        self.assertEqual([(s.subtotal, s.discount_amount, s.total) for s in sales], [(2000, 400, 1600), (3000, 600, 2400)])

        movements = StockMovement.objects.filter(order=order)
        self.assertEqual(movements.count(), 2)
        self.assertTrue(all(m.origin == StockMovement.Origin.PHYSICAL_SALE for m in movements))
        self.assertTrue(all(m.created_by == self.seller for m in movements))
        self.assertEqual(self._stock(self.soap), 8)
        self.assertEqual(self._stock(self.towel), 4)

        self.cart.refresh_from_db()
        self.assertEqual(self.cart.status, PosCart.Status.CONVERTED)

    def test_item_discount_reduces_subtotal(self):
        PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.soap.id, quantity=1, discount=500)

        order = PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)

        self.assertEqual(order.subtotal, 3000 + 3000 - 500)
        soap_sale = PhysicalSale.objects.get(order=order, product=self.soap)
        self.assertEqual((soap_sale.subtotal, soap_sale.discount_amount), (3000, 500))

    def test_item_discount_cannot_exceed_item_total(self):
        with self.assertRaises(ValidationError):
            PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.towel.id, quantity=1, discount=7000)

    def test_manual_discount_is_clamped_to_subtotal(self):
        cart = PhysicalSaleService.apply_discount(self.shop, self.seller, self.cart.id, discount_amount=99999)
        self.assertEqual(cart.discount_amount, 5000)

        order = PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)
        self.assertEqual(order.total, 0)

    def test_coupon_is_applied_and_counted(self):
        coupon = Coupon.objects.create(shop=self.shop, code="POS10", type=Coupon.Type.PERCENT, value=10, max_uses=3)
        cart = PhysicalSaleService.apply_discount(self.shop, self.seller, self.cart.id, coupon_code="pos10")
        self.assertEqual(cart.discount_amount, 500)

        order = PhysicalSaleService.finalize_sale(
            self.shop, self.seller, self.cart.id, payment_method=Order.PaymentMethod.PIX
        )

        self.assertEqual(order.coupon, coupon)
        self.assertEqual(order.discount, 500)
        self.assertEqual(order.payment_method, Order.PaymentMethod.PIX)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)
        self.assertTrue(all(s.coupon_id == coupon.id for s in PhysicalSale.objects.filter(order=order)))

    def test_unknown_coupon_is_not_found(self):
        with self.assertRaises(NotFoundError):
            PhysicalSaleService.apply_discount(self.shop, self.seller, self.cart.id, coupon_code="NOPE")

    def test_coupon_exhausted_before_finalize_blocks_sale(self):
        coupon = Coupon.objects.create(shop=self.shop, code="LAST", type=Coupon.Type.FIXED, value=300, max_uses=1)
        PhysicalSaleService.apply_discount(self.shop, self.seller, self.cart.id, coupon_code="LAST")
        Coupon.objects.filter(pk=coupon.pk).update(used_count=1)

        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)
        self.assertFalse(Order.objects.exists())

    def test_discount_needs_coupon_or_amount(self):
        with self.assertRaises(ValidationError):
            PhysicalSaleService.apply_discount(self.shop, self.seller, self.cart.id)

    def test_empty_cart_cannot_be_finalized(self):
        empty = PhysicalSaleService.create_cart(self.shop, self.seller)
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.finalize_sale(self.shop, self.seller, empty.id)

    def test_cart_of_another_seller_is_rejected(self):
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.finalize_sale(self.shop, self.other_seller, self.cart.id)
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.add_item(self.shop, self.other_seller, self.cart.id, self.soap.id)

    def test_converted_cart_cannot_be_finalized_twice(self):
        PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)
        self.assertEqual(Order.objects.count(), 1)

    def test_stock_sold_elsewhere_blocks_sale(self):
        StockLedger.append(self.shop, self.towel.id, StockMovement.Kind.ADJUST, 5, final_quantity=0)

        with self.assertRaises(BusinessRuleError) as ctx:
            PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)

        self.assertIn("Towel", ctx.exception.message)
        self.assertFalse(PhysicalSale.objects.exists())
        self.assertEqual(self._stock(self.soap), 10)
        self.cart.refresh_from_db()
        self.assertEqual(self.cart.status, PosCart.Status.ACTIVE)

    def test_add_item_checks_stock(self):
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.towel.id, quantity=5)

    def test_items_changed_during_checkout_abort_the_sale(self):
        def add_towel_then_check(shop, lines, levels=None):
            PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.towel.id, quantity=2)
            return ensure_stock(shop, lines, levels)

        with patch("pos.services.ensure_stock", side_effect=add_towel_then_check):
            with self.assertRaises(BusinessRuleError) as ctx:
                PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)

        self.assertEqual(ctx.exception.message, "Cart changed during checkout")
        self.assertFalse(Order.objects.exists())
        self.assertEqual(self._stock(self.towel), 5)
        self.cart.refresh_from_db()
        self.assertEqual(self.cart.status, PosCart.Status.ACTIVE)
        self.assertEqual(self.cart.items.get(product=self.towel).quantity, 1)

    def test_sale_sells_exactly_the_locked_cart(self):
        order = PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)

        sold = sorted((item.product_name, item.quantity) for item in order.items.all())
        in_cart = sorted((item.product.name, item.quantity) for item in self.cart.items.select_related("product"))
        self.assertEqual(sold, in_cart)

    def test_update_item_quantity_replaces_quantity(self):
        PhysicalSaleService.update_item_quantity(self.shop, self.seller, self.cart.id, self.soap.id, quantity=5)
        self.assertEqual(self.cart.items.get(product=self.soap).quantity, 5)

    def test_update_item_quantity_to_zero_removes_line(self):
        PhysicalSaleService.update_item_quantity(self.shop, self.seller, self.cart.id, self.soap.id, quantity=0)
        self.assertFalse(self.cart.items.filter(product=self.soap).exists())
        self.assertEqual(self.cart.items.count(), 1)

    def test_update_item_quantity_checks_ledger_stock(self):
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.update_item_quantity(self.shop, self.seller, self.cart.id, self.towel.id, quantity=6)
        self.assertEqual(self.cart.items.get(product=self.towel).quantity, 1)

    def test_update_item_quantity_requires_line_in_cart(self):
        lamp = Product.objects.create(shop=self.shop, name="Lamp", price=8000)
        with self.assertRaises(NotFoundError) as ctx:
            PhysicalSaleService.update_item_quantity(self.shop, self.seller, self.cart.id, lamp.id, quantity=1)
        self.assertEqual(ctx.exception.message, "Item not found in cart")

    def test_update_item_quantity_keeps_discount_within_total(self):
        PhysicalSaleService.add_item(self.shop, self.seller, self.cart.id, self.soap.id, quantity=1, discount=2500)
        with self.assertRaises(ValidationError):
            PhysicalSaleService.update_item_quantity(self.shop, self.seller, self.cart.id, self.soap.id, quantity=2)

    def test_update_item_quantity_respects_seller_and_status(self):
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.update_item_quantity(
                self.shop, self.other_seller, self.cart.id, self.soap.id, quantity=1
            )
        PhysicalSaleService.finalize_sale(self.shop, self.seller, self.cart.id)
        with self.assertRaises(BusinessRuleError):
            PhysicalSaleService.update_item_quantity(self.shop, self.seller, self.cart.id, self.soap.id, quantity=1)


class PosViewsTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="pos-api-seller", password="pass1234")
        self.shop = Shop.objects.create(name="Pos Api Shop", owner=self.seller)
        self.product = Product.objects.create(shop=self.shop, name="Pos Api Cup", price=1200)
        StockLedger.append(self.shop, self.product.id, StockMovement.Kind.IN, 4)
        self.headers = {"HTTP_X_STORE_ID": str(self.shop.id)}

    def test_requires_authentication(self):
        response = self.client.post("/pos/carts/", {}, format="json", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_counter_sale_flow(self):
        self.client.force_authenticate(user=self.seller)

        cart = self.client.post("/pos/carts/", {}, format="json", **self.headers)
        self.assertEqual(cart.status_code, status.HTTP_201_CREATED)
        cart_id = cart.data["id"]

        added = self.client.post(
            f"/pos/carts/{cart_id}/items/",
            {"product_id": str(self.product.id), "quantity": 3},
            format="json",
            **self.headers,
        )
        self.assertEqual(added.status_code, status.HTTP_200_OK)
        self.assertEqual(added.data["subtotal"], 3600)

        discounted = self.client.post(
            f"/pos/carts/{cart_id}/discount/", {"discount_amount": 600}, format="json", **self.headers
        )
        self.assertEqual(discounted.data["discount_amount"], 600)

        sale = self.client.post(
            f"/pos/carts/{cart_id}/finalize/", {"payment_method": "credit_card"}, format="json", **self.headers
        )
        self.assertEqual(sale.status_code, status.HTTP_201_CREATED)
        self.assertEqual(sale.data["channel"], "pos")
        self.assertEqual(sale.data["total"], 3000)
        self.assertEqual(len(sale.data["physical_sales"]), 1)
        self.assertEqual(sale.data["physical_sales"][0]["discount_amount"], 600)
        self.assertEqual(StockLedger.current_stock(self.shop, self.product.id).current_stock, 1)

    def test_overselling_is_a_conflict(self):
        self.client.force_authenticate(user=self.seller)
        cart = PhysicalSaleService.create_cart(self.shop, self.seller)
        response = self.client.post(
            f"/pos/carts/{cart.id}/items/",
            {"product_id": str(self.product.id), "quantity": 9},
            format="json",
            **self.headers,
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_seller_can_correct_and_remove_lines(self):
        self.client.force_authenticate(user=self.seller)
        cart = PhysicalSaleService.create_cart(self.shop, self.seller)
        PhysicalSaleService.add_item(self.shop, self.seller, cart.id, self.product.id, quantity=3)

        corrected = self.client.patch(
            f"/pos/carts/{cart.id}/items/",
            {"product_id": str(self.product.id), "quantity": 1},
            format="json",
            **self.headers,
        )
        self.assertEqual(corrected.status_code, status.HTTP_200_OK)
        self.assertEqual(corrected.data["items"][0]["quantity"], 1)
        self.assertEqual(corrected.data["subtotal"], 1200)

        removed = self.client.patch(
            f"/pos/carts/{cart.id}/items/",
            {"product_id": str(self.product.id), "quantity": 0},
            format="json",
            **self.headers,
        )
        self.assertEqual(removed.status_code, status.HTTP_200_OK)
        self.assertEqual(removed.data["items"], [])

    def test_only_shop_owner_can_sell(self):
        stranger = User.objects.create_user(username="pos-stranger", password="pass1234")
        self.client.force_authenticate(user=stranger)

        response = self.client.post("/pos/carts/", {}, format="json", **self.headers)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(PosCart.objects.exists())
