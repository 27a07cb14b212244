from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from django.db import DatabaseError, transaction

from catalog.models import Product, ProductVariant
from catalog.services import ProductCatalog
from core.exceptions import BusinessRuleError, CommerceError, InternalError, NotFoundError, ValidationError
from coupon.models import Coupon
from coupon.services import CouponStore, CouponValidator
from courier.services import ShippingCostResolver, normalize_postal_code
from inventory.models import StockMovement
from inventory.services import StockKey, StockLedger

from .models import Cart, CartItem, Order, OrderItem, OrderShippingAddress
from .serializers import CreateOrderSerializer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    product: Product
    variant: Optional[ProductVariant]
    quantity: int
    price: int  # unit price, minor units

    @property
    def key(self) -> StockKey:
        return StockKey(self.product.id, self.variant.id if self.variant else None)

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


def unit_price(product, variant=None):
    if variant and variant.price is not None:
        return variant.price
    return product.price


def ensure_stock(shop, lines: List[OrderLine], levels=None):
    """
    Raise BusinessRuleError unless every stock track covers the quantity the
    lines request from it. Lines hitting the same track are added up.

    Without ``levels`` the check reads the ledger; with the locked levels of a
    commit it reads their running totals.
    """
    required: Dict[StockKey, int] = {}
    names: Dict[StockKey, str] = {}
    for line in lines:
        required[line.key] = required.get(line.key, 0) + line.quantity
        names.setdefault(line.key, line.product.name)

    for key, quantity in required.items():
        if levels is None:
            available = StockLedger.current_stock(shop, key.product_id, key.variant_id).current_stock
        else:
            available = levels[key].current_stock
        if available < quantity:
            raise BusinessRuleError(f"Insufficient stock for product {names[key]}")


class CartService:

    @staticmethod
    def _open_cart(shop, customer=None, cart_id=None):
        if cart_id:
            cart = Cart.objects.filter(shop=shop, id=cart_id).first()
            if not cart:
                raise NotFoundError("Cart not found")
            if cart.status != Cart.Status.ACTIVE:
                raise BusinessRuleError("Cart is not active")
            return cart
        if customer is not None:
            cart = Cart.objects.filter(shop=shop, customer=customer, status=Cart.Status.ACTIVE).first()
            if cart:
                return cart
        return Cart.objects.create(shop=shop, customer=customer)

    @staticmethod
    @transaction.atomic
    def add_to_cart(shop, product_id, variant_id=None, quantity=1, customer=None, cart_id=None):

        # 1. Validate product
        product = ProductCatalog.find_by_id(shop, product_id)
        if not product:
            raise NotFoundError("Product not found")
        if not product.is_orderable:
            raise BusinessRuleError(f"Product {product.name} is not available")

        # 2. Variant (optional)
        variant = None
        if variant_id:
            variant = ProductCatalog.find_variant(product, variant_id)
            if not variant:
                raise NotFoundError("Variant not found")

        # 3. Cart
        cart = CartService._open_cart(shop, customer=customer, cart_id=cart_id)

        # 4. Item, checked against the ledger with what is already in the cart
        price = unit_price(product, variant)
        item, _ = CartItem.objects.get_or_create(
            cart=cart,
            product=product,
            variant=variant,
            defaults={"quantity": 0, "price": price},
        )
        new_qty = item.quantity + quantity
        stock = StockLedger.current_stock(shop, product.id, variant.id if variant else None).current_stock
        if new_qty > stock:
            raise BusinessRuleError(f"Insufficient stock for product {product.name}")
        item.quantity = new_qty
        item.price = price
        item.save(update_fields=["quantity", "price"])

        return cart


class OrderService:

    @staticmethod
    def resolve_lines(shop, items) -> List[OrderLine]:
        """Turn validated item payloads into order lines; unit prices are taken as given."""
        lines = []
        for item in items:
            product = ProductCatalog.find_by_id(shop, item["product_id"])
            if not product:
                raise NotFoundError(f"Product {item['product_id']} not found")
            if not product.is_orderable:
                raise BusinessRuleError(f"Product {product.name} is not available")
            variant = None
            if item.get("variant_id"):
                variant = ProductCatalog.find_variant(product, item["variant_id"])
                if not variant:
                    raise NotFoundError(f"Variant {item['variant_id']} not found for product {product.name}")
            lines.append(OrderLine(product=product, variant=variant, quantity=item["quantity"], price=item["price"]))
        return lines

    @staticmethod
    def commit_order(
        shop,
        lines: List[OrderLine],
        order_values,
        origin,
        reason,
        coupon: Optional[Coupon] = None,
        cart: Optional[Cart] = None,
        shipping_address=None,
        created_by=None,
    ) -> Order:
        """
        Write an order, its items and one OUT movement per item as a single unit.

        Stock levels, the coupon and the cart are locked and checked again
        before anything is written; a failed check rolls everything back.
        """
        with transaction.atomic():
            levels = StockLedger.lock(shop, [line.key for line in lines])
            ensure_stock(shop, lines, levels)

            if coupon is not None:
                locked_coupon = Coupon.objects.select_for_update().get(pk=coupon.pk)
                check = CouponValidator.evaluate(locked_coupon, order_values["subtotal"])
                if not check.valid:
                    raise BusinessRuleError(check.message)

            locked_cart = None
            if cart is not None:
                locked_cart = Cart.objects.select_for_update().get(pk=cart.pk)
                if locked_cart.status != Cart.Status.ACTIVE:
                    raise BusinessRuleError("Cart is not active")

            order = Order.objects.create(shop=shop, coupon=coupon, cart=cart, **order_values)
            if shipping_address:
                OrderShippingAddress.objects.create(order=order, **shipping_address)

            for line in lines:
                OrderItem.objects.create(
                    order=order,
                    product=line.product,
                    variant=line.variant,
                    product_name=line.product.name,
                    price=line.price,
                    quantity=line.quantity,
                )
                StockLedger.append(
                    shop,
                    line.product.id,
                    StockMovement.Kind.OUT,
                    line.quantity,
                    origin=origin,
                    variant_id=line.key.variant_id,
                    reason=f"{reason} - Order {order.id}",
                    created_by=created_by,
                    order=order,
                )

            if coupon is not None:
                CouponStore.increment_used(coupon.pk)

            if locked_cart is not None:
                locked_cart.status = Cart.Status.CONVERTED
                locked_cart.save(update_fields=["status", "updated_at"])

        return order

    @staticmethod
    def get_order(shop, order_id) -> Order:
        order = (
            Order.objects.filter(shop=shop, id=order_id)
            .select_related("shipping_address", "coupon")
            .prefetch_related("items")
            .first()
        )
        if not order:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    def create_order(shop, payload) -> Order:
        """
        Place an online order for ``shop``.

        payload uses the checkout wire names:
        {"customer_id", "items": [{"product_id", "variant_id", "quantity", "price"}],
         "delivery_type", "delivery_option_id", "coupon_code", "shipping_address", "cart_id"}

        Everything up to the commit only reads. The commit either stores the
        order with all of its effects or stores nothing.
        """
        serializer = CreateOrderSerializer(data=payload)
        if not serializer.is_valid():
            raise ValidationError("Invalid order", errors=serializer.errors)
        data = serializer.validated_data

        # 1. Products and stock
        lines = OrderService.resolve_lines(shop, data["items"])
        ensure_stock(shop, lines)
        subtotal = sum(line.line_total for line in lines)

        # 2. Delivery cost, resolved before any lock is taken
        shipping_address = data.get("shipping_address")
        delivery = ShippingCostResolver.resolve(
            shop,
            data["delivery_type"],
            data["delivery_option_id"],
            shipping_address,
            [{"product": line.product, "quantity": line.quantity, "price": line.price} for line in lines],
            subtotal,
        )
        if shipping_address:
            shipping_address = dict(shipping_address, zip_code=normalize_postal_code(shipping_address["zip_code"]))

        # 3. Coupon
        coupon = None
        discount = 0
        if data.get("coupon_code"):
            result = CouponValidator.validate(shop, data["coupon_code"], subtotal)
            if not result.valid:
                if result.reason == "not_found":
                    raise NotFoundError(result.message)
                raise BusinessRuleError(result.message)
            coupon = result.coupon
            discount = result.discount_value

        # 4. Cart
        cart = None
        if data.get("cart_id"):
            cart = Cart.objects.filter(shop=shop, id=data["cart_id"]).first()
            if not cart:
                raise NotFoundError("Cart not found")
            if cart.status != Cart.Status.ACTIVE:
                raise BusinessRuleError("Cart is not active")

        order_values = {
            "customer": data.get("customer"),
            "channel": Order.Channel.ONLINE,
            "status": Order.Status.PENDING,
            "payment_status": Order.PaymentStatus.PENDING,
            "subtotal": subtotal,
            "discount": discount,
            "shipping_cost": delivery.price,
            "total": subtotal - discount + delivery.price,
            "delivery_type": delivery.delivery_type,
            "delivery_option_id": delivery.option_id,
        }

        # 5. Commit
        try:
            order = OrderService.commit_order(
                shop,
                lines,
                order_values,
                origin=StockMovement.Origin.ORDER,
                reason="Online sale",
                coupon=coupon,
                cart=cart,
                shipping_address=shipping_address,
            )
        except CommerceError:
            raise
        except DatabaseError as exc:
            logger.exception("Order commit failed shop=%s", shop.pk)
            raise InternalError() from exc

        logger.info("Order %s committed shop=%s total=%s items=%s", order.id, shop.pk, order.total, len(lines))
        return OrderService.get_order(shop, order.id)

    @staticmethod
    def cancel_order(shop, order_id, reason="", actor=None) -> Order:
        """Cancel an order and return its items to stock with compensating IN movements."""
        try:
            with transaction.atomic():
                order = Order.objects.select_for_update().filter(shop=shop, id=order_id).first()
                if not order:
                    raise NotFoundError("Order not found")
                if order.status == Order.Status.CANCELLED:
                    raise BusinessRuleError("Order is already cancelled")
                if order.status == Order.Status.DELIVERED:
                    raise BusinessRuleError("Delivered orders cannot be cancelled")

                note = f"Order {order.id} cancelled"
                if reason:
                    note = f"{note}: {reason}"
                for item in order.items.all():
                    if item.product_id is None:
                        continue
                    StockLedger.append(
                        shop,
                        item.product_id,
                        StockMovement.Kind.IN,
                        item.quantity,
                        origin=StockMovement.Origin.ORDER_CANCELLATION,
                        variant_id=item.variant_id,
                        reason=note[:255],
                        created_by=actor,
                        order=order,
                    )

                order.status = Order.Status.CANCELLED
                if order.payment_status == Order.PaymentStatus.PAID:
                    order.payment_status = Order.PaymentStatus.REFUNDED
                order.save(update_fields=["status", "payment_status", "updated_at"])
        except CommerceError:
            raise
        except DatabaseError as exc:
            logger.exception("Order cancellation failed shop=%s order=%s", shop.pk, order_id)
            raise InternalError() from exc

        logger.info("Order %s cancelled shop=%s", order_id, shop.pk)
        return OrderService.get_order(shop, order_id)
