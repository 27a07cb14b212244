from __future__ import annotations

import logging
from typing import List

from django.db import DatabaseError, transaction

from catalog.services import ProductCatalog
from core.exceptions import BusinessRuleError, CommerceError, InternalError, NotFoundError, ValidationError
from coupon.services import CouponValidator
from inventory.models import StockMovement
from inventory.services import StockLedger
from order.models import Order
from order.services import OrderLine, OrderService, ensure_stock, unit_price

from .models import PhysicalSale, PosCart, PosCartItem

logger = logging.getLogger(__name__)


def distribute_discount(subtotals: List[int], discount: int) -> List[int]:
    """
    Split a cart-level discount over its lines in proportion to each line's
    subtotal. Every share is rounded half up on its own, so the shares can
    differ from ``discount`` by a few minor units in total.
    """
    total = sum(subtotals)
    if total <= 0 or discount <= 0:
        return [0 for _ in subtotals]
    return [(2 * discount * subtotal + total) // (2 * total) for subtotal in subtotals]


class PhysicalSaleService:

    @staticmethod
    def _seller_cart(shop, seller, cart_id, lock=False) -> PosCart:
        qs = PosCart.objects.filter(shop=shop, id=cart_id)
        if lock:
            qs = qs.select_for_update()
        cart = qs.first()
        if not cart:
            raise NotFoundError("Cart not found")
        if cart.seller_id != seller.pk:
            raise BusinessRuleError("Cart does not belong to this seller")
        if cart.status != PosCart.Status.ACTIVE:
            raise BusinessRuleError("Cart is not active")
        return cart

    @staticmethod
    def _item_state(cart):
        return list(cart.items.order_by("id").values_list("id", "quantity", "price", "discount"))

    @staticmethod
    def cart_subtotal(cart) -> int:
        return sum(item.net_total for item in cart.items.all())

    @staticmethod
    def create_cart(shop, seller, customer=None) -> PosCart:
        return PosCart.objects.create(shop=shop, seller=seller, customer=customer)

    @staticmethod
    @transaction.atomic
    def add_item(shop, seller, cart_id, product_id, variant_id=None, quantity=1, price=None, discount=0) -> PosCart:
        cart = PhysicalSaleService._seller_cart(shop, seller, cart_id, lock=True)

        product = ProductCatalog.find_by_id(shop, product_id)
        if not product:
            raise NotFoundError("Product not found")
        variant = None
        if variant_id:
            variant = ProductCatalog.find_variant(product, variant_id)
            if not variant:
                raise NotFoundError("Variant not found")

        price = unit_price(product, variant) if price is None else price
        item, _ = PosCartItem.objects.get_or_create(
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
        item.discount = item.discount + discount
        if item.discount > item.gross_total:
            raise ValidationError("Item discount cannot exceed the item total")
        item.save(update_fields=["quantity", "price", "discount"])
        return cart

    @staticmethod
    @transaction.atomic
    def update_item_quantity(shop, seller, cart_id, product_id, variant_id=None, quantity=1) -> PosCart:
        """Set the quantity of a cart line; zero removes the line."""
        cart = PhysicalSaleService._seller_cart(shop, seller, cart_id, lock=True)

        item = (
            cart.items.select_related("product")
            .filter(product_id=product_id, variant_id=variant_id)
            .first()
        )
        if not item:
            raise NotFoundError("Item not found in cart")

        if quantity == 0:
            item.delete()
            return cart

        stock = StockLedger.current_stock(shop, item.product_id, variant_id).current_stock
        if quantity > stock:
            raise BusinessRuleError(f"Insufficient stock for product {item.product.name}")
        item.quantity = quantity
        if item.discount > item.gross_total:
            raise ValidationError("Item discount cannot exceed the item total")
        item.save(update_fields=["quantity"])
        return cart

    @staticmethod
    @transaction.atomic
    def apply_discount(shop, seller, cart_id, coupon_code=None, discount_amount=None) -> PosCart:
        """Attach a coupon or a manual amount as the cart-level discount."""
        cart = PhysicalSaleService._seller_cart(shop, seller, cart_id, lock=True)
        subtotal = PhysicalSaleService.cart_subtotal(cart)

        if coupon_code:
            result = CouponValidator.validate(shop, coupon_code, subtotal)
            if not result.valid:
                if result.reason == "not_found":
                    raise NotFoundError(result.message)
                raise BusinessRuleError(result.message)
            cart.coupon = result.coupon
            cart.discount_amount = result.discount_value
        elif discount_amount is not None:
            if discount_amount < 0:
                raise ValidationError("discount_amount cannot be negative")
            cart.coupon = None
            cart.discount_amount = min(discount_amount, subtotal)
        else:
            raise ValidationError("Provide coupon_code or discount_amount")

        cart.save(update_fields=["coupon", "discount_amount", "updated_at"])
        return cart

    @staticmethod
    def finalize_sale(shop, seller, cart_id, payment_method=Order.PaymentMethod.CASH) -> Order:
        """
        Turn a seller's counter cart into a completed, paid order.

        Stock is taken with physical_sale movements, each item gets its
        PhysicalSale row carrying its share of the cart discount, and the cart
        is converted, all in one transaction. The cart row is locked before its
        items are read, so item changes wait for the sale to finish.
        """
        try:
            with transaction.atomic():
                locked_cart = PhysicalSaleService._seller_cart(shop, seller, cart_id, lock=True)
                items = list(locked_cart.items.select_related("product", "variant").order_by("id"))
                if not items:
                    raise BusinessRuleError("Cart is empty")

                lines = [
                    OrderLine(product=item.product, variant=item.variant, quantity=item.quantity, price=item.price)
                    for item in items
                ]
                ensure_stock(shop, lines)

                subtotal = sum(item.net_total for item in items)
                coupon = locked_cart.coupon
                if coupon is not None:
                    result = CouponValidator.evaluate(coupon, subtotal)
                    if not result.valid:
                        raise BusinessRuleError(result.message)
                    discount = result.discount_value
                else:
                    discount = min(locked_cart.discount_amount, subtotal)

                if PhysicalSaleService._item_state(locked_cart) != [
                    (item.id, item.quantity, item.price, item.discount) for item in items
                ]:
                    raise BusinessRuleError("Cart changed during checkout")

                order_values = {
                    "customer": locked_cart.customer,
                    "seller": seller,
                    "channel": Order.Channel.POS,
                    "status": Order.Status.COMPLETED,
                    "payment_status": Order.PaymentStatus.PAID,
                    "payment_method": payment_method,
                    "subtotal": subtotal,
                    "discount": discount,
                    "shipping_cost": 0,
                    "total": max(0, subtotal - discount),
                    "delivery_type": None,
                }
                order = OrderService.commit_order(
                    shop,
                    lines,
                    order_values,
                    origin=StockMovement.Origin.PHYSICAL_SALE,
                    reason="POS sale",
                    coupon=coupon,
                    created_by=seller,
                )

                shares = distribute_discount([item.gross_total for item in items], discount)
                for item, share in zip(items, shares):
                    item_discount = min(item.gross_total, item.discount + share)
                    PhysicalSale.objects.create(
                        shop=shop,
                        order=order,
                        cart=locked_cart,
                        product=item.product,
                        variant=item.variant,
                        seller=seller,
                        coupon=coupon,
                        quantity=item.quantity,
                        subtotal=item.gross_total,
                        discount_amount=item_discount,
                        total=item.gross_total - item_discount,
                    )

                locked_cart.status = PosCart.Status.CONVERTED
                locked_cart.save(update_fields=["status", "updated_at"])
        except CommerceError:
            raise
        except DatabaseError as exc:
            logger.exception("POS sale commit failed shop=%s cart=%s", shop.pk, cart_id)
            raise InternalError() from exc

        logger.info("POS sale %s committed shop=%s seller=%s total=%s", order.id, shop.pk, seller.pk, order.total)
        return OrderService.get_order(shop, order.id)
