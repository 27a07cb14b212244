from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from django.db.models import F

from .models import Coupon, normalize_code


@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    message: str
    reason: Optional[str] = None  # not_found | inactive | expired | exhausted | below_minimum
    discount_type: Optional[str] = None
    discount_value: int = 0
    final_price: Optional[int] = None
    coupon: Optional[Coupon] = None


def format_amount(minor_units):
    return f"{minor_units / 100:.2f}"


class CouponStore:

    @staticmethod
    def find_by_code(shop, code):
        code = normalize_code(code)
        if not code:
            return None
        return Coupon.objects.filter(shop=shop, code=code).first()

    @staticmethod
    def increment_used(coupon_id):
        Coupon.objects.filter(id=coupon_id).update(used_count=F("used_count") + 1)


class CouponValidator:
    """Checkout coupon rules. Checks run in a fixed order and the first failure wins."""

    @staticmethod
    def evaluate(coupon, subtotal, now=None) -> CouponValidation:
        if coupon is None:
            return CouponValidation(valid=False, reason="not_found", message="Coupon not found.")
        if not coupon.active:
            return CouponValidation(valid=False, reason="inactive", message="Coupon is inactive.", coupon=coupon)
        if coupon.is_expired(now):
            return CouponValidation(valid=False, reason="expired", message="Coupon has expired.", coupon=coupon)
        if coupon.is_exhausted():
            return CouponValidation(
                valid=False, reason="exhausted", message="Coupon usage limit reached.", coupon=coupon
            )
        if coupon.min_value and subtotal < coupon.min_value:
            return CouponValidation(
                valid=False,
                reason="below_minimum",
                message=f"Order minimum not reached. Minimum: {format_amount(coupon.min_value)}",
                coupon=coupon,
            )

        if coupon.type == Coupon.Type.PERCENT:
            discount = min(subtotal, subtotal * coupon.value // 100)
        else:
            discount = min(subtotal, coupon.value)

        return CouponValidation(
            valid=True,
            message="Coupon applied successfully.",
            discount_type=coupon.type,
            discount_value=discount,
            final_price=subtotal - discount,
            coupon=coupon,
        )

    @staticmethod
    def validate(shop, code, subtotal, now=None) -> CouponValidation:
        return CouponValidator.evaluate(CouponStore.find_by_code(shop, code), subtotal, now=now)
