from datetime import timedelta

from django.core.exceptions import ValidationError as ModelValidationError
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from shop.models import Shop

from .models import Coupon
from .services import CouponStore, CouponValidator


class CouponValidatorTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Coupon Shop")

    def _coupon(self, **kwargs):
        values = {"shop": self.shop, "code": "SAVE10", "type": Coupon.Type.PERCENT, "value": 10}
        values.update(kwargs)
        return Coupon.objects.create(**values)

    def test_unknown_code_is_not_found(self):
        result = CouponValidator.validate(self.shop, "NOPE", 10000)
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "not_found")
        self.assertEqual(result.message, "Coupon not found.")

    def test_code_is_normalised_before_lookup(self):
        self._coupon()
        result = CouponValidator.validate(self.shop, "  save10 ", 10000)
        self.assertTrue(result.valid)

    def test_codes_are_scoped_to_shop(self):
        self._coupon()
        other = Shop.objects.create(name="Other Coupon Shop")
        self.assertEqual(CouponValidator.validate(other, "SAVE10", 10000).reason, "not_found")

    def test_inactive_coupon(self):
        self._coupon(active=False)
        result = CouponValidator.validate(self.shop, "SAVE10", 10000)
        self.assertEqual((result.valid, result.reason), (False, "inactive"))

    def test_coupon_expiring_now_is_expired(self):
        now = timezone.now()
        coupon = self._coupon(expires_at=now)
        result = CouponValidator.evaluate(coupon, 10000, now=now)
        self.assertEqual((result.valid, result.reason), (False, "expired"))

    def test_future_expiry_is_accepted(self):
        coupon = self._coupon(expires_at=timezone.now() + timedelta(days=1))
        self.assertTrue(CouponValidator.evaluate(coupon, 10000).valid)

    def test_exhausted_coupon(self):
        self._coupon(max_uses=3, used_count=3)
        result = CouponValidator.validate(self.shop, "SAVE10", 10000)
        self.assertEqual((result.valid, result.reason), (False, "exhausted"))
        self.assertEqual(result.message, "Coupon usage limit reached.")

    def test_minimum_not_reached_reports_minimum(self):
        self._coupon(min_value=5000)
        result = CouponValidator.validate(self.shop, "SAVE10", 4999)
        self.assertEqual((result.valid, result.reason), (False, "below_minimum"))
        self.assertEqual(result.message, "Order minimum not reached. Minimum: 50.00")

    def test_checks_run_in_order(self):
        coupon = self._coupon(active=False, expires_at=timezone.now() - timedelta(days=1), max_uses=1, used_count=1)
        self.assertEqual(CouponValidator.evaluate(coupon, 100).reason, "inactive")

        coupon.active = True
        self.assertEqual(CouponValidator.evaluate(coupon, 100).reason, "expired")

    def test_percent_discount_is_floored(self):
        self._coupon(value=15)
        result = CouponValidator.validate(self.shop, "SAVE10", 999)
        self.assertEqual(result.discount_value, 149)
        self.assertEqual(result.final_price, 850)
        self.assertEqual(result.discount_type, Coupon.Type.PERCENT)

    def test_fixed_discount_never_exceeds_total(self):
        self._coupon(type=Coupon.Type.FIXED, value=5000)
        result = CouponValidator.validate(self.shop, "SAVE10", 3000)
        self.assertEqual(result.discount_value, 3000)
        self.assertEqual(result.final_price, 0)

    def test_percent_discount_never_exceeds_total(self):
        coupon = Coupon(shop=self.shop, code="HUGE", type=Coupon.Type.PERCENT, value=150)
        result = CouponValidator.evaluate(coupon, 10000)
        self.assertTrue(result.valid)
        self.assertEqual(result.discount_value, 10000)
        self.assertEqual(result.final_price, 0)

    def test_percent_above_100_is_rejected(self):
        coupon = Coupon(shop=self.shop, code="HUGE", type=Coupon.Type.PERCENT, value=150)
        with self.assertRaises(ModelValidationError):
            coupon.full_clean()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                coupon.save()
        self.assertFalse(Coupon.objects.filter(code="HUGE").exists())

    def test_fixed_value_above_100_is_allowed(self):
        coupon = Coupon(shop=self.shop, code="BIGFIXED", type=Coupon.Type.FIXED, value=15000)
        coupon.full_clean()
        coupon.save()
        self.assertTrue(Coupon.objects.filter(code="BIGFIXED").exists())

    def test_increment_used_is_atomic_update(self):
        coupon = self._coupon()
        CouponStore.increment_used(coupon.id)
        CouponStore.increment_used(coupon.id)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 2)


class CouponApiTests(APITestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Coupon Api Shop")
        Coupon.objects.create(shop=self.shop, code="fixed5", type=Coupon.Type.FIXED, value=500)

    def test_validate_endpoint_returns_discount(self):
        response = self.client.post(
            "/coupons/validate/",
            {"code": "FIXED5", "order_total": 2000},
            format="json",
            HTTP_X_STORE_ID=str(self.shop.id),
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["discountValue"], 500)
        self.assertEqual(response.data["finalPrice"], 1500)

    def test_validate_endpoint_reports_invalid_coupon(self):
        response = self.client.post(
            "/coupons/validate/",
            {"code": "UNKNOWN", "order_total": 2000},
            format="json",
            HTTP_X_STORE_ID=str(self.shop.id),
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["valid"])
