from datetime import timedelta
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as ModelValidationError
from django.db import transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Product, ProductVariant
from core.exceptions import ValidationError
from shop.models import Shop

from .models import StockLevel, StockMovement
from .services import StockKey, StockLedger, apply_movement, fold_movements

User = get_user_model()

IN = StockMovement.Kind.IN
OUT = StockMovement.Kind.OUT
ADJUST = StockMovement.Kind.ADJUST


def _mv(kind, quantity, final_quantity=None):
    return SimpleNamespace(kind=kind, quantity=quantity, final_quantity=final_quantity)


class FoldTests(TestCase):
    def test_empty_ledger_folds_to_zero(self):
        self.assertEqual(fold_movements([]), 0)

    def test_in_and_out_are_added_and_subtracted(self):
        self.assertEqual(fold_movements([_mv(IN, 10), _mv(OUT, 3), _mv(IN, 2)]), 9)

    def test_adjust_with_final_quantity_replaces_running_total(self):
        self.assertEqual(fold_movements([_mv(IN, 10), _mv(ADJUST, 6, final_quantity=4), _mv(IN, 2)]), 6)

    def test_adjust_without_final_quantity_is_relative(self):
        self.assertEqual(fold_movements([_mv(IN, 10), _mv(ADJUST, 5)]), 15)

    def test_fold_is_not_clamped(self):
        self.assertEqual(fold_movements([_mv(IN, 2), _mv(OUT, 5)]), -3)

    def test_checkpoint_after_negative_total_restarts_from_final_quantity(self):
        self.assertEqual(fold_movements([_mv(OUT, 5), _mv(ADJUST, 1, final_quantity=0), _mv(IN, 1)]), 1)

    def test_unknown_kind_raises(self):
        with self.assertRaises(ValueError):
            apply_movement(0, "LOST", 1)


class StockLedgerTests(TestCase):
    def setUp(self):
        self.shop = Shop.objects.create(name="Ledger Shop")
        self.other_shop = Shop.objects.create(name="Other Ledger Shop")
        self.product = Product.objects.create(shop=self.shop, name="Ledger Mug", price=2500)
        self.variant = ProductVariant.objects.create(product=self.product, variant_name="Blue")

    def test_no_movements_means_zero_stock_and_no_timestamp(self):
        projection = StockLedger.current_stock(self.shop, self.product.id)
        self.assertEqual(projection.current_stock, 0)
        self.assertIsNone(projection.last_movement_at)

    def test_append_moves_projection_and_timestamp(self):
        StockLedger.append(self.shop, self.product.id, IN, 10)
        last = StockLedger.append(self.shop, self.product.id, OUT, 4)

        projection = StockLedger.current_stock(self.shop, self.product.id)
        self.assertEqual(projection.current_stock, 6)
        self.assertEqual(projection.last_movement_at, last.created_at)

    def test_projection_is_clamped_at_zero(self):
        StockLedger.append(self.shop, self.product.id, IN, 2)
        StockLedger.append(self.shop, self.product.id, OUT, 5)

        self.assertEqual(StockLedger.current_stock(self.shop, self.product.id).current_stock, 0)
        self.assertEqual(StockLedger.cached_stock(self.shop, self.product.id).current_stock, 0)

    def test_checkpoint_overrides_earlier_history(self):
        StockLedger.append(self.shop, self.product.id, IN, 50)
        StockLedger.append(self.shop, self.product.id, OUT, 7)
        StockLedger.append(self.shop, self.product.id, ADJUST, 3, final_quantity=12)
        StockLedger.append(self.shop, self.product.id, IN, 1)

        self.assertEqual(StockLedger.current_stock(self.shop, self.product.id).current_stock, 13)

    def test_base_and_variant_tracks_are_independent(self):
        StockLedger.append(self.shop, self.product.id, IN, 5)
        StockLedger.append(self.shop, self.product.id, IN, 8, variant_id=self.variant.id)

        self.assertEqual(StockLedger.current_stock(self.shop, self.product.id).current_stock, 5)
        self.assertEqual(StockLedger.current_stock(self.shop, self.product.id, self.variant.id).current_stock, 8)

    def test_tracks_are_scoped_to_shop(self):
        StockLedger.append(self.shop, self.product.id, IN, 5)
        self.assertEqual(StockLedger.current_stock(self.other_shop, self.product.id).current_stock, 0)

    def test_projection_is_idempotent(self):
        StockLedger.append(self.shop, self.product.id, IN, 9)
        first = StockLedger.current_stock(self.shop, self.product.id)
        second = StockLedger.current_stock(self.shop, self.product.id)
        self.assertEqual(first, second)
        self.assertEqual(StockMovement.objects.count(), 1)

    def test_rejects_non_positive_quantity(self):
        with self.assertRaises(ValidationError):
            StockLedger.append(self.shop, self.product.id, IN, 0)
        self.assertFalse(StockMovement.objects.exists())

    def test_rejects_final_quantity_outside_adjust(self):
        with self.assertRaises(ValidationError):
            StockLedger.append(self.shop, self.product.id, IN, 1, final_quantity=3)

    def test_movements_are_immutable(self):
        movement = StockLedger.append(self.shop, self.product.id, IN, 4)

        movement.quantity = 40
        with self.assertRaises(ModelValidationError):
            movement.save()
        with self.assertRaises(ModelValidationError):
            movement.delete()

        movement.refresh_from_db()
        self.assertEqual(movement.quantity, 4)

    def test_cached_level_follows_every_append(self):
        StockLedger.append(self.shop, self.product.id, IN, 10)
        StockLedger.append(self.shop, self.product.id, OUT, 2)
        StockLedger.append(self.shop, self.product.id, ADJUST, 1, final_quantity=20)

        level = StockLevel.objects.get(shop=self.shop, product=self.product, variant__isnull=True)
        self.assertEqual(level.raw_total, 20)
        self.assertEqual(level.movement_count, 3)
        self.assertEqual(
            StockLedger.cached_stock(self.shop, self.product.id),
            StockLedger.current_stock(self.shop, self.product.id),
        )

    def test_back_dated_movement_refolds_level(self):
        StockLedger.append(self.shop, self.product.id, IN, 5)
        StockLedger.append(
            self.shop,
            self.product.id,
            ADJUST,
            1,
            final_quantity=2,
            created_at=timezone.now() - timedelta(days=1),
        )

        # In ledger order the checkpoint comes first: 2 + 5.
        self.assertEqual(StockLedger.current_stock(self.shop, self.product.id).current_stock, 7)
        self.assertEqual(StockLedger.cached_stock(self.shop, self.product.id).current_stock, 7)

    def test_reconcile_repairs_diverged_level(self):
        StockLedger.append(self.shop, self.product.id, IN, 6)
        StockLevel.objects.filter(shop=self.shop, product=self.product).update(raw_total=99)

        with self.assertLogs("inventory.services", level="WARNING"):
            level = StockLedger.reconcile(self.shop, self.product.id)

        self.assertEqual(level.raw_total, 6)
        self.assertEqual(StockLedger.cached_stock(self.shop, self.product.id).current_stock, 6)

    def test_lock_returns_level_per_key(self):
        StockLedger.append(self.shop, self.product.id, IN, 3)
        keys = [StockKey(self.product.id, self.variant.id), StockKey(self.product.id)]
        with transaction.atomic():
            levels = StockLedger.lock(self.shop, keys)

        self.assertEqual(levels[StockKey(self.product.id)].current_stock, 3)
        self.assertEqual(levels[StockKey(self.product.id, self.variant.id)].current_stock, 0)

    def test_stocks_for_product_lists_base_then_variants(self):
        StockLedger.append(self.shop, self.product.id, IN, 1)
        StockLedger.append(self.shop, self.product.id, IN, 2, variant_id=self.variant.id)

        stocks = StockLedger.stocks_for_product(self.shop, self.product)
        self.assertEqual([(s.variant_id, s.current_stock) for s in stocks], [(None, 1), (self.variant.id, 2)])

    def test_movements_are_listed_newest_first(self):
        first = StockLedger.append(self.shop, self.product.id, IN, 1)
        second = StockLedger.append(self.shop, self.product.id, IN, 2)
        self.assertEqual([m.id for m in StockLedger.movements(self.shop, self.product.id)], [second.id, first.id])


class StockApiTests(APITestCase):
    def setUp(self):
        self.staff = User.objects.create_user(username="stock-staff", password="pass1234")
        self.shop = Shop.objects.create(name="Stock Api Shop", owner=self.staff)
        self.product = Product.objects.create(shop=self.shop, name="Api Lamp", price=9900)
        self.client.force_authenticate(user=self.staff)
        self.headers = {"HTTP_X_STORE_ID": str(self.shop.id)}

    def test_manual_in_movement_is_recorded(self):
        response = self.client.post(
            "/inventory/movements/",
            {"product_id": str(self.product.id), "kind": "IN", "quantity": 12, "reason": "Supplier delivery"},
            format="json",
            **self.headers,
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["current_stock"], 12)
        self.assertEqual(response.data["movement"]["origin"], "manual")
        self.assertEqual(StockMovement.objects.get().created_by, self.staff)

    def test_checkpoint_without_quantity_records_size_of_correction(self):
        StockLedger.append(self.shop, self.product.id, IN, 10)
        response = self.client.post(
            "/inventory/movements/",
            {"product_id": str(self.product.id), "kind": "ADJUST", "final_quantity": 4, "origin": "adjustment"},
            format="json",
            **self.headers,
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["current_stock"], 4)
        self.assertEqual(response.data["movement"]["quantity"], 6)

    def test_order_origins_cannot_be_recorded_by_hand(self):
        response = self.client.post(
            "/inventory/movements/",
            {"product_id": str(self.product.id), "kind": "OUT", "quantity": 1, "origin": "order"},
            format="json",
            **self.headers,
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(StockMovement.objects.exists())

    def test_stock_endpoint_reports_tracks(self):
        StockLedger.append(self.shop, self.product.id, IN, 3)
        response = self.client.get(f"/inventory/products/{self.product.id}/stock/", **self.headers)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["stocks"][0]["current_stock"], 3)

    def test_missing_store_header_is_rejected(self):
        response = self.client.get(f"/inventory/products/{self.product.id}/stock/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_shop_owner_can_record_movements(self):
        stranger = User.objects.create_user(username="stock-stranger", password="pass1234")
        self.client.force_authenticate(user=stranger)

        response = self.client.post(
            "/inventory/movements/",
            {"product_id": str(self.product.id), "kind": "IN", "quantity": 5},
            format="json",
            **self.headers,
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(StockMovement.objects.exists())

    def test_product_of_another_shop_is_not_found(self):
        other = Shop.objects.create(name="Elsewhere")
        response = self.client.get(
            f"/inventory/products/{self.product.id}/stock/", HTTP_X_STORE_ID=str(other.id)
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
