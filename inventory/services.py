from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from django.core.exceptions import ValidationError as ModelValidationError
from django.db import transaction

from core.exceptions import ValidationError

from .models import StockLevel, StockMovement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockKey:
    """One stock track: the base product (variant_id None) or one of its variants."""

    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None

    def sort_key(self) -> Tuple[str, str]:
        return (str(self.product_id), str(self.variant_id or ""))


@dataclass(frozen=True)
class StockProjection:
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    current_stock: int
    last_movement_at: Optional[datetime]


def apply_movement(total: int, kind: str, quantity: int, final_quantity: Optional[int] = None) -> int:
    """Running total after one movement. The result is not clamped."""
    if kind == StockMovement.Kind.ADJUST and final_quantity is not None:
        return final_quantity
    if kind == StockMovement.Kind.IN:
        return total + quantity
    if kind == StockMovement.Kind.OUT:
        return total - quantity
    if kind == StockMovement.Kind.ADJUST:
        # Without a checkpoint an adjustment is a relative addition.
        return total + quantity
    raise ValueError(f"Unknown movement kind {kind!r}")


def fold_movements(movements: Iterable) -> int:
    """Raw running total of ``movements``, which must already be in ledger order."""
    total = 0
    for movement in movements:
        total = apply_movement(total, movement.kind, movement.quantity, movement.final_quantity)
    return total


class StockLedger:

    @staticmethod
    def _movements_for(shop, product_id, variant_id=None):
        qs = StockMovement.objects.filter(shop=shop, product_id=product_id)
        if variant_id is None:
            return qs.filter(variant__isnull=True)
        return qs.filter(variant_id=variant_id)

    @staticmethod
    def _levels_for(shop, product_id, variant_id=None):
        qs = StockLevel.objects.filter(shop=shop, product_id=product_id)
        if variant_id is None:
            return qs.filter(variant__isnull=True)
        return qs.filter(variant_id=variant_id)

    @staticmethod
    def _fold_track(shop, product_id, variant_id=None) -> Tuple[int, int, Optional[datetime]]:
        movements = list(
            StockLedger._movements_for(shop, product_id, variant_id)
            .order_by("created_at", "id")
            .only("kind", "quantity", "final_quantity", "created_at")
        )
        last_movement_at = movements[-1].created_at if movements else None
        return fold_movements(movements), len(movements), last_movement_at

    @staticmethod
    def current_stock(shop, product_id, variant_id=None) -> StockProjection:
        """Stock of one track computed from the ledger itself."""
        raw_total, _, last_movement_at = StockLedger._fold_track(shop, product_id, variant_id)
        return StockProjection(
            product_id=product_id,
            variant_id=variant_id,
            current_stock=max(0, raw_total),
            last_movement_at=last_movement_at,
        )

    @staticmethod
    def cached_stock(shop, product_id, variant_id=None) -> StockProjection:
        level = StockLedger._levels_for(shop, product_id, variant_id).first()
        if level is None:
            return StockLedger.current_stock(shop, product_id, variant_id)
        return StockProjection(
            product_id=product_id,
            variant_id=variant_id,
            current_stock=level.current_stock,
            last_movement_at=level.last_movement_at,
        )

    @staticmethod
    def stocks_for_product(shop, product) -> List[StockProjection]:
        """Base track followed by one projection per variant."""
        projections = [StockLedger.current_stock(shop, product.id)]
        for variant in product.variants.order_by("created_at"):
            projections.append(StockLedger.current_stock(shop, product.id, variant.id))
        return projections

    @staticmethod
    def movements(shop, product_id, variant_id=None, limit=None):
        qs = StockLedger._movements_for(shop, product_id, variant_id).order_by("-created_at", "-id")
        if limit:
            qs = qs[:limit]
        return list(qs)

    @staticmethod
    def _lock_level(shop, product_id, variant_id=None) -> StockLevel:
        # Must run inside a transaction for the row lock to hold.
        level = StockLedger._levels_for(shop, product_id, variant_id).select_for_update().first()
        if level is not None:
            return level
        raw_total, count, last_movement_at = StockLedger._fold_track(shop, product_id, variant_id)
        level, _ = StockLevel.objects.get_or_create(
            shop=shop,
            product_id=product_id,
            variant_id=variant_id,
            defaults={
                "raw_total": raw_total,
                "movement_count": count,
                "last_movement_at": last_movement_at,
            },
        )
        return StockLevel.objects.select_for_update().get(pk=level.pk)

    @staticmethod
    def lock(shop, keys: Iterable[StockKey]) -> Dict[StockKey, StockLevel]:
        """
        Lock the level row of every key for the rest of the current transaction.

        Keys are locked in a fixed order so two commits touching the same
        products cannot deadlock each other.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("StockLedger.lock() must be called inside transaction.atomic()")
        locked = {}
        for key in sorted(set(keys), key=StockKey.sort_key):
            locked[key] = StockLedger._lock_level(shop, key.product_id, key.variant_id)
        return locked

    @staticmethod
    @transaction.atomic
    def append(
        shop,
        product_id,
        kind,
        quantity,
        origin=StockMovement.Origin.MANUAL,
        variant_id=None,
        final_quantity=None,
        reason="",
        created_by=None,
        order=None,
        created_at=None,
    ) -> StockMovement:
        """Record one movement and move the track's running total with it."""
        movement = StockMovement(
            shop=shop,
            product_id=product_id,
            variant_id=variant_id,
            kind=kind,
            quantity=quantity,
            final_quantity=final_quantity,
            origin=origin,
            reason=reason or "",
            created_by=created_by,
            order=order,
        )
        if created_at is not None:
            movement.created_at = created_at
        try:
            movement.clean()
        except ModelValidationError as exc:
            raise ValidationError(" ".join(exc.messages))

        level = StockLedger._lock_level(shop, product_id, variant_id)
        movement.save()

        if level.last_movement_at and movement.created_at < level.last_movement_at:
            # Back-dated entry: the running total has to be folded again in ledger order.
            level.raw_total, level.movement_count, level.last_movement_at = StockLedger._fold_track(
                shop, product_id, variant_id
            )
        else:
            level.raw_total = apply_movement(level.raw_total, kind, quantity, final_quantity)
            level.movement_count += 1
            level.last_movement_at = movement.created_at
        level.save(update_fields=["raw_total", "movement_count", "last_movement_at", "updated_at"])
        return movement

    @staticmethod
    @transaction.atomic
    def reconcile(shop, product_id, variant_id=None) -> StockLevel:
        """Rewrite the cached level of one track from the ledger when they disagree."""
        level = StockLedger._lock_level(shop, product_id, variant_id)
        raw_total, count, last_movement_at = StockLedger._fold_track(shop, product_id, variant_id)
        if (level.raw_total, level.movement_count, level.last_movement_at) != (raw_total, count, last_movement_at):
            logger.warning(
                "Stock level diverged from ledger shop=%s product=%s variant=%s cached=%s ledger=%s",
                shop.pk,
                product_id,
                variant_id,
                level.raw_total,
                raw_total,
            )
            level.raw_total = raw_total
            level.movement_count = count
            level.last_movement_at = last_movement_at
            level.save(update_fields=["raw_total", "movement_count", "last_movement_at", "updated_at"])
        return level
