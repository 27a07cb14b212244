from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

import requests
from django.conf import settings
from rest_framework import status

from catalog.services import ProductCatalog
from core.exceptions import BusinessRuleError, InternalError, NotFoundError, ValidationError
from order.models import Order
from shop.models import PickupPoint

from .models import CourierPartner

logger = logging.getLogger(__name__)


class ShippingGatewayError(InternalError):
    """Raised when the carrier quote API is unreachable or answers with garbage."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "shipping_gateway_error"

    def __init__(self, message="Shipping quote service unavailable", **extra):
        super().__init__(message, **extra)


@dataclass(frozen=True)
class ShippingItem:
    quantity: int
    weight: float  # kg
    height: int  # cm
    width: int
    length: int
    insurance_value: int = 0  # minor units


@dataclass(frozen=True)
class ShippingQuote:
    option_id: str
    name: str
    price: int  # minor units
    carrier: str = ""
    delivery_min_days: Optional[int] = None
    delivery_max_days: Optional[int] = None

    @property
    def delivery_time(self) -> str:
        low, high = self.delivery_min_days, self.delivery_max_days
        if low is None and high is None:
            return "On request"
        if low is None or high is None or low == high:
            days = high if low is None else low
            return f"{days} business day" if days == 1 else f"{days} business days"
        return f"{low} to {high} business days"


@dataclass(frozen=True)
class DeliveryCost:
    delivery_type: str
    option_id: str
    price: int
    pickup_point: Optional[PickupPoint] = None
    quote: Optional[ShippingQuote] = None


def normalize_postal_code(value) -> str:
    return re.sub(r"[\s.\-]", "", str(value or ""))


def validate_postal_code(value) -> str:
    normalized = normalize_postal_code(value)
    if not (normalized.isdigit() and len(normalized) == settings.POSTAL_CODE_DIGITS):
        raise ValidationError("Invalid postal code")
    return normalized


def to_minor_units(value) -> int:
    try:
        amount = Decimal(str(value if value not in (None, "") else "0"))
    except InvalidOperation as exc:
        raise ShippingGatewayError() from exc
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class BaseQuoteAdapter:
    provider_code: str = "base"

    def __init__(self, courier: Optional[CourierPartner]):
        self.courier = courier

    def quote(self, destination: str, items: List[ShippingItem]) -> List[ShippingQuote]:  # pragma: no cover - interface
        raise NotImplementedError


class LocalQuoteAdapter(BaseQuoteAdapter):
    """Deterministic quote table for local/dev and for partners without an API."""

    provider_code = "local"

    def quote(self, destination: str, items: List[ShippingItem]) -> List[ShippingQuote]:
        carrier = self.courier.name if self.courier else "Local"
        return [
            ShippingQuote(
                option_id=str(row["option_id"]),
                name=row["name"],
                price=int(row["price"]),
                carrier=carrier,
                delivery_min_days=row.get("delivery_min_days"),
                delivery_max_days=row.get("delivery_max_days"),
            )
            for row in settings.SHIPPING_MOCK_QUOTES
        ]


class HttpQuoteAdapter(BaseQuoteAdapter):
    """Carrier aggregator speaking the ``/shipment/calculate`` quote API."""

    provider_code = "melhor_envio"

    def _payload(self, destination: str, items: List[ShippingItem]) -> Dict[str, Any]:
        return {
            "from": {"postal_code": normalize_postal_code(self.courier.origin_postal_code)},
            "to": {"postal_code": destination},
            "products": [
                {
                    "id": str(index),
                    "quantity": item.quantity,
                    "weight": item.weight,
                    "height": item.height,
                    "width": item.width,
                    "length": item.length,
                    "insurance_value": item.insurance_value / 100,
                }
                for index, item in enumerate(items, start=1)
            ],
        }

    def _parse(self, raw: Dict[str, Any]) -> ShippingQuote:
        delivery_range = raw.get("custom_delivery_range") or raw.get("delivery_range") or {}
        delivery_time = raw.get("custom_delivery_time") or raw.get("delivery_time")
        return ShippingQuote(
            option_id=str(raw.get("id")),
            name=str(raw.get("name") or ""),
            price=to_minor_units(raw.get("custom_price") or raw.get("price")),
            carrier=str((raw.get("company") or {}).get("name") or ""),
            delivery_min_days=delivery_range.get("min", delivery_time),
            delivery_max_days=delivery_range.get("max", delivery_time),
        )

    def quote(self, destination: str, items: List[ShippingItem]) -> List[ShippingQuote]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.courier.api_key:
            headers["Authorization"] = f"Bearer {self.courier.api_key}"

        try:
            response = requests.post(
                f"{self.courier.api_base_url.rstrip('/')}/shipment/calculate",
                json=self._payload(destination, items),
                headers=headers,
                timeout=settings.SHIPPING_QUOTE_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.warning("Shipping quote request failed courier=%s: %s", self.courier.provider_code, exc)
            raise ShippingGatewayError() from exc

        if not response.ok:
            logger.warning(
                "Shipping quote rejected courier=%s status=%s body=%s",
                self.courier.provider_code,
                response.status_code,
                response.text[:500],
            )
            raise ShippingGatewayError()

        try:
            data = response.json()
        except ValueError as exc:
            raise ShippingGatewayError() from exc
        rows = data if isinstance(data, list) else data.get("quotes", [])
        # The API lists services it cannot offer for this route with an "error" entry.
        return [self._parse(row) for row in rows if isinstance(row, dict) and not row.get("error")]


def _adapter_for(courier: Optional[CourierPartner]) -> BaseQuoteAdapter:
    if courier is None or not courier.api_base_url:
        return LocalQuoteAdapter(courier)
    return HttpQuoteAdapter(courier)


def select_active_courier() -> Optional[CourierPartner]:
    return CourierPartner.objects.filter(is_active=True).order_by("priority", "created_at").first()


class ShippingCostResolver:

    @staticmethod
    def items_for(lines: Iterable[Dict[str, Any]]) -> List[ShippingItem]:
        """``lines`` carry ``product``, ``quantity`` and ``price`` (unit, minor units)."""
        items = []
        for line in lines:
            package = ProductCatalog.package_for(line["product"])
            items.append(
                ShippingItem(
                    quantity=line["quantity"],
                    weight=package["weight"],
                    height=package["height"],
                    width=package["width"],
                    length=package["length"],
                    insurance_value=line["price"] * line["quantity"],
                )
            )
        return items

    @staticmethod
    def quote(destination, items: List[ShippingItem]) -> List[ShippingQuote]:
        destination = validate_postal_code(destination)
        return _adapter_for(select_active_courier()).quote(destination, items)

    @staticmethod
    def resolve(shop, delivery_type, option_id, shipping_address, lines, subtotal) -> DeliveryCost:
        """
        Delivery cost of an order, before any stock lock is taken.

        Pickup is always free. Shipping uses the chosen carrier quote unless the
        item subtotal reaches the shop's free-shipping threshold.
        """
        option_id = str(option_id or "").strip()
        if not option_id:
            raise ValidationError("delivery_option_id is required")

        if delivery_type == Order.DeliveryType.PICKUP_POINT:
            point = _find_pickup_point(shop, option_id)
            if not point:
                raise NotFoundError("Pickup point not found")
            if not point.is_active:
                raise BusinessRuleError("Pickup point is not active")
            return DeliveryCost(delivery_type=delivery_type, option_id=str(point.id), price=0, pickup_point=point)

        if delivery_type != Order.DeliveryType.SHIPPING:
            raise ValidationError("Invalid delivery_type")
        if not shipping_address:
            raise ValidationError("shipping_address is required for shipping orders")

        quotes = ShippingCostResolver.quote(shipping_address.get("zip_code"), ShippingCostResolver.items_for(lines))
        chosen = next((quote for quote in quotes if quote.option_id == option_id), None)
        if not chosen:
            raise BusinessRuleError(f"Delivery option {option_id} is not available")
        price = 0 if shop.qualifies_for_free_shipping(subtotal) else chosen.price
        return DeliveryCost(delivery_type=delivery_type, option_id=chosen.option_id, price=price, quote=chosen)


def _find_pickup_point(shop, option_id):
    try:
        point_id = uuid.UUID(option_id)
    except ValueError:
        return None
    return PickupPoint.objects.filter(shop=shop, id=point_id).first()


def get_delivery_options(shop, destination_zip_code, lines) -> Dict[str, List[Dict[str, Any]]]:
    """Shipping quotes for a destination plus the shop's active pickup points."""
    subtotal = sum(line["price"] * line["quantity"] for line in lines)

    shipping_options = []
    if destination_zip_code:
        free = shop.qualifies_for_free_shipping(subtotal)
        for quote in ShippingCostResolver.quote(destination_zip_code, ShippingCostResolver.items_for(lines)):
            shipping_options.append({
                "type": Order.DeliveryType.SHIPPING,
                "id": quote.option_id,
                "name": quote.name,
                "price": 0 if free else quote.price,
                "description": quote.carrier,
                "delivery_time": quote.delivery_time,
            })

    pickup_options = [
        {
            "type": Order.DeliveryType.PICKUP_POINT,
            "id": str(point.id),
            "name": point.name,
            "price": 0,
            "description": "Store pickup",
            "address": {
                "street": point.street,
                "number": point.number,
                "complement": point.complement or None,
                "neighborhood": point.neighborhood,
                "city": point.city,
                "state": point.state,
                "zip_code": point.zip_code,
            },
        }
        for point in PickupPoint.objects.filter(shop=shop, is_active=True)
    ]

    return {"shippingOptions": shipping_options, "pickupOptions": pickup_options}
