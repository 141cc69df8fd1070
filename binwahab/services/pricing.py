# binwahab/services/pricing.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from binwahab.core.config import settings
from binwahab.models.catalog import ShippingRate, ShippingZone, ZoneType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
EAST_MALAYSIA_STATES = ("sabah", "sarawak", "labuan")


@dataclass(frozen=True)
class PriceLine:
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    zone: ZoneType


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_zone_type(state: Optional[str]) -> ZoneType:
    state = (state or "").lower()
    if any(name in state for name in EAST_MALAYSIA_STATES):
        return ZoneType.EAST_MALAYSIA
    return ZoneType.WEST_MALAYSIA


def calculate_subtotal(lines: Iterable[PriceLine]) -> Decimal:
    return sum((Decimal(line.unit_price) * line.quantity for line in lines), Decimal("0"))


def calculate_totals(
    lines: Iterable[PriceLine],
    shipping_cost: Decimal = Decimal("0"),
    zone: ZoneType = ZoneType.WEST_MALAYSIA,
    tax_rate: Optional[Decimal] = None,
) -> OrderTotals:
    """
    Pure totals calculation.

    subtotal is the exact sum of unit price times quantity; tax is
    subtotal times the tax rate rounded half-up to cents. Shipping is
    whatever the caller looked up.
    """
    rate = settings.TAX_RATE if tax_rate is None else tax_rate

    subtotal = quantize(calculate_subtotal(lines))
    tax = quantize(subtotal * rate)
    shipping_cost = quantize(shipping_cost)

    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping_cost,
        total=quantize(subtotal + tax + shipping_cost),
        zone=zone,
    )


class PricingService:

    @staticmethod
    def find_shipping_rate(db: Session, zone_type: ZoneType, order_value: Decimal) -> Optional[ShippingRate]:
        zone = (
            db.query(ShippingZone)
            .filter(ShippingZone.type == zone_type, ShippingZone.is_active.is_(True))
            .order_by(ShippingZone.id)
            .first()
        )
        if not zone:
            logger.info(f"No active shipping zone for {zone_type.value}; shipping is free")
            return None

        return (
            db.query(ShippingRate)
            .filter(
                ShippingRate.zone_id == zone.id,
                ShippingRate.is_active.is_(True),
                or_(ShippingRate.min_order_value.is_(None), ShippingRate.min_order_value <= order_value),
                or_(ShippingRate.max_order_value.is_(None), ShippingRate.max_order_value >= order_value),
            )
            .order_by(ShippingRate.min_order_value.desc().nullslast(), ShippingRate.id)
            .first()
        )

    @staticmethod
    def shipping_cost(db: Session, state: str, order_value: Decimal) -> tuple[ZoneType, Decimal]:
        zone_type = resolve_zone_type(state)
        rate = PricingService.find_shipping_rate(db, zone_type, order_value)
        return zone_type, quantize(rate.price) if rate else Decimal("0.00")

    @staticmethod
    def quote(db: Session, lines: list[PriceLine], state: str) -> OrderTotals:
        subtotal = quantize(calculate_subtotal(lines))
        zone_type, shipping = PricingService.shipping_cost(db, state, subtotal)
        return calculate_totals(lines, shipping_cost=shipping, zone=zone_type)
