from decimal import Decimal

import pytest

from binwahab.models.catalog import ZoneType
from binwahab.services.pricing import (
    PriceLine, PricingService, calculate_totals, resolve_zone_type
)

from factories import make_zone


@pytest.mark.parametrize("state, expected", [
    ("Selangor", ZoneType.WEST_MALAYSIA),
    ("Kuala Lumpur", ZoneType.WEST_MALAYSIA),
    ("Sabah", ZoneType.EAST_MALAYSIA),
    ("SARAWAK", ZoneType.EAST_MALAYSIA),
    ("W.P. Labuan", ZoneType.EAST_MALAYSIA),
    ("", ZoneType.WEST_MALAYSIA),
])
def test_resolve_zone_type(state, expected):
    assert resolve_zone_type(state) == expected


def test_totals_without_shipping_rate():
    totals = calculate_totals([PriceLine(Decimal("50.00"), 2)])

    assert totals.subtotal == Decimal("100.00")
    assert totals.tax == Decimal("6.00")
    assert totals.shipping_cost == Decimal("0.00")
    assert totals.total == Decimal("106.00")


def test_subtotal_is_sum_of_lines_and_tax_rounds_half_up():
    lines = [PriceLine(Decimal("19.90"), 3), PriceLine(Decimal("4.25"), 1)]
    totals = calculate_totals(lines, shipping_cost=Decimal("8"))

    # 59.70 + 4.25 = 63.95; 63.95 * 0.06 = 3.837
    assert totals.subtotal == Decimal("63.95")
    assert totals.tax == Decimal("3.84")
    assert totals.total == totals.subtotal + totals.tax + totals.shipping_cost
    assert totals.total == Decimal("75.79")


def test_tax_half_cent_rounds_up():
    # 0.75 * 0.06 = 0.045
    totals = calculate_totals([PriceLine(Decimal("0.75"), 1)])
    assert totals.tax == Decimal("0.05")


def test_rate_band_lookup(db):
    make_zone(db, ZoneType.WEST_MALAYSIA, [
        ("10.00", None, "99.99"),
        ("5.00", "100.00", "199.99"),
        ("0.00", "200.00", None),
    ])

    assert PricingService.find_shipping_rate(db, ZoneType.WEST_MALAYSIA, Decimal("40")).price == Decimal("10.00")
    assert PricingService.find_shipping_rate(db, ZoneType.WEST_MALAYSIA, Decimal("150")).price == Decimal("5.00")
    assert PricingService.find_shipping_rate(db, ZoneType.WEST_MALAYSIA, Decimal("250")).price == Decimal("0.00")


def test_overlapping_bands_prefer_highest_minimum(db):
    make_zone(db, ZoneType.EAST_MALAYSIA, [
        ("25.00", None, None),
        ("15.00", "100.00", None),
    ])

    rate = PricingService.find_shipping_rate(db, ZoneType.EAST_MALAYSIA, Decimal("120"))
    assert rate.price == Decimal("15.00")


def test_no_zone_means_free_shipping(db):
    zone, cost = PricingService.shipping_cost(db, "Selangor", Decimal("100"))
    assert zone == ZoneType.WEST_MALAYSIA
    assert cost == Decimal("0.00")


def test_inactive_zone_is_skipped(db):
    make_zone(db, ZoneType.EAST_MALAYSIA, [("30.00", None, None)], is_active=False)

    _, cost = PricingService.shipping_cost(db, "Sabah", Decimal("100"))
    assert cost == Decimal("0.00")


def test_quote_uses_subtotal_for_band(db):
    make_zone(db, ZoneType.EAST_MALAYSIA, [("20.00", None, "149.99"), ("12.00", "150.00", None)])

    totals = PricingService.quote(db, [PriceLine(Decimal("50.00"), 3)], "Sarawak")

    assert totals.zone == ZoneType.EAST_MALAYSIA
    assert totals.shipping_cost == Decimal("12.00")
    assert totals.total == Decimal("171.00")


def test_calculate_shipping_endpoint(client, db):
    make_zone(db, ZoneType.EAST_MALAYSIA, [("18.00", None, None)])

    response = client.post("/api/v1/shipping/calculate", json={"state": "Sabah", "order_value": "80.00"})

    assert response.status_code == 200
    body = response.json()
    assert body["zone"] == "EAST_MALAYSIA"
    assert Decimal(body["cost"]) == Decimal("18.00")


def test_calculate_shipping_rejects_negative_value(client):
    response = client.post("/api/v1/shipping/calculate", json={"state": "Sabah", "order_value": "-1"})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
