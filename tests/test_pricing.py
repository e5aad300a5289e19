"""Tests for tier resolution and per-line pricing."""

from decimal import Decimal

import pytest

from order_service.catalog import PriceTier, Product
from order_service.errors import ProductNotFoundError, StockError
from order_service.pricing import (
    CartLine,
    price_cart,
    price_excl_vat,
    resolve_tier_price,
)


def make_product(product_id=1, tiers=None, stock=100, vat="16", cashback="5", active=True):
    if tiers is None:
        tiers = (PriceTier(1, 9, Decimal("100")),)
    return Product(
        id=product_id,
        active=active,
        stock_units=stock,
        vat_rate=Decimal(vat),
        cashback_rate=Decimal(cashback) if cashback is not None else None,
        tiers=tuple(tiers),
    )


@pytest.fixture
def tiered():
    return make_product(tiers=(
        PriceTier(1, 9, Decimal("100")),
        PriceTier(10, 49, Decimal("90")),
        PriceTier(50, None, Decimal("80")),
    ))


class TestTierResolution:
    @pytest.mark.parametrize("quantity,expected", [
        (1, "100"), (9, "100"), (10, "90"), (49, "90"), (50, "80"), (1000, "80"),
    ])
    def test_quantity_inside_tier(self, tiered, quantity, expected):
        assert resolve_tier_price(tiered, quantity) == Decimal(expected)

    def test_gap_falls_back_to_tier_one(self):
        product = make_product(tiers=(
            PriceTier(5, 9, Decimal("100")),
            PriceTier(20, None, Decimal("90")),
        ))
        assert resolve_tier_price(product, 15) == Decimal("100")
        assert resolve_tier_price(product, 20) == Decimal("90")

    def test_below_every_min_falls_back_to_tier_one(self):
        product = make_product(tiers=(
            PriceTier(5, 9, Decimal("100")),
            PriceTier(10, None, Decimal("90")),
        ))
        assert resolve_tier_price(product, 1) == Decimal("100")
        assert resolve_tier_price(product, 4) == Decimal("100")
        assert resolve_tier_price(product, 5) == Decimal("100")


class TestLinePricing:
    def test_reference_product(self):
        product = make_product(product_id=7, tiers=(PriceTier(1, 9, Decimal("1000")),), stock=10)
        priced = price_cart([CartLine(7, 2)], {7: product})

        line = priced.lines[0]
        assert line.unit_price == Decimal("1000.00")
        assert line.price_excl_vat == Decimal("862.07")
        assert line.subtotal_excl_vat == Decimal("1724.14")
        assert line.cashback_percent == Decimal("5")
        assert line.cashback_amount == Decimal("86.21")
        assert priced.subtotal_excl_vat == Decimal("1724.14")
        assert priced.total_cashback == Decimal("86.21")

    def test_subtotal_is_sum_of_rounded_lines(self):
        catalog = {
            1: make_product(1, tiers=(PriceTier(1, None, Decimal("100")),)),
            2: make_product(2, tiers=(PriceTier(1, None, Decimal("49.99")),), vat="8"),
            3: make_product(3, tiers=(PriceTier(1, None, Decimal("0.05")),)),
        }
        cart = [CartLine(1, 3), CartLine(2, 7), CartLine(3, 11)]
        priced = price_cart(cart, catalog)

        expected = sum(
            price_excl_vat(catalog[c.product_id].tiers[0].unit_price, catalog[c.product_id].vat_rate) * c.quantity
            for c in cart
        )
        assert priced.subtotal_excl_vat == expected
        # 100 / 1.16 = 86.2069 -> 86.21 per unit before multiplying
        assert priced.lines[0].subtotal_excl_vat == Decimal("258.63")

    def test_zero_vat(self):
        product = make_product(vat="0")
        priced = price_cart([CartLine(1, 4)], {1: product})
        assert priced.subtotal_excl_vat == Decimal("400.00")

    def test_cashback_override_wins(self):
        product = make_product(cashback="5")
        priced = price_cart([CartLine(1, 1, cashback_percent=Decimal("10"))], {1: product})
        assert priced.lines[0].cashback_percent == Decimal("10")
        assert priced.lines[0].cashback_amount == Decimal("8.62")

    def test_cashback_default_when_product_has_none(self):
        product = make_product(cashback=None)
        priced = price_cart([CartLine(1, 1)], {1: product})
        assert priced.lines[0].cashback_percent == Decimal("5")

    def test_requested_price_is_recorded_not_used(self):
        product = make_product()
        priced = price_cart([CartLine(1, 1, unit_price=Decimal("1"))], {1: product})
        assert priced.lines[0].unit_price == Decimal("100")
        assert priced.lines[0].requested_unit_price == Decimal("1")


class TestRejections:
    def test_missing_product(self):
        with pytest.raises(ProductNotFoundError) as exc_info:
            price_cart([CartLine(99, 1)], {})
        assert exc_info.value.code == "ProductNotFound"

    def test_inactive_product(self):
        with pytest.raises(ProductNotFoundError):
            price_cart([CartLine(1, 1)], {1: make_product(active=False)})

    def test_quantity_above_stock(self):
        with pytest.raises(StockError) as exc_info:
            price_cart([CartLine(1, 6)], {1: make_product(stock=5)})
        assert exc_info.value.code == "InsufficientStock"
        assert exc_info.value.available == 5

    def test_quantity_equal_to_stock_is_allowed(self):
        priced = price_cart([CartLine(1, 5)], {1: make_product(stock=5)})
        assert priced.lines[0].quantity == 5
