"""Tests for catalog lookup and tier layout rules."""

from decimal import Decimal

import pytest

from order_service.catalog import (
    PriceTier,
    add_product,
    check_tiers,
    lookup_product,
    lookup_products,
)
from order_service.errors import ValidationError


class TestCheckTiers:
    def test_valid_three_tiers(self):
        check_tiers([
            PriceTier(1, 9, Decimal("100")),
            PriceTier(10, 49, Decimal("90")),
            PriceTier(50, None, Decimal("80")),
        ])

    def test_gap_between_tiers_is_allowed(self):
        check_tiers([PriceTier(1, 5, Decimal("100")), PriceTier(10, None, Decimal("90"))])

    def test_requires_tier_one(self):
        with pytest.raises(ValidationError):
            check_tiers([])

    def test_tier_one_min_at_least_one(self):
        with pytest.raises(ValidationError) as exc_info:
            check_tiers([PriceTier(0, 9, Decimal("100"))])
        assert exc_info.value.field == "qty1Min"

    def test_overlap_rejected(self):
        with pytest.raises(ValidationError, match="overlaps"):
            check_tiers([PriceTier(1, 10, Decimal("100")), PriceTier(10, None, Decimal("90"))])

    def test_open_ended_tier_before_last_rejected(self):
        with pytest.raises(ValidationError):
            check_tiers([PriceTier(1, None, Decimal("100")), PriceTier(10, None, Decimal("90"))])

    def test_max_below_min_rejected(self):
        with pytest.raises(ValidationError):
            check_tiers([PriceTier(5, 2, Decimal("100"))])


class TestAddAndLookup:
    def test_round_trip(self, db):
        product_id = add_product(
            db,
            name="Rice 25kg",
            tiers=[
                PriceTier(1, 9, Decimal("3200")),
                PriceTier(10, 49, Decimal("3100")),
                PriceTier(50, None, Decimal("3000")),
            ],
            stock_units=120,
            vat_rate=Decimal("16"),
            cashback_rate=Decimal("2.5"),
        )

        with db.connect() as conn:
            product = lookup_product(conn, product_id)

        assert product.active is True
        assert product.stock_units == 120
        assert product.vat_rate == Decimal("16")
        assert product.cashback_rate == Decimal("2.5")
        assert [t.unit_price for t in product.tiers] == [Decimal("3200"), Decimal("3100"), Decimal("3000")]
        assert product.tiers[2].max_quantity is None

    def test_missing_product(self, db):
        with db.connect() as conn:
            assert lookup_product(conn, 12345) is None

    def test_lookup_many(self, db, product_7):
        other = add_product(db, name="Sugar", tiers=[PriceTier(1, None, Decimal("150"))], stock_units=3)
        with db.connect() as conn:
            found = lookup_products(conn, [product_7, other, 999, product_7])
        assert set(found) == {product_7, other}

    def test_negative_stock_rejected(self, db):
        with pytest.raises(ValidationError):
            add_product(db, name="Broken", tiers=[PriceTier(1, None, Decimal("1"))], stock_units=-1)

    def test_vat_out_of_range_rejected(self, db):
        with pytest.raises(ValidationError):
            add_product(db, name="Broken", tiers=[PriceTier(1, None, Decimal("1"))], vat_rate=Decimal("101"))
