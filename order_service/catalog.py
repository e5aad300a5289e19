"""
catalog.py — Product catalog lookup

Read-side access to the products table for the order core. The catalog itself
(categories, suppliers, images) is managed elsewhere; this module only knows
the fields that pricing depends on. `add_product` exists for seeding and
admin tooling and enforces the tier layout on write.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import insert, select

from .database import Database, products
from .errors import ValidationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceTier:
    """Unit price that applies while the ordered quantity is inside [min_quantity, max_quantity]."""

    min_quantity: int
    max_quantity: Optional[int]
    unit_price: Decimal

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity


@dataclass(frozen=True)
class Product:
    id: int
    active: bool
    stock_units: int
    vat_rate: Decimal
    cashback_rate: Optional[Decimal]
    tiers: tuple = field(default_factory=tuple)


def check_tiers(tiers: list):
    """
    Validates a tier layout.

    Tier 1 must exist with min_quantity >= 1, each tier's max (if any) must be
    >= its own min, and must be below the next tier's min. Only the last tier
    may be open-ended.

    Raises:
        ValidationError: On the first violated rule.
    """
    if not tiers:
        raise ValidationError("Tier 1 pricing is required", field="tiers")
    if tiers[0].min_quantity < 1:
        raise ValidationError("Tier 1 min quantity must be at least 1", field="qty1Min")

    for i, tier in enumerate(tiers, start=1):
        if tier.unit_price < 0:
            raise ValidationError(f"Selling price {i} must not be negative", field=f"sellingPrice{i}")
        if tier.max_quantity is not None and tier.max_quantity < tier.min_quantity:
            raise ValidationError(f"Quantity {i} max must not be below quantity {i} min", field=f"qty{i}Max")

    for i, (current, following) in enumerate(zip(tiers, tiers[1:]), start=1):
        if current.max_quantity is None:
            raise ValidationError(f"Quantity {i} max is required when tier {i + 1} is set", field=f"qty{i}Max")
        if current.max_quantity >= following.min_quantity:
            raise ValidationError(
                f"Tier {i} overlaps tier {i + 1}: max {current.max_quantity} >= min {following.min_quantity}",
                field=f"qty{i + 1}Min",
            )


def _row_to_product(row) -> Product:
    tiers = [PriceTier(row.qty1_min, row.qty1_max, row.selling_price1)]
    if row.selling_price2 is not None and row.qty2_min is not None:
        tiers.append(PriceTier(row.qty2_min, row.qty2_max, row.selling_price2))
    if row.selling_price3 is not None and row.qty3_min is not None:
        tiers.append(PriceTier(row.qty3_min, None, row.selling_price3))
    return Product(
        id=row.id,
        active=bool(row.active),
        stock_units=row.stock_units,
        vat_rate=row.vat_rate,
        cashback_rate=row.cashback_rate,
        tiers=tuple(sorted(tiers, key=lambda t: t.min_quantity)),
    )


def lookup_product(conn, product_id: int) -> Optional[Product]:
    """Returns the product snapshot, or None when no such product exists."""
    row = conn.execute(select(products).where(products.c.id == product_id)).first()
    return _row_to_product(row) if row is not None else None


def lookup_products(conn, product_ids: Iterable[int]) -> dict:
    """Fetches several products in one round trip, keyed by id. Missing ids are absent."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = conn.execute(select(products).where(products.c.id.in_(ids))).all()
    return {row.id: _row_to_product(row) for row in rows}


def add_product(
        db: Database,
        name: str,
        tiers: list,
        stock_units: int = 0,
        vat_rate: Decimal = Decimal("0"),
        cashback_rate: Optional[Decimal] = None,
        active: bool = True,
        product_code: Optional[str] = None,
        product_id: Optional[int] = None,
) -> int:
    """
    Inserts a product after validating its tier layout.

    Args:
        db (Database): Target database.
        name (str): Display name.
        tiers (list[PriceTier]): One to three tiers ordered by min quantity. Tier 3 is stored open-ended.
        stock_units (int): Initial stock, >= 0.
        vat_rate (Decimal): VAT percentage, 0-100.
        cashback_rate (Decimal | None): Cashback percentage, 0-100, or None for the default.
        active (bool): Whether the product can be ordered.
        product_code (str | None): Optional catalog code.
        product_id (int | None): Explicit id, mostly for fixtures.

    Returns:
        int: The product id.

    Raises:
        ValidationError: If the tiers, rates or stock are invalid.
    """
    if len(tiers) > 3:
        raise ValidationError("At most three price tiers are supported", field="tiers")
    if len(tiers) == 3 and tiers[2].max_quantity is not None:
        raise ValidationError("Tier 3 has no max quantity", field="qty3Max")
    check_tiers(tiers)
    if stock_units < 0:
        raise ValidationError("Stock units must be a non-negative integer", field="stockUnits")
    for label, rate in (("vat", vat_rate), ("cashbackRate", cashback_rate)):
        if rate is not None and not Decimal("0") <= Decimal(rate) <= Decimal("100"):
            raise ValidationError(f"{label} must be between 0 and 100", field=label)

    values = {
        "name": name,
        "product_code": product_code,
        "active": active,
        "stock_units": stock_units,
        "vat_rate": vat_rate,
        "cashback_rate": cashback_rate,
    }
    if product_id is not None:
        values["id"] = product_id
    for i, tier in enumerate(tiers, start=1):
        values[f"selling_price{i}"] = tier.unit_price
        values[f"qty{i}_min"] = tier.min_quantity
        if i < 3:
            values[f"qty{i}_max"] = tier.max_quantity

    with db.transaction() as conn:
        result = conn.execute(insert(products).values(**values))
        new_id = result.inserted_primary_key[0]
    log.info(f"Product {new_id} ({name}) added with {len(tiers)} tier(s), stock {stock_units}.")
    return new_id
