"""
pricing.py — Order Pricing Engine

Resolves the price tier for every cart line and computes the VAT-exclusive
subtotal and cashback per line and per order.

Rounding is per line: the VAT-exclusive unit price is rounded to cents before
it is multiplied by the quantity, and the order subtotal is the sum of the
rounded line values. Clients compute their cart totals the same way, so a
single rounding at the end would drift by cents.

The engine is a pure function of the catalog snapshot and the cart.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .catalog import Product
from .config import DEFAULT_CASHBACK_PERCENT
from .errors import ProductNotFoundError, StockError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price: Optional[Decimal] = None
    cashback_percent: Optional[Decimal] = None


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    vat_rate: Decimal
    price_excl_vat: Decimal
    subtotal_excl_vat: Decimal
    cashback_percent: Decimal
    cashback_amount: Decimal
    # Client-supplied price, kept for the validator's cross-check
    requested_unit_price: Optional[Decimal] = None


@dataclass(frozen=True)
class PricedOrder:
    lines: tuple
    subtotal_excl_vat: Decimal
    total_cashback: Decimal


def resolve_tier_price(product: Product, quantity: int) -> Decimal:
    """
    Returns the unit price of the tier whose range contains `quantity`.

    Tier ranges may leave gaps (or start above 1). A quantity that falls
    into no tier is charged the tier 1 price.
    """
    for tier in product.tiers:
        if tier.contains(quantity):
            return tier.unit_price
    return product.tiers[0].unit_price


def price_excl_vat(unit_price: Decimal, vat_rate: Decimal) -> Decimal:
    return round_money(Decimal(unit_price) / (1 + Decimal(vat_rate) / HUNDRED))


def price_line(line: CartLine, product: Optional[Product],
               default_cashback: Decimal = DEFAULT_CASHBACK_PERCENT) -> PricedLine:
    """
    Prices a single cart line against its product snapshot.

    Raises:
        ProductNotFoundError: If the product is missing or inactive.
        StockError: If the quantity exceeds the product's stock.
    """
    if product is None or not product.active:
        raise ProductNotFoundError(line.product_id)
    if line.quantity > product.stock_units:
        raise StockError(line.product_id, line.quantity, product.stock_units)

    unit_price = resolve_tier_price(product, line.quantity)
    excl = price_excl_vat(unit_price, product.vat_rate)
    subtotal = excl * line.quantity

    if line.cashback_percent is not None:
        cashback_percent = Decimal(line.cashback_percent)
    elif product.cashback_rate is not None:
        cashback_percent = Decimal(product.cashback_rate)
    else:
        cashback_percent = Decimal(default_cashback)

    return PricedLine(
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price=round_money(unit_price),
        vat_rate=round_money(product.vat_rate),
        price_excl_vat=excl,
        subtotal_excl_vat=round_money(subtotal),
        cashback_percent=round_money(cashback_percent),
        cashback_amount=round_money(subtotal * cashback_percent / HUNDRED),
        requested_unit_price=line.unit_price,
    )


def price_cart(cart: list, catalog: dict,
               default_cashback: Decimal = DEFAULT_CASHBACK_PERCENT) -> PricedOrder:
    """
    Prices a whole cart.

    Args:
        cart (list[CartLine]): Lines in client order.
        catalog (dict[int, Product]): Product snapshots keyed by id, as returned
            by `catalog.lookup_products`.
        default_cashback (Decimal): Cashback percent used when neither the line
            nor the product defines one.

    Returns:
        PricedOrder: Priced lines plus aggregate subtotal and cashback.

    Raises:
        ProductNotFoundError, StockError: For the first line that fails.
    """
    lines = tuple(price_line(line, catalog.get(line.product_id), default_cashback) for line in cart)
    subtotal = sum((line.subtotal_excl_vat for line in lines), Decimal("0.00"))
    cashback = sum((line.cashback_amount for line in lines), Decimal("0.00"))
    return PricedOrder(lines=lines, subtotal_excl_vat=subtotal, total_cashback=cashback)
