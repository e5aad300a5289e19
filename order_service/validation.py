"""
validation.py — Server-side verification of client cart totals

Cart totals are computed client-side for responsiveness. Before stock is
committed they are re-derived here and compared with what the client sent;
the client's arithmetic is only ever used as a consistency check.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .errors import PricingMismatchError
from .pricing import PricedOrder, round_money

log = logging.getLogger(__name__)

TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class SubmittedTotals:
    subtotal_excl_vat: Decimal
    vat_amount: Decimal
    shipping_cost: Decimal
    total: Decimal


@dataclass(frozen=True)
class ValidatedTotals:
    subtotal_excl_vat: Decimal
    vat_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    total_cashback: Decimal


def round_total(value: Decimal) -> Decimal:
    """Rounds an order total to a whole currency unit, half up."""
    return Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def within_tolerance(received: Decimal, computed: Decimal) -> bool:
    return abs(Decimal(received) - Decimal(computed)) <= TOLERANCE


def validate_totals(priced: PricedOrder, submitted: SubmittedTotals, shipping_rate: Decimal) -> ValidatedTotals:
    """
    Cross-checks submitted figures against the priced order.

    Checks run in order and the first failure is raised:
        1. each line's requested unit price (if any) against the catalog price
        2. subtotal within 0.01 of the computed subtotal
        3. shipping equal to the flat rate
        4. total within 0.01 of round(subtotal + vat + shipping)

    Args:
        priced (PricedOrder): Authoritative engine output.
        submitted (SubmittedTotals): Figures sent by the client.
        shipping_rate (Decimal): The deployment's flat shipping rate.

    Returns:
        ValidatedTotals: Totals to persist. The total is the server-rounded value.

    Raises:
        PricingMismatchError: With code UnitPriceMismatch, SubtotalMismatch,
            ShippingMismatch or TotalMismatch.
    """
    for line in priced.lines:
        if line.requested_unit_price is not None and not within_tolerance(line.requested_unit_price, line.unit_price):
            raise PricingMismatchError(
                "UnitPriceMismatch",
                f"Unit price mismatch for product {line.product_id}: "
                f"expected {line.unit_price}, received {line.requested_unit_price}",
                expected=line.unit_price,
                received=line.requested_unit_price,
            )

    computed_subtotal = priced.subtotal_excl_vat
    if not within_tolerance(submitted.subtotal_excl_vat, computed_subtotal):
        log.warning(f"Subtotal mismatch: computed {computed_subtotal}, received {submitted.subtotal_excl_vat}")
        raise PricingMismatchError(
            "SubtotalMismatch",
            f"Subtotal mismatch: expected {computed_subtotal}, received {submitted.subtotal_excl_vat}",
            expected=computed_subtotal,
            received=submitted.subtotal_excl_vat,
        )

    if round_money(submitted.shipping_cost) != round_money(shipping_rate):
        raise PricingMismatchError(
            "ShippingMismatch",
            f"Shipping cost mismatch: expected {round_money(shipping_rate)}, received {submitted.shipping_cost}",
            expected=round_money(shipping_rate),
            received=submitted.shipping_cost,
        )

    vat_amount = round_money(submitted.vat_amount)
    shipping_cost = round_money(shipping_rate)
    computed_total = round_total(computed_subtotal + vat_amount + shipping_cost)
    if not within_tolerance(submitted.total, computed_total):
        log.warning(f"Total mismatch: computed {computed_total}, received {submitted.total}")
        raise PricingMismatchError(
            "TotalMismatch",
            f"Total mismatch: expected {computed_total}, received {submitted.total}",
            expected=computed_total,
            received=submitted.total,
        )

    return ValidatedTotals(
        subtotal_excl_vat=computed_subtotal,
        vat_amount=vat_amount,
        shipping_cost=shipping_cost,
        total_amount=round_money(computed_total),
        total_cashback=priced.total_cashback,
    )
