"""
workflow.py — Core Orchestration Logic for Order Placement

This module coordinates the order core in the correct sequence.

Workflow Overview:
1. Look up every ordered product in the catalog (one read)
2. Price the cart (tier resolution, VAT-exclusive subtotals, cashback)
3. Cross-check the client's totals against the computed ones
4. Persist order, lines and stock decrements in one transaction
5. For electronic payment methods, initiate the M-Pesa STK push

Steps 1-3 never open a write transaction, so failures there need no rollback.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from . import orders
from .catalog import lookup_products
from .clients import PaymentClient
from .config import ELECTRONIC_PAYMENT_METHODS, SHIPPING_FLAT_RATE
from .database import Database
from .errors import PaymentError
from .models import NewOrderRequest, PaymentCallback
from .pricing import CartLine, price_cart
from .security import Caller
from .validation import SubmittedTotals, validate_totals

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacedOrder:
    order: orders.CreatedOrder
    status: str
    merchant_request_id: Optional[str] = None
    transaction_status: Optional[str] = None


def place_order(
        db: Database,
        caller: Caller,
        request: NewOrderRequest,
        payment_client: Optional[PaymentClient] = None,
        shipping_rate: Decimal = SHIPPING_FLAT_RATE,
) -> PlacedOrder:
    """
    Executes the complete order placement workflow for a single request.

    Args:
        db (Database): Order database.
        caller (Caller): Authenticated caller; becomes the order owner.
        request (NewOrderRequest): Validated request payload.
        payment_client (PaymentClient | None): Gateway client, required for electronic payment methods.
        shipping_rate (Decimal): The deployment's flat shipping rate.

    Returns:
        PlacedOrder: The created order and, for M-Pesa, the gateway correlation data.

    Raises:
        ProductNotFoundError: A cart line references a missing or inactive product.
        StockError: Stock does not cover a line, checked before and during the write.
        PricingMismatchError: Client totals disagree with the computed ones.
        PersistenceError: The order transaction failed and was rolled back.
        PaymentError: The STK push failed or timed out. The order exists with status
            `failed` and its units are back in stock.
    """
    cart = [
        CartLine(
            product_id=item.id,
            quantity=item.quantity,
            unit_price=item.unitPrice,
            cashback_percent=item.cashbackPercent,
        )
        for item in request.cartItems
    ]

    with db.connect() as conn:
        catalog = lookup_products(conn, [line.product_id for line in cart])

    priced = price_cart(cart, catalog)
    totals = validate_totals(
        priced,
        SubmittedTotals(
            subtotal_excl_vat=request.subtotalExclVAT,
            vat_amount=request.vatAmount,
            shipping_cost=request.shippingCost,
            total=request.total,
        ),
        shipping_rate,
    )

    electronic = request.paymentMethod in ELECTRONIC_PAYMENT_METHODS
    created = orders.create_order(
        db,
        caller,
        priced,
        totals,
        payment_method=request.paymentMethod,
        shipping_info=request.shippingInfo,
        status=orders.PENDING if electronic else orders.CREATED,
        mpesa_phone=request.mpesaPhone if electronic else None,
    )

    if not electronic:
        return PlacedOrder(order=created, status=created.status)

    log_prefix = f"[Order: {created.order_number}]"
    log.info(f"{log_prefix} Initiating STK push for {totals.total_amount}.")
    try:
        if payment_client is None:
            raise PaymentError("No payment gateway configured")
        stk = payment_client.initiate_stk_push(created.order_number, request.mpesaPhone, totals.total_amount)
    except PaymentError as e:
        orders.mark_failed(db, created.id)
        log.error(f"{log_prefix} Payment initiation failed, order marked failed: {e}")
        if e.gateway_response is not None:
            log.error(f"{log_prefix} Gateway response: {e.gateway_response}")
        e.order_id = created.id
        raise

    merchant_request_id = stk["merchantRequestID"]
    orders.mark_initiated(
        db,
        created.id,
        merchant_request_id=merchant_request_id,
        checkout_request_id=stk.get("checkoutRequestID") or merchant_request_id,
    )
    return PlacedOrder(
        order=created,
        status=orders.INITIATED,
        merchant_request_id=merchant_request_id,
        transaction_status=stk.get("transactionStatus"),
    )


def handle_payment_callback(db: Database, callback: PaymentCallback) -> int:
    """
    Settles an initiated order from a gateway callback.

    Returns:
        int: Number of orders updated. Callbacks for unknown or already settled
            requests update nothing.
    """
    succeeded = callback.resultCode == "0"
    changed = orders.apply_payment_result(db, callback.merchantRequestID, succeeded)
    outcome = orders.COMPLETED if succeeded else orders.FAILED
    if changed:
        log.info(f"[Payment: {callback.merchantRequestID}] Order {outcome} ({callback.resultDesc}).")
    else:
        # Either unknown, already settled, or the push is not recorded as initiated yet
        log.warning(
            f"[Payment: {callback.merchantRequestID}] Callback (resultCode {callback.resultCode}) "
            f"matched no initiated order and was not applied."
        )
    return changed
