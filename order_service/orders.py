"""
orders.py — Order Writer, Order Reader and status transitions

The writer persists a validated, priced order as one atomic unit of work:
order number allocation, header insert, line inserts and stock decrements
either all become visible together or not at all.

Stock is decremented relationally and conditionally
(`stock_units = stock_units - q WHERE stock_units >= q`); a zero affected-row
count means a concurrent order took the stock first and the whole
transaction is rolled back with `StockError`.

Status lifecycle:
    pending --(gateway accepted)--> initiated --(callback ok)--> completed
                                              --(callback error)--> failed
    pending --(gateway rejected)--> failed
    created (non-electronic payment methods, terminal from the start)

Moving an order to `failed` returns its units to stock in the same
transaction as the status update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import insert, select, update

from .database import Database, order_items, order_number_seq, orders, products
from .errors import ForbiddenError, OrderNotFoundError, StockError
from .pricing import PricedOrder
from .security import Caller
from .validation import ValidatedTotals

log = logging.getLogger(__name__)

PENDING = "pending"
INITIATED = "initiated"
COMPLETED = "completed"
FAILED = "failed"
CREATED = "created"

TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, CREATED})

# Allowed source states for each target state
TRANSITIONS = {
    INITIATED: (PENDING,),
    COMPLETED: (INITIATED,),
    FAILED: (PENDING, INITIATED),
}


def format_order_number(sequence_value: int) -> str:
    return f"ORD{sequence_value:06d}"


@dataclass(frozen=True)
class CreatedOrder:
    id: int
    order_number: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    vat_rate: Decimal
    subtotal_excl_vat: Decimal
    cashback_percent: Decimal
    cashback_amount: Decimal


@dataclass(frozen=True)
class Order:
    id: int
    order_number: str
    user_id: int
    payment_method: str
    mpesa_phone: Optional[str]
    shipping_info: dict
    subtotal_excl_vat: Decimal
    vat_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    total_cashback: Decimal
    status: str
    merchant_request_id: Optional[str]
    checkout_request_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    lines: tuple


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# --- Order Writer ---

def create_order(
        db: Database,
        caller: Caller,
        priced: PricedOrder,
        totals: ValidatedTotals,
        payment_method: str,
        shipping_info: dict,
        status: str,
        mpesa_phone: Optional[str] = None,
) -> CreatedOrder:
    """
    Persists an order, its lines and the stock decrements in one transaction.

    Args:
        db (Database): Target database.
        caller (Caller): Owner of the new order.
        priced (PricedOrder): Engine output; line prices are snapshotted from here.
        totals (ValidatedTotals): Validator output for the header.
        payment_method (str): Payment method as submitted.
        shipping_info (dict): Shipping details, stored as a snapshot.
        status (str): Initial status, `pending` or `created`.
        mpesa_phone (str | None): Payer phone for M-Pesa orders.

    Returns:
        CreatedOrder: Id, order number, status and creation time.

    Raises:
        StockError: If any conditional stock decrement affects no row.
        PersistenceError: If the database rejects a statement or the commit.
    """
    now = datetime.now(timezone.utc)

    with db.transaction() as conn:
        sequence_value = conn.execute(insert(order_number_seq)).inserted_primary_key[0]
        order_number = format_order_number(sequence_value)

        order_id = conn.execute(
            insert(orders).values(
                order_number=order_number,
                user_id=caller.id,
                payment_method=payment_method,
                mpesa_phone=mpesa_phone,
                shipping_info=shipping_info,
                subtotal_excl_vat=totals.subtotal_excl_vat,
                vat_amount=totals.vat_amount,
                shipping_cost=totals.shipping_cost,
                total_amount=totals.total_amount,
                total_cashback=totals.total_cashback,
                status=status,
                created_at=now,
                updated_at=now,
            )
        ).inserted_primary_key[0]

        for line in priced.lines:
            conn.execute(
                insert(order_items).values(
                    order_id=order_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    vat_rate=line.vat_rate,
                    subtotal_excl_vat=line.subtotal_excl_vat,
                    cashback_percent=line.cashback_percent,
                    cashback_amount=line.cashback_amount,
                )
            )
            result = conn.execute(
                update(products)
                .where(products.c.id == line.product_id)
                .where(products.c.stock_units >= line.quantity)
                .values(stock_units=products.c.stock_units - line.quantity)
            )
            if result.rowcount == 0:
                log.warning(f"[Order: {order_number}] Stock decrement failed for product {line.product_id}. Rolling back.")
                raise StockError(line.product_id, line.quantity)

    log.info(f"[Order: {order_number}] Created for user {caller.id} with {len(priced.lines)} line(s), status {status}.")
    return CreatedOrder(id=order_id, order_number=order_number, status=status, created_at=now)


# --- Order Reader ---

def _load_lines(conn, order_ids: list) -> dict:
    lines = {order_id: [] for order_id in order_ids}
    if not order_ids:
        return lines
    rows = conn.execute(
        select(order_items).where(order_items.c.order_id.in_(order_ids)).order_by(order_items.c.id)
    ).all()
    for row in rows:
        lines[row.order_id].append(
            OrderLine(
                product_id=row.product_id,
                quantity=row.quantity,
                unit_price=row.unit_price,
                vat_rate=row.vat_rate,
                subtotal_excl_vat=row.subtotal_excl_vat,
                cashback_percent=row.cashback_percent,
                cashback_amount=row.cashback_amount,
            )
        )
    return lines


def _row_to_order(row, lines: list) -> Order:
    return Order(
        id=row.id,
        order_number=row.order_number,
        user_id=row.user_id,
        payment_method=row.payment_method,
        mpesa_phone=row.mpesa_phone,
        shipping_info=row.shipping_info,
        subtotal_excl_vat=row.subtotal_excl_vat,
        vat_amount=row.vat_amount,
        shipping_cost=row.shipping_cost,
        total_amount=row.total_amount,
        total_cashback=row.total_cashback,
        status=row.status,
        merchant_request_id=row.merchant_request_id,
        checkout_request_id=row.checkout_request_id,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
        lines=tuple(lines),
    )


def get_order(db: Database, order_id: int, caller: Caller) -> Order:
    """
    Returns an order with its lines.

    Raises:
        OrderNotFoundError: If the order doesn't exist or the caller is neither
            its owner nor an admin.
    """
    with db.connect() as conn:
        row = conn.execute(select(orders).where(orders.c.id == order_id)).first()
        if row is None or not caller.can_access(row.user_id):
            raise OrderNotFoundError(order_id)
        lines = _load_lines(conn, [row.id])
    return _row_to_order(row, lines[row.id])


def list_user_orders(db: Database, user_id: int, caller: Caller) -> list:
    """
    Returns all orders of a user, newest first, each with its lines.

    Raises:
        ForbiddenError: If a non-admin caller asks for another user's orders.
    """
    if not caller.can_access(user_id):
        raise ForbiddenError("Not allowed to view orders of another user")

    with db.connect() as conn:
        rows = conn.execute(
            select(orders)
            .where(orders.c.user_id == user_id)
            .order_by(orders.c.created_at.desc(), orders.c.id.desc())
        ).all()
        lines = _load_lines(conn, [row.id for row in rows])
    return [_row_to_order(row, lines[row.id]) for row in rows]


# --- Status transitions ---

def _release_stock(conn, order_id: int):
    lines = conn.execute(
        select(order_items.c.product_id, order_items.c.quantity).where(order_items.c.order_id == order_id)
    ).all()
    for line in lines:
        conn.execute(
            update(products)
            .where(products.c.id == line.product_id)
            .values(stock_units=products.c.stock_units + line.quantity)
        )


def _transition(db: Database, condition, target: str, **fields) -> int:
    """
    Moves every order matching `condition` from an allowed source state to `target`.

    The status update is conditional on the source state, so an order is moved
    at most once. Orders moved to `failed` get their stock back in the same
    transaction.

    Returns:
        int: Number of orders moved.
    """
    sources = TRANSITIONS[target]
    moved = 0
    with db.transaction() as conn:
        rows = conn.execute(
            select(orders.c.id, orders.c.order_number).where(condition).where(orders.c.status.in_(sources))
        ).all()
        for row in rows:
            result = conn.execute(
                update(orders)
                .where(orders.c.id == row.id)
                .where(orders.c.status.in_(sources))
                .values(status=target, updated_at=datetime.now(timezone.utc), **fields)
            )
            if result.rowcount != 1:
                continue
            if target == FAILED:
                _release_stock(conn, row.id)
                log.info(f"[Order: {row.order_number}] Marked failed, stock released.")
            moved += 1
    return moved


def mark_initiated(db: Database, order_id: int, merchant_request_id: str, checkout_request_id: str) -> bool:
    """Records the gateway correlation ids of an accepted STK push."""
    changed = _transition(
        db,
        orders.c.id == order_id,
        INITIATED,
        merchant_request_id=merchant_request_id,
        checkout_request_id=checkout_request_id,
    )
    return changed == 1


def mark_failed(db: Database, order_id: int) -> bool:
    """Fails a pending or initiated order and returns its units to stock."""
    return _transition(db, orders.c.id == order_id, FAILED) == 1


def apply_payment_result(db: Database, merchant_request_id: str, succeeded: bool) -> int:
    """
    Applies a gateway callback to the initiated order it refers to.

    Orders already in a terminal state are left untouched. A failed payment
    returns the order's units to stock.

    Returns:
        int: Number of orders updated (0 for unknown or already settled requests).
    """
    target = COMPLETED if succeeded else FAILED
    return _transition(
        db,
        (orders.c.merchant_request_id == merchant_request_id) & (orders.c.status == INITIATED),
        target,
    )
