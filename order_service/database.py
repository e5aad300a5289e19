"""
database.py — Relational schema and transaction scope

Defines the SQLAlchemy Core tables used by the order service and a small
`Database` wrapper around an `Engine`. All writes go through
`Database.transaction()`, which commits on normal exit and rolls back on any
exception, so no caller has to remember to roll back by hand.

Tables:
    - products: catalog rows; `stock_units` is the only contended column
    - order_number_seq: identity table backing the human-readable order number
    - orders: order headers
    - order_items: immutable order lines with snapshotted prices
"""

import logging
from contextlib import contextmanager

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError

from .errors import PersistenceError

log = logging.getLogger(__name__)

metadata = MetaData()

MONEY = Numeric(15, 2)
RATE = Numeric(5, 2)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("product_code", String(10), unique=True),
    Column("active", Boolean, nullable=False, default=True),
    Column("stock_units", Integer, nullable=False, default=0),
    Column("vat_rate", RATE, nullable=False, default=0),
    Column("cashback_rate", RATE),
    Column("selling_price1", MONEY, nullable=False),
    Column("qty1_min", Integer, nullable=False),
    Column("qty1_max", Integer),
    Column("selling_price2", MONEY),
    Column("qty2_min", Integer),
    Column("qty2_max", Integer),
    Column("selling_price3", MONEY),
    Column("qty3_min", Integer),
    CheckConstraint("stock_units >= 0", name="ck_products_stock_units_non_negative"),
)

order_number_seq = Table(
    "order_number_seq",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    sqlite_autoincrement=True,
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("order_number", String(20), nullable=False, unique=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("payment_method", String(50), nullable=False),
    Column("mpesa_phone", String(20)),
    Column("shipping_info", JSON, nullable=False),
    Column("subtotal_excl_vat", MONEY, nullable=False),
    Column("vat_amount", MONEY, nullable=False),
    Column("shipping_cost", MONEY, nullable=False),
    Column("total_amount", MONEY, nullable=False),
    Column("total_cashback", MONEY, nullable=False),
    Column("status", String(20), nullable=False),
    Column("merchant_request_id", String(100), index=True),
    Column("checkout_request_id", String(100)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

order_items = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("order_id", Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", MONEY, nullable=False),
    Column("vat_rate", RATE, nullable=False),
    Column("subtotal_excl_vat", MONEY, nullable=False),
    Column("cashback_percent", RATE, nullable=False),
    Column("cashback_amount", MONEY, nullable=False),
    CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
)


class Database:
    """
    Thin wrapper around a SQLAlchemy engine.

    Provides scoped connections for reads and scoped transactions for writes.
    """

    def __init__(self, url: str):
        connect_args = {}
        if url.startswith("sqlite"):
            # Connections are handed between worker threads by the pool
            connect_args = {"check_same_thread": False, "timeout": 15}
        self.engine = create_engine(url, connect_args=connect_args)

    def create_all(self):
        """Creates all tables that don't exist yet."""
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self):
        """
        Opens an all-or-nothing unit of work.

        Yields:
            sqlalchemy.engine.Connection: Connection bound to the open transaction.

        Raises:
            PersistenceError: If a statement or the commit fails at the database level.
                Domain errors raised inside the block propagate unchanged, after rollback.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            log.error(f"Transaction rolled back: {e}")
            raise PersistenceError("Database transaction failed") from e

    @contextmanager
    def connect(self):
        """Opens a read connection; nothing is committed on exit."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as e:
            log.error(f"Read failed: {e}")
            raise PersistenceError("Database read failed") from e

    def dispose(self):
        self.engine.dispose()
