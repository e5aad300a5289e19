"""Tests for the transaction scope of the order database."""

import pytest
from sqlalchemy import func, insert, select, update

from order_service.database import order_number_seq, products
from order_service.errors import PersistenceError, StockError


def stock_of(db, product_id):
    with db.connect() as conn:
        return conn.execute(select(products.c.stock_units).where(products.c.id == product_id)).scalar_one()


def sequence_rows(db):
    with db.connect() as conn:
        return conn.execute(select(func.count()).select_from(order_number_seq)).scalar_one()


def test_commits_on_normal_exit(db, product_7):
    with db.transaction() as conn:
        conn.execute(update(products).where(products.c.id == 7).values(stock_units=4))
    assert stock_of(db, 7) == 4


def test_integrity_error_becomes_persistence_error(db, product_7):
    with pytest.raises(PersistenceError):
        with db.transaction() as conn:
            conn.execute(insert(order_number_seq))
            conn.execute(update(products).where(products.c.id == 7).values(stock_units=-1))

    assert stock_of(db, 7) == 10
    assert sequence_rows(db) == 0


def test_domain_errors_pass_through_after_rollback(db, product_7):
    with pytest.raises(StockError):
        with db.transaction() as conn:
            conn.execute(update(products).where(products.c.id == 7).values(stock_units=1))
            raise StockError(7, 5, available=1)

    assert stock_of(db, 7) == 10
