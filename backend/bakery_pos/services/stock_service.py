"""
Stock Ledger Service

WHY: One authoritative quantity per product, safe under concurrent sales.

INVARIANTS:
- At most one StockRecord per product; created only by initialize_stock.
- quantity never goes negative. Every mutation is a single conditional
  UPDATE (quantity + delta >= 0) and the affected row count decides the
  outcome. There is no read-then-write path.
- Products with different ids never contend: the only lock taken is the
  row lock of the record being updated.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, StockRecord
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    money_str,
    parse_int,
)
from .concurrency import begin_write, run_with_retry
from . import product_service


class InvalidQuantity(ValidationError):
    """Quantity outside the allowed range."""


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", details={"product_id": product_id})
        self.product_id = product_id


class StockRecordNotFound(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"No stock record for product {product_id}", details={"product_id": product_id})
        self.product_id = product_id


class StockRecordAlreadyExists(ConflictError):
    def __init__(self, product_id: int):
        super().__init__(f"Stock already initialized for product {product_id}", details={"product_id": product_id})
        self.product_id = product_id


class InsufficientStock(ConflictError):
    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} (available: {available}, requested: {requested})",
            details={
                "product_id": product_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


# =============================================================================
# READS
# =============================================================================

def get_stock(product_id: int) -> StockRecord | None:
    """Return the record, or None when the product has no stock record."""
    return db.session.query(StockRecord).filter_by(product_id=product_id).first()


def list_stock() -> list[dict]:
    """All stock records with product details, ordered by product name."""
    rows = (
        db.session.query(StockRecord, Product)
        .join(Product, Product.id == StockRecord.product_id)
        .order_by(Product.name, Product.id)
        .all()
    )
    return [
        {
            "product_id": product.id,
            "product_name": product.name,
            "unit_price": money_str(product.unit_price),
            "quantity": record.quantity,
            "updated_at": to_utc_z(record.updated_at),
        }
        for record, product in rows
    ]


def has_sufficient_stock(product_id: int, quantity_needed: int) -> bool:
    """
    Advisory check for display purposes only. A missing record counts as zero.

    NOTE: Never use this to guard a decrement; apply_stock_delta is the check.
    """
    record = get_stock(product_id)
    if record is None:
        return False
    return record.quantity >= quantity_needed


def get_low_stock_alerts(threshold: int | None = None) -> list[dict]:
    """Records at or below threshold, lowest quantity first."""
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    threshold = parse_int(threshold, "threshold")

    rows = (
        db.session.query(StockRecord, Product)
        .join(Product, Product.id == StockRecord.product_id)
        .filter(StockRecord.quantity <= threshold)
        .order_by(StockRecord.quantity, Product.name)
        .all()
    )
    return [
        {
            "product_id": product.id,
            "product_name": product.name,
            "quantity": record.quantity,
            "threshold": threshold,
        }
        for record, product in rows
    ]


# =============================================================================
# WRITES
# =============================================================================

def initialize_stock(product_id: int, initial_quantity: int) -> StockRecord:
    """
    Create the stock record for a product.

    Raises:
        InvalidQuantity: initial_quantity < 0
        ProductNotFound: product lookup did not resolve
        StockRecordAlreadyExists: product already has a record
    """
    try:
        initial_quantity = parse_int(initial_quantity, "initial_quantity")
    except ValidationError as exc:
        raise InvalidQuantity(exc.message) from exc
    if initial_quantity < 0:
        raise InvalidQuantity("initial_quantity must be 0 or greater")

    if product_service.get_product(product_id) is None:
        raise ProductNotFound(product_id)

    if get_stock(product_id) is not None:
        raise StockRecordAlreadyExists(product_id)

    def _op():
        now = utcnow()
        record = StockRecord(
            product_id=product_id,
            quantity=initial_quantity,
            created_at=now,
            updated_at=now,
        )
        db.session.add(record)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Lost the race against a concurrent initialization
            db.session.rollback()
            raise StockRecordAlreadyExists(product_id) from exc
        db.session.commit()
        return record

    record = run_with_retry(_op)
    current_app.logger.info("Stock initialized for product %s: %s", product_id, initial_quantity)
    return record


def apply_stock_delta(product_id: int, delta: int) -> StockRecord:
    """
    Apply quantity += delta inside the caller's transaction (no commit).

    Single conditional write; the WHERE clause carries the non-negativity
    check so concurrent callers cannot both pass it on stale reads.

    Raises:
        StockRecordNotFound: no record for product_id
        InsufficientStock: quantity + delta would be negative
    """
    stmt = (
        update(StockRecord)
        .where(
            StockRecord.product_id == product_id,
            StockRecord.quantity + delta >= 0,
        )
        .values(quantity=StockRecord.quantity + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount == 1:
        return (
            db.session.query(StockRecord)
            .populate_existing()
            .filter_by(product_id=product_id)
            .one()
        )

    # No row matched: either missing or the condition failed.
    available = (
        db.session.query(StockRecord.quantity)
        .filter_by(product_id=product_id)
        .scalar()
    )
    if available is None:
        raise StockRecordNotFound(product_id)
    raise InsufficientStock(product_id, available=available, requested=-delta)


def adjust_stock(product_id: int, delta: int) -> StockRecord:
    """
    Atomically adjust stock by delta and commit. Returns the updated record.

    Raises:
        InvalidQuantity: delta is not an integer
        StockRecordNotFound, InsufficientStock: see apply_stock_delta
    """
    try:
        delta = parse_int(delta, "delta")
    except ValidationError as exc:
        raise InvalidQuantity(exc.message) from exc

    def _op():
        begin_write()
        record = apply_stock_delta(product_id, delta)
        db.session.commit()
        return record

    try:
        record = run_with_retry(_op)
    except InsufficientStock as exc:
        current_app.logger.warning("Stock adjustment rejected: %s", exc.message)
        raise

    current_app.logger.info("Stock adjusted for product %s by %+d -> %s", product_id, delta, record.quantity)
    return record
