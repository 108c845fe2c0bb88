"""
Sale Engine - walk-in sales with atomic stock decrement

WHY: A sale and the stock it consumes must land together or not at all.

DESIGN:
- Validation and lookups (basket, payment method, product prices) happen
  before the transaction opens; they only read.
- Header, items and every stock decrement share one transaction. The
  decrement is the conditional write in stock_service, so the stock check
  is re-done atomically at write time, never trusted from an earlier read.
- unit_price is copied from the product at sale time. Later price changes
  never alter a committed sale.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import PaymentMethod, Sale, SaleItem
from ..time_utils import local_day_bounds, to_local_date, utcnow
from ..validation import NotFoundError, ValidationError, parse_int, quantize_money
from .concurrency import begin_write, run_with_retry
from .stock_service import (
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    StockRecordNotFound,
    apply_stock_delta,
)
from . import payment_method_service, product_service


class EmptyBasket(ValidationError):
    def __init__(self):
        super().__init__("A sale needs at least one item")


class PaymentMethodNotFound(NotFoundError):
    def __init__(self, payment_method_id: int):
        super().__init__(
            f"Payment method {payment_method_id} not found",
            details={"payment_method_id": payment_method_id},
        )
        self.payment_method_id = payment_method_id


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class CreateSaleRequest:
    payment_method_id: int
    items: list[SaleItemRequest] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "CreateSaleRequest":
        """Build a typed request from a decoded JSON body."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be an object")
        if data.get("payment_method_id") is None:
            raise ValidationError("payment_method_id is required")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise ValidationError("each item must be an object")
            items.append(
                SaleItemRequest(
                    product_id=parse_int(raw.get("product_id"), "product_id"),
                    quantity=parse_int(raw.get("quantity"), "quantity"),
                )
            )
        return cls(
            payment_method_id=parse_int(data["payment_method_id"], "payment_method_id"),
            items=items,
        )


def _to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return quantize_money(Decimal(str(value)))


# =============================================================================
# CREATE
# =============================================================================

def create_sale(payment_method_id: int, items: Iterable[SaleItemRequest | tuple[int, int]]) -> Sale:
    """
    Validate a basket and commit the sale plus its stock decrements atomically.

    Args:
        payment_method_id: Payment method used by the customer
        items: SaleItemRequest objects or (product_id, quantity) pairs

    Raises:
        EmptyBasket, InvalidQuantity: before any lookup
        PaymentMethodNotFound, ProductNotFound: before the transaction opens
        InsufficientStock: inside the transaction; nothing is persisted
    """
    basket = []
    for item in items:
        if not isinstance(item, SaleItemRequest):
            item = SaleItemRequest(*item)
        qty = parse_int(item.quantity, "quantity")
        if qty <= 0:
            raise InvalidQuantity(
                f"Quantity for product {item.product_id} must be greater than 0",
                details={"product_id": item.product_id, "quantity": qty},
            )
        basket.append(SaleItemRequest(product_id=parse_int(item.product_id, "product_id"), quantity=qty))

    if not basket:
        raise EmptyBasket()

    if payment_method_service.get_payment_method(payment_method_id) is None:
        raise PaymentMethodNotFound(payment_method_id)

    products = product_service.get_products_by_ids(item.product_id for item in basket)

    lines = []
    subtotal = Decimal("0.00")
    for item in basket:
        product = products.get(item.product_id)
        if product is None:
            raise ProductNotFound(item.product_id)
        unit_price = _to_money(product.unit_price)
        line_subtotal = quantize_money(unit_price * item.quantity)
        subtotal += line_subtotal
        lines.append((item, unit_price, line_subtotal))

    # Same product on several lines is decremented once with the summed
    # quantity. Sorted so concurrent baskets lock rows in the same order.
    per_product: dict[int, int] = {}
    for item in basket:
        per_product[item.product_id] = per_product.get(item.product_id, 0) + item.quantity
    decrements = OrderedDict(sorted(per_product.items()))

    def _op():
        begin_write()

        sale = Sale(
            payment_method_id=payment_method_id,
            subtotal=subtotal,
            total=subtotal,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        for item, unit_price, line_subtotal in lines:
            db.session.add(
                SaleItem(
                    sale_id=sale.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    line_subtotal=line_subtotal,
                )
            )
        db.session.flush()

        for product_id, quantity in decrements.items():
            try:
                apply_stock_delta(product_id, -quantity)
            except StockRecordNotFound as exc:
                # A product never stocked has nothing to sell
                raise InsufficientStock(product_id, available=0, requested=quantity) from exc

        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except InsufficientStock as exc:
        current_app.logger.warning("Sale rejected: %s", exc.message)
        raise

    current_app.logger.info(
        "Sale %s committed: %d item(s), total %s, payment method %s",
        sale.id, len(lines), subtotal, payment_method_id,
    )
    return sale


def create_sale_from_request(request: CreateSaleRequest) -> Sale:
    return create_sale(request.payment_method_id, request.items)


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale | None:
    """Sale with items, or None."""
    return db.session.get(Sale, sale_id)


def list_sales() -> list[Sale]:
    """All sales, most recent first."""
    return (
        db.session.query(Sale)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )


def list_sales_by_date(day: date) -> list[Sale]:
    """Sales within the local business day [start_of_day, end_of_day), most recent first."""
    start, end = local_day_bounds(day, current_app.config.get("STORE_TIMEZONE", "UTC"))
    return (
        db.session.query(Sale)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )


def get_total_for_methods(start: datetime, end: datetime, payment_method_ids: list[int]) -> Decimal:
    """
    Sum of sale totals paid with any of payment_method_ids and created
    within [start, end] (both inclusive).
    """
    if not payment_method_ids:
        return Decimal("0.00")
    total = (
        db.session.query(func.coalesce(func.sum(Sale.total), 0))
        .filter(
            Sale.payment_method_id.in_(payment_method_ids),
            Sale.created_at >= start,
            Sale.created_at <= end,
        )
        .scalar()
    )
    return _to_money(total)


def get_sales_stats(start: datetime, end: datetime) -> dict:
    """
    Totals over [start, end): amount, count and amount per payment method name.
    """
    total_amount, total_count = (
        db.session.query(func.coalesce(func.sum(Sale.total), 0), func.count(Sale.id))
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .one()
    )

    by_method_rows = (
        db.session.query(PaymentMethod.name, func.coalesce(func.sum(Sale.total), 0))
        .join(PaymentMethod, PaymentMethod.id == Sale.payment_method_id)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .group_by(PaymentMethod.name)
        .all()
    )

    return {
        "total_amount": _to_money(total_amount),
        "total_count": int(total_count or 0),
        "by_method": {name: _to_money(amount) for name, amount in by_method_rows},
    }


def get_sales_history(days: int = 7) -> list[dict]:
    """
    Daily sale totals for the last `days` days, oldest first.

    Days are local business days (STORE_TIMEZONE). Days without sales are omitted.
    """
    days = parse_int(days, "days")
    if days <= 0:
        raise ValidationError("days must be greater than 0")

    tz_name = current_app.config.get("STORE_TIMEZONE", "UTC")
    since = utcnow() - timedelta(days=days)
    rows = (
        db.session.query(Sale.created_at, Sale.total)
        .filter(Sale.created_at >= since)
        .order_by(Sale.created_at)
        .all()
    )

    totals: dict[date, Decimal] = OrderedDict()
    for created_at, total in rows:
        day = to_local_date(created_at, tz_name)
        totals[day] = totals.get(day, Decimal("0.00")) + _to_money(total)

    return [
        {"date": day.isoformat(), "amount": amount}
        for day, amount in totals.items()
    ]
