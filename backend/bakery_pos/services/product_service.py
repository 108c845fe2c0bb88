# Overview: Product lookups consumed by the stock ledger and the sale engine.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Product
from ..validation import NotFoundError, ValidationError, parse_money


def get_product(product_id: int) -> Product | None:
    """Return the product or None. Not finding it is not an error here."""
    return db.session.get(Product, product_id)


def get_products_by_ids(product_ids: Iterable[int]) -> dict[int, Product]:
    """Batch lookup: one query for all distinct ids. Missing ids are simply absent."""
    ids = set(product_ids)
    if not ids:
        return {}
    products = db.session.query(Product).filter(Product.id.in_(ids)).all()
    return {p.id: p for p in products}


def create_product(name: str, unit_price) -> Product:
    """Minimal creation used for seeding; catalog management is handled elsewhere."""
    if not name or not name.strip():
        raise ValidationError("name is required")
    product = Product(name=name.strip(), unit_price=parse_money(unit_price, "unit_price"))
    db.session.add(product)
    db.session.commit()
    return product


def set_unit_price(product_id: int, unit_price) -> Product:
    """
    Change the live price. Sales already committed keep their snapshot.
    """
    product = get_product(product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    product.unit_price = parse_money(unit_price, "unit_price")
    db.session.commit()
    return product
