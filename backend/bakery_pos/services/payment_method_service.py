# Overview: Payment method lookups; identifies cash by flag, never by display name.

from __future__ import annotations

from ..extensions import db
from ..models import PaymentMethod
from ..validation import ValidationError


def get_payment_method(payment_method_id: int) -> PaymentMethod | None:
    return db.session.get(PaymentMethod, payment_method_id)


def get_cash_method_ids() -> list[int]:
    """
    Ids of every payment method flagged as cash.

    Queried inside each close_shift transaction rather than cached per
    process, so a method re-flagged by the catalog owner applies to the next
    close without a restart.
    """
    rows = db.session.query(PaymentMethod.id).filter(PaymentMethod.is_cash.is_(True)).all()
    return [row.id for row in rows]


def create_payment_method(name: str, *, is_cash: bool = False, reference: str | None = None) -> PaymentMethod:
    if not name or not name.strip():
        raise ValidationError("name is required")
    method = PaymentMethod(name=name.strip(), reference=reference, is_cash=is_cash)
    db.session.add(method)
    db.session.commit()
    return method
