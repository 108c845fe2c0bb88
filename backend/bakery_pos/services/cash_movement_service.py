# Overview: Append-only log of manual cash in/out events tied to a shift.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CashMovement, Shift
from ..models.shifts import MOVEMENT_IN, MOVEMENT_OUT
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_money, quantize_money
from .concurrency import begin_write, lock_for_update, run_with_retry


MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT)


class InvalidAmount(ValidationError):
    """Amount must be strictly positive."""


class InvalidMovementType(ValidationError):
    def __init__(self, movement_type):
        super().__init__(
            f"Invalid movement type {movement_type!r}, expected 'in' or 'out'",
            details={"type": movement_type},
        )


class ShiftNotFound(NotFoundError):
    def __init__(self, shift_id: int):
        super().__init__(f"Shift {shift_id} not found", details={"shift_id": shift_id})
        self.shift_id = shift_id


class ShiftNotOpen(ConflictError):
    def __init__(self, shift_id: int):
        super().__init__(f"Shift {shift_id} is closed", details={"shift_id": shift_id})
        self.shift_id = shift_id


def validate_movement(amount, movement_type: str):
    """Normalize (amount, type) or raise InvalidAmount / InvalidMovementType."""
    try:
        amount = parse_money(amount, "amount", allow_negative=True)
    except ValidationError as exc:
        raise InvalidAmount(exc.message) from exc
    if amount <= 0:
        raise InvalidAmount("amount must be greater than 0")

    movement_type = (movement_type or "").strip().lower()
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidMovementType(movement_type)
    return amount, movement_type


def record_movement(shift_id: int, amount, movement_type: str, reason: str = "") -> CashMovement:
    """
    Append an immutable cash movement to a shift.

    The caller resolves shift_id (see shift_service.register_movement, which
    attaches the movement to the user's open shift).

    Raises:
        InvalidAmount: amount <= 0 or not a decimal amount
        InvalidMovementType: type not in ('in', 'out')
        ShiftNotFound, ShiftNotOpen: shift missing or already closed
    """
    amount, movement_type = validate_movement(amount, movement_type)

    def _op():
        begin_write()
        # Row lock serializes against close_shift reading the totals
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if shift is None:
            raise ShiftNotFound(shift_id)
        if not shift.is_open:
            raise ShiftNotOpen(shift_id)

        movement = CashMovement(
            shift_id=shift_id,
            amount=amount,
            type=movement_type,
            reason=(reason or "").strip(),
            created_at=utcnow(),
        )
        db.session.add(movement)
        db.session.commit()
        return movement

    movement = run_with_retry(_op)
    current_app.logger.info(
        "Cash movement %s recorded on shift %s: %s %s",
        movement.id, shift_id, movement_type, amount,
    )
    return movement


def list_by_shift(shift_id: int) -> list[CashMovement]:
    """Movements of a shift, newest first."""
    return (
        db.session.query(CashMovement)
        .filter_by(shift_id=shift_id)
        .order_by(CashMovement.created_at.desc(), CashMovement.id.desc())
        .all()
    )


def totals(shift_id: int) -> tuple[Decimal, Decimal]:
    """(sum_in, sum_out) for a shift. Missing types count as zero."""
    rows = (
        db.session.query(CashMovement.type, func.coalesce(func.sum(CashMovement.amount), 0))
        .filter(CashMovement.shift_id == shift_id)
        .group_by(CashMovement.type)
        .all()
    )
    sums = {movement_type: quantize_money(Decimal(str(total))) for movement_type, total in rows}
    zero = Decimal("0.00")
    return sums.get(MOVEMENT_IN, zero), sums.get(MOVEMENT_OUT, zero)
