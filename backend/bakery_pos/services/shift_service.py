"""
Shift Manager - cashier shifts and cash reconciliation

WHY: Each shift is a period of accountability for one cashier's drawer.

DESIGN PRINCIPLES:
- One open shift per user. The check before insert gives a friendly error;
  the partial unique index (user_id WHERE status='open') settles races.
- Shifts are immutable once closed; a new shift is a new row.
- Expected cash is derived at close from committed data only:
    expected = start_cash + cash sales in [start_time, end_time]
               + movements in - movements out
  Cash sales are picked by the PaymentMethod.is_cash flag.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Shift
from ..models.shifts import SHIFT_CLOSED, SHIFT_OPEN
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_int, parse_money, quantize_money
from .concurrency import begin_write, lock_for_update, run_with_retry
from . import cash_movement_service, payment_method_service, sales_service
from .cash_movement_service import InvalidAmount


class ShiftAlreadyOpen(ConflictError):
    def __init__(self, user_id: int, shift_id: int | None = None):
        super().__init__(
            f"User {user_id} already has an open shift",
            details={"user_id": user_id, "shift_id": shift_id},
        )
        self.user_id = user_id
        self.shift_id = shift_id


class NoOpenShift(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} has no open shift", details={"user_id": user_id})
        self.user_id = user_id


# =============================================================================
# READS
# =============================================================================

def get_current_shift(user_id: int) -> Shift | None:
    """The user's open shift, or None. Having no shift is not an error."""
    return (
        db.session.query(Shift)
        .filter_by(user_id=user_id, status=SHIFT_OPEN)
        .order_by(Shift.start_time.desc())
        .first()
    )


def get_shift(shift_id: int) -> Shift | None:
    return db.session.get(Shift, shift_id)


def list_user_shifts(user_id: int, page: int = 1) -> list[Shift]:
    """Shifts of a user, most recent first, SHIFT_PAGE_SIZE per page (1-based)."""
    page = parse_int(page, "page")
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    limit = current_app.config.get("SHIFT_PAGE_SIZE", 20)
    return (
        db.session.query(Shift)
        .filter_by(user_id=user_id)
        .order_by(Shift.start_time.desc(), Shift.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )


def list_movements(shift_id: int):
    return cash_movement_service.list_by_shift(shift_id)


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_shift(user_id: int, start_cash, notes: str = "") -> Shift:
    """
    Open a new shift for a user.

    Args:
        user_id: Cashier opening the shift
        start_cash: Cash in the drawer at start (decimal, >= 0)
        notes: Optional opening notes

    Raises:
        InvalidAmount: start_cash negative or not a decimal amount
        ShiftAlreadyOpen: the user already has an open shift
    """
    try:
        start_cash = parse_money(start_cash, "start_cash")
    except ValidationError as exc:
        raise InvalidAmount(exc.message) from exc

    def _op():
        begin_write()

        existing = get_current_shift(user_id)
        if existing is not None:
            raise ShiftAlreadyOpen(user_id, existing.id)

        shift = Shift(
            user_id=user_id,
            status=SHIFT_OPEN,
            start_time=utcnow(),
            start_cash=start_cash,
            notes=(notes or "").strip(),
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Partial unique index: a concurrent open won
            db.session.rollback()
            raise ShiftAlreadyOpen(user_id) from exc

        db.session.commit()
        return shift

    try:
        shift = run_with_retry(_op)
    except ShiftAlreadyOpen:
        current_app.logger.warning("Open shift rejected: user %s already has an open shift", user_id)
        raise

    current_app.logger.info("Shift %s opened for user %s with %s", shift.id, user_id, start_cash)
    return shift


def close_shift(user_id: int, declared_cash, notes: str = "") -> Shift:
    """
    Close the user's open shift and reconcile the drawer.

    Sets end_time = now, then:
        expected   = start_cash + cash_sales + movements_in - movements_out
        difference = declared_cash - expected

    Only sales with created_at in [start_time, end_time] and a cash payment
    method count, so sales arriving after end_time is fixed never change
    the result.

    Raises:
        InvalidAmount: declared_cash negative or not a decimal amount
        NoOpenShift: the user has no open shift
    """
    try:
        declared_cash = parse_money(declared_cash, "declared_cash")
    except ValidationError as exc:
        raise InvalidAmount(exc.message) from exc

    def _op():
        begin_write()

        shift = lock_for_update(
            db.session.query(Shift).filter_by(user_id=user_id, status=SHIFT_OPEN)
        ).first()
        if shift is None:
            raise NoOpenShift(user_id)

        end_time = utcnow()

        cash_method_ids = payment_method_service.get_cash_method_ids()
        cash_sales = sales_service.get_total_for_methods(shift.start_time, end_time, cash_method_ids)
        movements_in, movements_out = cash_movement_service.totals(shift.id)

        expected = Decimal(shift.start_cash) + cash_sales + movements_in - movements_out
        expected = quantize_money(expected)

        shift.end_time = end_time
        shift.end_cash_expected = expected
        shift.end_cash_declared = declared_cash
        shift.difference = quantize_money(declared_cash - expected)
        shift.status = SHIFT_CLOSED

        closing_notes = (notes or "").strip()
        if closing_notes:
            shift.notes = f"{shift.notes}\n{closing_notes}" if shift.notes else closing_notes

        db.session.commit()
        return shift

    shift = run_with_retry(_op)
    current_app.logger.info(
        "Shift %s closed for user %s: expected %s, declared %s, difference %s",
        shift.id, user_id, shift.end_cash_expected, shift.end_cash_declared, shift.difference,
    )
    return shift


def register_movement(user_id: int, amount, movement_type: str, reason: str = ""):
    """
    Record a manual cash movement against the user's open shift.

    Raises:
        InvalidAmount, InvalidMovementType: see cash_movement_service
        NoOpenShift: the user has no open shift
    """
    amount, movement_type = cash_movement_service.validate_movement(amount, movement_type)

    shift = get_current_shift(user_id)
    if shift is None:
        raise NoOpenShift(user_id)
    return cash_movement_service.record_movement(shift.id, amount, movement_type, reason)
