from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import money_str


SHIFT_OPEN = "open"
SHIFT_CLOSED = "closed"

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"


class Shift(db.Model):
    """
    Cashier shift: one user accountable for the cash drawer.

    LIFECYCLE:
    - open: created by open_shift, start_time fixed
    - closed: end_time, expected/declared cash and difference calculated

    A user holds at most one open shift. The partial unique index makes the
    database reject a second one even when two opens race.
    IMMUTABLE: once closed, a shift is never reopened or modified.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_user_open",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
        db.Index("ix_shifts_user_start", "user_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    start_cash = db.Column(db.Numeric(12, 2), nullable=False)
    # Derived sums; wider than the per-entry amount columns
    end_cash_expected = db.Column(db.Numeric(18, 2), nullable=True)  # start + cash sales + in - out
    end_cash_declared = db.Column(db.Numeric(12, 2), nullable=True)  # counted by the cashier
    difference = db.Column(db.Numeric(18, 2), nullable=True)  # declared - expected

    notes = db.Column(db.Text, nullable=False, default="")
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SHIFT_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "start_cash": money_str(self.start_cash),
            "end_cash_expected": money_str(self.end_cash_expected),
            "end_cash_declared": money_str(self.end_cash_declared),
            "difference": money_str(self.difference),
            "notes": self.notes,
        }


class CashMovement(db.Model):
    """
    Manual cash in/out during a shift (e.g. cash taken out to pay a supplier).

    Append-only: never updated or deleted.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
        db.CheckConstraint("type IN ('in', 'out')", name="ck_cash_movements_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    type = db.Column(db.String(8), nullable=False)
    reason = db.Column(db.String(255), nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "amount": money_str(self.amount),
            "type": self.type,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
