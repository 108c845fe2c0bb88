from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


CENTS = Decimal("0.01")

# Maximum amount: 9,999,999,999.99 fits Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


class PosError(Exception):
    """Base for every typed failure raised by the point-of-sale core."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PosError, ValueError):
    """400-level input problem, rejected before any transaction opens."""


class NotFoundError(PosError, LookupError):
    """404-level: a referenced entity does not exist."""


class ConflictError(PosError):
    """409-level business rule conflict (e.g., insufficient stock)."""


class InfrastructureError(PosError):
    """Storage/transaction failure. The transaction has already been rolled back."""


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_money(value: Any, field: str = "amount", *, allow_negative: bool = False) -> Decimal:
    """
    Normalize a money input to a 2-place Decimal.

    Accepts Decimal, int or a plain numeric string ("12", "12.5", "12.50").
    Floats are rejected: binary floating point cannot represent cents exactly.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a decimal amount")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string, not a float")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e3")
        if not stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain decimal amount")
        try:
            amount = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a decimal amount")
    else:
        raise ValidationError(f"{field} must be a decimal amount")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite amount")

    amount = quantize_money(amount)
    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum allowed amount")
    return amount


def parse_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats and decimal strings."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "." in stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def money_str(value: Decimal | None) -> str | None:
    """Serialize money as a fixed 2-place string ("200.00")."""
    if value is None:
        return None
    return str(quantize_money(Decimal(value)))
