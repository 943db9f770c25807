from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum amount: 9,999,999,999.99, the range of a Numeric(12, 2) column
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem the operator can correct."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConflictError(ValueError):
    """409-level business rule conflict (already refunded, illegal transition)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class IntegrityError(RuntimeError):
    """Partial write detected inside a commit; the whole unit is rolled back."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LookupError):
    """404-level missing record."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def parse_amount(value: Any, field: str, *, required: bool = True, allow_zero: bool = True) -> Decimal | None:
    """
    Parse a monetary amount from JSON input.

    Accepts strings ("12.50"), ints and floats. Rejects booleans, negatives,
    more than 2 decimal places and values outside the column range.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})

    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", details={"field": field})
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    if not allow_zero and amount == 0:
        raise ValidationError(f"{field} must be greater than zero", details={"field": field})
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} cannot have more than 2 decimal places", details={"field": field})
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum allowed amount", details={"field": field})
    return amount


def parse_positive_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects floats, bools and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        result = int(stripped)
    else:
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if result <= 0:
        raise ValidationError(f"{field} must be positive", details={"field": field})
    return result
