from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from flask import jsonify


# Maximum money value that fits Numeric(12, 2)
MAX_MONEY = Decimal("9999999999.99")

# Maximum percentage that fits Numeric(5, 2)
MAX_RATE = Decimal("999.99")

# Integer column range
MAX_INT = 2147483647

CENTS = Decimal("0.01")


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

class POSError(Exception):
    """Base for all business errors raised by the service layer."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(POSError, ValueError):
    """400-level input problem, raised before anything is persisted."""
    status_code = 400


class AuthorizationError(POSError):
    """403-level credential problem (bad admin PIN, inactive user)."""
    status_code = 403


class NotFoundError(POSError):
    """404-level missing order/product/shift/table."""
    status_code = 404


class StateError(POSError):
    """409-level precondition failure: entity is in the wrong lifecycle state."""
    status_code = 409


class ConflictError(POSError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


def error_response(exc: POSError):
    body = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), exc.status_code


# =============================================================================
# MONEY
# =============================================================================

def money(value: Any) -> Decimal:
    """
    Quantize a value to 2 decimal places, half-up.

    Floats are routed through str() so 0.1 becomes Decimal("0.1"),
    not its binary expansion.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def money_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(money(value))


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def require_fields(data: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")


def parse_money(
    value: Any,
    field: str,
    *,
    required: bool = False,
    allow_negative: bool = False,
    minimum: Decimal | None = None,
    maximum: Decimal = MAX_MONEY,
) -> Decimal:
    """
    Parse a JSON number or numeric string into a 2-place Decimal.

    Booleans are rejected explicitly (True is an int in Python).
    """
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return Decimal("0.00")

    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"{field} must be a number")

    try:
        raw = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")

    if not raw.is_finite():
        raise ValidationError(f"{field} must be a number")
    # Checked before quantize, which raises InvalidOperation on huge exponents
    if abs(raw) > maximum:
        raise ValidationError(f"{field} is out of range (max {maximum})")

    amount = money(raw)
    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    if minimum is not None and amount < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return amount


def parse_int(
    value: Any,
    field: str,
    *,
    required: bool = True,
    minimum: int | None = None,
    maximum: int = MAX_INT,
) -> int | None:
    """Strict integer parsing: rejects floats, decimals, and scientific notation."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer")
        try:
            parsed = int(stripped)
        except ValueError:
            # non-ASCII digits, or more digits than int() accepts
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if parsed > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    if parsed < -MAX_INT:
        raise ValidationError(f"{field} is out of range")
    return parsed


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    options = list(choices)
    if value not in options:
        raise ValidationError(f"{field} must be one of {options}")
    return value


def parse_text(value: Any, field: str, *, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return stripped or None


def parse_bool(value: Any, field: str, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if value in (0, 1, "0", "1", "true", "false"):
        return value in (1, "1", "true")
    raise ValidationError(f"{field} must be a boolean")
