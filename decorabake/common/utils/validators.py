from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from ..errors import ValidationError


CENT = Decimal("0.01")


def to_money(value: Any, field: str) -> Decimal:
    """Parse a money amount into a two-place Decimal; negative amounts are rejected."""
    if value is None or value == "":
        return Decimal("0.00")
    try:
        amount = Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", field=field)
    return amount


def ensure_positive_int(value: Any, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0", field=field)
    return number


def require_text(value: Optional[str], field: str) -> str:
    if isinstance(value, (dict, list)):
        raise ValidationError(f"{field} must be text", field=field)
    text = str(value if value is not None else "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def validate_currency(value: Optional[str]) -> str:
    v = str(value or "AUD").strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValidationError("Invalid currency code: expected ISO4217 length 3", field="CURRENCY")
    return v
