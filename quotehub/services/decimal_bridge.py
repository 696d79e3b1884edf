"""
Conversion between stored decimal strings and in-memory Decimals.

Monetary columns hold plain base-10 strings ("1234.50"). All arithmetic runs
on ``decimal.Decimal`` at full precision; values are rounded to cents only
when written back (``to_storage``) or displayed (``round_money``).
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

import structlog

from ..errors import MalformedDecimal, ValidationError


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Integer digits that still fit a cents-quantized value in the default
# 28-digit context and a String(32) money column.
MAX_INTEGER_DIGITS = 26

STORED_DECIMAL = re.compile(r"-?\d+(\.\d+)?")

Number = Union[Decimal, int, float, str]


def round_money(value: Decimal) -> Decimal:
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.error("decimal_overflow", value=str(value))
        raise MalformedDecimal(value)


def from_storage(value: str) -> Decimal:
    """Parse a stored decimal string. Raises MalformedDecimal on anything but plain base-10."""
    if not isinstance(value, str):
        logger.error("malformed_decimal", value=repr(value), reason="not a string")
        raise MalformedDecimal(value)
    if not STORED_DECIMAL.fullmatch(value):
        logger.error("malformed_decimal", value=value, reason="not a plain decimal")
        raise MalformedDecimal(value)
    return Decimal(value)


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise MalformedDecimal(value)
        return value
    if isinstance(value, bool):
        raise MalformedDecimal(value)
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # repr() first so 0.1 stays 0.1 instead of its binary expansion
        parsed = Decimal(repr(value))
        if not parsed.is_finite():
            raise MalformedDecimal(value)
        return parsed
    return from_storage(value)


def to_storage(value: Number, field: str = "amount") -> str:
    """Round to cents and render without exponent notation."""
    amount = to_decimal(value)
    if amount and amount.adjusted() >= MAX_INTEGER_DIGITS:
        raise ValidationError([field], f"{field} is too large")
    return format(round_money(amount), "f")
