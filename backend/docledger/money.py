# Overview: Exact decimal arithmetic for money, quantities, rates and costs.

"""
Decimal value layer.

All money and quantity values are decimal.Decimal. Floats are refused at the
boundary, and a value carrying more fractional digits than its field allows
is a validation error, never a silent truncation.

Rounding is ROUND_HALF_UP and happens once, where an amount is persisted:
- line net  = round2(quantity * unit_price)
- line vat  = round2(net * vat_rate)
- line gross = net + vat
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError

MONEY_SCALE = 2
PRICE_SCALE = 2
QUANTITY_SCALE = 4
RATE_SCALE = 4
COST_SCALE = 4

ZERO = Decimal("0")

# Upper bounds keep values inside NUMERIC(15, x) columns
MAX_MONEY = Decimal("9999999999999.99")
MAX_QUANTITY = Decimal("99999999.9999")


def _quantum(scale: int) -> Decimal:
    return Decimal(1).scaleb(-scale)


def to_decimal(
    value: Any,
    *,
    field: str,
    scale: int,
    minimum: Decimal | None = None,
    maximum: Decimal | None = None,
    exclusive_minimum: bool = False,
) -> Decimal:
    """
    Parse an input value into an exact Decimal with at most `scale` fractional digits.

    Accepts Decimal, int and numeric strings. Rejects bool, float, NaN,
    infinities, exponent notation and excess scale.
    """
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string or integer, not {type(value).__name__}", field=field)

    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number", field=field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must not use exponent notation", field=field)
        try:
            d = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", field=field)
    else:
        raise ValidationError(f"{field} must be a number", field=field)

    if not d.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)

    try:
        quantized = d.quantize(_quantum(scale))
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range", field=field)
    if quantized != d:
        raise ValidationError(
            f"{field} allows at most {scale} decimal places", field=field
        )

    if minimum is not None:
        if exclusive_minimum and quantized <= minimum:
            raise ValidationError(f"{field} must be greater than {minimum}", field=field)
        if not exclusive_minimum and quantized < minimum:
            raise ValidationError(f"{field} must be at least {minimum}", field=field)
    if maximum is not None and quantized > maximum:
        raise ValidationError(f"{field} must be at most {maximum}", field=field)

    return quantized


def parse_quantity(value: Any, *, field: str = "quantity", scale: int = QUANTITY_SCALE) -> Decimal:
    return to_decimal(value, field=field, scale=scale, minimum=ZERO, exclusive_minimum=True, maximum=MAX_QUANTITY)


def parse_signed_quantity(value: Any, *, field: str = "quantity", scale: int = QUANTITY_SCALE) -> Decimal:
    d = to_decimal(value, field=field, scale=scale, minimum=-MAX_QUANTITY, maximum=MAX_QUANTITY)
    if d == ZERO:
        raise ValidationError(f"{field} must not be zero", field=field)
    return d


def parse_price(value: Any, *, field: str = "unit_price") -> Decimal:
    return to_decimal(value, field=field, scale=PRICE_SCALE, minimum=ZERO, maximum=MAX_MONEY)


def parse_amount(value: Any, *, field: str = "amount") -> Decimal:
    return to_decimal(value, field=field, scale=MONEY_SCALE, minimum=ZERO, exclusive_minimum=True, maximum=MAX_MONEY)


def parse_vat_rate(value: Any, *, field: str = "vat_rate") -> Decimal:
    return to_decimal(value, field=field, scale=RATE_SCALE, minimum=ZERO, maximum=Decimal("1"))


def round_half_up(value: Decimal, scale: int) -> Decimal:
    return value.quantize(_quantum(scale), rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return round_half_up(value, MONEY_SCALE)


def round_quantity(value: Decimal) -> Decimal:
    return round_half_up(value, QUANTITY_SCALE)


def round_cost(value: Decimal) -> Decimal:
    return round_half_up(value, COST_SCALE)


def floor_money(value: Decimal) -> Decimal:
    return value.quantize(_quantum(MONEY_SCALE), rounding=ROUND_FLOOR)


def line_totals(quantity: Decimal, unit_price: Decimal, vat_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """Return (net, vat, gross) for one document line."""
    net = round_money(quantity * unit_price)
    vat = round_money(net * vat_rate)
    return net, vat, net + vat


def format_decimal(value: Decimal | None, scale: int) -> str | None:
    """Fixed-scale string for JSON output."""
    if value is None:
        return None
    return str(value.quantize(_quantum(scale)))
