from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator


class ExactDecimal(TypeDecorator):
    """
    Fixed-scale decimal column.

    Python side is always decimal.Decimal at exactly `scale` digits.
    SQLite has no exact numeric storage, so values are kept as TEXT there;
    other backends use NUMERIC(precision, scale).

    Binding a float or a value with more digits than `scale` raises
    ValueError instead of rounding.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int = 15, scale: int = 2, **kwargs):
        self.precision = precision
        self.scale = scale
        self._quantum = Decimal(1).scaleb(-scale)
        super().__init__(precision=precision, scale=scale, asdecimal=True, **kwargs)

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float) or isinstance(value, bool):
            raise ValueError(f"Refusing to store {type(value).__name__} {value!r} in an exact decimal column")
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantized = value.quantize(self._quantum)
        if quantized != value:
            raise ValueError(f"{value} exceeds {self.scale} decimal places")
        if dialect.name == "sqlite":
            return str(quantized)
        return quantized

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(self._quantum)


def Money():
    return ExactDecimal(15, 2)


def Quantity():
    return ExactDecimal(12, 4)


def Rate():
    return ExactDecimal(5, 4)


def Cost():
    return ExactDecimal(15, 4)
