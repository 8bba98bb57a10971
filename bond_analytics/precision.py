"""
High-precision arithmetic for monetary and rate values.

Every solver in the package works in Decimal so that 50-100 iterations do not
accumulate binary floating-point error. Floats are accepted as inputs (through
their shortest repr, not their binary expansion) but only leave the package
through `to_float`, which is for display.
"""
from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .config import DECIMAL_PRECISION
from .errors import DivisionByZero, NegativeRadicand

Number = Union[Decimal, int, float, str]

CONTEXT = Context(prec=DECIMAL_PRECISION, rounding=ROUND_HALF_UP)

ZERO = Decimal(0)
ONE = Decimal(1)
TWO = Decimal(2)
HUNDRED = Decimal(100)
BP = Decimal("0.0001")
TEN_THOUSAND = Decimal(10000)


def to_decimal(value: Number) -> Decimal:
    """Convert value to a finite Decimal."""
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric amount")
    if isinstance(value, Decimal):
        out = value
    elif isinstance(value, int):
        out = Decimal(value)
    elif isinstance(value, float):
        out = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            out = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Invalid decimal value: {value!r}") from None
    else:
        raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")

    if not out.is_finite():
        raise ValueError(f"Invalid decimal value: {value!r}")
    return out


def add(a: Number, b: Number) -> Decimal:
    return CONTEXT.add(to_decimal(a), to_decimal(b))


def subtract(a: Number, b: Number) -> Decimal:
    return CONTEXT.subtract(to_decimal(a), to_decimal(b))


def multiply(a: Number, b: Number) -> Decimal:
    return CONTEXT.multiply(to_decimal(a), to_decimal(b))


def divide(a: Number, b: Number) -> Decimal:
    divisor = to_decimal(b)
    if divisor.is_zero():
        raise DivisionByZero(f"Division by zero: {a} / {b}")
    return CONTEXT.divide(to_decimal(a), divisor)


def power(base: Number, exponent: Number) -> Decimal:
    """
    base ** exponent for integral and fractional exponents.

    A fractional exponent needs a non-negative base; zero to a negative power
    is a division by zero.
    """
    b = to_decimal(base)
    e = to_decimal(exponent)

    if b.is_zero():
        if e < 0:
            raise DivisionByZero(f"Zero raised to negative power {e}")
        return ONE if e.is_zero() else ZERO

    if b < 0 and e != e.to_integral_value():
        raise NegativeRadicand(f"Negative base {b} with fractional exponent {e}")

    return CONTEXT.power(b, e)


def sqrt(value: Number) -> Decimal:
    v = to_decimal(value)
    if v < 0:
        raise NegativeRadicand(f"Square root of negative number {v}")
    return CONTEXT.sqrt(v)


def absolute(value: Number) -> Decimal:
    return CONTEXT.abs(to_decimal(value))


def minimum(a: Number, b: Number) -> Decimal:
    da, db = to_decimal(a), to_decimal(b)
    return da if da <= db else db


def maximum(a: Number, b: Number) -> Decimal:
    da, db = to_decimal(a), to_decimal(b)
    return da if da >= db else db


def clamp(value: Number, lower: Number, upper: Number) -> Decimal:
    return minimum(maximum(value, lower), upper)


def is_close(a: Number, b: Number, tolerance: Number = Decimal("1e-10")) -> bool:
    return absolute(subtract(a, b)) <= to_decimal(tolerance)


def round_to(value: Number, places: int) -> Decimal:
    return to_decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def to_float(value: Number) -> float:
    """One-way conversion for display. Never feed the result back into a solver."""
    return float(to_decimal(value))


def to_fixed(value: Number, places: int = 2) -> str:
    return f"{round_to(value, places):f}"


def to_percent(value: Number, places: int = 3) -> str:
    """0.0525 -> '5.250%'"""
    return to_fixed(multiply(value, HUNDRED), places) + "%"


def to_bps(value: Number, places: int = 0) -> str:
    """0.0125 -> '125bp'"""
    return to_fixed(multiply(value, TEN_THOUSAND), places) + "bp"
