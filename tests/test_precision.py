import decimal
from decimal import Decimal

import pytest

from bond_analytics.errors import AnalyticsError, DivisionByZero, NegativeRadicand
from bond_analytics.precision import (
    absolute,
    add,
    clamp,
    divide,
    is_close,
    maximum,
    minimum,
    power,
    round_to,
    sqrt,
    to_bps,
    to_decimal,
    to_fixed,
    to_float,
    to_percent,
)


def test_float_inputs_use_shortest_repr():
    assert to_decimal(0.1) == Decimal("0.1"), "0.1 must not carry its binary expansion"
    assert to_decimal("  2.50 ") == Decimal("2.50")
    assert to_decimal(3) == Decimal(3)


def test_repeated_addition_does_not_drift():
    total = Decimal(0)
    for _ in range(10):
        total = add(total, 0.1)
    assert total == Decimal("1.0"), "ten additions of 0.1 must be exactly 1"


@pytest.mark.parametrize("bad", ["abc", "nan", "inf", float("nan")])
def test_invalid_values_rejected(bad):
    with pytest.raises(ValueError):
        to_decimal(bad)


def test_bool_and_unknown_types_rejected():
    with pytest.raises(TypeError):
        to_decimal(True)
    with pytest.raises(TypeError):
        to_decimal(object())


def test_divide_by_zero():
    with pytest.raises(DivisionByZero) as exc:
        divide(1, 0)
    assert isinstance(exc.value, ZeroDivisionError)
    assert isinstance(exc.value, AnalyticsError)
    assert not isinstance(exc.value, decimal.DivisionByZero), "engine error, not the decimal signal"


def test_power_integral_and_fractional():
    assert power(2, 10) == Decimal(1024)
    assert power(4, Decimal("0.5")) == Decimal(2)
    assert power(Decimal("-2"), 3) == Decimal(-8), "integral exponent allows negative base"
    assert power(0, 0) == Decimal(1)


def test_power_errors():
    with pytest.raises(NegativeRadicand):
        power(-8, Decimal("0.5"))
    with pytest.raises(DivisionByZero):
        power(0, -1)


def test_sqrt():
    assert sqrt(Decimal("2.25")) == Decimal("1.5")
    with pytest.raises(NegativeRadicand):
        sqrt(-1)


def test_min_max_abs_clamp():
    assert absolute(Decimal("-1.5")) == Decimal("1.5")
    assert minimum(1, 2) == Decimal(1)
    assert maximum(1, 2) == Decimal(2)
    assert clamp(7, 0, 5) == Decimal(5)
    assert clamp(-1, 0, 5) == Decimal(0)


def test_is_close():
    assert is_close(Decimal("1.00000000001"), 1)
    assert not is_close(Decimal("1.001"), 1)
    assert is_close(Decimal("1.001"), 1, tolerance=Decimal("0.01"))


def test_formatting():
    assert round_to(Decimal("2.345"), 2) == Decimal("2.35"), "half-up rounding"
    assert to_fixed(Decimal("1"), 3) == "1.000"
    assert to_percent(Decimal("0.0525")) == "5.250%"
    assert to_bps(Decimal("0.0125")) == "125bp"
    assert to_float(Decimal("0.25")) == 0.25
