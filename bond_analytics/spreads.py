from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence, Tuple

from .cashflows import CashFlow
from .config import ZSPREAD_LOWER, ZSPREAD_MAX_ITERATIONS, ZSPREAD_PRICE_TOLERANCE, ZSPREAD_UPPER
from .curves import BenchmarkCurve, Interpolation, interpolate, interpolate_with_details
from .errors import ZSpreadDidNotConverge
from .precision import (
    HUNDRED,
    ONE,
    TEN_THOUSAND,
    TWO,
    ZERO,
    absolute,
    add,
    divide,
    multiply,
    power,
    subtract,
    to_decimal,
)
from .solver import timeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NominalSpread:
    spread_bp: Decimal
    benchmark_yield: Decimal   # percent
    interpolation: Interpolation


@dataclass(frozen=True)
class ZSpread:
    spread: Decimal            # decimal, 0.0125 = 125bp
    iterations: int
    achieved_error: Decimal

    @property
    def spread_bp(self) -> Decimal:
        return multiply(self.spread, TEN_THOUSAND)


def nominal_spread(ytm: Decimal, curve: BenchmarkCurve, average_life: Decimal) -> NominalSpread:
    """YTM (decimal) over the benchmark yield at the bond's average life, in bp."""
    interp = interpolate_with_details(curve, average_life)
    spread_pct = subtract(multiply(to_decimal(ytm), HUNDRED), interp.yield_)
    return NominalSpread(multiply(spread_pct, HUNDRED), interp.yield_, interp)


def _curve_rates(flows: List[Tuple[Decimal, Decimal]], curve: BenchmarkCurve) -> List[Tuple[Decimal, Decimal, Decimal]]:
    # benchmark rate (decimal) per flow, fixed for the whole search
    return [(amount, t, divide(interpolate(curve, t), HUNDRED)) for amount, t in flows]


def _spread_pv(rated, spread: Decimal) -> Decimal:
    pv = ZERO
    for amount, t, rate in rated:
        pv = add(pv, divide(amount, power(add(add(ONE, rate), spread), t)))
    return pv


def z_spread(
    cash_flows: Sequence[CashFlow],
    settlement,
    target_price,
    curve: BenchmarkCurve,
    day_count: str = "30/360",
    lower: Decimal = ZSPREAD_LOWER,
    upper: Decimal = ZSPREAD_UPPER,
    tolerance: Decimal = ZSPREAD_PRICE_TOLERANCE,
    max_iterations: int = ZSPREAD_MAX_ITERATIONS,
) -> ZSpread:
    """
    Constant spread s with sum(CF / (1 + r(t) + s)^t) == target_price, where
    r(t) is the interpolated benchmark rate at each flow's time. Solved by
    bisection on [lower, upper]; target price is dirty, in currency.
    """
    target = to_decimal(target_price)
    rated = _curve_rates(timeline(cash_flows, settlement, day_count), curve)

    def f(s: Decimal) -> Decimal:
        return subtract(_spread_pv(rated, s), target)

    lo, hi = to_decimal(lower), to_decimal(upper)
    f_lo, f_hi = f(lo), f(hi)
    if (f_lo > 0) == (f_hi > 0):
        raise ZSpreadDidNotConverge(
            f"Z-spread not bracketed in [{lo}, {hi}]",
            [f"pv error at lower={f_lo}", f"pv error at upper={f_hi}"],
        )

    mid, err = lo, absolute(f_lo)
    for i in range(1, max_iterations + 1):
        mid = divide(add(lo, hi), TWO)
        f_mid = f(mid)
        err = absolute(f_mid)
        logger.debug("z-spread iter=%d s=%s error=%s", i, mid, f_mid)
        if err <= tolerance:
            return ZSpread(mid, i, err)
        # PV falls as the spread rises
        if f_mid > 0:
            lo = mid
        else:
            hi = mid

    raise ZSpreadDidNotConverge(
        f"Z-spread did not converge in {max_iterations} iterations",
        [f"last spread={mid}", f"pv error={err}"],
    )
