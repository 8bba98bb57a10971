from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, Optional

import pandas as pd

from .analytics import AnalyticsResult
from .bonds import BondTerms
from .curves import (
    BenchmarkCurve,
    ShiftFunc,
    as_curve,
    flattener_shift_bp,
    parallel_shift_bp,
    shift_curve,
    steepener_shift_bp,
)
from .precision import BP, HUNDRED, divide, multiply, subtract, to_decimal, to_float
from .risk import average_life
from .solver import present_value
from .spreads import nominal_spread, z_spread

DEFAULT_YIELD_SHOCKS_BP = (-100, -50, -25, 25, 50, 100)


def default_curve_shocks() -> Dict[str, ShiftFunc]:
    return {
        "PAR_-50bp": parallel_shift_bp(-50),
        "PAR_-25bp": parallel_shift_bp(-25),
        "PAR_+25bp": parallel_shift_bp(+25),
        "PAR_+50bp": parallel_shift_bp(+50),
        "STEEPENER_25bp": steepener_shift_bp(25),
        "FLATTENER_25bp": flattener_shift_bp(25),
    }


def run_yield_scenarios(
    terms: BondTerms,
    result: AnalyticsResult,
    shocks_bp: Iterable = DEFAULT_YIELD_SHOCKS_BP,
) -> pd.DataFrame:
    """
    Reprice the schedule at YTM + shock and compare with the duration and
    duration + convexity approximations. Changes are percent of base dirty value.
    """
    base = result.dirty_value
    ytm = divide(result.ytm, HUNDRED)
    rows = []
    for shock in shocks_bp:
        dy = multiply(to_decimal(shock), BP)
        value = present_value(
            result.cash_flows, result.settlement_date, ytm + dy, terms.frequency, terms.day_count
        )
        actual = multiply(divide(subtract(value, base), base), HUNDRED)
        dur_est = multiply(-result.modified_duration * dy, HUNDRED)
        conv_est = dur_est + multiply(Decimal("0.5") * result.convexity * dy * dy, HUNDRED)
        rows.append(
            {
                "scenario": f"YLD_{int(shock):+d}bp",
                "shock_bp": int(shock),
                "yield": to_float((ytm + dy) * HUNDRED),
                "dirty_price": to_float(divide(multiply(value, HUNDRED), result.outstanding_notional)),
                "dirty_value": to_float(value),
                "price_change_pct": to_float(actual),
                "duration_estimate_pct": to_float(dur_est),
                "duration_convexity_estimate_pct": to_float(conv_est),
            }
        )
    return pd.DataFrame(rows)


def run_benchmark_scenarios(
    terms: BondTerms,
    result: AnalyticsResult,
    curve,
    shocks: Optional[Dict[str, ShiftFunc]] = None,
) -> pd.DataFrame:
    """
    Spreads at the bond's current price under shifted benchmark curves.
    Moves in the curve show up one for one (with opposite sign) in spread.
    """
    base_curve: BenchmarkCurve = as_curve(curve)
    shocks = default_curve_shocks() if shocks is None else shocks
    ytm = divide(result.ytm, HUNDRED)
    life = average_life(result.cash_flows, result.settlement_date, terms.day_count)

    def spreads(c: BenchmarkCurve):
        nominal = nominal_spread(ytm, c, life)
        zs = z_spread(result.cash_flows, result.settlement_date, result.dirty_value, c, terms.day_count)
        return nominal.spread_bp, zs.spread_bp

    base_nominal, base_z = spreads(base_curve)
    rows = [
        {
            "scenario": "BASE",
            "nominal_spread_bp": to_float(base_nominal),
            "z_spread_bp": to_float(base_z),
            "nominal_change_bp": 0.0,
            "z_spread_change_bp": 0.0,
        }
    ]
    for name, func in shocks.items():
        nominal, zs = spreads(shift_curve(base_curve, func))
        rows.append(
            {
                "scenario": name,
                "nominal_spread_bp": to_float(nominal),
                "z_spread_bp": to_float(zs),
                "nominal_change_bp": to_float(nominal - base_nominal),
                "z_spread_change_bp": to_float(zs - base_z),
            }
        )
    return pd.DataFrame(rows)
