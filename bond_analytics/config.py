# config.py
# Purpose: Numeric constants and solver settings shared by the analytics engine

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

# Significant digits for every Decimal operation routed through precision.py
DECIMAL_PRECISION = 28

# Yield solver
PRICE_TOLERANCE = Decimal("1e-9")       # relative to max(1, |target price|)
MAX_ITERATIONS = 100
BISECTION_MAX_ITERATIONS = 200
ACCEPTABLE_ERROR = Decimal("1e-6")     # relative; last-resort bisection result above this is a failure
MIN_DERIVATIVE = Decimal("1e-10")
YIELD_LOWER_BOUND = Decimal("-0.99")
YIELD_UPPER_BOUND = Decimal("5.0")
PROBE_YIELDS: Tuple[Decimal, ...] = tuple(
    Decimal(p)
    for p in (
        "-0.99", "-0.5", "-0.2", "0", "0.02", "0.05", "0.08", "0.12", "0.15",
        "0.2", "0.3", "0.5", "0.8", "1.0", "2.0", "3.0", "5.0",
    )
)

# Sane range for supplied or solved yields (decimal)
MIN_SANE_YIELD = Decimal("-0.5")
MAX_SANE_YIELD = Decimal("2.0")

# Price inputs, % of outstanding notional
MAX_PRICE_PCT = Decimal("500")

# Bond terms
MAX_COUPON_RATE = Decimal("50")
SUPPORTED_FREQUENCIES = (1, 2, 3, 4, 6, 12)
AMORTIZATION_LIMIT_PCT = Decimal("100.01")
AMORTIZATION_WARN_PCT = Decimal("90")
AMORTIZATION_MATCH_WINDOW_DAYS = 180
DEFAULT_SETTLEMENT_DAYS = 2

# Risk
SHOCK_BP = Decimal("1")

# Benchmark curve
MIN_CURVE_POINTS = 8
CURVE_INVERSION_TOLERANCE_BP = Decimal("300")
CURVE_HIGH_YIELD_PCT = Decimal("20")
CURVE_SHORT_END_YEARS = Decimal("0.25")
CURVE_LONG_END_YEARS = Decimal("20")
STALE_CURVE_DAYS = 7

# Z-spread (decimal spread, currency price tolerance)
ZSPREAD_LOWER = Decimal("-0.05")
ZSPREAD_UPPER = MAX_SANE_YIELD       # same ceiling as solved yields
ZSPREAD_PRICE_TOLERANCE = Decimal("0.01")
ZSPREAD_MAX_ITERATIONS = 50


@dataclass(frozen=True)
class SolverConfig:
    """Settings for the yield solver fallback chain."""
    price_tolerance: Decimal = PRICE_TOLERANCE
    max_iterations: int = MAX_ITERATIONS
    bisection_max_iterations: int = BISECTION_MAX_ITERATIONS
    min_derivative: Decimal = MIN_DERIVATIVE
    lower_bound: Decimal = YIELD_LOWER_BOUND
    upper_bound: Decimal = YIELD_UPPER_BOUND
    probe_yields: Tuple[Decimal, ...] = PROBE_YIELDS
    min_sane_yield: Decimal = MIN_SANE_YIELD
    max_sane_yield: Decimal = MAX_SANE_YIELD
    acceptable_error: Decimal = ACCEPTABLE_ERROR


DEFAULT_SOLVER_CONFIG = SolverConfig()
