from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

import pandas as pd

from .config import (
    CURVE_HIGH_YIELD_PCT,
    CURVE_INVERSION_TOLERANCE_BP,
    CURVE_LONG_END_YEARS,
    CURVE_SHORT_END_YEARS,
    MIN_CURVE_POINTS,
    STALE_CURVE_DAYS,
)
from .daycount import to_timestamp
from .errors import CurveUnavailable
from .precision import HUNDRED, add, divide, multiply, subtract, to_decimal, to_float

logger = logging.getLogger(__name__)

_TENOR_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([DWMY]?)$")


@dataclass(frozen=True)
class CurvePoint:
    """Benchmark yield (percent) at a maturity in years."""
    maturity: Decimal
    yield_: Decimal
    tenor: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "maturity", to_decimal(self.maturity))
        object.__setattr__(self, "yield_", to_decimal(self.yield_))


@dataclass(frozen=True)
class BenchmarkCurve:
    """
    Immutable curve snapshot. Points are copied into a maturity-sorted
    tuple, so later changes to the caller's list do not reach a running
    calculation.
    """
    points: Tuple[CurvePoint, ...]
    as_of: Optional[pd.Timestamp] = None
    name: str = "benchmark"

    def __post_init__(self):
        pts = tuple(sorted(
            (p if isinstance(p, CurvePoint) else CurvePoint(*p) for p in self.points),
            key=lambda p: p.maturity,
        ))
        if not pts:
            raise CurveUnavailable("Benchmark curve has no points")
        object.__setattr__(self, "points", pts)
        if self.as_of is not None:
            object.__setattr__(self, "as_of", to_timestamp(self.as_of))

    @property
    def maturities(self) -> List[Decimal]:
        return [p.maturity for p in self.points]

    @property
    def yields(self) -> List[Decimal]:
        return [p.yield_ for p in self.points]

    def rate(self, maturity) -> Decimal:
        return interpolate(self, maturity)


class BenchmarkCurveProvider(Protocol):
    """Source of curve snapshots (cached, network-backed; lives outside the engine)."""

    def get_curve(self, as_of) -> Union[BenchmarkCurve, Sequence[CurvePoint], None]:
        ...


# ---- Tenors ----

def parse_tenor(tenor: Union[str, int, float, Decimal]) -> Optional[Decimal]:
    """
    "1M" -> 1/12, "2Y" -> 2, "13W" -> 0.25, "30D" -> 30/365, bare numbers are years.
    Returns None when the tenor cannot be parsed or is not positive.
    """
    if isinstance(tenor, (int, float, Decimal)) and not isinstance(tenor, bool):
        years = to_decimal(tenor)
        return years if years > 0 else None

    match = _TENOR_RE.match(str(tenor).strip().upper())
    if match is None:
        return None
    n = Decimal(match.group(1))
    unit = match.group(2) or "Y"
    years = {
        "D": lambda: divide(n, 365),
        "W": lambda: divide(n, 52),
        "M": lambda: divide(n, 12),
        "Y": lambda: n,
    }[unit]()
    return years if years > 0 else None


def curve_from_tenors(tenors: Mapping[str, object], as_of=None, name: str = "benchmark") -> BenchmarkCurve:
    """Build a curve from {"3M": 4.35, "2Y": 4.05, ...}; unparseable entries are skipped."""
    points: List[CurvePoint] = []
    for tenor, value in tenors.items():
        years = parse_tenor(tenor)
        if years is None or value is None:
            logger.warning("Skipping curve tenor %r", tenor)
            continue
        try:
            points.append(CurvePoint(years, value, str(tenor)))
        except (TypeError, ValueError):
            logger.warning("Skipping curve tenor %r with invalid yield %r", tenor, value)
    if not points:
        raise CurveUnavailable("No usable tenors in curve data")
    return BenchmarkCurve(tuple(points), as_of, name)


def as_curve(data, as_of=None) -> BenchmarkCurve:
    """Accept a BenchmarkCurve, a sequence of CurvePoints/(maturity, yield) pairs, or a tenor map."""
    if isinstance(data, BenchmarkCurve):
        return data
    if isinstance(data, Mapping):
        return curve_from_tenors(data, as_of)
    return BenchmarkCurve(tuple(data), as_of)


# ---- Interpolation ----

@dataclass(frozen=True)
class Interpolation:
    target: Decimal
    yield_: Decimal
    lower: CurvePoint
    upper: CurvePoint
    method: str  # "exact" | "interpolated" | "extrapolated"


def interpolate_with_details(curve: BenchmarkCurve, maturity) -> Interpolation:
    """
    Linear interpolation between bracketing points; flat extrapolation
    beyond either end of the curve.
    """
    m = to_decimal(maturity)
    pts = curve.points
    first, last = pts[0], pts[-1]

    if m <= first.maturity:
        method = "exact" if m == first.maturity else "extrapolated"
        return Interpolation(m, first.yield_, first, first, method)
    if m >= last.maturity:
        method = "exact" if m == last.maturity else "extrapolated"
        return Interpolation(m, last.yield_, last, last, method)

    lo, hi = next((lo, hi) for lo, hi in zip(pts, pts[1:]) if lo.maturity <= m < hi.maturity)
    if m == lo.maturity:
        return Interpolation(m, lo.yield_, lo, lo, "exact")

    w = divide(subtract(m, lo.maturity), subtract(hi.maturity, lo.maturity))
    y = add(lo.yield_, multiply(w, subtract(hi.yield_, lo.yield_)))
    return Interpolation(m, y, lo, hi, "interpolated")


def interpolate(curve: BenchmarkCurve, maturity) -> Decimal:
    """Benchmark yield (percent) at `maturity` years."""
    return interpolate_with_details(curve, maturity).yield_


# ---- Validation ----

@dataclass(frozen=True)
class CurveValidation:
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_curve(curve: BenchmarkCurve, valuation_date=None) -> CurveValidation:
    errors: List[str] = []
    warnings: List[str] = []
    pts = curve.points

    if len(pts) < MIN_CURVE_POINTS:
        errors.append(f"Curve has {len(pts)} points, need at least {MIN_CURVE_POINTS}")

    for p in pts:
        label = p.tenor or f"{p.maturity}Y"
        if p.maturity <= 0:
            errors.append(f"Non-positive maturity for {label}")
        if p.yield_ < 0:
            warnings.append(f"Negative yield for {label}: {p.yield_}%")
        elif p.yield_ > CURVE_HIGH_YIELD_PCT:
            warnings.append(f"Unusually high yield for {label}: {p.yield_}%")

    maturities = [p.maturity for p in pts]
    if len(set(maturities)) != len(maturities):
        errors.append("Duplicate curve maturities")

    tolerance = divide(CURVE_INVERSION_TOLERANCE_BP, HUNDRED)
    for lo, hi in zip(pts, pts[1:]):
        drop = subtract(lo.yield_, hi.yield_)
        if drop > tolerance:
            errors.append(
                f"Inversion of {multiply(drop, HUNDRED)}bp between {lo.maturity}Y and {hi.maturity}Y"
            )

    if pts[0].maturity > CURVE_SHORT_END_YEARS:
        warnings.append(f"Curve starts at {pts[0].maturity}Y; short end is extrapolated")
    if pts[-1].maturity < CURVE_LONG_END_YEARS:
        warnings.append(f"Curve ends at {pts[-1].maturity}Y; long end is extrapolated")

    if valuation_date is not None and curve.as_of is not None:
        age = (to_timestamp(valuation_date) - curve.as_of).days
        if age > STALE_CURVE_DAYS:
            warnings.append(f"Curve data is {age} days old")

    return CurveValidation(tuple(errors), tuple(warnings))


def require_usable(curve: Optional[BenchmarkCurve], valuation_date=None) -> CurveValidation:
    """Raise CurveUnavailable unless `curve` passes validation; log its warnings."""
    if curve is None:
        raise CurveUnavailable("No benchmark curve supplied")
    report = validate_curve(curve, valuation_date)
    if not report.valid:
        raise CurveUnavailable(f"Benchmark curve {curve.name!r} is not usable", report.errors)
    for w in report.warnings:
        logger.warning("Curve %s: %s", curve.name, w)
    return report


def curve_qc_report(curve: BenchmarkCurve) -> pd.DataFrame:
    yields = [to_float(p.yield_) for p in curve.points]
    changes = [0.0] + [(b - a) * 100.0 for a, b in zip(yields, yields[1:])]
    tolerance = to_float(CURVE_INVERSION_TOLERANCE_BP)
    return pd.DataFrame(
        {
            "tenor": [p.tenor for p in curve.points],
            "maturity": [to_float(p.maturity) for p in curve.points],
            "yield": yields,
            "change_bp": changes,
            "inverted": [c < 0 for c in changes],
            "within_tolerance": [-c <= tolerance for c in changes],
        }
    )


# ---- Shocks ----

ShiftFunc = Callable[[Decimal], Decimal]


def shift_curve(curve: BenchmarkCurve, shift_func: ShiftFunc) -> BenchmarkCurve:
    """New curve with each yield moved by shift_func(maturity) (percentage points)."""
    points = tuple(
        CurvePoint(p.maturity, add(p.yield_, shift_func(p.maturity)), p.tenor)
        for p in curve.points
    )
    return BenchmarkCurve(points, curve.as_of, curve.name)


def parallel_shift_bp(bp) -> ShiftFunc:
    s = divide(to_decimal(bp), HUNDRED)
    return lambda tau: s


def _twist(bp, pivot, long, short_sign: int) -> ShiftFunc:
    a = divide(to_decimal(bp), HUNDRED)
    pivot = to_decimal(pivot)
    long = to_decimal(long)

    def f(tau: Decimal) -> Decimal:
        if tau <= pivot:
            return short_sign * a
        if tau >= long:
            return -short_sign * a
        w = divide(subtract(tau, pivot), subtract(long, pivot))
        return add(multiply(1 - w, short_sign * a), multiply(w, -short_sign * a))

    return f


def steepener_shift_bp(bp, pivot=2, long=10) -> ShiftFunc:
    """Short end down `bp`, long end up `bp`, linear in between."""
    return _twist(bp, pivot, long, short_sign=-1)


def flattener_shift_bp(bp, pivot=2, long=10) -> ShiftFunc:
    """Short end up `bp`, long end down `bp`, linear in between."""
    return _twist(bp, pivot, long, short_sign=1)
