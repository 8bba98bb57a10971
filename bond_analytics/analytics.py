"""
One-call bond analytics.

    analyze(terms, settlement, price=...)      -> AnalyticsResult (raises on failure)
    evaluate(terms, settlement, price=...)     -> AnalysisSuccess | AnalysisFailure

Conventions at this boundary:
- prices are percent of current outstanding notional (dirty unless
  price_basis="clean")
- yields are percent (5.0 = 5%); the solver works in decimals internally
- currency amounts are for the outstanding notional at settlement
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import pandas as pd

from .bonds import BondTerms
from .cashflows import (
    CashFlow,
    PersistedScheduleSource,
    cached_schedule,
    ensure_valid,
    outstanding_notional as notional_at,
    validate_schedule,
)
from .config import DEFAULT_SOLVER_CONFIG, MAX_PRICE_PCT, SolverConfig
from .curves import BenchmarkCurve, BenchmarkCurveProvider, Interpolation, as_curve, require_usable
from .daycount import to_timestamp
from .errors import AnalyticsError, InvalidMarketInputs, InvalidSettlementDate, NoFutureCashFlows
from .precision import HUNDRED, ZERO, add, divide, multiply, subtract, to_decimal, to_float
from .risk import (
    accrued_interest,
    average_life,
    convexity,
    current_yield,
    durations,
    dv01,
    next_payment,
    remaining_totals,
    yield_to_worst,
)
from .solver import SolverAttempt, YieldSolution, check_yield, present_value, solve_yield
from .spreads import nominal_spread, z_spread

logger = logging.getLogger(__name__)

DIRECT = "direct"


@dataclass(frozen=True)
class SolverDiagnostics:
    algorithm: str
    iterations: int
    achieved_error: Decimal
    converged: bool
    attempts: Tuple[SolverAttempt, ...] = ()


@dataclass(frozen=True)
class AnalyticsResult:
    settlement_date: pd.Timestamp
    outstanding_notional: Decimal

    # prices: percent of outstanding notional, and currency
    clean_price: Decimal
    dirty_price: Decimal
    clean_value: Decimal
    dirty_value: Decimal
    accrued_interest: Decimal
    accrued_price: Decimal

    # yields, percent
    ytm: Decimal
    ytw: Decimal
    ytw_date: pd.Timestamp
    ytw_kind: str
    current_yield: Decimal

    # risk
    macaulay_duration: Decimal
    modified_duration: Decimal
    effective_duration: Decimal
    convexity: Decimal
    dv01: Decimal

    # cash-flow analytics
    average_life: Decimal
    next_payment_date: pd.Timestamp
    next_payment_amount: Decimal
    days_to_next_payment: int
    total_remaining_cash: Decimal
    total_remaining_coupons: Decimal

    diagnostics: SolverDiagnostics
    cash_flows: Tuple[CashFlow, ...] = field(repr=False, default=())

    # spreads, bp; None when no curve was supplied
    nominal_spread_bp: Optional[Decimal] = None
    z_spread_bp: Optional[Decimal] = None
    benchmark_yield: Optional[Decimal] = None
    interpolation: Optional[Interpolation] = None
    curve_warnings: Tuple[str, ...] = ()
    skipped_workouts: Tuple[str, ...] = ()

    @property
    def parity(self) -> Decimal:
        """Clean price as a ratio of par."""
        return divide(self.clean_price, HUNDRED)

    @property
    def has_spreads(self) -> bool:
        return self.nominal_spread_bp is not None

    def to_dict(self) -> Dict[str, Any]:
        """Float/ISO rendering for the API and UI layers."""
        def f(x: Optional[Decimal]) -> Optional[float]:
            return None if x is None else to_float(x)

        out: Dict[str, Any] = {
            "settlement_date": self.settlement_date.date().isoformat(),
            "price": {
                "clean": f(self.clean_price),
                "dirty": f(self.dirty_price),
                "clean_value": f(self.clean_value),
                "dirty_value": f(self.dirty_value),
                "accrued_interest": f(self.accrued_interest),
            },
            "yields": {
                "ytm": f(self.ytm),
                "ytw": f(self.ytw),
                "ytw_date": self.ytw_date.date().isoformat(),
                "ytw_kind": self.ytw_kind,
                "current": f(self.current_yield),
            },
            "risk": {
                "macaulay_duration": f(self.macaulay_duration),
                "modified_duration": f(self.modified_duration),
                "effective_duration": f(self.effective_duration),
                "convexity": f(self.convexity),
                "dv01": f(self.dv01),
            },
            "analytics": {
                "average_life": f(self.average_life),
                "outstanding_notional": f(self.outstanding_notional),
                "parity": f(self.parity),
                "next_payment_date": self.next_payment_date.date().isoformat(),
                "next_payment_amount": f(self.next_payment_amount),
                "days_to_next_payment": self.days_to_next_payment,
                "total_remaining_cash": f(self.total_remaining_cash),
                "total_remaining_coupons": f(self.total_remaining_coupons),
            },
            "diagnostics": {
                "algorithm": self.diagnostics.algorithm,
                "iterations": self.diagnostics.iterations,
                "achieved_error": f(self.diagnostics.achieved_error),
                "converged": self.diagnostics.converged,
                "attempts": [str(a) for a in self.diagnostics.attempts],
            },
        }
        if self.has_spreads:
            out["spreads"] = {
                "nominal_bp": f(self.nominal_spread_bp),
                "z_spread_bp": f(self.z_spread_bp),
                "benchmark_yield": f(self.benchmark_yield),
                "interpolation_method": self.interpolation.method,
            }
        return out


@dataclass(frozen=True)
class AnalysisSuccess:
    result: AnalyticsResult
    ok: bool = True


@dataclass(frozen=True)
class AnalysisFailure:
    error_type: str
    message: str
    errors: Tuple[str, ...] = ()
    attempts: Tuple[SolverAttempt, ...] = ()
    ok: bool = False


AnalysisOutcome = Union[AnalysisSuccess, AnalysisFailure]


@dataclass(frozen=True)
class PriceQuote:
    clean_price: Decimal
    dirty_price: Decimal
    accrued_price: Decimal


# ---- shared preparation ----

@dataclass(frozen=True)
class _Position:
    settlement: pd.Timestamp
    flows: Tuple[CashFlow, ...]
    notional: Decimal
    accrued: Decimal
    accrued_pct: Decimal


def _schedule(
    terms: BondTerms,
    cash_flows: Optional[Sequence[CashFlow]],
    schedule_source: Optional[PersistedScheduleSource],
) -> Tuple[CashFlow, ...]:
    if cash_flows is None and schedule_source is not None:
        cash_flows = schedule_source.get_cash_flows(terms)
    if cash_flows is None:
        return cached_schedule(terms)
    flows = tuple(cash_flows)
    validate_schedule(flows)
    return flows


def _position(
    terms: BondTerms,
    settlement,
    cash_flows: Optional[Sequence[CashFlow]],
    outstanding_notional,
    schedule_source: Optional[PersistedScheduleSource] = None,
) -> _Position:
    ensure_valid(terms)
    try:
        settlement = to_timestamp(settlement)
    except (TypeError, ValueError) as exc:
        raise InvalidSettlementDate(f"Invalid settlement date {settlement!r}") from exc
    if settlement < terms.issue_date:
        raise InvalidSettlementDate(
            f"Settlement {settlement.date()} is before issue date {terms.issue_date.date()}"
        )

    flows = _schedule(terms, cash_flows, schedule_source)
    if flows[-1].date <= settlement:
        raise NoFutureCashFlows(f"Settlement {settlement.date()} is on or after the final payment")

    if outstanding_notional is None:
        notional = notional_at(flows, settlement, terms.face_value)
    else:
        notional = _market_decimal(outstanding_notional, "outstanding notional")
    if notional <= 0:
        raise InvalidMarketInputs(f"Outstanding notional must be positive, got {notional}")

    accrued = accrued_interest(flows, settlement, terms.day_count)
    accrued_pct = multiply(divide(accrued, notional), HUNDRED)
    return _Position(settlement, flows, notional, accrued, accrued_pct)


def _market_decimal(value, name: str) -> Decimal:
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as exc:
        raise InvalidMarketInputs(f"Invalid {name}: {value!r}") from exc


def _dirty_pct(price, price_basis: str, accrued_pct: Decimal) -> Decimal:
    p = _market_decimal(price, "price")
    if not (ZERO < p <= MAX_PRICE_PCT):
        raise InvalidMarketInputs(f"Price must be in (0, {MAX_PRICE_PCT}], got {p}")
    if price_basis == "dirty":
        return p
    if price_basis == "clean":
        return add(p, accrued_pct)
    raise InvalidMarketInputs(f"price_basis must be 'dirty' or 'clean', got {price_basis!r}")


def _pct_to_value(pct: Decimal, notional: Decimal) -> Decimal:
    return divide(multiply(pct, notional), HUNDRED)


# ---- public API ----

def analyze(
    terms: BondTerms,
    settlement,
    price=None,
    yield_=None,
    curve: Union[BenchmarkCurve, Sequence, Dict, None] = None,
    cash_flows: Optional[Sequence[CashFlow]] = None,
    outstanding_notional=None,
    price_basis: str = "dirty",
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
    curve_provider: Optional[BenchmarkCurveProvider] = None,
    schedule_source: Optional[PersistedScheduleSource] = None,
) -> AnalyticsResult:
    """
    Full analytics for one bond at one settlement date.

    Exactly one of `price` (percent of outstanding notional) or `yield_`
    (percent) must be given. Spread fields are filled only when a curve is
    passed directly or obtained from `curve_provider`. Every failure raises
    an AnalyticsError subclass; nothing is returned half-computed.
    """
    if (price is None) == (yield_ is None):
        raise InvalidMarketInputs("Exactly one of price or yield must be supplied")

    pos = _position(terms, settlement, cash_flows, outstanding_notional, schedule_source)
    f = terms.frequency
    dc = terms.day_count

    if price is not None:
        dirty_pct = _dirty_pct(price, price_basis, pos.accrued_pct)
        dirty_value = _pct_to_value(dirty_pct, pos.notional)
        solution = solve_yield(pos.flows, pos.settlement, dirty_value, f, dc, config)
    else:
        y = divide(_market_decimal(yield_, "yield"), HUNDRED)
        check_yield(y, config)
        dirty_value = present_value(pos.flows, pos.settlement, y, f, dc)
        dirty_pct = multiply(divide(dirty_value, pos.notional), HUNDRED)
        solution = YieldSolution(y, DIRECT, 0, ZERO, True)

    ytm = solution.yield_
    clean_pct = subtract(dirty_pct, pos.accrued_pct)
    clean_value = subtract(dirty_value, pos.accrued)

    d = durations(pos.flows, pos.settlement, ytm, f, dc)
    conv = convexity(pos.flows, pos.settlement, ytm, f, dc)
    life = average_life(pos.flows, pos.settlement, dc)
    fallback_coupon = divide(multiply(pos.notional, terms.coupon_rate_on(pos.settlement)), HUNDRED)
    cy = current_yield(pos.flows, pos.settlement, clean_value, fallback_coupon)
    worst = yield_to_worst(terms, pos.flows, pos.settlement, dirty_value, solution, config)
    nxt = next_payment(pos.flows, pos.settlement)
    remaining_cash, remaining_coupons = remaining_totals(pos.flows, pos.settlement)

    spreads: Dict[str, Any] = {}
    if curve is None and curve_provider is not None:
        curve = curve_provider.get_curve(pos.settlement)
    if curve is not None:
        bench = as_curve(curve)
        report = require_usable(bench, pos.settlement)
        nominal = nominal_spread(ytm, bench, life)
        zs = z_spread(pos.flows, pos.settlement, dirty_value, bench, dc)
        spreads = dict(
            nominal_spread_bp=nominal.spread_bp,
            z_spread_bp=zs.spread_bp,
            benchmark_yield=nominal.benchmark_yield,
            interpolation=nominal.interpolation,
            curve_warnings=report.warnings,
        )

    logger.info(
        "Analyzed %s settle=%s ytm=%s%% algorithm=%s",
        terms.isin or terms.cusip or terms.issuer, pos.settlement.date(),
        multiply(ytm, HUNDRED), solution.algorithm,
    )

    return AnalyticsResult(
        settlement_date=pos.settlement,
        outstanding_notional=pos.notional,
        clean_price=clean_pct,
        dirty_price=dirty_pct,
        clean_value=clean_value,
        dirty_value=dirty_value,
        accrued_interest=pos.accrued,
        accrued_price=pos.accrued_pct,
        ytm=multiply(ytm, HUNDRED),
        ytw=multiply(worst.yield_, HUNDRED),
        ytw_date=worst.date,
        ytw_kind=worst.kind.value,
        current_yield=multiply(cy, HUNDRED),
        macaulay_duration=d.macaulay,
        modified_duration=d.modified,
        effective_duration=d.effective,
        convexity=conv,
        dv01=dv01(d.modified, dirty_value),
        average_life=life,
        next_payment_date=nxt.date,
        next_payment_amount=nxt.amount,
        days_to_next_payment=nxt.days,
        total_remaining_cash=remaining_cash,
        total_remaining_coupons=remaining_coupons,
        diagnostics=SolverDiagnostics(
            solution.algorithm, solution.iterations, solution.achieved_error,
            solution.converged, solution.attempts,
        ),
        cash_flows=pos.flows,
        skipped_workouts=worst.skipped,
        **spreads,
    )


def evaluate(terms: BondTerms, settlement, **kwargs) -> AnalysisOutcome:
    """`analyze`, with failures returned as AnalysisFailure instead of raised."""
    try:
        return AnalysisSuccess(analyze(terms, settlement, **kwargs))
    except AnalyticsError as exc:
        logger.warning("Analysis failed: %s: %s", type(exc).__name__, exc)
        return AnalysisFailure(
            error_type=type(exc).__name__,
            message=exc.message,
            errors=exc.errors,
            attempts=tuple(getattr(exc, "attempts", ())),
        )


def price_from_yield(
    terms: BondTerms,
    settlement,
    yield_,
    cash_flows: Optional[Sequence[CashFlow]] = None,
    outstanding_notional=None,
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> PriceQuote:
    """Clean and dirty price (percent of outstanding notional) at a yield in percent."""
    pos = _position(terms, settlement, cash_flows, outstanding_notional)
    y = divide(_market_decimal(yield_, "yield"), HUNDRED)
    check_yield(y, config)
    value = present_value(pos.flows, pos.settlement, y, terms.frequency, terms.day_count)
    dirty = multiply(divide(value, pos.notional), HUNDRED)
    return PriceQuote(subtract(dirty, pos.accrued_pct), dirty, pos.accrued_pct)


def yield_from_price(
    terms: BondTerms,
    settlement,
    price,
    price_basis: str = "dirty",
    cash_flows: Optional[Sequence[CashFlow]] = None,
    outstanding_notional=None,
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Decimal:
    """Yield to maturity in percent for a price in percent of outstanding notional."""
    pos = _position(terms, settlement, cash_flows, outstanding_notional)
    dirty_value = _pct_to_value(_dirty_pct(price, price_basis, pos.accrued_pct), pos.notional)
    solution = solve_yield(
        pos.flows, pos.settlement, dirty_value, terms.frequency, terms.day_count, config
    )
    return multiply(solution.yield_, HUNDRED)
