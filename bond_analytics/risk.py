from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from .bonds import BondTerms
from .cashflows import CashFlow, PaymentKind
from .config import DEFAULT_SOLVER_CONFIG, SHOCK_BP, SolverConfig
from .daycount import add_period, to_timestamp, year_fraction
from .errors import InvalidSchedule, UnrealisticYield, YTMDidNotConverge
from .precision import (
    BP,
    HUNDRED,
    ONE,
    TEN_THOUSAND,
    TWO,
    ZERO,
    add,
    divide,
    multiply,
    power,
    subtract,
    to_decimal,
)
from .solver import (
    YieldSolution,
    discounted_value,
    discount_factor,
    future_cash_flows,
    solve_yield,
    timeline,
)

logger = logging.getLogger(__name__)


# ---- Accrual ----

def accrued_interest(cash_flows: Sequence[CashFlow], settlement, day_count: str = "30/360") -> Decimal:
    """
    Accrued coupon at settlement, in currency units.

    Accrual runs from the last coupon-paying date on or before settlement to
    the next one after it. Zero when either side is missing (e.g. settlement
    before the first coupon).
    """
    settlement = to_timestamp(settlement)
    last: Optional[CashFlow] = None
    nxt: Optional[CashFlow] = None
    for cf in cash_flows:
        if cf.coupon <= 0:
            continue
        if cf.date <= settlement:
            last = cf
        elif nxt is None:
            nxt = cf

    if last is None or nxt is None:
        return ZERO

    period = year_fraction(last.date, nxt.date, day_count)
    if period.is_zero():
        return ZERO
    fraction = divide(year_fraction(last.date, settlement, day_count), period)
    return multiply(nxt.coupon, fraction)


def outstanding_before(cash_flows: Sequence[CashFlow], date) -> Optional[Decimal]:
    """Notional outstanding just before the first payment on or after `date`."""
    date = to_timestamp(date)
    for cf in cash_flows:
        if cf.date >= date:
            return add(cf.remaining_notional, cf.principal)
    return None


# ---- Duration / convexity ----

@dataclass(frozen=True)
class Durations:
    macaulay: Decimal
    modified: Decimal
    effective: Decimal


def macaulay_duration(cash_flows, settlement, yield_, frequency: int, day_count: str = "30/360") -> Decimal:
    """sum(t * PV) / sum(PV), in years."""
    y = to_decimal(yield_)
    pv_total = ZERO
    weighted = ZERO
    for amount, t in timeline(cash_flows, settlement, day_count):
        pv = multiply(amount, discount_factor(y, t, frequency))
        pv_total = add(pv_total, pv)
        weighted = add(weighted, multiply(t, pv))
    return divide(weighted, pv_total)


def modified_duration(cash_flows, settlement, yield_, frequency: int, day_count: str = "30/360") -> Decimal:
    y = to_decimal(yield_)
    mac = macaulay_duration(cash_flows, settlement, y, frequency, day_count)
    return divide(mac, add(ONE, divide(y, frequency)))


def effective_duration(
    cash_flows,
    settlement,
    yield_,
    frequency: int,
    day_count: str = "30/360",
    shock_bp: Decimal = SHOCK_BP,
) -> Decimal:
    """(P(y - h) - P(y + h)) / (2 h P(y)) for a symmetric shock of `shock_bp`."""
    y = to_decimal(yield_)
    h = multiply(to_decimal(shock_bp), BP)
    flows = timeline(cash_flows, settlement, day_count)
    base = discounted_value(flows, y, frequency)
    down = discounted_value(flows, subtract(y, h), frequency)
    up = discounted_value(flows, add(y, h), frequency)
    return divide(subtract(down, up), multiply(multiply(TWO, h), base))


def durations(cash_flows, settlement, yield_, frequency: int, day_count: str = "30/360") -> Durations:
    return Durations(
        macaulay=macaulay_duration(cash_flows, settlement, yield_, frequency, day_count),
        modified=modified_duration(cash_flows, settlement, yield_, frequency, day_count),
        effective=effective_duration(cash_flows, settlement, yield_, frequency, day_count),
    )


def convexity(cash_flows, settlement, yield_, frequency: int, day_count: str = "30/360") -> Decimal:
    """
    sum(CF * k(k+1) * DF) / ((1 + y/f)^2 * sum(PV) * f^2), with k = f * t
    the number of compounding periods to each flow.
    """
    y = to_decimal(yield_)
    f = int(frequency)
    pv_total = ZERO
    numerator = ZERO
    for amount, t in timeline(cash_flows, settlement, day_count):
        pv = multiply(amount, discount_factor(y, t, f))
        k = multiply(f, t)
        pv_total = add(pv_total, pv)
        numerator = add(numerator, multiply(pv, multiply(k, add(k, ONE))))

    growth = power(add(ONE, divide(y, f)), 2)
    return divide(numerator, multiply(multiply(growth, pv_total), f * f))


def dv01(modified: Decimal, dirty_value: Decimal) -> Decimal:
    """Currency change in dirty value for a 1bp move in yield."""
    return divide(multiply(modified, dirty_value), TEN_THOUSAND)


# ---- Cash-flow statistics ----

def average_life(cash_flows: Sequence[CashFlow], settlement, day_count: str = "30/360") -> Decimal:
    """Principal-weighted mean time (years) to repayment of future principal."""
    settlement = to_timestamp(settlement)
    total = ZERO
    weighted = ZERO
    for cf in future_cash_flows(cash_flows, settlement):
        if cf.principal <= 0:
            continue
        t = year_fraction(settlement, cf.date, day_count)
        total = add(total, cf.principal)
        weighted = add(weighted, multiply(cf.principal, t))
    if total.is_zero():
        return ZERO
    return divide(weighted, total)


def current_yield(
    cash_flows: Sequence[CashFlow],
    settlement,
    clean_value: Decimal,
    fallback_annual_coupon: Optional[Decimal] = None,
) -> Decimal:
    """
    Coupons paid in the 12 months after settlement over the clean value
    (both in currency). Uses `fallback_annual_coupon` when nothing is
    scheduled in that window.
    """
    settlement = to_timestamp(settlement)
    horizon = add_period(settlement, 12, end_of_month=False)
    annual = ZERO
    found = False
    for cf in cash_flows:
        if settlement < cf.date <= horizon:
            annual = add(annual, cf.coupon)
            found = True

    if not found and fallback_annual_coupon is not None:
        annual = to_decimal(fallback_annual_coupon)

    clean_value = to_decimal(clean_value)
    if clean_value <= 0:
        return ZERO
    return divide(annual, clean_value)


@dataclass(frozen=True)
class NextPayment:
    date: pd.Timestamp
    amount: Decimal
    days: int


def next_payment(cash_flows: Sequence[CashFlow], settlement) -> NextPayment:
    settlement = to_timestamp(settlement)
    cf = future_cash_flows(cash_flows, settlement)[0]
    return NextPayment(cf.date, cf.total, (cf.date - settlement).days)


def remaining_totals(cash_flows: Sequence[CashFlow], settlement) -> Tuple[Decimal, Decimal]:
    """(total remaining cash, total remaining coupons) after settlement."""
    future = future_cash_flows(cash_flows, settlement)
    cash = sum((cf.total for cf in future), ZERO)
    coupons = sum((cf.coupon for cf in future), ZERO)
    return cash, coupons


# ---- Yield to worst ----

@dataclass(frozen=True)
class WorkoutYield:
    date: pd.Timestamp
    kind: PaymentKind
    price: Decimal
    yield_: Decimal
    solution: YieldSolution


@dataclass(frozen=True)
class YieldToWorst:
    yield_: Decimal
    date: pd.Timestamp
    kind: PaymentKind
    workouts: Tuple[WorkoutYield, ...]
    skipped: Tuple[str, ...] = ()


def truncated_schedule(
    cash_flows: Sequence[CashFlow],
    exercise_date,
    exercise_price: Decimal,
    kind: PaymentKind,
    period_start=None,
    day_count: str = "30/360",
) -> List[CashFlow]:
    """
    Schedule ending on an option exercise date.

    Flows before the date are kept. On the date the holder receives the
    coupon due (prorated from the next scheduled coupon when the date is not
    a payment date) plus outstanding notional x `exercise_price` / 100.
    """
    exercise_date = to_timestamp(exercise_date)
    kept = [cf for cf in cash_flows if cf.date < exercise_date]
    notional = outstanding_before(cash_flows, exercise_date)
    if notional is None:
        raise InvalidSchedule(f"Exercise date {exercise_date.date()} is after the final payment")

    nxt = cash_flows[len(kept)]

    if nxt.date == exercise_date:
        coupon = nxt.coupon
    else:
        start = kept[-1].date if kept else period_start
        if start is None:
            coupon = ZERO
        else:
            start = to_timestamp(start)
            period = year_fraction(start, nxt.date, day_count)
            accrued = year_fraction(start, exercise_date, day_count)
            coupon = ZERO if period.is_zero() else multiply(nxt.coupon, divide(accrued, period))

    redemption = divide(multiply(notional, to_decimal(exercise_price)), HUNDRED)
    kept.append(CashFlow(exercise_date, coupon, redemption, add(coupon, redemption), ZERO, kind))
    return kept


def yield_to_worst(
    terms: BondTerms,
    cash_flows: Sequence[CashFlow],
    settlement,
    target_price,
    ytm: YieldSolution,
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> YieldToWorst:
    """
    Minimum of YTM and the yield to every call and put date after settlement.

    Each workout re-solves against the schedule truncated at the option date
    with the exercise price as the terminal payment. Workouts whose yield
    cannot be solved or is unrealistic are skipped and listed in `skipped`.
    """
    settlement = to_timestamp(settlement)
    workouts: List[WorkoutYield] = [
        WorkoutYield(terms.maturity_date, PaymentKind.MATURITY, HUNDRED, ytm.yield_, ytm)
    ]
    skipped: List[str] = []
    last_payment = cash_flows[-1].date

    options = [(r, PaymentKind.CALL) for r in terms.calls] + [(r, PaymentKind.PUT) for r in terms.puts]
    for rule, kind in sorted(options, key=lambda o: o[0].date):
        if rule.date <= settlement or rule.date >= terms.maturity_date:
            continue
        if rule.date > last_payment:
            reason = f"notional fully repaid by {last_payment.date()}"
            logger.warning("Skipping %s on %s: %s", kind.value, rule.date.date(), reason)
            skipped.append(f"{kind.value} {rule.date.date()}: {reason}")
            continue
        schedule = truncated_schedule(
            cash_flows, rule.date, rule.price, kind, terms.issue_date, terms.day_count
        )
        try:
            solution = solve_yield(
                schedule, settlement, target_price, terms.frequency, terms.day_count, config
            )
        except (UnrealisticYield, YTMDidNotConverge) as exc:
            logger.warning("Skipping %s on %s: %s", kind.value, rule.date.date(), exc)
            skipped.append(f"{kind.value} {rule.date.date()}: {exc}")
            continue
        workouts.append(WorkoutYield(rule.date, kind, rule.price, solution.yield_, solution))

    worst = min(workouts, key=lambda w: w.yield_)
    return YieldToWorst(worst.yield_, worst.date, worst.kind, tuple(workouts), tuple(skipped))
