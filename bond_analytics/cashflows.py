from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

import pandas as pd

from .bonds import AmortizationRule, BondTerms, validate
from .config import AMORTIZATION_LIMIT_PCT, AMORTIZATION_MATCH_WINDOW_DAYS
from .daycount import add_period, to_timestamp, year_fraction
from .errors import InvalidBondTerms, InvalidSchedule
from .precision import HUNDRED, ZERO, absolute, add, divide, is_close, multiply, subtract, to_decimal, to_float

logger = logging.getLogger(__name__)

# Tolerance for total = coupon + principal and for terminal notional on external schedules
AMOUNT_TOLERANCE = Decimal("0.01")


class PaymentKind(str, Enum):
    COUPON = "COUPON"
    AMORTIZATION = "AMORTIZATION"
    MATURITY = "MATURITY"
    CALL = "CALL"
    PUT = "PUT"


@dataclass(frozen=True)
class CashFlow:
    date: pd.Timestamp
    coupon: Decimal
    principal: Decimal
    total: Decimal
    remaining_notional: Decimal
    kind: PaymentKind = PaymentKind.COUPON

    def __post_init__(self):
        object.__setattr__(self, "date", to_timestamp(self.date))
        object.__setattr__(self, "coupon", to_decimal(self.coupon))
        object.__setattr__(self, "principal", to_decimal(self.principal))
        object.__setattr__(self, "total", to_decimal(self.total))
        object.__setattr__(self, "remaining_notional", to_decimal(self.remaining_notional))
        object.__setattr__(self, "kind", PaymentKind(self.kind))


class PersistedScheduleSource(Protocol):
    """Supplies a pre-built schedule captured from an authoritative document."""

    def get_cash_flows(self, terms: BondTerms) -> Optional[Sequence[CashFlow]]:
        ...


def payment_dates(terms: BondTerms) -> List[pd.Timestamp]:
    """
    Regular payment dates on or before maturity, anchored on the first coupon
    date (issue date + one period if not given).

    Dates are generated as first + k periods rather than by chaining, so a
    month-end anchor is not eroded by a short February.
    """
    step = terms.months_per_period
    first = terms.first_coupon_date
    if first is None:
        first = add_period(terms.issue_date, step, terms.end_of_month)

    dates: List[pd.Timestamp] = []
    k = 0
    while True:
        d = add_period(first, k * step, terms.end_of_month)
        if d > terms.maturity_date:
            break
        dates.append(d)
        k += 1
    return dates


def _match_amortization(
    rules: Sequence[AmortizationRule],
    dates: Sequence[pd.Timestamp],
) -> Dict[pd.Timestamp, Decimal]:
    """
    Principal percent due on each payment date.

    Rules falling exactly on a payment date are taken as is. A rule that
    misses the grid is attached to the nearest payment date in the same
    calendar year within AMORTIZATION_MATCH_WINDOW_DAYS. Rules that match
    nothing are left for the maturity repair.
    """
    due: Dict[pd.Timestamp, Decimal] = {}
    grid = set(dates)
    window = pd.Timedelta(days=AMORTIZATION_MATCH_WINDOW_DAYS)

    loose: List[AmortizationRule] = []
    for rule in rules:
        if rule.date in grid:
            due[rule.date] = due.get(rule.date, ZERO) + rule.principal_percent
        else:
            loose.append(rule)

    for rule in loose:
        candidates = [
            d for d in dates
            if d.year == rule.date.year and abs(d - rule.date) <= window
        ]
        if not candidates:
            logger.warning(
                "Amortization on %s (%s%%) matches no payment date; settled at maturity",
                rule.date.date(), rule.principal_percent,
            )
            continue

        best = min(candidates, key=lambda d: abs(d - rule.date))
        logger.warning(
            "Amortization on %s (%s%%) attached to payment date %s",
            rule.date.date(), rule.principal_percent, best.date(),
        )
        due[best] = due.get(best, ZERO) + rule.principal_percent

    return due


def ensure_valid(terms: BondTerms) -> None:
    """Raise InvalidBondTerms or InvalidSchedule if `validate` reports errors."""
    report = validate(terms)
    if report.valid:
        return
    structural = report.structural_errors()
    if structural:
        raise InvalidBondTerms("Invalid bond terms", structural)
    raise InvalidSchedule("Invalid bond schedule", report.schedule_errors())


def generate(terms: BondTerms) -> List[CashFlow]:
    """
    Expand bond terms into the dated payment schedule.

    Each payment date pays remaining notional x current rate / frequency plus
    any scheduled amortization; the maturity date pays off what is left.
    The schedule always ends with zero remaining notional.
    """
    ensure_valid(terms)

    total_pct = sum((r.principal_percent for r in terms.amortization), ZERO)
    if total_pct > AMORTIZATION_LIMIT_PCT:
        raise InvalidSchedule(f"Total amortization {total_pct}% exceeds 100%")

    dates = payment_dates(terms)
    due = _match_amortization(terms.amortization, dates)

    face = terms.face_value
    remaining = face
    flows: List[CashFlow] = []

    for d in dates:
        rate = terms.coupon_rate_on(d)
        coupon = divide(multiply(remaining, divide(rate, HUNDRED)), terms.frequency)

        if d == terms.maturity_date:
            principal = remaining
        else:
            principal = divide(multiply(face, due.get(d, ZERO)), HUNDRED)
            if principal > remaining:
                principal = remaining

        remaining = subtract(remaining, principal)
        if remaining.is_zero():
            kind = PaymentKind.MATURITY
        elif principal > 0:
            kind = PaymentKind.AMORTIZATION
        else:
            kind = PaymentKind.COUPON

        flows.append(CashFlow(d, coupon, principal, add(coupon, principal), remaining, kind))

        if remaining.is_zero():
            if d != terms.maturity_date:
                logger.info("Notional fully repaid on %s before maturity %s", d.date(), terms.maturity_date.date())
            break

    if not remaining.is_zero():
        flows.append(_repair_maturity(terms, flows, remaining))

    return flows


def _repair_maturity(terms: BondTerms, flows: List[CashFlow], residual: Decimal) -> CashFlow:
    """Final MATURITY flow carrying the residual notional and its accrued coupon."""
    start = flows[-1].date if flows else terms.issue_date
    maturity = terms.maturity_date
    logger.warning(
        "Residual notional %s after schedule; adding maturity payment on %s",
        residual, maturity.date(),
    )
    rate = terms.coupon_rate_on(maturity)
    accrual = year_fraction(start, maturity, terms.day_count)
    coupon = multiply(multiply(residual, divide(rate, HUNDRED)), accrual)
    return CashFlow(maturity, coupon, residual, add(coupon, residual), ZERO, PaymentKind.MATURITY)


@lru_cache(maxsize=10_000)
def cached_schedule(terms: BondTerms) -> Tuple[CashFlow, ...]:
    """
    Cache schedules by bond terms (terms are immutable and hashable).

    The cache is process-wide, so warnings raised while generating (matched
    amortization dates, maturity repair) are logged once per distinct terms.
    Call `generate` directly to rebuild and re-log.
    """
    return tuple(generate(terms))


def validate_schedule(flows: Sequence[CashFlow]) -> None:
    """
    Checks for schedules that bypass `generate` (persisted or externally supplied).
    Raises InvalidSchedule listing every problem found.
    """
    errors: List[str] = []
    if not flows:
        raise InvalidSchedule("Cash flow schedule is empty")

    prev: Optional[CashFlow] = None
    for i, cf in enumerate(flows):
        if cf.coupon < 0 or cf.principal < 0:
            errors.append(f"row {i} ({cf.date.date()}): negative amount")
        if not is_close(cf.total, cf.coupon + cf.principal, AMOUNT_TOLERANCE):
            errors.append(f"row {i} ({cf.date.date()}): total != coupon + principal")
        if cf.remaining_notional < 0:
            errors.append(f"row {i} ({cf.date.date()}): negative remaining notional")
        if prev is not None:
            if cf.date <= prev.date:
                errors.append(f"row {i} ({cf.date.date()}): dates not in chronological order")
            if cf.remaining_notional > prev.remaining_notional:
                errors.append(f"row {i} ({cf.date.date()}): remaining notional increases")
        prev = cf

    if absolute(flows[-1].remaining_notional) > AMOUNT_TOLERANCE:
        errors.append(f"final remaining notional is {flows[-1].remaining_notional}, expected 0")

    if errors:
        raise InvalidSchedule("Invalid cash flow schedule", errors)


def _field(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in record and record[k] is not None:
            return record[k]
    return default


def cash_flows_from_records(records: Iterable[Mapping[str, Any]]) -> List[CashFlow]:
    """
    Convert persisted schedule rows (camelCase or snake_case) into CashFlows
    and validate the result.
    """
    flows: List[CashFlow] = []
    for rec in records:
        coupon = to_decimal(_field(rec, "coupon", "couponPayment", default=0))
        principal = to_decimal(_field(rec, "principal", "principalPayment", default=0))
        total = _field(rec, "total", "totalPayment")
        flows.append(
            CashFlow(
                date=_field(rec, "date"),
                coupon=coupon,
                principal=principal,
                total=coupon + principal if total is None else total,
                remaining_notional=_field(rec, "remaining_notional", "remainingNotional", default=0),
                kind=_field(rec, "kind", "paymentType", default=PaymentKind.COUPON),
            )
        )
    validate_schedule(flows)
    return flows


def outstanding_notional(flows: Sequence[CashFlow], settlement, face_value) -> Decimal:
    """Remaining notional after the last payment on or before settlement."""
    settlement = to_timestamp(settlement)
    notional = to_decimal(face_value)
    for cf in flows:
        if cf.date > settlement:
            break
        notional = cf.remaining_notional
    return notional


def cashflow_table(flows: Sequence[CashFlow]) -> pd.DataFrame:
    """Schedule as a DataFrame (floats, for display)."""
    return pd.DataFrame(
        {
            "date": [cf.date for cf in flows],
            "coupon": [to_float(cf.coupon) for cf in flows],
            "principal": [to_float(cf.principal) for cf in flows],
            "total": [to_float(cf.total) for cf in flows],
            "remaining_notional": [to_float(cf.remaining_notional) for cf in flows],
            "kind": [cf.kind.value for cf in flows],
        }
    )
