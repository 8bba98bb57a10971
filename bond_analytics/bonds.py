from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .config import (
    AMORTIZATION_LIMIT_PCT,
    AMORTIZATION_WARN_PCT,
    DEFAULT_SETTLEMENT_DAYS,
    MAX_COUPON_RATE,
    SUPPORTED_FREQUENCIES,
)
from .daycount import normalize_convention, settlement_date, to_timestamp
from .precision import ZERO, to_decimal

# Fields whose problems are schedule errors rather than structural term errors
SCHEDULE_FIELDS = frozenset({"amortization", "calls", "puts"})


@dataclass(frozen=True)
class AmortizationRule:
    """Scheduled principal repayment, as a percent of original face value."""
    date: pd.Timestamp
    principal_percent: Decimal

    def __post_init__(self):
        object.__setattr__(self, "date", to_timestamp(self.date))
        object.__setattr__(self, "principal_percent", to_decimal(self.principal_percent))


@dataclass(frozen=True)
class CouponChangeRule:
    """From `effective_date` on, the bond pays `new_rate` (annual %)."""
    effective_date: pd.Timestamp
    new_rate: Decimal

    def __post_init__(self):
        object.__setattr__(self, "effective_date", to_timestamp(self.effective_date))
        object.__setattr__(self, "new_rate", to_decimal(self.new_rate))


@dataclass(frozen=True)
class CallRule:
    """Issuer call at `price` (% of outstanding notional) on `date`."""
    date: pd.Timestamp
    price: Decimal = Decimal(100)

    def __post_init__(self):
        object.__setattr__(self, "date", to_timestamp(self.date))
        object.__setattr__(self, "price", to_decimal(self.price))


@dataclass(frozen=True)
class PutRule:
    """Holder put at `price` (% of outstanding notional) on `date`."""
    date: pd.Timestamp
    price: Decimal = Decimal(100)

    def __post_init__(self):
        object.__setattr__(self, "date", to_timestamp(self.date))
        object.__setattr__(self, "price", to_decimal(self.price))


@dataclass(frozen=True)
class BondTerms:
    """
    Contractual description of a bond. Rates are annual percentages
    (5.0 = 5%). Dates are normalised to midnight Timestamps and rule
    collections to date-sorted tuples.
    """
    issuer: str
    face_value: Decimal
    coupon_rate: Decimal
    issue_date: pd.Timestamp
    maturity_date: pd.Timestamp
    first_coupon_date: Optional[pd.Timestamp] = None
    frequency: int = 2
    day_count: str = "30/360"
    currency: str = "USD"
    settlement_days: int = DEFAULT_SETTLEMENT_DAYS
    isin: Optional[str] = None
    cusip: Optional[str] = None
    end_of_month: bool = True
    amortization: Tuple[AmortizationRule, ...] = field(default_factory=tuple)
    coupon_changes: Tuple[CouponChangeRule, ...] = field(default_factory=tuple)
    calls: Tuple[CallRule, ...] = field(default_factory=tuple)
    puts: Tuple[PutRule, ...] = field(default_factory=tuple)

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, "face_value", to_decimal(self.face_value))
        set_(self, "coupon_rate", to_decimal(self.coupon_rate))
        set_(self, "issue_date", to_timestamp(self.issue_date))
        set_(self, "maturity_date", to_timestamp(self.maturity_date))
        if self.first_coupon_date is not None:
            set_(self, "first_coupon_date", to_timestamp(self.first_coupon_date))
        set_(self, "frequency", int(self.frequency))
        set_(self, "settlement_days", int(self.settlement_days))

        set_(self, "amortization", tuple(sorted(
            (r if isinstance(r, AmortizationRule) else AmortizationRule(**r) for r in self.amortization),
            key=lambda r: r.date,
        )))
        set_(self, "coupon_changes", tuple(sorted(
            (r if isinstance(r, CouponChangeRule) else CouponChangeRule(**r) for r in self.coupon_changes),
            key=lambda r: r.effective_date,
        )))
        set_(self, "calls", tuple(sorted(
            (r if isinstance(r, CallRule) else CallRule(**r) for r in self.calls),
            key=lambda r: r.date,
        )))
        set_(self, "puts", tuple(sorted(
            (r if isinstance(r, PutRule) else PutRule(**r) for r in self.puts),
            key=lambda r: r.date,
        )))

    @property
    def months_per_period(self) -> int:
        return 12 // self.frequency

    def coupon_rate_on(self, date) -> Decimal:
        """Annual % rate in force on `date`: the last change effective on or before it."""
        date = to_timestamp(date)
        rate = self.coupon_rate
        for rule in self.coupon_changes:
            if rule.effective_date <= date:
                rate = rule.new_rate
            else:
                break
        return rate

    def settlement_for(self, trade_date, holidays: Optional[Iterable] = None) -> pd.Timestamp:
        return settlement_date(trade_date, self.settlement_days, holidays)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass(frozen=True)
class ValidationReport:
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationIssue, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    def structural_errors(self) -> List[str]:
        return [str(e) for e in self.errors if e.field not in SCHEDULE_FIELDS]

    def schedule_errors(self) -> List[str]:
        return [str(e) for e in self.errors if e.field in SCHEDULE_FIELDS]


def _check_option_dates(rules, name: str, terms: BondTerms, errors: List[ValidationIssue]) -> None:
    for rule in rules:
        if not (terms.issue_date < rule.date <= terms.maturity_date):
            errors.append(ValidationIssue(name, f"{rule.date.date()} outside (issue, maturity]"))
        if rule.price <= 0:
            errors.append(ValidationIssue(name, f"price on {rule.date.date()} must be positive"))


def validate(terms: BondTerms) -> ValidationReport:
    """Structural checks on bond terms, independent of market inputs."""
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if terms.maturity_date <= terms.issue_date:
        errors.append(ValidationIssue("maturity_date", "must be after issue date"))

    if terms.first_coupon_date is not None:
        if terms.first_coupon_date <= terms.issue_date:
            errors.append(ValidationIssue("first_coupon_date", "must be after issue date"))
        elif terms.first_coupon_date > terms.maturity_date:
            errors.append(ValidationIssue("first_coupon_date", "must not be after maturity"))

    if terms.face_value <= 0:
        errors.append(ValidationIssue("face_value", "must be positive"))

    if not (ZERO <= terms.coupon_rate <= MAX_COUPON_RATE):
        errors.append(ValidationIssue("coupon_rate", f"must be between 0% and {MAX_COUPON_RATE}%"))

    if terms.frequency not in SUPPORTED_FREQUENCIES:
        errors.append(ValidationIssue("frequency", f"must be one of {SUPPORTED_FREQUENCIES}"))

    try:
        normalize_convention(terms.day_count)
    except ValueError as exc:
        errors.append(ValidationIssue("day_count", str(exc)))

    if terms.settlement_days < 0:
        errors.append(ValidationIssue("settlement_days", "must not be negative"))

    if terms.amortization:
        total = sum((r.principal_percent for r in terms.amortization), ZERO)
        for rule in terms.amortization:
            if not (terms.issue_date < rule.date <= terms.maturity_date):
                errors.append(ValidationIssue("amortization", f"{rule.date.date()} outside (issue, maturity]"))
            if rule.principal_percent <= 0:
                errors.append(ValidationIssue("amortization", f"non-positive percent on {rule.date.date()}"))

        if total > AMORTIZATION_LIMIT_PCT:
            errors.append(ValidationIssue("amortization", f"total {total}% exceeds 100%"))
        elif total > AMORTIZATION_WARN_PCT:
            warnings.append(ValidationIssue("amortization", f"total {total}% leaves a small final payment"))

        dates = [r.date for r in terms.amortization]
        if len(set(dates)) != len(dates):
            warnings.append(ValidationIssue("amortization", "duplicate amortization dates"))

    for rule in terms.coupon_changes:
        if not (ZERO <= rule.new_rate <= MAX_COUPON_RATE):
            errors.append(ValidationIssue("coupon_changes", f"rate {rule.new_rate}% on {rule.effective_date.date()} out of range"))
        if not (terms.issue_date <= rule.effective_date <= terms.maturity_date):
            warnings.append(ValidationIssue("coupon_changes", f"{rule.effective_date.date()} outside the bond's life"))

    _check_option_dates(terms.calls, "calls", terms, errors)
    _check_option_dates(terms.puts, "puts", terms, errors)

    return ValidationReport(tuple(errors), tuple(warnings))


# ---- boundary conversion ----

def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default


def _rules(items: Optional[Sequence[Mapping[str, Any]]], date_keys, value_keys, cls, value_default=None):
    out = []
    for item in items or ():
        date = _pick(item, *date_keys)
        value = _pick(item, *value_keys, default=value_default)
        if date is None or value is None:
            raise ValueError(f"Incomplete {cls.__name__} entry: {dict(item)!r}")
        out.append(cls(date, value))
    return tuple(out)


def bond_terms_from_dict(data: Mapping[str, Any]) -> BondTerms:
    """
    Build BondTerms from a loosely-typed mapping (JSON bond files, API payloads).

    Accepts the camelCase keys of the JSON bond format, optionally nested under
    "bondInfo"/"schedules", as well as snake_case field names.
    """
    info: Dict[str, Any] = dict(data.get("bondInfo", {}))
    info.update({k: v for k, v in data.items() if k not in ("bondInfo", "schedules")})
    schedules: Dict[str, Any] = dict(data.get("schedules", {}))
    schedules.update(info)

    return BondTerms(
        issuer=str(_pick(info, "issuer", default="")),
        face_value=_pick(info, "face_value", "faceValue", default=1000),
        coupon_rate=_pick(info, "coupon_rate", "couponRate", default=0),
        issue_date=_pick(info, "issue_date", "issueDate"),
        maturity_date=_pick(info, "maturity_date", "maturityDate"),
        first_coupon_date=_pick(info, "first_coupon_date", "firstCouponDate"),
        frequency=_pick(info, "frequency", "paymentFrequency", default=2),
        day_count=_pick(info, "day_count", "dayCountConvention", default="30/360"),
        currency=_pick(info, "currency", default="USD"),
        settlement_days=_pick(info, "settlement_days", "settlementDays", default=DEFAULT_SETTLEMENT_DAYS),
        isin=_pick(info, "isin"),
        cusip=_pick(info, "cusip"),
        amortization=_rules(
            _pick(schedules, "amortization", "amortizationSchedule"),
            ("date",), ("principal_percent", "principalPercent"), AmortizationRule,
        ),
        coupon_changes=_rules(
            _pick(schedules, "coupon_changes", "couponRateChanges"),
            ("effective_date", "effectiveDate"), ("new_rate", "newCouponRate"), CouponChangeRule,
        ),
        calls=_rules(
            _pick(schedules, "calls", "callSchedule"),
            ("date", "firstCallDate"), ("price", "callPrice"), CallRule, value_default=100,
        ),
        puts=_rules(
            _pick(schedules, "puts", "putSchedule"),
            ("date", "firstPutDate"), ("price", "putPrice"), PutRule, value_default=100,
        ),
    )
