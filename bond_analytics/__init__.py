"""
Bond Analytics Engine

Modules:
- precision: Decimal arithmetic used by every calculation
- daycount: year fractions, period arithmetic, settlement dates
- bonds: bond terms + schedule rules + validation
- cashflows: cash-flow schedule generation and checks
- solver: present value + yield solver (Newton -> hybrid -> bisection)
- risk: accrued, durations, convexity, DV01, average life, yield-to-worst
- curves: benchmark curve, interpolation, validation, shocks
- spreads: nominal spread and Z-spread
- analytics: analyze/evaluate facade
- scenarios: yield and benchmark scenario grids

API and UI layers should import from this package.
"""
from .analytics import (
    AnalysisFailure,
    AnalysisSuccess,
    AnalyticsResult,
    analyze,
    evaluate,
    price_from_yield,
    yield_from_price,
)
from .bonds import (
    AmortizationRule,
    BondTerms,
    CallRule,
    CouponChangeRule,
    PutRule,
    ValidationReport,
    bond_terms_from_dict,
    validate,
)
from .cashflows import CashFlow, PaymentKind, cash_flows_from_records, generate, validate_schedule
from .curves import BenchmarkCurve, CurvePoint, curve_from_tenors, interpolate, validate_curve
from .errors import (
    AnalyticsError,
    CurveUnavailable,
    DivisionByZero,
    InvalidBondTerms,
    InvalidMarketInputs,
    InvalidSchedule,
    InvalidSettlementDate,
    NegativeRadicand,
    NoFutureCashFlows,
    UnrealisticYield,
    YTMDidNotConverge,
    ZSpreadDidNotConverge,
)
