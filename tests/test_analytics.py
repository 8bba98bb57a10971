from decimal import Decimal

import pandas as pd
import pytest

from bond_analytics.analytics import (
    AnalysisFailure,
    AnalysisSuccess,
    analyze,
    evaluate,
    price_from_yield,
    yield_from_price,
)
from bond_analytics.bonds import AmortizationRule, BondTerms, CallRule, CouponChangeRule
from bond_analytics.cashflows import CashFlow, generate
from bond_analytics.curves import curve_from_tenors
from bond_analytics.errors import (
    CurveUnavailable,
    InvalidBondTerms,
    InvalidMarketInputs,
    InvalidSchedule,
    InvalidSettlementDate,
    NoFutureCashFlows,
    UnrealisticYield,
)
from bond_analytics.precision import absolute, is_close


@pytest.fixture(scope="module")
def vanilla():
    return BondTerms("ACME Corp", 1000, 5.0, "2026-02-15", "2031-02-15", isin="US0000000001")


@pytest.fixture(scope="module")
def amortizer():
    dates = pd.date_range("2025-01-09", "2030-07-09", freq=pd.DateOffset(months=6))
    return BondTerms(
        "Deep Discount Amortizer", 1000, 1.0, "2024-01-09", "2031-01-09",
        first_coupon_date="2024-07-09",
        amortization=tuple(AmortizationRule(d, 8) for d in dates),
    )


@pytest.fixture(scope="module")
def curve():
    return curve_from_tenors(
        {"1M": 4.30, "3M": 4.28, "6M": 4.20, "1Y": 4.05, "2Y": 3.90, "3Y": 3.85,
         "5Y": 3.95, "7Y": 4.05, "10Y": 4.20, "20Y": 4.55, "30Y": 4.60},
        as_of="2026-02-13",
    )


def test_vanilla_at_par(vanilla):
    r = analyze(vanilla, "2026-02-15", price=100)
    assert absolute(r.ytm - 5) < Decimal("1e-6"), f"ytm {r.ytm}"
    assert Decimal("4.3") < r.modified_duration < Decimal("4.45")
    assert r.macaulay_duration > r.modified_duration
    assert r.convexity > 0
    assert r.dirty_value == Decimal(1000)
    assert r.accrued_interest == 0
    assert r.ytw == r.ytm and r.ytw_kind == "MATURITY"
    assert absolute(r.current_yield - 5) < Decimal("1e-12")
    assert is_close(r.dv01, r.modified_duration * Decimal(1000) / 10000, Decimal("1e-20"))
    assert r.average_life == Decimal(5)
    assert r.next_payment_date == pd.Timestamp("2026-08-15")
    assert r.diagnostics.algorithm == "newton-raphson"
    assert r.diagnostics.converged


def test_no_curve_means_no_spreads(vanilla):
    r = analyze(vanilla, "2026-02-15", price=100)
    assert r.nominal_spread_bp is None and r.z_spread_bp is None
    assert not r.has_spreads
    d = r.to_dict()
    assert "spreads" not in d
    assert d["yields"]["ytm"] == pytest.approx(5.0)


def test_with_curve(vanilla, curve):
    r = analyze(vanilla, "2026-02-15", price=100, curve=curve)
    # 5Y benchmark is 3.95%
    assert absolute(r.nominal_spread_bp - 105) < Decimal("1e-4")
    assert Decimal(90) < r.z_spread_bp < Decimal(130)
    assert r.interpolation.method == "exact"
    assert r.to_dict()["spreads"]["interpolation_method"] == "exact"


def test_curve_provider(vanilla, curve):
    class Provider:
        def __init__(self):
            self.requested = []

        def get_curve(self, as_of):
            self.requested.append(as_of)
            return curve

    provider = Provider()
    r = analyze(vanilla, "2026-02-15", price=100, curve_provider=provider)
    assert provider.requested == [pd.Timestamp("2026-02-15")]
    assert r.has_spreads


def test_unusable_curve_raises(vanilla):
    short = curve_from_tenors({"1Y": 4.0, "2Y": 4.1})
    with pytest.raises(CurveUnavailable):
        analyze(vanilla, "2026-02-15", price=100, curve=short)


def test_yield_input_direct_path(vanilla):
    r = analyze(vanilla, "2026-02-15", yield_=5)
    assert is_close(r.dirty_price, 100, Decimal("1e-18"))
    assert r.diagnostics.algorithm == "direct"
    assert r.diagnostics.iterations == 0


def test_exactly_one_of_price_or_yield(vanilla):
    with pytest.raises(InvalidMarketInputs):
        analyze(vanilla, "2026-02-15")
    with pytest.raises(InvalidMarketInputs):
        analyze(vanilla, "2026-02-15", price=100, yield_=5)


@pytest.mark.parametrize("price", [0, -5, 600, "abc"])
def test_bad_prices(vanilla, price):
    with pytest.raises(InvalidMarketInputs):
        analyze(vanilla, "2026-02-15", price=price)


def test_clean_price_basis(vanilla):
    r = analyze(vanilla, "2026-11-15", price=100, price_basis="clean")
    assert r.accrued_interest == Decimal("12.5")
    assert r.dirty_price == Decimal("101.25")
    assert r.clean_price == Decimal(100)
    assert r.clean_value == Decimal(1000)


def test_settlement_errors(vanilla):
    with pytest.raises(InvalidSettlementDate):
        analyze(vanilla, "2025-01-01", price=100)
    with pytest.raises(InvalidSettlementDate):
        analyze(vanilla, "not a date", price=100)
    with pytest.raises(NoFutureCashFlows):
        analyze(vanilla, "2031-02-15", price=100)


def test_unrealistic_supplied_yield(vanilla):
    with pytest.raises(UnrealisticYield):
        analyze(vanilla, "2026-02-15", yield_=250)


def test_invalid_terms_raise_before_calculation():
    bad = BondTerms("Bad", 1000, 60, "2026-02-15", "2031-02-15")
    with pytest.raises(InvalidBondTerms):
        analyze(bad, "2026-02-15", price=100)


def test_deep_discount_amortizer(amortizer):
    r = analyze(amortizer, "2025-03-15", price="69.78")
    assert r.outstanding_notional == Decimal(920), "price is quoted on current outstanding"
    assert r.ytm > 0
    assert r.diagnostics.converged
    assert r.dv01 > 0
    assert r.average_life < Decimal("5.9")
    assert is_close(r.dirty_value, Decimal("69.78") * 920 / 100, Decimal("1e-20"))


def test_outstanding_notional_override(amortizer):
    base = analyze(amortizer, "2025-03-15", price=70)
    override = analyze(amortizer, "2025-03-15", price=70, outstanding_notional=1000)
    assert override.dirty_value > base.dirty_value
    assert override.ytm < base.ytm, "paying more for the same flows lowers the yield"


def test_step_up_bond():
    terms = BondTerms(
        "Step Up", 1000, "0.125", "2024-02-15", "2030-02-15",
        coupon_changes=(
            CouponChangeRule("2025-02-15", "1.0"),
            CouponChangeRule("2026-02-15", "2.5"),
            CouponChangeRule("2027-02-15", "3.75"),
            CouponChangeRule("2028-02-15", "5.0"),
        ),
    )
    r = analyze(terms, "2025-05-15", price=85)
    assert r.ytm > 0
    assert r.diagnostics.converged


def test_callable_premium_bond_ytw(vanilla):
    callable_ = BondTerms(
        "Callable", 1000, 5.0, "2026-02-15", "2031-02-15",
        calls=(CallRule("2028-02-15", 101),),
    )
    r = analyze(callable_, "2026-02-15", price=106)
    assert r.ytw < r.ytm
    assert r.ytw_kind == "CALL"
    assert r.ytw_date == pd.Timestamp("2028-02-15")


def test_call_after_early_repayment_is_skipped():
    terms = BondTerms(
        "Early", 1000, 5, "2024-01-15", "2027-01-15",
        amortization=(AmortizationRule("2025-01-15", 50), AmortizationRule("2025-07-15", 50)),
        calls=(CallRule("2026-01-15", 100),),
    )
    outcome = evaluate(terms, "2024-06-01", price=100)
    assert isinstance(outcome, AnalysisSuccess), f"got {outcome}"
    r = outcome.result
    assert r.ytw == r.ytm and r.ytw_kind == "MATURITY"
    assert len(r.skipped_workouts) == 1
    assert r.skipped_workouts[0].startswith("CALL 2026-01-15")


def test_distressed_bond_with_curve(curve):
    distressed = BondTerms("Distressed", 1000, 1.0, "2025-02-15", "2028-02-15")
    r = analyze(distressed, "2026-02-15", price=35, curve=curve)
    assert r.ytm > 55, f"ytm {r.ytm}"
    assert r.nominal_spread_bp > 5000
    assert r.z_spread_bp > 5000, f"z-spread {r.z_spread_bp}bp"


def test_external_schedule(vanilla):
    flows = generate(vanilla)
    r = analyze(vanilla, "2026-02-15", price=100, cash_flows=flows)
    assert absolute(r.ytm - 5) < Decimal("1e-6")

    broken = list(flows[:-1]) + [CashFlow("2031-02-15", 25, 500, 525, 500)]
    with pytest.raises(InvalidSchedule):
        analyze(vanilla, "2026-02-15", price=100, cash_flows=broken)


def test_schedule_source(vanilla):
    class Source:
        def get_cash_flows(self, terms):
            return generate(terms)

    r = analyze(vanilla, "2026-02-15", price=100, schedule_source=Source())
    assert absolute(r.ytm - 5) < Decimal("1e-6")


def test_evaluate_success_and_failure(vanilla):
    ok = evaluate(vanilla, "2026-02-15", price=100)
    assert isinstance(ok, AnalysisSuccess) and ok.ok

    failed = evaluate(vanilla, "2031-02-15", price=100)
    assert isinstance(failed, AnalysisFailure)
    assert not failed.ok
    assert failed.error_type == "NoFutureCashFlows"

    failed = evaluate(vanilla, "2026-02-15", price="1e-3")
    assert isinstance(failed, AnalysisFailure)
    assert failed.error_type in ("YTMDidNotConverge", "UnrealisticYield")


def test_price_yield_helpers_round_trip(vanilla):
    quote = price_from_yield(vanilla, "2027-05-03", "6.5")
    assert quote.dirty_price > quote.clean_price
    y = yield_from_price(vanilla, "2027-05-03", quote.clean_price, price_basis="clean")
    assert absolute(y - Decimal("6.5")) < Decimal("1e-6")


def test_to_dict_is_plain(vanilla):
    d = analyze(vanilla, "2026-02-15", price=100).to_dict()
    assert d["settlement_date"] == "2026-02-15"
    assert isinstance(d["risk"]["modified_duration"], float)
    assert d["analytics"]["days_to_next_payment"] == 181
    assert d["diagnostics"]["converged"] is True
