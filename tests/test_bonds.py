from decimal import Decimal

import pandas as pd
import pytest

from bond_analytics.bonds import (
    AmortizationRule,
    BondTerms,
    CallRule,
    CouponChangeRule,
    bond_terms_from_dict,
    validate,
)


@pytest.fixture(scope="module")
def bond():
    return BondTerms(
        issuer="ACME Corp",
        face_value=1000,
        coupon_rate=5.0,
        issue_date="2026-02-15",
        maturity_date="2031-02-15",
        frequency=2,
        day_count="30/360",
    )


@pytest.fixture(scope="module")
def step_up():
    return BondTerms(
        issuer="Step Up",
        face_value=1000,
        coupon_rate="0.125",
        issue_date="2024-02-15",
        maturity_date="2030-02-15",
        coupon_changes=(
            CouponChangeRule("2027-02-15", "3.75"),
            CouponChangeRule("2025-02-15", "1.0"),
            CouponChangeRule("2026-02-15", "2.5"),
            CouponChangeRule("2028-02-15", "5.0"),
        ),
    )


def test_terms_are_coerced(bond):
    assert bond.face_value == Decimal(1000)
    assert bond.coupon_rate == Decimal("5.0")
    assert bond.issue_date == pd.Timestamp("2026-02-15")
    assert bond.months_per_period == 6


def test_terms_are_immutable_and_hashable(bond):
    with pytest.raises(AttributeError):
        bond.coupon_rate = Decimal(6)
    assert hash(bond) == hash(BondTerms("ACME Corp", 1000, 5.0, "2026-02-15", "2031-02-15"))


def test_rules_sorted_by_date(step_up):
    dates = [r.effective_date for r in step_up.coupon_changes]
    assert dates == sorted(dates)


def test_coupon_rate_step_function(step_up):
    assert step_up.coupon_rate_on("2024-08-15") == Decimal("0.125"), "before any change"
    assert step_up.coupon_rate_on("2025-02-14") == Decimal("0.125")
    assert step_up.coupon_rate_on("2025-02-15") == Decimal("1.0"), "change applies on its effective date"
    assert step_up.coupon_rate_on("2027-06-01") == Decimal("3.75")
    assert step_up.coupon_rate_on("2030-02-15") == Decimal("5.0")


def test_settlement_for_uses_bond_lag(bond):
    assert bond.settlement_for("2026-03-06") == pd.Timestamp("2026-03-10")


def test_valid_bond_has_no_errors(bond, step_up):
    assert validate(bond).valid
    assert validate(step_up).valid


def _with(bond, **changes):
    fields = dict(bond.__dict__)
    fields.update(changes)
    return BondTerms(**fields)


@pytest.mark.parametrize(
    "changes, field",
    [
        ({"maturity_date": "2026-02-15"}, "maturity_date"),
        ({"face_value": 0}, "face_value"),
        ({"coupon_rate": 51}, "coupon_rate"),
        ({"coupon_rate": -1}, "coupon_rate"),
        ({"frequency": 5}, "frequency"),
        ({"day_count": "ACT/364"}, "day_count"),
        ({"first_coupon_date": "2026-01-01"}, "first_coupon_date"),
    ],
)
def test_structural_errors(bond, changes, field):
    report = validate(_with(bond, **changes))
    assert not report.valid
    assert field in [e.field for e in report.errors], f"expected an error on {field}"
    assert report.structural_errors()


def test_amortization_total_limits(bond):
    heavy = _with(bond, amortization=[AmortizationRule("2028-02-15", 95)])
    report = validate(heavy)
    assert report.valid, "95% amortization is allowed"
    assert any(w.field == "amortization" for w in report.warnings), "but warned about"

    over = _with(bond, amortization=[AmortizationRule("2028-02-15", 60), AmortizationRule("2029-02-15", 41)])
    report = validate(over)
    assert not report.valid
    assert report.schedule_errors() and not report.structural_errors()


def test_rule_dates_must_be_inside_bond_life(bond):
    report = validate(_with(bond, amortization=[AmortizationRule("2026-02-15", 10)]))
    assert not report.valid, "amortization on the issue date is outside (issue, maturity]"

    report = validate(_with(bond, calls=[CallRule("2032-01-01", 100)]))
    assert [e.field for e in report.errors] == ["calls"]


def test_from_dict_camel_case():
    data = {
        "bondInfo": {
            "issuer": "REPUBLIC",
            "faceValue": 1000,
            "couponRate": 1,
            "issueDate": "2024-01-09",
            "maturityDate": "2031-01-09",
            "firstCouponDate": "2024-07-09",
            "paymentFrequency": 2,
            "dayCountConvention": "30/360",
            "isin": "XS0000000001",
        },
        "schedules": {
            "amortizationSchedule": [{"date": "2025-01-09", "principalPercent": 8}],
            "couponRateChanges": [{"effectiveDate": "2026-01-09", "newCouponRate": 4.125}],
            "callSchedule": [{"date": "2028-01-09", "callPrice": 101}],
        },
    }
    terms = bond_terms_from_dict(data)
    assert terms.issuer == "REPUBLIC"
    assert terms.first_coupon_date == pd.Timestamp("2024-07-09")
    assert terms.amortization[0].principal_percent == Decimal(8)
    assert terms.coupon_changes[0].new_rate == Decimal("4.125")
    assert terms.calls[0].price == Decimal(101)
    assert terms.puts == ()


def test_from_dict_snake_case():
    terms = bond_terms_from_dict(
        {
            "issuer": "X",
            "face_value": "500",
            "coupon_rate": "4.5",
            "issue_date": "2025-01-01",
            "maturity_date": "2030-01-01",
            "frequency": 4,
            "puts": [{"date": "2027-01-01"}],
        }
    )
    assert terms.face_value == Decimal(500)
    assert terms.frequency == 4
    assert terms.puts[0].price == Decimal(100), "put price defaults to par"


def test_from_dict_missing_dates_raise():
    with pytest.raises(ValueError):
        bond_terms_from_dict({"issuer": "X", "couponRate": 5})
