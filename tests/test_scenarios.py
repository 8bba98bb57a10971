import pytest

from bond_analytics.analytics import analyze
from bond_analytics.bonds import BondTerms
from bond_analytics.curves import curve_from_tenors, parallel_shift_bp
from bond_analytics.scenarios import run_benchmark_scenarios, run_yield_scenarios


@pytest.fixture(scope="module")
def bond():
    return BondTerms("ACME Corp", 1000, 5.0, "2026-02-15", "2031-02-15")


@pytest.fixture(scope="module")
def curve():
    return curve_from_tenors(
        {"1M": 4.30, "3M": 4.28, "6M": 4.20, "1Y": 4.05, "2Y": 3.90, "3Y": 3.85,
         "5Y": 3.95, "7Y": 4.05, "10Y": 4.20, "20Y": 4.55, "30Y": 4.60},
        as_of="2026-02-13",
    )


@pytest.fixture(scope="module")
def result(bond):
    return analyze(bond, "2026-02-15", price=100)


def test_yield_scenarios(bond, result):
    df = run_yield_scenarios(bond, result)
    assert list(df["shock_bp"]) == [-100, -50, -25, 25, 50, 100]

    up = df[df["shock_bp"] > 0]
    down = df[df["shock_bp"] < 0]
    assert (up["price_change_pct"] < 0).all(), "prices fall when yields rise"
    assert (down["price_change_pct"] > 0).all()

    # convexity correction brings the estimate closer to the full reprice
    dur_err = (df["duration_estimate_pct"] - df["price_change_pct"]).abs()
    conv_err = (df["duration_convexity_estimate_pct"] - df["price_change_pct"]).abs()
    assert (conv_err < dur_err).all()


def test_yield_scenario_asymmetry(bond, result):
    df = run_yield_scenarios(bond, result, shocks_bp=(-100, 100)).set_index("shock_bp")
    gain = df.loc[-100, "price_change_pct"]
    loss = -df.loc[100, "price_change_pct"]
    assert gain > loss, "positive convexity: gains exceed losses"


def test_benchmark_scenarios(bond, result, curve):
    df = run_benchmark_scenarios(bond, result, curve).set_index("scenario")
    assert "BASE" in df.index
    assert df.loc["PAR_+25bp", "nominal_change_bp"] == pytest.approx(-25.0)
    assert df.loc["PAR_-50bp", "nominal_change_bp"] == pytest.approx(50.0)
    assert df.loc["PAR_+25bp", "z_spread_change_bp"] == pytest.approx(-25.0, abs=0.5)
    # 5Y sits on the short side of the twist midpoint (6Y): a steepener lowers the benchmark there
    assert df.loc["STEEPENER_25bp", "nominal_change_bp"] == pytest.approx(6.25)
    assert df.loc["FLATTENER_25bp", "nominal_change_bp"] == pytest.approx(-6.25)


def test_custom_benchmark_shocks(bond, result, curve):
    df = run_benchmark_scenarios(bond, result, curve, shocks={"UP_10": parallel_shift_bp(10)})
    assert list(df["scenario"]) == ["BASE", "UP_10"]
