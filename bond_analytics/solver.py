"""
Yield solver: present value of a cash-flow schedule at a flat periodic yield,
and the inverse root-find from a target dirty price.

Yields here are decimals (0.05 = 5%) compounded `frequency` times a year.
The root-find runs an ordered fallback chain:

    Newton-Raphson -> secant/bisection hybrid -> bisection

and reports which algorithm produced the answer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from .cashflows import CashFlow
from .config import DEFAULT_SOLVER_CONFIG, SolverConfig
from .daycount import to_timestamp, year_fraction
from .errors import InvalidMarketInputs, NoFutureCashFlows, UnrealisticYield, YTMDidNotConverge
from .precision import (
    HUNDRED,
    ONE,
    TWO,
    ZERO,
    absolute,
    add,
    clamp,
    divide,
    maximum,
    multiply,
    power,
    subtract,
    to_decimal,
)

logger = logging.getLogger(__name__)

NEWTON = "newton-raphson"
HYBRID = "secant-bisection"
BISECTION = "bisection"


@dataclass(frozen=True)
class SolverAttempt:
    algorithm: str
    converged: bool
    iterations: int
    yield_: Optional[Decimal] = None
    error: Optional[Decimal] = None
    reason: str = ""

    def __str__(self) -> str:
        status = "converged" if self.converged else f"failed ({self.reason})"
        return f"{self.algorithm}: {status} after {self.iterations} iterations, error={self.error}"


@dataclass(frozen=True)
class YieldSolution:
    yield_: Decimal
    algorithm: str
    iterations: int
    achieved_error: Decimal
    converged: bool
    attempts: Tuple[SolverAttempt, ...] = ()


# (amount, years from settlement) for each cash flow after settlement
Timeline = List[Tuple[Decimal, Decimal]]


def future_cash_flows(cash_flows: Sequence[CashFlow], settlement) -> List[CashFlow]:
    """Flows strictly after settlement. Raises NoFutureCashFlows if none remain."""
    settlement = to_timestamp(settlement)
    future = [cf for cf in cash_flows if cf.date > settlement]
    if not future:
        raise NoFutureCashFlows(f"No cash flows after settlement {settlement.date()}")
    return future


def timeline(cash_flows: Sequence[CashFlow], settlement, day_count: str = "30/360") -> Timeline:
    settlement = to_timestamp(settlement)
    return [
        (cf.total, year_fraction(settlement, cf.date, day_count))
        for cf in future_cash_flows(cash_flows, settlement)
    ]


def discount_factor(yield_: Decimal, t: Decimal, frequency: int) -> Decimal:
    """1 / (1 + y/f)^(f t)"""
    base = add(ONE, divide(yield_, frequency))
    return divide(ONE, power(base, multiply(frequency, t)))


def discounted_value(flows: Timeline, yield_: Decimal, frequency: int) -> Decimal:
    """PV of a (amount, t) timeline at yield `yield_`."""
    pv = ZERO
    for amount, t in flows:
        pv = add(pv, multiply(amount, discount_factor(yield_, t, frequency)))
    return pv


def _pv_and_derivative(flows: Timeline, yield_: Decimal, frequency: int) -> Tuple[Decimal, Decimal]:
    """PV and dPV/dy = -sum(t * PV_i) / (1 + y/f)."""
    base = add(ONE, divide(yield_, frequency))
    pv = ZERO
    weighted = ZERO
    for amount, t in flows:
        pv_i = multiply(amount, discount_factor(yield_, t, frequency))
        pv = add(pv, pv_i)
        weighted = add(weighted, multiply(t, pv_i))
    return pv, -divide(weighted, base)


def present_value(
    cash_flows: Sequence[CashFlow],
    settlement,
    yield_,
    frequency: int,
    day_count: str = "30/360",
) -> Decimal:
    """Dirty value of the flows after settlement, in the flows' currency units."""
    return discounted_value(timeline(cash_flows, settlement, day_count), to_decimal(yield_), int(frequency))


def initial_guess(flows: Timeline, target: Decimal, frequency: int, config: SolverConfig) -> Decimal:
    """
    Median of three closed-form estimates, as a nominal yield compounded
    `frequency` times a year:

    - annualised return of total cash over price across the cash-weighted life
    - the textbook approximation (income + pull to par) / average price
    - coupon-style running yield (all cash above price spread over the final time)
    """
    total = sum((a for a, _ in flows), ZERO)
    life = divide(sum((multiply(a, t) for a, t in flows), ZERO), total)
    final_t = flows[-1][1]
    if life <= 0 or final_t <= 0:
        return clamp(Decimal("0.05"), config.min_sane_yield, config.max_sane_yield)

    annual = subtract(power(divide(total, target), divide(ONE, life)), ONE)
    periodic = subtract(power(add(ONE, annual), divide(ONE, frequency)), ONE)
    annualised = multiply(periodic, frequency)

    gain = subtract(total, target)
    approx = divide(divide(gain, final_t), divide(add(total, target), TWO))
    running = divide(divide(gain, final_t), target)

    guess = sorted((annualised, approx, running))[1]
    return clamp(guess, config.min_sane_yield, config.max_sane_yield)


def _newton(flows, target, frequency, guess, tol, config: SolverConfig) -> SolverAttempt:
    y = guess
    diff = None
    for i in range(1, config.max_iterations + 1):
        pv, dpv = _pv_and_derivative(flows, y, frequency)
        diff = subtract(pv, target)
        logger.debug("newton iter=%d y=%s error=%s", i, y, diff)

        if absolute(diff) <= tol:
            return SolverAttempt(NEWTON, True, i, y, absolute(diff))

        if absolute(dpv) < config.min_derivative:
            return SolverAttempt(NEWTON, False, i, y, absolute(diff), "derivative underflow")

        # damped step keeps the iterate from jumping across the bracket
        step = divide(diff, dpv)
        cap = add(multiply(Decimal("0.5"), absolute(y)), Decimal("0.1"))
        step = clamp(step, -cap, cap)
        y = clamp(subtract(y, step), config.lower_bound, config.upper_bound)

    return SolverAttempt(
        NEWTON, False, config.max_iterations, y,
        None if diff is None else absolute(diff), "iteration limit",
    )


def find_bracket(
    f: Callable[[Decimal], Decimal],
    guess: Decimal,
    config: SolverConfig,
) -> Optional[Tuple[Decimal, Decimal, Decimal, Decimal]]:
    """
    Scan the probe yields (plus points around the guess) for a sign change of
    f. Returns (a, b, f(a), f(b)) with a < b, or None.
    """
    points = set(config.probe_yields)
    for offset in (Decimal("0.05"), Decimal("0.1")):
        points.add(guess - offset)
        points.add(guess + offset)
    points = sorted(p for p in points if config.lower_bound <= p <= config.upper_bound)

    prev_y, prev_f = None, None
    for y in points:
        fy = f(y)
        if fy.is_zero():
            return y, y, fy, fy
        if prev_f is not None and (prev_f < 0) != (fy < 0):
            return prev_y, y, prev_f, fy
        prev_y, prev_f = y, fy
    return None


def _hybrid(f, bracket, tol, config: SolverConfig) -> SolverAttempt:
    a, b, fa, fb = bracket
    if a == b:
        return SolverAttempt(HYBRID, True, 0, a, ZERO)

    width = b - a
    force_bisect = False
    best_y, best_err = (a, absolute(fa)) if absolute(fa) < absolute(fb) else (b, absolute(fb))

    for i in range(1, config.max_iterations + 1):
        s = None
        if not force_bisect and fb != fa:
            s = subtract(b, divide(multiply(fb, subtract(b, a)), subtract(fb, fa)))
            if not (a < s < b):
                s = None
        if s is None:
            s = divide(add(a, b), TWO)

        fs = f(s)
        err = absolute(fs)
        logger.debug("hybrid iter=%d y=%s error=%s", i, s, fs)
        if err < best_err:
            best_y, best_err = s, err
        if err <= tol:
            return SolverAttempt(HYBRID, True, i, s, err)

        if (fs < 0) == (fa < 0):
            a, fa = s, fs
        else:
            b, fb = s, fs

        # secant steps that do not halve the bracket are replaced by bisection
        new_width = b - a
        force_bisect = new_width > width / 2
        width = new_width

    return SolverAttempt(HYBRID, False, config.max_iterations, best_y, best_err, "iteration limit")


def _bisection(f, bracket, tol, config: SolverConfig) -> SolverAttempt:
    a, b, fa, _ = bracket
    if a == b:
        return SolverAttempt(BISECTION, True, 0, a, ZERO)

    mid, err = a, absolute(fa)
    for i in range(1, config.bisection_max_iterations + 1):
        mid = divide(add(a, b), TWO)
        fm = f(mid)
        err = absolute(fm)
        if err <= tol:
            return SolverAttempt(BISECTION, True, i, mid, err)
        if (fm < 0) == (fa < 0):
            a, fa = mid, fm
        else:
            b = mid

    return SolverAttempt(BISECTION, False, config.bisection_max_iterations, mid, err, "iteration limit")


def _solution(attempt: SolverAttempt, attempts: List[SolverAttempt]) -> YieldSolution:
    return YieldSolution(
        yield_=attempt.yield_,
        algorithm=attempt.algorithm,
        iterations=attempt.iterations,
        achieved_error=attempt.error,
        converged=attempt.converged,
        attempts=tuple(attempts),
    )


def check_yield(yield_: Decimal, config: SolverConfig = DEFAULT_SOLVER_CONFIG, solution=None) -> None:
    if not (config.min_sane_yield <= yield_ <= config.max_sane_yield):
        raise UnrealisticYield(
            f"Yield {multiply(yield_, HUNDRED):.4f}% outside "
            f"[{multiply(config.min_sane_yield, HUNDRED)}%, {multiply(config.max_sane_yield, HUNDRED)}%]",
            yield_=yield_,
            solution=solution,
        )


def solve_yield(
    cash_flows: Sequence[CashFlow],
    settlement,
    target_price,
    frequency: int,
    day_count: str = "30/360",
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> YieldSolution:
    """
    Yield at which the flows after settlement are worth `target_price`
    (dirty, same currency units as the flows).

    Raises
    ------
    NoFutureCashFlows    nothing left to discount
    YTMDidNotConverge    every algorithm failed; `attempts` holds the trail
    UnrealisticYield     the root lies outside the sane yield range
    """
    settlement = to_timestamp(settlement)
    target = to_decimal(target_price)
    if target <= 0:
        raise InvalidMarketInputs(f"Target price must be positive, got {target}")
    frequency = int(frequency)

    flows = timeline(cash_flows, settlement, day_count)
    tol = multiply(config.price_tolerance, maximum(ONE, absolute(target)))

    def f(y: Decimal) -> Decimal:
        return subtract(discounted_value(flows, y, frequency), target)

    guess = initial_guess(flows, target, frequency, config)
    logger.debug("solve_yield target=%s guess=%s flows=%d", target, guess, len(flows))

    attempts: List[SolverAttempt] = []

    attempt = _newton(flows, target, frequency, guess, tol, config)
    attempts.append(attempt)
    if attempt.converged:
        solution = _solution(attempt, attempts)
    else:
        logger.warning("Newton-Raphson failed (%s); falling back to bracketing", attempt.reason)
        bracket = find_bracket(f, guess, config)
        if bracket is None:
            attempts.append(SolverAttempt(HYBRID, False, 0, reason="no bracket"))
            attempts.append(SolverAttempt(BISECTION, False, 0, reason="no bracket"))
            raise YTMDidNotConverge("Yield solver did not converge: root not bracketed", attempts)

        attempt = _hybrid(f, bracket, tol, config)
        attempts.append(attempt)
        if not attempt.converged:
            logger.warning("Secant-bisection hybrid failed (%s); falling back to bisection", attempt.reason)
            attempt = _bisection(f, bracket, tol, config)
            attempts.append(attempt)
            acceptable = multiply(config.acceptable_error, maximum(ONE, absolute(target)))
            if attempt.error > acceptable:
                raise YTMDidNotConverge("Yield solver did not converge", attempts)
        solution = _solution(attempt, attempts)

    logger.info(
        "Solved yield %s with %s in %d iterations (error %s)",
        solution.yield_, solution.algorithm, solution.iterations, solution.achieved_error,
    )
    check_yield(solution.yield_, config, solution)
    return solution


def price_at_yield(
    cash_flows: Sequence[CashFlow],
    settlement,
    yield_,
    frequency: int,
    day_count: str = "30/360",
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Decimal:
    """Direct path: one PV evaluation at a supplied (sanity-checked) yield."""
    y = to_decimal(yield_)
    check_yield(y, config)
    return present_value(cash_flows, settlement, y, frequency, day_count)
