"""
Error taxonomy for the analytics engine.

All errors derive from AnalyticsError, which is a ValueError, so callers that
only know about bad-input ValueErrors still catch them. Structural errors are
raised before any calculation; numeric errors carry the solver trail.

DivisionByZero here is not decimal.DivisionByZero: precision.py checks
divisors itself and raises this class, which is both an AnalyticsError and a
ZeroDivisionError. Catch it from bond_analytics.errors.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence


class AnalyticsError(ValueError):
    """Base class for every error raised by bond_analytics."""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = tuple(errors or ())

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        return self.message + ": " + "; ".join(self.errors)


class InvalidBondTerms(AnalyticsError):
    pass


class InvalidSchedule(AnalyticsError):
    pass


class InvalidSettlementDate(AnalyticsError):
    pass


class InvalidMarketInputs(AnalyticsError):
    pass


class NoFutureCashFlows(AnalyticsError):
    pass


class UnrealisticYield(AnalyticsError):
    def __init__(self, message: str, yield_: Any = None, solution: Any = None):
        super().__init__(message)
        self.yield_ = yield_
        self.solution = solution


class YTMDidNotConverge(AnalyticsError):
    """All solver algorithms were exhausted. `attempts` holds the trail."""

    def __init__(self, message: str, attempts: Sequence[Any] = ()):
        super().__init__(message, [str(a) for a in attempts])
        self.attempts = tuple(attempts)


class ZSpreadDidNotConverge(AnalyticsError):
    pass


class CurveUnavailable(AnalyticsError):
    pass


class DivisionByZero(AnalyticsError, ZeroDivisionError):
    pass


class NegativeRadicand(AnalyticsError):
    pass
