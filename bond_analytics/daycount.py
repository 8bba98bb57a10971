from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .precision import divide

SUPPORTED_CONVENTIONS = ("30/360", "30E/360", "ACT/ACT", "ACT/360", "ACT/365", "BUS/252")

_ALIASES = {
    "30/360US": "30/360",
    "30/360BOND": "30/360",
    "30U/360": "30/360",
    "30/360ISMA": "30E/360",
    "30E/360ISMA": "30E/360",
    "EUROBOND": "30E/360",
    "ACTUAL/ACTUAL": "ACT/ACT",
    "ACT/ACTISDA": "ACT/ACT",
    "ACTUAL/360": "ACT/360",
    "ACTUAL/365": "ACT/365",
    "ACT/365F": "ACT/365",
    "ACT/365FIXED": "ACT/365",
    "BUS/252BRAZIL": "BUS/252",
}


def to_timestamp(value) -> pd.Timestamp:
    """Midnight Timestamp from str/date/datetime/Timestamp."""
    if value is None:
        raise ValueError("Date is required")
    ts = pd.Timestamp(value)
    if ts is pd.NaT:
        raise ValueError(f"Invalid date: {value!r}")
    return ts.normalize()


def normalize_convention(convention: str) -> str:
    key = str(convention).upper().replace(" ", "")
    key = _ALIASES.get(key, key)
    if key not in SUPPORTED_CONVENTIONS:
        raise ValueError(f"Unsupported day count convention: {convention}")
    return key


def _is_leap(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def _thirty_360(start: pd.Timestamp, end: pd.Timestamp, european: bool) -> int:
    d1, d2 = start.day, end.day

    if d1 == 31:
        d1 = 30
    if european:
        if d2 == 31:
            d2 = 30
    elif d2 == 31 and d1 == 30:
        # bond basis: end date only clamps once the start has
        d2 = 30

    return (end.year - start.year) * 360 + (end.month - start.month) * 30 + (d2 - d1)


def _act_act(start: pd.Timestamp, end: pd.Timestamp) -> Decimal:
    if start.year == end.year:
        return divide((end - start).days, 366 if _is_leap(start.year) else 365)

    total = Decimal(0)
    for year in range(start.year, end.year + 1):
        seg_start = start if year == start.year else pd.Timestamp(year=year, month=1, day=1)
        seg_end = end if year == end.year else pd.Timestamp(year=year + 1, month=1, day=1)
        days = (seg_end - seg_start).days
        total += divide(days, 366 if _is_leap(year) else 365)
    return total


def business_days(start, end, holidays: Optional[Iterable] = None) -> int:
    """Weekdays in [start, end), excluding holidays."""
    start, end = to_timestamp(start), to_timestamp(end)
    hols = [np.datetime64(to_timestamp(h).date(), "D") for h in (holidays or ())]
    return int(
        np.busday_count(
            np.datetime64(start.date(), "D"),
            np.datetime64(end.date(), "D"),
            holidays=hols,
        )
    )


def year_fraction(start, end, convention: str, holidays: Optional[Iterable] = None) -> Decimal:
    """
    Year fraction between two dates under a day count convention.

    Supported:
    - 30/360 (US bond basis), 30E/360 (Eurobond)
    - ACT/ACT (split at calendar-year boundaries)
    - ACT/360, ACT/365
    - BUS/252 (weekdays less `holidays`, over 252)

    Raises ValueError if end < start.
    """
    start = to_timestamp(start)
    end = to_timestamp(end)
    convention = normalize_convention(convention)

    if end < start:
        raise ValueError(f"end < start: {start=} {end=}")

    if convention == "30/360":
        return divide(_thirty_360(start, end, european=False), 360)

    if convention == "30E/360":
        return divide(_thirty_360(start, end, european=True), 360)

    if convention == "ACT/ACT":
        return _act_act(start, end)

    if convention == "ACT/360":
        return divide((end - start).days, 360)

    if convention == "ACT/365":
        return divide((end - start).days, 365)

    return divide(business_days(start, end, holidays), 252)


def is_end_of_month(date) -> bool:
    return bool(to_timestamp(date).is_month_end)


def add_period(date, months: int, end_of_month: bool = True) -> pd.Timestamp:
    """
    Shift a date by whole months.

    With `end_of_month`, a month-end start stays pinned to month end
    (Feb 28 -> Aug 31). Otherwise the day is kept and clamped to the
    length of the target month (Jan 31 -> Feb 29).
    """
    date = to_timestamp(date)
    shifted = date + pd.DateOffset(months=int(months))
    if end_of_month and date.is_month_end:
        shifted = shifted + pd.offsets.MonthEnd(0)
    return shifted.normalize()


def settlement_date(trade_date, lag_days: int = 2, holidays: Optional[Iterable] = None) -> pd.Timestamp:
    """Trade date rolled forward by `lag_days` business days."""
    trade = to_timestamp(trade_date)
    hols = [np.datetime64(to_timestamp(h).date(), "D") for h in (holidays or ())]
    settle = np.busday_offset(
        np.datetime64(trade.date(), "D"), int(lag_days), roll="forward", holidays=hols
    )
    return pd.Timestamp(settle)
