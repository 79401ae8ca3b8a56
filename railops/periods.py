from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

import pandas as pd

from railops.errors import ValidationError


DateLike = Union[date, datetime, str, pd.Timestamp, None]


class PeriodPolicy(str, Enum):
    ROLLING_WINDOW = "rolling_window"
    EXPLICIT_DUAL_RANGE = "explicit_dual_range"
    CALENDAR_YEAR_TO_DATE = "calendar_year_to_date"
    SAME_PERIOD_LAST_YEAR = "same_period_last_year"


@dataclass(frozen=True)
class PeriodWindow:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError(f"Invalid period: {self.end.isoformat()} is before {self.start.isoformat()}")

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    def label(self) -> str:
        return f"{self.start:%d-%m-%Y} to {self.end:%d-%m-%Y}"

    def to_dict(self) -> dict:
        return {"from": self.start.isoformat(), "to": self.end.isoformat(), "days": self.day_count}


@dataclass(frozen=True)
class ResolvedPeriods:
    policy: PeriodPolicy
    current: PeriodWindow
    previous: PeriodWindow


def parse_date(value: DateLike) -> Optional[date]:
    """Coerce ISO strings, ``dd-mm-yyyy`` strings, datetimes and Timestamps to a date."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    parts = s.split("T")[0].split(" ")[0].split("-")
    try:
        if len(parts) == 3 and len(parts[0]) <= 2:
            return date(int(parts[2]), int(parts[1]), int(parts[0]))
        return date.fromisoformat(s[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc


def day_count(window: PeriodWindow) -> int:
    return window.day_count


def make_window(start: DateLike, end: DateLike, *, label: str = "period") -> PeriodWindow:
    s = parse_date(start)
    e = parse_date(end)
    if s is None or e is None:
        raise ValidationError(f"Both endpoints of the {label} are required")
    return PeriodWindow(s, e)


def shift_year(value: date, years: int = -1) -> date:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return value.replace(year=value.year + years, day=28)


def default_current_window(today: Optional[date] = None) -> PeriodWindow:
    """Dashboard default: the previous full week on Mondays, else this week's Monday to yesterday."""
    today = today or date.today()
    weekday = today.weekday()
    if weekday == 0:
        return PeriodWindow(today - timedelta(days=7), today - timedelta(days=1))
    return PeriodWindow(today - timedelta(days=weekday), today - timedelta(days=1))


def rolling_previous(current: PeriodWindow) -> PeriodWindow:
    end = current.start - timedelta(days=1)
    return PeriodWindow(end - (current.end - current.start), end)


def same_period_last_year(current: PeriodWindow) -> PeriodWindow:
    return PeriodWindow(shift_year(current.start), shift_year(current.end))


def resolve_periods(
    policy: PeriodPolicy | str = PeriodPolicy.ROLLING_WINDOW,
    *,
    current_from: DateLike = None,
    current_to: DateLike = None,
    previous_from: DateLike = None,
    previous_to: DateLike = None,
    today: Optional[date] = None,
) -> ResolvedPeriods:
    try:
        policy = PeriodPolicy(policy)
    except ValueError as exc:
        raise ValidationError(f"Unknown period policy: {policy!r}") from exc

    if policy == PeriodPolicy.CALENDAR_YEAR_TO_DATE:
        today = today or date.today()
        current = PeriodWindow(date(today.year, 1, 1), today)
        return ResolvedPeriods(policy, current, same_period_last_year(current))

    if policy == PeriodPolicy.EXPLICIT_DUAL_RANGE:
        current = make_window(current_from, current_to, label="current period")
        previous = make_window(previous_from, previous_to, label="comparative period")
        return ResolvedPeriods(policy, current, previous)

    if current_from is None and current_to is None:
        current = default_current_window(today)
    else:
        current = make_window(current_from, current_to, label="current period")

    if policy == PeriodPolicy.SAME_PERIOD_LAST_YEAR:
        return ResolvedPeriods(policy, current, same_period_last_year(current))
    return ResolvedPeriods(policy, current, rolling_previous(current))
