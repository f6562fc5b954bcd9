"""Report window arithmetic."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterator, NamedTuple, Tuple

from .models import ReportKind


ONE_DAY = timedelta(days=1)
TICK = timedelta(microseconds=1)

MONTH_NAMES: Tuple[str, ...] = (
    "Январь",
    "Февраль",
    "Март",
    "Апрель",
    "Май",
    "Июнь",
    "Июль",
    "Август",
    "Сентябрь",
    "Октябрь",
    "Ноябрь",
    "Декабрь",
)


class ReportPeriod(NamedTuple):
    current_start: datetime
    current_end: datetime
    previous_start: datetime
    previous_end: datetime


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def month_bounds(dt: datetime) -> Tuple[datetime, datetime]:
    start = start_of_day(dt.replace(day=1))
    if dt.month == 12:
        next_month = start.replace(year=dt.year + 1, month=1)
    else:
        next_month = start.replace(month=dt.month + 1)
    return start, next_month - TICK


def previous_month_bounds(dt: datetime) -> Tuple[datetime, datetime]:
    start, _ = month_bounds(dt)
    return month_bounds(start - TICK)


def year_bounds(dt: datetime) -> Tuple[datetime, datetime]:
    start = start_of_day(dt.replace(month=1, day=1))
    end = end_of_day(dt.replace(month=12, day=31))
    return start, end


def current_window(kind: ReportKind, now: datetime) -> Tuple[datetime, datetime]:
    if kind is ReportKind.DAILY:
        return start_of_day(now), end_of_day(now)
    if kind is ReportKind.WEEKLY:
        return start_of_day(now - timedelta(days=7)), end_of_day(now)
    if kind is ReportKind.MONTHLY:
        return month_bounds(now)
    if kind is ReportKind.YEARLY:
        return year_bounds(now)
    raise ValueError(f"unknown report kind: {kind!r}")


def preceding_window(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Equal-length window ending right before ``start``.

    The span counts both endpoints and is never shorter than one day.
    """
    span = max(end - start + TICK, ONE_DAY)
    return start - span, start - TICK


def resolve(kind: ReportKind, now: datetime) -> ReportPeriod:
    start, end = current_window(kind, now)
    prev_start, prev_end = preceding_window(start, end)
    return ReportPeriod(start, end, prev_start, prev_end)


def inclusive_days(start: datetime, end: datetime) -> int:
    return max(1, (end - start).days + 1)


def exclusive_days(start: datetime, end: datetime) -> int:
    return max(1, (end - start).days)


def local_date(moment: datetime, reference: datetime) -> date:
    # day keys follow the window's timezone
    if moment.tzinfo is not None and reference.tzinfo is not None:
        return moment.astimezone(reference.tzinfo).date()
    return moment.date()


def calendar_days(start: datetime, end: datetime) -> Iterator[date]:
    day = start.date()
    last = end.date()
    while day <= last:
        yield day
        day += ONE_DAY


def in_window(moment: datetime, start: datetime, end: datetime) -> bool:
    return start <= moment <= end


def format_period(kind: ReportKind, start: datetime, end: datetime) -> str:
    if kind is ReportKind.DAILY:
        return start.strftime("%d.%m.%Y")
    if kind is ReportKind.MONTHLY:
        return f"{MONTH_NAMES[start.month - 1]} {start.year}"
    if kind is ReportKind.YEARLY:
        return str(start.year)
    return f"{start.strftime('%d.%m.%Y')} - {end.strftime('%d.%m.%Y')}"
