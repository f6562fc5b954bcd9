"""Daily trend series and period-over-period comparison."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, NamedTuple, Sequence, Tuple

from .analytics import clamp_change, percent_change, within
from .models import PeriodComparison, PeriodStats, Transaction, TrendPoint
from .periods import calendar_days, inclusive_days, local_date


class TrendResult(NamedTuple):
    income_trend: Tuple[TrendPoint, ...]
    expense_trend: Tuple[TrendPoint, ...]
    comparison: PeriodComparison


class DailyTotals(NamedTuple):
    income: float
    expense: float


def group_by_day(transactions: Iterable[Transaction], reference: datetime) -> Dict[date, DailyTotals]:
    income: Dict[date, float] = {}
    expense: Dict[date, float] = {}
    for t in transactions:
        day = local_date(t.date, reference)
        if t.amount > 0:
            income[day] = income.get(day, 0.0) + t.amount
        else:
            expense[day] = expense.get(day, 0.0) + -t.amount
    return {
        day: DailyTotals(income.get(day, 0.0), expense.get(day, 0.0))
        for day in set(income) | set(expense)
    }


def active_day_average(values: Iterable[float]) -> float:
    active = [value for value in values if value > 0]
    if not active:
        return 0.0
    return sum(active) / len(active)


def _day_start(day: date, reference: datetime) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=reference.tzinfo)


def daily_trends(
    transactions: Sequence[Transaction], start: datetime, end: datetime
) -> Tuple[Tuple[TrendPoint, ...], Tuple[TrendPoint, ...]]:
    daily = group_by_day(within(transactions, start, end), start)
    avg_income = active_day_average(totals.income for totals in daily.values())
    avg_expense = active_day_average(totals.expense for totals in daily.values())
    logging.debug("daily averages: income=%.2f expense=%.2f", avg_income, avg_expense)

    empty = DailyTotals(0.0, 0.0)
    income_trend: List[TrendPoint] = []
    expense_trend: List[TrendPoint] = []
    for day in calendar_days(start, end):
        totals = daily.get(day, empty)
        moment = _day_start(day, start)
        income_trend.append(TrendPoint(moment, totals.income, percent_change(totals.income, avg_income)))
        expense_trend.append(
            TrendPoint(
                moment,
                -totals.expense if totals.expense else 0.0,
                percent_change(totals.expense, avg_expense),
            )
        )
    return tuple(income_trend), tuple(expense_trend)


def window_totals(transactions: Iterable[Transaction], start: datetime, end: datetime, days: int) -> PeriodStats:
    income = 0.0
    expenses = 0.0
    for t in within(transactions, start, end):
        if t.amount > 0:
            income += t.amount
        else:
            expenses += -t.amount
    return PeriodStats(
        total_income=income,
        total_expenses=expenses,
        balance=income - expenses,
        avg_daily_income=income / days,
        avg_daily_expense=expenses / days,
    )


def compare_periods(
    current: Sequence[Transaction],
    previous: Sequence[Transaction],
    start: datetime,
    end: datetime,
    previous_start: datetime,
    previous_end: datetime,
) -> PeriodComparison:
    days = inclusive_days(start, end)
    current_period = window_totals(current, start, end, days)
    previous_period = window_totals(previous, previous_start, previous_end, days)
    comparison = PeriodComparison(
        current_period=current_period,
        previous_period=previous_period,
        expense_change=clamp_change(percent_change(current_period.total_expenses, previous_period.total_expenses)),
        income_change=clamp_change(percent_change(current_period.total_income, previous_period.total_income)),
        balance_change=clamp_change(percent_change(current_period.balance, previous_period.balance)),
    )
    logging.info(
        "period comparison: current (income=%.2f, expenses=%.2f, balance=%.2f) "
        "previous (income=%.2f, expenses=%.2f, balance=%.2f) changes income=%.1f%% expenses=%.1f%% balance=%.1f%%",
        current_period.total_income,
        current_period.total_expenses,
        current_period.balance,
        previous_period.total_income,
        previous_period.total_expenses,
        previous_period.balance,
        comparison.income_change,
        comparison.expense_change,
        comparison.balance_change,
    )
    return comparison


def build_trends(
    current: Sequence[Transaction],
    previous: Sequence[Transaction],
    start: datetime,
    end: datetime,
    previous_start: datetime,
    previous_end: datetime,
) -> TrendResult:
    income_trend, expense_trend = daily_trends(current, start, end)
    comparison = compare_periods(current, previous, start, end, previous_start, previous_end)
    return TrendResult(income_trend, expense_trend, comparison)
