"""Aggregation of a window of transactions into totals and category statistics."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .models import (
    Category,
    CategoryChange,
    CategoryChanges,
    CategoryData,
    CategoryStats,
    PeriodStats,
    Transaction,
    TransactionData,
    TransactionInfo,
)
from .periods import exclusive_days, in_window, inclusive_days


UNCATEGORIZED = "Без категории"

CHANGE_FLOOR = -100.0
CHANGE_CEILING = 200.0


def percent_change(current: float, previous: float) -> float:
    """Percent change from ``previous`` to ``current``.

    Growth from zero is reported as 100, a sign flip as -100. A decrease is
    measured against the current magnitude, not the previous one.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    if (current < 0 < previous) or (previous < 0 < current):
        return -100.0
    if abs(current) < abs(previous):
        if current == 0:
            return -100.0
        return -((abs(previous) - abs(current)) / abs(current)) * 100
    return ((abs(current) - abs(previous)) / abs(previous)) * 100


def clamp_change(value: float, low: float = CHANGE_FLOOR, high: float = CHANGE_CEILING) -> float:
    return max(min(value, high), low)


class Aggregation(NamedTuple):
    stats: PeriodStats
    transactions: TransactionData
    categories: CategoryData


def within(transactions: Iterable[Transaction], start: datetime, end: datetime) -> List[Transaction]:
    return [t for t in transactions if in_window(t.date, start, end)]


def category_names(categories: Iterable[Category]) -> Dict[str, str]:
    return {category.id: category.name for category in categories}


def period_stats(
    transactions: Iterable[Transaction],
    names: Dict[str, str],
    start: datetime,
    end: datetime,
    inclusive: bool = True,
) -> PeriodStats:
    total_income = 0.0
    total_expenses = 0.0
    income_by_category: Dict[str, float] = {}
    expenses_by_category: Dict[str, float] = {}
    for t in within(transactions, start, end):
        name = names.get(t.category_id or "", UNCATEGORIZED)
        if t.amount > 0:
            total_income += t.amount
            income_by_category[name] = income_by_category.get(name, 0.0) + t.amount
        else:
            total_expenses += -t.amount
            expenses_by_category[name] = expenses_by_category.get(name, 0.0) + -t.amount
    days = inclusive_days(start, end) if inclusive else exclusive_days(start, end)
    return PeriodStats(
        total_income=total_income,
        total_expenses=total_expenses,
        balance=total_income - total_expenses,
        avg_daily_income=total_income / days,
        avg_daily_expense=total_expenses / days,
        income_by_category=income_by_category,
        expenses_by_category=expenses_by_category,
    )


def _info(t: Transaction, amount: float) -> TransactionInfo:
    return TransactionInfo(amount=amount, category_id=t.category_id, date=t.date, description=t.description)


def transaction_data(transactions: Iterable[Transaction], start: datetime, end: datetime) -> TransactionData:
    total_income = 0.0
    total_expense = 0.0
    income_count = 0
    expense_count = 0
    max_income: Optional[TransactionInfo] = None
    max_expense: Optional[TransactionInfo] = None

    for t in within(transactions, start, end):
        if t.amount > 0:
            total_income += t.amount
            income_count += 1
            if t.amount > (max_income.amount if max_income else 0.0):
                max_income = _info(t, t.amount)
        else:
            expense = -t.amount
            total_expense += expense
            expense_count += 1
            if expense > (max_expense.amount if max_expense else 0.0):
                max_expense = _info(t, expense)

    days = inclusive_days(start, end)
    return TransactionData(
        total_count=income_count + expense_count,
        income_count=income_count,
        expense_count=expense_count,
        avg_income=total_income / income_count if income_count else 0.0,
        avg_expense=total_expense / expense_count if expense_count else 0.0,
        daily_avg_income=total_income / days,
        daily_avg_expense=total_expense / days,
        max_income=max_income,
        max_expense=max_expense,
    )


def _sum_by_category(transactions: Iterable[Transaction]) -> Tuple[Dict[str, float], Dict[str, int]]:
    amounts: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for t in transactions:
        if t.category_id is None:
            continue
        amounts[t.category_id] = amounts.get(t.category_id, 0.0) + t.amount
        counts[t.category_id] = counts.get(t.category_id, 0) + 1
    return amounts, counts


def find_category_changes(
    categories: Sequence[Category],
    current: Dict[str, float],
    previous: Dict[str, float],
) -> CategoryChanges:
    growth: Dict[bool, Optional[CategoryChange]] = {True: None, False: None}
    drop: Dict[bool, Optional[CategoryChange]] = {True: None, False: None}

    for category in sorted(categories, key=lambda c: c.id):
        prev_amount = previous.get(category.id, 0.0)
        if prev_amount == 0:
            continue
        amount = current.get(category.id, 0.0)
        change = CategoryChange(
            category_id=category.id,
            name=category.name,
            change_value=amount - prev_amount,
            change_percent=percent_change(amount - prev_amount, prev_amount),
        )
        # side follows the sign of the current amount, zero counts as income
        side = amount >= 0
        best = growth[side]
        worst = drop[side]
        if change.change_percent > 0 and (best is None or change.change_percent > best.change_percent):
            growth[side] = change
        if change.change_percent < 0 and (worst is None or change.change_percent < worst.change_percent):
            drop[side] = change

    return CategoryChanges(
        fastest_growing_expense=growth[False],
        fastest_growing_income=growth[True],
        largest_drop_expense=drop[False],
        largest_drop_income=drop[True],
    )


def category_breakdown(
    current: Iterable[Transaction],
    previous: Iterable[Transaction],
    categories: Sequence[Category],
    start: datetime,
    end: datetime,
    previous_start: Optional[datetime] = None,
    previous_end: Optional[datetime] = None,
) -> CategoryData:
    known = {category.id for category in categories}
    amounts, counts = _sum_by_category(t for t in within(current, start, end) if t.category_id in known)
    if previous_start is not None and previous_end is not None:
        prev_amounts, _ = _sum_by_category(
            t for t in within(previous, previous_start, previous_end) if t.category_id in known
        )
    else:
        prev_amounts = {}

    active = [c for c in categories if counts.get(c.id, 0) > 0]
    total_income = sum(amounts[c.id] for c in active if c.is_income)
    total_expense = sum(abs(amounts[c.id]) for c in active if not c.is_income)

    income: List[CategoryStats] = []
    expenses: List[CategoryStats] = []
    for category in active:
        amount = amounts[category.id]
        count = counts[category.id]
        prev_amount = prev_amounts.get(category.id, 0.0)
        if category.is_income:
            share = amount / total_income * 100 if total_income > 0 else 0.0
        else:
            share = abs(amount) / total_expense * 100 if total_expense != 0 else 0.0
        stats = CategoryStats(
            category_id=category.id,
            name=category.name,
            amount=amount,
            count=count,
            avg_amount=amount / count,
            share=share,
            trend_percent=percent_change(amount, prev_amount) if prev_amount != 0 else 0.0,
        )
        logging.debug(
            "category %s: amount=%.2f count=%d share=%.2f%%", stats.name, stats.amount, stats.count, stats.share
        )
        (income if category.is_income else expenses).append(stats)

    income.sort(key=lambda s: s.category_id)
    income.sort(key=lambda s: s.amount, reverse=True)
    expenses.sort(key=lambda s: s.category_id)
    expenses.sort(key=lambda s: abs(s.amount), reverse=True)

    return CategoryData(
        expenses=tuple(expenses),
        income=tuple(income),
        changes=find_category_changes(categories, amounts, prev_amounts),
    )


def aggregate(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    window_start: datetime,
    window_end: datetime,
    previous: Sequence[Transaction] = (),
    previous_start: Optional[datetime] = None,
    previous_end: Optional[datetime] = None,
) -> Aggregation:
    """Totals, transaction statistics and category breakdown for one window.

    Category trend percents are only filled when a previous window is given.
    """
    stats = period_stats(transactions, category_names(categories), window_start, window_end)
    data = transaction_data(transactions, window_start, window_end)
    breakdown = category_breakdown(
        transactions, previous, categories, window_start, window_end, previous_start, previous_end
    )
    logging.info(
        "aggregated %d transactions for %s - %s: income=%.2f expenses=%.2f balance=%.2f",
        data.total_count,
        window_start.date(),
        window_end.date(),
        stats.total_income,
        stats.total_expenses,
        stats.balance,
    )
    return Aggregation(stats, data, breakdown)
