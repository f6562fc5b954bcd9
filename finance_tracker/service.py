"""Report service: fetches a user's data and runs it through the report engine."""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import List, Optional, Protocol, Sequence, Tuple

from .analytics import aggregate, category_breakdown, category_names, period_stats, transaction_data
from .formatting import format_monthly_summary
from .models import (
    CATEGORY_EXPENSE,
    CATEGORY_INCOME,
    CATEGORY_TYPES,
    Category,
    PeriodComparison,
    Report,
    ReportKind,
    Transaction,
    TransactionFilter,
    Trends,
    UserState,
)
from .periods import format_period, month_bounds, previous_month_bounds, resolve, start_of_day
from .storage import StorageError
from .trends import build_trends, daily_trends


DEFAULT_CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("Продукты", CATEGORY_EXPENSE),
    ("Транспорт", CATEGORY_EXPENSE),
    ("Развлечения", CATEGORY_EXPENSE),
    ("Зарплата", CATEGORY_INCOME),
)


class ReportError(Exception):
    """A report could not be built because its data could not be fetched."""


class Repository(Protocol):
    def get_transactions(self, user_id: int, flt: Optional[TransactionFilter] = None) -> List[Transaction]: ...

    def get_categories(self, user_id: int) -> List[Category]: ...

    def create_transaction(self, transaction: Transaction) -> Transaction: ...

    def delete_transaction(self, transaction_id: str, user_id: int) -> bool: ...

    def create_category(self, category: Category) -> Category: ...

    def delete_category(self, category_id: str, user_id: int) -> bool: ...

    def get_user_state(self, user_id: int) -> Optional[UserState]: ...

    def save_user_state(self, state: UserState) -> None: ...

    def delete_user_state(self, user_id: int) -> None: ...


class ExpenseTracker:
    def __init__(self, repo: Repository, tz: Optional[tzinfo] = None) -> None:
        self.repo = repo
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def _fetch(self, user_id: int, start: datetime, end: datetime, what: str) -> List[Transaction]:
        try:
            transactions = self.repo.get_transactions(user_id, TransactionFilter(start_date=start, end_date=end))
        except StorageError as exc:
            raise ReportError(f"failed to get {what} transactions: {exc}") from exc
        logging.info("fetched %d %s transactions for user %s", len(transactions), what, user_id)
        return transactions

    def _categories(self, user_id: int) -> List[Category]:
        try:
            return self.repo.get_categories(user_id)
        except StorageError as exc:
            raise ReportError(f"failed to get categories: {exc}") from exc

    def get_report(self, user_id: int, kind: ReportKind, now: Optional[datetime] = None) -> Report:
        period = resolve(kind, now or self.now())
        current = self._fetch(user_id, period.current_start, period.current_end, "current period")
        previous = self._fetch(user_id, period.previous_start, period.previous_end, "previous period")
        categories = self._categories(user_id)
        return build_report(kind, current, previous, categories, *period)

    def get_monthly_report(self, user_id: int, now: Optional[datetime] = None) -> Report:
        """Calendar month against the calendar month before it, with exclusive day averages."""
        now = now or self.now()
        start, end = month_bounds(now)
        prev_start, prev_end = previous_month_bounds(now)
        current = self._fetch(user_id, start, end, "current month")
        previous = self._fetch(user_id, prev_start, prev_end, "previous month")
        categories = self._categories(user_id)
        return build_monthly_report(current, previous, categories, start, end, prev_start, prev_end)

    def add_transaction(
        self,
        user_id: int,
        category_id: Optional[str],
        amount: float,
        description: str = "",
        now: Optional[datetime] = None,
    ) -> Transaction:
        now = now or self.now()
        transaction = Transaction(
            id="",
            user_id=user_id,
            category_id=category_id,
            amount=amount,
            description=description,
            date=start_of_day(now),
            created_at=now,
        )
        stored = self.repo.create_transaction(transaction)
        logging.info("transaction %s recorded for user %s: %.2f", stored.id, user_id, amount)
        return stored

    def create_default_categories(self, user_id: int) -> List[Category]:
        existing = self.repo.get_categories(user_id)
        if existing:
            return existing
        now = self.now()
        return [
            self.repo.create_category(Category(id="", user_id=user_id, name=name, type=kind, created_at=now))
            for name, kind in DEFAULT_CATEGORIES
        ]

    def get_categories(self, user_id: int, kind: Optional[str] = None) -> List[Category]:
        categories = self.repo.get_categories(user_id)
        if kind is None:
            return categories
        return [c for c in categories if c.type == kind]

    def get_category(self, user_id: int, category_id: str) -> Optional[Category]:
        for category in self.repo.get_categories(user_id):
            if category.id == category_id:
                return category
        return None

    def create_category(self, user_id: int, name: str, kind: str) -> Category:
        if kind not in CATEGORY_TYPES:
            raise ValueError(f"unknown category type: {kind}")
        name = name.strip()
        if not name:
            raise ValueError("category name must not be empty")
        return self.repo.create_category(Category(id="", user_id=user_id, name=name, type=kind, created_at=self.now()))

    def delete_category(self, category_id: str, user_id: int) -> bool:
        return self.repo.delete_category(category_id, user_id)

    def get_recent_transactions(self, user_id: int, limit: int = 10) -> List[Transaction]:
        return self.repo.get_transactions(user_id, TransactionFilter(limit=limit))

    def get_month_transactions(self, user_id: int, month: datetime) -> List[Transaction]:
        start, end = month_bounds(month)
        return self.repo.get_transactions(user_id, TransactionFilter(start_date=start, end_date=end))

    def delete_transaction(self, transaction_id: str, user_id: int) -> bool:
        return self.repo.delete_transaction(transaction_id, user_id)

    def get_user_state(self, user_id: int) -> Optional[UserState]:
        return self.repo.get_user_state(user_id)

    def save_user_state(self, state: UserState) -> None:
        self.repo.save_user_state(state)

    def clear_user_state(self, user_id: int) -> None:
        self.repo.delete_user_state(user_id)


def build_report(
    kind: ReportKind,
    current: Sequence[Transaction],
    previous: Sequence[Transaction],
    categories: Sequence[Category],
    start: datetime,
    end: datetime,
    previous_start: datetime,
    previous_end: datetime,
) -> Report:
    stats, data, breakdown = aggregate(current, categories, start, end, previous, previous_start, previous_end)
    trends = build_trends(current, previous, start, end, previous_start, previous_end)
    return Report(
        kind=kind,
        period=format_period(kind, start, end),
        start_date=start,
        end_date=end,
        total_income=stats.total_income,
        total_expenses=stats.total_expenses,
        balance=stats.balance,
        transactions=data,
        categories=breakdown,
        trends=Trends(trends.income_trend, trends.expense_trend, trends.comparison),
        savings_rate=savings_rate(stats.total_income, stats.total_expenses),
    )


def savings_rate(income: float, expenses: float) -> float:
    if income <= 0:
        return 0.0
    return (income - expenses) / income


def build_monthly_report(
    current: Sequence[Transaction],
    previous: Sequence[Transaction],
    categories: Sequence[Category],
    start: datetime,
    end: datetime,
    previous_start: datetime,
    previous_end: datetime,
) -> Report:
    names = category_names(categories)
    current_period = period_stats(current, names, start, end, inclusive=False)
    previous_period = period_stats(previous, names, previous_start, previous_end, inclusive=False)
    income_trend, expense_trend = daily_trends(current, start, end)
    rate = savings_rate(current_period.total_income, current_period.total_expenses)
    previous_rate = savings_rate(previous_period.total_income, previous_period.total_expenses)
    return Report(
        kind=ReportKind.MONTHLY,
        period=format_period(ReportKind.MONTHLY, start, end),
        start_date=start,
        end_date=end,
        total_income=current_period.total_income,
        total_expenses=current_period.total_expenses,
        balance=current_period.balance,
        transactions=transaction_data(current, start, end),
        categories=category_breakdown(current, previous, categories, start, end, previous_start, previous_end),
        trends=Trends(
            income_trend,
            expense_trend,
            PeriodComparison(current_period=current_period, previous_period=previous_period),
        ),
        savings_rate=rate,
        text=format_monthly_summary(current_period, previous_period, rate, previous_rate),
    )
