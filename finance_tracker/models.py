"""Data model shared by the storage layer, the report engine and the bot."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple


CATEGORY_EXPENSE = "expense"
CATEGORY_INCOME = "income"
CATEGORY_TYPES: Tuple[str, ...] = (CATEGORY_EXPENSE, CATEGORY_INCOME)


class ReportKind(enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class Transaction:
    id: str
    user_id: int
    category_id: Optional[str]
    amount: float
    description: str
    date: datetime
    created_at: datetime

    @property
    def is_income(self) -> bool:
        return self.amount > 0


@dataclass(frozen=True)
class Category:
    id: str
    user_id: int
    name: str
    type: str
    created_at: Optional[datetime] = None

    @property
    def is_income(self) -> bool:
        return self.type == CATEGORY_INCOME


@dataclass(frozen=True)
class TransactionFilter:
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = 0


@dataclass(frozen=True)
class UserState:
    """Pending dialog step of a single chat user, persisted between updates."""

    user_id: int
    awaiting_action: str = ""
    transaction_type: str = ""
    selected_category_id: str = ""
    pending_amount: Optional[float] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionInfo:
    amount: float
    category_id: Optional[str]
    date: datetime
    description: str


@dataclass(frozen=True)
class PeriodStats:
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0
    avg_daily_income: float = 0.0
    avg_daily_expense: float = 0.0
    income_by_category: Dict[str, float] = field(default_factory=dict)
    expenses_by_category: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionData:
    total_count: int = 0
    income_count: int = 0
    expense_count: int = 0
    avg_income: float = 0.0
    avg_expense: float = 0.0
    daily_avg_income: float = 0.0
    daily_avg_expense: float = 0.0
    max_income: Optional[TransactionInfo] = None
    max_expense: Optional[TransactionInfo] = None


@dataclass(frozen=True)
class CategoryStats:
    category_id: str
    name: str
    amount: float
    count: int
    avg_amount: float = 0.0
    share: float = 0.0
    trend_percent: float = 0.0


@dataclass(frozen=True)
class CategoryChange:
    category_id: str
    name: str
    change_value: float
    change_percent: float


@dataclass(frozen=True)
class CategoryChanges:
    fastest_growing_expense: Optional[CategoryChange] = None
    fastest_growing_income: Optional[CategoryChange] = None
    largest_drop_expense: Optional[CategoryChange] = None
    largest_drop_income: Optional[CategoryChange] = None


@dataclass(frozen=True)
class CategoryData:
    expenses: Tuple[CategoryStats, ...] = ()
    income: Tuple[CategoryStats, ...] = ()
    changes: CategoryChanges = field(default_factory=CategoryChanges)


@dataclass(frozen=True)
class TrendPoint:
    date: datetime
    amount: float
    change: float


@dataclass(frozen=True)
class PeriodComparison:
    current_period: PeriodStats = field(default_factory=PeriodStats)
    previous_period: PeriodStats = field(default_factory=PeriodStats)
    expense_change: float = 0.0
    income_change: float = 0.0
    balance_change: float = 0.0


@dataclass(frozen=True)
class Trends:
    income_trend: Tuple[TrendPoint, ...] = ()
    expense_trend: Tuple[TrendPoint, ...] = ()
    period_comparison: PeriodComparison = field(default_factory=PeriodComparison)


@dataclass(frozen=True)
class Report:
    """Everything the presentation layer may read about one report request."""

    kind: ReportKind
    period: str
    start_date: datetime
    end_date: datetime
    total_income: float
    total_expenses: float
    balance: float
    transactions: TransactionData
    categories: CategoryData
    trends: Trends
    savings_rate: float = 0.0
    text: str = ""
