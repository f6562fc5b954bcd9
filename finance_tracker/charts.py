"""PNG charts for a report, rendered with matplotlib."""

from __future__ import annotations

import io
from typing import List, Optional, Tuple

import matplotlib

matplotlib.use("Agg")  # no display on servers
import matplotlib.pyplot as plt

from .models import Report


COLORS = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E9",
)
INCOME_COLOR = "#2ECC71"
EXPENSE_COLOR = "#E74C3C"
BALANCE_COLOR = "#3498DB"


def _to_png(fig: plt.Figure) -> io.BytesIO:
    fig.tight_layout()
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=120, bbox_inches="tight", facecolor="white", edgecolor="none")
    buf.seek(0)
    plt.close(fig)
    return buf


def financial_dashboard(report: Report) -> Optional[io.BytesIO]:
    if not report.total_income and not report.total_expenses:
        return None
    fig, ax = plt.subplots(figsize=(8, 5))
    labels = ["Доходы", "Расходы", "Баланс"]
    values = [report.total_income, report.total_expenses, report.balance]
    bars = ax.bar(labels, values, color=[INCOME_COLOR, EXPENSE_COLOR, BALANCE_COLOR])
    for bar, value in zip(bars, values):
        ax.annotate(
            f"{value:.0f}₽",
            xy=(bar.get_x() + bar.get_width() / 2, bar.get_height()),
            xytext=(0, 3),
            textcoords="offset points",
            ha="center",
            va="bottom",
            fontweight="bold",
        )
    ax.axhline(0, color="#7F8C8D", linewidth=0.8)
    ax.set_title(f"Финансы за {report.period}", fontsize=14, fontweight="bold")
    return _to_png(fig)


def category_pie(report: Report, expenses: bool = True) -> Optional[io.BytesIO]:
    stats = report.categories.expenses if expenses else report.categories.income
    slices = [(s.name, abs(s.amount)) for s in stats if s.amount]
    if not slices:
        return None
    fig, ax = plt.subplots(figsize=(8, 7))
    ax.pie(
        [value for _, value in slices],
        labels=[name for name, _ in slices],
        autopct="%1.1f%%",
        colors=[COLORS[i % len(COLORS)] for i in range(len(slices))],
        startangle=90,
    )
    ax.set_title("Расходы по категориям" if expenses else "Доходы по категориям", fontsize=14, fontweight="bold")
    return _to_png(fig)


def trend_chart(report: Report) -> Optional[io.BytesIO]:
    income = report.trends.income_trend
    expense = report.trends.expense_trend
    if not income or not any(p.amount for p in income + expense):
        return None
    fig, ax = plt.subplots(figsize=(10, 5))
    dates = [p.date for p in income]
    ax.plot(dates, [p.amount for p in income], marker="o", color=INCOME_COLOR, label="Доходы")
    ax.plot([p.date for p in expense], [abs(p.amount) for p in expense], marker="o", color=EXPENSE_COLOR, label="Расходы")
    ax.set_title("Динамика по дням", fontsize=14, fontweight="bold")
    ax.legend(loc="upper right")
    fig.autofmt_xdate()
    return _to_png(fig)


def cumulative_balance(report: Report) -> List[Tuple[object, float]]:
    running = 0.0
    points = []
    for income, expense in zip(report.trends.income_trend, report.trends.expense_trend):
        running += income.amount + expense.amount
        points.append((income.date, running))
    return points


def balance_chart(report: Report) -> Optional[io.BytesIO]:
    points = cumulative_balance(report)
    if not points or not any(value for _, value in points):
        return None
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot([d for d, _ in points], [v for _, v in points], color=BALANCE_COLOR, linewidth=2)
    ax.fill_between([d for d, _ in points], [v for _, v in points], alpha=0.2, color=BALANCE_COLOR)
    ax.axhline(0, color="#7F8C8D", linewidth=0.8)
    ax.set_title("Накопленный баланс", fontsize=14, fontweight="bold")
    fig.autofmt_xdate()
    return _to_png(fig)


def render_all(report: Report) -> List[Tuple[str, io.BytesIO]]:
    charts = [
        ("dashboard", financial_dashboard(report)),
        ("expenses", category_pie(report, expenses=True)),
        ("income", category_pie(report, expenses=False)),
        ("trends", trend_chart(report)),
        ("balance", balance_chart(report)),
    ]
    return [(name, buf) for name, buf in charts if buf is not None]
