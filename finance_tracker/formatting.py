"""Text rendering of reports, history and exports for the chat."""

from __future__ import annotations

import csv
import html
import io
from typing import Dict, Iterable, List, Optional, Sequence

from .analytics import percent_change
from .models import CategoryChange, CategoryStats, PeriodStats, Report, Transaction, TransactionInfo


CURRENCY = "₽"


def render_bar(percent: float) -> str:
    if percent <= 0:
        return ""
    blocks = max(1, int(percent // 5))
    return "█" * min(blocks, 20)


def format_money(amount: float, digits: int = 2) -> str:
    return f"{amount:.{digits}f}{CURRENCY}"


def format_change(change: float) -> str:
    if change == 0:
        return ""
    if change > 0:
        return f" (+{change:.1f}%⬆️)"
    return f" ({change:.1f}%⬇️)"


def format_relative_change(current: float, previous: float, limit: float = 1000.0) -> str:
    if previous == 0:
        return ""
    change = max(min(percent_change(current, previous), limit), -limit)
    if change > 0:
        return f" (+{change:.1f}%⬆️)"
    return f" ({change:.1f}%⬇️)"


def format_category_line(stats: CategoryStats) -> str:
    name = html.escape(stats.name)
    line = f"• {name}: {format_money(abs(stats.amount), 0)} {render_bar(stats.share)} {stats.share:.0f}%"
    return line + format_change(stats.trend_percent)


def _format_biggest(label: str, info: Optional[TransactionInfo], names: Dict[str, str]) -> Optional[str]:
    if info is None:
        return None
    category = names.get(info.category_id or "", "")
    details = html.escape(info.description or category or "—")
    return f"{label}: <b>{format_money(info.amount, 0)}</b> ({details})"


def _format_category_change(label: str, change: Optional[CategoryChange]) -> Optional[str]:
    if change is None:
        return None
    return f"{label}: {html.escape(change.name)} ({change.change_percent:+.1f}%)"


def format_report(report: Report) -> str:
    comparison = report.trends.period_comparison
    lines: List[str] = [f"📊 <b>Отчет за {html.escape(report.period)}</b>", ""]
    lines.append(f"💰 Доходы: <b>{format_money(report.total_income, 0)}</b>{format_change(comparison.income_change)}")
    lines.append(f"💸 Расходы: <b>{format_money(report.total_expenses, 0)}</b>{format_change(comparison.expense_change)}")
    lines.append(f"💵 Баланс: <b>{format_money(report.balance, 0)}</b>{format_change(comparison.balance_change)}")

    data = report.transactions
    lines.append("")
    lines.append(
        f"📝 Операций: <b>{data.total_count}</b> (доходов: {data.income_count}, расходов: {data.expense_count})"
    )
    lines.append(f"• Средний доход: <b>{format_money(data.avg_income, 0)}</b>")
    lines.append(f"• Средний расход: <b>{format_money(data.avg_expense, 0)}</b>")
    lines.append(f"• В день (доходы): <b>{format_money(data.daily_avg_income, 0)}</b>")
    lines.append(f"• В день (расходы): <b>{format_money(data.daily_avg_expense, 0)}</b>")

    names = {s.category_id: s.name for s in report.categories.expenses + report.categories.income}
    biggest = [
        _format_biggest("💎 Крупнейший доход", data.max_income, names),
        _format_biggest("💳 Крупнейший расход", data.max_expense, names),
    ]
    if any(biggest):
        lines.append("")
        lines.extend(line for line in biggest if line)

    if report.categories.expenses:
        lines.append("")
        lines.append("<b>Расходы по категориям</b>")
        lines.extend(format_category_line(stats) for stats in report.categories.expenses)
    if report.categories.income:
        lines.append("")
        lines.append("<b>Доходы по категориям</b>")
        lines.extend(format_category_line(stats) for stats in report.categories.income)

    changes = report.categories.changes
    notable = [
        _format_category_change("📈 Быстрее всего растут расходы", changes.fastest_growing_expense),
        _format_category_change("📉 Сильнее всего снизились расходы", changes.largest_drop_expense),
        _format_category_change("📈 Быстрее всего растут доходы", changes.fastest_growing_income),
        _format_category_change("📉 Сильнее всего снизились доходы", changes.largest_drop_income),
    ]
    if any(notable):
        lines.append("")
        lines.append("<b>Изменения по категориям</b>")
        lines.extend(line for line in notable if line)
    return "\n".join(lines)


def format_monthly_summary(
    current: PeriodStats, previous: PeriodStats, savings_rate: float, previous_savings_rate: float
) -> str:
    return "\n".join(
        [
            f"💰 Доходы: {format_money(current.total_income)}"
            + format_relative_change(current.total_income, previous.total_income),
            f"💸 Расходы: {format_money(current.total_expenses)}"
            + format_relative_change(current.total_expenses, previous.total_expenses),
            f"📊 Баланс: {format_money(current.balance)}" + format_relative_change(current.balance, previous.balance),
            f"📈 Средний доход в день: {format_money(current.avg_daily_income)}"
            + format_relative_change(current.avg_daily_income, previous.avg_daily_income),
            f"📉 Средний расход в день: {format_money(current.avg_daily_expense)}"
            + format_relative_change(current.avg_daily_expense, previous.avg_daily_expense),
            f"💹 Коэффициент сбережений: {savings_rate * 100:.1f}%"
            + format_relative_change(savings_rate * 100, previous_savings_rate * 100),
        ]
    )


def format_transaction_line(transaction: Transaction, names: Dict[str, str]) -> str:
    dt = transaction.date.strftime("%d.%m")
    prefix = "+" if transaction.amount > 0 else "-"
    category = html.escape(names.get(transaction.category_id or "", "Без категории"))
    comment = html.escape(transaction.description or "")
    comment_suffix = f" — {comment}" if comment else ""
    return f"{dt} • {category} • {prefix}{format_money(abs(transaction.amount))}{comment_suffix}"


def format_history(transactions: Sequence[Transaction], names: Dict[str, str]) -> str:
    lines = ["<b>Последние операции</b>"]
    lines.extend(f"{number}. {format_transaction_line(t, names)}" for number, t in enumerate(transactions, start=1))
    if len(lines) == 1:
        lines.append("Записей пока нет.")
    return "\n".join(lines)


def export_csv(transactions: Iterable[Transaction], names: Dict[str, str]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "type", "category", "amount", "description", "date", "created_at"])
    for t in transactions:
        writer.writerow(
            [
                t.id,
                "income" if t.amount > 0 else "expense",
                names.get(t.category_id or "", ""),
                f"{t.amount:.2f}",
                t.description or "",
                t.date.date().isoformat(),
                t.created_at.isoformat(sep=" ", timespec="minutes"),
            ]
        )
    return buffer.getvalue().encode("utf-8")
