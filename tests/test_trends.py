from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from finance_tracker.periods import resolve
from finance_tracker.models import ReportKind
from finance_tracker.trends import active_day_average, build_trends, compare_periods, daily_trends, group_by_day

from .factories import make_tx


PREVIOUS = (datetime(2026, 8, 31), datetime(2026, 9, 30, 23, 59, 59, 999999))


def test_series_covers_every_day_of_window(october, scenario_transactions):
    start, end = october
    income, expense = daily_trends(scenario_transactions, start, end)
    assert len(income) == len(expense) == 31
    assert income[0].date == datetime(2026, 10, 1)
    assert expense[-1].date == datetime(2026, 10, 31)


def test_scenario_points(october, scenario_transactions):
    start, end = october
    income, expense = daily_trends(scenario_transactions, start, end)

    assert income[0].amount == 1000
    assert income[0].change == 0
    assert income[1].amount == 0
    assert income[1].change == -100

    assert expense[0].amount == -400
    assert expense[0].change == pytest.approx(60)
    assert expense[1].amount == -100
    assert expense[1].change == pytest.approx(-150)

    assert expense[5].amount == 0
    assert expense[5].change == -100
    assert income[5].change == -100


def test_no_activity_gives_flat_series(october):
    start, end = october
    income, expense = daily_trends([], start, end)
    assert all(point.amount == 0 and point.change == 0 for point in income + expense)


def test_active_day_average_ignores_empty_days():
    assert active_day_average([0, 100, 0, 300]) == 200
    assert active_day_average([0, 0]) == 0


def test_days_bucketed_in_window_timezone():
    tz = ZoneInfo("Europe/Moscow")
    utc = ZoneInfo("UTC")
    reference = datetime(2026, 10, 18, tzinfo=tz)
    grouped = group_by_day(
        [
            make_tx(-100, datetime(2026, 10, 17, 22, 30, tzinfo=utc), "c-food", "late"),
            make_tx(-50, datetime(2026, 10, 17, 20, 0, tzinfo=utc), "c-food", "early"),
        ],
        reference,
    )
    assert grouped[datetime(2026, 10, 18).date()].expense == 100
    assert grouped[datetime(2026, 10, 17).date()].expense == 50


def test_comparison_growth_from_zero(october):
    start, end = october
    comparison = compare_periods([make_tx(200, datetime(2026, 10, 2), "c-salary", "s")], [], start, end, *PREVIOUS)
    assert comparison.income_change == 100
    assert comparison.expense_change == 0
    assert comparison.current_period.total_income == 200
    assert comparison.previous_period.total_income == 0


def test_comparison_changes_are_clamped(october):
    start, end = october
    current = [make_tx(4000, datetime(2026, 10, 2), "c-salary", "a"), make_tx(-100, datetime(2026, 10, 3), "c-food", "b")]
    previous = [make_tx(1000, datetime(2026, 9, 2), "c-salary", "c"), make_tx(-1000, datetime(2026, 9, 3), "c-food", "d")]
    comparison = compare_periods(current, previous, start, end, *PREVIOUS)
    assert comparison.income_change == 200
    assert comparison.expense_change == -100
    assert -100 <= comparison.balance_change <= 200


def test_comparison_uses_current_day_count_for_both_periods(october):
    start, end = october
    previous = [make_tx(3100, datetime(2026, 9, 2), "c-salary", "c")]
    comparison = compare_periods([], previous, start, end, *PREVIOUS)
    assert comparison.previous_period.avg_daily_income == pytest.approx(100)
    assert comparison.income_change == -100


def test_build_trends_for_weekly_window():
    now = datetime(2026, 10, 18, 15, 30)
    period = resolve(ReportKind.WEEKLY, now)
    current = [make_tx(-70, now - timedelta(days=1), "c-food", "a")]
    result = build_trends(current, [], *period)
    assert len(result.income_trend) == 8
    assert result.expense_trend[-2].amount == -70
    assert result.comparison.expense_change == 100
