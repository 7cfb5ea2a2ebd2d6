from datetime import datetime

import pytest

from app.utils.analyzer import (
    PeriodError,
    TransactionAnalyzer,
    percent_change,
    resolve_period,
    resolve_trend_period,
)

categories = {
    "food": {"category_id": "food", "name": "Food", "icon": "🍽️", "color": "#EF4444", "type": "expense"},
    "rent": {"category_id": "rent", "name": "Rent", "icon": "🏠", "color": "#3B82F6", "type": "expense"},
    "salary": {"category_id": "salary", "name": "Salary", "icon": "💼", "color": "#10B981", "type": "income"},
}

sample_transactions = [
    {"category_id": "food", "type": "expense", "amount": 250.0, "date": "2025-11-01T12:00:00", "status": "completed"},
    {"category_id": "rent", "type": "expense", "amount": 1000.0, "date": "2025-11-02T12:00:00", "status": "completed"},
    {"category_id": "food", "type": "expense", "amount": 150.0, "date": "2025-10-03T12:00:00", "status": "completed"},
    {"category_id": "salary", "type": "income", "amount": 3000.0, "date": "2025-11-01T09:00:00", "status": "completed"},
    {"category_id": "food", "type": "expense", "amount": 999.0, "date": "2025-11-05T12:00:00", "status": "pending"},
]


def test_summarize_counts_completed_only():
    analyzer = TransactionAnalyzer()
    summary = analyzer.summarize(sample_transactions)
    assert summary["expense"] == {"total": 1400.0, "count": 3, "average": 466.67}
    assert summary["income"] == {"total": 3000.0, "count": 1, "average": 3000.0}
    assert summary["net"] == 1600.0


def test_summarize_empty():
    summary = TransactionAnalyzer().summarize([])
    assert summary["income"] == {"total": 0, "count": 0, "average": 0}
    assert summary["net"] == 0


def test_category_breakdown_sorted_with_percentages():
    rows = TransactionAnalyzer().category_breakdown(sample_transactions, categories)
    assert [row["category_id"] for row in rows] == ["salary", "rent", "food"]

    food = rows[2]
    assert food["category_name"] == "Food"
    assert food["count"] == 2
    assert food["min"] == 150.0
    assert food["max"] == 250.0
    assert food["average"] == 200.0
    assert sum(row["percentage"] for row in rows) == pytest.approx(100, abs=0.05)


def test_category_breakdown_skips_unknown_categories():
    rows = TransactionAnalyzer().category_breakdown(
        [{"category_id": "gone", "type": "expense", "amount": 5.0, "date": "2025-11-01T00:00:00"}],
        categories,
    )
    assert rows == []


def test_monthly_trend_change_from_previous_bucket():
    expenses = [t for t in sample_transactions if t["type"] == "expense"]
    trend = TransactionAnalyzer().monthly_trend(expenses)
    assert [(b["year"], b["month"]) for b in trend] == [(2025, 10), (2025, 11)]
    assert trend[0]["change"] is None
    assert trend[1]["total"] == 1250.0
    assert trend[1]["change"] == 733.33  # 150 -> 1250


def test_monthly_totals_by_type():
    totals = TransactionAnalyzer().monthly_totals_by_type(sample_transactions)
    assert {"year": 2025, "month": 11, "type": "income", "total": 3000.0} in totals
    assert {"year": 2025, "month": 11, "type": "expense", "total": 1250.0} in totals


def test_percent_change_zero_baseline():
    assert percent_change(50, 0) == 100.0
    assert percent_change(0, 0) == 0.0
    assert percent_change(-10, 0) == 0.0
    assert percent_change(150, 100) == 50.0
    assert percent_change(-50, -100) == 50.0


def test_compare_reports_direction():
    current = [{"category_id": "salary", "type": "income", "amount": 200.0, "date": "2025-11-01T00:00:00"}]
    previous = [{"category_id": "salary", "type": "income", "amount": 100.0, "date": "2025-10-01T00:00:00"}]
    comparison = TransactionAnalyzer().compare(current, previous)
    assert comparison["income"] == {"current": 200.0, "previous": 100.0, "change": 100.0, "change_type": "increase"}
    assert comparison["expense"]["change"] == 0.0
    assert comparison["expense"]["change_type"] == "decrease"


def test_resolve_named_periods():
    now = datetime(2025, 12, 15, 10, 30)
    assert resolve_period("month", now) == (datetime(2025, 12, 1), datetime(2026, 1, 1))
    assert resolve_period("year", now) == (datetime(2025, 1, 1), datetime(2026, 1, 1))

    start, end = resolve_period("week", now)
    assert start == datetime(2025, 12, 8, 10, 30)
    assert end > now

    start, _ = resolve_period("anything", now)
    assert start == datetime(2025, 11, 15, 10, 30)


def test_resolve_custom_period_requires_dates():
    now = datetime(2025, 12, 15)
    with pytest.raises(PeriodError):
        resolve_period("custom", now)
    with pytest.raises(PeriodError):
        resolve_period("custom", now, datetime(2025, 2, 1), datetime(2025, 1, 1))
    assert resolve_period("custom", now, datetime(2025, 1, 1), datetime(2025, 2, 1)) == (
        datetime(2025, 1, 1),
        datetime(2025, 2, 1),
    )


def test_resolve_trend_period_crosses_year():
    start, _ = resolve_trend_period("3months", datetime(2025, 2, 10))
    assert start == datetime(2024, 11, 1)
    start, _ = resolve_trend_period("year", datetime(2025, 2, 10))
    assert start == datetime(2024, 2, 1)
