from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from app.utils.dates import parse_iso

ENTRY_TYPES = ("income", "expense")

Window = Tuple[datetime, datetime]


class PeriodError(ValueError):
    pass


@dataclass
class CategoryBreakdown:
    """Aggregated figures for one category inside a period."""

    category_id: str
    category_name: Optional[str]
    category_icon: Optional[str]
    category_color: Optional[str]
    category_type: Optional[str]
    total: float
    count: int
    average: float
    min: float
    max: float
    percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def _add_months(moment: datetime, months: int) -> datetime:
    """First day of the month `months` away from moment's month."""
    index = moment.year * 12 + (moment.month - 1) + months
    return _month_start(index // 12, index % 12 + 1)


def _rolling_end(now: datetime) -> datetime:
    # Stored dates have second precision; include the current second
    return now.replace(microsecond=0) + timedelta(seconds=1)


def resolve_period(
    period: str,
    now: datetime,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Window:
    """
    Map a named period to a half-open [start, end) window.
    Unknown names fall back to the last 30 days.
    """
    if period == "week":
        return now - timedelta(days=7), _rolling_end(now)
    if period == "month":
        start = _month_start(now.year, now.month)
        return start, _add_months(start, 1)
    if period == "year":
        return datetime(now.year, 1, 1), datetime(now.year + 1, 1, 1)
    if period == "custom":
        if start_date is None or end_date is None:
            raise PeriodError("start_date and end_date are required for a custom period")
        if end_date <= start_date:
            raise PeriodError("end_date must be after start_date")
        return start_date, end_date
    return now - timedelta(days=30), _rolling_end(now)


def resolve_trend_period(period: str, now: datetime) -> Window:
    months_back = {"3months": 3, "6months": 6, "year": 12}.get(period, 6)
    return _add_months(now, -months_back), _rolling_end(now)


def percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / abs(previous) * 100, 2)


def _completed(transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [t for t in transactions if t.get("status", "completed") == "completed"]


def _amount(transaction: Dict[str, Any]) -> float:
    return float(transaction.get("amount", 0))


class TransactionAnalyzer:
    """
    Aggregations over a user's transactions. Only completed transactions are
    counted; callers pass rows already restricted to the period.
    """

    def summarize(self, transactions: List[Dict[str, Any]]) -> Dict[str, Any]:
        grouped: Dict[str, List[float]] = defaultdict(list)
        for t in _completed(transactions):
            grouped[t["type"]].append(_amount(t))

        result: Dict[str, Any] = {}
        for entry_type in ENTRY_TYPES:
            amounts = grouped.get(entry_type, [])
            total = round(sum(amounts), 2)
            result[entry_type] = {
                "total": total,
                "count": len(amounts),
                "average": round(total / len(amounts), 2) if amounts else 0,
            }
        result["net"] = round(result["income"]["total"] - result["expense"]["total"], 2)
        return result

    def category_breakdown(
        self,
        transactions: List[Dict[str, Any]],
        categories: Dict[str, Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """
        Group by category, largest total first. Rows whose category no longer
        exists are left out. Percentages are of the grand total across the
        returned categories and are 0 when it is 0.
        """
        grouped: Dict[str, List[float]] = defaultdict(list)
        for t in _completed(transactions):
            grouped[t["category_id"]].append(_amount(t))

        rows = []
        for category_id, amounts in grouped.items():
            category = categories.get(category_id)
            if category is None:
                continue
            total = round(sum(amounts), 2)
            rows.append(CategoryBreakdown(
                category_id=category_id,
                category_name=category.get("name"),
                category_icon=category.get("icon"),
                category_color=category.get("color"),
                category_type=category.get("type"),
                total=total,
                count=len(amounts),
                average=round(total / len(amounts), 2),
                min=min(amounts),
                max=max(amounts),
            ))

        grand_total = sum(row.total for row in rows)
        for row in rows:
            row.percentage = round(row.total / grand_total * 100, 2) if grand_total > 0 else 0

        rows.sort(key=lambda row: row.total, reverse=True)
        return [row.to_dict() for row in rows]

    def monthly_totals_by_type(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        totals: Dict[Tuple[int, int, str], float] = defaultdict(float)
        for t in _completed(transactions):
            moment = parse_iso(t["date"])
            totals[(moment.year, moment.month, t["type"])] += _amount(t)

        return [
            {"year": year, "month": month, "type": entry_type, "total": round(total, 2)}
            for (year, month, entry_type), total in sorted(totals.items())
        ]

    def monthly_trend(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Monthly buckets with the percent change from the preceding bucket.
        """
        buckets: Dict[Tuple[int, int], List[float]] = defaultdict(list)
        for t in _completed(transactions):
            moment = parse_iso(t["date"])
            buckets[(moment.year, moment.month)].append(_amount(t))

        trend = []
        previous_total = None
        for (year, month), amounts in sorted(buckets.items()):
            total = round(sum(amounts), 2)
            trend.append({
                "year": year,
                "month": month,
                "total": total,
                "count": len(amounts),
                "average": round(total / len(amounts), 2),
                "change": percent_change(total, previous_total) if previous_total is not None else None,
            })
            previous_total = total
        return trend

    def compare(
        self,
        current: List[Dict[str, Any]],
        previous: List[Dict[str, Any]],
    ) -> Dict[str, Dict[str, Any]]:
        now_summary = self.summarize(current)
        then_summary = self.summarize(previous)

        def _entry(now_value: float, then_value: float) -> Dict[str, Any]:
            return {
                "current": now_value,
                "previous": then_value,
                "change": percent_change(now_value, then_value),
                "change_type": "increase" if now_value > then_value else "decrease",
            }

        return {
            "income": _entry(now_summary["income"]["total"], then_summary["income"]["total"]),
            "expense": _entry(now_summary["expense"]["total"], then_summary["expense"]["total"]),
            "net": _entry(now_summary["net"], then_summary["net"]),
        }
