from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.exceptions import ValidationError, envelope
from app.core.security import get_current_user
from app.db import dynamo
from app.models.category import EntryType
from app.utils.analyzer import (
    PeriodError,
    TransactionAnalyzer,
    resolve_period,
    resolve_trend_period,
)
from app.utils.dates import inclusive_end, parse_iso, to_iso, utcnow

router = APIRouter()
analyzer = TransactionAnalyzer()


def _window(period: str, start_date: Optional[datetime], end_date: Optional[datetime]):
    # Compare in naive UTC like the stored dates
    start_date = parse_iso(to_iso(start_date)) if start_date else None
    end_date = parse_iso(to_iso(end_date)) if end_date else None
    try:
        return resolve_period(period, utcnow(), start_date, end_date)
    except PeriodError as e:
        raise ValidationError(str(e))


def _period(start: datetime, end: datetime, period: str) -> dict:
    return {"start_date": to_iso(start), "end_date": to_iso(end), "type": period}


def _categories(user_id: str) -> dict:
    return {c["category_id"]: c for c in dynamo.list_categories(user_id, include_inactive=True)}


@router.get("/dashboard")
def dashboard(
    period: str = Query("month"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: dict = Depends(get_current_user),
):
    user_id = user["user_id"]
    start, end = _window(period, start_date, end_date)
    transactions = dynamo.query_transactions(user_id, start=to_iso(start), end=to_iso(end))
    breakdown = analyzer.category_breakdown(transactions, _categories(user_id))

    now = utcnow()
    year_to_date = dynamo.query_transactions(
        user_id, start=to_iso(datetime(now.year, 1, 1)), end=inclusive_end(now)
    )

    return envelope("Dashboard analytics retrieved", {
        "summary": analyzer.summarize(transactions),
        "category_breakdown": breakdown,
        "monthly_trends": analyzer.monthly_totals_by_type(year_to_date),
        "top_categories": breakdown[:5],
        "period": _period(start, end, period),
    })


@router.get("/trends")
def trends(
    period: str = Query("6months"),
    type: EntryType = Query("expense"),
    user: dict = Depends(get_current_user),
):
    start, end = resolve_trend_period(period, utcnow())
    transactions = dynamo.query_transactions(user["user_id"], start=to_iso(start), end=to_iso(end), type=type)
    return envelope("Trends retrieved", {
        "trends": analyzer.monthly_trend(transactions),
        "period": _period(start, end, period),
    })


@router.get("/categories")
def category_analysis(
    period: str = Query("month"),
    type: Optional[EntryType] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: dict = Depends(get_current_user),
):
    user_id = user["user_id"]
    start, end = _window(period, start_date, end_date)
    transactions = dynamo.query_transactions(user_id, start=to_iso(start), end=to_iso(end), type=type)
    analysis = analyzer.category_breakdown(transactions, _categories(user_id))

    return envelope("Category analysis retrieved", {
        "category_analysis": analysis,
        "total_amount": round(sum(row["total"] for row in analysis), 2),
        "period": _period(start, end, period),
    })


@router.get("/comparison")
def monthly_comparison(user: dict = Depends(get_current_user)):
    user_id = user["user_id"]
    now = utcnow()
    current_start, _ = resolve_period("month", now)
    previous_start = datetime(now.year - 1, 12, 1) if now.month == 1 else datetime(now.year, now.month - 1, 1)

    current = dynamo.query_transactions(user_id, start=to_iso(current_start), end=inclusive_end(now))
    previous = dynamo.query_transactions(user_id, start=to_iso(previous_start), end=to_iso(current_start))

    return envelope("Comparison retrieved", {
        "comparison": analyzer.compare(current, previous),
        "periods": {
            "current": {"start_date": to_iso(current_start), "end_date": to_iso(now)},
            "previous": {"start_date": to_iso(previous_start), "end_date": to_iso(current_start)},
        },
    })
