import logging
import math
from datetime import datetime
from typing import Dict, Literal, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, status

from app.core.exceptions import BusinessRuleViolation, NotFoundError, ValidationError, envelope
from app.core.security import get_current_user
from app.db import dynamo
from app.models.category import EntryType
from app.models.transaction import (
    CategoryRef,
    TransactionCreate,
    TransactionPublic,
    TransactionUpdate,
    format_amount,
)
from app.utils.analyzer import TransactionAnalyzer
from app.utils.dates import inclusive_end, to_iso, utcnow

router = APIRouter()
logger = logging.getLogger(__name__)
analyzer = TransactionAnalyzer()

SortField = Literal["date", "amount", "title", "created_at"]

# Fields that may be cleared with an explicit null on update
CLEARABLE_FIELDS = {"description", "notes", "location", "recurring_pattern"}
LIST_FIELDS = {"tags", "attachments"}


def _category_map(user_id: str) -> Dict[str, dict]:
    # Inactive categories still label the transactions that reference them
    return {c["category_id"]: c for c in dynamo.list_categories(user_id, include_inactive=True)}


def _public(transaction: dict, categories: Dict[str, dict], currency: str = "USD") -> dict:
    category = categories.get(transaction["category_id"])
    data = dict(
        transaction,
        category=CategoryRef(**category) if category else None,
        formatted_amount=format_amount(float(transaction["amount"]), currency),
    )
    return TransactionPublic(**data).model_dump()


def _check_category(user_id: str, category_id: str, entry_type: str) -> dict:
    category = dynamo.get_category(user_id, category_id)
    if not category or not category.get("is_active", False) or category["type"] != entry_type:
        raise BusinessRuleViolation("Invalid category or category type mismatch")
    return category


def _matches(transaction: dict, needle: str) -> bool:
    haystack = [transaction.get("title") or "", transaction.get("description") or ""]
    haystack.extend(transaction.get("tags") or [])
    return any(needle in value.lower() for value in haystack)


def _sort_key(sort_by: str):
    if sort_by == "title":
        return lambda t: t["title"].lower()
    if sort_by == "amount":
        return lambda t: t["amount"]
    return lambda t: t.get(sort_by) or ""


@router.get("/")
def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[EntryType] = Query(None),
    category: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: SortField = Query("date"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    user: dict = Depends(get_current_user),
):
    user_id = user["user_id"]
    transactions = dynamo.query_transactions(
        user_id,
        start=to_iso(start_date),
        end=inclusive_end(end_date) if end_date else None,
        type=type,
        category_id=category,
    )

    if search and search.strip():
        needle = search.strip().lower()
        transactions = [t for t in transactions if _matches(t, needle)]

    transactions.sort(key=_sort_key(sort_by), reverse=sort_order == "desc")

    total = len(transactions)
    offset = (page - 1) * limit
    page_items = transactions[offset:offset + limit]

    categories = _category_map(user_id)
    return envelope("Transactions retrieved", {
        "transactions": [_public(t, categories, user.get("currency")) for t in page_items],
        "pagination": {
            "current": page,
            "pages": math.ceil(total / limit),
            "total": total,
            "limit": limit,
        },
    })


@router.get("/recent")
def recent_transactions(limit: int = Query(10, ge=1, le=100), user: dict = Depends(get_current_user)):
    user_id = user["user_id"]
    transactions = dynamo.query_transactions(user_id)
    transactions.sort(key=lambda t: t["date"], reverse=True)

    categories = _category_map(user_id)
    return envelope("Recent transactions retrieved", {
        "transactions": [_public(t, categories, user.get("currency")) for t in transactions[:limit]],
    })


@router.get("/summary")
def transaction_summary(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: dict = Depends(get_current_user),
):
    now = utcnow()
    start = start_date or now.replace(day=1, hour=0, minute=0, second=0)
    end = end_date or now

    transactions = dynamo.query_transactions(user["user_id"], start=to_iso(start), end=inclusive_end(end))
    return envelope("Summary retrieved", {
        "summary": analyzer.summarize(transactions),
        "period": {"start_date": to_iso(start), "end_date": to_iso(end)},
    })


@router.get("/{transaction_id}")
def get_transaction(transaction_id: str, user: dict = Depends(get_current_user)):
    user_id = user["user_id"]
    transaction = dynamo.get_transaction(user_id, transaction_id)
    if not transaction:
        raise NotFoundError("Transaction not found")
    data = _public(transaction, _category_map(user_id), user.get("currency"))
    return envelope("Transaction retrieved", {"transaction": data})


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_transaction(transaction: TransactionCreate, user: dict = Depends(get_current_user)):
    user_id = user["user_id"]
    category = _check_category(user_id, transaction.category_id, transaction.type)

    now = to_iso(utcnow())
    fields = transaction.model_dump(mode="json")
    fields["date"] = to_iso(transaction.date) if transaction.date else now
    if not transaction.is_recurring:
        fields["recurring_pattern"] = None

    item = {
        "user_id": user_id,
        "transaction_id": str(uuid4()),
        "created_at": now,
        "updated_at": now,
        **{k: v for k, v in fields.items() if v is not None},
    }
    dynamo.put_transaction(item)
    logger.info(f"Transaction {item['transaction_id']} created for user {user_id}")

    return envelope(
        "Transaction created successfully",
        {"transaction": _public(item, {category["category_id"]: category}, user.get("currency"))},
    )


@router.put("/{transaction_id}")
def update_transaction(
    transaction_id: str,
    transaction_update: TransactionUpdate,
    user: dict = Depends(get_current_user),
):
    user_id = user["user_id"]
    current = dynamo.get_transaction(user_id, transaction_id)
    if not current:
        raise NotFoundError("Transaction not found")

    incoming = transaction_update.model_dump(mode="json", exclude_unset=True)
    if not incoming:
        raise ValidationError("No fields to update")

    updates = {}
    remove = []
    for field, value in incoming.items():
        if value is not None:
            updates[field] = value
        elif field in CLEARABLE_FIELDS:
            remove.append(field)
        elif field in LIST_FIELDS:
            updates[field] = []
        else:
            raise ValidationError(f"{field} cannot be null")

    if "date" in updates:
        updates["date"] = to_iso(transaction_update.date)
    if updates.get("is_recurring") is False and "recurring_pattern" not in remove:
        updates.pop("recurring_pattern", None)
        remove.append("recurring_pattern")

    if "type" in updates or "category_id" in updates:
        _check_category(
            user_id,
            updates.get("category_id", current["category_id"]),
            updates.get("type", current["type"]),
        )

    updates["updated_at"] = to_iso(utcnow())
    updated = dynamo.update_transaction(user_id, transaction_id, updates, remove)
    if not updated:
        raise NotFoundError("Transaction not found")

    data = _public(updated, _category_map(user_id), user.get("currency"))
    return envelope("Transaction updated successfully", {"transaction": data})


@router.delete("/{transaction_id}")
def delete_transaction(transaction_id: str, user: dict = Depends(get_current_user)):
    if not dynamo.delete_transaction(user["user_id"], transaction_id):
        raise NotFoundError("Transaction not found")
    return envelope("Transaction deleted successfully")
