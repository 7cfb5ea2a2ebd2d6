import logging
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, status

from app.core.exceptions import BusinessRuleViolation, NotFoundError, ValidationError, envelope
from app.core.security import get_current_user
from app.db import dynamo
from app.models.category import DEFAULT_CATEGORIES, CategoryCreate, CategoryPublic, CategoryUpdate, EntryType
from app.utils.dates import to_iso, utcnow

router = APIRouter()
logger = logging.getLogger(__name__)


def _public(category: dict) -> dict:
    return CategoryPublic(**category).model_dump()


def get_owned_category(user_id: str, category_id: str) -> dict:
    """Active category owned by the user; anything else is reported as not found."""
    category = dynamo.get_category(user_id, category_id)
    if not category or not category.get("is_active", False):
        raise NotFoundError("Category not found")
    return category


def _new_category(user_id: str, now: str, **fields) -> dict:
    return {
        "user_id": user_id,
        "category_id": str(uuid4()),
        "icon": "💰",
        "color": "#3B82F6",
        "is_default": False,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
        **{k: v for k, v in fields.items() if v is not None},
    }


@router.get("/")
def list_categories(type: Optional[EntryType] = Query(None), user: dict = Depends(get_current_user)):
    categories = dynamo.list_categories(user["user_id"])
    if type:
        categories = [c for c in categories if c["type"] == type]
    categories.sort(key=lambda c: c["name"].lower())
    return envelope("Categories retrieved", {"categories": [_public(c) for c in categories]})


@router.post("/defaults", status_code=status.HTTP_201_CREATED)
def create_default_categories(user: dict = Depends(get_current_user)):
    user_id = user["user_id"]
    if dynamo.count_categories(user_id) > 0:
        raise BusinessRuleViolation("User already has categories")

    now = to_iso(utcnow())
    categories = [_new_category(user_id, now, is_default=True, **default) for default in DEFAULT_CATEGORIES]
    dynamo.create_categories(categories)
    logger.info(f"Seeded {len(categories)} default categories for user {user_id}")

    return envelope("Default categories created successfully", {"categories": [_public(c) for c in categories]})


@router.get("/{category_id}")
def get_category(category_id: str, user: dict = Depends(get_current_user)):
    category = get_owned_category(user["user_id"], category_id)
    return envelope("Category retrieved", {"category": _public(category)})


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_category(category: CategoryCreate, user: dict = Depends(get_current_user)):
    item = _new_category(user["user_id"], to_iso(utcnow()), **category.model_dump())
    dynamo.create_category(item)
    return envelope("Category created successfully", {"category": _public(item)})


@router.put("/{category_id}")
def update_category(category_id: str, category_update: CategoryUpdate, user: dict = Depends(get_current_user)):
    category = get_owned_category(user["user_id"], category_id)
    if category.get("is_default"):
        raise BusinessRuleViolation("Cannot update default categories")

    updates = category_update.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise ValidationError("No fields to update")

    updates["updated_at"] = to_iso(utcnow())
    updated = dynamo.update_category(user["user_id"], category, updates)
    if not updated:
        raise NotFoundError("Category not found")
    return envelope("Category updated successfully", {"category": _public(updated)})


@router.delete("/{category_id}")
def delete_category(category_id: str, user: dict = Depends(get_current_user)):
    category = get_owned_category(user["user_id"], category_id)
    if category.get("is_default"):
        raise BusinessRuleViolation("Cannot delete default categories")

    # Soft delete: transactions may still reference it
    dynamo.soft_delete_category(user["user_id"], category, to_iso(utcnow()))
    return envelope("Category deleted successfully")
