from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.category import EntryType

Status = Literal["completed", "pending", "cancelled"]
Tag = Annotated[str, Field(max_length=30)]

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "CAD": "CA$",
    "AUD": "A$",
    "JPY": "¥",
    "CNY": "CN¥",
    "BDT": "৳",
}
# Currencies shown without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY"}


def format_amount(amount: float, currency: str = "USD") -> str:
    """Render an amount with its currency symbol, e.g. $1,234.50."""
    code = (currency or "USD").upper()
    decimals = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    symbol = CURRENCY_SYMBOLS.get(code)
    number = f"{amount:,.{decimals}f}"
    return f"{symbol}{number}" if symbol else f"{code} {number}"


class Coordinates(BaseModel):
    lat: float
    lng: float


class Location(BaseModel):
    name: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class Attachment(BaseModel):
    filename: str
    url: str
    mimetype: Optional[str] = None
    size: Optional[int] = None


class RecurringPattern(BaseModel):
    frequency: Literal["daily", "weekly", "monthly", "yearly"]
    interval: int = Field(default=1, ge=1)
    end_date: Optional[datetime] = None
    next_due_date: Optional[datetime] = None


class TransactionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=100)
    amount: float = Field(ge=0.01)
    type: EntryType
    category_id: str = Field(min_length=1)
    date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: List[Tag] = Field(default_factory=list)
    location: Optional[Location] = None
    attachments: List[Attachment] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    status: Status = "completed"


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[float] = Field(default=None, ge=0.01)
    type: Optional[EntryType] = None
    category_id: Optional[str] = Field(default=None, min_length=1)
    date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[Tag]] = None
    location: Optional[Location] = None
    attachments: Optional[List[Attachment]] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None
    status: Optional[Status] = None


class CategoryRef(BaseModel):
    category_id: str
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    type: EntryType


class TransactionPublic(BaseModel):
    transaction_id: str
    title: str
    amount: float
    formatted_amount: Optional[str] = None
    type: EntryType
    category_id: str
    category: Optional[CategoryRef] = None
    date: str
    description: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    location: Optional[dict] = None
    attachments: List[dict] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern: Optional[dict] = None
    status: Status = "completed"
    created_at: str
    updated_at: Optional[str] = None
