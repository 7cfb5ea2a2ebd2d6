from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

EntryType = Literal["income", "expense"]

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class CategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    type: EntryType
    icon: Optional[str] = Field(default=None, max_length=10)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    description: Optional[str] = Field(default=None, max_length=200)


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    icon: Optional[str] = Field(default=None, max_length=10)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    description: Optional[str] = Field(default=None, max_length=200)


class CategoryPublic(BaseModel):
    category_id: str
    name: str
    type: EntryType
    icon: str = "💰"
    color: str = "#3B82F6"
    description: Optional[str] = None
    is_default: bool = False
    is_active: bool = True
    created_at: str
    updated_at: Optional[str] = None


# Seeded by POST /categories/defaults
DEFAULT_CATEGORIES = [
    {"name": "Salary", "type": "income", "icon": "💼", "color": "#10B981"},
    {"name": "Freelance", "type": "income", "icon": "💻", "color": "#3B82F6"},
    {"name": "Investment", "type": "income", "icon": "📈", "color": "#8B5CF6"},
    {"name": "Business", "type": "income", "icon": "🏢", "color": "#F59E0B"},
    {"name": "Other Income", "type": "income", "icon": "💰", "color": "#6B7280"},
    {"name": "Food & Dining", "type": "expense", "icon": "🍽️", "color": "#EF4444"},
    {"name": "Transportation", "type": "expense", "icon": "🚗", "color": "#3B82F6"},
    {"name": "Shopping", "type": "expense", "icon": "🛍️", "color": "#8B5CF6"},
    {"name": "Entertainment", "type": "expense", "icon": "🎬", "color": "#F59E0B"},
    {"name": "Bills & Utilities", "type": "expense", "icon": "💡", "color": "#10B981"},
    {"name": "Healthcare", "type": "expense", "icon": "🏥", "color": "#EF4444"},
    {"name": "Education", "type": "expense", "icon": "📚", "color": "#3B82F6"},
    {"name": "Travel", "type": "expense", "icon": "✈️", "color": "#8B5CF6"},
    {"name": "Other Expense", "type": "expense", "icon": "💸", "color": "#6B7280"},
]
