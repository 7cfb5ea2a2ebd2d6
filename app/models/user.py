from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Currency = Literal["USD", "EUR", "GBP", "INR", "CAD", "AUD", "JPY", "CNY", "BDT"]


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class OTPLogin(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=1)


class EmailOnly(BaseModel):
    email: EmailStr


class PasswordReset(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=6)


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class PasswordConfirm(BaseModel):
    password: str = Field(min_length=1)


class SessionRevoke(BaseModel):
    session_id: Optional[str] = None
    all_others: bool = False


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=20)
    currency: Optional[Currency] = None
    timezone: Optional[str] = Field(default=None, max_length=50)


class NotificationPreferences(BaseModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    weekly_report: Optional[bool] = None


class Preferences(BaseModel):
    theme: Optional[Literal["light", "dark"]] = None
    notifications: Optional[NotificationPreferences] = None
    budget_alerts: Optional[bool] = None


class PreferencesUpdate(BaseModel):
    preferences: Preferences


class EmailChangeRequest(BaseModel):
    new_email: EmailStr


class EmailChangeVerify(BaseModel):
    otp: str = Field(min_length=1)


DEFAULT_PREFERENCES = {
    "theme": "light",
    "notifications": {"email": True, "push": True, "weekly_report": True},
    "budget_alerts": True,
}


class SessionPublic(BaseModel):
    session_id: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: str
    current: bool = False


class UserPublic(BaseModel):
    """Profile as returned to clients. Hash, tokens and OTPs never appear here."""

    user_id: str
    name: str
    email: EmailStr
    avatar: str = ""
    phone: str = ""
    currency: str = "USD"
    timezone: str = "UTC"
    preferences: dict = Field(default_factory=lambda: dict(DEFAULT_PREFERENCES))
    is_email_verified: bool = False
    is_two_factor_enabled: bool = False
    last_login: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None

    @classmethod
    def from_item(cls, item: dict) -> "UserPublic":
        return cls(**{k: v for k, v in item.items() if k in cls.model_fields and v is not None})


def public_sessions(user: dict) -> List[dict]:
    current = user.get("_session_id")
    return [
        SessionPublic(**session, current=session["session_id"] == current).model_dump()
        for session in user.get("sessions", [])
    ]
