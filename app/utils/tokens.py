"""
Token Issuer
Random tokens and one-time codes for the account lifecycle flows.

Every purpose stores a value/expiry attribute pair on the user record. A
purpose has at most one live value: issuing again overwrites the previous
pair, and a successful use clears it.
"""
import secrets
from datetime import timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from app.utils.dates import parse_iso, to_iso, utcnow


class TokenPurpose(Enum):
    VERIFICATION = ("email_verification_token", "email_verification_expires", timedelta(hours=24), False)
    RESET = ("password_reset_token", "password_reset_expires", timedelta(hours=1), False)
    LOGIN_OTP = ("otp_code", "otp_expires", timedelta(minutes=10), True)
    EMAIL_CHANGE = ("email_change_otp", "email_change_otp_expires", timedelta(minutes=10), True)

    def __init__(self, value_field: str, expires_field: str, ttl: timedelta, numeric: bool):
        self.value_field = value_field
        self.expires_field = expires_field
        self.ttl = ttl
        self.numeric = numeric


def generate_token() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def generate_otp() -> str:
    """Six digit code, uniform over [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def issue(purpose: TokenPurpose) -> Tuple[str, Dict[str, str]]:
    """
    Create a fresh value for the purpose.

    Returns the value and the attributes to SET on the user record.
    """
    value = generate_otp() if purpose.numeric else generate_token()
    expires_at = utcnow() + purpose.ttl
    return value, {purpose.value_field: value, purpose.expires_field: to_iso(expires_at)}


def is_valid(user: dict, purpose: TokenPurpose, candidate: Optional[str]) -> bool:
    """
    True only when a value is pending, unexpired and equal to the candidate.
    Callers must not tell the failure cases apart.
    """
    stored = user.get(purpose.value_field)
    expires = user.get(purpose.expires_field)
    if not stored or not expires or not candidate:
        return False
    if parse_iso(expires) < utcnow():
        return False
    return secrets.compare_digest(str(stored), str(candidate))


def clear_fields(purpose: TokenPurpose) -> List[str]:
    """Attributes to REMOVE when the purpose is consumed or rolled back."""
    return [purpose.value_field, purpose.expires_field]
