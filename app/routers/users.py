import copy
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from app.core.exceptions import (
    BusinessRuleViolation,
    NotificationDeliveryError,
    ValidationError,
    envelope,
)
from app.core.security import get_current_user, update_current_user, verify_password
from app.db import dynamo
from app.models.user import (
    DEFAULT_PREFERENCES,
    EmailChangeRequest,
    EmailChangeVerify,
    PasswordConfirm,
    PreferencesUpdate,
    ProfileUpdate,
    UserPublic,
)
from app.utils import account_cleanup, email_service, storage, tokens
from app.utils.dates import to_iso, utcnow
from app.utils.tokens import TokenPurpose

router = APIRouter()
logger = logging.getLogger(__name__)


def _profile(user: dict) -> dict:
    return {"user": UserPublic.from_item(user).model_dump()}


@router.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return envelope("Profile retrieved", _profile(user))


@router.put("/profile")
def update_profile(profile: ProfileUpdate, user: dict = Depends(get_current_user)):
    updates = profile.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise ValidationError("No fields to update")

    updates["updated_at"] = to_iso(utcnow())
    updated = update_current_user(user, updates)
    return envelope("Profile updated successfully", _profile(updated))


@router.put("/preferences")
def update_preferences(data: PreferencesUpdate, user: dict = Depends(get_current_user)):
    merged = copy.deepcopy(DEFAULT_PREFERENCES)
    current = user.get("preferences") or {}
    merged.update({k: v for k, v in current.items() if k != "notifications"})
    merged["notifications"].update(current.get("notifications") or {})

    incoming = data.preferences.model_dump(exclude_none=True)
    notifications = incoming.pop("notifications", {})
    merged.update(incoming)
    merged["notifications"].update(notifications)

    updated = update_current_user(user, {"preferences": merged, "updated_at": to_iso(utcnow())})
    return envelope("Preferences updated successfully", _profile(updated))


@router.post("/avatar")
def upload_avatar(
    file: Optional[UploadFile] = File(None),
    avatar_url: Optional[str] = Form(None),
    user: dict = Depends(get_current_user),
):
    """
    Accepts either a multipart image upload (stored on S3) or an avatar_url
    form field pointing at an image hosted elsewhere.
    """
    if file is not None:
        if not storage.is_configured():
            raise BusinessRuleViolation("Avatar upload is not configured")
        if not (file.content_type or "").startswith("image/"):
            raise ValidationError("Avatar must be an image")
        url = storage.upload_avatar(user["user_id"], file.file, file.filename, file.content_type)
    elif avatar_url and avatar_url.strip():
        url = avatar_url.strip()
    else:
        raise ValidationError("Avatar URL is required")

    updated = update_current_user(user, {"avatar": url, "updated_at": to_iso(utcnow())})
    return envelope("Avatar updated successfully", _profile(updated))


@router.delete("/account")
def delete_account(data: PasswordConfirm, response: Response, user: dict = Depends(get_current_user)):
    # Re-verify immediately before the destructive operation
    if not verify_password(data.password, user.get("password_hash")):
        raise BusinessRuleViolation("Invalid password")

    removed = account_cleanup.delete_account(user)
    response.delete_cookie("token")
    return envelope("Account deleted successfully", {"removed": removed})


@router.post("/request-email-change")
def request_email_change(data: EmailChangeRequest, user: dict = Depends(get_current_user)):
    new_email = data.new_email.lower()
    if new_email == user["email"]:
        raise BusinessRuleViolation("New email must be different from current email")
    if dynamo.get_user_by_email(new_email):
        raise BusinessRuleViolation("Email is already in use")

    otp, otp_fields = tokens.issue(TokenPurpose.EMAIL_CHANGE)
    dynamo.update_user(user["user_id"], dict(otp_fields, pending_email=new_email))

    if not email_service.send_email_change_otp_email(new_email, otp, user["name"]):
        # Roll back so no half-staged change survives a failed send
        dynamo.update_user(
            user["user_id"],
            remove=tokens.clear_fields(TokenPurpose.EMAIL_CHANGE) + ["pending_email"],
        )
        raise NotificationDeliveryError("Failed to send verification code")

    logger.info(f"Email change requested for user {user['user_id']}")
    return envelope("Verification code sent to your new email address", {"pending_email": new_email})


@router.post("/verify-email-change")
def verify_email_change(data: EmailChangeVerify, user: dict = Depends(get_current_user)):
    pending_email = user.get("pending_email")
    if not pending_email or not tokens.is_valid(user, TokenPurpose.EMAIL_CHANGE, data.otp):
        raise BusinessRuleViolation("Invalid or expired OTP")

    updated = dynamo.change_user_email(
        user["user_id"],
        old_email=user["email"],
        new_email=pending_email,
        updates={"is_email_verified": True, "updated_at": to_iso(utcnow())},
        remove=tokens.clear_fields(TokenPurpose.EMAIL_CHANGE) + ["pending_email"],
        token_field=TokenPurpose.EMAIL_CHANGE.value_field,
        token_value=data.otp,
    )
    logger.info(f"Email changed for user {user['user_id']}")
    return envelope("Email updated successfully", _profile(updated))
