import copy
import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.core.config import settings
from app.core.exceptions import (
    AppError,
    AuthenticationError,
    BusinessRuleViolation,
    NotFoundError,
    NotificationDeliveryError,
    UnexpectedError,
    envelope,
)
from app.core.security import (
    create_access_token,
    get_current_user,
    get_password_hash,
    update_current_user,
    verify_password,
)
from app.db import dynamo
from app.models.user import (
    DEFAULT_PREFERENCES,
    EmailOnly,
    OTPLogin,
    PasswordChange,
    PasswordConfirm,
    PasswordReset,
    SessionRevoke,
    UserCreate,
    UserLogin,
    UserPublic,
    public_sessions,
)
from app.utils import email_service, tokens
from app.utils.dates import to_iso, utcnow
from app.utils.tokens import TokenPurpose

router = APIRouter()
logger = logging.getLogger(__name__)

# Most recent client contexts kept per user for GET /sessions
MAX_SESSIONS = 10


def _set_token_cookie(response: Response, access_token: str):
    response.set_cookie(
        "token",
        access_token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def _complete_login(user: dict, request: Request, response: Response) -> dict:
    """Record the client context, issue the bearer token and set the cookie."""
    now = to_iso(utcnow())
    session = {
        "session_id": uuid4().hex,
        "user_agent": request.headers.get("user-agent"),
        "ip_address": request.client.host if request.client else None,
        "created_at": now,
    }
    sessions = ([session] + user.get("sessions", []))[:MAX_SESSIONS]
    updated = update_current_user(user, {"sessions": sessions, "last_login": now})

    access_token = create_access_token(data={"sub": user["user_id"], "sid": session["session_id"]})
    _set_token_cookie(response, access_token)
    return {
        "token": access_token,
        "token_type": "bearer",
        "user": UserPublic.from_item(updated).model_dump(),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(user: UserCreate):
    email = user.email.lower()
    # Pre-check only; the email guard write is what enforces uniqueness
    if dynamo.get_user_by_email(email):
        raise BusinessRuleViolation("User already exists")

    token, token_fields = tokens.issue(TokenPurpose.VERIFICATION)
    now = to_iso(utcnow())
    user_item = {
        "user_id": str(uuid4()),
        "name": user.name,
        "email": email,
        "password_hash": get_password_hash(user.password),
        "avatar": "",
        "phone": "",
        "currency": "USD",
        "timezone": "UTC",
        "preferences": copy.deepcopy(DEFAULT_PREFERENCES),
        "is_email_verified": False,
        "is_two_factor_enabled": False,
        "is_active": True,
        "sessions": [],
        "created_at": now,
        "updated_at": now,
        **token_fields,
    }
    dynamo.create_user(user_item)
    logger.info(f"Registered user {user_item['user_id']}")

    email_sent = email_service.send_verification_email(email, token, user.name)
    if not email_sent:
        logger.warning(f"Verification email could not be sent to user {user_item['user_id']}")

    return envelope(
        "User registered successfully. Please check your email to verify your account.",
        {"user": UserPublic.from_item(user_item).model_dump(), "email_sent": email_sent},
    )


@router.post("/login")
def login(login_data: UserLogin, request: Request, response: Response):
    try:
        user = dynamo.get_user_by_email(login_data.email)

        if not user or not user.get("is_active", True):
            logger.warning("Login attempt for unknown or inactive account")
            raise AuthenticationError("Invalid credentials")

        if not verify_password(login_data.password, user.get("password_hash")):
            logger.warning(f"Invalid password for user {user['user_id']}")
            raise AuthenticationError("Invalid credentials")

        if user.get("is_two_factor_enabled"):
            otp, otp_fields = tokens.issue(TokenPurpose.LOGIN_OTP)
            dynamo.update_user(user["user_id"], otp_fields)
            if not email_service.send_otp_email(user["email"], otp, user["name"]):
                dynamo.update_user(user["user_id"], remove=tokens.clear_fields(TokenPurpose.LOGIN_OTP))
                raise NotificationDeliveryError("Failed to send verification code")
            return envelope(
                "Verification code sent to your email",
                {"requires_two_factor": True, "email": user["email"]},
            )

        data = _complete_login(user, request, response)
        logger.info(f"Login successful for user {user['user_id']}")
        return envelope("Login successful", data)
    except AppError:
        raise
    except Exception as e:
        logger.error(f"Login error: {str(e)}", exc_info=True)
        raise UnexpectedError("Login failed")


@router.post("/verify-otp")
def verify_otp(otp_data: OTPLogin, request: Request, response: Response):
    user = dynamo.get_user_by_email(otp_data.email)
    if not user or not user.get("is_active", True) or not tokens.is_valid(user, TokenPurpose.LOGIN_OTP, otp_data.otp):
        logger.warning("Rejected login OTP")
        raise BusinessRuleViolation("Invalid or expired OTP")

    consumed = dynamo.consume_user_token(
        user["user_id"],
        TokenPurpose.LOGIN_OTP.value_field,
        otp_data.otp,
        remove=tokens.clear_fields(TokenPurpose.LOGIN_OTP),
    )
    if consumed is None:
        raise BusinessRuleViolation("Invalid or expired OTP")

    return envelope("Login successful", _complete_login(consumed, request, response))


@router.post("/logout")
def logout(response: Response):
    # Stateless tokens: clearing the cookie is all the server can do
    response.delete_cookie("token")
    return envelope("Logged out successfully")


@router.get("/me")
def get_me(user: dict = Depends(get_current_user)):
    """Get current user profile"""
    return envelope("User retrieved", {"user": UserPublic.from_item(user).model_dump()})


@router.put("/password")
def change_password(data: PasswordChange, user: dict = Depends(get_current_user)):
    if not verify_password(data.current_password, user.get("password_hash")):
        raise BusinessRuleViolation("Current password is incorrect")

    dynamo.update_user(
        user["user_id"],
        {"password_hash": get_password_hash(data.new_password), "updated_at": to_iso(utcnow())},
        remove=tokens.clear_fields(TokenPurpose.RESET),
    )
    logger.info(f"Password changed for user {user['user_id']}")
    return envelope("Password updated successfully")


@router.get("/sessions")
def list_sessions(user: dict = Depends(get_current_user)):
    return envelope("Sessions retrieved", {"sessions": public_sessions(user)})


@router.post("/sessions/revoke")
def revoke_session(data: SessionRevoke, user: dict = Depends(get_current_user)):
    """
    Remove client contexts from the listing. Tokens already issued stay valid
    until they expire.
    """
    sessions = user.get("sessions", [])
    if data.all_others:
        remaining = [s for s in sessions if s["session_id"] == user.get("_session_id")]
    elif data.session_id:
        remaining = [s for s in sessions if s["session_id"] != data.session_id]
        if len(remaining) == len(sessions):
            raise NotFoundError("Session not found")
    else:
        raise BusinessRuleViolation("Provide session_id or all_others")

    updated = update_current_user(user, {"sessions": remaining})
    return envelope("Session revoked", {"sessions": public_sessions(updated)})


@router.get("/verify-email")
def verify_email(token: str = Query(..., min_length=1)):
    user = dynamo.get_user_by_verification_token(token)
    if not user or not tokens.is_valid(user, TokenPurpose.VERIFICATION, token):
        raise BusinessRuleViolation("Invalid or expired verification token")

    verified = dynamo.consume_user_token(
        user["user_id"],
        TokenPurpose.VERIFICATION.value_field,
        token,
        updates={"is_email_verified": True, "updated_at": to_iso(utcnow())},
        remove=tokens.clear_fields(TokenPurpose.VERIFICATION),
    )
    if verified is None:
        raise BusinessRuleViolation("Invalid or expired verification token")

    logger.info(f"Email verified for user {user['user_id']}")
    return envelope("Email verified successfully", {"user": UserPublic.from_item(verified).model_dump()})


@router.post("/resend-verification")
def resend_verification(data: EmailOnly):
    user = dynamo.get_user_by_email(data.email)
    if not user or not user.get("is_active", True):
        raise NotFoundError("User not found")
    if user.get("is_email_verified"):
        raise BusinessRuleViolation("Email is already verified")

    token, token_fields = tokens.issue(TokenPurpose.VERIFICATION)
    dynamo.update_user(user["user_id"], token_fields)
    if not email_service.send_verification_email(user["email"], token, user["name"]):
        dynamo.update_user(user["user_id"], remove=tokens.clear_fields(TokenPurpose.VERIFICATION))
        raise NotificationDeliveryError("Failed to send verification email")

    return envelope("Verification email sent successfully")


@router.post("/forgot-password")
def forgot_password(data: EmailOnly):
    """
    Same response whether or not the account exists, so the endpoint cannot
    be used to probe for registered addresses.
    """
    user = dynamo.get_user_by_email(data.email)
    if user and user.get("is_active", True):
        token, token_fields = tokens.issue(TokenPurpose.RESET)
        dynamo.update_user(user["user_id"], token_fields)
        if not email_service.send_password_reset_email(user["email"], token, user["name"]):
            dynamo.update_user(user["user_id"], remove=tokens.clear_fields(TokenPurpose.RESET))
            raise NotificationDeliveryError("Failed to send password reset email")
    else:
        logger.info("Password reset requested for unknown email")

    return envelope("If an account with that email exists, a password reset link has been sent")


@router.post("/reset-password")
def reset_password(data: PasswordReset):
    user = dynamo.get_user_by_reset_token(data.token)
    if not user or not tokens.is_valid(user, TokenPurpose.RESET, data.token):
        raise BusinessRuleViolation("Invalid or expired reset token")

    updated = dynamo.consume_user_token(
        user["user_id"],
        TokenPurpose.RESET.value_field,
        data.token,
        updates={"password_hash": get_password_hash(data.password), "updated_at": to_iso(utcnow())},
        remove=tokens.clear_fields(TokenPurpose.RESET),
    )
    if updated is None:
        raise BusinessRuleViolation("Invalid or expired reset token")

    logger.info(f"Password reset for user {user['user_id']}")
    return envelope("Password reset successfully")


@router.post("/enable-2fa")
def enable_two_factor(data: PasswordConfirm, user: dict = Depends(get_current_user)):
    if not verify_password(data.password, user.get("password_hash")):
        raise BusinessRuleViolation("Invalid password")
    if user.get("is_two_factor_enabled"):
        raise BusinessRuleViolation("Two-factor authentication is already enabled")

    updated = update_current_user(
        user,
        {"is_two_factor_enabled": True, "updated_at": to_iso(utcnow())},
        remove=tokens.clear_fields(TokenPurpose.LOGIN_OTP),
    )
    return envelope("Two-factor authentication enabled", {"user": UserPublic.from_item(updated).model_dump()})


@router.post("/disable-2fa")
def disable_two_factor(data: PasswordConfirm, user: dict = Depends(get_current_user)):
    if not verify_password(data.password, user.get("password_hash")):
        raise BusinessRuleViolation("Invalid password")
    if not user.get("is_two_factor_enabled"):
        raise BusinessRuleViolation("Two-factor authentication is not enabled")

    updated = update_current_user(
        user,
        {"is_two_factor_enabled": False, "updated_at": to_iso(utcnow())},
        remove=tokens.clear_fields(TokenPurpose.LOGIN_OTP),
    )
    return envelope("Two-factor authentication disabled", {"user": UserPublic.from_item(updated).model_dump()})
