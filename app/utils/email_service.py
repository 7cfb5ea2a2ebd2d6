"""
Email Service
Sends transactional account emails over SMTP (Gmail or any STARTTLS server).
Every sender returns True on success and False on failure; callers decide how
to compensate.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

APP_NAME = "Income & Expense Tracker"

_STYLE = """
        body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; line-height: 1.6; color: #333; background-color: #f4f4f4; }
        .container { max-width: 600px; margin: 0 auto; background: white; border-radius: 10px; padding: 30px; }
        .header { text-align: center; margin-bottom: 30px; }
        .button { display: inline-block; padding: 12px 24px; background-color: #2563eb; color: white; text-decoration: none; border-radius: 6px; }
        .otp-code { font-size: 32px; font-weight: bold; letter-spacing: 8px; text-align: center; color: #2563eb; margin: 20px 0; }
        .warning { background-color: #fef3c7; padding: 15px; border-radius: 8px; border-left: 4px solid #f59e0b; }
        .footer { text-align: center; margin-top: 20px; color: #64748b; font-size: 12px; }
"""


def send_email(
    to_email: str,
    subject: str,
    body_html: str,
    body_text: Optional[str] = None,
) -> bool:
    """
    Send an email using SMTP.

    Args:
        to_email: Recipient email address
        subject: Email subject
        body_html: HTML email body
        body_text: Plain text alternative (optional)

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    if not settings.EMAIL_USER or not settings.EMAIL_PASS:
        logger.error("SMTP credentials are not configured, cannot send email")
        return False

    try:
        msg = MIMEMultipart("alternative")
        msg["From"] = settings.EMAIL_FROM or settings.EMAIL_USER
        msg["To"] = to_email
        msg["Subject"] = subject

        if body_text:
            msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls()
            server.login(settings.EMAIL_USER, settings.EMAIL_PASS)
            server.send_message(msg)

        logger.info(f"Email '{subject}' sent to {to_email}")
        return True

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP authentication failed: {str(e)}")
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP error sending to {to_email}: {str(e)}")
        return False


def _wrap(title: str, inner_html: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <title>{title}</title>
        <style>{_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <div class="header"><h1>{title}</h1></div>
            {inner_html}
            <div class="footer">
                <p>This email was sent by {APP_NAME}.</p>
            </div>
        </div>
    </body>
    </html>
    """


def send_verification_email(email: str, token: str, name: str) -> bool:
    verification_url = f"{settings.FRONTEND_URI}/auth/verify-email?token={token}"
    html_body = _wrap("Verify Your Email", f"""
            <p>Hello {name},</p>
            <p>Thanks for signing up! Please confirm your email address to activate your account.</p>
            <p style="text-align: center;"><a href="{verification_url}" class="button">Verify Email</a></p>
            <div class="warning">This link will expire in 24 hours.</div>
    """)
    text_body = (
        f"Hello {name},\n\nPlease verify your email address by opening this link:\n"
        f"{verification_url}\n\nThis link will expire in 24 hours.\n"
    )
    return send_email(email, f"Verify Your Email - {APP_NAME}", html_body, text_body)


def send_password_reset_email(email: str, token: str, name: str) -> bool:
    reset_url = f"{settings.FRONTEND_URI}/auth/reset-password?token={token}"
    html_body = _wrap("Reset Your Password", f"""
            <p>Hello {name},</p>
            <p>We received a request to reset your password.</p>
            <p style="text-align: center;"><a href="{reset_url}" class="button">Reset Password</a></p>
            <div class="warning">This link will expire in 1 hour. If you didn't request a reset, you can ignore this email.</div>
    """)
    text_body = (
        f"Hello {name},\n\nReset your password using this link:\n{reset_url}\n\n"
        "This link will expire in 1 hour.\n"
    )
    return send_email(email, f"Reset Your Password - {APP_NAME}", html_body, text_body)


def send_otp_email(email: str, otp: str, name: str) -> bool:
    html_body = _wrap("Your Verification Code", f"""
            <p>Hello {name},</p>
            <p>Use the following code to complete your sign in:</p>
            <div class="otp-code">{otp}</div>
            <div class="warning">This code will expire in 10 minutes. Never share it with anyone.</div>
    """)
    text_body = f"Hello {name},\n\nYour verification code is {otp}. It expires in 10 minutes.\n"
    return send_email(email, f"Your Verification Code - {APP_NAME}", html_body, text_body)


def send_email_change_otp_email(new_email: str, otp: str, name: str) -> bool:
    html_body = _wrap("Verify Your New Email Address", f"""
            <p>Hello {name},</p>
            <p>Enter this code to confirm your new email address:</p>
            <div class="otp-code">{otp}</div>
            <div class="warning"><strong>Important:</strong> This verification code will expire in 10 minutes.
            If you didn't request this email change, please ignore this email and secure your account immediately.</div>
            <p>Once verified, your email address will be updated to <strong>{new_email}</strong>.</p>
    """)
    text_body = (
        f"Hello {name},\n\nYour email change code is {otp}. It expires in 10 minutes.\n"
        f"Once verified, your email address will be updated to {new_email}.\n"
    )
    return send_email(new_email, f"Verify Your New Email Address - {APP_NAME}", html_body, text_body)
