"""
Email service for authentication links.

Handles sending email confirmation and password reset links.
Requires SMTP configuration in environment variables.
"""

import os
import logging
import smtplib
from html import escape
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from accountflow.config import settings

logger = logging.getLogger(__name__)

# SMTP Configuration from environment
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER)
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

# Where each link purpose lands when clicked
CONFIRM_PATH = "/auth/confirmation/email"
RESET_PATH = "/auth/password/reset/update"


def is_email_configured() -> bool:
    """Check if email sending is properly configured."""
    return bool(SMTP_USER and SMTP_PASSWORD)


def send_email(to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
    """
    Send an email using SMTP.

    Args:
        to: Recipient email address
        subject: Email subject
        html_body: HTML content
        text_body: Plain text fallback (optional)

    Returns:
        True if sent successfully
    """
    if not is_email_configured():
        logger.warning("Email not configured - skipping send")
        logger.info(f"Would send email to {to}: {subject}")
        return False

    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{settings.app_name} <{SMTP_FROM}>"
        msg["To"] = to

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
            if SMTP_USE_TLS:
                server.starttls()
            server.login(SMTP_USER, SMTP_PASSWORD)
            server.sendmail(SMTP_FROM, to, msg.as_string())

        logger.info(f"Email sent to {to}: {subject}")
        return True

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to}: {e}")
        return False


def build_link_url(path: str, code: str) -> str:
    """Absolute URL carrying a link code in the ulc query parameter."""
    return f"{settings.app_url}{path}?ulc={code}"


_STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
        .container { max-width: 600px; margin: 0 auto; padding: 20px; }
        .button {
            display: inline-block;
            padding: 12px 24px;
            background-color: #3B82F6;
            color: white !important;
            text-decoration: none;
            border-radius: 6px;
            margin: 20px 0;
        }
        .footer { color: #666; font-size: 12px; margin-top: 30px; }
"""


def _render_html(heading: str, greeting: str, intro: str, button: str, url: str,
                 expiry: str, footer: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLE}</style>
    </head>
    <body>
        <div class="container">
            <h2>{heading}</h2>
            <p>{escape(greeting)}</p>
            <p>{intro}</p>
            <a href="{url}" class="button">{button}</a>
            <p>Or copy this link into your browser:</p>
            <p style="word-break: break-all; color: #666;">{url}</p>
            <p><strong>{expiry}</strong></p>
            <div class="footer">
                <p>{footer}</p>
                <p>&copy; {settings.app_name}</p>
            </div>
        </div>
    </body>
    </html>
    """


def _expiry_text(hours: int) -> str:
    unit = "hour" if hours == 1 else "hours"
    return f"This link will expire in {hours} {unit}."


def send_confirmation_email(email: str, code: str, name: Optional[str] = None) -> bool:
    """
    Send the email confirmation link.

    Args:
        email: User's email address
        code: Link code
        name: User's display name (optional)

    Returns:
        True if sent successfully
    """
    url = build_link_url(CONFIRM_PATH, code)
    greeting = f"Hi {name}," if name else "Hi,"
    expiry = _expiry_text(settings.email_confirm_hours)
    footer = "If you didn't create an account, you can safely ignore this email."

    html_body = _render_html(
        heading=f"Welcome to {settings.app_name}!",
        greeting=greeting,
        intro="Please confirm your email address. You need to be signed in when you open the link.",
        button="Confirm Email Address",
        url=url,
        expiry=expiry,
        footer=footer,
    )

    text_body = f"""
    Welcome to {settings.app_name}!

    {greeting}

    Please confirm your email address by opening the link below while signed in:

    {url}

    {expiry}

    {footer}
    """

    return send_email(email, f"Confirm your {settings.app_name} email", html_body, text_body)


def send_password_reset_email(email: str, code: str, name: Optional[str] = None) -> bool:
    """
    Send the password reset link.

    Args:
        email: User's email address
        code: Link code
        name: User's display name (optional)

    Returns:
        True if sent successfully
    """
    url = build_link_url(RESET_PATH, code)
    greeting = f"Hi {name}," if name else "Hi,"
    expiry = _expiry_text(settings.reset_request_hours)
    footer = (
        "If you didn't request a password reset, you can safely ignore this email. "
        "Your password will remain unchanged."
    )

    html_body = _render_html(
        heading="Password Reset Request",
        greeting=greeting,
        intro="We received a request to reset your password. Click the button below to create a new password:",
        button="Reset Password",
        url=url,
        expiry=expiry,
        footer=footer,
    )

    text_body = f"""
    Password Reset Request

    {greeting}

    We received a request to reset your password. Open the link below to create a new password:

    {url}

    {expiry}

    {footer}
    """

    return send_email(email, f"Reset your {settings.app_name} password", html_body, text_body)
