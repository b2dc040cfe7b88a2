"""
Authentication service for account flows.

Handles:
- User registration
- Email confirmation via single-use links
- Password change and link-based password reset

Route handlers call these and translate the results into redirects and
flash messages. Domain failures raise AuthFlowError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from accountflow.accounts.models import (
    IncorrectPasswordError,
    Link,
    LinkPurpose,
    User,
    get_user_by_email,
)
from accountflow.auth.links import consume_link, issue_link

logger = logging.getLogger(__name__)

CONFIRM_FAILED = "Unable to verify email. Please try again or request a new link."
RESEND_FAILED = "Email is either not registered or already confirmed."
RESET_INELIGIBLE = (
    "Cannot reset password.  Email is not registered, "
    "or is associated with an alternative login method."
)
RESET_FAILED = "Unable to update password."
USER_EXISTS = "A user with the given email is already registered."


class AuthFlowError(Exception):
    """
    A domain failure the user can act on.

    Carries an HTTP-like status code and an optional path to send the user
    back to. Rendered by a single exception handler in the web layer.
    """

    def __init__(self, message: str, status_code: int = 400, redirect: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.redirect = redirect


def get_user_by_id(session: Session, user_id) -> Optional[User]:
    """Get a user by ID. Non-integer IDs never match."""
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    return session.get(User, user_id)


async def register_user(
    session: Session, email: str, display_name: Optional[str], password: str
) -> tuple[User, Link]:
    """
    Create a local account and send its confirmation link.

    Emails are unique on their lowercased form.
    """
    email = User.normalize_email(email)

    if get_user_by_email(session, email):
        raise AuthFlowError(USER_EXISTS, 400, "/auth/register")

    user = User(email=email, display_name=display_name, verified=False)
    await asyncio.to_thread(user.set_password, password)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration
        session.rollback()
        raise AuthFlowError(USER_EXISTS, 400, "/auth/register")
    session.refresh(user)

    logger.info(f"Created user {user.id}: {email}")

    link = await issue_link(session, user, LinkPurpose.EMAIL_CONFIRM)
    return user, link


def confirm_email(session: Session, code: Optional[str], user_id: int) -> User:
    """
    Consume an emailConfirm link on behalf of the signed-in user.

    The link must belong to that user; otherwise nothing is changed beyond
    the link itself being spent.
    """
    link = consume_link(session, code, LinkPurpose.EMAIL_CONFIRM)

    if not link or link.reference_id != user_id:
        if link:
            logger.warning(f"User {user_id} tried to use link {link.id} of user {link.reference_id}")
        raise AuthFlowError(CONFIRM_FAILED, 400, f"/users/{user_id}")

    user = session.get(User, user_id)
    if not user:
        raise AuthFlowError(CONFIRM_FAILED, 400, "/auth/login")

    user.verified = True
    session.commit()

    logger.info(f"Email verified for user {user.id}")
    return user


async def resend_confirmation(session: Session, user_id) -> User:
    """Issue a fresh emailConfirm link for an unverified user."""
    user = get_user_by_id(session, user_id)

    if not user or user.verified:
        raise AuthFlowError(RESEND_FAILED, 400)

    await issue_link(session, user, LinkPurpose.EMAIL_CONFIRM)
    return user


async def change_password(session: Session, user_id: int, current_password: str, new_password: str) -> User:
    """Replace a signed-in user's password after checking the current one."""
    user = session.get(User, user_id)
    if not user:
        raise AuthFlowError("Unable to update password.", 400, "/auth/login")

    try:
        await asyncio.to_thread(user.change_password, current_password, new_password)
    except IncorrectPasswordError as e:
        raise AuthFlowError(e.message, 400, "/auth/password/update")

    session.commit()
    logger.info(f"Password changed for user {user.id}")
    return user


async def request_password_reset(session: Session, email: str) -> Link:
    """
    Send a resetRequest link.

    Only verified accounts with a local password qualify. Every other case
    gets the same message.
    """
    user = get_user_by_email(session, email)

    if not user or not user.verified or user.is_federated:
        raise AuthFlowError(RESET_INELIGIBLE, 400, "/auth/login")

    return await issue_link(session, user, LinkPurpose.RESET_REQUEST)


async def reset_password(session: Session, code: Optional[str], new_password: str) -> User:
    """Consume a resetRequest link and set the owner's new password."""
    link = consume_link(session, code, LinkPurpose.RESET_REQUEST)
    if not link:
        raise AuthFlowError(RESET_FAILED, 400, "/auth/login")

    user = session.get(User, link.reference_id)
    if not user:
        raise AuthFlowError(RESET_FAILED, 400, "/auth/login")

    await asyncio.to_thread(user.set_password, new_password)
    session.commit()

    logger.info(f"Password reset for user {user.id}")
    return user
