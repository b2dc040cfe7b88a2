"""
Shared FastAPI dependencies for sessions, guards and credential verifiers.

Session state (signed-in user, one-shot redirect target, flash messages)
is reached only through AuthContext so handlers never poke at the raw
session dict.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from accountflow.accounts.models import LinkPurpose, User, get_session
from accountflow.auth.links import peek_link
from accountflow.auth.service import AuthFlowError
from accountflow.auth.strategies import CredentialVerifier, GoogleVerifier, LocalPasswordVerifier
from accountflow.config import (
    get_google_client_id,
    get_google_client_secret,
    is_google_configured,
    settings,
)

logger = logging.getLogger(__name__)

LOGIN_REQUIRED = "You must be signed in first!"
RESET_LINK_INVALID = "This link is invalid or has expired. Please request a new one."


class AuthContext:
    """Per-request view of the session: who is signed in, where to go next, what to tell them."""

    USER_KEY = "user_id"
    REDIRECT_KEY = "redirected_from"
    FLASH_KEY = "_flashes"
    OAUTH_STATE_KEY = "oauth_state"

    def __init__(self, session: dict):
        self._session = session

    @property
    def user_id(self) -> Optional[int]:
        return self._session.get(self.USER_KEY)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def login(self, user: User) -> None:
        self._session[self.USER_KEY] = user.id

    def logout(self) -> None:
        self._session.pop(self.USER_KEY, None)
        self._session.pop(self.OAUTH_STATE_KEY, None)

    def remember_target(self, path: str) -> None:
        self._session[self.REDIRECT_KEY] = path

    def pop_redirect_target(self, default: str) -> str:
        """Return the stored post-login destination once, then forget it."""
        return self._session.pop(self.REDIRECT_KEY, None) or default

    def flash(self, message: str, category: str = "success") -> None:
        # Lists, not tuples: the session is JSON-encoded into the cookie
        self._session.setdefault(self.FLASH_KEY, []).append([category, message])

    def pop_flashes(self) -> list[tuple[str, str]]:
        return [(category, message) for category, message in self._session.pop(self.FLASH_KEY, [])]

    def set_oauth_state(self, state: str) -> None:
        self._session[self.OAUTH_STATE_KEY] = state

    def pop_oauth_state(self) -> Optional[str]:
        return self._session.pop(self.OAUTH_STATE_KEY, None)


def get_db() -> Iterator[Session]:
    """Database session scoped to one request."""
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def get_auth_context(request: Request) -> AuthContext:
    return AuthContext(request.session)


async def require_user(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency that requires a signed-in user.

    Remembers where a GET was headed so login can send the user back there.
    """
    user = db.get(User, ctx.user_id) if ctx.is_authenticated else None

    if user is None:
        if ctx.is_authenticated:
            logger.warning(f"Session refers to missing user {ctx.user_id}")
            ctx.logout()
        if request.method == "GET":
            target = request.url.path
            if request.url.query:
                target = f"{target}?{request.url.query}"
            ctx.remember_target(target)
        raise AuthFlowError(LOGIN_REQUIRED, 401, "/auth/login")

    return user


async def require_valid_reset_link(request: Request, db: Session = Depends(get_db)) -> str:
    """
    Guard for the reset-update routes: the ulc must name a usable resetRequest link.

    Does not consume the link. Returns the code.
    """
    code = request.query_params.get("ulc")
    if not code and request.method != "GET":
        form = await request.form()
        code = form.get("ulc")

    if not peek_link(db, code, LinkPurpose.RESET_REQUEST):
        raise AuthFlowError(RESET_LINK_INVALID, 400, "/auth/password/reset/request")

    return code


def get_local_verifier() -> CredentialVerifier:
    return LocalPasswordVerifier()


def get_google_verifier() -> GoogleVerifier:
    if not is_google_configured():
        raise AuthFlowError("Google sign-in is not available.", 404, "/auth/login")

    return GoogleVerifier(
        client_id=get_google_client_id(),
        client_secret=get_google_client_secret(),
        redirect_uri=f"{settings.app_url}/auth/google/callback",
    )
