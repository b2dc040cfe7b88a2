"""
Credential verifiers.

Each verifier turns submitted credentials into a User (or None). Routes get
them through FastAPI dependencies so tests can swap in fakes.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from accountflow.accounts.models import LinkPurpose, User, get_user_by_email, utcnow
from accountflow.auth.links import issue_link

logger = logging.getLogger(__name__)


class CredentialVerifier(ABC):
    """Something that can prove who a request is acting for."""

    @abstractmethod
    async def verify(self, session: Session, **credentials) -> Optional[User]:
        """Return the authenticated user, or None if the credentials are rejected."""


class LocalPasswordVerifier(CredentialVerifier):
    """Email + password checked against the bcrypt hash."""

    async def verify(self, session: Session, **credentials) -> Optional[User]:
        email = credentials.get("email") or ""
        password = credentials.get("password") or ""

        if not email or not password:
            return None

        user = get_user_by_email(session, email)
        if not user:
            logger.debug(f"User not found: {email}")
            return None

        if not await asyncio.to_thread(user.check_password, password):
            logger.debug(f"Invalid password for: {email}")
            return None

        user.last_login = utcnow()
        session.commit()
        return user


@dataclass
class GoogleProfile:
    """The subset of the Google userinfo response we use."""

    sub: str
    email: Optional[str]
    name: Optional[str] = None
    email_verified: bool = False


class GoogleVerifier(CredentialVerifier):
    """
    Google OAuth2 authorization-code flow.

    authorization_url() starts the handshake; verify() finishes it with the
    code from the callback and maps the Google account onto a local User.
    """

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
    SCOPES = ("openid", "profile", "email")

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, timeout: float = 10.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "state": state,
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> GoogleProfile:
        """Exchange the authorization code and read the user's profile."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            token_resp = await client.post(
                self.TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_resp.raise_for_status()
            access_token = token_resp.json()["access_token"]

            info_resp = await client.get(
                self.USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            info_resp.raise_for_status()
            info = info_resp.json()

        return GoogleProfile(
            sub=str(info["sub"]),
            email=info.get("email"),
            name=info.get("name"),
            email_verified=info.get("email_verified") is True,
        )

    async def verify(self, session: Session, **credentials) -> Optional[User]:
        code = credentials.get("code")
        if not code:
            return None

        try:
            profile = await self.fetch_profile(code)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"Google sign-in failed: {e}")
            return None

        return await self.resolve_user(session, profile)

    async def resolve_user(self, session: Session, profile: GoogleProfile) -> Optional[User]:
        """
        Find or create the local account for a Google profile.

        Lookup order: google_id, then email (linking the accounts). Linking
        requires Google to vouch for the address. An unconfirmed local
        account linked this way loses its password. New accounts start
        unverified and are sent a confirmation link.
        """
        user = session.query(User).filter(User.google_id == profile.sub).first()
        if user:
            user.last_login = utcnow()
            session.commit()
            return user

        if not profile.email:
            logger.warning("Google profile has no email address")
            return None

        user = get_user_by_email(session, profile.email)
        if user:
            if not profile.email_verified:
                logger.warning(f"Refusing to link unverified Google email to user {user.id}")
                return None
            if not user.verified:
                user.password_hash = None
                user.verified = True
            user.google_id = profile.sub
            user.last_login = utcnow()
            session.commit()
            logger.info(f"Linked Google account to user {user.id}")
            return user

        user = User(
            email=User.normalize_email(profile.email),
            display_name=profile.name,
            google_id=profile.sub,
            verified=False,
            last_login=utcnow(),
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info(f"Created user {user.id} from Google sign-in")

        await issue_link(session, user, LinkPurpose.EMAIL_CONFIRM)
        return user
