"""
Single-use links for email confirmation and password reset.

A link is issued for one user and one purpose, delivered by email, and
consumed at most once. Consumption is a single conditional UPDATE so two
requests racing on the same code cannot both succeed.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.orm import Session

from accountflow.accounts.models import Link, LinkPurpose, User, utcnow
from accountflow.auth.email import send_confirmation_email, send_password_reset_email
from accountflow.config import settings

logger = logging.getLogger(__name__)

CODE_BYTES = 32


@dataclass(frozen=True)
class ConsumedLink:
    """State of a link at the moment it was consumed."""

    id: int
    code: str
    purpose: LinkPurpose
    reference_id: int


def generate_link_code() -> str:
    """Generate an unpredictable, URL-safe link code."""
    return secrets.token_urlsafe(CODE_BYTES)


def link_ttl(purpose: LinkPurpose) -> timedelta:
    if purpose == LinkPurpose.RESET_REQUEST:
        return timedelta(hours=settings.reset_request_hours)
    return timedelta(hours=settings.email_confirm_hours)


def deliver_link(email: str, code: str, purpose: LinkPurpose, name: Optional[str] = None) -> bool:
    """Email a link code to its owner. Returns False if nothing was sent."""
    if purpose == LinkPurpose.RESET_REQUEST:
        return send_password_reset_email(email, code, name)
    return send_confirmation_email(email, code, name)


async def issue_link(session: Session, user: User, purpose: LinkPurpose) -> Link:
    """
    Create, persist and deliver a new link for a user.

    Storage errors propagate. Delivery failures are logged only; the user
    can always request another link.
    """
    link = Link(
        code=generate_link_code(),
        purpose=purpose,
        reference_id=user.id,
        valid=True,
        expire_at=utcnow() + link_ttl(purpose),
    )
    session.add(link)
    session.commit()
    session.refresh(link)

    logger.info(f"Issued {purpose.value} link {link.id} for user {user.id}")

    sent = await asyncio.to_thread(deliver_link, user.email, link.code, purpose, user.display_name)
    if not sent:
        logger.warning(f"{purpose.value} link {link.id} for user {user.id} was not delivered")

    return link


def consume_link(
    session: Session, code: Optional[str], purpose: Optional[LinkPurpose] = None
) -> Optional[ConsumedLink]:
    """
    Invalidate a link and return what it was, in one statement.

    Returns None when no usable link matches: unknown code, already consumed,
    expired, or issued for a different purpose.
    """
    if not code:
        return None

    now = utcnow()
    stmt = (
        update(Link)
        .where(Link.code == code, Link.valid == True, Link.expire_at > now)  # noqa: E712
        .values(valid=False, expire_at=now)
        .returning(Link.id, Link.code, Link.purpose, Link.reference_id)
        .execution_options(synchronize_session=False)
    )
    if purpose is not None:
        stmt = stmt.where(Link.purpose == purpose)

    row = session.execute(stmt).first()
    session.commit()

    if row is None:
        logger.debug("No usable link matched the submitted code")
        return None

    logger.info(f"Consumed {row.purpose.value} link {row.id} for user {row.reference_id}")
    return ConsumedLink(id=row.id, code=row.code, purpose=row.purpose, reference_id=row.reference_id)


def peek_link(session: Session, code: Optional[str], purpose: LinkPurpose) -> Optional[Link]:
    """Find a usable link without consuming it."""
    if not code:
        return None

    return (
        session.query(Link)
        .filter(
            Link.code == code,
            Link.purpose == purpose,
            Link.valid == True,  # noqa: E712
            Link.expire_at > utcnow(),
        )
        .first()
    )


def purge_dead_links(session: Session, now: Optional[datetime] = None) -> int:
    """
    Delete consumed and expired links.

    Returns the number of rows removed.
    """
    now = now or utcnow()
    result = session.execute(
        delete(Link)
        .where(or_(Link.valid == False, Link.expire_at <= now))  # noqa: E712
        .execution_options(synchronize_session=False)
    )
    session.commit()

    removed = result.rowcount or 0
    if removed:
        logger.info(f"Purged {removed} dead links")
    return removed


def list_links(session: Session, user_id: Optional[int] = None) -> list[Link]:
    """List links, newest first, optionally for a single user."""
    query = session.query(Link)
    if user_id is not None:
        query = query.filter(Link.reference_id == user_id)
    return query.order_by(Link.created_at.desc(), Link.id.desc()).all()
