"""
SQLAlchemy models for user accounts.

Models:
- User: Identity record (local credential and/or Google identity)
- Link: Single-use, expiring, purpose-tagged action token bound to a user
"""

from datetime import datetime, timezone
from typing import Optional
import enum

import bcrypt
from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Enum,
    ForeignKey,
)
from sqlalchemy.orm import (
    declarative_base,
    relationship,
    sessionmaker,
    Session,
)

from accountflow.config import get_database_url

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IncorrectPasswordError(Exception):
    """Raised when the current password does not match on a password change."""

    def __init__(self, message: str = "Password or username is incorrect"):
        super().__init__(message)
        self.message = message


class LinkPurpose(enum.Enum):
    """What a link authorizes its holder to do."""

    EMAIL_CONFIRM = "emailConfirm"
    RESET_REQUEST = "resetRequest"


class User(Base):
    """Identity record."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(100))
    password_hash = Column(String(255))  # None for Google-only accounts
    verified = Column(Boolean, default=False, nullable=False)
    google_id = Column(String(255), unique=True, index=True)

    created_at = Column(DateTime, default=utcnow)
    last_login = Column(DateTime)

    links = relationship("Link", back_populates="user")

    def __repr__(self):
        return f"<User(email='{self.email}', verified={self.verified})>"

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    @property
    def is_federated(self) -> bool:
        return self.google_id is not None

    def set_password(self, password: str) -> None:
        """Hash and store a new password using bcrypt."""
        salt = bcrypt.gensalt()
        self.password_hash = bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def check_password(self, password: str) -> bool:
        """Verify a password against the stored hash."""
        if not self.password_hash:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), self.password_hash.encode("utf-8"))

    def change_password(self, current_password: str, new_password: str) -> None:
        """
        Replace the password after proving the current one.

        Raises IncorrectPasswordError if current_password does not match.
        """
        if not self.check_password(current_password):
            raise IncorrectPasswordError()
        self.set_password(new_password)


class Link(Base):
    """Single-use action token delivered by email."""

    __tablename__ = "links"

    id = Column(Integer, primary_key=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    purpose = Column(Enum(LinkPurpose), nullable=False)
    reference_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    valid = Column(Boolean, default=True, nullable=False)
    expire_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="links")

    def __repr__(self):
        return f"<Link(purpose='{self.purpose.value}', user={self.reference_id}, valid={self.valid})>"

    @property
    def is_usable(self) -> bool:
        """Check if the link can still be consumed."""
        return bool(self.valid) and self.expire_at > utcnow()


# Database setup
_engine = None
_SessionLocal = None


def get_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        db_url = get_database_url()
        connect_args = {}
        if db_url.startswith("sqlite"):
            # Requests are served from a threadpool
            connect_args["check_same_thread"] = False
        _engine = create_engine(db_url, echo=False, connect_args=connect_args)
    return _engine


def init_db() -> None:
    """Initialize database and create tables."""
    engine = get_engine()
    Base.metadata.create_all(engine)


def get_session() -> Session:
    """Get a new database session."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine()
        _SessionLocal = sessionmaker(bind=engine)
    return _SessionLocal()


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    """Get a user by email, matched on the normalized form."""
    return session.query(User).filter(User.email == User.normalize_email(email)).first()
