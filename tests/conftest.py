"""Pytest configuration and fixtures."""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway database before anything imports it
_TMPDIR = tempfile.mkdtemp(prefix="accountflow-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMPDIR) / 'test_accounts.db'}"
os.environ.pop("SMTP_USER", None)
os.environ.pop("SMTP_PASSWORD", None)


@pytest.fixture(autouse=True)
def fresh_db():
    """Recreate all tables for every test."""
    from accountflow.accounts.models import Base, get_engine

    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    """A database session for arranging and inspecting state."""
    from accountflow.accounts.models import get_session

    session = get_session()
    yield session
    session.close()


@pytest.fixture
def outbox(monkeypatch):
    """Capture link deliveries instead of sending email."""
    sent = []

    def fake_deliver(email, code, purpose, name=None):
        sent.append({"email": email, "code": code, "purpose": purpose, "name": name})
        return True

    monkeypatch.setattr("accountflow.auth.links.deliver_link", fake_deliver)
    return sent


@pytest.fixture
def client(outbox):
    """Test client that does not follow redirects, so each hop can be asserted."""
    from fastapi.testclient import TestClient
    from accountflow.web.server import app

    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory for persisted users."""
    from accountflow.accounts.models import User

    def _make_user(email="user@example.com", password="password123", verified=False,
                   display_name=None, google_id=None):
        user = User(
            email=User.normalize_email(email),
            display_name=display_name,
            verified=verified,
            google_id=google_id,
        )
        if password:
            user.set_password(password)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def issue(db, outbox):
    """Issue a link synchronously."""
    from accountflow.auth.links import issue_link

    def _issue(user, purpose):
        return asyncio.run(issue_link(db, user, purpose))

    return _issue


@pytest.fixture
def login_as(client):
    """Sign the test client in through the login form."""

    def _login_as(email, password="password123"):
        return client.post("/auth/login", data={"email": email, "password": password})

    return _login_as
