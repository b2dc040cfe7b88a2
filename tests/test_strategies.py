"""Tests for credential verifiers."""

import asyncio
from urllib.parse import parse_qs, urlparse


class TestLocalPasswordVerifier:
    """Tests for LocalPasswordVerifier."""

    def test_valid_credentials(self, db, make_user):
        from accountflow.auth.strategies import LocalPasswordVerifier

        user = make_user(email="a@x.com", password="secret123")

        result = asyncio.run(LocalPasswordVerifier().verify(db, email="A@X.com", password="secret123"))

        assert result.id == user.id
        assert result.last_login is not None

    def test_rejections(self, db, make_user):
        from accountflow.auth.strategies import LocalPasswordVerifier

        make_user(email="a@x.com", password="secret123")
        make_user(email="g@x.com", password=None, google_id="google-1")
        verifier = LocalPasswordVerifier()

        assert asyncio.run(verifier.verify(db, email="a@x.com", password="nope")) is None
        assert asyncio.run(verifier.verify(db, email="b@x.com", password="secret123")) is None
        assert asyncio.run(verifier.verify(db, email="g@x.com", password="anything")) is None
        assert asyncio.run(verifier.verify(db, email="", password="")) is None


class TestGoogleVerifier:
    """Tests for GoogleVerifier."""

    def _verifier(self):
        from accountflow.auth.strategies import GoogleVerifier

        return GoogleVerifier("client-id", "client-secret", "http://localhost:8000/auth/google/callback")

    def test_authorization_url(self):
        url = urlparse(self._verifier().authorization_url("state-123"))
        params = parse_qs(url.query)

        assert url.netloc == "accounts.google.com"
        assert params["client_id"] == ["client-id"]
        assert params["state"] == ["state-123"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["openid profile email"]
        assert params["redirect_uri"] == ["http://localhost:8000/auth/google/callback"]

    def test_resolve_creates_unverified_user(self, db, outbox):
        from accountflow.accounts.models import LinkPurpose
        from accountflow.auth.strategies import GoogleProfile

        profile = GoogleProfile(sub="g-1", email="Someone@Gmail.com", name="Someone")

        user = asyncio.run(self._verifier().resolve_user(db, profile))

        assert user.email == "someone@gmail.com"
        assert user.google_id == "g-1"
        assert user.verified is False
        assert user.password_hash is None
        assert outbox[0]["purpose"] == LinkPurpose.EMAIL_CONFIRM

    def test_resolve_links_existing_email(self, db, make_user, outbox):
        from accountflow.auth.strategies import GoogleProfile

        existing = make_user(email="someone@gmail.com", verified=True)
        profile = GoogleProfile(sub="g-1", email="someone@gmail.com", email_verified=True)

        user = asyncio.run(self._verifier().resolve_user(db, profile))

        assert user.id == existing.id
        assert user.google_id == "g-1"
        assert outbox == []

    def test_resolve_claims_unconfirmed_local_account(self, db, make_user, outbox):
        from accountflow.auth.strategies import GoogleProfile

        squatter = make_user(email="victim@gmail.com", password="attacker-pass", verified=False)
        profile = GoogleProfile(sub="victim-sub", email="victim@gmail.com", email_verified=True)

        user = asyncio.run(self._verifier().resolve_user(db, profile))

        assert user.id == squatter.id
        assert user.google_id == "victim-sub"
        assert user.verified is True
        assert user.check_password("attacker-pass") is False
        assert user.is_federated

    def test_resolve_refuses_link_without_verified_email(self, db, make_user, outbox):
        from accountflow.accounts.models import User
        from accountflow.auth.strategies import GoogleProfile

        existing = make_user(email="someone@gmail.com", password="secret123", verified=True)
        profile = GoogleProfile(sub="g-1", email="someone@gmail.com", email_verified=False)

        assert asyncio.run(self._verifier().resolve_user(db, profile)) is None

        db.expire_all()
        stored = db.get(User, existing.id)
        assert stored.google_id is None
        assert stored.check_password("secret123")

    def test_resolve_prefers_google_id(self, db, make_user, outbox):
        from accountflow.auth.strategies import GoogleProfile

        existing = make_user(email="old@gmail.com", google_id="g-1", password=None)
        profile = GoogleProfile(sub="g-1", email="changed@gmail.com")

        user = asyncio.run(self._verifier().resolve_user(db, profile))

        assert user.id == existing.id
        assert user.email == "old@gmail.com"

    def test_resolve_without_email(self, db, outbox):
        from accountflow.accounts.models import User
        from accountflow.auth.strategies import GoogleProfile

        user = asyncio.run(self._verifier().resolve_user(db, GoogleProfile(sub="g-1", email=None)))

        assert user is None
        assert db.query(User).count() == 0

    def test_verify_handles_provider_errors(self, db, monkeypatch):
        import httpx

        verifier = self._verifier()

        async def failing_fetch(code):
            raise httpx.ConnectError("unreachable")

        monkeypatch.setattr(verifier, "fetch_profile", failing_fetch)

        assert asyncio.run(verifier.verify(db, code="anything")) is None
        assert asyncio.run(verifier.verify(db, code=None)) is None
