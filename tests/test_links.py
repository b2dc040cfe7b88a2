"""Tests for single-use link issuance and consumption."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta


class TestIssueLink:
    """Tests for issue_link."""

    def test_issued_links_are_valid_and_unique(self, make_user, issue, outbox):
        """Every issued link starts valid with its own code."""
        from accountflow.accounts.models import LinkPurpose, utcnow

        user = make_user()
        links = [issue(user, LinkPurpose.EMAIL_CONFIRM) for _ in range(5)]

        assert len({link.code for link in links}) == 5
        assert all(link.valid for link in links)
        assert all(link.reference_id == user.id for link in links)
        assert all(link.expire_at > utcnow() for link in links)

    def test_issue_delivers_code_to_owner(self, make_user, issue, outbox):
        """The code that is persisted is the code that is emailed."""
        from accountflow.accounts.models import LinkPurpose

        user = make_user(email="owner@example.com")
        link = issue(user, LinkPurpose.RESET_REQUEST)

        assert outbox == [
            {
                "email": "owner@example.com",
                "code": link.code,
                "purpose": LinkPurpose.RESET_REQUEST,
                "name": None,
            }
        ]

    def test_expiry_depends_on_purpose(self, make_user, issue):
        """Reset links are short lived, confirmation links last a day."""
        from accountflow.accounts.models import LinkPurpose, utcnow

        user = make_user()
        confirm = issue(user, LinkPurpose.EMAIL_CONFIRM)
        reset = issue(user, LinkPurpose.RESET_REQUEST)

        now = utcnow()
        assert timedelta(hours=23) < confirm.expire_at - now <= timedelta(hours=24)
        assert timedelta(minutes=59) < reset.expire_at - now <= timedelta(hours=1)

    def test_delivery_failure_does_not_raise(self, make_user, db, monkeypatch):
        """An undelivered link is still persisted."""
        import asyncio
        from accountflow.accounts.models import Link, LinkPurpose
        from accountflow.auth.links import issue_link

        monkeypatch.setattr("accountflow.auth.links.deliver_link", lambda *args, **kwargs: False)
        user = make_user()

        link = asyncio.run(issue_link(db, user, LinkPurpose.EMAIL_CONFIRM))

        assert db.query(Link).filter(Link.id == link.id).count() == 1


class TestConsumeLink:
    """Tests for consume_link."""

    def test_consume_returns_owner_and_invalidates(self, make_user, issue, db):
        """Consumption reports the link and marks it spent."""
        from accountflow.accounts.models import Link, LinkPurpose
        from accountflow.auth.links import consume_link

        user = make_user()
        link = issue(user, LinkPurpose.EMAIL_CONFIRM)

        consumed = consume_link(db, link.code)

        assert consumed.reference_id == user.id
        assert consumed.purpose == LinkPurpose.EMAIL_CONFIRM
        stored = db.query(Link).filter(Link.code == link.code).one()
        assert stored.valid is False
        assert not stored.is_usable

    def test_second_consumption_fails(self, make_user, issue, db):
        """A link works exactly once."""
        from accountflow.accounts.models import LinkPurpose
        from accountflow.auth.links import consume_link

        link = issue(make_user(), LinkPurpose.EMAIL_CONFIRM)

        assert consume_link(db, link.code) is not None
        assert consume_link(db, link.code) is None

    def test_unknown_and_empty_codes(self, db):
        from accountflow.auth.links import consume_link

        assert consume_link(db, "no-such-code") is None
        assert consume_link(db, "") is None
        assert consume_link(db, None) is None

    def test_wrong_purpose_is_not_consumed(self, make_user, issue, db):
        """A confirmation link cannot reset a password, and stays usable."""
        from accountflow.accounts.models import LinkPurpose
        from accountflow.auth.links import consume_link

        link = issue(make_user(), LinkPurpose.EMAIL_CONFIRM)

        assert consume_link(db, link.code, LinkPurpose.RESET_REQUEST) is None
        assert consume_link(db, link.code, LinkPurpose.EMAIL_CONFIRM) is not None

    def test_expired_link_is_not_consumed(self, make_user, db):
        from accountflow.accounts.models import Link, LinkPurpose, utcnow
        from accountflow.auth.links import consume_link

        user = make_user()
        db.add(Link(
            code="stale",
            purpose=LinkPurpose.RESET_REQUEST,
            reference_id=user.id,
            valid=True,
            expire_at=utcnow() - timedelta(minutes=1),
        ))
        db.commit()

        assert consume_link(db, "stale") is None

    def test_concurrent_consumers_only_one_wins(self, make_user, issue):
        """Parallel attempts on the same code: one success, the rest NotFound."""
        from accountflow.accounts.models import LinkPurpose, get_session
        from accountflow.auth.links import consume_link

        link = issue(make_user(), LinkPurpose.RESET_REQUEST)
        code = link.code

        def attempt(_):
            session = get_session()
            try:
                return consume_link(session, code, LinkPurpose.RESET_REQUEST)
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(attempt, range(6)))

        assert sum(result is not None for result in results) == 1


class TestPeekAndPurge:
    """Tests for peek_link and purge_dead_links."""

    def test_peek_does_not_consume(self, make_user, issue, db):
        from accountflow.accounts.models import LinkPurpose
        from accountflow.auth.links import consume_link, peek_link

        link = issue(make_user(), LinkPurpose.RESET_REQUEST)

        assert peek_link(db, link.code, LinkPurpose.RESET_REQUEST) is not None
        assert peek_link(db, link.code, LinkPurpose.RESET_REQUEST) is not None
        assert peek_link(db, link.code, LinkPurpose.EMAIL_CONFIRM) is None

        consume_link(db, link.code)
        db.expire_all()
        assert peek_link(db, link.code, LinkPurpose.RESET_REQUEST) is None

    def test_purge_removes_only_dead_links(self, make_user, issue, db):
        from accountflow.accounts.models import Link, LinkPurpose, utcnow
        from accountflow.auth.links import consume_link, purge_dead_links

        user = make_user()
        live = issue(user, LinkPurpose.EMAIL_CONFIRM)
        spent = issue(user, LinkPurpose.EMAIL_CONFIRM)
        consume_link(db, spent.code)
        db.add(Link(
            code="expired",
            purpose=LinkPurpose.EMAIL_CONFIRM,
            reference_id=user.id,
            valid=True,
            expire_at=utcnow() - timedelta(hours=1),
        ))
        db.commit()
        live_code = live.code

        removed = purge_dead_links(db)

        assert removed == 2
        assert [link.code for link in db.query(Link).all()] == [live_code]
