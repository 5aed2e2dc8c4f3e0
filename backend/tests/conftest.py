"""
Pytest fixtures for splitledger backend tests.

Provides an in-memory database, a test client, and a small group with an
admin and three members.
"""

import pytest
from datetime import datetime

from splitledger import create_app
from splitledger.extensions import db
from splitledger.services import bill_service, identity_service, membership_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        db.session.remove()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def admin(db_session):
    """Group creator; admin of `group`."""
    return identity_service.create_user("admin@example.com", "Admin")


@pytest.fixture(scope='function')
def m2(db_session):
    return identity_service.create_user("m2@example.com", "Member Two")


@pytest.fixture(scope='function')
def m3(db_session):
    return identity_service.create_user("m3@example.com", "Member Three")


@pytest.fixture(scope='function')
def outsider(db_session):
    """Exists as a user but belongs to no group."""
    return identity_service.create_user("outsider@example.com", "Outsider")


@pytest.fixture(scope='function')
def group(db_session, admin, m2, m3):
    """Group created 2024-01-01 with admin, m2 and m3 all joined that day."""
    joined = datetime(2024, 1, 1, 9, 0, 0)
    grp = membership_service.create_group("Flat 4B", admin.id, created_at=joined)
    membership_service.add_member(grp.id, m2.id, joined_at=joined)
    membership_service.add_member(grp.id, m3.id, joined_at=joined)
    return grp


@pytest.fixture(scope='function')
def make_bill(group, admin):
    """
    Factory for bills in `group`.

    make_bill(items=[("Pizza", 1200)], status="approved") walks the bill
    through the lifecycle up to the requested status.
    """
    def _make(
        items=(("Dinner", 30000),),
        *,
        creator=None,
        created_at=datetime(2024, 1, 10, 19, 30, 0),
        status="draft",
        **kwargs,
    ):
        creator_id = (creator or admin).id
        bill = bill_service.create_bill(
            group.id,
            creator_id,
            kwargs.pop("title", "Dinner"),
            items=[{"name": name, "rate_cents": rate} for name, rate in items],
            created_at=created_at,
            **kwargs,
        )
        if status in ("pending", "approved"):
            bill = bill_service.submit_bill(bill.id, creator_id)
        if status == "approved":
            bill = bill_service.approve_bill(bill.id, admin.id)
        return bill

    return _make


@pytest.fixture(scope='function')
def split_for():
    """split_for(bill, user) -> the split belonging to `user` on an approved bill."""
    def _find(bill, user):
        return next(s for s in bill.splits if s.user_id == user.id)
    return _find


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def token_for(db_session):
    """Mint a bearer token for a user and return ready-to-use headers."""
    def _headers(user):
        _, token = identity_service.issue_token(user.id)
        return auth_headers(token)
    return _headers
