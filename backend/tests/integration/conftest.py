"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at TEST_DATABASE_URL (in-memory SQLite unless overridden).
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Users, groups and memberships have no HTTP surface in this service; they
    are seeded straight through the ORM.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)        → user id
  - make_group(app, ...)       → group id (members added in order)
  - actor(user_id)             → {"X-Actor-Id": "<id>"}
  - make_expense(client, ...)  → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.middleware.actor import ACTOR_HEADER


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.

    Delete order respects FK RESTRICT constraints:
      split_entries and expenses go before memberships / groups / users.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM split_entries"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, name: str = "alice", is_admin: bool = False) -> int:
    """Inserts a user and returns its id."""
    from backend.app.models.user import User

    with app.app_context():
        user = User(name=name, email=f"{name}@test.com", is_admin=is_admin)
        _db.session.add(user)
        _db.session.commit()
        return user.id


def make_group(
    app,
    creator_id: int,
    member_ids: list[int],
    name: str = "Trip",
    currency: str = "EUR",
) -> int:
    """Inserts a group with the given members (in join order) and returns its id."""
    from backend.app.models.group import Group
    from backend.app.models.membership import Membership

    with app.app_context():
        group = Group(name=name, currency=currency, creator_user_id=creator_id)
        _db.session.add(group)
        _db.session.flush()
        for uid in member_ids:
            _db.session.add(Membership(user_id=uid, group_id=group.id))
            _db.session.flush()
        _db.session.commit()
        return group.id


def add_member(app, group_id: int, user_id: int) -> None:
    from backend.app.models.membership import Membership

    with app.app_context():
        _db.session.add(Membership(user_id=user_id, group_id=group_id))
        _db.session.commit()


def actor(user_id: int) -> dict:
    """Returns the acting-user header dict for use in test requests."""
    return {ACTOR_HEADER: str(user_id)}


def make_expense(
    client,
    group_id: int,
    payer_id: int,
    total: str,
    split_detail: list[dict] | None = None,
    name: str = "Test Expense",
    split_type: str = "manual",
    date: str | None = None,
):
    """
    Creates an expense and returns the HTTP response.
    For split_type='equal', do not pass split_detail (the server computes it).
    For split_type='manual', pass split_detail as a list of {user_id, amount} dicts.
    """
    payload: dict = {
        "name": name,
        "total": total,
        "payer_id": payer_id,
        "split_type": split_type,
    }
    if split_detail is not None:
        payload["split_detail"] = split_detail
    if date is not None:
        payload["date"] = date

    return client.post(f"/api/v1/groups/{group_id}/expenses", json=payload)


def seed_trip(app) -> dict:
    """
    alice, bob and carol in one group; dave exists outside it; root is an
    administrator in no group.
    """
    alice = make_user(app, "alice")
    bob = make_user(app, "bob")
    carol = make_user(app, "carol")
    dave = make_user(app, "dave")
    root = make_user(app, "root", is_admin=True)
    group = make_group(app, alice, [alice, bob, carol])
    return {
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "dave": dave,
        "root": root,
        "group": group,
    }
