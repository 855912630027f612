"""
tests/unit/conftest.py — In-memory collaborators for expense engine unit tests.

Unit tests never build the Flask app. The engine gets:
  - a plain SQLAlchemy Session on an in-memory SQLite engine, holding only
    the expense tables' rows (SQLite does not enforce the FKs to users/groups);
  - FakeGroupDirectory / FakeUserDirectory in place of the SQL lookups.

Group membership can be changed mid-test by mutating FakeGroup.member_ids,
which is how "members at the time of the update" cases are expressed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from backend.app.extensions import db
from backend.app.models import expense, group, membership, split_entry, user  # noqa: F401
from backend.app.services.expense_service import ExpenseService


@dataclass
class FakeGroup:
    id: int
    member_ids: list[int] = field(default_factory=list)
    currency: str = "EUR"


@dataclass
class FakeUser:
    id: int
    is_admin: bool = False


class FakeGroupDirectory:

    def __init__(self, groups: list[FakeGroup] | None = None) -> None:
        self.groups = {g.id: g for g in groups or []}

    def find_group_by_id(self, group_id: int) -> FakeGroup | None:
        return self.groups.get(group_id)

    def find_groups_by_member(self, user_id: int) -> list[FakeGroup]:
        return [g for g in self.groups.values() if user_id in g.member_ids]


class FakeUserDirectory:

    def __init__(self, users: list[FakeUser] | None = None) -> None:
        self.users = {u.id: u for u in users or []}

    def find_user_by_id(self, user_id: int) -> FakeUser | None:
        return self.users.get(user_id)


# Users 1-3 are A, B, C; 9 is an administrator outside every group;
# 4 exists but belongs to no group.
ALICE, BOB, CAROL, DAVE, ADMIN = 1, 2, 3, 4, 9


@pytest.fixture()
def session():
    engine = create_engine("sqlite://")
    db.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    engine.dispose()


@pytest.fixture()
def trip_group() -> FakeGroup:
    return FakeGroup(id=1, member_ids=[ALICE, BOB, CAROL])


@pytest.fixture()
def groups(trip_group) -> FakeGroupDirectory:
    return FakeGroupDirectory([trip_group, FakeGroup(id=2, member_ids=[ALICE, DAVE])])


@pytest.fixture()
def users() -> FakeUserDirectory:
    return FakeUserDirectory([
        FakeUser(ALICE),
        FakeUser(BOB),
        FakeUser(CAROL),
        FakeUser(DAVE),
        FakeUser(ADMIN, is_admin=True),
    ])


@pytest.fixture()
def service(session, groups, users) -> ExpenseService:
    return ExpenseService(session, groups=groups, users=users)
