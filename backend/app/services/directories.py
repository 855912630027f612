"""
services/directories.py — Group and User lookups consumed by the expense engine.

The expense service never queries groups or users itself. It is handed a
GroupDirectory and a UserDirectory at construction time:

  - In the app, SqlGroupDirectory / SqlUserDirectory read through the
    request's SQLAlchemy session.
  - In unit tests, any object with the same methods works (in-memory fakes).

Lookups are made fresh on every call; nothing here caches membership.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.models.user import User


class GroupLike(Protocol):
    id: int
    currency: str

    @property
    def member_ids(self) -> Sequence[int]: ...


class UserLike(Protocol):
    id: int
    is_admin: bool


class GroupDirectory(Protocol):

    def find_group_by_id(self, group_id: int) -> GroupLike | None: ...

    def find_groups_by_member(self, user_id: int) -> list[GroupLike]: ...


class UserDirectory(Protocol):

    def find_user_by_id(self, user_id: int) -> UserLike | None: ...


# ── SQLAlchemy-backed implementations ──────────────────────────────────────

class SqlGroupDirectory:

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_group_by_id(self, group_id: int) -> Group | None:
        return self.session.get(Group, group_id)

    def find_groups_by_member(self, user_id: int) -> list[Group]:
        stmt = (
            select(Group)
            .join(Membership, Membership.group_id == Group.id)
            .where(Membership.user_id == user_id)
            .order_by(Group.id)
        )
        return list(self.session.execute(stmt).scalars().all())


class SqlUserDirectory:

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_user_by_id(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)
