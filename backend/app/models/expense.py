"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `total` uses Numeric — never Float. It is > 0 at creation and may be
    reduced to 0 (never below) by participant removal, so the DB CHECK is
    `total >= 0`; the "> 0 at creation" rule lives in the service.
  - `payer_id` and `group_id` are immutable after creation; no service path
    writes them after the row exists.
  - `date` is the user-facing expense date (defaults to creation time);
    listings sort on it.
  - The split-sum invariant is NOT enforced here. The expense service calls
    split_calculator.check_split_matches_total() before every flush.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Defined here so they can be imported by schemas and services without
# repeating string literals.

class SplitType(str, enum.Enum):
    EQUAL  = "equal"
    MANUAL = "manual"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'manual'), not names ('MANUAL')."""
    return [member.value for member in enum_cls]


# Storage precision for monetary columns. Equal shares such as 10 / 3 are
# computed exactly and land here rounded to 4 places.
MONEY = Numeric(14, 4)


# ── Model ──────────────────────────────────────────────────────────────────

class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_expenses_total_non_negative"),
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_expenses_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE RESTRICT: cannot delete a group that has expenses.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    total: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )

    # ON DELETE RESTRICT: cannot delete a user who has paid expenses.
    payer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set on every successful update.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="expenses_paid",
        foreign_keys=[payer_id],
    )

    # Split entries are owned by their expense.
    split_detail: Mapped[list["SplitEntry"]] = relationship(  # noqa: F821
        "SplitEntry",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="SplitEntry.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"total={self.total} "
            f"split_type={self.split_type}>"
        )
