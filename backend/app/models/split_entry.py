"""
models/split_entry.py — SplitEntry table definition (one row per participant).

Key design points:
  - `amount` uses Numeric — never Float. Zero shares are allowed.
  - expense_id is ON DELETE CASCADE — entries are owned by their expense.
  - user_id is ON DELETE RESTRICT — cannot delete a user who has entries.
  - UNIQUE(expense_id, user_id): a user appears at most once per expense
    (also rejected as DUPLICATE_SPLIT_USER before it reaches the DB).
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.expense import MONEY


class SplitEntry(db.Model):
    __tablename__ = "split_entries"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_split_entries_expense_user"),
        CheckConstraint("amount >= 0", name="ck_split_entries_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="split_detail",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="split_entries",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SplitEntry id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"amount={self.amount}>"
        )
