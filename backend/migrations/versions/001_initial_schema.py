"""Initial schema — all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum type split_type_enum
  2. Tables in FK dependency order (users → groups → memberships → expenses
     → split_entries)
  3. Indexes

ON DELETE policies:
  groups.creator_user_id   → RESTRICT
  memberships.*            → RESTRICT  (cannot delete user/group with members)
  expenses.*               → RESTRICT  (a group with expenses cannot be deleted)
  split_entries.expense_id → CASCADE   (entries owned by their expense)
  split_entries.user_id    → RESTRICT

The split-sum rule (entries add up to the total within 0.01) is NOT a DB
trigger: participant removal legitimately skips it, and the service checks
it explicitly before every other write.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration: no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    """
    Apply the full initial schema.

    The enum type is created via op.execute() so the exact SQL is explicit;
    the column then references it with create_type=False.
    """

    # ── Step 1: PostgreSQL enum type ──────────────────────────────────────

    op.execute("CREATE TYPE split_type_enum AS ENUM ('equal', 'manual')")

    # ── Step 2: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "is_admin",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_users_name_nonempty",
        ),
    )

    # ── Step 3: groups ─────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "currency",
            sa.String(3),
            nullable=False,
            server_default=sa.text("'EUR'"),
        ),
        sa.Column(
            "creator_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_creator"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    # ── Step 4: memberships ────────────────────────────────────────────────

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    # ── Step 5: expenses ───────────────────────────────────────────────────

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_expenses_group"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("total", sa.Numeric(14, 4), nullable=False),
        sa.Column(
            "payer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expenses_payer"),
            nullable=False,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "split_type",
            postgresql.ENUM(name="split_type_enum", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("total >= 0", name="ck_expenses_total_non_negative"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_expenses_name_nonempty",
        ),
    )

    # ── Step 6: split_entries ──────────────────────────────────────────────

    op.create_table(
        "split_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_split_entries_expense"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_split_entries_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 4), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_split_entries"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_split_entries_expense_user"),
        sa.CheckConstraint("amount >= 0", name="ck_split_entries_amount_non_negative"),
    )

    # ── Step 7: indexes ────────────────────────────────────────────────────

    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    op.create_index("ix_expenses_date", "expenses", ["date"])
    op.create_index("ix_split_entries_expense_id", "split_entries", ["expense_id"])


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_index("ix_split_entries_expense_id", table_name="split_entries")
    op.drop_index("ix_expenses_date", table_name="expenses")
    op.drop_index("ix_expenses_group_id", table_name="expenses")
    op.drop_index("ix_memberships_group_id", table_name="memberships")
    op.drop_index("ix_memberships_user_id", table_name="memberships")

    op.drop_table("split_entries")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS split_type_enum")
