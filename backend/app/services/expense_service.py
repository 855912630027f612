"""
services/expense_service.py — Expense reconciliation engine.

ExpenseService creates, mutates and deletes expenses and keeps every
expense's split consistent with its total.

Collaborators (injected at construction):
  session — SQLAlchemy session that owns Expense / SplitEntry rows.
  groups  — GroupDirectory: find_group_by_id, find_groups_by_member.
  users   — UserDirectory:  find_user_by_id.

Invariants enforced here:
  - total > 0 at creation and on every explicit total change
    (participant removal may bring it down to 0, never below).
  - A non-empty split adds up to the total within 0.01; checked by
    split_calculator.check_split_matches_total() before every flush
    except participant removal, which reduces total and split together.
  - The payer exists and is a member of the group at creation time.
  - payer_id and group_id never change after creation.

Authorization:
  - Update / delete: the payer, or any user with is_admin.
  - List all expenses: administrators only.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and dicts; returns ORM objects or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import (
    EntityValidationError,
    ErrorCode,
    InvalidInputError,
    NonMemberError,
    NotAuthorizedError,
    NotFoundError,
    WarningCode,
)
from backend.app.models.expense import Expense, SplitType
from backend.app.models.split_entry import SplitEntry
from backend.app.services.directories import (
    GroupDirectory,
    GroupLike,
    SqlGroupDirectory,
    SqlUserDirectory,
    UserDirectory,
)
from backend.app.services.split_calculator import (
    check_split_matches_total,
    compute_equal_split,
    compute_manual_split,
    require_positive_total,
)

logger = logging.getLogger(__name__)


_GENERAL_FIELDS = ("name", "date", "total", "split_type", "split_detail")


# ── Private helpers ────────────────────────────────────────────────────────

def _clean_name(raw) -> str:
    """Returns the trimmed name or raises InvalidInputError when blank."""
    name = raw.strip() if isinstance(raw, str) else ""
    if not name:
        raise InvalidInputError("The expense name must not be blank.", field="name")
    return name


def _coerce_split_type(raw) -> SplitType:
    if isinstance(raw, SplitType):
        return raw
    try:
        return SplitType(raw)
    except ValueError:
        raise InvalidInputError(
            "split_type must be 'equal' or 'manual'.",
            code=ErrorCode.INVALID_SPLIT_TYPE,
            field="split_type",
        )


def _entries_of(expense: Expense) -> list[dict]:
    """Current split rows as {user_id, amount} dicts."""
    return [{"user_id": e.user_id, "amount": e.amount} for e in expense.split_detail]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_entity(expense: Expense) -> None:
    """Column rules of a stored expense, checked before every flush."""
    problems: dict[str, list[str]] = {}
    if expense.total is None or expense.total < 0:
        problems["total"] = ["total must not be negative."]
    if not (expense.name or "").strip():
        problems["name"] = ["name must not be blank."]
    if any(e.amount is None or e.amount < 0 for e in expense.split_detail):
        problems["split_detail"] = ["split amounts must not be negative."]
    if problems:
        raise EntityValidationError("The expense is not valid and was not saved.", fields=problems)


class ExpenseService:

    def __init__(
            self,
            session: Session,
            groups: GroupDirectory,
            users: UserDirectory,
    ) -> None:
        self.session = session
        self.groups = groups
        self.users = users

    # ── Lookups ────────────────────────────────────────────────────────────

    def _get_group_or_404(self, group_id: int, message: str | None = None) -> GroupLike:
        group = self.groups.find_group_by_id(group_id)
        if group is None:
            raise NotFoundError(
                ErrorCode.GROUP_NOT_FOUND,
                message or f"Group {group_id} does not exist.",
            )
        return group

    def _get_user_or_404(self, user_id: int, field: str | None = None):
        user = self.users.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} does not exist.",
                field=field,
            )
        return user

    def _get_expense_or_404(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if expense is None:
            raise NotFoundError(
                ErrorCode.EXPENSE_NOT_FOUND,
                f"Expense {expense_id} does not exist.",
            )
        return expense

    def _require_payer_or_admin(self, expense: Expense, actor_id: int, action: str) -> None:
        """Raises NotAuthorizedError unless actor_id is the payer or an admin."""
        if actor_id == expense.payer_id:
            return
        actor = self.users.find_user_by_id(actor_id)
        if actor is not None and actor.is_admin:
            return
        raise NotAuthorizedError(
            f"Only the payer or an administrator may {action} this expense."
        )

    # ── Split helpers ──────────────────────────────────────────────────────

    def _compute_split(
            self,
            split_type: SplitType,
            total: Decimal,
            split_detail: list[dict] | None,
            group: GroupLike,
    ) -> list[dict]:
        """
        Runs the split calculator for `split_type` against the group's current
        members. An equal split is always computed; any split_detail sent with
        it is ignored.
        """
        if split_type == SplitType.EQUAL:
            return compute_equal_split(total, list(group.member_ids))
        return compute_manual_split(total, split_detail, group.member_ids, group_id=group.id)

    def _replace_split_detail(self, expense: Expense, entries: list[dict]) -> None:
        """Swaps the expense's split rows for `entries`."""
        expense.split_detail.clear()
        # Old rows must be gone before the new ones hit UNIQUE(expense_id, user_id).
        self.session.flush()
        expense.split_detail.extend(
            SplitEntry(user_id=e["user_id"], amount=e["amount"]) for e in entries
        )

    # ── Public operations ──────────────────────────────────────────────────

    def create_expense(self, group_id: int, data: dict) -> Expense:
        """
        Records a new expense for a group.

        Args:
            group_id: The group this expense belongs to.
            data:     name, total, payer_id, split_type, and optionally
                      split_detail (manual splits) and date.

        Checks, in order: name, total, group exists, payer exists, payer is
        a member, split computed and validated.
        """
        name = _clean_name(data.get("name"))
        total = require_positive_total(data.get("total"))
        split_type = _coerce_split_type(data.get("split_type"))
        payer_id = data.get("payer_id")
        if payer_id is None:
            raise InvalidInputError("payer_id is required.", field="payer_id")

        group = self._get_group_or_404(group_id)
        self._get_user_or_404(payer_id, field="payer_id")

        if payer_id not in group.member_ids:
            raise NonMemberError(
                payer_id,
                group.id,
                code=ErrorCode.PAYER_NOT_MEMBER,
                field="payer_id",
                http_status=403,
            )

        entries = self._compute_split(split_type, total, data.get("split_detail"), group)
        check_split_matches_total(total, entries)

        expense = Expense(
            group_id=group.id,
            name=name,
            total=total,
            payer_id=payer_id,
            split_type=split_type,
            date=data.get("date") or _utcnow(),
        )
        expense.split_detail = [
            SplitEntry(user_id=e["user_id"], amount=e["amount"]) for e in entries
        ]
        _validate_entity(expense)
        self.session.add(expense)
        self.session.flush()
        self.session.refresh(expense)

        logger.info(
            "Expense %s created in group %s: total=%s split=%s participants=%d",
            expense.id, group.id, total, split_type.value, len(entries),
        )
        return expense

    def list_group_expenses(self, group_id: int) -> list[Expense]:
        """All expenses of a group, most recent date first."""
        self._get_group_or_404(group_id)
        stmt = (
            select(Expense)
            .where(Expense.group_id == group_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def get_expense(self, expense_id: int) -> Expense:
        return self._get_expense_or_404(expense_id)

    def update_expense(
            self,
            expense_id: int,
            actor_id: int,
            changes: dict,
    ) -> tuple[Expense, list[dict]]:
        """
        Applies one of two mutually exclusive kinds of change.

        Participant removal (`remove_participant_id`):
          Drops that user's entry and lowers the total by the same amount,
          floored at 0. Remaining shares are left as they are; on an equal
          split an EQUAL_SPLIT_PARTIAL warning says the split no longer
          covers the whole group.

        General update (any of name, date, total, split_type, split_detail):
          - total alone on an equal expense re-divides the new total over the
            group's current members.
          - split_type re-runs the split calculator for that type against the
            (possibly new) total, exactly as on create.
          - split_detail is re-validated on manual expenses and ignored on
            equal ones, whose shares always come from the group.
          Every resulting state is checked against the split-sum invariant
          before anything is written.

        Returns:
            (expense, warnings) — warnings is a list of {"code", "message"} dicts.
        """
        expense = self._get_expense_or_404(expense_id)
        self._require_payer_or_admin(expense, actor_id, "edit")

        remove_id = changes.get("remove_participant_id")
        if remove_id is not None:
            if any(changes.get(f) is not None for f in _GENERAL_FIELDS):
                raise InvalidInputError(
                    "remove_participant_id cannot be combined with other changes.",
                    field="remove_participant_id",
                )
            warnings = self._remove_participant(expense, remove_id)
        else:
            self._apply_general_update(expense, changes)
            warnings = []

        _validate_entity(expense)
        expense.updated_at = _utcnow()
        self.session.flush()
        self.session.refresh(expense)
        return expense, warnings

    def _remove_participant(self, expense: Expense, user_id: int) -> list[dict]:
        entry = next((e for e in expense.split_detail if e.user_id == user_id), None)
        if entry is None:
            raise NotFoundError(
                ErrorCode.PARTICIPANT_NOT_FOUND,
                f"User {user_id} is not a participant in expense {expense.id}.",
                field="remove_participant_id",
            )

        removed = entry.amount
        expense.total = max(expense.total - removed, Decimal("0"))
        expense.split_detail.remove(entry)

        logger.info(
            "Removed user %s from expense %s: -%s, total now %s",
            user_id, expense.id, removed, expense.total,
        )

        warnings: list[dict] = []
        if expense.split_type == SplitType.EQUAL:
            logger.warning(
                "Expense %s is labelled equal but no longer covers user %s",
                expense.id, user_id,
            )
            warnings.append({
                "code": WarningCode.EQUAL_SPLIT_PARTIAL,
                "message": (
                    "The remaining participants keep their previous shares and the "
                    "split no longer covers every group member. Changing the total "
                    "later re-divides it over the whole group."
                ),
            })
        return warnings

    def _apply_general_update(self, expense: Expense, changes: dict) -> None:
        # Resolve the complete new state first; write only once it is valid.
        name = _clean_name(changes["name"]) if changes.get("name") is not None else None
        new_total = require_positive_total(changes["total"]) if changes.get("total") is not None else None
        new_type = (
            _coerce_split_type(changes["split_type"])
            if changes.get("split_type") is not None
            else None
        )
        split_type = new_type or expense.split_type
        # Equal shares always come from the group; a sent split_detail is ignored.
        new_detail = changes.get("split_detail") if split_type == SplitType.MANUAL else None

        total = new_total if new_total is not None else expense.total
        entries: list[dict] | None = None   # None = keep the current rows

        if (
            new_type is not None
            or new_detail is not None
            or (new_total is not None and split_type == SplitType.EQUAL)
        ):
            group = self._get_group_or_404(
                expense.group_id,
                f"Group {expense.group_id} of expense {expense.id} no longer exists.",
            )
            entries = self._compute_split(split_type, total, new_detail, group)

        check_split_matches_total(total, entries if entries is not None else _entries_of(expense))

        if name is not None:
            expense.name = name
        if changes.get("date") is not None:
            expense.date = changes["date"]
        expense.total = total
        expense.split_type = split_type
        if entries is not None:
            self._replace_split_detail(expense, entries)

        logger.info(
            "Expense %s updated: fields=%s",
            expense.id, sorted(k for k in _GENERAL_FIELDS if changes.get(k) is not None),
        )

    def delete_expense(self, expense_id: int, actor_id: int) -> None:
        """Permanently removes an expense and its split rows."""
        expense = self._get_expense_or_404(expense_id)
        self._require_payer_or_admin(expense, actor_id, "delete")

        self.session.delete(expense)
        self.session.flush()
        logger.info("Expense %s deleted by user %s", expense_id, actor_id)

    def list_user_expenses(self, user_id: int) -> list[Expense]:
        """Expenses across every group the user belongs to, most recent date first."""
        self._get_user_or_404(user_id)
        group_ids = [g.id for g in self.groups.find_groups_by_member(user_id)]
        if not group_ids:
            return []

        stmt = (
            select(Expense)
            .where(Expense.group_id.in_(group_ids))
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_all_expenses(self, actor_id: int) -> list[Expense]:
        """Every expense in the system, most recent date first. Administrators only."""
        actor = self.users.find_user_by_id(actor_id)
        if actor is None or not actor.is_admin:
            raise NotAuthorizedError("Only administrators may list every expense.")

        stmt = select(Expense).order_by(Expense.date.desc(), Expense.id.desc())
        return list(self.session.execute(stmt).scalars().all())


def build_expense_service(session: Session) -> ExpenseService:
    """ExpenseService wired to SQL-backed directories sharing `session`."""
    return ExpenseService(
        session,
        groups=SqlGroupDirectory(session),
        users=SqlUserDirectory(session),
    )
