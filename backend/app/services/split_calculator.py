"""
services/split_calculator.py — Dividing an expense total among participants.

Pure functions: no session, no Flask, no directory lookups. Callers hand in
the total, the split data, and the group's current member ids.

Numeric policy:
  - All arithmetic is Decimal. Inputs arriving as int / str / float are
    normalised through str() so 0.1 stays 0.1.
  - Equal shares are total / n cut down to MONEY_QUANTUM, the scale of the
    stored columns. The leftover goes to the first member, so the shares add
    up to the total exactly (10 / 3 → 3.3334, 3.3333, 3.3333).
  - A split "matches" its total when |sum - total| <= SPLIT_TOLERANCE.
    The tolerance absorbs client-side rounding and is not configurable.

Errors raised (see errors.py):
  InvalidInputError   — total <= 0, empty or malformed entries, duplicate user
  EmptyGroupError     — equal split over zero members
  SplitMismatchError  — sum of entries outside tolerance of the total
  NonMemberError      — an entry names a user outside the group
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Iterable

from backend.app.errors import (
    EmptyGroupError,
    ErrorCode,
    InvalidInputError,
    NonMemberError,
    SplitMismatchError,
)


SPLIT_TOLERANCE = Decimal("0.01")

# Scale of the stored money columns (Numeric(14, 4)).
MONEY_QUANTUM = Decimal("0.0001")


def to_decimal(value, field: str = "amount") -> Decimal:
    """Converts a numeric input to Decimal or raises InvalidInputError."""
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field} must be a number.", field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidInputError(f"{field} must be a number.", field=field)
    if not result.is_finite():
        raise InvalidInputError(f"{field} must be a finite number.", field=field)
    return result


def require_positive_total(total) -> Decimal:
    amount = to_decimal(total, field="total")
    if amount <= 0:
        raise InvalidInputError("The expense total must be greater than zero.", field="total")
    return amount


def split_sum(entries: Iterable[dict]) -> Decimal:
    """Sum of entry amounts as Decimal (Decimal("0") for no entries)."""
    return sum((to_decimal(e["amount"]) for e in entries), Decimal("0"))


def check_split_matches_total(total, entries: list[dict]) -> None:
    """
    The split-sum invariant: a non-empty split must add up to the total
    within SPLIT_TOLERANCE. An empty split is accepted as-is.

    The expense service calls this before every flush of a created or
    updated expense.
    """
    if not entries:
        return
    expected = to_decimal(total, field="total")
    computed = split_sum(entries)
    if abs(computed - expected) > SPLIT_TOLERANCE:
        raise SplitMismatchError(computed_sum=computed, expected_total=expected)


def compute_equal_split(total, member_ids: list[int]) -> list[dict]:
    """
    Divides `total` evenly over every id in `member_ids`.

    Returns one {"user_id", "amount"} dict per member, in member order.
    Amounts are at the stored scale and sum to `total` exactly; the first
    member absorbs the rounding remainder.
    """
    amount = require_positive_total(total)
    if not member_ids:
        raise EmptyGroupError()

    share = (amount / Decimal(len(member_ids))).quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)
    remainder = amount - share * len(member_ids)

    entries = [{"user_id": uid, "amount": share} for uid in member_ids]
    entries[0]["amount"] = share + remainder
    return entries


def compute_manual_split(
        total,
        entries: list[dict] | None,
        member_ids: Iterable[int],
        group_id: int | None = None,
) -> list[dict]:
    """
    Validates caller-supplied shares and returns them normalised.

    Checks run in this order, and the first failure wins:
      (a) every entry has a user_id and a non-negative amount, no user twice
      (b) the amounts add up to `total` within SPLIT_TOLERANCE
      (c) every user_id is a current member of the group
    """
    amount = require_positive_total(total)
    if not entries:
        raise InvalidInputError(
            "A manual split needs at least one entry in split_detail.",
            field="split_detail",
        )

    normalised: list[dict] = []
    seen: set[int] = set()
    for entry in entries:
        user_id = entry.get("user_id") if isinstance(entry, dict) else None
        raw_amount = entry.get("amount") if isinstance(entry, dict) else None
        if user_id is None or raw_amount is None:
            raise InvalidInputError(
                "Each split_detail entry needs a user_id and a non-negative amount.",
                field="split_detail",
            )
        share = to_decimal(raw_amount, field="split_detail")
        if share < 0:
            raise InvalidInputError(
                "Each split_detail entry needs a user_id and a non-negative amount.",
                field="split_detail",
            )
        if user_id in seen:
            raise InvalidInputError(
                f"User {user_id} appears more than once in split_detail.",
                code=ErrorCode.DUPLICATE_SPLIT_USER,
                field="split_detail",
            )
        seen.add(user_id)
        normalised.append({"user_id": user_id, "amount": share})

    check_split_matches_total(amount, normalised)

    members = set(member_ids)
    for entry in normalised:
        if entry["user_id"] not in members:
            raise NonMemberError(entry["user_id"], group_id)

    return normalised
