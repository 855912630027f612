"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape, 400):
      - Field types, lengths, enum values
      - total > 0, split amounts >= 0
      - split_detail ignored (dropped on load) for split_type='equal'
      - split_detail required for split_type='manual'
      - DUPLICATE_SPLIT_USER
      - remove_participant_id is exclusive with every other PATCH field
      - payer_id / group_id cannot be sent on PATCH (unknown fields are rejected)
  - services/expense_service.py and services/split_calculator.py:
      - sum of split_detail within 0.01 of total (SPLIT_SUM_MISMATCH)
      - payer and split users are group members (needs a group lookup)
      - payer / admin authorization (needs the stored expense)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.models.expense import SplitType


def _validate_positive_total(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("total must be greater than zero.")


def _validate_non_negative_amount(value: Decimal) -> None:
    if value < Decimal("0"):
        raise ValidationError("amount must not be negative.")


def _validate_non_empty_after_trim(value: str) -> None:
    """
    validate.Length(min=1) lets "   " through; the DB CHECK on TRIM(name)
    would then fail. Reject it here instead.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _check_duplicate_users(split_detail: list[dict]) -> None:
    user_ids = [s["user_id"] for s in split_detail]
    if len(user_ids) != len(set(user_ids)):
        raise ValidationError({"split_detail": [ErrorCode.DUPLICATE_SPLIT_USER]})


# ── Sub-schema: one entry in the `split_detail` array ─────────────────────

class SplitEntryInputSchema(Schema):
    """
    A single {user_id, amount} share.

    Membership of user_id is checked by the split calculator, not here.
    """

    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        allow_nan=False,
        validate=_validate_non_negative_amount,
    )


_name_field = dict(
    validate=[
        validate.Length(
            min=1,
            max=255,
            error="name must be between 1 and 255 characters.",
        ),
        _validate_non_empty_after_trim,
    ],
)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    split_type behaviour:
      - 'equal'  → the service divides total over every current group
                   member; a split_detail sent with it is dropped.
      - 'manual' → split_detail required; the service checks the sum and
                   membership.
    """

    name = fields.Str(required=True, **_name_field)

    total = fields.Decimal(
        required=True,
        allow_nan=False,
        validate=_validate_positive_total,
    )

    payer_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="payer_id must be a positive integer."),
    )

    split_type = fields.Enum(
        SplitType,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    split_detail = fields.List(
        fields.Nested(SplitEntryInputSchema),
        load_default=None,
    )

    # Defaults to "now" in the service when absent.
    date = fields.DateTime(load_default=None)

    @validates_schema
    def validate_split_coherence(self, data: dict, **kwargs) -> None:
        split_type = data.get("split_type")
        split_detail = data.get("split_detail")

        if split_type == SplitType.MANUAL:
            if not split_detail:
                raise ValidationError(
                    {"split_detail": ["split_detail is required when split_type is 'manual'."]}
                )
            _check_duplicate_users(split_detail)

    @post_load
    def drop_detail_for_equal(self, data: dict, **kwargs) -> dict:
        if data.get("split_type") == SplitType.EQUAL:
            data["split_detail"] = None
        return data


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id

    Either a participant removal:
        {"remove_participant_id": 7}
    or a general update with any of name, date, total, split_type,
    split_detail. The two cannot be mixed in one request.

    payer_id and group_id are not fields of this schema; sending them is
    rejected as an unknown field, which keeps both immutable.
    """

    remove_participant_id = fields.Int(
        required=False,
        strict=True,
        validate=validate.Range(min=1, error="remove_participant_id must be a positive integer."),
    )

    name = fields.Str(required=False, **_name_field)

    total = fields.Decimal(
        required=False,
        allow_nan=False,
        validate=_validate_positive_total,
    )

    split_type = fields.Enum(
        SplitType,
        required=False,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    split_detail = fields.List(
        fields.Nested(SplitEntryInputSchema),
        required=False,
    )

    date = fields.DateTime(required=False)

    @validates_schema
    def validate_patch_coherence(self, data: dict, **kwargs) -> None:
        """
        Rule A: remove_participant_id stands alone.
        Rule B: split_type='manual' requires split_detail.
        Rule C: no user_id twice in split_detail, unless split_type='equal'
                drops it on load.
        """
        if "remove_participant_id" in data:
            others = sorted(k for k in data if k != "remove_participant_id")
            if others:
                raise ValidationError(
                    {
                        "remove_participant_id": [
                            "remove_participant_id cannot be combined with "
                            f"other changes ({', '.join(others)})."
                        ],
                    }
                )
            return

        split_type = data.get("split_type")
        split_detail = data.get("split_detail")

        if split_type == SplitType.MANUAL and not split_detail:
            raise ValidationError(
                {"split_detail": ["split_detail must be provided when split_type is 'manual'."]}
            )

        if split_detail is not None and split_type != SplitType.EQUAL:
            _check_duplicate_users(split_detail)

    @post_load
    def drop_detail_for_equal(self, data: dict, **kwargs) -> dict:
        if data.get("split_type") == SplitType.EQUAL:
            data.pop("split_detail", None)
        return data
