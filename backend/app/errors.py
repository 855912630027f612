"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - 401 (no acting user supplied) and 403 (acting user not allowed) are
    never conflated.

The AppError subclasses below name the failure categories of the expense
engine. Each carries a default code and HTTP status; call sites may narrow
the code (e.g. NotFoundError with GROUP_NOT_FOUND vs EXPENSE_NOT_FOUND).
"""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field    # which request field caused the error
        self.details     = details  # structured extras for the caller

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_ID                 = "INVALID_ID"
    INVALID_INPUT              = "INVALID_INPUT"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"
    VALIDATION_ERROR           = "VALIDATION_ERROR"

    # ── Split Errors (400) ─────────────────────────────────────────────────
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    EMPTY_GROUP                = "EMPTY_GROUP"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    PARTICIPANT_NOT_FOUND      = "PARTICIPANT_NOT_FOUND"

    # ── Actor Errors ───────────────────────────────────────────────────────
    # 401 = the request did not say who is acting
    # 403 = we know who is acting, but they are not allowed
    ACTOR_MISSING              = "ACTOR_MISSING"          # 401
    ACTOR_INVALID              = "ACTOR_INVALID"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"       # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # A participant was removed from an equal split. The remaining shares are
    # untouched, so the split no longer covers every group member; a later
    # total change re-divides it over the whole group again.
    EQUAL_SPLIT_PARTIAL = "EQUAL_SPLIT_PARTIAL"


# ── Domain error types ─────────────────────────────────────────────────────

class InvalidInputError(AppError):
    """Malformed or missing required input."""

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.INVALID_INPUT,
            field: str | None = None,
    ) -> None:
        super().__init__(code, message, 400, field=field)


class EntityValidationError(AppError):
    """A persisted-entity constraint would be violated (e.g. total < 0)."""

    def __init__(self, message: str, fields: dict | None = None) -> None:
        super().__init__(
            ErrorCode.VALIDATION_ERROR,
            message,
            400,
            details={"fields": fields} if fields else None,
        )


class NotFoundError(AppError):

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(code, message, 404, field=field)


class NotAuthorizedError(AppError):

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class SplitMismatchError(AppError):
    """Split amounts do not add up to the expense total within tolerance."""

    def __init__(self, computed_sum: Decimal, expected_total: Decimal) -> None:
        super().__init__(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({computed_sum:.2f}) do not match "
            f"the expense total ({expected_total:.2f}).",
            400,
            field="split_detail",
            details={
                "computed_sum":   str(computed_sum),
                "expected_total": str(expected_total),
            },
        )
        self.computed_sum = computed_sum
        self.expected_total = expected_total


class NonMemberError(AppError):
    """A referenced user is not a member of the expense's group."""

    def __init__(
            self,
            user_id: int,
            group_id: int | None = None,
            code: str = ErrorCode.SPLIT_USER_NOT_MEMBER,
            field: str = "split_detail",
            http_status: int = 400,
    ) -> None:
        where = f"group {group_id}" if group_id is not None else "the group"
        super().__init__(
            code,
            f"User {user_id} is not a member of {where}.",
            http_status,
            field=field,
            details={"user_id": user_id},
        )
        self.user_id = user_id


class EmptyGroupError(InvalidInputError):
    """An equal split was requested over a group with no members."""

    def __init__(self, message: str = "The group has no members to divide the expense among.") -> None:
        super().__init__(message, code=ErrorCode.EMPTY_GROUP)
