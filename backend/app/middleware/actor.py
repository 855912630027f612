"""
middleware/actor.py — Resolves the acting user for write operations.

The @require_actor decorator:
  1. Reads the acting user id from the X-Actor-Id header, or from
     "actor_id" in the JSON body when the header is absent
  2. Parses it as a positive integer
  3. Attaches it to flask.g.actor_id for the duration of the request
  4. Raises the appropriate 401 AppError if either step fails

Strict responsibility boundary:
  - This middleware only says WHO is acting (401 when nobody is named).
  - It does NOT decide whether that user may act (payer / admin checks).
    That belongs in the service layer (403).
  - Services receive actor_id as a plain integer argument.
  - It is not authentication: verifying identity is left to whatever sits
    in front of this API.

Error codes:
  ACTOR_MISSING (401) — no actor supplied
  ACTOR_INVALID (401) — actor supplied but not a positive integer
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import g, request

from backend.app.errors import AppError, ErrorCode

ACTOR_HEADER = "X-Actor-Id"
ACTOR_BODY_FIELD = "actor_id"


def require_actor(f: Callable) -> Callable:
    """
    Route decorator that requires an acting user id.

    Usage:
        @bp.route("/expenses/<expense_id>", methods=["DELETE"])
        @require_actor
        def delete_expense(expense_id):
            actor_id = g.actor_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _resolve_actor()
        return f(*args, **kwargs)

    return decorated


def _resolve_actor() -> None:
    """
    Performs the lookup and sets flask.g.actor_id.

    Separated from the decorator wrapper so tests can call it directly inside
    a request context.
    """
    raw = request.headers.get(ACTOR_HEADER)

    if raw is None or raw == "":
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            raw = body.get(ACTOR_BODY_FIELD)

    if raw is None or raw == "":
        raise AppError(
            ErrorCode.ACTOR_MISSING,
            f"The acting user is required. Send the {ACTOR_HEADER} header "
            f"or '{ACTOR_BODY_FIELD}' in the request body.",
            401,
        )

    # bool is an int subclass; True must not become user 1.
    if isinstance(raw, bool):
        raw = None
    try:
        actor_id = int(raw)
    except (TypeError, ValueError):
        actor_id = None

    if actor_id is None or actor_id < 1 or (isinstance(raw, float) and not raw.is_integer()):
        raise AppError(
            ErrorCode.ACTOR_INVALID,
            "The acting user id must be a positive integer.",
            401,
        )

    g.actor_id = actor_id
