"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the group-scoped paths (/groups/:id/expenses) and the
expense-ID paths (/expenses/:id).

Layer rules:
  - Parse, validate, call ONE service method, commit, return envelope.
  - No business logic. No DB queries.
  - serialize_expense() is a pure data-shape helper — not business logic.

Endpoints:
  POST   /groups/:id/expenses   → 201  create expense
  GET    /groups/:id/expenses   → 200  list a group's expenses, newest first
  GET    /expenses              → 200  list every expense (admin actor)
  GET    /expenses/:id          → 200  get expense + split detail
  PATCH  /expenses/:id          → 200  update or remove a participant (actor)
  DELETE /expenses/:id          → 200  delete permanently (actor)
"""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, g, jsonify, request

from backend.app.errors import ErrorCode, InvalidInputError
from backend.app.extensions import db
from backend.app.middleware.actor import ACTOR_BODY_FIELD, require_actor
from backend.app.models.expense import Expense
from backend.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from backend.app.services.expense_service import build_expense_service

expenses_bp = Blueprint("expenses", __name__)


# ── Request helpers ────────────────────────────────────────────────────────

def parse_id(raw: str, field: str) -> int:
    """Path ids are taken as strings so a malformed one is a 400, not a 404."""
    if raw.isdigit() and int(raw) > 0:
        return int(raw)
    raise InvalidInputError(
        f"{field} must be a positive integer.",
        code=ErrorCode.INVALID_ID,
        field=field,
    )


def _request_payload() -> dict:
    """JSON body without the actor field, which is not part of any schema."""
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        return body if body is not None else {}
    return {k: v for k, v in body.items() if k != ACTOR_BODY_FIELD}


# ── Serialization helper ───────────────────────────────────────────────────
# Pure data-shaping: no DB access beyond loaded relationships.

def _money(value: Decimal) -> str:
    """Amounts as strings with at least two decimal places: "10.00", "3.3333"."""
    text = f"{value:.4f}".rstrip("0")
    whole, _, frac = text.partition(".")
    return f"{whole}.{frac.ljust(2, '0')}"


def serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "group": {
            "id": expense.group_id,
            "name": expense.group.name,
            "currency": expense.group.currency,
        },
        "name": expense.name,
        "total": _money(expense.total),
        "payer": {
            "id": expense.payer_id,
            "name": expense.payer.name,
        },
        "date": expense.date.isoformat(),
        "split_type": expense.split_type.value,
        "split_detail": [
            {
                "user_id": s.user_id,
                "name": s.user.name,
                "amount": _money(s.amount),
            }
            for s in expense.split_detail
        ],
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
    }


# ── Group-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/groups/<group_id>/expenses", methods=["POST"])
def create_expense(group_id: str):
    """
    POST /groups/:id/expenses — Record a new expense.
    Handles both 'equal' (server computes the split) and 'manual' types.
    """
    gid = parse_id(group_id, "group_id")
    data = CreateExpenseSchema().load(_request_payload())
    expense = build_expense_service(db.session).create_expense(gid, data)
    db.session.commit()
    return jsonify({"data": serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<group_id>/expenses", methods=["GET"])
def list_group_expenses(group_id: str):
    """GET /groups/:id/expenses — All expenses of a group, most recent date first."""
    gid = parse_id(group_id, "group_id")
    expenses = build_expense_service(db.session).list_group_expenses(gid)
    return jsonify({
        "data": [serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses", methods=["GET"])
@require_actor
def list_all_expenses():
    """GET /expenses — Every expense in the system. Administrators only."""
    expenses = build_expense_service(db.session).list_all_expenses(g.actor_id)
    return jsonify({
        "data": [serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("/expenses/<expense_id>", methods=["GET"])
def get_expense(expense_id: str):
    """GET /expenses/:id — Expense detail including the split."""
    eid = parse_id(expense_id, "expense_id")
    expense = build_expense_service(db.session).get_expense(eid)
    return jsonify({"data": serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<expense_id>", methods=["PATCH"])
@require_actor
def update_expense(expense_id: str):
    """
    PATCH /expenses/:id — General update, or removal of one participant.
    Only the payer or an administrator may edit.
    """
    eid = parse_id(expense_id, "expense_id")
    data = PatchExpenseSchema().load(_request_payload())
    expense, warnings = build_expense_service(db.session).update_expense(
        eid,
        g.actor_id,
        data,
    )
    db.session.commit()
    return jsonify({"data": serialize_expense(expense), "warnings": warnings}), 200


@expenses_bp.route("/expenses/<expense_id>", methods=["DELETE"])
@require_actor
def delete_expense(expense_id: str):
    """
    DELETE /expenses/:id — Permanently remove the expense and its split.
    Only the payer or an administrator may delete.
    """
    eid = parse_id(expense_id, "expense_id")
    build_expense_service(db.session).delete_expense(eid, g.actor_id)
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": eid,
        },
        "warnings": [],
    }), 200
