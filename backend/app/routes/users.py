"""
routes/users.py — Per-user read routes.

Endpoints (base url_prefix=/api/v1/users):
  GET /users/:id/expenses → 200  expenses across all of the user's groups
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from backend.app.extensions import db
from backend.app.routes.expenses import parse_id, serialize_expense
from backend.app.services.expense_service import build_expense_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/<user_id>/expenses", methods=["GET"])
def list_user_expenses(user_id: str):
    """GET /users/:id/expenses — Expenses of every group the user belongs to, newest first."""
    uid = parse_id(user_id, "user_id")
    expenses = build_expense_service(db.session).list_user_expenses(uid)
    return jsonify({
        "data": [serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200
