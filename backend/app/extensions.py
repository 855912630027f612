"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from backend.app.extensions import db, ma

Do not pass the app object directly to SQLAlchemy() or Marshmallow() at
import time — that would prevent running tests with a separate app instance.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Marshmallow instance, attached to the app in the factory.
#
# Schema inheritance rule:
#   Request schemas in app/schemas/ inherit from marshmallow.Schema directly,
#   NOT from ma.Schema. ma.Schema needs an application context and the unit
#   tests in tests/unit/ run without a Flask app.
#
#   Correct:
#       from marshmallow import Schema, fields
#       class CreateExpenseSchema(Schema): ...
#
#   Incorrect:
#       class CreateExpenseSchema(ma.Schema): ...   # breaks unit tests
ma = Marshmallow()
