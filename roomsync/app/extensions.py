"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so it can be imported
anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever a model or route needs it.

    from roomsync.app.extensions import db

Services never import `db`; they receive a Session (db.session) from the
route, which keeps them usable from the CLI and from unit tests with a fake.

Validation schemas (app/schemas/) inherit from marshmallow.Schema directly so
unit tests can instantiate them without a Flask application context.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
