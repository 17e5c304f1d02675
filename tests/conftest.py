"""
Shared pytest fixtures for the Workhub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for User rows
    - auth_headers: Bearer header factory for a user
    - owner / workspace: a workspace owned by ``owner``
    - add_member: put a new user into ``workspace`` with a role
"""

import pytest

from workhub import create_app
from workhub.models import db as _db
from workhub.models.user import User
from workhub.services import workspace_service
from workhub.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: ``make_user("alice")`` -> User alice@example.com."""

    def _make(handle, global_role="user", is_active=True):
        user = User(
            email=f"{handle}@example.com",
            name=handle.capitalize(),
            global_role=global_role,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_headers(app):
    def _headers(user):
        with app.app_context():
            token = generate_access_token(user.id, user.global_role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def owner(make_user):
    return make_user("owner")


@pytest.fixture()
def workspace(owner):
    return workspace_service.create_workspace(owner.id, {"name": "Acme", "description": "Test ws"})


@pytest.fixture()
def add_member(make_user, workspace):
    """Factory: ``add_member("bob", "lead")`` -> User bob in ``workspace``."""

    def _add(handle, role="member"):
        user = make_user(handle)
        workspace_service.add_member(workspace.id, user.id, role)
        _db.session.commit()
        return user

    return _add
