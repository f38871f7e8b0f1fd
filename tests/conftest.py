"""
Shared pytest fixtures for the Project Workspace Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project / other_project: Pre-created Project rows
"""

import pytest

from workspace_hub import create_app
from workspace_hub.models import db as _db
from workspace_hub.models.project import Project


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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


def _create_project(title, **kw):
    project = Project(title=title, owner_id=kw.pop("owner_id", 1), **kw)
    _db.session.add(project)
    _db.session.commit()
    return project


@pytest.fixture()
def project():
    """A committed Project with no workspace yet."""
    return _create_project("Analytics revamp", budget_currency="USD")


@pytest.fixture()
def other_project():
    """A second project, used for cross-workspace isolation checks."""
    return _create_project("Brand refresh", owner_id=2)
