"""
Shared pytest fixtures for the Formula Contract PM test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for User rows
    - pm_user / admin_user / client_user / production_user: User rows
    - project: Project with the client user assigned
    - make_scope_item: factory for ScopeItem rows
    - pm / admin / client_actor / production_actor: Actor values
"""

import pytest

from fcpm import create_app
from fcpm.models import db as _db
from fcpm.models.auth import ProjectAssignment, User
from fcpm.models.project import Project, ScopeItem
from fcpm.services.approval_service import Actor


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


# ── ORM helpers ──────────────────────────────────────────────────────────


def _make_user(name, role, email=None, is_active=True) -> User:
    user = User(name=name, role=role, email=email, is_active=is_active)
    _db.session.add(user)
    _db.session.commit()
    return user


def _make_project(code="FC-001", name="Hilton Ankara Lobby", client_users=()) -> Project:
    project = Project(project_code=code, name=name)
    _db.session.add(project)
    _db.session.flush()
    for user in client_users:
        _db.session.add(ProjectAssignment(project_id=project.id, user_id=user.id))
    _db.session.commit()
    return project


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: ``make_user("Name", "client", email=...)`` → committed User."""
    return _make_user


@pytest.fixture()
def pm_user():
    return _make_user("Pelin PM", "pm", email="pm@formula.test")


@pytest.fixture()
def admin_user():
    return _make_user("Ada Admin", "admin", email="admin@formula.test")


@pytest.fixture()
def client_user():
    return _make_user("Cem Client", "client", email="client@hotel.test")


@pytest.fixture()
def production_user():
    return _make_user("Deniz Production", "production")


@pytest.fixture()
def project(client_user):
    return _make_project(client_users=[client_user])


@pytest.fixture()
def make_scope_item(project):
    """Factory: ``make_scope_item("CAB-01")`` → committed ScopeItem in ``project``."""
    counter = {"n": 0}

    def _make(item_code=None, status="pending", project_id=None):
        counter["n"] += 1
        item = ScopeItem(
            project_id=project_id or project.id,
            item_code=item_code or f"ITEM-{counter['n']:02d}",
            name=f"Scope item {counter['n']}",
            status=status,
        )
        _db.session.add(item)
        _db.session.commit()
        return item

    return _make


@pytest.fixture()
def scope_item(make_scope_item):
    return make_scope_item("CAB-01")


@pytest.fixture()
def pm(pm_user):
    return Actor(id=pm_user.id, role="pm")


@pytest.fixture()
def admin(admin_user):
    return Actor(id=admin_user.id, role="admin")


@pytest.fixture()
def client_actor(client_user):
    return Actor(id=client_user.id, role="client")


@pytest.fixture()
def production_actor(production_user):
    return Actor(id=production_user.id, role="production")
