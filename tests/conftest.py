# tests/conftest.py
import os
import tempfile

# Point the process-wide engine at a scratch file before shopfloor is imported
_SCRATCH_DIR = tempfile.mkdtemp(prefix="shopfloor-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_SCRATCH_DIR, 'app.db')}")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy.orm import sessionmaker

from shopfloor.auth import Caller
from shopfloor.db import get_db, init_db, make_engine
from shopfloor.models import User
from shopfloor.services import lifecycle
from shopfloor.services.events import EventBus
from shopfloor.utils.crypto import hash_token

ADMIN_KEY = "test-admin-key"
EMPLOYEE_KEYS = {
    "e1": "test-e1-key",
    "e2": "test-e2-key",
    "outsider": "test-outsider-key",
}


@pytest.fixture
def engine(tmp_path):
    """Throwaway SQLite file per test, with the same pragmas as production."""
    eng = make_engine(f"sqlite:///{tmp_path / 'shopfloor.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def users(session_factory):
    """Callers keyed by short name: admin, e1, e2 (employees) and outsider (never assigned)."""
    s = session_factory()
    try:
        rows = {
            "admin": User(name="Alice Admin", email="admin@test.local", role="admin",
                          api_key_hash=hash_token(ADMIN_KEY)),
        }
        for short, key in EMPLOYEE_KEYS.items():
            rows[short] = User(name=f"Employee {short}", email=f"{short}@test.local", role="employee",
                               api_key_hash=hash_token(key))
        s.add_all(rows.values())
        s.commit()
        return {short: Caller(user_id=u.id, role=u.role, name=u.name) for short, u in rows.items()}
    finally:
        s.close()


@pytest.fixture
def bus():
    return EventBus(buffer_size=100, queue_size=10)


@pytest.fixture
def make_job(db, users, bus):
    """Create a job as admin; assignees are given by short name."""

    def _make(title="Brake service", customer_name="Rossi", assignees=("e1", "e2"), **fields):
        return lifecycle.create_job(
            db,
            users["admin"],
            title=title,
            customer_name=customer_name,
            assignee_ids=[users[a].user_id for a in assignees],
            bus=bus,
            **fields,
        )

    return _make


@pytest.fixture
def client(session_factory, users):
    """TestClient bound to the per-test database."""
    from fastapi.testclient import TestClient
    from shopfloor.main import app

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_KEY}"}


@pytest.fixture
def e1_headers():
    return {"Authorization": f"Bearer {EMPLOYEE_KEYS['e1']}"}


@pytest.fixture
def e2_headers():
    return {"X-API-Key": EMPLOYEE_KEYS["e2"]}


@pytest.fixture
def outsider_headers():
    return {"Authorization": EMPLOYEE_KEYS["outsider"]}
