import os
import tempfile
import uuid
from datetime import timedelta
from pathlib import Path

import pytest

# Point the app at a throw-away SQLite file before anything imports the engine.
_DB_PATH = Path(tempfile.gettempdir()) / "workscholarship_test.db"
if _DB_PATH.exists():
    _DB_PATH.unlink()
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"

from sqlmodel import Session  # noqa: E402

from workscholarship import clock, models, repositories  # noqa: E402
from workscholarship.auth import create_access_token  # noqa: E402
from workscholarship.database import create_db_and_tables, engine  # noqa: E402
from workscholarship.enums import UserRole  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Ensure the tables exist in the fresh test database."""
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


def _make_user(role: UserRole) -> models.User:
    with Session(engine) as s:
        user = models.User(email=f"{role.value}-{uuid.uuid4().hex[:8]}@uni.test", full_name=f"Test {role.value}",
                           role=role)
        return repositories.UserRepository(s).create(user)


@pytest.fixture
def admin():
    return _make_user(UserRole.ADMIN)


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(admin)}"}


@pytest.fixture
def supervisor():
    return _make_user(UserRole.SUPERVISOR)


@pytest.fixture
def department():
    return f"Dept-{uuid.uuid4().hex[:8]}"


def cycle_payload(department: str, **overrides) -> dict:
    """JSON body for `POST /api/cycles` with a coherent schedule in the future."""
    now = clock.utcnow()
    body = {
        "name": "2026-2",
        "department": department,
        "start_date": (now + timedelta(days=1)).isoformat(),
        "application_deadline": (now + timedelta(days=5)).isoformat(),
        "interview_date": (now + timedelta(days=10)).isoformat(),
        "selection_date": (now + timedelta(days=15)).isoformat(),
        "end_date": (now + timedelta(days=120)).isoformat(),
        "total_scholarships_available": 10,
    }
    body.update(overrides)
    return body


def new_cycle(department: str = "Library", **overrides) -> models.Cycle:
    """Unsaved cycle in Configuration with renewals done, ready for any transition."""
    now = clock.utcnow()
    args = dict(
        name="2026-2",
        department=department,
        start_date=now + timedelta(days=1),
        end_date=now + timedelta(days=120),
        application_deadline=now + timedelta(days=5),
        interview_date=now + timedelta(days=10),
        selection_date=now + timedelta(days=15),
        total_scholarships_available=10,
        created_by="admin@uni.test",
    )
    args.update(overrides)
    cycle = models.Cycle.create(**args)
    cycle.mark_renewal_process_completed()
    return cycle
