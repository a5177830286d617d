import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List, Sequence, Tuple

# Ensure Python path includes project root for `import orgcal`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Test environment: in-memory SQLite, no Redis relay, no startup backfill
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("LIVE_RELAY_ENABLED", "false")
os.environ.setdefault("RUN_BACKFILL_ON_STARTUP", "false")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from orgcal.core.auth.actor import Actor  # noqa: E402
from orgcal.core.users.models import Department, Division, Office, User  # noqa: E402
from orgcal.db.base import async_session_context, create_db_and_tables, drop_db_and_tables, engine  # noqa: E402
from orgcal.workers.tasks import celery_app  # noqa: E402

celery_app.conf.task_always_eager = True
celery_app.conf.task_eager_propagates = True

# 2024-05-01 00:00 UTC is 09:00 on the stored (UTC+9) wall-clock
NOW = datetime(2024, 5, 1, 0, 0, tzinfo=timezone.utc)


def fixed_clock(value: datetime = NOW):
    return lambda: value


@dataclass
class RecordingJobQueue:
    sent: List[Tuple[str, str, datetime]] = field(default_factory=list)
    revoked: List[str] = field(default_factory=list)

    def send(self, job_key: str, task_id: str, eta: datetime) -> None:
        self.sent.append((job_key, task_id, eta))

    def revoke(self, task_ids: Sequence[str]) -> None:
        self.revoked.extend(task_ids)

    @property
    def keys(self) -> List[str]:
        return [key for key, _, _ in self.sent]


@pytest_asyncio.fixture(scope="function", autouse=True)
async def setup_db():
    await create_db_and_tables()
    yield
    await drop_db_and_tables()
    # the in-memory database lives on one pooled connection bound to this test's loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_context() as session:
        yield session


@pytest.fixture
def job_queue() -> RecordingJobQueue:
    return RecordingJobQueue()


@pytest.fixture
def delivered() -> list:
    return []


@pytest.fixture
def deliver(delivered):
    return delivered.append


@pytest_asyncio.fixture
async def org(db_session: AsyncSession) -> SimpleNamespace:
    """
    Division 1 with offices 1 (departments 10, 11) and 2 (department 20).

    admin, div_lead (division 1), office_lead (office 1), dept_lead (dept 10),
    alice and bob (dept 10, alice is an "engineer"), carol (dept 11, "engineer"),
    dave (dept 20 in office 2, "manager").
    """
    db_session.add_all([Division(id=1, name="North")])
    await db_session.flush()
    db_session.add_all([Office(id=1, name="HQ", division_id=1), Office(id=2, name="Branch", division_id=1)])
    await db_session.flush()
    db_session.add_all([
        Department(id=10, name="Platform", office_id=1),
        Department(id=11, name="Sales", office_id=1),
        Department(id=20, name="Field", office_id=2),
    ])
    await db_session.flush()

    def member(id_, name, dept, office, role="USER", scope=None, position=None):
        return User(
            id=id_, email=f"{name}@example.com", name=name.title(), role=role, scope=scope,
            position=position, department_id=dept, office_id=office, division_id=1,
        )

    users = [
        member(1, "admin", None, None, role="ADMIN"),
        member(2, "div_lead", None, 1, scope="DIVISION"),
        member(3, "office_lead", None, 1, scope="OFFICE"),
        member(4, "dept_lead", 10, 1, scope="DEPARTMENT"),
        member(5, "alice", 10, 1, position="engineer"),
        member(6, "bob", 10, 1),
        member(7, "carol", 11, 1, position="engineer"),
        member(8, "dave", 20, 2, position="manager"),
    ]
    db_session.add_all(users)
    await db_session.commit()
    return SimpleNamespace(**{u.email.split("@")[0]: Actor.from_user(u) for u in users})


def auth(actor) -> dict:
    from orgcal.core.auth.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token({'user_id': actor.id})}"}


@pytest_asyncio.fixture
async def client(job_queue, delivered):
    """ASGI client on the test loop; background effects finish before the response returns."""
    from httpx import ASGITransport, AsyncClient

    from orgcal.main import app

    app.state.job_queue = job_queue
    app.state.deliver = delivered.append
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.job_queue = None
    app.state.deliver = None
