import asyncio
import inspect
import os
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

# Settings are read at import time, so the environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-do-not-use-in-production")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-do-not-use-in-production")
os.environ.setdefault("OTP_STORE", "memory")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from abcid.core.dependencies import (  # noqa: E402
    get_identity_directory,
    get_notifier,
    get_otp_store,
)
from abcid.main import app  # noqa: E402
from abcid.schemas.identity import AdminIdentity, StudentIdentity  # noqa: E402
from abcid.services.identity_directory import MemoryIdentityDirectory  # noqa: E402
from abcid.services.otp_store import MemoryOtpStore  # noqa: E402


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send_otp(self, *, email: str, phone: str, name: str, code: str) -> None:
        self.sent.append({"email": email, "phone": phone, "name": name, "code": code})
        if self.fail:
            raise RuntimeError("gateway unavailable")

    @property
    def last_code(self) -> str:
        return self.sent[-1]["code"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def student():
    return StudentIdentity(
        id=1,
        name="Asha Rao",
        email="asha.rao@example.edu",
        phone="9876543210",
        uid="ST0123456789",
        dob=date(2004, 4, 21),
        abc_id="123456789012",
    )


@pytest.fixture
def admin():
    return AdminIdentity(
        id=7,
        name="Registrar",
        email="registrar@example.edu",
        phone="9000000001",
    )


@pytest.fixture
def directory(student, admin):
    return MemoryIdentityDirectory([student, admin])


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def otp_store(clock):
    return MemoryOtpStore(validity=timedelta(minutes=2), clock=clock)


@pytest.fixture
def overrides(directory, notifier):
    """Wire the app to in-memory collaborators instead of the database."""
    store = MemoryOtpStore(validity=timedelta(minutes=2))
    app.dependency_overrides[get_identity_directory] = lambda: directory
    app.dependency_overrides[get_otp_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    return TestClient(app)
