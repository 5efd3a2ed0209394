"""SQL identity directory and OTP store against an in-memory sqlite database."""
import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from abcid.core.database import Base
from abcid.models.admin import Admin
from abcid.models.one_time_password import OneTimePassword  # noqa: F401  (registers table)
from abcid.models.student import Student
from abcid.services.identity_directory import SqlIdentityDirectory
from abcid.services.otp_service import OtpOutcome, OtpService, hash_code
from abcid.services.otp_store import OtpRecord, SqlOtpStore


@asynccontextmanager
async def sqlite_session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with Session() as db:
            db.add_all([
                Student(
                    id=1, name="Asha Rao", uid="ST0123456789", email="asha.rao@example.edu",
                    phone="9876543210", dob=date(2004, 4, 21), abc_id="123456789012",
                ),
                Student(
                    id=2, name="Vikram Shetty", uid="0000004321", email="vikram@example.edu",
                    phone="9876500000", dob=date(2003, 1, 2), abc_id="",
                ),
                Admin(id=7, name="Registrar", email="registrar@example.edu", phone="9000000001"),
                Admin(id=8, name="Former", email="former@example.edu", phone="9000000002", is_active=False),
            ])
            await db.commit()
            yield db
    finally:
        await engine.dispose()


class TestSqlIdentityDirectory:
    async def test_resolve_by_email_and_uid_forms(self):
        async with sqlite_session() as db:
            directory = SqlIdentityDirectory(db)

            by_email = await directory.resolve("asha.rao@example.edu")
            by_tagged = await directory.resolve("ST0123456789")
            by_bare = await directory.resolve("0123456789")
            by_short = await directory.resolve("4321")

            assert by_email.kind == "student" and by_email.id == 1
            assert by_tagged.id == 1
            assert by_bare.id == 1
            assert by_short.id == 2

    async def test_admin_and_inactive_admin(self):
        async with sqlite_session() as db:
            directory = SqlIdentityDirectory(db)

            admin = await directory.resolve("registrar@example.edu")
            assert admin.kind == "admin"
            assert admin.role == "admin"
            assert await directory.resolve("former@example.edu") is None

    async def test_unknown(self):
        async with sqlite_session() as db:
            directory = SqlIdentityDirectory(db)
            assert await directory.resolve("5555555555") is None
            assert await directory.resolve("   ") is None
            assert await directory.by_email("ghost@example.edu") is None

    async def test_touch_only_on_request(self):
        async with sqlite_session() as db:
            directory = SqlIdentityDirectory(db)

            await directory.resolve("0123456789")
            assert (await db.get(Student, 1)).checked_in_at is None

            await directory.resolve("0123456789", touch=True)
            assert (await db.get(Student, 1)).checked_in_at is not None

            admin = await directory.resolve("registrar@example.edu", touch=True)
            assert (await db.get(Admin, admin.id)).last_login_at is not None


class TestSqlOtpStore:
    async def test_latest_and_mark_used(self):
        async with sqlite_session() as db:
            store = SqlOtpStore(db)
            t0 = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)

            await store.save(OtpRecord("asha.rao@example.edu", "9876543210", hash_code("111111"), t0))
            saved = await store.save(
                OtpRecord("asha.rao@example.edu", "9876543210", hash_code("222222"), t0 + timedelta(seconds=10))
            )
            assert saved.id is not None

            latest = await store.latest("asha.rao@example.edu")
            assert latest.code_hash == hash_code("222222")
            assert latest.created_at == t0 + timedelta(seconds=10)
            assert latest.created_at.tzinfo is not None
            assert latest.used_at is None

            assert await store.mark_used(latest, t0 + timedelta(seconds=30)) is True
            assert await store.mark_used(latest, t0 + timedelta(seconds=31)) is False
            assert (await store.latest("asha.rao@example.edu")).used_at is not None

    async def test_no_record(self):
        async with sqlite_session() as db:
            assert await SqlOtpStore(db).latest("nobody@example.edu") is None


class ReadGate:
    """Holds every reader until `parties` of them have read."""

    def __init__(self, parties: int):
        self.parties = parties
        self.arrived = 0
        self.open = asyncio.Event()

    async def wait(self) -> None:
        self.arrived += 1
        if self.arrived >= self.parties:
            self.open.set()
        await self.open.wait()


class GatedOtpStore(SqlOtpStore):
    def __init__(self, db, gate: ReadGate):
        super().__init__(db)
        self.gate = gate

    async def latest(self, email):
        record = await super().latest(email)
        await self.gate.wait()
        return record


class TestConcurrentVerification:
    async def test_one_code_verifies_once(self, directory, notifier, clock):
        async with sqlite_session() as db:
            await SqlOtpStore(db).save(
                OtpRecord("asha.rao@example.edu", "9876543210", hash_code("424242"), clock.now)
            )
            await db.commit()

            other = AsyncSession(db.bind, expire_on_commit=False)
            gate = ReadGate(2)
            services = [
                OtpService(directory, GatedOtpStore(session, gate), notifier, clock=clock)
                for session in (db, other)
            ]
            try:
                results = await asyncio.gather(
                    *(svc.verify_challenge("0123456789", "424242") for svc in services)
                )
            finally:
                await other.close()

            assert sorted(r.outcome for r in results) == [OtpOutcome.INVALID, OtpOutcome.VERIFIED]


class TestSeedAdmin:
    async def test_creates_once(self):
        from seed_admin import ensure_admin

        async with sqlite_session() as db:
            admin, created = await ensure_admin(db, "Dean", " dean@example.edu ", "9000000003")
            assert created
            assert admin.email == "dean@example.edu"
            assert admin.is_active

            again, created = await ensure_admin(db, "Someone Else", "dean@example.edu", "9000000004")
            assert not created
            assert again.id == admin.id
            assert again.name == "Dean"

            resolved = await SqlIdentityDirectory(db).resolve("dean@example.edu")
            assert resolved.kind == "admin"


def test_admin_indexes_match_migration():
    assert {ix.name for ix in Admin.__table__.indexes} == {"ix_admins_email"}
