"""
OTP persistence.

Both stores keep only what verification needs: the latest code hash for
an email, when it was created, and whether it has been used. "Latest"
is decided by created_at; older rows for the same email are shadowed,
never consulted again.
"""
import asyncio
import contextlib
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from abcid.core.logging import get_logger
from abcid.models.one_time_password import OneTimePassword

log = get_logger(__name__)


@dataclass(frozen=True)
class OtpRecord:
    email: str
    phone: str
    code_hash: str
    created_at: datetime
    used_at: datetime | None = None
    id: int | None = None


class OtpStore(Protocol):
    async def save(self, record: OtpRecord) -> OtpRecord: ...

    async def latest(self, email: str) -> OtpRecord | None: ...

    async def mark_used(self, record: OtpRecord, when: datetime) -> bool: ...

    async def discard(self, record: OtpRecord) -> None: ...


def _aware(dt: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes even for timezone=True columns
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class SqlOtpStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, record: OtpRecord) -> OtpRecord:
        row = OneTimePassword(
            email=record.email,
            phone=record.phone,
            code_hash=record.code_hash,
            created_at=record.created_at,
        )
        self.db.add(row)
        await self.db.flush()
        return replace(record, id=row.id)

    async def latest(self, email: str) -> OtpRecord | None:
        q = await self.db.execute(
            select(OneTimePassword)
            .where(OneTimePassword.email == email)
            .order_by(OneTimePassword.created_at.desc(), OneTimePassword.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = q.scalar_one_or_none()
        if row is None:
            return None
        return OtpRecord(
            id=row.id,
            email=row.email,
            phone=row.phone,
            code_hash=row.code_hash,
            created_at=_aware(row.created_at),
            used_at=_aware(row.used_at),
        )

    async def mark_used(self, record: OtpRecord, when: datetime) -> bool:
        # conditional update: of two requests racing on one code, only one claims it
        result = await self.db.execute(
            update(OneTimePassword)
            .where(OneTimePassword.id == record.id, OneTimePassword.used_at.is_(None))
            .values(used_at=when)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def discard(self, record: OtpRecord) -> None:
        # expired rows stay for audit; the 2-minute check already rejects them
        return None


class MemoryOtpStore:
    """
    Single-process fallback store keyed by email.

    Owns an optional housekeeping task (start/stop) that purges expired
    entries every `cleanup_interval` seconds. Expiry correctness never
    depends on the sweep; verification checks age itself.
    """

    def __init__(
        self,
        validity: timedelta,
        cleanup_interval: float = 15 * 60,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._records: dict[str, OtpRecord] = {}
        self._validity = validity
        self._interval = cleanup_interval
        self._clock = clock
        self._task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._records)

    async def save(self, record: OtpRecord) -> OtpRecord:
        current = self._records.get(record.email)
        if current is None or record.created_at >= current.created_at:
            self._records[record.email] = record
        return record

    async def latest(self, email: str) -> OtpRecord | None:
        return self._records.get(email)

    async def mark_used(self, record: OtpRecord, when: datetime) -> bool:
        if self._records.get(record.email) is not record:
            return False
        del self._records[record.email]
        return True

    async def discard(self, record: OtpRecord) -> None:
        # only drop it if nothing newer replaced it meanwhile
        if self._records.get(record.email) is record:
            del self._records[record.email]

    def purge_expired(self, now: datetime | None = None) -> int:
        now = now or self._clock()
        stale = [
            email for email, rec in self._records.items()
            if now - rec.created_at > self._validity
        ]
        for email in stale:
            del self._records[email]
        return len(stale)

    # ── lifecycle ─────────────────────────────────────────────────────
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            removed = self.purge_expired()
            if removed:
                log.info("otp_store_purged", removed=removed)
