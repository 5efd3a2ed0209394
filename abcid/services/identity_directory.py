"""
Identity lookup: turns whatever the user typed (email, UID, tagged UID)
into an AdminIdentity or StudentIdentity.

`resolve(identifier, touch=True)` is the login-path lookup and stamps the
check-in timestamp. Verification paths (refresh, bearer checks) call with
touch=False and stay read-only.
"""
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from abcid.core.identifiers import looks_like_email, normalize_uid
from abcid.models.admin import Admin
from abcid.models.student import Student
from abcid.schemas.identity import AdminIdentity, StudentIdentity


class IdentityDirectory(Protocol):
    async def resolve(self, identifier: str, *, touch: bool = False) -> AdminIdentity | StudentIdentity | None: ...

    async def by_email(self, email: str) -> AdminIdentity | StudentIdentity | None: ...

    async def find_student(self, uid: str) -> StudentIdentity | None: ...

    async def touch(self, identity: AdminIdentity | StudentIdentity) -> None: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SqlIdentityDirectory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, identifier: str, *, touch: bool = False) -> AdminIdentity | StudentIdentity | None:
        identifier = identifier.strip()
        if not identifier:
            return None
        if looks_like_email(identifier):
            identity = await self.by_email(identifier)
        else:
            identity = await self.find_student(identifier)
        if identity is not None and touch:
            await self.touch(identity)
        return identity

    async def by_email(self, email: str) -> AdminIdentity | StudentIdentity | None:
        # students first: an address can exist in both tables
        q = await self.db.execute(
            select(Student).where(Student.email == email.strip()).order_by(Student.id).limit(1)
        )
        student = q.scalar_one_or_none()
        if student:
            return StudentIdentity.model_validate(student)

        q = await self.db.execute(select(Admin).where(Admin.email == email.strip()))
        admin = q.scalar_one_or_none()
        if admin and admin.is_active:
            return AdminIdentity.model_validate(admin)
        return None

    async def find_student(self, uid: str) -> StudentIdentity | None:
        raw = uid.strip()
        digits = normalize_uid(raw)
        if not digits:
            return None
        # stored either bare ("0123456789") or with a two-letter tag ("ST0123456789")
        q = await self.db.execute(
            select(Student)
            .where(or_(Student.uid == raw, Student.uid == digits, Student.uid.like(f"__{digits}")))
            .order_by(Student.id)
            .limit(1)
        )
        student = q.scalar_one_or_none()
        return StudentIdentity.model_validate(student) if student else None

    async def touch(self, identity: AdminIdentity | StudentIdentity) -> None:
        if identity.kind == "student":
            row = await self.db.get(Student, identity.id)
            if row is not None:
                row.checked_in_at = _now()
        else:
            row = await self.db.get(Admin, identity.id)
            if row is not None:
                row.last_login_at = _now()
        await self.db.flush()


class MemoryIdentityDirectory:
    """In-process directory used by tests and local demos."""

    def __init__(self, identities: list[AdminIdentity | StudentIdentity] | None = None):
        self._identities: list[AdminIdentity | StudentIdentity] = list(identities or [])
        self.checked_in: dict[tuple[str, int], datetime] = {}

    def add(self, identity: AdminIdentity | StudentIdentity) -> None:
        self._identities.append(identity)

    async def resolve(self, identifier: str, *, touch: bool = False) -> AdminIdentity | StudentIdentity | None:
        identifier = identifier.strip()
        if not identifier:
            return None
        if looks_like_email(identifier):
            identity = await self.by_email(identifier)
        else:
            identity = await self.find_student(identifier)
        if identity is not None and touch:
            await self.touch(identity)
        return identity

    async def by_email(self, email: str) -> AdminIdentity | StudentIdentity | None:
        email = email.strip()
        matches = [i for i in self._identities if i.email == email]
        matches.sort(key=lambda i: i.kind != "student")
        return matches[0] if matches else None

    async def find_student(self, uid: str) -> StudentIdentity | None:
        digits = normalize_uid(uid)
        if not digits:
            return None
        for identity in self._identities:
            if identity.kind == "student" and normalize_uid(identity.uid) == digits:
                return identity
        return None

    async def touch(self, identity: AdminIdentity | StudentIdentity) -> None:
        self.checked_in[(identity.kind, identity.id)] = _now()
