import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from abcid.core.errors import IdentityNotFound
from abcid.core.logging import get_logger
from abcid.core.notifications import Notifier
from abcid.schemas.identity import AdminIdentity, StudentIdentity
from abcid.services.identity_directory import IdentityDirectory
from abcid.services.otp_store import OtpRecord, OtpStore

log = get_logger(__name__)

OTP_MIN = 100000
OTP_MAX = 999999


class OtpOutcome(str, Enum):
    VERIFIED = "verified"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Challenge:
    expires_at: datetime


@dataclass(frozen=True)
class Verification:
    outcome: OtpOutcome
    identity: AdminIdentity | StudentIdentity


def generate_code() -> str:
    # uniform over 100000..999999
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def hash_code(code: str) -> str:
    return hashlib.sha256(code.strip().encode("utf-8")).hexdigest()


class OtpService:
    """
    Issues and checks 6-digit login codes bound to an identity's email.

    Only the most recently issued code for an email is ever compared;
    issuing a new code silently shadows the previous one. A verified
    code is consumed and cannot be used twice.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        store: OtpStore,
        notifier: Notifier,
        validity: timedelta = timedelta(minutes=2),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.directory = directory
        self.store = store
        self.notifier = notifier
        self.validity = validity
        self.clock = clock

    async def _resolve(self, identifier: str) -> AdminIdentity | StudentIdentity:
        identity = await self.directory.resolve(identifier)
        if identity is None:
            raise IdentityNotFound()
        return identity

    async def request_challenge(self, identifier: str) -> Challenge:
        identity = await self._resolve(identifier)

        code = generate_code()
        created_at = self.clock()
        await self.store.save(OtpRecord(
            email=identity.email,
            phone=identity.phone,
            code_hash=hash_code(code),
            created_at=created_at,
        ))

        # delivery problems never fail the request; the user can resend
        try:
            await self.notifier.send_otp(
                email=identity.email,
                phone=identity.phone,
                name=identity.name,
                code=code,
            )
        except Exception as exc:
            log.warning("otp_delivery_failed", kind=identity.kind, identity_id=identity.id, error=str(exc))

        log.info("otp_issued", kind=identity.kind, identity_id=identity.id)
        return Challenge(expires_at=created_at + self.validity)

    async def verify_challenge(self, identifier: str, code: str) -> Verification:
        identity = await self._resolve(identifier)
        record = await self.store.latest(identity.email)

        if (
            record is None
            or record.used_at is not None
            or not hmac.compare_digest(record.code_hash, hash_code(code))
        ):
            log.info("otp_invalid", kind=identity.kind, identity_id=identity.id)
            return Verification(OtpOutcome.INVALID, identity)

        now = self.clock()
        if now - record.created_at > self.validity:
            await self.store.discard(record)
            log.info("otp_expired", kind=identity.kind, identity_id=identity.id)
            return Verification(OtpOutcome.EXPIRED, identity)

        if not await self.store.mark_used(record, now):
            # another request consumed this code between our read and our write
            log.info("otp_already_used", kind=identity.kind, identity_id=identity.id)
            return Verification(OtpOutcome.INVALID, identity)

        await self.directory.touch(identity)
        log.info("otp_verified", kind=identity.kind, identity_id=identity.id)
        return Verification(OtpOutcome.VERIFIED, identity)
