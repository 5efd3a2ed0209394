from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from jose import JWTError, jwt

from abcid.core.config import Settings, settings as default_settings
from abcid.core.logging import get_logger
from abcid.schemas.identity import AdminIdentity, StudentIdentity

log = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenPayload:
    subject_id: int
    email: str
    name: str


class TokenService:
    """
    Issues and verifies the signed access/refresh pair.

    Payload contains:
      sub  : identity id (standard JWT claim, string on the wire)
      email: join key back to the identity directory on refresh
      name : for display
      type : "access" or "refresh"; guards against using wrong token types
      iat  : issued at
      exp  : expiry

    Access and refresh tokens use separate secrets. Verification never
    raises: every failure (malformed, expired, tampered, wrong type)
    collapses to None so callers cannot tell them apart.
    """

    def __init__(
        self,
        cfg: Settings = default_settings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._cfg = cfg
        self._clock = clock

    def issue(self, identity: AdminIdentity | StudentIdentity) -> TokenPair:
        return TokenPair(
            access_token=self._encode(
                identity, ACCESS, self._cfg.JWT_ACCESS_SECRET, self._cfg.ACCESS_TOKEN_EXPIRE_MINUTES
            ),
            refresh_token=self._encode(
                identity, REFRESH, self._cfg.JWT_REFRESH_SECRET, self._cfg.REFRESH_TOKEN_EXPIRE_MINUTES
            ),
        )

    def verify_access(self, token: str | None) -> TokenPayload | None:
        return self._decode(token, ACCESS, self._cfg.JWT_ACCESS_SECRET)

    def verify_refresh(self, token: str | None) -> TokenPayload | None:
        return self._decode(token, REFRESH, self._cfg.JWT_REFRESH_SECRET)

    def _encode(self, identity, token_type: str, secret: str, minutes: int) -> str:
        now = self._clock()
        payload = {
            "sub":   str(identity.id),
            "email": identity.email,
            "name":  identity.name,
            "type":  token_type,
            "iat":   now,
            "exp":   now + timedelta(minutes=minutes),
        }
        return jwt.encode(payload, secret, algorithm=self._cfg.ALGORITHM)

    def _decode(self, token: str | None, token_type: str, secret: str) -> TokenPayload | None:
        if not token:
            return None
        try:
            payload = jwt.decode(token, secret, algorithms=[self._cfg.ALGORITHM])
            if payload.get("type") != token_type:
                return None
            return TokenPayload(
                subject_id=int(payload["sub"]),
                email=payload["email"],
                name=payload["name"],
            )
        except (JWTError, KeyError, ValueError, TypeError) as exc:
            log.debug("token_rejected", token_type=token_type, reason=type(exc).__name__)
            return None
