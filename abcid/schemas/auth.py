from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from abcid.schemas.identity import Identity


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Request Bodies ────────────────────────────────────────────────────
class SendOtpRequest(_CamelModel):
    # email, numeric UID or tagged UID
    identifier: str = Field(..., min_length=1, max_length=255)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={"example": {"identifier": "ST0123456789"}},
    )


class VerifyOtpRequest(_CamelModel):
    identifier: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class LoginRequest(_CamelModel):
    """Student-only login with UID + date of birth (DD-MM-YYYY or YYYY-MM-DD)."""
    identifier: str = Field(..., min_length=1, max_length=32)
    dob: str = Field(..., min_length=8, max_length=10)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={"example": {"identifier": "0123456789", "dob": "21-04-2004"}},
    )


# ── Response Bodies ───────────────────────────────────────────────────
class SendOtpResponse(_CamelModel):
    expires_at: datetime


class LoginResponse(_CamelModel):
    access_token: str
    refresh_token: str
    identifier: str
    role: Literal["student", "admin"]
    redirect_url: str  # client must navigate here, not to a fixed path


class SessionResponse(_CamelModel):
    """Returned by /auth/me and /auth/refresh."""
    access_token: str
    identity: Identity


class ProfileResponse(_CamelModel):
    identity: Identity


class LogoutResponse(_CamelModel):
    success: bool = True
