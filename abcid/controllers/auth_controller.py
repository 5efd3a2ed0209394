import re
from datetime import date

from fastapi import Request, Response

from abcid.core.config import settings
from abcid.core.errors import (
    IdentityNotFound,
    InvalidCredential,
    OtpExpired,
    Unauthorized,
)
from abcid.core.logging import get_logger
from abcid.core.security import TokenService
from abcid.core.session_cookies import REFRESH_COOKIE, clear_session, set_session
from abcid.schemas.auth import (
    LoginRequest,
    LoginResponse,
    SendOtpRequest,
    SendOtpResponse,
    SessionResponse,
    VerifyOtpRequest,
)
from abcid.schemas.identity import AdminIdentity, StudentIdentity
from abcid.services.identity_directory import IdentityDirectory
from abcid.services.otp_service import OtpOutcome, OtpService

log = get_logger(__name__)

ADMIN_HOME = "/home"

_DMY = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")


def parse_dob(value: str) -> date | None:
    """Accepts DD-MM-YYYY (what students type) or ISO YYYY-MM-DD."""
    value = value.strip()
    m = _DMY.match(value)
    try:
        if m:
            day, month, year = m.groups()
            return date(int(year), int(month), int(day))
        return date.fromisoformat(value)
    except ValueError:
        return None


def redirect_url_for(identity: AdminIdentity | StudentIdentity) -> str:
    if identity.kind == "student":
        return f"/{identity.path_uid}"
    return ADMIN_HOME


def _start_session(
    response: Response,
    identity: AdminIdentity | StudentIdentity,
    tokens: TokenService,
) -> LoginResponse:
    pair = tokens.issue(identity)
    cookies = set_session(response, pair, identity, settings)
    return LoginResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        identifier=cookies.identifier,
        role=cookies.role,
        redirect_url=redirect_url_for(identity),
    )


async def send_otp(payload: SendOtpRequest, otp: OtpService) -> SendOtpResponse:
    challenge = await otp.request_challenge(payload.identifier)
    return SendOtpResponse(expires_at=challenge.expires_at)


async def verify_otp(
    payload: VerifyOtpRequest,
    response: Response,
    otp: OtpService,
    tokens: TokenService,
) -> LoginResponse:
    """
    Three distinct failures, three distinct corrective actions:
      User not found -> re-enter identifier   (404)
      OTP expired    -> request a new code    (400)
      Invalid OTP    -> retype                (400)
    """
    result = await otp.verify_challenge(payload.identifier, payload.code)

    if result.outcome is OtpOutcome.EXPIRED:
        raise OtpExpired()
    if result.outcome is OtpOutcome.INVALID:
        raise InvalidCredential()

    log.info("login_success", method="otp", kind=result.identity.kind, identity_id=result.identity.id)
    return _start_session(response, result.identity, tokens)


async def login(
    payload: LoginRequest,
    response: Response,
    directory: IdentityDirectory,
    tokens: TokenService,
) -> LoginResponse:
    """
    Student-only login with UID + date of birth.

    Returns the same error for an unknown UID and a wrong DOB so the
    endpoint can't be used to enumerate students.
    """
    mismatch = InvalidCredential("Invalid UID or Date of Birth", status_code=401)

    dob = parse_dob(payload.dob)
    student = await directory.find_student(payload.identifier)
    if dob is None or student is None or student.dob != dob:
        log.info("login_failed", method="dob")
        raise mismatch

    await directory.touch(student)
    log.info("login_success", method="dob", kind="student", identity_id=student.id)
    return _start_session(response, student, tokens)


async def _identity_from_refresh_cookie(
    request: Request,
    directory: IdentityDirectory,
    tokens: TokenService,
) -> AdminIdentity | StudentIdentity | None:
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise Unauthorized("No refresh token found", clear_session=True)

    payload = tokens.verify_refresh(token)
    if payload is None:
        raise Unauthorized("Invalid refresh token", clear_session=True)

    # read-only lookup: refresh must not count as a check-in
    return await directory.by_email(payload.email)


async def me(
    request: Request,
    directory: IdentityDirectory,
    tokens: TokenService,
) -> SessionResponse:
    identity = await _identity_from_refresh_cookie(request, directory, tokens)
    if identity is None:
        raise IdentityNotFound()
    return SessionResponse(
        access_token=tokens.issue(identity).access_token,
        identity=identity,
    )


async def refresh(
    request: Request,
    response: Response,
    directory: IdentityDirectory,
    tokens: TokenService,
) -> SessionResponse:
    identity = await _identity_from_refresh_cookie(request, directory, tokens)
    if identity is None:
        raise Unauthorized("Invalid refresh token", clear_session=True)

    pair = tokens.issue(identity)
    set_session(response, pair, identity, settings)
    return SessionResponse(access_token=pair.access_token, identity=identity)


def logout(response: Response) -> None:
    clear_session(response, settings)
