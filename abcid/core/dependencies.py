from datetime import timedelta

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from abcid.core.config import settings
from abcid.core.database import get_db
from abcid.core.notifications import HttpNotifier, Notifier
from abcid.core.security import TokenService
from abcid.schemas.identity import AdminIdentity, StudentIdentity
from abcid.services.identity_directory import IdentityDirectory, SqlIdentityDirectory
from abcid.services.otp_service import OtpService
from abcid.services.otp_store import OtpStore, SqlOtpStore

bearer = HTTPBearer(auto_error=False)

_token_service = TokenService(settings)


def _not_authenticated_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing token",
        headers={"WWW-Authenticate": "Bearer"},
    )


# ── Collaborators ─────────────────────────────────────────────────────
def get_token_service() -> TokenService:
    return _token_service


def get_identity_directory(db: AsyncSession = Depends(get_db)) -> IdentityDirectory:
    return SqlIdentityDirectory(db)


def get_otp_store(request: Request, db: AsyncSession = Depends(get_db)) -> OtpStore:
    # memory store is created and started by the app lifespan
    if settings.OTP_STORE == "memory":
        return request.app.state.otp_store
    return SqlOtpStore(db)


def get_notifier() -> Notifier:
    return HttpNotifier(settings)


def get_otp_service(
    directory: IdentityDirectory = Depends(get_identity_directory),
    store: OtpStore = Depends(get_otp_store),
    notifier: Notifier = Depends(get_notifier),
) -> OtpService:
    return OtpService(
        directory=directory,
        store=store,
        notifier=notifier,
        validity=timedelta(seconds=settings.OTP_VALIDITY_SECONDS),
    )


# ── Bearer guards ─────────────────────────────────────────────────────
async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    tokens: TokenService = Depends(get_token_service),
    directory: IdentityDirectory = Depends(get_identity_directory),
) -> AdminIdentity | StudentIdentity:
    """
    Verifies the access token on every data request. The gatekeeper's
    cookie check is not enough on its own.
    """
    if not credentials:
        raise _not_authenticated_exception()

    payload = tokens.verify_access(credentials.credentials)
    if payload is None:
        raise _not_authenticated_exception()

    identity = await directory.by_email(payload.email)
    if identity is None or identity.id != payload.subject_id:
        raise _not_authenticated_exception()

    return identity


async def require_student(
    identity: AdminIdentity | StudentIdentity = Depends(get_current_identity),
) -> StudentIdentity:
    if identity.kind != "student":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized as student",
        )
    return identity


async def require_admin(
    identity: AdminIdentity | StudentIdentity = Depends(get_current_identity),
) -> AdminIdentity:
    if identity.kind != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized as admin",
        )
    return identity
