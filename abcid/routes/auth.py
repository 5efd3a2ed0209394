from fastapi import APIRouter, Depends, Request, Response

from abcid.controllers import auth_controller
from abcid.core.dependencies import (
    get_identity_directory,
    get_otp_service,
    get_token_service,
)
from abcid.core.security import TokenService
from abcid.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    SendOtpRequest,
    SendOtpResponse,
    SessionResponse,
    VerifyOtpRequest,
)
from abcid.services.identity_directory import IdentityDirectory
from abcid.services.otp_service import OtpService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/send-otp",
    response_model=SendOtpResponse,
    summary="Send OTP",
    description="""
Sends a 6-digit code to the email (and WhatsApp number) on record for the
given email, UID or tagged UID. The code is valid for 2 minutes.
    """,
)
async def send_otp(
    payload: SendOtpRequest,
    otp: OtpService = Depends(get_otp_service),
) -> SendOtpResponse:
    return await auth_controller.send_otp(payload, otp)


@router.post(
    "/verify-otp",
    response_model=LoginResponse,
    summary="Verify OTP",
    description="Exchanges a valid code for a token pair and sets the session cookies.",
)
async def verify_otp(
    payload: VerifyOtpRequest,
    response: Response,
    otp: OtpService = Depends(get_otp_service),
    tokens: TokenService = Depends(get_token_service),
) -> LoginResponse:
    return await auth_controller.verify_otp(payload, response, otp, tokens)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Student Login",
    description="Student-only login with UID + date of birth (DD-MM-YYYY).",
)
async def login(
    payload: LoginRequest,
    response: Response,
    directory: IdentityDirectory = Depends(get_identity_directory),
    tokens: TokenService = Depends(get_token_service),
) -> LoginResponse:
    return await auth_controller.login(payload, response, directory, tokens)


@router.get(
    "/me",
    response_model=SessionResponse,
    summary="Current Session",
    description="Uses only the HTTP-only refresh cookie. Returns a fresh access token.",
)
async def me(
    request: Request,
    directory: IdentityDirectory = Depends(get_identity_directory),
    tokens: TokenService = Depends(get_token_service),
) -> SessionResponse:
    return await auth_controller.me(request, directory, tokens)


@router.get(
    "/refresh",
    response_model=SessionResponse,
    summary="Refresh Tokens",
    description="Redeems the refresh cookie for a new token pair and re-sets the session cookies.",
)
async def refresh(
    request: Request,
    response: Response,
    directory: IdentityDirectory = Depends(get_identity_directory),
    tokens: TokenService = Depends(get_token_service),
) -> SessionResponse:
    return await auth_controller.refresh(request, response, directory, tokens)


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Logout",
    description="""
Tokens are stateless, so logout only expires the session cookies.
Safe to call repeatedly or without a session.
    """,
)
async def logout(response: Response) -> LogoutResponse:
    auth_controller.logout(response)
    return LogoutResponse()
