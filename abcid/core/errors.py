from fastapi import status


class AuthError(Exception):
    """
    Base for every failure the auth core reports to a user.

    Carries its own HTTP status so the exception handler in main.py can
    render it without a lookup table. `detail` is safe to show verbatim.
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "Authentication failed"

    def __init__(
        self,
        detail: str | None = None,
        status_code: int | None = None,
        clear_session: bool = False,
    ):
        if detail is not None:
            self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        # set when the refresh cookie itself is the bad artifact
        self.clear_session = clear_session
        super().__init__(self.detail)


class IdentityNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "User not found"


class InvalidCredential(AuthError):
    detail = "Invalid OTP"


class OtpExpired(AuthError):
    detail = "OTP expired"


class Unauthorized(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid or missing token"


class InternalFailure(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Something went wrong. Please try again."
