from dotenv import load_dotenv
import os

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST

from abcid.core.config import settings
from abcid.core.errors import AuthError, InternalFailure
from abcid.core.logging import get_logger
from abcid.core.session_cookies import clear_session
from abcid.middleware.gatekeeper import GatekeeperMiddleware
from abcid.services.otp_store import MemoryOtpStore

# ───────────────── ROUTER IMPORTS ─────────────────
from abcid.routes.auth import router as auth_router
from abcid.routes.profile import router as profile_router

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # the memory store's cleanup task lives exactly as long as the app
    store = MemoryOtpStore(
        validity=timedelta(seconds=settings.OTP_VALIDITY_SECONDS),
        cleanup_interval=settings.OTP_CLEANUP_INTERVAL_SECONDS,
    )
    app.state.otp_store = store
    if settings.OTP_STORE == "memory":
        store.start()
    try:
        yield
    finally:
        await store.stop()


app = FastAPI(
    title="ABC ID Verification API",
    description="Authentication and session API for the ABC ID verification portal",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# ───────── SAFE VALIDATION HANDLER (FIXES UNICODE CRASH) ─────────

def _sanitize(obj):
    if isinstance(obj, (bytes, bytearray)):
        return f"<bytes:{len(obj)}>"
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, Exception):
        return str(obj)
    return obj


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    safe_errors = _sanitize(exc.errors())
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content={"detail": safe_errors},
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    response = JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    if exc.clear_session:
        clear_session(response, settings)
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # root cause goes to the log, never to the client
    log.error("unhandled_error", path=request.url.path, exc_info=exc)
    failure = InternalFailure()
    return JSONResponse(status_code=failure.status_code, content={"detail": failure.detail})


# ───────────────── MIDDLEWARE ─────────────────
# Added first = runs innermost. CORS must wrap the gatekeeper so preflight
# requests get their headers even when the gatekeeper answers.

app.add_middleware(GatekeeperMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ───────────────── ROUTES ─────────────────

app.include_router(auth_router, prefix="/api")     # /api/auth/...
app.include_router(profile_router, prefix="/api")  # /api/profile, /api/students/me, /api/admin/me

# ───────────────── HEALTH ─────────────────

@app.get("/", tags=["Health"])
async def root():
    return {
        "status": "ok",
        "app": "ABC ID Verification API",
        "env": settings.APP_ENV,
    }


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "healthy"}
