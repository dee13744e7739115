import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import appointments, providers, slots
from app.core.config import settings, _ENV_FILE
from app.core.errors import GENERIC_ERROR_MESSAGE, BookingError, RateLimited
from app.services.appointment_service import ProviderLockRegistry
from app.services.rate_limiter import build_admission_gate

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    app.state.admission_gate = build_admission_gate(settings)
    app.state.provider_locks = ProviderLockRegistry()
    logger.info(
        "Admission gate: %d attempts per %ds per client",
        settings.rate_limit_max_attempts,
        settings.rate_limit_window_seconds,
    )
    yield
    await app.state.admission_gate.close()


app = FastAPI(
    title="SlotBook API",
    description="Public availability and booking engine for independent providers",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

_ALLOW_ANY_ORIGIN = "*" in settings.cors_origins_list

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    # Credentials cannot be combined with a wildcard origin; the public surface needs neither
    allow_credentials=not _ALLOW_ANY_ORIGIN,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Client-Info", "Apikey"],
    max_age=86400,
)

app.include_router(slots.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(providers.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Client-Info, Apikey",
    }
    if _ALLOW_ANY_ORIGIN:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)
    if exc.public:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.public_message},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are a 400 naming each offending field."""
    messages = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = ".".join(loc) or "body"
        messages.append(f"{field}: {err.get('msg', 'invalid value')}")
    return JSONResponse(
        status_code=400,
        content={"error": "; ".join(messages) or "Invalid request"},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    if exc.headers:
        headers.update(exc.headers)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Never echo internal detail; include CORS so 500 responses are not blocked by browser."""
    headers = _cors_headers(request.headers.get("origin"))
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": GENERIC_ERROR_MESSAGE},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
