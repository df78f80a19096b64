"""
interviewmate/main.py — FastAPI application entry point
Includes: lifespan management, error envelope handlers, request admission,
          CORS, security headers, startup validation, health endpoint.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from interviewmate.config import get_settings
from interviewmate.core import logging as app_logging
from interviewmate.core.admission import admission_middleware
from interviewmate.core.errors import AppError, ErrorCode, error_envelope
from interviewmate.core.logging import setup_logging
from interviewmate.routers import admin, auth, interviews, payments, reports, users

settings = get_settings()


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: initialize logging, report missing configuration."""
    setup_logging(settings.log_level)
    logger.info("InterviewMate API starting up...")

    _validate_env()

    logger.info("Startup complete.")
    yield
    logger.info("Shutting down InterviewMate API.")


def _validate_env() -> None:
    """
    Log every missing or placeholder secret. Never raises: the affected
    features degrade instead (fallback evaluation, 503 on payments).
    """
    missing = []
    if settings.jwt_secret in ("", "change-me-immediately"):
        missing.append("JWT_SECRET")
    if not settings.gemini_configured:
        missing.append("GEMINI_API_KEY")
    if not settings.payments_configured:
        missing.extend(["RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET"])

    if missing:
        logger.critical(f"Missing or placeholder env vars: {', '.join(missing)}")
        if "GEMINI_API_KEY" in missing:
            logger.warning("AI evaluation will use fallback mode until GEMINI_API_KEY is set.")
        if "RAZORPAY_KEY_ID" in missing:
            logger.warning("Payment endpoints will answer 503 until Razorpay keys are set.")


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="InterviewMate API",
    description="AI mock-interview backend: interviews, evaluations, minute ledger and payments.",
    version=settings.version,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ── Error envelope ────────────────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            400, "Validation failed", ErrorCode.VALIDATION_ERROR, {"validationErrors": errors},
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = ErrorCode.NOT_FOUND_ERROR if exc.status_code == 404 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.status_code, str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    app_logging.log_error("api", f"{request.method} {request.url.path}", exc)
    message = str(exc) if settings.is_development else "Internal server error"
    return JSONResponse(
        status_code=500,
        content=error_envelope(500, message, ErrorCode.SERVER_ERROR),
    )


# ── Request admission (rate limiting) ─────────────────────────────────────────
app.middleware("http")(admission_middleware)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Razorpay-Signature"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
)


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(interviews.router, prefix="/api/interviews", tags=["interviews"])
app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])


# ── Health ────────────────────────────────────────────────────────────────────
@app.get("/api/health", tags=["health"])
async def health():
    """Exempt from admission control. Does NOT call any external services."""
    return {
        "success": True,
        "status": "ok",
        "version": settings.version,
        "environment": settings.environment,
        "services": {
            "gemini": settings.gemini_configured,
            "payments": settings.payments_configured,
        },
    }
