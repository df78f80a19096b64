"""
interviewmate/core/admission.py — Request admission middleware
Maps each request to the rate-limit policies guarding it, rejects with the 429
envelope on the first exhausted policy, and reports the outcome afterwards so
skip-successful policies can hand back the hits of successful requests.
"""
from __future__ import annotations

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from interviewmate.core import logging as app_logging
from interviewmate.core.errors import RateLimitError
from interviewmate.core.fingerprint import fingerprint_request
from interviewmate.core.rate_limiter import RateLimitDecision, get_rate_limiter

EXEMPT_PATHS = {"/api/health"}

# Gateway callbacks are not client traffic
PAYMENT_POLICY_EXEMPT = {"/api/payments/webhook"}

POLICY_MESSAGES = {
    "auth": "Too many authentication attempts. Please try again later.",
    "api": "Too many API requests. Please try again later.",
    "upload": "Too many upload attempts. Please try again later.",
    "interview": "Too many interview creation attempts. Please try again later.",
    "admin": "Too many admin requests. Please try again later.",
    "payment": "Too many payment attempts. Please try again later.",
}


def policies_for(method: str, path: str) -> list[str]:
    """Policy names guarding a request, general policy first. Empty → not limited."""
    path = path.rstrip("/") or "/"
    if not path.startswith("/api/") or path in EXEMPT_PATHS:
        return []

    names = ["api"]
    if path.startswith("/api/auth/"):
        names.append("auth")
    elif path.startswith("/api/admin/") or path == "/api/admin":
        names.append("admin")
    elif path.startswith("/api/payments/") and path not in PAYMENT_POLICY_EXEMPT:
        names.append("payment")
    elif path.startswith("/api/uploads/") or path == "/api/uploads":
        names.append("upload")
    elif method.upper() == "POST" and path == "/api/interviews":
        names.append("interview")
    return names


def _rejection(decision: RateLimitDecision) -> JSONResponse:
    error = RateLimitError(decision.retry_after, POLICY_MESSAGES.get(decision.policy))
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_envelope(),
        headers={
            "Retry-After": str(decision.retry_after),
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": "0",
        },
    )


async def admission_middleware(request: Request, call_next) -> Response:
    names = policies_for(request.method, request.url.path)
    if not names:
        return await call_next(request)

    limiter = get_rate_limiter()
    key = fingerprint_request(request)

    decisions: list[RateLimitDecision] = []
    for name in names:
        decision = limiter.check(name, key)
        if not decision.allowed:
            app_logging.log_rate_limit(
                policy=name,
                key=key,
                path=request.url.path,
                retry_after=decision.retry_after,
            )
            return _rejection(decision)
        decisions.append(decision)

    response = await call_next(request)

    success = response.status_code < 400
    for name in names:
        limiter.record_outcome(name, key, success)

    tightest = min(decisions, key=lambda d: d.remaining)
    response.headers["X-RateLimit-Limit"] = str(tightest.limit)
    response.headers["X-RateLimit-Remaining"] = str(tightest.remaining)
    return response
