"""
interviewmate/core/fingerprint.py — Composite rate-limit bucketing key
Combines client address, authenticated user id and a user-agent hash so a
rotated proxy alone does not reset a logged-in user's budget.

This is a bucketing key, not a security control: every component can be
spoofed by a determined client.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Request
from slowapi.util import get_remote_address

from interviewmate.config import get_settings
from interviewmate.core.auth import user_id_from_request

ANONYMOUS = "anonymous"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def hash_user_agent(user_agent: str) -> str:
    """31-multiplier rolling hash wrapped to 32 bits, rendered in base 36."""
    h = 0
    for ch in user_agent:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return _to_base36(h)


def build_fingerprint(
    address: str,
    user_id: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> str:
    """Return the stable bucketing key for one client + session."""
    return f"{address}:{user_id or ANONYMOUS}:{hash_user_agent(user_agent or '')}"


def client_address(request: Request) -> str:
    """
    Socket peer by default. The first X-Forwarded-For hop is only honoured when
    the deployment sits behind a proxy it trusts.
    """
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return get_remote_address(request)


def fingerprint_request(request: Request) -> str:
    return build_fingerprint(
        client_address(request),
        user_id_from_request(request),
        request.headers.get("User-Agent", ""),
    )
