"""
interviewmate/core/rate_limiter.py — Fixed-window admission control per named policy
Policies are declared as `limits` strings in settings ("5/15 minutes"). Counting
is done by limits' FixedWindowRateLimiter against a storage built from
RATE_LIMIT_STORAGE_URI, so replicas can point at one shared backend.
"""
from __future__ import annotations

import math
import time
from functools import lru_cache
from typing import Callable, Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits import parse as parse_limit
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter as FixedWindowStrategy
from pydantic import BaseModel, ConfigDict

from interviewmate.config import get_settings

NAMESPACE = "ratelimit"


class RateLimitPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    window_seconds: int
    max_requests: int
    # Successful requests hand their hit back (e.g. login attempts)
    skip_successful: bool = False

    @classmethod
    def from_limit_string(cls, name: str, limit: str, skip_successful: bool = False) -> "RateLimitPolicy":
        item = parse_limit(limit)
        return cls(
            name=name,
            window_seconds=item.get_expiry(),
            max_requests=item.amount,
            skip_successful=skip_successful,
        )

    def limit_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.max_requests, self.window_seconds, namespace=NAMESPACE)


class RateLimitDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    policy: str
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


def build_policies(
    limits_table: dict[str, str],
    skip_successful: Optional[list[str]] = None,
) -> dict[str, RateLimitPolicy]:
    skip = set(skip_successful or [])
    return {
        name: RateLimitPolicy.from_limit_string(name, limit, name in skip)
        for name, limit in limits_table.items()
    }


class FixedWindowRateLimiter:
    """
    A window opens on the first hit for a (policy, key) pair and lasts
    window_seconds. Every admitted request is counted up front; for
    skip-successful policies record_outcome() returns the hit when the
    request succeeded, so a parallel burst can never exceed max_requests.

    `clock` must read the same time base as the storage (epoch seconds for
    limits' backends); it is only used to turn reset times into retry-after.
    """

    def __init__(
        self,
        storage: Storage,
        policies: dict[str, RateLimitPolicy],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._strategy = FixedWindowStrategy(storage)
        self._policies = dict(policies)
        self._clock = clock

    @property
    def policies(self) -> dict[str, RateLimitPolicy]:
        return dict(self._policies)

    def policy(self, name: str) -> RateLimitPolicy:
        # Unknown policy names are programmer errors
        return self._policies[name]

    def check(self, policy_name: str, key: str) -> RateLimitDecision:
        """Count and admit or reject one request. Never raises for a known policy."""
        policy = self.policy(policy_name)
        item = policy.limit_item()

        allowed = self._strategy.hit(item, policy_name, key)
        stats = self._strategy.get_window_stats(item, policy_name, key)
        retry_after = 0
        if not allowed:
            retry_after = max(1, math.ceil(stats.reset_time - self._clock()))

        return RateLimitDecision(
            policy=policy_name,
            allowed=allowed,
            limit=policy.max_requests,
            remaining=stats.remaining,
            retry_after=retry_after,
        )

    def record_outcome(self, policy_name: str, key: str, success: bool) -> None:
        """Report how an admitted request ended. Only matters for skip-successful policies."""
        policy = self.policy(policy_name)
        if policy.skip_successful and success:
            self._storage.decr(policy.limit_item().key_for(policy_name, key))

    def reset(self, policy_name: Optional[str] = None, key: Optional[str] = None) -> None:
        """Clear one (policy, key) window, or every counter when called bare."""
        if policy_name is None:
            self._storage.reset()
            return
        self._strategy.clear(self.policy(policy_name).limit_item(), policy_name, key or "")


# ──────────────────────────────────────────────────────────────────────────────
# Process-wide instances
# ──────────────────────────────────────────────────────────────────────────────

@lru_cache()
def get_rate_limit_storage() -> Storage:
    """Counter backend; "memory://" in-process, "redis://..." to share across replicas."""
    return storage_from_string(get_settings().rate_limit_storage_uri)


@lru_cache()
def get_rate_limiter() -> FixedWindowRateLimiter:
    settings = get_settings()
    return FixedWindowRateLimiter(
        get_rate_limit_storage(),
        build_policies(settings.rate_limits, settings.rate_limit_skip_successful),
    )
