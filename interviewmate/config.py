"""
interviewmate/config.py — Pydantic BaseSettings configuration
Secrets, upstream endpoints, admission budgets and cache TTLs.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    version: str = "1.0.0"
    client_url: str = "http://localhost:5173"
    allowed_origins: list[str] = ["http://localhost:5173"]

    # ── Authentication ────────────────────────────────────────────────────────
    jwt_secret: str = "change-me-immediately"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 7 * 24 * 60

    # ── Google Gemini ─────────────────────────────────────────────────────────
    # Empty key → every evaluation takes the fallback path
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.7
    gemini_max_output_tokens: int = 1024
    gemini_timeout_seconds: float = 30.0

    # Internal model budget (free tier allows 15 RPM, stay under it)
    evaluation_budget_per_minute: int = 10
    evaluation_budget_window_seconds: float = 60.0

    # ── Response cache TTLs ───────────────────────────────────────────────────
    history_cache_ttl_seconds: int = 180
    analytics_cache_ttl_seconds: int = 300

    # ── Admission control ─────────────────────────────────────────────────────
    # Limit strings use the `limits` notation: "<count>/<n> <unit>"
    rate_limits: dict[str, str] = {
        "auth": "5/15 minutes",
        "api": "100/15 minutes",
        "upload": "10/minute",
        "interview": "5/minute",
        "admin": "30/minute",
        "payment": "3/minute",
    }
    # Only failed requests count against these policies
    rate_limit_skip_successful: list[str] = ["auth"]
    # Any `limits` storage URI, e.g. "redis://localhost:6379"
    rate_limit_storage_uri: str = "memory://"
    trust_forwarded_for: bool = False

    # ── Razorpay ──────────────────────────────────────────────────────────────
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    razorpay_timeout_seconds: float = 15.0

    # ── Minutes accounting ────────────────────────────────────────────────────
    price_per_minute_usd: float = 0.50
    signup_bonus_minutes: int = 30

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key) and self.gemini_api_key != "your_gemini_api_key_here"

    @property
    def payments_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret) and not (
            self.razorpay_key_id.startswith("rzp_test_your")
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
