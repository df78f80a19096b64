"""
interviewmate/core/logging.py — loguru structured JSON logging setup
Every model call, evaluation, admission rejection, cache invalidation and
ledger write is emitted as one JSON record.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """Configure loguru for structured JSON output to stdout."""
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,
        backtrace=True,
        diagnose=False,
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


# ──────────────────────────────────────────────────────────────────────────────
# Mandatory log event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_model_call(
    model: str,
    operation: str,
    latency_ms: float,
    outcome: str,
    budget_used: int,
) -> None:
    """Every Gemini call is logged, successful or not."""
    record = _build_log_record("gemini_client", "api_call", {
        "model": model,
        "operation": operation,
        "latency_ms": round(latency_ms, 2),
        "outcome": outcome,
        "budget_used": budget_used,
    })
    logger.info(json.dumps(record))


def log_evaluation(
    interview_id: Optional[str],
    model_identifier: str,
    overall_score: float,
    fallback_reason: Optional[str] = None,
) -> None:
    record = _build_log_record("evaluation", "evaluate_interview", {
        "interview_id": interview_id,
        "model_identifier": model_identifier,
        "overall_score": overall_score,
        "fallback_reason": fallback_reason,
    })
    if fallback_reason:
        logger.warning(json.dumps(record))
    else:
        logger.info(json.dumps(record))


def log_rate_limit(
    policy: str,
    key: str,
    path: str,
    retry_after: int,
) -> None:
    record = _build_log_record("admission", "rate_limit_rejected", {
        "policy": policy,
        "key": key,
        "path": path,
        "retry_after": retry_after,
    })
    logger.warning(json.dumps(record))


def log_cache_invalidation(
    scope: str,
    removed: int,
) -> None:
    record = _build_log_record("response_cache", "invalidate", {
        "scope": scope,
        "removed": removed,
    })
    logger.info(json.dumps(record))


def log_ledger_entry(
    user_id: str,
    transaction_id: str,
    entry_type: str,
    category: str,
    minutes: float,
    balance_after: float,
) -> None:
    """Every ledger append is logged for audit."""
    record = _build_log_record("ledger", "append", {
        "user_id": user_id,
        "transaction_id": transaction_id,
        "type": entry_type,
        "category": category,
        "minutes": minutes,
        "balance_after": balance_after,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every unexpected error is logged with full context."""
    tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
