"""
interviewmate/routers/payments.py — Razorpay checkout, webhook and minute balance
Gateway failures are reported as 503; a payment is never assumed to have
succeeded without a valid signature.
"""
from __future__ import annotations

import json
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger

from interviewmate.clients.razorpay_client import RazorpayClient, get_razorpay_client
from interviewmate.core.auth import get_current_user
from interviewmate.core.errors import (
    DuplicateResourceError,
    PaymentError,
    ServiceUnavailableError,
    ValidationFailedError,
)
from interviewmate.models import CreateOrderRequest, PaymentOrder, Plan, User, VerifyPaymentRequest
from interviewmate.services.ledger import LedgerService, get_ledger
from interviewmate.services.payments import PaymentService, get_payment_service
from interviewmate.services.users import UserRepository, get_user_repository

router = APIRouter()


@router.post("/orders")
async def create_order(
    body: CreateOrderRequest,
    user: User = Depends(get_current_user),
    razorpay: RazorpayClient = Depends(get_razorpay_client),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    if not razorpay.configured:
        raise ServiceUnavailableError("Payment service")

    order = await razorpay.create_order(
        amount=body.amount,
        currency=body.currency,
        receipt=f"rcpt_{uuid.uuid4().hex[:16]}",
        notes={"userId": user.id, "plan": body.plan},
    )
    if not order.get("id"):
        raise ServiceUnavailableError("Payment service")
    await payments.register_order(PaymentOrder(
        order_id=order["id"],
        user_id=user.id,
        amount=body.amount,
        currency=body.currency,
        plan=Plan(body.plan),
    ))
    return {
        "success": True,
        "order": {
            "id": order.get("id"),
            "amount": order.get("amount"),
            "currency": order.get("currency", body.currency),
        },
        "keyId": razorpay.key_id,
    }


@router.post("/verify")
async def verify_payment(
    body: VerifyPaymentRequest,
    user: User = Depends(get_current_user),
    razorpay: RazorpayClient = Depends(get_razorpay_client),
    payments: PaymentService = Depends(get_payment_service),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    if not razorpay.configured:
        raise ServiceUnavailableError("Payment service")
    if not razorpay.verify_payment_signature(body.order_id, body.payment_id, body.signature):
        raise PaymentError("Invalid payment signature")

    record = await payments.settle_order(user.id, body.order_id, body.payment_id)
    return {
        "success": True,
        "payment": record.to_json(),
        "minutesAdded": record.minutes_added,
        "balanceMinutes": await ledger.get_balance(user.id),
    }


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    razorpay: RazorpayClient = Depends(get_razorpay_client),
    payments: PaymentService = Depends(get_payment_service),
    users: UserRepository = Depends(get_user_repository),
) -> dict[str, Any]:
    """Credits `payment.captured` events that checkout verification never saw."""
    raw = await request.body()
    if razorpay.webhook_configured:
        if not razorpay.verify_webhook_signature(raw, request.headers.get("X-Razorpay-Signature")):
            raise PaymentError("Invalid webhook signature")
    else:
        logger.warning("RAZORPAY_WEBHOOK_SECRET not set; webhook signature not verified")

    try:
        event = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationFailedError("Webhook body is not valid JSON") from exc
    if not isinstance(event, dict):
        raise ValidationFailedError("Webhook body must be a JSON object")

    if event.get("event") != "payment.captured":
        return {"success": True, "processed": False}

    entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
    payment_id = entity.get("id")
    user_id = (entity.get("notes") or {}).get("userId")
    if not payment_id or not user_id or await users.get(user_id) is None:
        logger.warning(f"Unattributable payment.captured webhook: payment={payment_id!r}")
        return {"success": True, "processed": False}

    # Razorpay reports amounts in the smallest currency unit
    amount = entity.get("amount")
    if not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationFailedError("Webhook payment amount must be positive")

    if await payments.is_processed(payment_id):
        return {"success": True, "processed": False}

    try:
        await payments.record_payment(
            user_id=user_id,
            order_id=entity.get("order_id") or "",
            payment_id=payment_id,
            amount=amount / 100,
            currency=entity.get("currency") or "INR",
            plan=Plan.PRO,
        )
    except DuplicateResourceError:
        logger.info(f"Payment {payment_id} recorded concurrently; webhook ignored")
        return {"success": True, "processed": False}

    return {"success": True, "processed": True}


@router.get("/balance")
async def get_balance(
    user: User = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    return {"success": True, "balanceMinutes": await ledger.get_balance(user.id)}


@router.get("/ledger")
async def get_ledger_entries(
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
) -> dict[str, Any]:
    entries = await ledger.list_entries(user.id, limit)
    return {
        "success": True,
        "entries": [e.to_json() for e in entries],
        "balanceMinutes": await ledger.get_balance(user.id),
    }
