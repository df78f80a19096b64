"""
interviewmate/services/payments.py — Verified payment records and minute top-ups
A payment id is credited at most once, whether it arrives through checkout
verification or the gateway webhook. Checkout credits the amount of the order
the server created, never an amount supplied by the client.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from interviewmate.config import get_settings
from interviewmate.core.errors import DuplicateResourceError, ForbiddenError, PaymentError
from interviewmate.models import LedgerCategory, PaymentOrder, PaymentRecord, Plan
from interviewmate.services.ledger import LedgerService, get_ledger
from interviewmate.services.users import UserRepository, get_user_repository, upgrade_plan


class OrderRepository:
    def __init__(self) -> None:
        self._orders: dict[str, PaymentOrder] = {}

    async def add(self, order: PaymentOrder) -> PaymentOrder:
        if order.order_id in self._orders:
            raise DuplicateResourceError("Order already exists")
        self._orders[order.order_id] = order
        return order

    async def get(self, order_id: str) -> Optional[PaymentOrder]:
        return self._orders.get(order_id)

    def clear(self) -> None:
        self._orders.clear()


class PaymentRepository:
    def __init__(self) -> None:
        self._by_payment_id: dict[str, PaymentRecord] = {}

    async def add(self, record: PaymentRecord) -> PaymentRecord:
        if record.payment_id in self._by_payment_id:
            raise DuplicateResourceError("Payment already processed")
        self._by_payment_id[record.payment_id] = record
        return record

    async def get_by_payment_id(self, payment_id: str) -> Optional[PaymentRecord]:
        return self._by_payment_id.get(payment_id)

    async def list_for_user(self, user_id: str) -> list[PaymentRecord]:
        return sorted(
            (p for p in self._by_payment_id.values() if p.user_id == user_id),
            key=lambda p: p.created_at,
            reverse=True,
        )

    async def count(self) -> int:
        return len(self._by_payment_id)

    def clear(self) -> None:
        self._by_payment_id.clear()


def minutes_for_amount(amount: float, price_per_minute: float) -> float:
    return round(amount / price_per_minute, 2)


class PaymentService:
    def __init__(
        self,
        payments: PaymentRepository,
        ledger: LedgerService,
        users: UserRepository,
        price_per_minute_usd: float = 0.50,
        orders: Optional[OrderRepository] = None,
    ) -> None:
        self._payments = payments
        self._orders = orders if orders is not None else OrderRepository()
        self._ledger = ledger
        self._users = users
        self._price_per_minute = price_per_minute_usd

    async def record_payment(
        self,
        user_id: str,
        order_id: str,
        payment_id: str,
        amount: float,
        currency: str = "INR",
        plan: Plan = Plan.PRO,
    ) -> PaymentRecord:
        """
        Store the payment, upgrade the plan and credit the ledger.
        Raises DuplicateResourceError if payment_id was already recorded.
        """
        minutes = minutes_for_amount(amount, self._price_per_minute)
        # add() has no suspension point between the duplicate check and the insert
        record = await self._payments.add(PaymentRecord(
            user_id=user_id,
            order_id=order_id,
            payment_id=payment_id,
            amount=amount,
            currency=currency,
            plan=plan,
            minutes_added=minutes,
        ))
        await upgrade_plan(self._users, user_id, plan)
        await self._ledger.add_credit(
            user_id,
            minutes,
            LedgerCategory.PURCHASE,
            f"{plan.value.capitalize()} plan purchase ({amount:g} {currency})",
            related_id=payment_id,
        )
        return record

    async def register_order(self, order: PaymentOrder) -> PaymentOrder:
        return await self._orders.add(order)

    async def settle_order(self, user_id: str, order_id: str, payment_id: str) -> PaymentRecord:
        """
        Credit a signature-verified checkout using the stored order's amount.
        Raises PaymentError for unknown orders and ForbiddenError when the
        order was created for another user.
        """
        order = await self._orders.get(order_id)
        if order is None:
            raise PaymentError("Unknown order")
        if order.user_id != user_id:
            raise ForbiddenError("Order belongs to another account")
        return await self.record_payment(
            user_id=user_id,
            order_id=order_id,
            payment_id=payment_id,
            amount=order.amount,
            currency=order.currency,
            plan=order.plan,
        )

    async def is_processed(self, payment_id: str) -> bool:
        return await self._payments.get_by_payment_id(payment_id) is not None


@lru_cache()
def get_payment_repository() -> PaymentRepository:
    return PaymentRepository()


@lru_cache()
def get_order_repository() -> OrderRepository:
    return OrderRepository()


@lru_cache()
def get_payment_service() -> PaymentService:
    return PaymentService(
        get_payment_repository(),
        get_ledger(),
        get_user_repository(),
        get_settings().price_per_minute_usd,
        get_order_repository(),
    )
