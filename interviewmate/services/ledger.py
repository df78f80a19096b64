"""
interviewmate/services/ledger.py — Append-only minute ledger
The balance is never stored; it is the sum of credits minus the sum of debits.
All writes for one user go through that user's asyncio.Lock, so the balance
check and the append are one step and concurrent debits cannot overdraw.
"""
from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Optional

from interviewmate.config import get_settings
from interviewmate.core import logging as app_logging
from interviewmate.core.errors import InsufficientBalanceError, ValidationFailedError
from interviewmate.models import LedgerCategory, LedgerEntry, LedgerEntryType


class LedgerRepository:
    """Append-only entry log. There is no update or delete."""

    def __init__(self) -> None:
        self._entries: dict[str, list[LedgerEntry]] = defaultdict(list)
        self._transaction_ids: set[str] = set()

    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.transaction_id in self._transaction_ids:
            raise ValueError(f"Duplicate transaction id {entry.transaction_id!r}")
        self._transaction_ids.add(entry.transaction_id)
        self._entries[entry.user_id].append(entry)
        return entry

    async def entries(self, user_id: str) -> list[LedgerEntry]:
        """Entries in append order."""
        return list(self._entries.get(user_id, []))

    async def find_by_related_id(self, user_id: str, related_id: str) -> Optional[LedgerEntry]:
        return next(
            (e for e in self._entries.get(user_id, []) if e.related_id == related_id),
            None,
        )

    def clear(self) -> None:
        self._entries.clear()
        self._transaction_ids.clear()


def _transaction_id(entry_type: LedgerEntryType, user_id: str) -> str:
    return f"{entry_type.value}_{user_id}_{uuid.uuid4().hex}"


class LedgerService:
    def __init__(
        self,
        repository: LedgerRepository,
        price_per_minute_usd: float = 0.50,
    ) -> None:
        self._repository = repository
        self._price_per_minute = price_per_minute_usd
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def _lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize writes for one user; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_holders[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._locks[user_id]

    async def _balance(self, user_id: str) -> float:
        total = 0.0
        for entry in await self._repository.entries(user_id):
            total += entry.signed_minutes
        return total

    async def get_balance(self, user_id: str) -> float:
        return await self._balance(user_id)

    async def list_entries(self, user_id: str, limit: Optional[int] = None) -> list[LedgerEntry]:
        """Newest first."""
        entries = list(reversed(await self._repository.entries(user_id)))
        return entries[:limit] if limit else entries

    async def find_by_related_id(self, user_id: str, related_id: str) -> Optional[LedgerEntry]:
        return await self._repository.find_by_related_id(user_id, related_id)

    async def _append(
        self,
        user_id: str,
        entry_type: LedgerEntryType,
        minutes: float,
        category: LedgerCategory,
        description: str,
        related_id: Optional[str],
        balance_after: float,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            user_id=user_id,
            transaction_id=_transaction_id(entry_type, user_id),
            type=entry_type,
            category=category,
            minutes=minutes,
            amount_usd=round(minutes * self._price_per_minute, 2),
            description=description,
            related_id=related_id,
            balance_after=balance_after,
        )
        await self._repository.append(entry)
        app_logging.log_ledger_entry(
            user_id=user_id,
            transaction_id=entry.transaction_id,
            entry_type=entry_type.value,
            category=category.value,
            minutes=minutes,
            balance_after=balance_after,
        )
        return entry

    async def add_credit(
        self,
        user_id: str,
        minutes: float,
        category: LedgerCategory,
        description: str,
        related_id: Optional[str] = None,
    ) -> LedgerEntry:
        if minutes <= 0:
            raise ValidationFailedError("Credit minutes must be positive")
        async with self._lock(user_id):
            balance = await self._balance(user_id)
            return await self._append(
                user_id, LedgerEntryType.CREDIT, minutes, category,
                description, related_id, balance + minutes,
            )

    async def add_debit(
        self,
        user_id: str,
        minutes: float,
        category: LedgerCategory,
        description: str,
        related_id: Optional[str] = None,
    ) -> LedgerEntry:
        """Raises InsufficientBalanceError, appending nothing, when balance < minutes."""
        if minutes <= 0:
            raise ValidationFailedError("Debit minutes must be positive")
        async with self._lock(user_id):
            balance = await self._balance(user_id)
            if balance < minutes:
                raise InsufficientBalanceError(balance=balance, requested=minutes)
            return await self._append(
                user_id, LedgerEntryType.DEBIT, minutes, category,
                description, related_id, balance - minutes,
            )


@lru_cache()
def get_ledger_repository() -> LedgerRepository:
    return LedgerRepository()


@lru_cache()
def get_ledger() -> LedgerService:
    return LedgerService(get_ledger_repository(), get_settings().price_per_minute_usd)
