"""
interviewmate/services/users.py — User accounts and per-user interview stats
"""
from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Optional

from interviewmate.core.errors import DuplicateResourceError
from interviewmate.models import Plan, User


class UserRepository:
    """In-process user store; email is unique (lower-cased)."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    async def add(self, user: User) -> User:
        if await self.get_by_email(user.email) is not None:
            raise DuplicateResourceError("User already exists with this email")
        self._users[user.id] = user
        return user

    async def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        return next((u for u in self._users.values() if u.email == email), None)

    async def save(self, user: User) -> User:
        self._users[user.id] = user
        return user

    async def count(self) -> int:
        return len(self._users)

    async def count_by_plan(self) -> dict[str, int]:
        counts = {plan.value: 0 for plan in Plan}
        for user in self._users.values():
            counts[user.plan.value] += 1
        return counts

    def clear(self) -> None:
        self._users.clear()


async def record_interview_completed(
    users: UserRepository,
    user_id: str,
    score: float,
    minutes: float,
) -> Optional[User]:
    """Fold one completed interview into the user's running stats."""
    user = await users.get(user_id)
    if user is None:
        return None

    stats = user.stats
    total = stats.total_interviews + 1
    stats.average_score = round((stats.average_score * stats.total_interviews + score) / total, 2)
    stats.total_interviews = total
    stats.total_minutes_used += minutes
    stats.last_interview_date = datetime.utcnow()
    return await users.save(user)


async def update_profile(
    users: UserRepository,
    user: User,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    """Only name and email are user-editable; a taken email is rejected."""
    if email is not None and email != user.email:
        holder = await users.get_by_email(email)
        if holder is not None and holder.id != user.id:
            raise DuplicateResourceError("Email is already in use")
        user.email = email
    if name is not None:
        user.name = name
    return await users.save(user)


async def upgrade_plan(users: UserRepository, user_id: str, plan: Plan) -> Optional[User]:
    user = await users.get(user_id)
    if user is None:
        return None
    user.plan = plan
    return await users.save(user)


@lru_cache()
def get_user_repository() -> UserRepository:
    return UserRepository()
