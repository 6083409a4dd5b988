from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from chatbot.core.locks import KeyedLock
from chatbot.models import ANONYMOUS_USER_ID


logger = logging.getLogger("gemini_chatbot.usage")

Clock = Callable[[], datetime]


def local_now() -> datetime:
    return datetime.now().astimezone()


def next_midnight(now: datetime) -> datetime:
    """First local midnight strictly after ``now``.

    Zone-aware and naive values keep their tzinfo, since the offset is
    worked out from the new wall time. A fixed offset, as returned by
    ``astimezone()``, may be stale across a DST change, so the result is
    re-localized through the system zone.
    """
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    if isinstance(now.tzinfo, timezone):
        return midnight.replace(tzinfo=None).astimezone()
    return midnight


@dataclass(frozen=True)
class UsageRecord:
    user_id: str
    count: int
    reset_at: datetime


@dataclass(frozen=True)
class UsageDecision:
    allowed: bool
    reset_at: Optional[datetime] = None


@dataclass(frozen=True)
class UsageSnapshot:
    user_id: str
    used: int
    remaining: int
    reset_at: datetime
    daily_limit: int


class UsageTracker:
    """Per-user daily message quota.

    A record whose ``reset_at`` has passed counts as zero on the next read,
    so no background sweep is needed. Anonymous users are never tracked.
    """

    def __init__(self, daily_limit: int, enabled: bool = True, clock: Clock = local_now) -> None:
        self.daily_limit = daily_limit
        self.enabled = enabled
        self._clock = clock
        self._records: Dict[str, UsageRecord] = {}
        self._locks = KeyedLock()

    def applies(self, user_id: Optional[str]) -> bool:
        return self.enabled and bool(user_id) and user_id != ANONYMOUS_USER_ID

    def _live_record(self, user_id: str, now: datetime) -> Optional[UsageRecord]:
        record = self._records.get(user_id)
        if record is None or now >= record.reset_at:
            return None
        return record

    def check_allowed(self, user_id: str) -> UsageDecision:
        if not self.applies(user_id):
            return UsageDecision(allowed=True)
        with self._locks.hold(user_id):
            record = self._live_record(user_id, self._clock())
            if record is None or record.count < self.daily_limit:
                return UsageDecision(allowed=True)
            return UsageDecision(allowed=False, reset_at=record.reset_at)

    def record_use(self, user_id: str) -> None:
        """Count one successful model call against the user's quota."""
        if not self.applies(user_id):
            return
        with self._locks.hold(user_id):
            now = self._clock()
            record = self._live_record(user_id, now)
            if record is None:
                record = UsageRecord(user_id=user_id, count=1, reset_at=next_midnight(now))
            else:
                record = replace(record, count=record.count + 1)
            self._records[user_id] = record
        logger.debug("Usage for %s is now %s/%s", user_id, record.count, self.daily_limit)

    def get_info(self, user_id: str) -> UsageSnapshot:
        with self._locks.hold(user_id):
            now = self._clock()
            record = self._live_record(user_id, now)
        if record is None:
            return UsageSnapshot(
                user_id=user_id,
                used=0,
                remaining=self.daily_limit,
                reset_at=next_midnight(now),
                daily_limit=self.daily_limit,
            )
        return UsageSnapshot(
            user_id=user_id,
            used=record.count,
            remaining=max(0, self.daily_limit - record.count),
            reset_at=record.reset_at,
            daily_limit=self.daily_limit,
        )

    def reset(self, user_id: str) -> None:
        with self._locks.hold(user_id):
            self._records.pop(user_id, None)
        logger.info("Usage reset for user %s", user_id)

    def active_users(self) -> int:
        now = self._clock()
        return sum(1 for record in list(self._records.values()) if now < record.reset_at)
