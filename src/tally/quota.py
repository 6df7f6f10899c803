"""Monthly usage quota per user.

The window is the current calendar month in UTC, from its first instant on.
Events are stamped when they are written, so the order of stamps follows the
order of commits. A limit of zero disables the check.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from tally import store
from tally.errors import PersistenceFailure, QuotaExceeded
from tally.models import UsageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    count: int
    limit: int

    @property
    def remaining(self) -> int:
        return self.limit - self.count


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _utcnow(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class QuotaGuard:
    def __init__(self, limit: int):
        if limit < 0:
            raise ValueError("monthly limit must be >= 0")
        self.limit = limit

    @property
    def unlimited(self) -> bool:
        return self.limit == 0

    def _count(self, conn: sqlite3.Connection, user_id: str, now: datetime) -> int:
        return store.count_usage(conn, user_id, month_start(now))

    def admit(self, conn: sqlite3.Connection, user_id: str, now: datetime | None = None) -> Admission:
        """Read-only check; raises QuotaExceeded when the month's budget is spent."""
        now = _utcnow(now)
        count = self._count(conn, user_id, now)
        if not self.unlimited and count >= self.limit:
            logger.info("Quota exceeded for %s: %d/%d", user_id, count, self.limit)
            raise QuotaExceeded(self.limit)
        return Admission(count, self.limit)

    def record(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        bank: str,
        now: datetime | None = None,
        hits: dict[str, int] | None = None,
    ) -> Admission:
        """Count and append in one write transaction so two requests can't share the last slot.

        ``now`` defaults to the time of the write. Rule ``hits`` are committed
        together with the usage event.
        """
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Store error while recording usage: {exc}") from exc
        now = _utcnow(now)
        try:
            count = self._count(conn, user_id, now)
            if not self.unlimited and count >= self.limit:
                conn.rollback()
                logger.info("Quota slot taken concurrently for %s: %d/%d", user_id, count, self.limit)
                raise QuotaExceeded(self.limit)
            store.insert_usage(conn, UsageRecord(user_id, bank, store.utc_stamp(now)))
            store.record_rule_hits(conn, hits or {}, now, commit=False)
            conn.commit()
        except PersistenceFailure:
            conn.rollback()
            raise
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceFailure(f"Store error while recording usage: {exc}") from exc
        logger.debug("Recorded usage for %s (%s): %d", user_id, bank, count + 1)
        return Admission(count + 1, self.limit)

    def remaining(
        self, conn: sqlite3.Connection, user_id: str, now: datetime | None = None
    ) -> tuple[int, int]:
        """(count, limit - count). The second value may be negative if the limit was lowered."""
        count = self._count(conn, user_id, _utcnow(now))
        return count, self.limit - count
