"""Request-level orchestration: one parse request is one unit of work.

Each call opens its own SQLite connection, so the service can be shared by
the worker threads behind ``submit``.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

from tally import categorizer, store
from tally.assembler import assemble
from tally.db import get_connection
from tally.errors import Cancelled
from tally.models import IdFormat, LearnRequest, ParseResult, Rule
from tally.parser import get_parser, parse_text
from tally.quota import QuotaGuard
from tally.settings import DEFAULTS

logger = logging.getLogger(__name__)


def _check(cancel: threading.Event | None, stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise Cancelled(stage)


class StatementService:
    def __init__(self, db_path: Path, settings: dict | None = None):
        self.db_path = Path(db_path)
        self.settings = {**DEFAULTS, **(settings or {})}
        self.guard = QuotaGuard(int(self.settings["monthly_limit"]))
        self.max_skip_ratio = float(self.settings["max_skip_ratio"])
        self.id_format = IdFormat(self.settings["id_format"])
        self._pool = ThreadPoolExecutor(
            max_workers=int(self.settings["workers"]), thread_name_prefix="tally-parse"
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def _connect(self):
        with store.persistence("opening the database"):
            return get_connection(self.db_path)

    def parse(
        self,
        text: str | Sequence[str],
        bank: str,
        user_id: str,
        cancel: threading.Event | None = None,
    ) -> ParseResult:
        """Parse, categorize and count one statement for ``user_id``.

        Usage is recorded last, so a failed, rejected or cancelled request
        consumes no quota.
        """
        info = get_parser(bank)
        statement, stats = parse_text(info, text, max_skip_ratio=self.max_skip_ratio, cancel=cancel)
        result = assemble(statement, user_id, stats)

        conn = self._connect()
        try:
            self.guard.admit(conn, user_id)
            counts = categorizer.apply(
                conn, statement, bank, user_id, cancel=cancel, record_hits=False
            )
            _check(cancel, "recording usage")
            self.guard.record(conn, user_id, bank, hits=counts["hits"])
        finally:
            conn.close()

        if counts["errors"]:
            result.warnings.append(f"[rules] {counts['errors']} transactions could not be evaluated")
        logger.info(
            "Parsed %s statement for %s: %d rows, %d categorized",
            bank, user_id, stats.rows_decoded, counts["categorized"],
        )
        return result

    def submit(
        self,
        text: str | Sequence[str],
        bank: str,
        user_id: str,
        cancel: threading.Event | None = None,
    ) -> Future:
        """Run ``parse`` on the bounded worker pool."""
        return self._pool.submit(self.parse, text, bank, user_id, cancel)

    def usage(self, user_id: str) -> dict:
        conn = self._connect()
        try:
            count, remaining = self.guard.remaining(conn, user_id)
        finally:
            conn.close()
        return {"count": count, "remaining": remaining, "limit": self.guard.limit}

    def learn(self, request: LearnRequest) -> Rule:
        conn = self._connect()
        try:
            return categorizer.learn(conn, request, self.id_format)
        finally:
            conn.close()

    def list_rules(self, user_id: str, bank: str, only_active: bool = True) -> list[Rule]:
        conn = self._connect()
        try:
            return store.list_user_rules(conn, user_id, bank, only_active=only_active)
        finally:
            conn.close()

    def deactivate_rule(self, user_id: str, bank: str, rule_id: str) -> Rule:
        conn = self._connect()
        try:
            return store.deactivate_user_rule(conn, user_id, bank, rule_id)
        finally:
            conn.close()

    def set_bank_rule(self, bank: str, pattern: str, enabled: bool) -> Rule:
        """Turn a bank-wide rule on or off. Built-in rules are never removed."""
        conn = self._connect()
        try:
            return store.set_bank_rule_enabled(conn, bank, pattern, enabled)
        finally:
            conn.close()
