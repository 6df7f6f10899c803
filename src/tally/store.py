"""Read/write access to bank rules, user rules and usage events.

Every function takes an open connection. ``sqlite3.Error`` never leaves this
module raw: it is re-raised as ``PersistenceFailure``.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone

from tally.errors import PersistenceFailure, RuleNotFound
from tally.models import IdFormat, PatternType, Rule, RuleOrigin, UsageRecord

STAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

USER_RULE_UPSERT = """
INSERT INTO user_rules (id, user_id, bank, pattern, pattern_type, category, subcategory,
                        priority, active, origin, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (user_id, bank, pattern, pattern_type) DO UPDATE SET
    category = excluded.category,
    subcategory = excluded.subcategory,
    priority = excluded.priority,
    active = excluded.active,
    updated_at = excluded.updated_at
"""


def utc_stamp(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(STAMP_FORMAT)


def encode_id(value: uuid.UUID, id_format: IdFormat = IdFormat.STANDARD) -> str:
    return value.hex if IdFormat(id_format) is IdFormat.HEX else str(value)


def decode_id(text: str) -> uuid.UUID:
    """Accepts both the hyphenated and the 32-hex-digit encodings."""
    return uuid.UUID(str(text).strip())


@contextmanager
def persistence(action: str):
    try:
        yield
    except sqlite3.Error as exc:
        raise PersistenceFailure(f"Store error while {action}: {exc}") from exc


def _bank_rule(row: sqlite3.Row) -> Rule:
    return Rule(
        id=str(row["id"]),
        bank=row["bank"],
        pattern=row["pattern"],
        pattern_type=PatternType(row["pattern_type"]),
        category=row["category"],
        subcategory=row["subcategory"],
        priority=row["priority"],
        active=bool(row["enabled"]),
        origin=RuleOrigin(row["origin"]),
        built_in=bool(row["built_in"]),
    )


def _user_rule(row: sqlite3.Row) -> Rule:
    return Rule(
        id=row["id"],
        bank=row["bank"],
        pattern=row["pattern"],
        pattern_type=PatternType(row["pattern_type"]),
        category=row["category"],
        subcategory=row["subcategory"],
        priority=row["priority"],
        active=bool(row["active"]),
        origin=RuleOrigin(row["origin"]),
        user_id=row["user_id"],
        hit_count=row["hit_count"],
        last_hit_at=row["last_hit_at"],
    )


# --- Bank rules ---


def get_bank_rules(conn: sqlite3.Connection, bank: str, enabled_only: bool = True) -> list[Rule]:
    sql = "SELECT * FROM bank_rules WHERE bank = ?"
    if enabled_only:
        sql += " AND enabled = 1"
    with persistence("reading bank rules"):
        rows = conn.execute(sql + " ORDER BY id", (bank.strip(),)).fetchall()
    return [_bank_rule(r) for r in rows]


def find_bank_rule(conn: sqlite3.Connection, bank: str, pattern: str) -> Rule | None:
    with persistence("reading bank rules"):
        row = conn.execute(
            "SELECT * FROM bank_rules WHERE bank = ? AND pattern = ?", (bank.strip(), pattern.strip())
        ).fetchone()
    return _bank_rule(row) if row else None


def set_bank_rule_enabled(conn: sqlite3.Connection, bank: str, pattern: str, enabled: bool) -> Rule:
    rule = find_bank_rule(conn, bank, pattern)
    if rule is None:
        raise RuleNotFound(f"No bank rule '{pattern}' for bank {bank}")
    with persistence("updating a bank rule"):
        conn.execute("UPDATE bank_rules SET enabled = ? WHERE id = ?", (int(enabled), int(rule.id)))
        conn.commit()
    return replace(rule, active=enabled)


# --- User rules ---


def get_user_rules(
    conn: sqlite3.Connection, user_id: str, bank: str, only_active: bool = False
) -> list[Rule]:
    """User rules in registration order."""
    sql = "SELECT * FROM user_rules WHERE user_id = ? AND bank = ?"
    if only_active:
        sql += " AND active = 1"
    with persistence("reading user rules"):
        rows = conn.execute(sql + " ORDER BY seq", (user_id, bank.strip())).fetchall()
    return [_user_rule(r) for r in rows]


def get_user_rule(conn: sqlite3.Connection, user_id: str, bank: str, rule_id: str) -> Rule | None:
    try:
        parsed = decode_id(rule_id)
    except ValueError:
        return None
    with persistence("reading user rules"):
        row = conn.execute(
            "SELECT * FROM user_rules WHERE user_id = ? AND bank = ? AND id IN (?, ?)",
            (user_id, bank.strip(), str(parsed), parsed.hex),
        ).fetchone()
    return _user_rule(row) if row else None


def upsert_user_rule(
    conn: sqlite3.Connection, rule: Rule, id_format: IdFormat = IdFormat.STANDARD
) -> Rule:
    """Insert or update the rule keyed by (user, bank, pattern, pattern type).

    A single statement, so concurrent writers for the same key end with one
    row: the existing id is kept and the last writer's values win.
    """
    now = utc_stamp()
    with persistence("saving a user rule"):
        conn.execute(
            USER_RULE_UPSERT,
            (
                encode_id(uuid.uuid4(), id_format), rule.user_id, rule.bank, rule.pattern,
                rule.pattern_type.value, rule.category, rule.subcategory, rule.priority,
                int(rule.active), rule.origin.value, now, now,
            ),
        )
        row = conn.execute(
            "SELECT * FROM user_rules WHERE user_id = ? AND bank = ? AND pattern = ? AND pattern_type = ?",
            (rule.user_id, rule.bank, rule.pattern, rule.pattern_type.value),
        ).fetchone()
        conn.commit()
    return _user_rule(row)


def deactivate_user_rule(conn: sqlite3.Connection, user_id: str, bank: str, rule_id: str) -> Rule:
    rule = get_user_rule(conn, user_id, bank, rule_id)
    if rule is None:
        raise RuleNotFound(f"No rule {rule_id} for user {user_id} and bank {bank}")
    with persistence("deactivating a user rule"):
        conn.execute(
            "UPDATE user_rules SET active = 0, updated_at = ? WHERE id = ?", (utc_stamp(), rule.id)
        )
        conn.commit()
    rule.active = False
    return rule


def record_rule_hits(
    conn: sqlite3.Connection, hits: dict[str, int], moment: datetime | None = None, commit: bool = True
) -> None:
    """Add per-rule match counts. With ``commit=False`` the caller owns the transaction."""
    if not hits:
        return
    stamp = utc_stamp(moment)
    with persistence("recording rule hits"):
        conn.executemany(
            "UPDATE user_rules SET hit_count = hit_count + ?, last_hit_at = ? WHERE id = ?",
            [(count, stamp, rule_id) for rule_id, count in hits.items()],
        )
        if commit:
            conn.commit()


def migrate_id_format(conn: sqlite3.Connection, id_format: IdFormat) -> int:
    """Re-encode every stored user rule id. Returns the number of rows changed."""
    changed = 0
    with persistence("migrating rule ids"):
        rows = conn.execute("SELECT seq, id FROM user_rules").fetchall()
        for row in rows:
            encoded = encode_id(decode_id(row["id"]), id_format)
            if encoded != row["id"]:
                conn.execute("UPDATE user_rules SET id = ? WHERE seq = ?", (encoded, row["seq"]))
                changed += 1
        conn.commit()
    return changed


def list_user_rules(
    conn: sqlite3.Connection, user_id: str, bank: str, only_active: bool = True
) -> list[Rule]:
    """User rules for display, ordered by priority then pattern."""
    sql = "SELECT * FROM user_rules WHERE user_id = ? AND bank = ?"
    if only_active:
        sql += " AND active = 1"
    with persistence("listing user rules"):
        rows = conn.execute(sql + " ORDER BY priority, pattern, seq", (user_id, bank.strip())).fetchall()
    return [_user_rule(r) for r in rows]


# --- Usage events ---


def count_usage(
    conn: sqlite3.Connection, user_id: str, start: datetime, end: datetime | None = None
) -> int:
    """Count events from ``start`` on, up to ``end`` when one is given."""
    sql = "SELECT count(*) FROM usage_events WHERE user_id = ? AND parsed_at >= ?"
    params = [user_id, utc_stamp(start)]
    if end is not None:
        sql += " AND parsed_at <= ?"
        params.append(utc_stamp(end))
    with persistence("counting usage"):
        row = conn.execute(sql, params).fetchone()
    return row[0]


def insert_usage(conn: sqlite3.Connection, record: UsageRecord) -> None:
    """Append a usage event. The caller owns the transaction."""
    conn.execute(
        "INSERT INTO usage_events (user_id, bank, parsed_at) VALUES (?, ?, ?)",
        (record.user_id, record.bank, record.parsed_at),
    )