import sqlite3
import threading
import uuid
from datetime import datetime, timezone

import pytest

from tally import store
from tally.db import get_connection
from tally.errors import PersistenceFailure, RuleNotFound
from tally.models import IdFormat, PatternType, Rule, RuleOrigin, UsageRecord


def _rule(pattern="PAGO", category="Gastos", priority=100, user="ana", pattern_type=PatternType.CONTAINS):
    return Rule(id=None, bank="galicia", pattern=pattern, category=category, priority=priority,
                pattern_type=pattern_type, origin=RuleOrigin.LEARNED, user_id=user)


def test_encode_and_decode_ids():
    value = uuid.UUID("12345678-1234-5678-1234-567812345678")
    assert store.encode_id(value) == "12345678-1234-5678-1234-567812345678"
    assert store.encode_id(value, IdFormat.HEX) == "12345678123456781234567812345678"
    assert store.decode_id("12345678123456781234567812345678") == value
    assert store.decode_id(" 12345678-1234-5678-1234-567812345678 ") == value


def test_utc_stamp_format():
    moment = datetime(2024, 1, 2, 3, 4, 5, 600000, tzinfo=timezone.utc)
    assert store.utc_stamp(moment) == "2024-01-02T03:04:05.600000Z"


def test_upsert_inserts_then_updates_in_place(db):
    first = store.upsert_user_rule(db, _rule(category="Gastos"))
    second = store.upsert_user_rule(db, _rule(category="Personal", priority=5))

    assert second.id == first.id
    assert second.category == "Personal"
    assert second.priority == 5
    rows = db.execute("SELECT count(*) FROM user_rules").fetchone()[0]
    assert rows == 1


def test_upsert_key_includes_pattern_type(db):
    store.upsert_user_rule(db, _rule())
    store.upsert_user_rule(db, _rule(pattern_type=PatternType.STARTS_WITH))
    assert len(store.get_user_rules(db, "ana", "galicia")) == 2


def test_upsert_hex_ids(db):
    rule = store.upsert_user_rule(db, _rule(), IdFormat.HEX)
    assert len(rule.id) == 32
    assert "-" not in rule.id


def test_upsert_reactivates_rule(db):
    rule = store.upsert_user_rule(db, _rule())
    store.deactivate_user_rule(db, "ana", "galicia", rule.id)
    again = store.upsert_user_rule(db, _rule())
    assert again.active is True


def test_deactivate_accepts_either_id_format(db):
    rule = store.upsert_user_rule(db, _rule())
    hex_id = store.decode_id(rule.id).hex
    deactivated = store.deactivate_user_rule(db, "ana", "galicia", hex_id)
    assert deactivated.active is False
    assert store.get_user_rules(db, "ana", "galicia", only_active=True) == []
    assert len(store.get_user_rules(db, "ana", "galicia")) == 1


def test_deactivate_unknown_or_foreign_rule(db):
    rule = store.upsert_user_rule(db, _rule())
    with pytest.raises(RuleNotFound):
        store.deactivate_user_rule(db, "beto", "galicia", rule.id)
    with pytest.raises(RuleNotFound):
        store.deactivate_user_rule(db, "ana", "galicia", "not-a-uuid")
    with pytest.raises(RuleNotFound):
        store.deactivate_user_rule(db, "ana", "galicia", str(uuid.uuid4()))


def test_list_orders_by_priority_then_pattern(db):
    store.upsert_user_rule(db, _rule(pattern="ZETA", priority=1))
    store.upsert_user_rule(db, _rule(pattern="BETA", priority=50))
    store.upsert_user_rule(db, _rule(pattern="ALFA", priority=50))
    assert [r.pattern for r in store.list_user_rules(db, "ana", "galicia")] == ["ZETA", "ALFA", "BETA"]


def test_record_rule_hits(db):
    rule = store.upsert_user_rule(db, _rule())
    store.record_rule_hits(db, {rule.id: 3})
    store.record_rule_hits(db, {rule.id: 1})
    stored = store.get_user_rule(db, "ana", "galicia", rule.id)
    assert stored.hit_count == 4


def test_migrate_id_format(db):
    store.upsert_user_rule(db, _rule(pattern="UNO"))
    store.upsert_user_rule(db, _rule(pattern="DOS"), IdFormat.HEX)

    assert store.migrate_id_format(db, IdFormat.HEX) == 1
    assert all(len(r.id) == 32 for r in store.get_user_rules(db, "ana", "galicia"))
    assert store.migrate_id_format(db, IdFormat.HEX) == 0
    assert store.migrate_id_format(db, IdFormat.STANDARD) == 2
    assert all(len(r.id) == 36 for r in store.get_user_rules(db, "ana", "galicia"))


def test_concurrent_upserts_produce_one_row(db_path):
    barrier = threading.Barrier(8)
    errors = []

    def worker(n):
        conn = get_connection(db_path)
        try:
            barrier.wait()
            store.upsert_user_rule(conn, _rule(category=f"Cat {n}"))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)
        finally:
            conn.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    conn = get_connection(db_path)
    rows = store.get_user_rules(conn, "ana", "galicia")
    conn.close()
    assert len(rows) == 1
    assert rows[0].category.startswith("Cat ")


def test_usage_counting_window(db):
    jan = datetime(2024, 1, 15, tzinfo=timezone.utc)
    feb = datetime(2024, 2, 1, tzinfo=timezone.utc)
    store.insert_usage(db, UsageRecord("ana", "galicia", store.utc_stamp(jan)))
    store.insert_usage(db, UsageRecord("ana", "galicia", store.utc_stamp(feb)))
    store.insert_usage(db, UsageRecord("beto", "galicia", store.utc_stamp(jan)))
    db.commit()
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    end = datetime(2024, 1, 31, 23, 59, tzinfo=timezone.utc)
    assert store.count_usage(db, "ana", start, end) == 1
    assert store.count_usage(db, "ana", start) == 2


def test_sqlite_errors_become_persistence_failures(tmp_path):
    conn = sqlite3.connect(tmp_path / "empty.db")
    conn.row_factory = sqlite3.Row
    with pytest.raises(PersistenceFailure) as exc_info:
        store.get_bank_rules(conn, "galicia")
    assert isinstance(exc_info.value.__cause__, sqlite3.Error)
    conn.close()


def test_toggle_bank_rule_by_pattern(db):
    rule = store.set_bank_rule_enabled(db, "galicia", "PAGO TARJETA", False)
    assert rule.built_in is True
    assert all(r.pattern != "PAGO TARJETA" for r in store.get_bank_rules(db, "galicia"))

    store.set_bank_rule_enabled(db, "galicia", "PAGO TARJETA", True)
    assert store.find_bank_rule(db, "galicia", "PAGO TARJETA").active is True


def test_toggle_unknown_bank_rule(db):
    with pytest.raises(RuleNotFound):
        store.set_bank_rule_enabled(db, "galicia", "NO EXISTE", False)
