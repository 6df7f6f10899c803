import logging
import sqlite3
from pathlib import Path

from tally.matching import parse_pattern_type

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS bank_rules (
    id INTEGER PRIMARY KEY,
    bank TEXT NOT NULL,
    pattern TEXT NOT NULL,
    pattern_type TEXT NOT NULL DEFAULT 'contains',
    category TEXT NOT NULL,
    subcategory TEXT,
    priority INTEGER NOT NULL DEFAULT 0,
    enabled INTEGER NOT NULL DEFAULT 1,
    built_in INTEGER NOT NULL DEFAULT 0,
    origin TEXT NOT NULL DEFAULT 'system',
    updated_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE (bank, pattern)
);

CREATE INDEX IF NOT EXISTS ix_bank_rules_bank_enabled_priority
    ON bank_rules (bank, enabled, priority);

CREATE TABLE IF NOT EXISTS user_rules (
    seq INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    bank TEXT NOT NULL,
    pattern TEXT NOT NULL,
    pattern_type TEXT NOT NULL DEFAULT 'contains',
    category TEXT NOT NULL,
    subcategory TEXT,
    priority INTEGER NOT NULL DEFAULT 100,
    active INTEGER NOT NULL DEFAULT 1,
    origin TEXT NOT NULL DEFAULT 'learned',
    hit_count INTEGER NOT NULL DEFAULT 0,
    last_hit_at TEXT,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE (user_id, bank, pattern, pattern_type)
);

CREATE TABLE IF NOT EXISTS usage_events (
    id INTEGER PRIMARY KEY,
    user_id TEXT NOT NULL,
    bank TEXT NOT NULL,
    parsed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_usage_events_user_parsed_at
    ON usage_events (user_id, parsed_at);
"""

# bank -> (pattern, pattern_type, category, subcategory, priority)
DEFAULT_BANK_RULES = {
    "galicia": [
        ("PAGO TARJETA", "contains", "Gastos", "Tarjetas", 10),
        ("IMPUESTO DEBITOS LEY 25413", "contains", "Impuestos", "Ley 25413", 10),
        ("IMPUESTO CREDITOS LEY 25413", "contains", "Impuestos", "Ley 25413", 10),
        ("COMISION MANTENIMIENTO CUENTA", "contains", "Gastos bancarios", "Comisiones", 20),
        ("PERCEPCION IVA", "contains", "Impuestos", "IVA", 20),
        ("ACREDITACION HABERES", "contains", "Ingresos", "Sueldos", 30),
    ],
    "supervielle": [
        ("IMPUESTO DEBITOS Y CREDITOS", "contains", "Impuestos", "Ley 25413", 10),
        ("PAGO SUELDOS", "contains", "Sueldos", None, 20),
        ("COBRANZAS VISA", "contains", "Ingresos", "Tarjetas", 20),
        ("CREDITO INTERBANCARIO", "contains", "Ingresos", "Transferencias", 50),
    ],
    "santander": [
        ("IMPUESTO LEY 25413", "contains", "Impuestos", "Ley 25413", 10),
        ("COMPRA TARJETA DEBITO", "contains", "Gastos", "Tarjetas", 30),
        ("TRANSFERENCIA ENVIADA", "contains", "Transferencias", "Enviadas", 50),
    ],
    "bbva": [
        ("IMPUESTO LEY 25413", "contains", "Impuestos", "Ley 25413", 10),
        ("PAGO TARJETA VISA", "contains", "Gastos", "Tarjetas", 10),
        ("TRANSFERENCIA RECIBIDA", "contains", "Ingresos", "Transferencias", 50),
    ],
}


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and a busy timeout for concurrent writers."""
    conn = sqlite3.connect(str(db_path), timeout=30)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def seed_bank_rules(conn: sqlite3.Connection, rules_by_bank: dict) -> int:
    """Insert built-in bank rules, skipping any (bank, pattern) already present. Idempotent."""
    inserted = 0
    for bank, items in rules_by_bank.items():
        for item in items:
            if not isinstance(item, dict):
                pattern, pattern_type, category, subcategory, priority = item
                item = {
                    "pattern": pattern, "pattern_type": pattern_type, "category": category,
                    "subcategory": subcategory, "priority": priority,
                }
            pattern = item["pattern"].strip()
            existing = conn.execute(
                "SELECT 1 FROM bank_rules WHERE bank = ? AND pattern = ?", (bank, pattern)
            ).fetchone()
            if existing is not None:
                continue
            conn.execute(
                "INSERT INTO bank_rules (bank, pattern, pattern_type, category, subcategory, priority, "
                "enabled, built_in, origin) VALUES (?, ?, ?, ?, ?, ?, 1, 1, 'system')",
                (
                    bank, pattern, parse_pattern_type(item.get("pattern_type")).value, item["category"].strip(),
                    item.get("subcategory"), item.get("priority", 0),
                ),
            )
            logger.info("Seeded bank rule: %s | %s", bank, pattern)
            inserted += 1
    conn.commit()
    return inserted


def init_db(conn: sqlite3.Connection, extra_rules: dict | None = None) -> None:
    """Create tables and seed default bank rules. Idempotent."""
    conn.executescript(SCHEMA)
    seed_bank_rules(conn, DEFAULT_BANK_RULES)
    if extra_rules:
        seed_bank_rules(conn, extra_rules)
