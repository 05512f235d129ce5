"""Versioned, forward-only schema migrations for the ledger.

Each migration runs once, inside its own transaction, and is recorded in the
``schema_version`` table. Files written by the original single-budget tool
(tables present, no ``schema_version``) are adopted as version 1.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Callable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[Connection, str], None]


def table_exists(conn: Connection, table_name: str) -> bool:
    """Check if a table exists."""
    return table_name in inspect(conn).get_table_names()


def column_exists(conn: Connection, table_name: str, column_name: str) -> bool:
    """Check if a column exists in a table."""
    columns = [col["name"] for col in inspect(conn).get_columns(table_name)]
    return column_name in columns


def _initial_schema(conn: Connection, legacy_budget_id: str) -> None:
    # Layout of the original tool: one budget, key = bank transaction id,
    # amounts in dollars and timestamps as ISO-8601 strings.
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS synced_transactions (
            id TEXT PRIMARY KEY,
            up_account_id TEXT NOT NULL,
            up_account_name TEXT NOT NULL,
            up_amount REAL NOT NULL,
            up_date TEXT NOT NULL,
            up_description TEXT NOT NULL,
            up_raw_json TEXT NOT NULL,
            ynab_account_id TEXT NOT NULL,
            ynab_transaction_id TEXT,
            ynab_amount INTEGER NOT NULL,
            sync_timestamp TEXT NOT NULL,
            status TEXT NOT NULL
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS sync_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sync_date TEXT NOT NULL,
            date_range_start TEXT NOT NULL,
            date_range_end TEXT NOT NULL,
            accounts_processed INTEGER NOT NULL,
            transactions_processed INTEGER NOT NULL,
            transactions_synced INTEGER NOT NULL,
            transactions_skipped INTEGER NOT NULL,
            transactions_failed INTEGER NOT NULL,
            errors TEXT,
            sync_duration_seconds REAL NOT NULL
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS merchant_rules (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            merchant_pattern TEXT NOT NULL UNIQUE,
            category_id TEXT NOT NULL,
            category_name TEXT NOT NULL,
            payee_name TEXT NOT NULL,
            confidence REAL NOT NULL DEFAULT 1.0,
            usage_count INTEGER NOT NULL DEFAULT 0,
            last_used TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))


def _scope_by_budget(conn: Connection, legacy_budget_id: str) -> None:
    # SQLite cannot change a primary key in place: rebuild each table,
    # converting dollars to cents and ISO strings to SQLite datetimes.
    params = {"budget_id": legacy_budget_id}

    conn.execute(text("""
        CREATE TABLE synced_transactions_v2 (
            id TEXT NOT NULL,
            budget_id TEXT NOT NULL,
            source_account_id TEXT NOT NULL,
            source_account_name TEXT NOT NULL,
            source_amount INTEGER NOT NULL,
            source_date DATETIME NOT NULL,
            source_description TEXT NOT NULL,
            source_raw_json TEXT NOT NULL,
            target_account_id TEXT NOT NULL,
            target_transaction_id TEXT,
            target_amount INTEGER NOT NULL,
            sync_timestamp DATETIME NOT NULL,
            status TEXT NOT NULL,
            PRIMARY KEY (id, budget_id)
        )
    """))
    conn.execute(text("""
        INSERT INTO synced_transactions_v2 (
            id, budget_id, source_account_id, source_account_name, source_amount,
            source_date, source_description, source_raw_json, target_account_id,
            target_transaction_id, target_amount, sync_timestamp, status
        )
        SELECT
            id, :budget_id, up_account_id, up_account_name,
            CAST(ROUND(up_amount * 100) AS INTEGER),
            COALESCE(datetime(up_date), up_date), up_description, up_raw_json,
            ynab_account_id, ynab_transaction_id, ynab_amount,
            COALESCE(datetime(sync_timestamp), sync_timestamp), status
        FROM synced_transactions
    """), params)
    conn.execute(text("DROP TABLE synced_transactions"))
    conn.execute(text("ALTER TABLE synced_transactions_v2 RENAME TO synced_transactions"))

    conn.execute(text("""
        CREATE TABLE sync_log_v2 (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            budget_id TEXT NOT NULL,
            sync_date DATETIME NOT NULL,
            date_range_start DATETIME NOT NULL,
            date_range_end DATETIME NOT NULL,
            accounts_processed INTEGER NOT NULL,
            transactions_processed INTEGER NOT NULL,
            transactions_synced INTEGER NOT NULL,
            transactions_skipped INTEGER NOT NULL,
            transactions_failed INTEGER NOT NULL,
            errors TEXT,
            sync_duration_seconds REAL NOT NULL
        )
    """))
    conn.execute(text("""
        INSERT INTO sync_log_v2 (
            id, budget_id, sync_date, date_range_start, date_range_end,
            accounts_processed, transactions_processed, transactions_synced,
            transactions_skipped, transactions_failed, errors, sync_duration_seconds
        )
        SELECT
            id, :budget_id,
            COALESCE(datetime(sync_date), sync_date),
            COALESCE(datetime(date_range_start), date_range_start),
            COALESCE(datetime(date_range_end), date_range_end),
            accounts_processed, transactions_processed, transactions_synced,
            transactions_skipped, transactions_failed, errors, sync_duration_seconds
        FROM sync_log
    """), params)
    conn.execute(text("DROP TABLE sync_log"))
    conn.execute(text("ALTER TABLE sync_log_v2 RENAME TO sync_log"))

    conn.execute(text("""
        CREATE TABLE merchant_rules_v2 (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            budget_id TEXT NOT NULL,
            merchant_pattern TEXT NOT NULL,
            category_id TEXT NOT NULL,
            category_name TEXT NOT NULL,
            payee_name TEXT NOT NULL,
            confidence REAL NOT NULL DEFAULT 1.0,
            usage_count INTEGER NOT NULL DEFAULT 0,
            last_used DATETIME,
            created_at DATETIME NOT NULL,
            updated_at DATETIME NOT NULL,
            CONSTRAINT uq_budget_merchant_pattern UNIQUE (budget_id, merchant_pattern)
        )
    """))
    conn.execute(text("""
        INSERT INTO merchant_rules_v2 (
            id, budget_id, merchant_pattern, category_id, category_name, payee_name,
            confidence, usage_count, last_used, created_at, updated_at
        )
        SELECT
            id, :budget_id, merchant_pattern, category_id, category_name, payee_name,
            confidence, usage_count, datetime(last_used),
            COALESCE(datetime(created_at), created_at),
            COALESCE(datetime(updated_at), updated_at)
        FROM merchant_rules
    """), params)
    conn.execute(text("DROP TABLE merchant_rules"))
    conn.execute(text("ALTER TABLE merchant_rules_v2 RENAME TO merchant_rules"))


def _add_error_message(conn: Connection, legacy_budget_id: str) -> None:
    if not column_exists(conn, "synced_transactions", "error_message"):
        conn.execute(text("ALTER TABLE synced_transactions ADD COLUMN error_message TEXT"))
    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS ix_synced_transactions_budget_status "
        "ON synced_transactions (budget_id, status)"
    ))


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "initial schema", _initial_schema),
    Migration(2, "scope ledger by budget id", _scope_by_budget),
    Migration(3, "record failure reasons", _add_error_message),
)

LATEST_VERSION = MIGRATIONS[-1].version


def _ensure_version_table(conn: Connection) -> None:
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            description TEXT NOT NULL,
            applied_at DATETIME NOT NULL
        )
    """))


def _record(conn: Connection, migration: Migration) -> None:
    conn.execute(
        text(
            "INSERT INTO schema_version (version, description, applied_at) "
            "VALUES (:version, :description, :applied_at)"
        ),
        {
            "version": migration.version,
            "description": migration.description,
            "applied_at": datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S.%f"),
        },
    )


def current_version(engine: Engine) -> int:
    """Return the applied schema version, 0 for an empty database."""
    with engine.connect() as conn:
        if not table_exists(conn, "schema_version"):
            return 1 if table_exists(conn, "synced_transactions") else 0
        version = conn.execute(text("SELECT MAX(version) FROM schema_version")).scalar()
        return version or 0


def run_migrations(engine: Engine, legacy_budget_id: str = "") -> list[int]:
    """Apply every pending migration in order.

    Args:
        engine: Engine bound to the ledger database
        legacy_budget_id: Budget id assigned to rows written before the ledger
            was budget-scoped

    Returns:
        Versions applied by this call (empty when already up to date)
    """
    with engine.begin() as conn:
        adopt_legacy = (
            not table_exists(conn, "schema_version")
            and table_exists(conn, "synced_transactions")
        )
        _ensure_version_table(conn)
        if adopt_legacy:
            logger.info("Adopting existing ledger written by the single-budget tool as version 1")
            _record(conn, MIGRATIONS[0])

    applied = []
    for migration in MIGRATIONS:
        if migration.version <= current_version(engine):
            continue
        logger.info("Applying ledger migration %d: %s", migration.version, migration.description)
        with engine.begin() as conn:
            migration.apply(conn, legacy_budget_id)
            _record(conn, migration)
        applied.append(migration.version)

    return applied
