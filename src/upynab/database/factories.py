"""Ledger factory functions for creating ledger instances."""

import os
from pathlib import Path
from typing import Optional

from upynab.config import default_home
from upynab.database.sqlalchemy_db import SQLAlchemyLedger


def create_sqlite_ledger(
    database_path: Optional[str] = None, legacy_budget_id: str = ""
) -> SQLAlchemyLedger:
    """Create a SQLite ledger instance.

    Args:
        database_path: Path to SQLite database file. If None, checks UPYNAB_DB_PATH
            environment variable, then defaults to <home>/sync.db
        legacy_budget_id: Budget id assigned to rows of a pre-profile ledger when
            it is migrated

    Returns:
        SQLAlchemyLedger instance configured for SQLite
    """
    if database_path is None:
        # Check environment variable
        database_path = os.environ.get("UPYNAB_DB_PATH")

    if database_path is None:
        db_dir = default_home()
        db_dir.mkdir(parents=True, exist_ok=True)
        database_path = str(db_dir / "sync.db")
    else:
        Path(database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    database_url = f"sqlite:///{Path(database_path).expanduser()}"
    return SQLAlchemyLedger(database_url, legacy_budget_id=legacy_budget_id)
