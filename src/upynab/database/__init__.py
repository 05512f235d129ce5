"""Ledger layer for upynab."""

from upynab.database.base import Ledger
from upynab.database.factories import create_sqlite_ledger
from upynab.database.sqlalchemy_db import SQLAlchemyLedger

__all__ = ["Ledger", "SQLAlchemyLedger", "create_sqlite_ledger"]
