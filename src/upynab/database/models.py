"""SQLAlchemy models for the upynab ledger.

The models describe the latest schema version. Tables are created and evolved
by ``upynab.database.migrations``, never by ``metadata.create_all``.
"""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Float,
    Index,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

Base = declarative_base()


def _utcnow() -> datetime:
    # Stored naive; every column holds UTC.
    return datetime.now(UTC).replace(tzinfo=None)


class SyncedTransaction(Base):
    """Per-transaction sync status, scoped by budget."""

    __tablename__ = "synced_transactions"

    id = Column(String, primary_key=True)
    budget_id = Column(String, primary_key=True)
    source_account_id = Column(String, nullable=False)
    source_account_name = Column(String, nullable=False)
    source_amount = Column(Integer, nullable=False)
    source_date = Column(DateTime, nullable=False)
    source_description = Column(String, nullable=False)
    source_raw_json = Column(Text, nullable=False)
    target_account_id = Column(String, nullable=False)
    target_transaction_id = Column(String, nullable=True)
    target_amount = Column(Integer, nullable=False)
    sync_timestamp = Column(DateTime, default=_utcnow, nullable=False)
    status = Column(String, nullable=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (Index("ix_synced_transactions_budget_status", "budget_id", "status"),)


class SyncLog(Base):
    """One row per completed sync run."""

    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    budget_id = Column(String, nullable=False)
    sync_date = Column(DateTime, default=_utcnow, nullable=False)
    date_range_start = Column(DateTime, nullable=False)
    date_range_end = Column(DateTime, nullable=False)
    accounts_processed = Column(Integer, nullable=False)
    transactions_processed = Column(Integer, nullable=False)
    transactions_synced = Column(Integer, nullable=False)
    transactions_skipped = Column(Integer, nullable=False)
    transactions_failed = Column(Integer, nullable=False)
    errors = Column(Text, nullable=True)
    sync_duration_seconds = Column(Float, nullable=False)


class MerchantRule(Base):
    """Merchant pattern to category rule, scoped by budget."""

    __tablename__ = "merchant_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    budget_id = Column(String, nullable=False)
    merchant_pattern = Column(String, nullable=False)
    category_id = Column(String, nullable=False)
    category_name = Column(String, nullable=False)
    payee_name = Column(String, nullable=False)
    confidence = Column(Float, nullable=False, default=1.0)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("budget_id", "merchant_pattern", name="uq_budget_merchant_pattern"),
    )


def create_ledger_engine(database_url: str) -> Engine:
    """Create an engine whose transactions also cover DDL statements.

    pysqlite otherwise runs CREATE/DROP/ALTER outside of the transaction,
    which would make a half-applied migration possible.
    """
    engine = create_engine(database_url, echo=False)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    return sessionmaker(bind=engine, expire_on_commit=False)
