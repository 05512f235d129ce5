"""Mapper functions to convert between domain models and SQLAlchemy models.

SQLite hands back naive datetimes; everything the ledger stores is UTC, so the
mappers re-attach the zone on the way out and strip it on the way in.
"""

from datetime import datetime, UTC
from typing import Optional

from upynab.domain import entities as domain
from upynab.database.models import (
    MerchantRule as ORMMerchantRule,
    SyncLog as ORMSyncLog,
    SyncedTransaction as ORMSyncedTransaction,
)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime read from storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to naive UTC for storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


def synced_transaction_to_domain(orm_record: ORMSyncedTransaction) -> domain.SyncedTransaction:
    """Convert SQLAlchemy SyncedTransaction model to domain entity."""
    return domain.SyncedTransaction(
        id=orm_record.id,
        budget_id=orm_record.budget_id,
        source_account_id=orm_record.source_account_id,
        source_account_name=orm_record.source_account_name,
        source_amount=orm_record.source_amount,
        source_date=to_utc(orm_record.source_date),
        source_description=orm_record.source_description,
        source_raw_json=orm_record.source_raw_json,
        target_account_id=orm_record.target_account_id,
        target_transaction_id=orm_record.target_transaction_id,
        target_amount=orm_record.target_amount,
        sync_timestamp=to_utc(orm_record.sync_timestamp),
        status=domain.TransactionStatus.from_storage(orm_record.status),
        error_message=orm_record.error_message,
    )


def synced_transaction_to_orm(record: domain.SyncedTransaction) -> ORMSyncedTransaction:
    """Convert a domain SyncedTransaction to a detached SQLAlchemy model."""
    return ORMSyncedTransaction(
        id=record.id,
        budget_id=record.budget_id,
        source_account_id=record.source_account_id,
        source_account_name=record.source_account_name,
        source_amount=record.source_amount,
        source_date=to_storage(record.source_date),
        source_description=record.source_description,
        source_raw_json=record.source_raw_json,
        target_account_id=record.target_account_id,
        target_transaction_id=record.target_transaction_id,
        target_amount=record.target_amount,
        sync_timestamp=to_storage(record.sync_timestamp),
        status=record.status.value,
        error_message=record.error_message,
    )


def sync_log_to_domain(orm_log: ORMSyncLog) -> domain.SyncLogEntry:
    """Convert SQLAlchemy SyncLog model to domain SyncLogEntry entity."""
    return domain.SyncLogEntry(
        id=orm_log.id,
        budget_id=orm_log.budget_id,
        sync_date=to_utc(orm_log.sync_date),
        date_range_start=to_utc(orm_log.date_range_start),
        date_range_end=to_utc(orm_log.date_range_end),
        accounts_processed=orm_log.accounts_processed,
        transactions_processed=orm_log.transactions_processed,
        transactions_synced=orm_log.transactions_synced,
        transactions_skipped=orm_log.transactions_skipped,
        transactions_failed=orm_log.transactions_failed,
        errors=orm_log.errors,
        sync_duration_seconds=orm_log.sync_duration_seconds,
    )


def merchant_rule_to_domain(orm_rule: ORMMerchantRule) -> domain.MerchantRule:
    """Convert SQLAlchemy MerchantRule model to domain MerchantRule entity."""
    return domain.MerchantRule(
        id=orm_rule.id,
        budget_id=orm_rule.budget_id,
        merchant_pattern=orm_rule.merchant_pattern,
        category_id=orm_rule.category_id,
        category_name=orm_rule.category_name,
        payee_name=orm_rule.payee_name,
        confidence=orm_rule.confidence,
        usage_count=orm_rule.usage_count,
        last_used=to_utc(orm_rule.last_used),
        created_at=to_utc(orm_rule.created_at),
        updated_at=to_utc(orm_rule.updated_at),
    )
