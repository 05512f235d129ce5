"""Sync engine: moves bank transactions into the budget exactly once.

Per transaction the ledger walks through these states::

    (absent) -> candidate -> pending -> synced
                    |           `----> failed
                    `-- amount check fails --> failed (critical, never submitted)

Records left ``pending`` by an interrupted run are demoted to ``failed`` at
the start of the next real run. ``failed`` records are candidates again, so
they are re-attempted on the next run that fetches them. YNAB's import id
deduplication catches the rare case where a submission of an interrupted run
did reach the budget.
"""

import json
import logging
import time
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from upynab.clients.errors import (
    ApiError,
    DuplicateImportError,
    ForbiddenError,
    NetworkError,
    RateLimitedError,
    UnauthorizedError,
)
from upynab.config import ConfigStore, SyncSettings
from upynab.credentials import SOURCE_SERVICE, TARGET_SERVICE, CredentialStore
from upynab.database.base import Ledger
from upynab.domain.amounts import AmountCodec, truncate_import_id
from upynab.domain.entities import (
    AccountMapping,
    BankTransaction,
    BudgetProfile,
    BudgetTransactionRequest,
    Categorization,
    SyncedTransaction,
    SyncLogEntry,
    TransactionStatus,
)
from upynab.domain.errors import (
    ConfigurationError,
    CredentialError,
    DomainError,
    LedgerError,
    MissingAccountMappingsError,
    amount_mismatch,
    missing_token,
    no_account_mappings,
)
from upynab.domain.ports import Classifier, TransactionSink, TransactionSource
from upynab.domain.results import (
    AccountStatus,
    AccountSyncResult,
    AccountSyncSummary,
    DatabaseHealth,
    DateWindow,
    ResultStatus,
    SyncError,
    SyncErrorKind,
    SyncOptions,
    SyncResult,
    SyncStatusReport,
    SyncSummary,
    TransactionResult,
)
from upynab.domain.window import RangeChooser, resolve_window, utcnow

logger = logging.getLogger(__name__)

PAYEE_NAME_MAX_LENGTH = 200
MEMO_MAX_LENGTH = 500
_RETRY_FETCH_CHUNK = 500


def error_kind(error: Exception) -> SyncErrorKind:
    """Classify an exception for the run's error list."""
    if isinstance(error, (UnauthorizedError, ForbiddenError, CredentialError)):
        return SyncErrorKind.AUTHENTICATION
    if isinstance(error, RateLimitedError):
        return SyncErrorKind.RATE_LIMITED
    if isinstance(error, NetworkError):
        return SyncErrorKind.NETWORK
    if isinstance(error, DuplicateImportError):
        return SyncErrorKind.DUPLICATE_TRANSACTION
    if isinstance(error, ApiError):
        return SyncErrorKind.API_ERROR
    if isinstance(error, LedgerError):
        return SyncErrorKind.DATABASE_ERROR
    if isinstance(error, ConfigurationError):
        return SyncErrorKind.CONFIGURATION_ERROR
    return SyncErrorKind.UNKNOWN


def build_memo(transaction: BankTransaction) -> Optional[str]:
    """"<description> | Note: <message>", cut to the budget app's memo limit."""
    parts = [transaction.display_description]
    if transaction.message:
        parts.append(f"Note: {transaction.message}")
    memo = " | ".join(p for p in parts if p)
    return memo[:MEMO_MAX_LENGTH] if memo else None


class SyncService:
    """Orchestrates fetching, filtering, converting and submitting transactions.

    All collaborators are injected; nothing here talks to a concrete
    provider, database or file.
    """

    def __init__(
        self,
        ledger: Ledger,
        source: TransactionSource,
        sink: TransactionSink,
        config_store: ConfigStore,
        credentials: Optional[CredentialStore] = None,
        classifier: Optional[Classifier] = None,
        codec: Optional[AmountCodec] = None,
        settings: Optional[SyncSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
        range_chooser: Optional[RangeChooser] = None,
    ):
        self.ledger = ledger
        self.source = source
        self.sink = sink
        self.config_store = config_store
        self.credentials = credentials
        self.classifier = classifier
        self.settings = settings or config_store.sync_settings()
        self.codec = codec or AmountCodec(self.settings.source_exponent, self.settings.target_exponent)
        self.sleep = sleep
        self.clock = clock or utcnow
        self.range_chooser = range_chooser

    # Public operations
    def sync_transactions(
        self, options: SyncOptions = SyncOptions(), profile_name: Optional[str] = None
    ) -> SyncResult:
        """Run one sync for the named (or active) profile.

        Raises:
            ConfigurationError: If the profile is missing or has no enabled mappings
            CredentialError: If either API token is missing
            DateRangeError: If the requested window is invalid
        """
        profile = self._prepare(profile_name)
        recovered = 0 if options.dry_run else self._recover(profile)
        result = self._run(profile, options)
        return replace(result, recovered_pending=recovered)

    def retry_failed_transactions(
        self, options: SyncOptions = SyncOptions(), profile_name: Optional[str] = None
    ) -> SyncResult:
        """Forget the failed records of the accounts this run syncs, then sync.

        Retried transactions take the same path as new ones. Failed records of
        accounts that are filtered out or disabled are kept for a later run.
        When no window was requested, the window reaches back to the oldest
        failed record being retried.
        """
        profile = self._prepare(profile_name)
        recovered = 0 if options.dry_run else self._recover(profile)

        accounts = {m.source_account_id for m in self._mappings_to_process(profile, options)}
        failed = [r for r in self._all_failed(profile.budget_id) if r.source_account_id in accounts]
        if failed and options.date_range is None and options.days is None and not options.full_sync:
            oldest = min(r.source_date for r in failed)
            options = replace(
                options, date_range=DateWindow(start=oldest - timedelta(seconds=1), end=self.clock())
            )

        if options.dry_run:
            logger.info("[DRY RUN] Would retry %d failed transactions", len(failed))
        else:
            for record in failed:
                self.ledger.delete_failed(record.id, record.budget_id)
            logger.info("Reset %d failed transactions for retry", len(failed))

        result = self._run(profile, options)
        return replace(result, recovered_pending=recovered, retried_failed=len(failed))

    def cleanup_failed_transactions(self, profile_name: Optional[str] = None) -> int:
        """Delete the failed records of the profile's budget."""
        profile = self.config_store.resolve_profile(profile_name)
        count = self.ledger.cleanup_failed(profile.budget_id)
        logger.info("Removed %d failed transactions", count)
        return count

    def fix_incorrectly_marked_transactions(self, profile_name: Optional[str] = None) -> int:
        """Demote records marked synced without a target transaction id."""
        profile = self.config_store.resolve_profile(profile_name)
        count = self.ledger.repair_mismarked_synced(profile.budget_id)
        if count:
            logger.warning("Demoted %d records marked synced without a YNAB id to failed", count)
        return count

    def recover_stuck_pending(self, profile_name: Optional[str] = None) -> int:
        """Demote records left pending by an interrupted run to failed."""
        return self._recover(self.config_store.resolve_profile(profile_name))

    def trim_history(self, days: Optional[int] = None) -> dict[str, int]:
        """Apply age-based retention to ledger records and sync logs."""
        days = days if days is not None else self.settings.retention_days
        counts = self.ledger.trim_older_than(days)
        logger.info(
            "Trimmed %d ledger records and %d sync log entries older than %d days",
            counts["transactions"],
            counts["sync_logs"],
            days,
        )
        return counts

    def get_sync_status(
        self, profile_name: Optional[str] = None, include_balances: bool = False
    ) -> SyncStatusReport:
        """Collect configuration, credential, run and ledger health."""
        profile: Optional[BudgetProfile] = None
        try:
            profile = self.config_store.resolve_profile(profile_name)
        except ConfigurationError as e:
            logger.info("No profile for status report: %s", e)

        is_configured = profile is not None and bool(profile.enabled_mappings)
        has_valid_tokens = self.credentials is not None and all(
            self.credentials.has_token(service) for service in (SOURCE_SERVICE, TARGET_SERVICE)
        )
        budget_id = profile.budget_id if profile else None

        database_health = self._database_health(budget_id)
        last_sync = None
        account_statuses: tuple[AccountStatus, ...] = ()
        if database_health.is_accessible:
            last_sync = self.ledger.last_sync_log(budget_id)
            if profile is not None:
                account_statuses = tuple(
                    self._account_status(mapping, profile.budget_id, include_balances and has_valid_tokens)
                    for mapping in profile.account_mappings
                )

        return SyncStatusReport(
            is_configured=is_configured,
            has_valid_tokens=has_valid_tokens,
            profile_name=profile.name if profile else None,
            last_sync=last_sync,
            account_statuses=account_statuses,
            database_health=database_health,
        )

    # Run orchestration
    def _prepare(self, profile_name: Optional[str]) -> BudgetProfile:
        if self.credentials is not None:
            for service in (SOURCE_SERVICE, TARGET_SERVICE):
                if not self.credentials.has_token(service):
                    raise CredentialError(missing_token(service))
        profile = self.config_store.resolve_profile(profile_name)
        if not profile.enabled_mappings:
            raise MissingAccountMappingsError(no_account_mappings(profile.name))
        return profile

    def _recover(self, profile: BudgetProfile) -> int:
        count = self.ledger.reset_stuck_pending(profile.budget_id)
        if count:
            logger.warning("Recovered %d transactions stuck in pending; they will be retried", count)
        return count

    def _mappings_to_process(self, profile: BudgetProfile, options: SyncOptions) -> list[AccountMapping]:
        mappings = list(profile.enabled_mappings)
        if options.account_filter:
            mappings = [m for m in mappings if m.source_account_id in options.account_filter]
        return mappings

    def _all_failed(self, budget_id: str) -> list[SyncedTransaction]:
        limit = _RETRY_FETCH_CHUNK
        while True:
            records = self.ledger.list_failed(limit=limit, budget_id=budget_id)
            if len(records) < limit:
                return records
            limit *= 2

    def _run(self, profile: BudgetProfile, options: SyncOptions) -> SyncResult:
        started = time.monotonic()
        run_id = str(uuid.uuid4())
        window = resolve_window(
            options,
            self.clock(),
            default_window_hours=self.settings.default_window_hours,
            max_custom_range_days=self.settings.max_custom_range_days,
            range_chooser=self.range_chooser,
            clock=self.clock,
        )
        logger.info(
            "%sStarting sync for profile '%s': %s",
            "[DRY RUN] " if options.dry_run else "",
            profile.name,
            window.describe(),
        )

        mappings = self._mappings_to_process(profile, options)
        if options.account_filter and not mappings:
            logger.warning("No enabled account mapping matches the account filter")

        categorization = profile.categorization
        use_classifier = self.classifier is not None and (
            options.enable_categorization
            or (categorization.enabled and categorization.auto_apply_during_sync)
        )

        account_results: list[AccountSyncResult] = []
        errors: list[SyncError] = []
        for mapping in mappings:
            logger.info("Processing account: %s", mapping.display_name)
            try:
                account_result = self._sync_account(mapping, profile, window, options, use_classifier)
            except (ApiError, DomainError) as e:
                error = SyncError(
                    kind=error_kind(e),
                    message=f"Failed to sync account {mapping.display_name}: {e}",
                    account_id=mapping.source_account_id,
                )
                logger.error("%s", error.message)
                errors.append(error)
                continue
            account_results.append(account_result)
            errors.extend(account_result.errors)

        summary = self._summarize(account_results, time.monotonic() - started)
        if not options.dry_run:
            log_error = self._append_sync_log(profile.budget_id, window, account_results, summary, errors)
            if log_error is not None:
                errors.append(log_error)

        for error in errors:
            if error.is_critical:
                logger.error("%s", error.display_message)
        logger.info("Sync complete: %s", summary.display_summary)

        return SyncResult(
            run_id=run_id,
            profile_name=profile.name,
            budget_id=profile.budget_id,
            window=window,
            dry_run=options.dry_run,
            account_results=tuple(account_results),
            summary=summary,
            errors=tuple(errors),
        )

    def _sync_account(
        self,
        mapping: AccountMapping,
        profile: BudgetProfile,
        window: DateWindow,
        options: SyncOptions,
        use_classifier: bool,
    ) -> AccountSyncResult:
        budget_id = profile.budget_id
        fetched = list(
            self.source.list_transactions(
                mapping.source_account_id,
                since=window.start,
                until=window.end,
                page_size=self.settings.page_size,
            )
        )
        logger.info("Fetched %d transactions from %s", len(fetched), mapping.source_account_name)

        results: list[TransactionResult] = []
        candidates: list[BankTransaction] = []
        seen: set[str] = set()
        for transaction in fetched:
            if transaction.id in seen:
                continue
            seen.add(transaction.id)
            # The ledger is the only record of what is done; YNAB is never queried here.
            if self.ledger.get_status(transaction.id, budget_id) is TransactionStatus.SYNCED:
                if options.verbose:
                    logger.info("Skipping already synced transaction %s", transaction.id)
                results.append(TransactionResult(transaction=transaction, status=ResultStatus.SKIPPED))
                continue
            candidates.append(transaction)
        logger.info("%d transactions to sync for %s", len(candidates), mapping.source_account_name)

        batch_size = self.settings.batch_size
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            for transaction in batch:
                try:
                    result = self._process_transaction(transaction, mapping, profile, options, use_classifier)
                except LedgerError as e:
                    result = self._ledger_failure(transaction, mapping, e)
                results.append(result)
            more_to_come = start + batch_size < len(candidates)
            if len(batch) == batch_size and more_to_come and not options.dry_run:
                self.sleep(self.settings.batch_pause_seconds)

        errors = tuple(r.error for r in results if r.error is not None)
        return AccountSyncResult(
            mapping=mapping,
            results=tuple(results),
            summary=self._summarize_account(mapping, len(fetched), results),
            errors=errors,
        )

    def _process_transaction(
        self,
        transaction: BankTransaction,
        mapping: AccountMapping,
        profile: BudgetProfile,
        options: SyncOptions,
        use_classifier: bool,
    ) -> TransactionResult:
        budget_id = profile.budget_id

        target_amount = self._convert_amount(transaction)
        if target_amount is None:
            error = SyncError(
                kind=SyncErrorKind.AMOUNT_CONVERSION,
                message=amount_mismatch(
                    transaction.id,
                    transaction.amount_minor_units,
                    self._unchecked_target(transaction),
                ),
                account_id=mapping.source_account_id,
                transaction_id=transaction.id,
                is_critical=True,
            )
            logger.error("CRITICAL: %s", error.message)
            if not options.dry_run:
                self._record(
                    transaction,
                    mapping,
                    budget_id,
                    TransactionStatus.FAILED,
                    self._unchecked_target(transaction),
                    error_message=f"CRITICAL: {error.message}",
                )
            return TransactionResult(
                transaction=transaction,
                status=ResultStatus.FAILED,
                error=error,
                amount_validated=False,
            )

        if options.dry_run:
            logger.info(
                "[DRY RUN] Would sync %s (%s) to %s",
                transaction.display_description,
                self.codec.to_decimal(target_amount),
                mapping.target_account_name,
            )
            return TransactionResult(
                transaction=transaction,
                status=ResultStatus.WOULD_SYNC,
                target_amount=target_amount,
            )

        self._record(transaction, mapping, budget_id, TransactionStatus.PENDING, target_amount)

        categorization = self._classify(transaction, profile) if use_classifier else None
        request = self._build_request(transaction, mapping, target_amount, categorization)
        category_name = categorization.category_name if categorization else None

        try:
            created = self.sink.create_transaction(budget_id, request)
        except DuplicateImportError:
            return self._resolve_duplicate(transaction, mapping, budget_id, request, category_name)
        except (ApiError, DomainError) as e:
            return self._fail(transaction, mapping, budget_id, target_amount, e)
        except Exception as e:
            logger.exception("Unexpected error submitting transaction %s", transaction.id)
            return self._fail(transaction, mapping, budget_id, target_amount, e)

        if not created.id:
            return self._fail(
                transaction,
                mapping,
                budget_id,
                target_amount,
                ApiError("YNAB returned a transaction without an id"),
            )

        self._record(
            transaction,
            mapping,
            budget_id,
            TransactionStatus.SYNCED,
            target_amount,
            target_transaction_id=created.id,
        )
        if categorization is not None:
            self._record_categorization(categorization, budget_id)
        logger.info(
            "Synced %s (%s) to %s",
            transaction.display_description,
            self.codec.to_decimal(target_amount),
            mapping.target_account_name,
        )
        return TransactionResult(
            transaction=transaction,
            status=ResultStatus.SYNCED,
            target_transaction_id=created.id,
            target_amount=target_amount,
            category_name=category_name,
        )

    # Transaction helpers
    def _convert_amount(self, transaction: BankTransaction) -> Optional[int]:
        """Target amount, or None when the conversion does not check out."""
        try:
            target = self.codec.to_target(transaction.amount_minor_units)
        except DomainError:
            return None
        if not self.codec.validate(transaction.amount_minor_units, target, transaction.amount_value):
            return None
        return target

    def _unchecked_target(self, transaction: BankTransaction) -> int:
        minor = transaction.amount_minor_units
        if isinstance(minor, bool) or not isinstance(minor, int):
            return 0
        return minor * self.codec.ratio

    def _classify(self, transaction: BankTransaction, profile: BudgetProfile) -> Optional[Categorization]:
        try:
            categorization = self.classifier.classify(transaction, profile.budget_id)
        except Exception as e:
            logger.warning("Categorization failed for %s, continuing without: %s", transaction.id, e)
            return None
        if categorization is None:
            return None
        threshold = profile.categorization.min_confidence_threshold
        if categorization.confidence < threshold:
            logger.debug(
                "Ignoring rule %s with confidence %.2f below %.2f",
                categorization.merchant_pattern,
                categorization.confidence,
                threshold,
            )
            return None
        logger.debug("Categorized %s as %s", transaction.id, categorization.category_name)
        return categorization

    def _record_categorization(self, categorization: Categorization, budget_id: str) -> None:
        try:
            self.classifier.record_applied(categorization, budget_id)
        except Exception as e:
            logger.warning("Could not record rule usage for %s: %s", categorization.merchant_pattern, e)

    def _build_request(
        self,
        transaction: BankTransaction,
        mapping: AccountMapping,
        target_amount: int,
        categorization: Optional[Categorization],
    ) -> BudgetTransactionRequest:
        payee = transaction.display_description
        if categorization is not None and categorization.payee_name:
            payee = categorization.payee_name
        return BudgetTransactionRequest(
            account_id=mapping.target_account_id,
            date=transaction.booking_date,
            amount=target_amount,
            payee_name=payee[:PAYEE_NAME_MAX_LENGTH],
            memo=build_memo(transaction),
            import_id=truncate_import_id(transaction.id, self.settings.import_id_max_length),
            category_id=categorization.category_id if categorization else None,
        )

    def _resolve_duplicate(
        self,
        transaction: BankTransaction,
        mapping: AccountMapping,
        budget_id: str,
        request: BudgetTransactionRequest,
        category_name: Optional[str],
    ) -> TransactionResult:
        """YNAB already holds the import id: adopt its transaction if it can be found."""
        try:
            existing = self.sink.find_transaction_by_import_id(
                budget_id,
                mapping.target_account_id,
                request.import_id,
                since_date=request.date - timedelta(days=1),
            )
        except ApiError as e:
            return self._fail(transaction, mapping, budget_id, request.amount, e)

        if existing is None:
            return self._fail(
                transaction,
                mapping,
                budget_id,
                request.amount,
                DuplicateImportError([request.import_id]),
            )

        self._record(
            transaction,
            mapping,
            budget_id,
            TransactionStatus.SYNCED,
            request.amount,
            target_transaction_id=existing.id,
        )
        logger.warning(
            "Transaction %s already exists in YNAB as %s; marked synced",
            transaction.id,
            existing.id,
        )
        return TransactionResult(
            transaction=transaction,
            status=ResultStatus.DUPLICATE,
            target_transaction_id=existing.id,
            target_amount=request.amount,
            category_name=category_name,
        )

    def _fail(
        self,
        transaction: BankTransaction,
        mapping: AccountMapping,
        budget_id: str,
        target_amount: int,
        exc: Exception,
    ) -> TransactionResult:
        error = SyncError(
            kind=error_kind(exc),
            message=f"Failed to sync transaction: {exc}",
            account_id=mapping.source_account_id,
            transaction_id=transaction.id,
        )
        self._record(
            transaction,
            mapping,
            budget_id,
            TransactionStatus.FAILED,
            target_amount,
            error_message=str(exc),
        )
        logger.error("Failed to sync transaction %s: %s", transaction.id, exc)
        return TransactionResult(
            transaction=transaction,
            status=ResultStatus.FAILED,
            target_amount=target_amount,
            error=error,
        )

    def _ledger_failure(
        self, transaction: BankTransaction, mapping: AccountMapping, exc: LedgerError
    ) -> TransactionResult:
        """Report a transaction whose ledger write failed and let the run go on.

        A record left pending is demoted to failed by the next run's recovery.
        """
        error = SyncError(
            kind=SyncErrorKind.DATABASE_ERROR,
            message=f"Failed to record transaction: {exc}",
            account_id=mapping.source_account_id,
            transaction_id=transaction.id,
        )
        logger.error("Ledger write failed for transaction %s: %s", transaction.id, exc)
        return TransactionResult(transaction=transaction, status=ResultStatus.FAILED, error=error)

    def _record(
        self,
        transaction: BankTransaction,
        mapping: AccountMapping,
        budget_id: str,
        status: TransactionStatus,
        target_amount: int,
        target_transaction_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self.ledger.upsert_synced_transaction(
            SyncedTransaction(
                id=transaction.id,
                budget_id=budget_id,
                source_account_id=mapping.source_account_id,
                source_account_name=mapping.source_account_name,
                source_amount=transaction.amount_minor_units,
                source_date=transaction.created_at,
                source_description=transaction.display_description,
                source_raw_json=json.dumps(transaction.raw, sort_keys=True, default=str),
                target_account_id=mapping.target_account_id,
                target_transaction_id=target_transaction_id,
                target_amount=target_amount,
                sync_timestamp=self.clock(),
                status=status,
                error_message=error_message,
            )
        )

    # Summaries and reporting
    def _summarize_account(
        self, mapping: AccountMapping, fetched: int, results: list[TransactionResult]
    ) -> AccountSyncSummary:
        def count(status: ResultStatus) -> int:
            return sum(1 for r in results if r.status is status)

        skipped = count(ResultStatus.SKIPPED)
        return AccountSyncSummary(
            account_name=mapping.display_name,
            transactions_fetched=fetched,
            transactions_processed=len(results) - skipped,
            transactions_synced=count(ResultStatus.SYNCED),
            transactions_skipped=skipped,
            transactions_failed=count(ResultStatus.FAILED),
            transactions_duplicate=count(ResultStatus.DUPLICATE),
            transactions_would_sync=count(ResultStatus.WOULD_SYNC),
            amount_synced_minor_units=sum(
                r.transaction.amount_minor_units for r in results if r.status is ResultStatus.SYNCED
            ),
            errors=tuple(r.error.display_message for r in results if r.error is not None),
        )

    def _summarize(self, account_results: list[AccountSyncResult], duration: float) -> SyncSummary:
        summaries = [r.summary for r in account_results]
        return SyncSummary(
            total_accounts=len(account_results),
            total_transactions=sum(len(r.results) for r in account_results),
            synced_transactions=sum(s.transactions_synced for s in summaries),
            skipped_transactions=sum(s.transactions_skipped for s in summaries),
            failed_transactions=sum(s.transactions_failed for s in summaries),
            duplicate_transactions=sum(s.transactions_duplicate for s in summaries),
            would_sync_transactions=sum(s.transactions_would_sync for s in summaries),
            duration=duration,
        )

    def _append_sync_log(
        self,
        budget_id: str,
        window: DateWindow,
        account_results: list[AccountSyncResult],
        summary: SyncSummary,
        errors: list[SyncError],
    ) -> Optional[SyncError]:
        entry = SyncLogEntry(
            id=None,
            budget_id=budget_id,
            sync_date=self.clock(),
            date_range_start=window.start,
            date_range_end=window.end,
            accounts_processed=len(account_results),
            transactions_processed=summary.total_transactions,
            # Duplicates end up synced in the ledger as well.
            transactions_synced=summary.synced_transactions + summary.duplicate_transactions,
            transactions_skipped=summary.skipped_transactions,
            transactions_failed=summary.failed_transactions,
            errors="; ".join(e.display_message for e in errors) or None,
            sync_duration_seconds=summary.duration,
        )
        try:
            self.ledger.insert_sync_log(entry)
        except LedgerError as e:
            logger.error("Could not append sync log entry: %s", e)
            return SyncError(kind=SyncErrorKind.DATABASE_ERROR, message=str(e))
        return None

    def _database_health(self, budget_id: Optional[str]) -> DatabaseHealth:
        try:
            stats = self.ledger.stats(budget_id)
            integrity = self.ledger.check_integrity()
            version = self.ledger.schema_version()
        except LedgerError as e:
            logger.error("Ledger is not accessible: %s", e)
            return DatabaseHealth(
                is_accessible=False,
                total_records=0,
                failed_transactions=0,
                pending_transactions=0,
                integrity_check=False,
                schema_version=0,
            )
        return DatabaseHealth(
            is_accessible=True,
            total_records=stats["total_transactions"],
            failed_transactions=stats["failed_transactions"],
            pending_transactions=stats["pending_transactions"],
            integrity_check=integrity,
            schema_version=version,
        )

    def _account_status(
        self, mapping: AccountMapping, budget_id: str, include_balances: bool
    ) -> AccountStatus:
        records = self.ledger.list_for_account(mapping.source_account_id, limit=50, budget_id=budget_id)
        recent_errors = tuple(
            SyncError(
                kind=SyncErrorKind.API_ERROR,
                message=f"Failed transaction: {r.source_description}"
                + (f" ({r.error_message})" if r.error_message else ""),
                account_id=r.source_account_id,
                transaction_id=r.id,
                is_critical=bool(r.error_message and r.error_message.startswith("CRITICAL")),
            )
            for r in self.ledger.list_failed(limit=10, budget_id=budget_id)
            if r.source_account_id == mapping.source_account_id
        )

        source_balance = target_balance = None
        if include_balances:
            try:
                source_balance = self.source.get_account_balance(mapping.source_account_id)
            except (ApiError, DomainError) as e:
                logger.warning("Could not fetch Up balance for %s: %s", mapping.source_account_name, e)
            try:
                target_balance = self.sink.get_account_balance(budget_id, mapping.target_account_id)
            except (ApiError, DomainError) as e:
                logger.warning("Could not fetch YNAB balance for %s: %s", mapping.target_account_name, e)

        return AccountStatus(
            mapping=mapping,
            record_count=len(records),
            recent_errors=recent_errors,
            source_balance=source_balance,
            target_balance=target_balance,
        )
