"""Domain layer for upynab."""

from upynab.domain.amounts import AmountCodec, truncate_import_id
from upynab.domain.results import DateWindow, SyncOptions

__all__ = ["AmountCodec", "DateWindow", "SyncOptions", "truncate_import_id"]
