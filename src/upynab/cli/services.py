"""Construction of the sync engine and its collaborators for CLI commands.

Commands read collaborators from ``ctx.obj``. Anything already present there is
used as is; missing clients are built on first use.
"""

import time

import click

from upynab.clients.bank import UpBankingClient
from upynab.clients.budget import YnabClient
from upynab.clients.http import RetryPolicy
from upynab.config import SyncSettings
from upynab.credentials import SOURCE_SERVICE, TARGET_SERVICE
from upynab.domain.classifier import MerchantClassifier
from upynab.domain.ports import TransactionSink, TransactionSource
from upynab.domain.sync import SyncService


def get_settings(ctx: click.Context) -> SyncSettings:
    if "settings" not in ctx.obj:
        ctx.obj["settings"] = ctx.obj["config"].sync_settings()
    return ctx.obj["settings"]


def get_source(ctx: click.Context) -> TransactionSource:
    if "source" not in ctx.obj:
        settings = get_settings(ctx)
        client = UpBankingClient(
            ctx.obj["credentials"].token_provider(SOURCE_SERVICE),
            timeout=settings.request_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
        )
        ctx.find_root().call_on_close(client.close)
        ctx.obj["source"] = client
    return ctx.obj["source"]


def get_sink(ctx: click.Context) -> TransactionSink:
    if "sink" not in ctx.obj:
        settings = get_settings(ctx)
        client = YnabClient(
            ctx.obj["credentials"].token_provider(TARGET_SERVICE),
            timeout=settings.request_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
        )
        ctx.find_root().call_on_close(client.close)
        ctx.obj["sink"] = client
    return ctx.obj["sink"]


def build_sync_service(ctx: click.Context, range_chooser=None) -> SyncService:
    """Wire the engine from the objects the root command prepared."""
    ledger = ctx.obj["ledger"]
    return SyncService(
        ledger=ledger,
        source=get_source(ctx),
        sink=get_sink(ctx),
        config_store=ctx.obj["config"],
        credentials=ctx.obj["credentials"],
        classifier=ctx.obj.get("classifier") or MerchantClassifier(ledger),
        settings=get_settings(ctx),
        sleep=ctx.obj.get("sleep", time.sleep),
        range_chooser=range_chooser,
    )