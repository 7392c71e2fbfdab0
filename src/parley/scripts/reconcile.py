# src/parley/scripts/reconcile.py
"""Repair drift between the payload store and the metadata store.

Payloads with no metadata row (older than the grace period) are deleted, and
metadata rows whose payload is gone are soft-deleted. Run periodically, e.g.
from cron.
"""
from __future__ import annotations

import argparse
import asyncio
import sys

from parley.core.settings import Settings, settings
from parley.db.session import Database
from parley.repositories import ConversationRepository, MessageRepository
from parley.repositories.message_repo import ReconcileReport
from parley.services.chat_service import ChatService
from parley.services.encryption import MessageCodec


async def run_reconcile(config: Settings, grace_seconds: int) -> ReconcileReport:
    """Open both stores, run one sweep, and close them again."""
    metadata_db = Database(config.database_url, echo=config.sql_debug)
    document_db = (
        metadata_db
        if config.effective_document_database_url == config.database_url
        else Database(config.effective_document_database_url, echo=config.sql_debug)
    )
    try:
        service = ChatService(
            ConversationRepository(metadata_db),
            MessageRepository(metadata_db, document_db),
            MessageCodec(config.chat_encryption_key, max_length=config.message_max_length),
        )
        return await service.reconcile(grace_seconds)
    finally:
        if document_db is not metadata_db:
            await document_db.dispose()
        await metadata_db.dispose()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Reconcile message payloads and metadata")
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=settings.reconcile_grace_seconds,
        help="Only treat payloads older than this as orphaned (default: %(default)s)",
    )
    args = parser.parse_args(argv)
    if args.grace_seconds < 0:
        parser.error("--grace-seconds must not be negative")

    try:
        report = asyncio.run(run_reconcile(settings, args.grace_seconds))
    except Exception as exc:
        print(f"[reconcile] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    if report.clean:
        print("[reconcile] stores are consistent")
        return
    print(f"[reconcile] deleted {len(report.orphaned_payload_ids)} orphaned payloads")
    print(f"[reconcile] soft-deleted {len(report.dangling_metadata_ids)} dangling metadata rows")


if __name__ == "__main__":
    main()
