"""Dual-backend message store.

Payload documents live in the document store and metadata rows in the
relational store. The two writes of ``create`` are not covered by one
transaction: between the payload commit and the metadata commit a payload
exists with no metadata. That window is closed by a compensating delete when
the metadata write fails, and by ``reconcile`` for anything left behind by a
crash.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from parley.core.errors import NotFound, StorageError, Unauthorized
from parley.db.session import Database
from parley.db.time import utcnow
from parley.models.message import MessageMetadata, MessagePayload, MessageType

__all__ = ["CreateMessageData", "MessageRepository", "ReconcileReport"]

logger = logging.getLogger(__name__)

# Upper bound on ids per IN (...) clause.
_ID_BATCH_SIZE = 500


@dataclass
class CreateMessageData:
    """Fields needed to persist a new message across both stores."""

    conversation_id: str
    sender_id: str
    receiver_id: str
    message_type: MessageType
    encrypted_content: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    media_size: int | None = None
    file_name: str | None = None
    thumbnail_url: str | None = None
    reply_to_message_id: str | None = None


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation sweep."""

    orphaned_payload_ids: list[str] = field(default_factory=list)
    dangling_metadata_ids: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        """Return True when the sweep found nothing to repair."""
        return not self.orphaned_payload_ids and not self.dangling_metadata_ids


def _batched(ids: Sequence[str]) -> Iterable[Sequence[str]]:
    for start in range(0, len(ids), _ID_BATCH_SIZE):
        yield ids[start:start + _ID_BATCH_SIZE]


class MessageRepository:
    """Access to message payloads and their delivery metadata."""

    def __init__(self, metadata_db: Database, document_db: Database) -> None:
        """Initialize the repository with both store handles."""
        self.metadata_db = metadata_db
        self.document_db = document_db

    async def create(self, data: CreateMessageData) -> tuple[MessagePayload, MessageMetadata]:
        """Write the payload, then the metadata row that references it."""
        payload = MessagePayload(
            conversation_id=data.conversation_id,
            sender_id=data.sender_id,
            receiver_id=data.receiver_id,
            message_type=data.message_type,
            encrypted_content=data.encrypted_content,
            media_url=data.media_url,
            media_type=data.media_type,
            media_size=data.media_size,
            file_name=data.file_name,
            thumbnail_url=data.thumbnail_url,
            reply_to_message_id=data.reply_to_message_id,
        )
        try:
            async with self.document_db.session() as session:
                session.add(payload)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error creating message payload: %s", exc)
            raise StorageError("Failed to store message") from exc

        metadata = MessageMetadata(
            conversation_id=data.conversation_id,
            payload_id=payload.id,
            sender_id=data.sender_id,
            receiver_id=data.receiver_id,
            message_type=data.message_type,
        )
        try:
            async with self.metadata_db.session() as session:
                session.add(metadata)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error creating message metadata for payload %s: %s", payload.id, exc)
            await self._discard_payload(payload.id)
            raise StorageError("Failed to store message") from exc

        logger.info("Message created: %s", metadata.id)
        return payload, metadata

    async def _discard_payload(self, payload_id: str) -> None:
        try:
            async with self.document_db.session() as session:
                await session.execute(delete(MessagePayload).where(MessagePayload.id == payload_id))
                await session.commit()
        except SQLAlchemyError as exc:
            # Left for the reconciliation sweep.
            logger.error("Could not discard orphaned payload %s: %s", payload_id, exc)

    async def get_metadata(self, metadata_id: str) -> MessageMetadata | None:
        """Return a metadata row by identifier."""
        try:
            async with self.metadata_db.session() as session:
                return await session.get(MessageMetadata, metadata_id)
        except SQLAlchemyError as exc:
            logger.error("Error getting message %s: %s", metadata_id, exc)
            raise StorageError("Failed to load message") from exc

    async def fetch_by_conversation(
        self,
        conversation_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[tuple[MessagePayload, MessageMetadata]], int]:
        """Return one page of visible messages, newest first, and the visible total.

        Metadata rows whose payload cannot be found are left out of the page.
        """
        page = max(page, 1)
        visible = (
            MessageMetadata.conversation_id == conversation_id,
            MessageMetadata.is_deleted.is_(False),
        )
        try:
            async with self.metadata_db.session() as session:
                total = await session.scalar(
                    select(func.count()).select_from(MessageMetadata).where(*visible)
                )
                result = await session.execute(
                    select(MessageMetadata)
                    .where(*visible)
                    .order_by(MessageMetadata.created_at.desc(), MessageMetadata.id.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
                metadata_rows = list(result.scalars())

            payloads = await self._payloads_by_id([row.payload_id for row in metadata_rows])
        except SQLAlchemyError as exc:
            logger.error("Error getting messages for %s: %s", conversation_id, exc)
            raise StorageError("Failed to load messages") from exc

        items: list[tuple[MessagePayload, MessageMetadata]] = []
        for row in metadata_rows:
            payload = payloads.get(row.payload_id)
            if payload is None:
                logger.warning("Message %s has no payload %s; skipping", row.id, row.payload_id)
                continue
            items.append((payload, row))
        return items, int(total or 0)

    async def _payloads_by_id(self, payload_ids: Sequence[str]) -> dict[str, MessagePayload]:
        found: dict[str, MessagePayload] = {}
        if not payload_ids:
            return found
        async with self.document_db.session() as session:
            for chunk in _batched(payload_ids):
                result = await session.execute(
                    select(MessagePayload).where(MessagePayload.id.in_(chunk))
                )
                found.update({payload.id: payload for payload in result.scalars()})
        return found

    async def mark_delivered(self, metadata_id: str) -> MessageMetadata | None:
        """Flag a message delivered; a second call changes nothing.

        Returns:
            The metadata row, or None when the id is unknown.
        """
        try:
            async with self.metadata_db.session() as session:
                result = await session.execute(
                    update(MessageMetadata)
                    .where(
                        MessageMetadata.id == metadata_id,
                        MessageMetadata.is_delivered.is_(False),
                    )
                    .values(is_delivered=True, delivered_at=utcnow())
                )
                await session.commit()
                if result.rowcount == 0:
                    logger.debug("Message %s already delivered or unknown", metadata_id)
                return await session.get(MessageMetadata, metadata_id)
        except SQLAlchemyError as exc:
            logger.error("Error marking message as delivered: %s", exc)
            raise StorageError("Failed to mark message delivered") from exc

    async def mark_read(self, metadata_ids: Sequence[str]) -> list[MessageMetadata]:
        """Flag every unread message in ``metadata_ids`` as read.

        The caller is not checked against the receiver of each message.

        Returns:
            The metadata rows that exist for the given ids.
        """
        ids = list(dict.fromkeys(metadata_ids))
        if not ids:
            return []
        read_at = utcnow()
        rows: list[MessageMetadata] = []
        try:
            async with self.metadata_db.session() as session:
                for chunk in _batched(ids):
                    await session.execute(
                        update(MessageMetadata)
                        .where(
                            MessageMetadata.id.in_(chunk),
                            MessageMetadata.is_read.is_(False),
                        )
                        .values(is_read=True, read_at=read_at)
                    )
                await session.commit()
                for chunk in _batched(ids):
                    result = await session.execute(
                        select(MessageMetadata).where(MessageMetadata.id.in_(chunk))
                    )
                    rows.extend(result.scalars())
        except SQLAlchemyError as exc:
            logger.error("Error marking messages as read: %s", exc)
            raise StorageError("Failed to mark messages read") from exc

        logger.info("Marked %d messages as read", len(rows))
        return rows

    async def soft_delete(self, metadata_id: str, requester_id: str) -> None:
        """Hide a message from history. Only its sender may do this."""
        try:
            async with self.metadata_db.session() as session:
                metadata = await session.get(MessageMetadata, metadata_id)
                if metadata is None:
                    raise NotFound("Message not found")
                if metadata.sender_id != requester_id:
                    raise Unauthorized("Unauthorized to delete this message")
                metadata.is_deleted = True
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error deleting message: %s", exc)
            raise StorageError("Failed to delete message") from exc

        logger.info("Message %s deleted by %s", metadata_id, requester_id)

    async def unread_count(self, user_id: str, conversation_id: str | None = None) -> int:
        """Count unread, undeleted messages addressed to ``user_id``."""
        stmt = (
            select(func.count())
            .select_from(MessageMetadata)
            .where(
                MessageMetadata.receiver_id == user_id,
                MessageMetadata.is_read.is_(False),
                MessageMetadata.is_deleted.is_(False),
            )
        )
        if conversation_id is not None:
            stmt = stmt.where(MessageMetadata.conversation_id == conversation_id)
        try:
            async with self.metadata_db.session() as session:
                return int(await session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            logger.error("Error getting unread count: %s", exc)
            raise StorageError("Failed to count unread messages") from exc

    async def unread_counts(
        self,
        user_id: str,
        conversation_ids: Sequence[str],
    ) -> dict[str, int]:
        """Return unread counts for several conversations in one aggregate query."""
        counts = {conversation_id: 0 for conversation_id in conversation_ids}
        if not counts:
            return counts
        stmt = (
            select(MessageMetadata.conversation_id, func.count())
            .where(
                MessageMetadata.receiver_id == user_id,
                MessageMetadata.is_read.is_(False),
                MessageMetadata.is_deleted.is_(False),
                MessageMetadata.conversation_id.in_(list(counts)),
            )
            .group_by(MessageMetadata.conversation_id)
        )
        try:
            async with self.metadata_db.session() as session:
                for conversation_id, count in (await session.execute(stmt)).all():
                    counts[conversation_id] = int(count)
        except SQLAlchemyError as exc:
            logger.error("Error getting unread counts: %s", exc)
            raise StorageError("Failed to count unread messages") from exc
        return counts

    async def reconcile(self, grace: timedelta) -> ReconcileReport:
        """Repair records left inconsistent by an interrupted dual write.

        Payloads older than ``grace`` that no metadata row references are
        deleted; they were never reachable. Metadata rows older than ``grace``
        whose payload is gone are soft-deleted so history no longer counts them.
        """
        cutoff: datetime = utcnow() - grace
        report = ReconcileReport()
        try:
            async with self.document_db.session() as session:
                payload_ids = list(
                    (
                        await session.execute(
                            select(MessagePayload.id).where(MessagePayload.created_at < cutoff)
                        )
                    ).scalars()
                )
            referenced: set[str] = set()
            async with self.metadata_db.session() as session:
                for chunk in _batched(payload_ids):
                    result = await session.execute(
                        select(MessageMetadata.payload_id).where(
                            MessageMetadata.payload_id.in_(chunk)
                        )
                    )
                    referenced.update(result.scalars())
                stale_rows = (
                    await session.execute(
                        select(MessageMetadata.id, MessageMetadata.payload_id).where(
                            MessageMetadata.created_at < cutoff,
                            MessageMetadata.is_deleted.is_(False),
                        )
                    )
                ).all()
            report.orphaned_payload_ids = [pid for pid in payload_ids if pid not in referenced]

            existing = await self._existing_payload_ids([pid for _, pid in stale_rows])
            report.dangling_metadata_ids = [mid for mid, pid in stale_rows if pid not in existing]

            if report.orphaned_payload_ids:
                async with self.document_db.session() as session:
                    for chunk in _batched(report.orphaned_payload_ids):
                        await session.execute(
                            delete(MessagePayload).where(MessagePayload.id.in_(chunk))
                        )
                    await session.commit()
            if report.dangling_metadata_ids:
                async with self.metadata_db.session() as session:
                    for chunk in _batched(report.dangling_metadata_ids):
                        await session.execute(
                            update(MessageMetadata)
                            .where(MessageMetadata.id.in_(chunk))
                            .values(is_deleted=True)
                        )
                    await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error reconciling message stores: %s", exc)
            raise StorageError("Failed to reconcile message stores") from exc

        if not report.clean:
            logger.warning(
                "Reconciled %d orphaned payloads and %d dangling metadata rows",
                len(report.orphaned_payload_ids),
                len(report.dangling_metadata_ids),
            )
        return report

    async def _existing_payload_ids(self, payload_ids: Sequence[str]) -> set[str]:
        existing: set[str] = set()
        async with self.document_db.session() as session:
            for chunk in _batched(payload_ids):
                result = await session.execute(
                    select(MessagePayload.id).where(MessagePayload.id.in_(chunk))
                )
                existing.update(result.scalars())
        return existing
