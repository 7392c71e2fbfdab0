"""Conversation directory: maps an unordered user pair to one conversation."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from parley.core.errors import NotFound, StorageError, ValidationError
from parley.db.session import Database
from parley.models.conversation import PREVIEW_MAX_LENGTH, Conversation

__all__ = ["ConversationRepository", "canonical_pair"]

logger = logging.getLogger(__name__)


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Return the two ids sorted so a pair always normalizes to one key."""
    first, second = sorted((user_a, user_b))
    return first, second


def _for_pair(first: str, second: str):
    return select(Conversation).where(
        or_(
            (Conversation.participant_one_id == first)
            & (Conversation.participant_two_id == second),
            (Conversation.participant_one_id == second)
            & (Conversation.participant_two_id == first),
        )
    )


class ConversationRepository:
    """Relational access to conversations.

    Every method runs in its own session; nothing here spans a transaction with
    the message store.
    """

    def __init__(self, database: Database) -> None:
        """Initialize the repository with the relational store handle."""
        self.database = database

    async def resolve_or_create(self, user_a: str, user_b: str) -> Conversation:
        """Return the conversation for the pair, creating it on first contact.

        A create that loses a race against a concurrent create for the same
        pair hits the unique constraint; the existing row is read instead.
        """
        if not user_a or not user_b:
            raise ValidationError("Both participant ids are required")
        if user_a == user_b:
            raise ValidationError("Cannot start a conversation with yourself")

        first, second = canonical_pair(user_a, user_b)
        try:
            existing = await self._find_pair(first, second)
            if existing is not None:
                return existing

            async with self.database.session() as session:
                conversation = Conversation(participant_one_id=first, participant_two_id=second)
                session.add(conversation)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.info("Conversation for %s/%s created concurrently; re-reading", first, second)
                else:
                    logger.info("Created new conversation: %s", conversation.id)
                    return conversation

            existing = await self._find_pair(first, second)
        except SQLAlchemyError as exc:
            logger.error("Error finding/creating conversation: %s", exc)
            raise StorageError("Failed to resolve conversation") from exc

        if existing is None:
            raise StorageError("Conversation vanished after uniqueness conflict")
        return existing

    async def _find_pair(self, first: str, second: str) -> Conversation | None:
        async with self.database.session() as session:
            result = await session.execute(_for_pair(first, second))
            return result.scalars().first()

    async def get(self, conversation_id: str) -> Conversation | None:
        """Return a conversation by identifier."""
        try:
            async with self.database.session() as session:
                return await session.get(Conversation, conversation_id)
        except SQLAlchemyError as exc:
            logger.error("Error getting conversation %s: %s", conversation_id, exc)
            raise StorageError("Failed to load conversation") from exc

    async def list_for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Conversation], int]:
        """Return one page of the user's conversations, most recent activity first."""
        page = max(page, 1)
        involved = or_(
            Conversation.participant_one_id == user_id,
            Conversation.participant_two_id == user_id,
        )
        stmt = (
            select(Conversation)
            .where(involved)
            .order_by(
                Conversation.last_message_at.desc().nulls_last(),
                Conversation.created_at.desc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        try:
            async with self.database.session() as session:
                total = await session.scalar(
                    select(func.count()).select_from(Conversation).where(involved)
                )
                result = await session.execute(stmt)
                return list(result.scalars()), int(total or 0)
        except SQLAlchemyError as exc:
            logger.error("Error getting user conversations: %s", exc)
            raise StorageError("Failed to list conversations") from exc

    async def partner_ids(self, user_id: str) -> set[str]:
        """Return the other participant of every conversation the user belongs to."""
        stmt = select(Conversation.participant_one_id, Conversation.participant_two_id).where(
            or_(
                Conversation.participant_one_id == user_id,
                Conversation.participant_two_id == user_id,
            )
        )
        try:
            async with self.database.session() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            logger.error("Error listing conversation partners for %s: %s", user_id, exc)
            raise StorageError("Failed to list conversation partners") from exc
        return {one if two == user_id else two for one, two in rows}

    async def update_preview(
        self,
        conversation_id: str,
        preview: str,
        timestamp: datetime,
    ) -> None:
        """Store the last message preview; whichever write lands last wins."""
        await self._update(
            conversation_id,
            last_message_preview=preview[:PREVIEW_MAX_LENGTH],
            last_message_at=timestamp,
        )

    async def block(self, conversation_id: str, by_user_id: str) -> None:
        """Mark the conversation blocked by ``by_user_id``."""
        await self._update(conversation_id, is_blocked=True, blocked_by=by_user_id)
        logger.info("Conversation %s blocked by %s", conversation_id, by_user_id)

    async def unblock(self, conversation_id: str) -> None:
        """Clear the blocked flag and the blocker identity."""
        # Whoever calls this may unblock; the original blocker is not checked.
        await self._update(conversation_id, is_blocked=False, blocked_by=None)
        logger.info("Conversation %s unblocked", conversation_id)

    async def is_blocked(self, conversation_id: str) -> bool:
        """Return True if the conversation is currently blocked."""
        try:
            async with self.database.session() as session:
                blocked = await session.scalar(
                    select(Conversation.is_blocked).where(Conversation.id == conversation_id)
                )
        except SQLAlchemyError as exc:
            logger.error("Error checking if conversation is blocked: %s", exc)
            raise StorageError("Failed to check conversation state") from exc
        return bool(blocked)

    async def _update(self, conversation_id: str, **values: object) -> None:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation_id)
                    .values(**values)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error updating conversation %s: %s", conversation_id, exc)
            raise StorageError("Failed to update conversation") from exc
        if result.rowcount == 0:
            raise NotFound(f"Conversation {conversation_id} not found")
