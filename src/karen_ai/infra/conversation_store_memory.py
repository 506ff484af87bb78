"""Implementação de ConversationStore em memória (dev/testes)."""

from __future__ import annotations

import logging

from karen_ai.domain.models import Conversation
from karen_ai.domain.protocols.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
)
from karen_ai.infra.conversation_validations import ensure_newer_version, sort_by_last_update
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class InMemoryConversationStore(AsyncConversationStoreProtocol):
    """Armazenamento em memória (não usar em produção).

    Guarda cópias profundas: mutações do chamador só chegam ao store
    via find_one_and_update.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}

    def __len__(self) -> int:
        return len(self._conversations)

    async def create(self, conversation: Conversation) -> None:
        if conversation.conversation_id in self._conversations:
            raise ConversationStoreError(
                f"Conversation {short_id(conversation.conversation_id)} already exists"
            )
        self._conversations[conversation.conversation_id] = conversation.model_copy(deep=True)
        logger.debug(
            "conversation_created_memory",
            extra={"conversation_id": short_id(conversation.conversation_id)},
        )

    async def find_one(self, conversation_id: str) -> Conversation | None:
        stored = self._conversations.get(conversation_id)
        if stored is None:
            logger.debug(
                "conversation_not_found_memory",
                extra={"conversation_id": short_id(conversation_id)},
            )
            return None
        return stored.model_copy(deep=True)

    async def find_one_and_update(self, conversation: Conversation) -> Conversation | None:
        existing = self._conversations.get(conversation.conversation_id)
        ensure_newer_version(existing, conversation)
        self._conversations[conversation.conversation_id] = conversation.model_copy(deep=True)
        logger.debug(
            "conversation_saved_memory",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "version": conversation.version,
            },
        )
        return conversation

    async def find(self, user_id: str, limit: int = 10) -> list[Conversation]:
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        return [c.model_copy(deep=True) for c in sort_by_last_update(owned, limit)]
