"""Implementação de ConversationStore usando Redis."""

from __future__ import annotations

import logging
from typing import Any

from karen_ai.domain.models import Conversation
from karen_ai.domain.protocols.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
)
from karen_ai.infra.conversation_validations import decode_conversation, ensure_newer_version
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


def conversation_key(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def user_index_key(user_id: str) -> str:
    return f"user_conversations:{user_id}"


class RedisConversationStore(AsyncConversationStoreProtocol):
    """JSON em `conversation:<id>` + sorted set por usuário (score = last update)."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client

    def _write(self, conversation: Conversation) -> None:
        score = conversation.metadata.last_update_time.timestamp()
        pipe = self._redis.pipeline()
        pipe.set(
            conversation_key(conversation.conversation_id),
            conversation.model_dump_json(by_alias=True),
        )
        pipe.zadd(user_index_key(conversation.user_id), {conversation.conversation_id: score})
        pipe.execute()

    async def create(self, conversation: Conversation) -> None:
        try:
            self._write(conversation)
        except Exception as e:
            logger.error(
                "conversation_create_failed_redis",
                extra={"conversation_id": short_id(conversation.conversation_id), "error": str(e)},
            )
            raise ConversationStoreError(f"Redis create failed: {e}") from e
        logger.debug(
            "conversation_created_redis",
            extra={"conversation_id": short_id(conversation.conversation_id)},
        )

    async def find_one(self, conversation_id: str) -> Conversation | None:
        try:
            payload = self._redis.get(conversation_key(conversation_id))
        except Exception as e:
            logger.error(
                "conversation_load_failed_redis",
                extra={"conversation_id": short_id(conversation_id), "error": str(e)},
            )
            raise ConversationStoreError(f"Redis load failed: {e}") from e

        if not payload:
            logger.debug(
                "conversation_not_found_redis",
                extra={"conversation_id": short_id(conversation_id)},
            )
            return None
        return decode_conversation(payload, conversation_id=conversation_id)

    async def find_one_and_update(self, conversation: Conversation) -> Conversation | None:
        existing = await self.find_one(conversation.conversation_id)
        ensure_newer_version(existing, conversation)
        try:
            self._write(conversation)
        except Exception as e:
            logger.error(
                "conversation_save_failed_redis",
                extra={"conversation_id": short_id(conversation.conversation_id), "error": str(e)},
            )
            raise ConversationStoreError(f"Redis save failed: {e}") from e
        logger.debug(
            "conversation_saved_redis",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "version": conversation.version,
            },
        )
        return conversation

    async def find(self, user_id: str, limit: int = 10) -> list[Conversation]:
        if limit <= 0:
            return []
        try:
            ids = self._redis.zrevrange(user_index_key(user_id), 0, limit - 1)
        except Exception as e:
            logger.error("conversation_list_failed_redis", extra={"error": str(e)})
            raise ConversationStoreError(f"Redis list failed: {e}") from e

        conversations: list[Conversation] = []
        for raw_id in ids:
            conversation_id = raw_id.decode("utf-8") if isinstance(raw_id, bytes) else raw_id
            conversation = await self.find_one(conversation_id)
            if conversation is not None:
                conversations.append(conversation)
        return conversations
