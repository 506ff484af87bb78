"""Testes para ConversationStore baseado em Redis (client mockado)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from karen_ai.domain.models import Conversation
from karen_ai.domain.protocols.conversation_store import ConversationStoreError
from karen_ai.infra.conversation_store_redis import (
    RedisConversationStore,
    conversation_key,
    user_index_key,
)


def _conversation(conversation_id: str = "conv-123") -> Conversation:
    return Conversation(conversation_id=conversation_id, user_id="user-1")


@pytest.mark.asyncio
class TestRedisConversationStore:
    async def test_create_writes_json_and_index(self) -> None:
        mock_redis = MagicMock()
        pipe = mock_redis.pipeline.return_value
        store = RedisConversationStore(mock_redis)

        await store.create(_conversation())

        key, payload = pipe.set.call_args[0]
        assert key == "conversation:conv-123"
        assert json.loads(payload)["conversationId"] == "conv-123"
        index_key, mapping = pipe.zadd.call_args[0]
        assert index_key == "user_conversations:user-1"
        assert "conv-123" in mapping
        pipe.execute.assert_called_once()

    async def test_find_one_decodes_bytes(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get.return_value = _conversation().model_dump_json(by_alias=True).encode()
        store = RedisConversationStore(mock_redis)

        loaded = await store.find_one("conv-123")

        assert loaded is not None
        assert loaded.user_id == "user-1"
        mock_redis.get.assert_called_once_with(conversation_key("conv-123"))

    async def test_find_one_missing(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get.return_value = None
        assert await RedisConversationStore(mock_redis).find_one("nope") is None

    async def test_update_rejects_stale_version(self) -> None:
        stored = _conversation()
        stored.version = 3
        mock_redis = MagicMock()
        mock_redis.get.return_value = stored.model_dump_json(by_alias=True)
        store = RedisConversationStore(mock_redis)

        incoming = _conversation()
        incoming.version = 3
        with pytest.raises(ConversationStoreError):
            await store.find_one_and_update(incoming)
        mock_redis.pipeline.assert_not_called()

    async def test_connection_error_is_wrapped(self) -> None:
        mock_redis = MagicMock()
        mock_redis.get.side_effect = ConnectionError("refused")
        with pytest.raises(ConversationStoreError, match="Redis load failed"):
            await RedisConversationStore(mock_redis).find_one("conv-123")

    async def test_find_uses_sorted_index(self) -> None:
        mock_redis = MagicMock()
        mock_redis.zrevrange.return_value = [b"conv-2", "conv-1"]
        mock_redis.get.side_effect = lambda key: _conversation(
            key.split(":", 1)[1]
        ).model_dump_json(by_alias=True)
        store = RedisConversationStore(mock_redis)

        found = await store.find("user-1", limit=2)

        mock_redis.zrevrange.assert_called_once_with(user_index_key("user-1"), 0, 1)
        assert [c.conversation_id for c in found] == ["conv-2", "conv-1"]

    async def test_invalid_record_is_wrapped(self) -> None:
        """Registro fora do schema vira ConversationStoreError, não ValidationError."""
        mock_redis = MagicMock()
        mock_redis.get.return_value = '{"conversationId": "abc"}'

        with pytest.raises(ConversationStoreError, match="invalid"):
            await RedisConversationStore(mock_redis).find_one("abc")

    async def test_find_with_invalid_record_is_wrapped(self) -> None:
        mock_redis = MagicMock()
        mock_redis.zrevrange.return_value = [b"conv-1"]
        mock_redis.get.return_value = b"not json"

        with pytest.raises(ConversationStoreError):
            await RedisConversationStore(mock_redis).find("user-1")
