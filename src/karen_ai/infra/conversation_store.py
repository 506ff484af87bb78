"""Persistência de conversas: factory de backends.

Backends:
- "memory": InMemoryConversationStore (dev/testes)
- "redis": RedisConversationStore
- "firestore": FirestoreConversationStore
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from karen_ai.domain.protocols.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
)
from karen_ai.infra.conversation_store_memory import InMemoryConversationStore
from karen_ai.observability.logging import get_logger

if TYPE_CHECKING:
    from karen_ai.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_conversation_store(
    settings: Settings | None = None,
    *,
    redis_client: Any | None = None,
    firestore_client: Any | None = None,
) -> AsyncConversationStoreProtocol:
    """Cria o store conforme settings.conversation_store_backend.

    Clientes podem ser injetados (testes); caso contrário são criados a
    partir de REDIS_URL / FIRESTORE_PROJECT_ID.

    Raises:
        ValueError: backend não reconhecido ou configuração ausente
    """
    if settings is None:
        from karen_ai.config.settings import get_settings

        settings = get_settings()

    backend = settings.conversation_store_backend.lower()
    if backend == "memory":
        logger.info("Usando InMemoryConversationStore (apenas dev/testes)")
        return InMemoryConversationStore()

    if backend == "redis":
        return _create_redis_store(settings, redis_client)

    if backend == "firestore":
        return _create_firestore_store(settings, firestore_client)

    raise ValueError(f"Backend de conversas não reconhecido: {backend}")


def _create_redis_store(settings: Settings, client: Any | None) -> AsyncConversationStoreProtocol:
    from karen_ai.infra.conversation_store_redis import RedisConversationStore

    if client is None:
        if not settings.redis_url:
            raise ValueError("REDIS_URL é obrigatório quando conversation_store_backend=redis")
        import redis

        client = redis.from_url(settings.redis_url, decode_responses=True)

    logger.info("Usando RedisConversationStore")
    return RedisConversationStore(client)


def _create_firestore_store(
    settings: Settings, client: Any | None
) -> AsyncConversationStoreProtocol:
    from karen_ai.infra.conversation_store_firestore import FirestoreConversationStore

    if client is None:
        from google.cloud import firestore

        client = firestore.Client(
            project=settings.firestore_project_id,
            database=settings.firestore_database_id,
        )

    logger.info(
        "Usando FirestoreConversationStore",
        extra={"collection": settings.conversations_collection},
    )
    return FirestoreConversationStore(client, collection=settings.conversations_collection)


__all__ = [
    "AsyncConversationStoreProtocol",
    "ConversationStoreError",
    "create_conversation_store",
]
