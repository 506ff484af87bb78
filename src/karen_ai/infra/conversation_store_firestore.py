"""Implementação de ConversationStore usando Firestore.

Coleção: conversations/{conversation_id}, documento no formato camelCase
persistido (o mesmo lido por outros serviços).
"""

from __future__ import annotations

import logging
from typing import Any

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from karen_ai.domain.models import Conversation
from karen_ai.domain.protocols.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
)
from karen_ai.infra.conversation_validations import decode_conversation, ensure_newer_version
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class FirestoreConversationStore(AsyncConversationStoreProtocol):
    """Usa o client síncrono do Firestore dentro das corrotinas."""

    def __init__(self, client: firestore.Client, collection: str = "conversations") -> None:
        self._client = client
        self._collection = collection

    def _doc_ref(self, conversation_id: str) -> firestore.DocumentReference:
        return self._client.collection(self._collection).document(conversation_id)

    async def create(self, conversation: Conversation) -> None:
        try:
            self._doc_ref(conversation.conversation_id).set(conversation.to_wire())
        except Exception as e:
            logger.error(
                "conversation_create_failed_firestore",
                extra={"conversation_id": short_id(conversation.conversation_id), "error": str(e)},
            )
            raise ConversationStoreError(f"Failed to create conversation in Firestore: {e}") from e
        logger.debug(
            "conversation_created_firestore",
            extra={"conversation_id": short_id(conversation.conversation_id)},
        )

    async def find_one(self, conversation_id: str) -> Conversation | None:
        try:
            snapshot = self._doc_ref(conversation_id).get()
        except Exception as e:
            logger.error(
                "conversation_load_failed_firestore",
                extra={"conversation_id": short_id(conversation_id), "error": str(e)},
            )
            raise ConversationStoreError(f"Failed to load conversation from Firestore: {e}") from e

        if not snapshot.exists:
            logger.debug(
                "conversation_not_found_firestore",
                extra={"conversation_id": short_id(conversation_id)},
            )
            return None
        data: dict[str, Any] = snapshot.to_dict() or {}
        return decode_conversation(data, conversation_id=conversation_id)

    async def find_one_and_update(self, conversation: Conversation) -> Conversation | None:
        existing = await self.find_one(conversation.conversation_id)
        ensure_newer_version(existing, conversation)
        try:
            self._doc_ref(conversation.conversation_id).set(conversation.to_wire())
        except Exception as e:
            logger.error(
                "conversation_save_failed_firestore",
                extra={"conversation_id": short_id(conversation.conversation_id), "error": str(e)},
            )
            raise ConversationStoreError(f"Failed to save conversation to Firestore: {e}") from e
        logger.debug(
            "conversation_saved_firestore",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "version": conversation.version,
            },
        )
        return conversation

    async def find(self, user_id: str, limit: int = 10) -> list[Conversation]:
        query = (
            self._client.collection(self._collection)
            .where(filter=FieldFilter("userId", "==", user_id))
            .order_by("metadata.lastUpdateTime", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        try:
            docs = list(query.stream())
        except Exception as e:
            logger.error("conversation_list_failed_firestore", extra={"error": str(e)})
            raise ConversationStoreError(f"Failed to list conversations from Firestore: {e}") from e
        return [decode_conversation(doc.to_dict() or {}, conversation_id=doc.id) for doc in docs]
