"""Validações de conversa antes de persistir em qualquer store."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from karen_ai.domain.models import Conversation
from karen_ai.domain.protocols.conversation_store import ConversationStoreError
from karen_ai.observability.logging import get_logger, short_id


logger = get_logger(__name__)


def ensure_newer_version(existing: Conversation | None, incoming: Conversation) -> None:
    """Rejeita escrita com versão igual ou anterior à persistida.

    Cada turno incrementa `version` antes de persistir; uma escrita que não
    avança a versão veio de um turno concorrente desatualizado.

    Raises:
        ConversationStoreError: versão desatualizada
    """
    if existing is None:
        return
    if incoming.version <= existing.version:
        logger.error(
            "conversation_version_conflict",
            extra={
                "conversation_id": short_id(incoming.conversation_id),
                "stored_version": existing.version,
                "incoming_version": incoming.version,
            },
        )
        raise ConversationStoreError(
            f"Stale conversation version {incoming.version} "
            f"(stored: {existing.version})"
        )


def sort_by_last_update(conversations: list[Conversation], limit: int) -> list[Conversation]:
    """Mais recentes primeiro (metadata.last_update_time), limitado."""
    ordered = sorted(
        conversations,
        key=lambda c: c.metadata.last_update_time,
        reverse=True,
    )
    return ordered[: max(limit, 0)]


def decode_conversation(
    payload: str | bytes | Mapping[str, Any], *, conversation_id: str | None = None
) -> Conversation:
    """Registro persistido (JSON ou documento) → Conversation.

    Raises:
        ConversationStoreError: registro fora do schema (corrompido ou de
            outra versão do serviço)
    """
    try:
        if isinstance(payload, (str, bytes)):
            return Conversation.model_validate_json(payload)
        return Conversation.model_validate(dict(payload))
    except ValidationError as e:
        logger.error(
            "conversation_record_invalid",
            extra={"conversation_id": short_id(conversation_id), "error_count": e.error_count()},
        )
        raise ConversationStoreError(
            f"Stored conversation record is invalid ({e.error_count()} validation errors)"
        ) from e
