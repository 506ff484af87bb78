"""Protocolo de domínio para persistência de conversas (async)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from karen_ai.domain.models import Conversation


class ConversationStoreError(Exception):
    """Erro ao persistir ou recuperar conversa."""

    pass


class AsyncConversationStoreProtocol(ABC):
    """Contrato mínimo assíncrono para armazenamento de Conversation.

    Espelha as operações do store externo (create/findOne/findOneAndUpdate/find)
    com a conversa indexada por conversation_id.
    """

    @abstractmethod
    async def create(self, conversation: Conversation) -> None: ...

    @abstractmethod
    async def find_one(self, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    async def find_one_and_update(self, conversation: Conversation) -> Conversation | None: ...

    @abstractmethod
    async def find(self, user_id: str, limit: int = 10) -> list[Conversation]: ...
