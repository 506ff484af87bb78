"""Camada de infraestrutura: stores de conversa.

Uso típico:
    from karen_ai.infra import create_conversation_store

- Infraestrutura não decide regra de negócio
- Domínio não conhece infraestrutura
- Logs estruturados sem PII
"""

from karen_ai.infra.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
    create_conversation_store,
)
from karen_ai.infra.conversation_store_memory import InMemoryConversationStore

__all__ = [
    "AsyncConversationStoreProtocol",
    "ConversationStoreError",
    "InMemoryConversationStore",
    "create_conversation_store",
]
