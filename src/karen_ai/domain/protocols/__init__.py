"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from karen_ai.domain.protocols.ai_gateway import AIGateway, AIGatewayError
from karen_ai.domain.protocols.browser import (
    BrowserDriver,
    BrowserLaunchError,
    NoActiveSessionError,
)
from karen_ai.domain.protocols.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
)

__all__ = [
    "AIGateway",
    "AIGatewayError",
    "AsyncConversationStoreProtocol",
    "BrowserDriver",
    "BrowserLaunchError",
    "ConversationStoreError",
    "NoActiveSessionError",
]
