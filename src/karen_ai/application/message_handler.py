"""Entrada por usuário: mapeia user_id → conversa ativa.

A tabela de usuários ativos é explícita (ActiveUserRegistry) para que
tempo de vida e concorrência sejam testáveis.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import Field

from karen_ai.application.conversation_manager import ConversationManager
from karen_ai.domain.models import (
    AssistantResponse,
    CamelModel,
    ChatMessage,
    IncomingMessage,
    utcnow,
)
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


class UserSession(CamelModel):
    """Sessão de transporte do usuário."""

    conversation_id: str
    last_activity: datetime = Field(default_factory=utcnow)
    is_active: bool = True


class ActiveUserRegistry:
    """Tabela em memória user_id → UserSession."""

    def __init__(self) -> None:
        self._sessions: dict[str, UserSession] = {}

    def active_conversation(self, user_id: str) -> str | None:
        session = self._sessions.get(user_id)
        if session is None or not session.is_active:
            return None
        return session.conversation_id

    def bind(self, user_id: str, conversation_id: str) -> UserSession:
        session = UserSession(conversation_id=conversation_id)
        self._sessions[user_id] = session
        return session

    def touch(self, user_id: str) -> None:
        session = self._sessions.get(user_id)
        if session is not None:
            session.last_activity = utcnow()

    def deactivate(self, user_id: str) -> UserSession | None:
        session = self._sessions.get(user_id)
        if session is None or not session.is_active:
            return None
        session.is_active = False
        return session

    def get(self, user_id: str) -> UserSession | None:
        return self._sessions.get(user_id)


class MessageHandler:
    """Fachada usada pela camada HTTP."""

    def __init__(
        self,
        manager: ConversationManager,
        users: ActiveUserRegistry | None = None,
    ) -> None:
        self._manager = manager
        self._users = users or ActiveUserRegistry()

    @property
    def users(self) -> ActiveUserRegistry:
        return self._users

    async def process_message(
        self, message: IncomingMessage, user_id: str
    ) -> AssistantResponse:
        """Cria a conversa no primeiro contato e processa o turno."""
        logger.info("message_received", extra={"user_id": short_id(user_id)})
        try:
            conversation_id = self._users.active_conversation(user_id)
            if conversation_id is None:
                conversation_id = await self._manager.initialize_conversation(user_id)
                self._users.bind(user_id, conversation_id)
                logger.info(
                    "user_conversation_created",
                    extra={
                        "user_id": short_id(user_id),
                        "conversation_id": short_id(conversation_id),
                    },
                )

            response = await self._manager.process_message(conversation_id, message)
            self._users.touch(user_id)
            return response
        except Exception as e:  # noqa: BLE001 - transporte recebe resposta de erro
            logger.error(
                "message_processing_failed",
                extra={"user_id": short_id(user_id), "error_type": type(e).__name__},
            )
            return AssistantResponse(
                text=f"Sorry, I encountered an error: {e}. Please try again.",
                error=True,
            )

    async def end_conversation(self, user_id: str) -> AssistantResponse:
        """Desativa a sessão do usuário e fecha o navegador da conversa."""
        conversation_id = self._users.active_conversation(user_id)
        if conversation_id is not None:
            try:
                await self._manager.sessions.close_for_conversation(conversation_id)
            except Exception as e:  # noqa: BLE001 - encerramento sempre conclui
                logger.error(
                    "conversation_end_failed",
                    extra={"user_id": short_id(user_id), "error_type": type(e).__name__},
                )
                self._users.deactivate(user_id)
                return AssistantResponse(
                    text=f"There was an issue closing your session: {e}",
                    error=True,
                )
            self._users.deactivate(user_id)
            logger.info(
                "conversation_ended",
                extra={
                    "user_id": short_id(user_id),
                    "conversation_id": short_id(conversation_id),
                },
            )

        return AssistantResponse(
            text="Thank you for using our service. Your session has been closed."
        )

    async def get_conversation_history(self, user_id: str) -> list[ChatMessage]:
        conversation_id = self._users.active_conversation(user_id)
        if conversation_id is None:
            return []
        return await self._manager.get_conversation_history(conversation_id) or []

    def get_user_session(self, user_id: str) -> UserSession | None:
        return self._users.get(user_id)

    def describe_session(self, user_id: str) -> dict[str, Any] | None:
        session = self._users.get(user_id)
        return session.to_wire() if session else None
