"""Testes do MessageHandler (user_id → conversa ativa)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from karen_ai.application.conversation_manager import ConversationManager
from karen_ai.application.message_handler import ActiveUserRegistry, MessageHandler
from karen_ai.domain.conversation import ConversationState
from karen_ai.domain.models import IncomingMessage
from tests.helpers.fakes import DriverPool


@pytest.mark.asyncio
class TestMessageHandler:
    async def test_first_contact_creates_conversation(self, manager: ConversationManager) -> None:
        handler = MessageHandler(manager)

        response = await handler.process_message(
            IncomingMessage(text="I need a refund for my Amazon order #12345"), "user-1"
        )

        assert response.state == ConversationState.GATHERING_INFO
        session = handler.get_user_session("user-1")
        assert session is not None
        assert session.is_active is True

    async def test_same_user_reuses_conversation(self, manager: ConversationManager) -> None:
        handler = MessageHandler(manager)
        await handler.process_message(IncomingMessage(text="refund for Amazon order #1"), "user-1")
        first_id = handler.get_user_session("user-1").conversation_id

        await handler.process_message(IncomingMessage(text="it's broken"), "user-1")

        assert handler.get_user_session("user-1").conversation_id == first_id
        history = await handler.get_conversation_history("user-1")
        assert len(history) == 4

    async def test_users_are_isolated(self, manager: ConversationManager) -> None:
        handler = MessageHandler(manager)
        await handler.process_message(IncomingMessage(text="hello"), "user-1")
        await handler.process_message(IncomingMessage(text="hello"), "user-2")

        assert (
            handler.get_user_session("user-1").conversation_id
            != handler.get_user_session("user-2").conversation_id
        )

    async def test_end_conversation_closes_browser_and_deactivates(
        self, manager: ConversationManager, driver_pool: DriverPool
    ) -> None:
        handler = MessageHandler(manager)
        for text in (
            "I need a refund for my Amazon order #12345",
            "I ordered it on March 15, 2024 and it arrived damaged",
            "go",
        ):
            await handler.process_message(IncomingMessage(text=text), "user-1")
        [driver] = driver_pool.drivers.values()
        assert driver.is_open is True

        response = await handler.end_conversation("user-1")

        assert response.text == "Thank you for using our service. Your session has been closed."
        assert response.error is False
        assert driver.is_open is False
        assert handler.get_user_session("user-1").is_active is False
        assert await handler.get_conversation_history("user-1") == []

    async def test_message_after_end_starts_new_conversation(
        self, manager: ConversationManager
    ) -> None:
        handler = MessageHandler(manager)
        await handler.process_message(IncomingMessage(text="hello"), "user-1")
        old_id = handler.get_user_session("user-1").conversation_id
        await handler.end_conversation("user-1")

        await handler.process_message(IncomingMessage(text="hello again"), "user-1")

        assert handler.get_user_session("user-1").conversation_id != old_id

    async def test_end_without_conversation(self, manager: ConversationManager) -> None:
        response = await MessageHandler(manager).end_conversation("nobody")
        assert response.error is False

    async def test_end_conversation_failure(self, manager: ConversationManager) -> None:
        handler = MessageHandler(manager)
        await handler.process_message(IncomingMessage(text="hello"), "user-1")
        manager.sessions.close_for_conversation = AsyncMock(side_effect=RuntimeError("crashed"))

        response = await handler.end_conversation("user-1")

        assert response.error is True
        assert response.text == "There was an issue closing your session: crashed"
        assert handler.get_user_session("user-1").is_active is False

    async def test_manager_exception_becomes_error_response(self) -> None:
        manager = AsyncMock(spec=ConversationManager)
        manager.initialize_conversation.side_effect = RuntimeError("store offline")
        handler = MessageHandler(manager)

        response = await handler.process_message(IncomingMessage(text="hello"), "user-1")

        assert response.error is True
        assert response.text == "Sorry, I encountered an error: store offline. Please try again."

    async def test_describe_session(self, manager: ConversationManager) -> None:
        handler = MessageHandler(manager)
        assert handler.describe_session("user-1") is None
        await handler.process_message(IncomingMessage(text="hello"), "user-1")

        described = handler.describe_session("user-1")

        assert set(described) == {"conversationId", "lastActivity", "isActive"}


class TestActiveUserRegistry:
    def test_deactivate_twice(self) -> None:
        users = ActiveUserRegistry()
        users.bind("user-1", "conv-1")
        assert users.deactivate("user-1") is not None
        assert users.deactivate("user-1") is None
        assert users.active_conversation("user-1") is None
