"""Testes do ConversationManager (máquina de estados do atendimento).

Cobertura:
- Fluxo completo de reembolso Amazon com gateway determinístico
- Cada turno acrescenta exatamente 2 mensagens (sucesso ou erro)
- Estados monotônicos e ERROR a partir de falhas
- Acúmulo de extractedInfo entre turnos
- Timeout de turno e falhas de persistência
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any
from unittest.mock import MagicMock

import pytest

from karen_ai.application.conversation_manager import ConversationManager
from karen_ai.automation.session_registry import BrowserSessionRegistry
from karen_ai.config.settings import Settings
from karen_ai.domain.conversation import STATE_ORDER, ConversationState
from karen_ai.domain.models import IncomingMessage
from karen_ai.domain.protocols.ai_gateway import AIGateway, AIGatewayError
from karen_ai.domain.protocols.conversation_store import ConversationStoreError
from karen_ai.infra.conversation_store_memory import InMemoryConversationStore
from karen_ai.infra.conversation_store_redis import RedisConversationStore
from karen_ai.observability.logging import current_log_context
from tests.helpers.fakes import DriverPool, ScriptedGateway

REFUND_OPENING = "I need a refund for my Amazon order #12345"
REFUND_DETAILS = "I ordered it on March 15, 2024 and it arrived damaged"
REFUND_FULL_STORY = (
    "I want a refund from Amazon, order #12345, ordered May 1st 2024, item arrived damaged"
)


class SlowGateway(AIGateway):
    async def generate(self, messages: Sequence[dict[str, str]], system_prompt: str | None = None) -> str:
        await asyncio.sleep(1)
        return "too late"

    async def health(self) -> dict[str, Any]:
        return {"status": "ok"}


class ContextRecordingGateway(AIGateway):
    """Guarda o contexto de log visto durante cada chamada."""

    def __init__(self) -> None:
        self.contexts: list[dict[str, str]] = []

    async def generate(self, messages: Sequence[dict[str, str]], system_prompt: str | None = None) -> str:
        self.contexts.append(dict(current_log_context()))
        return "not json"

    async def health(self) -> dict[str, Any]:
        return {"status": "ok"}


class FailingStore(InMemoryConversationStore):
    async def find_one_and_update(self, conversation):
        raise ConversationStoreError("firestore unavailable")


async def _drive_to_automating(manager: ConversationManager) -> str:
    conversation_id = await manager.initialize_conversation("user-1")
    await manager.process_message(conversation_id, REFUND_OPENING)
    await manager.process_message(conversation_id, REFUND_DETAILS)
    return conversation_id


@pytest.mark.asyncio
class TestAmazonRefundFlow:
    """Fluxo feliz com o gateway determinístico."""

    async def test_first_message_moves_to_gathering(self, manager: ConversationManager) -> None:
        conversation_id = await manager.initialize_conversation("user-1")

        response = await manager.process_message(conversation_id, REFUND_OPENING)

        assert response.state == ConversationState.GATHERING_INFO
        assert response.error is False
        assert response.metadata == {"issue": "Refund request", "service": "Amazon"}
        conversation = await manager.get_conversation(conversation_id)
        assert conversation.metadata.extracted_info.order_number == "12345"
        assert [m.role for m in conversation.messages] == ["user", "assistant"]

    async def test_sufficient_info_reaches_automating_in_one_turn(
        self, manager: ConversationManager
    ) -> None:
        conversation_id = await manager.initialize_conversation("user-1")
        await manager.process_message(conversation_id, REFUND_OPENING)

        response = await manager.process_message(conversation_id, REFUND_DETAILS)

        assert response.state == ConversationState.AUTOMATING
        assert response.text.startswith("I have all the information I need!")
        assert response.metadata["plan"].startswith("1. Navigate")
        meta = await manager.get_conversation_metadata(conversation_id)
        assert meta.service_url == "https://www.amazon.com"
        assert meta.extracted_info.known_facts() == {
            "orderNumber": "12345",
            "orderDate": "2024-03-15",
            "reason": "damaged",
        }

    async def test_full_story_in_one_message_reaches_automating(
        self, manager: ConversationManager
    ) -> None:
        """Todos os fatos numa única mensagem: PROCESSING → AUTOMATING no mesmo turno."""
        conversation_id = await manager.initialize_conversation("user-1")
        await manager.process_message(conversation_id, REFUND_OPENING)
        meta = await manager.get_conversation_metadata(conversation_id)
        assert meta.service == "Amazon"

        response = await manager.process_message(conversation_id, REFUND_FULL_STORY)

        assert response.state == ConversationState.AUTOMATING
        assert response.error is False
        assert "plan" in response.metadata
        meta = await manager.get_conversation_metadata(conversation_id)
        facts = meta.extracted_info.known_facts()
        assert facts["orderNumber"] == "12345"
        assert facts["orderDate"] == "2024-05-01"
        assert facts["reason"] == "damaged"
        assert meta.automation_plan

    async def test_automation_completes_after_configured_steps(
        self,
        manager: ConversationManager,
        driver_pool: DriverPool,
        sessions: BrowserSessionRegistry,
    ) -> None:
        conversation_id = await _drive_to_automating(manager)

        started = await manager.process_message(conversation_id, "ok, go ahead")
        assert started.state == ConversationState.AUTOMATING
        assert started.text.startswith("I've started the automation process")
        conversation = await manager.get_conversation(conversation_id)
        driver = driver_pool.drivers[conversation.session_id]
        assert ("navigate", "https://www.amazon.com") in driver.calls

        step_one = await manager.process_message(conversation_id, "status?")
        assert step_one.metadata["currentStep"] == 1
        step_two = await manager.process_message(conversation_id, "status?")
        assert step_two.metadata["currentStep"] == 2

        done = await manager.process_message(conversation_id, "status?")

        assert done.state == ConversationState.COMPLETED
        assert done.text.startswith("I've successfully completed")
        assert conversation.metadata.completion_time is not None
        assert len(conversation.metadata.screenshots) == 4
        assert driver.is_open is False
        assert len(sessions) == 0

    async def test_follow_up_after_completion(self, manager: ConversationManager) -> None:
        conversation_id = await _drive_to_automating(manager)
        for _ in range(4):
            await manager.process_message(conversation_id, "status?")

        response = await manager.process_message(conversation_id, "Will I get an email?")

        assert response.state == ConversationState.COMPLETED
        assert response.error is False
        conversation = await manager.get_conversation(conversation_id)
        assert len(conversation.messages) == 14
        assert conversation.version == 7

    async def test_states_never_move_backwards(self, manager: ConversationManager) -> None:
        conversation_id = await manager.initialize_conversation("user-1")
        seen = []
        for text in (REFUND_OPENING, REFUND_DETAILS, "go", "go", "go", "go", "thanks"):
            response = await manager.process_message(conversation_id, text)
            seen.append(STATE_ORDER[response.state])
        assert seen == sorted(seen)


@pytest.mark.asyncio
class TestGatheringInfo:
    async def test_partial_info_asks_for_missing(self, manager: ConversationManager) -> None:
        conversation_id = await manager.initialize_conversation("user-1")
        await manager.process_message(conversation_id, REFUND_OPENING)

        response = await manager.process_message(conversation_id, "it's broken")

        assert response.state == ConversationState.GATHERING_INFO
        assert response.metadata == {"missing": ["orderDate"]}
        assert "orderDate" in response.text

        meta = await manager.get_conversation_metadata(conversation_id)
        assert meta.extracted_info.order_number == "12345"
        assert meta.extracted_info.reason == "broken"

    async def test_extracted_info_is_accumulated(self, manager: ConversationManager) -> None:
        conversation_id = await manager.initialize_conversation("user-1")
        await manager.process_message(conversation_id, REFUND_OPENING)
        await manager.process_message(conversation_id, "it's broken")

        response = await manager.process_message(conversation_id, "bought on April 2, 2024")

        assert response.state == ConversationState.AUTOMATING
        meta = await manager.get_conversation_metadata(conversation_id)
        assert set(meta.extracted_info.known_facts()) == {"orderNumber", "reason", "orderDate"}

    async def test_explicit_flag_skips_sufficiency_call(
        self, store: InMemoryConversationStore, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        gateway = ScriptedGateway([
            json.dumps({"issue": "Refund request", "service": "Amazon", "keyDetails": {}}),
            "What is your order number?",
            json.dumps({"hasEnoughInfo": False, "orderNumber": "1"}),
            "And the order date?",
        ])
        manager = ConversationManager(gateway, store, sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")
        await manager.process_message(conversation_id, "refund please")

        response = await manager.process_message(conversation_id, "order 1")

        assert response.state == ConversationState.GATHERING_INFO
        assert response.text == "And the order date?"
        assert len(gateway.calls) == 4

    async def test_free_text_extraction_becomes_note(
        self, store: InMemoryConversationStore, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        gateway = ScriptedGateway([
            "not json at all",
            "Customer wants a refund",
            "Amazon",
            "Tell me more",
            "The customer says the box was empty",
            "NO, still need order number",
            "What is the order number?",
        ])
        manager = ConversationManager(gateway, store, sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")

        first = await manager.process_message(conversation_id, "refund")
        assert first.metadata == {"issue": "Customer wants a refund", "service": "Amazon"}

        response = await manager.process_message(conversation_id, "the box was empty")

        assert response.state == ConversationState.GATHERING_INFO
        meta = await manager.get_conversation_metadata(conversation_id)
        assert meta.extracted_info.notes == "The customer says the box was empty"


@pytest.mark.asyncio
class TestErrors:
    async def test_unknown_conversation(self, manager: ConversationManager) -> None:
        response = await manager.process_message("does-not-exist", "hello")

        assert response.error is True
        assert response.state == ConversationState.ERROR
        assert "Please start a new conversation" in response.text

    async def test_invalid_stored_record_returns_error_response(
        self, mock_gateway, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        """Registro persistido fora do schema não escapa como exceção."""
        redis_client = MagicMock()
        redis_client.get.return_value = '{"conversationId": "abc"}'
        manager = ConversationManager(
            mock_gateway, RedisConversationStore(redis_client), sessions, settings=settings
        )

        response = await manager.process_message("abc", "hello")

        assert response.error is True
        assert response.state == ConversationState.ERROR
        assert "invalid" in response.text
        redis_client.pipeline.assert_not_called()

    async def test_unknown_conversation_does_not_keep_lock(
        self, manager: ConversationManager
    ) -> None:
        for index in range(3):
            await manager.process_message(f"missing-{index}", "hello")

        assert manager._locks == {}

    async def test_empty_message(self, manager: ConversationManager) -> None:
        conversation_id = await manager.initialize_conversation("user-1")

        response = await manager.process_message(conversation_id, {"text": ""})

        assert response.error is True
        conversation = await manager.get_conversation(conversation_id)
        assert conversation.messages == []

    async def test_gateway_failure_moves_to_error(
        self, store: InMemoryConversationStore, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        gateway = ScriptedGateway([AIGatewayError("AI service error: rate limited")])
        manager = ConversationManager(gateway, store, sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")

        response = await manager.process_message(conversation_id, REFUND_OPENING)

        assert response.error is True
        assert response.state == ConversationState.ERROR
        assert response.text.startswith("I encountered an error: AI service error")
        conversation = await manager.get_conversation(conversation_id)
        assert len(conversation.messages) == 2
        assert conversation.metadata.error_detail == "AI service error: rate limited"

    async def test_navigation_failure_captures_error_screenshot(
        self, mock_gateway, store: InMemoryConversationStore, settings: Settings
    ) -> None:
        pool = DriverPool(fail_navigation=True)
        sessions = BrowserSessionRegistry(pool)
        manager = ConversationManager(mock_gateway, store, sessions, settings=settings)
        conversation_id = await _drive_to_automating(manager)

        response = await manager.process_message(conversation_id, "go")

        assert response.error is True
        assert response.state == ConversationState.ERROR
        assert "Navigation failed" in response.metadata["errorDetail"]
        assert "automation_error" in response.metadata["screenshot"]
        assert len(sessions) == 0

        follow_up = await manager.process_message(conversation_id, "what happened?")
        assert follow_up.state == ConversationState.ERROR
        assert follow_up.error is False

    async def test_turn_timeout(
        self, store: InMemoryConversationStore, sessions: BrowserSessionRegistry
    ) -> None:
        settings = Settings(_env_file=None, turn_timeout_seconds=0.05)
        manager = ConversationManager(SlowGateway(), store, sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")

        response = await manager.process_message(conversation_id, "hello")

        assert response.error is True
        assert "timed out" in response.text
        conversation = await manager.get_conversation(conversation_id)
        assert conversation.state == ConversationState.ERROR
        assert len(conversation.messages) == 2

    async def test_persistence_failure_does_not_break_turn(
        self, mock_gateway, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        manager = ConversationManager(mock_gateway, FailingStore(), sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")

        response = await manager.process_message(conversation_id, REFUND_OPENING)

        assert response.error is False
        assert response.state == ConversationState.GATHERING_INFO


@pytest.mark.asyncio
class TestPersistenceAndQueries:
    async def test_each_turn_is_persisted_with_new_version(
        self, manager: ConversationManager, store: InMemoryConversationStore
    ) -> None:
        conversation_id = await manager.initialize_conversation("user-1")
        await manager.process_message(conversation_id, REFUND_OPENING)

        stored = await store.find_one(conversation_id)

        assert stored.version == 1
        assert stored.state == ConversationState.GATHERING_INFO
        assert len(stored.messages) == 2

    async def test_concurrent_turns_are_serialized(self, manager: ConversationManager) -> None:
        conversation_id = await manager.initialize_conversation("user-1")

        await asyncio.gather(
            manager.process_message(conversation_id, REFUND_OPENING),
            manager.process_message(conversation_id, "it's broken"),
        )

        conversation = await manager.get_conversation(conversation_id)
        assert [m.role for m in conversation.messages] == ["user", "assistant"] * 2
        assert conversation.version == 2

    async def test_system_prompt_override(
        self, store: InMemoryConversationStore, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        gateway = ScriptedGateway([
            json.dumps({"issue": "Refund request", "service": "Amazon", "keyDetails": {}}),
            "What's your order number?",
        ])
        manager = ConversationManager(gateway, store, sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")

        await manager.process_message(
            conversation_id,
            IncomingMessage(text="refund", system_prompt="You are Karen, be polite."),
        )

        assert gateway.calls[0][1] == "You are Karen, be polite."
        meta = await manager.get_conversation_metadata(conversation_id)
        assert meta.system_prompt == "You are Karen, be polite."

    async def test_user_conversations_summaries(self, manager: ConversationManager) -> None:
        first = await manager.initialize_conversation("user-1")
        await manager.process_message(first, REFUND_OPENING)
        await manager.initialize_conversation("user-2")

        summaries = await manager.get_user_conversations("user-1")

        assert [s.conversation_id for s in summaries] == [first]
        assert summaries[0].issue == "Refund request"

    async def test_history_for_unknown_conversation(self, manager: ConversationManager) -> None:
        assert await manager.get_conversation_history("missing") is None

    async def test_turn_logs_carry_conversation_id(
        self, store: InMemoryConversationStore, sessions: BrowserSessionRegistry, settings: Settings
    ) -> None:
        gateway = ContextRecordingGateway()
        manager = ConversationManager(gateway, store, sessions, settings=settings)
        conversation_id = await manager.initialize_conversation("user-1")

        await manager.process_message(conversation_id, "refund")

        assert gateway.contexts
        assert all(
            context["conversation_id"] == conversation_id[:8] + "..."
            for context in gateway.contexts
        )
        assert dict(current_log_context()) == {}
