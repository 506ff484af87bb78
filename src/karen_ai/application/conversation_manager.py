"""Máquina de estados da conversa de atendimento.

Responsabilidades:
- Carregar/criar a conversa (cache em memória + store)
- Despachar a mensagem para o handler do estado atual
- Validar cada transição pelo FSMEngine
- Anexar mensagem do usuário + resposta (sempre +2) e persistir
- Converter qualquer falha do turno em ERROR + resposta apologética

Turnos de uma mesma conversa são serializados por um asyncio.Lock;
cada persistência incrementa `version`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from karen_ai.ai import prompts
from karen_ai.ai.parser import decode_extraction, decode_initial_analysis, decode_sufficiency
from karen_ai.application.fsm_engine import FSMAction, FSMDispatchResult, FSMEngine
from karen_ai.automation.session_registry import BrowserSession, BrowserSessionRegistry
from karen_ai.config.settings import Settings, get_settings
from karen_ai.domain.automation import NavigateAction, ScreenshotAction
from karen_ai.domain.conversation import ConversationEvent, ConversationState
from karen_ai.domain.models import (
    AssistantResponse,
    ChatMessage,
    Conversation,
    ConversationMetadata,
    ConversationSummary,
    IncomingMessage,
    utcnow,
)
from karen_ai.domain.protocols.ai_gateway import AIGateway
from karen_ai.domain.protocols.conversation_store import (
    AsyncConversationStoreProtocol,
    ConversationStoreError,
)
from karen_ai.domain.services import resolve_service_url
from karen_ai.observability.logging import bind_log_context, get_logger, short_id
from karen_ai.observability.timing import timed_async

logger: logging.Logger = get_logger(__name__)


class ConversationNotFoundError(LookupError):
    """Conversa inexistente no cache e no store."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class InvalidTransitionError(RuntimeError):
    """Transição rejeitada pela tabela do FSM."""


class ConversationManager:
    """Coordena IA, automação e persistência a cada mensagem."""

    def __init__(
        self,
        gateway: AIGateway,
        store: AsyncConversationStoreProtocol,
        sessions: BrowserSessionRegistry,
        *,
        settings: Settings | None = None,
        fsm: FSMEngine | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._sessions = sessions
        self._settings = settings or get_settings()
        self._fsm = fsm or FSMEngine()
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def sessions(self) -> BrowserSessionRegistry:
        return self._sessions

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def initialize_conversation(self, user_id: str) -> str:
        """Cria conversa em INITIAL; falha de persistência não impede o uso."""
        conversation = Conversation(user_id=user_id)
        self._conversations[conversation.conversation_id] = conversation
        try:
            await self._store.create(conversation)
        except ConversationStoreError as e:
            logger.error(
                "conversation_persist_failed",
                extra={"conversation_id": short_id(conversation.conversation_id), "error": str(e)},
            )
        logger.info(
            "conversation_initialized",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "user_id": short_id(user_id),
            },
        )
        return conversation.conversation_id

    async def process_message(
        self,
        conversation_id: str,
        message: IncomingMessage | Mapping[str, Any] | str,
    ) -> AssistantResponse:
        """Processa um turno. Nunca lança para o chamador."""
        try:
            incoming = _coerce_message(message)
        except ValidationError as e:
            logger.warning("incoming_message_invalid", extra={"error_count": e.error_count()})
            return AssistantResponse(
                text="I encountered an error: the message text is required.",
                error=True,
            )
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())

        with bind_log_context(conversation_id=conversation_id):
            async with lock:
                try:
                    conversation = await self._load(conversation_id)
                except Exception as e:  # noqa: BLE001 - registro ausente ou ilegível
                    if self._locks.get(conversation_id) is lock:
                        del self._locks[conversation_id]
                    logger.warning(
                        "conversation_unavailable",
                        extra={
                            "conversation_id": short_id(conversation_id),
                            "error_type": type(e).__name__,
                        },
                    )
                    return AssistantResponse(
                        text=f"I encountered an error: {e}. Please start a new conversation.",
                        state=ConversationState.ERROR,
                        error=True,
                    )

                with bind_log_context(session_id=conversation.session_id):
                    return await self._run_turn(conversation, incoming)

    async def _run_turn(
        self, conversation: Conversation, incoming: IncomingMessage
    ) -> AssistantResponse:
        """Turno com o lock da conversa já adquirido."""
        previous_state = conversation.state
        conversation.metadata.touch()
        conversation.append_message("user", incoming.text, incoming.timestamp)
        if incoming.system_prompt:
            conversation.metadata.system_prompt = incoming.system_prompt
            logger.info("conversation_system_prompt_updated")

        async with timed_async("conversation_turn"):
            try:
                response = await asyncio.wait_for(
                    self._dispatch_state(conversation, incoming),
                    timeout=self._settings.turn_timeout_seconds,
                )
            except Exception as e:  # noqa: BLE001 - turno nunca propaga
                response = await self._fatal_error(conversation, e)

        conversation.append_message("assistant", response.text, response.timestamp)
        conversation.version += 1
        await self._persist(conversation)

        logger.info(
            "conversation_turn_completed",
            extra={
                "from_state": str(previous_state),
                "to_state": str(conversation.state),
                "version": conversation.version,
                "error": response.error,
            },
        )
        return response

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        try:
            return await self._load(conversation_id)
        except (ConversationNotFoundError, ConversationStoreError):
            return None

    async def get_conversation_history(self, conversation_id: str) -> list[ChatMessage] | None:
        conversation = await self.get_conversation(conversation_id)
        return list(conversation.messages) if conversation else None

    async def get_conversation_metadata(
        self, conversation_id: str
    ) -> ConversationMetadata | None:
        conversation = await self.get_conversation(conversation_id)
        return conversation.metadata if conversation else None

    async def get_user_conversations(
        self, user_id: str, limit: int | None = None
    ) -> list[ConversationSummary]:
        """Mais recentes primeiro; store indisponível → cache em memória."""
        limit = limit if limit is not None else self._settings.user_conversations_default_limit
        try:
            conversations = await self._store.find(user_id, limit)
        except ConversationStoreError as e:
            logger.warning("user_conversations_fallback", extra={"error": str(e)})
            conversations = sorted(
                (c for c in self._conversations.values() if c.user_id == user_id),
                key=lambda c: c.metadata.last_update_time,
                reverse=True,
            )[:limit]
        return [c.summary() for c in conversations]

    # ------------------------------------------------------------------
    # Despacho por estado
    # ------------------------------------------------------------------

    async def _dispatch_state(
        self, conversation: Conversation, message: IncomingMessage
    ) -> AssistantResponse:
        state = conversation.state
        if state == ConversationState.INITIAL:
            return await self._handle_initial(conversation, message)
        if state == ConversationState.GATHERING_INFO:
            return await self._handle_gathering_info(conversation, message)
        if state == ConversationState.PROCESSING:
            return await self._begin_processing(conversation)
        if state == ConversationState.AUTOMATING:
            return await self._handle_automating(conversation)
        return await self._handle_follow_up(conversation, message)

    async def _handle_initial(
        self, conversation: Conversation, message: IncomingMessage
    ) -> AssistantResponse:
        meta = conversation.metadata
        system_prompt = (
            message.system_prompt or meta.system_prompt or prompts.INITIAL_ANALYSIS_SYSTEM_PROMPT
        )
        reply = await self._gateway.generate(
            [{"role": "user", "content": message.text}], system_prompt
        )

        analysis = decode_initial_analysis(reply)
        if analysis is not None:
            meta.issue = analysis.issue
            meta.service = analysis.service
            if analysis.key_details:
                meta.extracted_info = meta.extracted_info.merge(analysis.key_details)
        else:
            meta.issue = await self._ask(prompts.issue_fallback_prompt(message.text))
            meta.service = await self._ask(prompts.service_fallback_prompt(message.text))

        await self._transition(conversation, ConversationEvent.INITIAL_ANALYSIS_DONE)

        info_request = await self._ask(
            prompts.info_needed_prompt(meta.issue, meta.service),
            message.system_prompt or meta.system_prompt or prompts.ASSISTANT_PERSONA,
        )
        return self._response(
            conversation,
            info_request,
            metadata={"issue": meta.issue, "service": meta.service},
        )

    async def _handle_gathering_info(
        self, conversation: Conversation, message: IncomingMessage
    ) -> AssistantResponse:
        meta = conversation.metadata
        system_prompt = meta.system_prompt or prompts.extraction_system_prompt(
            meta.issue, meta.service, meta.extracted_info.known_facts()
        )
        reply = await self._gateway.generate(
            [{"role": "user", "content": message.text}], system_prompt
        )

        outcome = decode_extraction(reply)
        if outcome.parsed:
            meta.extracted_info = meta.extracted_info.merge(outcome.facts)
        elif outcome.notes:
            meta.extracted_info = meta.extracted_info.append_note(outcome.notes)

        missing: list[str] = []
        if outcome.has_enough_info is not None:
            # Sinal explícito da extração dispensa a segunda chamada
            sufficient = outcome.has_enough_info
        else:
            verdict = decode_sufficiency(
                await self._ask(
                    prompts.sufficiency_prompt(
                        meta.issue, meta.service, meta.extracted_info.known_facts()
                    )
                )
            )
            sufficient = verdict.sufficient
            missing = verdict.missing

        logger.info(
            "information_sufficiency_decided",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "sufficient": sufficient,
                "explicit_flag": outcome.has_enough_info is not None,
            },
        )

        if sufficient:
            await self._transition(conversation, ConversationEvent.INFO_SUFFICIENT)
            return await self._begin_processing(conversation)

        await self._transition(conversation, ConversationEvent.INFO_INCOMPLETE)
        request = await self._ask(
            prompts.request_more_info_prompt(
                meta.issue, meta.service, meta.extracted_info.known_facts(), missing
            )
        )
        return self._response(
            conversation, request, metadata={"missing": missing} if missing else None
        )

    async def _begin_processing(self, conversation: Conversation) -> AssistantResponse:
        """PROCESSING: gera o plano e entra em AUTOMATING."""
        meta = conversation.metadata
        try:
            system_prompt = meta.system_prompt or prompts.plan_system_prompt(
                meta.issue, meta.service, meta.extracted_info.known_facts()
            )
            meta.automation_plan = await self._ask(prompts.PLAN_REQUEST, system_prompt)
            meta.service_url = resolve_service_url(meta.service)
            await self._transition(conversation, ConversationEvent.PLAN_READY)
        except Exception as e:  # noqa: BLE001 - falha vira ERROR com diagnóstico
            return await self._automation_failure(conversation, e)

        return self._response(
            conversation,
            "I have all the information I need! I'm now going to automate the process "
            f"to resolve your {meta.issue} issue with {meta.service}. "
            "I'll keep you updated on my progress.",
            metadata={"plan": meta.automation_plan},
        )

    async def _handle_automating(self, conversation: Conversation) -> AssistantResponse:
        meta = conversation.metadata
        service_name = meta.service or "the service"
        try:
            if not conversation.session_id:
                screenshot = await self._start_automation(conversation)
                await self._transition(conversation, ConversationEvent.AUTOMATION_STEP)
                return self._response(
                    conversation,
                    "I've started the automation process. I'm navigating to the "
                    f"{service_name} website to handle your {meta.issue} issue.",
                    metadata={"screenshot": screenshot},
                )

            session = await self._resume_session(conversation)
            screenshot = await self._run_single(
                session, ScreenshotAction(name=f"step_{meta.current_step}")
            )
            meta.record_screenshot(screenshot)
            meta.current_step += 1

            if meta.current_step >= self._settings.automation_completion_steps:
                meta.mark_completed()
                await self._transition(conversation, ConversationEvent.AUTOMATION_FINISHED)
                return self._response(
                    conversation,
                    "I've successfully completed the process to handle your "
                    f"{meta.issue} with {service_name}. Your request has been submitted "
                    f"and you should receive confirmation from {service_name} soon.",
                    metadata={"screenshot": screenshot, "completionTime": meta.completion_time},
                )

            await self._transition(conversation, ConversationEvent.AUTOMATION_STEP)
            return self._response(
                conversation,
                f"I'm working on your {meta.issue} with {service_name}. "
                f"Currently on step {meta.current_step} of the process. "
                "I'll keep you updated as I make progress.",
                metadata={"screenshot": screenshot, "currentStep": meta.current_step},
            )
        except Exception as e:  # noqa: BLE001 - falha vira ERROR com diagnóstico
            return await self._automation_failure(conversation, e)

    async def _handle_follow_up(
        self, conversation: Conversation, message: IncomingMessage
    ) -> AssistantResponse:
        """COMPLETED/ERROR: responde só com as últimas mensagens, sem transição."""
        meta = conversation.metadata
        system_prompt = (
            message.system_prompt
            or meta.system_prompt
            or prompts.followup_system_prompt(
                meta.issue,
                meta.service,
                completed=conversation.state == ConversationState.COMPLETED,
            )
        )
        context = [
            m.as_prompt()
            for m in conversation.recent_messages(self._settings.followup_context_messages)
        ]
        reply = await self._gateway.generate(context, system_prompt)
        return self._response(conversation, reply)

    # ------------------------------------------------------------------
    # Automação
    # ------------------------------------------------------------------

    async def _start_automation(self, conversation: Conversation) -> str | None:
        """Abre a sessão da conversa e navega até o site do fornecedor."""
        session_id = str(uuid.uuid4())
        session = await self._sessions.open_session(
            session_id=session_id, conversation_id=conversation.conversation_id
        )
        conversation.session_id = session_id

        meta = conversation.metadata
        if not meta.service_url:
            meta.service_url = resolve_service_url(meta.service)
        logger.info(
            "automation_started",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "session_id": short_id(session_id),
            },
        )
        screenshot = await self._run_single(session, NavigateAction(url=meta.service_url))
        meta.record_screenshot(screenshot)
        return screenshot

    async def _resume_session(self, conversation: Conversation) -> BrowserSession:
        """Sessão registrada ou reaberta (ex.: após restart do processo)."""
        session = self._sessions.get(conversation.session_id)
        if session is not None:
            return session
        logger.info(
            "automation_session_reopened",
            extra={"session_id": short_id(conversation.session_id)},
        )
        session = await self._sessions.open_session(
            session_id=conversation.session_id,
            conversation_id=conversation.conversation_id,
        )
        url = conversation.metadata.service_url or resolve_service_url(conversation.metadata.service)
        await self._run_single(session, NavigateAction(url=url))
        return session

    @staticmethod
    async def _run_single(
        session: BrowserSession, action: NavigateAction | ScreenshotAction
    ) -> str | None:
        results = await session.executor.execute_actions([action])
        result = results[0]
        if not result.success:
            raise RuntimeError(result.error or f"Action {action.type} failed")
        return result.result

    async def _automation_failure(
        self, conversation: Conversation, error: Exception
    ) -> AssistantResponse:
        """PROCESSING/AUTOMATING → ERROR com screenshot de diagnóstico."""
        meta = conversation.metadata
        detail = str(error) or type(error).__name__
        logger.error(
            "automation_failed",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "state": str(conversation.state),
                "error_type": type(error).__name__,
            },
        )

        meta.error_detail = detail
        screenshot = await self._force_error(conversation)

        return self._response(
            conversation,
            f"I encountered an issue while trying to automate your {meta.issue or 'request'}. "
            f"The error was: {detail}. Would you like me to try again or help you "
            "complete this process manually?",
            metadata={"errorDetail": detail, "screenshot": screenshot},
            error=True,
        )

    async def _error_screenshot(self, conversation: Conversation) -> str | None:
        session = self._sessions.get(conversation.session_id)
        if session is None or not session.driver.is_open:
            return None
        try:
            path = await session.driver.screenshot("automation_error")
        except Exception as e:  # noqa: BLE001 - melhor esforço
            logger.warning("error_screenshot_failed", extra={"error_type": type(e).__name__})
            return None
        conversation.metadata.record_screenshot(path)
        return path

    # ------------------------------------------------------------------
    # FSM / persistência
    # ------------------------------------------------------------------

    async def _transition(
        self, conversation: Conversation, event: ConversationEvent
    ) -> FSMDispatchResult:
        result = self._fsm.dispatch(conversation.state, event)
        if not result.valid or result.next_state is None:
            raise InvalidTransitionError(result.error or f"Invalid event {event}")

        previous = conversation.state
        conversation.state = result.next_state
        if previous != result.next_state:
            logger.info(
                "conversation_state_changed",
                extra={
                    "conversation_id": short_id(conversation.conversation_id),
                    "from_state": str(previous),
                    "to_state": str(result.next_state),
                    "event": str(event),
                },
            )

        await self._apply_fsm_actions(conversation, result.actions)
        return result

    async def _apply_fsm_actions(
        self, conversation: Conversation, actions: list[FSMAction]
    ) -> None:
        for action in actions:
            if action == FSMAction.CAPTURE_ERROR_SCREENSHOT:
                await self._error_screenshot(conversation)
            elif action == FSMAction.CLOSE_BROWSER_SESSION and conversation.session_id:
                await self._sessions.close(conversation.session_id)

    async def _force_error(self, conversation: Conversation) -> str | None:
        """INTERNAL_ERROR quando permitido; estados terminais permanecem.

        Retorna o screenshot de diagnóstico capturado na transição, se houver.
        """
        if conversation.state in (ConversationState.COMPLETED, ConversationState.ERROR):
            return None
        screenshots = conversation.metadata.screenshots
        captured_before = len(screenshots)
        await self._transition(conversation, ConversationEvent.INTERNAL_ERROR)
        return screenshots[-1] if len(screenshots) > captured_before else None

    async def _fatal_error(
        self, conversation: Conversation, error: Exception
    ) -> AssistantResponse:
        if isinstance(error, TimeoutError):
            detail = f"Turn timed out after {self._settings.turn_timeout_seconds}s"
        else:
            detail = str(error) or type(error).__name__
        logger.error(
            "conversation_turn_failed",
            extra={
                "conversation_id": short_id(conversation.conversation_id),
                "state": str(conversation.state),
                "error_type": type(error).__name__,
            },
        )
        conversation.metadata.error_detail = detail
        screenshot: str | None = None
        try:
            screenshot = await self._force_error(conversation)
        except Exception as close_error:  # noqa: BLE001 - estado ERROR garantido
            logger.warning(
                "session_close_failed_on_error",
                extra={"error_type": type(close_error).__name__},
            )
            conversation.state = ConversationState.ERROR
        return self._response(
            conversation,
            f"I encountered an error: {detail}. Please try again or provide more information.",
            metadata={"screenshot": screenshot} if screenshot else None,
            error=True,
        )

    async def _load(self, conversation_id: str) -> Conversation:
        cached = self._conversations.get(conversation_id)
        if cached is not None:
            return cached
        stored = await self._store.find_one(conversation_id)
        if stored is None:
            raise ConversationNotFoundError(conversation_id)
        self._conversations[conversation_id] = stored
        return stored

    async def _persist(self, conversation: Conversation) -> None:
        try:
            await self._store.find_one_and_update(conversation)
        except ConversationStoreError as e:
            logger.warning(
                "conversation_persist_failed",
                extra={"conversation_id": short_id(conversation.conversation_id), "error": str(e)},
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ask(self, content: str, system_prompt: str | None = None) -> str:
        reply = await self._gateway.generate([{"role": "user", "content": content}], system_prompt)
        return reply.strip()

    @staticmethod
    def _response(
        conversation: Conversation,
        text: str,
        *,
        metadata: dict[str, Any] | None = None,
        error: bool = False,
    ) -> AssistantResponse:
        return AssistantResponse(
            text=text,
            timestamp=utcnow(),
            state=conversation.state,
            metadata=metadata,
            error=error,
        )


def _coerce_message(message: IncomingMessage | Mapping[str, Any] | str) -> IncomingMessage:
    if isinstance(message, IncomingMessage):
        return message
    if isinstance(message, str):
        return IncomingMessage(text=message)
    return IncomingMessage.model_validate(dict(message))
