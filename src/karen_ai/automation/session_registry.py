"""Registro de sessões de navegador do processo.

Tabela indexada por session_id (read/insert/delete). Cada conversa tem
no máximo uma sessão; sessões de conversas distintas são independentes.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from karen_ai.automation.executor import ActionExecutor
from karen_ai.domain.models import utcnow
from karen_ai.domain.protocols.browser import BrowserDriver
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

DriverFactory = Callable[[str], BrowserDriver]


@dataclass(slots=True)
class BrowserSession:
    """Sessão aberta: driver + executor vinculados a uma conversa."""

    session_id: str
    driver: BrowserDriver
    executor: ActionExecutor
    conversation_id: str | None = None
    adapter: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    status: str = "active"

    def describe(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "conversationId": self.conversation_id,
            "adapter": self.adapter,
            "startedAt": self.started_at.isoformat(),
            "status": self.status,
        }


class BrowserSessionRegistry:
    """Tabela session_id → BrowserSession."""

    def __init__(
        self,
        driver_factory: DriverFactory,
        *,
        element_timeout_ms: int = 10_000,
        navigation_timeout_ms: int = 30_000,
    ) -> None:
        self._driver_factory = driver_factory
        self._element_timeout_ms = element_timeout_ms
        self._navigation_timeout_ms = navigation_timeout_ms
        self._sessions: dict[str, BrowserSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open_session(
        self,
        session_id: str | None = None,
        conversation_id: str | None = None,
        adapter_name: str | None = None,
    ) -> BrowserSession:
        """Abre (ou reutiliza) a sessão e sua página.

        Raises:
            BrowserLaunchError: navegador não pôde ser iniciado
        """
        session_id = session_id or str(uuid.uuid4())
        existing = self._sessions.get(session_id)
        if existing is not None:
            return existing

        driver = self._driver_factory(session_id)
        await driver.open()
        session = BrowserSession(
            session_id=session_id,
            driver=driver,
            executor=ActionExecutor(
                driver,
                element_timeout_ms=self._element_timeout_ms,
                navigation_timeout_ms=self._navigation_timeout_ms,
            ),
            conversation_id=conversation_id,
            adapter=adapter_name,
        )
        self._sessions[session_id] = session
        logger.info(
            "browser_session_registered",
            extra={
                "session_id": short_id(session_id),
                "conversation_id": short_id(conversation_id),
                "adapter": adapter_name,
            },
        )
        return session

    def get(self, session_id: str | None) -> BrowserSession | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def find_by_conversation(self, conversation_id: str) -> BrowserSession | None:
        for session in self._sessions.values():
            if session.conversation_id == conversation_id:
                return session
        return None

    async def close(self, session_id: str | None) -> bool:
        """Fecha e remove a sessão; no-op (False) para id desconhecido."""
        if not session_id:
            return False
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.status = "closed"
        await session.driver.close()
        logger.info("browser_session_unregistered", extra={"session_id": short_id(session_id)})
        return True

    async def close_for_conversation(self, conversation_id: str) -> int:
        ids = [
            sid for sid, s in self._sessions.items() if s.conversation_id == conversation_id
        ]
        for sid in ids:
            await self.close(sid)
        return len(ids)

    async def close_all(self) -> None:
        for sid in list(self._sessions):
            await self.close(sid)

    def list_sessions(self) -> list[dict[str, Any]]:
        return [session.describe() for session in self._sessions.values()]
