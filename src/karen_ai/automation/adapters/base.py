"""Interface de capacidades de um adapter de site de fornecedor.

O adapter conhece seletores e URLs do site; a orquestração comum
(escolha de canal via IA, fallback chat → email, busca padrão) vive
aqui. Operações públicas sempre retornam AdapterResult e nunca lançam.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import PurePath
from typing import Any, ClassVar

from karen_ai.ai.parser import decode_channel_recommendation
from karen_ai.ai.prompts import channel_system_prompt
from karen_ai.automation.session_registry import BrowserSession, BrowserSessionRegistry
from karen_ai.config.settings import SCREENSHOT_URL_PREFIX
from karen_ai.domain.automation import ActionResult, AdapterResult, NavigateAction
from karen_ai.domain.protocols.ai_gateway import AIGateway, AIGatewayError
from karen_ai.domain.protocols.browser import NoActiveSessionError
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


def screenshot_url(path: str | None, prefix: str = SCREENSHOT_URL_PREFIX) -> str | None:
    """Caminho local → URL pública servida em /data/screenshots."""
    if not path:
        return None
    return f"{prefix}/{PurePath(path).name}"


def first_failure(results: list[ActionResult]) -> ActionResult | None:
    return next((r for r in results if not r.success), None)


class SiteAdapter(ABC):
    """Adapter base: sessão própria no BrowserSessionRegistry."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    base_url: ClassVar[str]

    def __init__(self, gateway: AIGateway, sessions: BrowserSessionRegistry) -> None:
        self._gateway = gateway
        self._sessions = sessions
        self._session: BrowserSession | None = None

    @property
    def session(self) -> BrowserSession | None:
        return self._session

    @property
    def is_ready(self) -> bool:
        return self._session is not None and self._session.driver.is_open

    # === Ciclo de vida ===

    async def initialize(self, session_id: str | None = None) -> AdapterResult:
        """Abre a sessão e navega até a página inicial do fornecedor."""
        logger.info("adapter_initializing", extra={"adapter": self.name})
        try:
            self._session = await self._sessions.open_session(
                session_id=session_id, adapter_name=self.name
            )
            results = await self._session.executor.execute_actions(
                [NavigateAction(url=self.base_url)]
            )
            failure = first_failure(results)
            if failure is not None:
                return await self._failure("initialize", failure.error, "home-error")
            screenshot = await self._session.driver.screenshot(f"{self.name}-home")
        except Exception as e:  # noqa: BLE001 - envelope nunca lança
            logger.error(
                "adapter_initialize_failed",
                extra={"adapter": self.name, "error_type": type(e).__name__},
            )
            return await self._failure("initialize", str(e), "init-error")

        return self._result(
            success=True,
            action="initialize",
            message=f"{self.display_name} automation initialized",
            screenshot=screenshot,
        )

    async def close(self) -> None:
        """Fecha a sessão; seguro antes de initialize e em chamadas repetidas."""
        session, self._session = self._session, None
        if session is None:
            return
        logger.info(
            "adapter_closing",
            extra={"adapter": self.name, "session_id": short_id(session.session_id)},
        )
        await self._sessions.close(session.session_id)

    # === Capacidades por fornecedor ===

    @abstractmethod
    async def search_for_issue(self, query: str) -> AdapterResult: ...

    @abstractmethod
    async def start_live_chat(self) -> AdapterResult: ...

    @abstractmethod
    async def send_email_support(self, subject: str, message: str) -> AdapterResult: ...

    # === Orquestração comum ===

    async def handle_customer_issue(self, issue_details: Mapping[str, Any]) -> AdapterResult:
        """Escolhe o canal (busca/chat/email) via IA e executa.

        - Resposta não decodificável → busca "<issueType> <company>"
        - Chat indisponível → email
        - Abordagem desconhecida → busca padrão
        """
        default_query = self._default_query(issue_details)
        try:
            reply = await self._gateway.generate(
                [{"role": "user", "content": json.dumps(dict(issue_details), default=str)}],
                channel_system_prompt(self.display_name),
            )
        except AIGatewayError as e:
            return await self._failure("handle_issue", str(e), "issue-handling-error")

        recommendation = decode_channel_recommendation(reply)
        approach = recommendation.approach.lower() if recommendation else "search"
        logger.info("adapter_channel_selected", extra={"adapter": self.name, "approach": approach})

        if approach == "search":
            query = (recommendation.search_query if recommendation else None) or default_query
            search = await self.search_for_issue(query)
            return self._wrap_search(search, f'Searched for information about "{query}"')

        if approach == "chat":
            chat = await self.start_live_chat()
            if chat.success:
                return self._result(
                    success=True,
                    action="chat",
                    result=chat.to_payload(),
                    message=f"Started live chat with {self.display_name} support",
                    screenshot=chat.screenshot,
                )
            logger.info("adapter_chat_unavailable", extra={"adapter": self.name})
            return await self._email_fallback(
                recommendation.email_subject if recommendation else None,
                recommendation.email_message if recommendation else None,
                issue_details,
            )

        if approach == "email":
            return await self._email_fallback(
                recommendation.email_subject if recommendation else None,
                recommendation.email_message if recommendation else None,
                issue_details,
            )

        logger.warning("adapter_unknown_approach", extra={"adapter": self.name, "approach": approach})
        search = await self.search_for_issue(default_query)
        return self._wrap_search(search, f'Used default search for "{default_query}"')

    async def _email_fallback(
        self,
        subject: str | None,
        message: str | None,
        issue_details: Mapping[str, Any],
    ) -> AdapterResult:
        subject = subject or f"{issue_details.get('issueType', 'Support')} - Support Request"
        message = message or (
            f"I need help with the following issue: {issue_details.get('details', '')}. "
            "Please contact me as soon as possible."
        )
        email = await self.send_email_support(subject, message)
        return self._result(
            success=email.success,
            action="email",
            result=email.to_payload(),
            message=f"Sent email to {self.display_name} support",
            screenshot=email.screenshot,
        )

    def _wrap_search(self, search: AdapterResult, message: str) -> AdapterResult:
        return self._result(
            success=search.success,
            action="search",
            results=search.to_payload(),
            message=message,
            screenshot=search.screenshot,
        )

    @staticmethod
    def _default_query(issue_details: Mapping[str, Any]) -> str:
        issue_type = issue_details.get("issueType") or ""
        company = issue_details.get("company") or ""
        return f"{issue_type} {company}".strip() or "help"

    # === Helpers ===

    def _require_session(self) -> BrowserSession:
        if self._session is None or not self._session.driver.is_open:
            raise NoActiveSessionError()
        return self._session

    async def _diagnostic_screenshot(self, name: str) -> str | None:
        """Screenshot de diagnóstico (melhor esforço, só com página aberta)."""
        if not self.is_ready or self._session is None:
            return None
        try:
            return await self._session.driver.screenshot(name)
        except Exception as e:  # noqa: BLE001 - diagnóstico não pode mascarar a falha
            logger.warning(
                "diagnostic_screenshot_failed",
                extra={"adapter": self.name, "error_type": type(e).__name__},
            )
            return None

    async def _failure(self, action: str, error: str | None, screenshot_name: str) -> AdapterResult:
        screenshot = await self._diagnostic_screenshot(f"{self.name}-{screenshot_name}")
        return self._result(
            success=False,
            action=action,
            message=f"{self.display_name} {action} failed",
            error=error or "Unknown error",
            screenshot=screenshot,
        )

    @staticmethod
    def _result(**kwargs: Any) -> AdapterResult:
        shot = kwargs.get("screenshot")
        if shot and "screenshot_url" not in kwargs:
            kwargs["screenshot_url"] = screenshot_url(shot)
        return AdapterResult(**kwargs)
