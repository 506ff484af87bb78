"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from karen_ai.application.conversation_manager import ConversationManager
from karen_ai.application.message_handler import MessageHandler
from karen_ai.automation.adapters.registry import AdapterRegistry
from karen_ai.automation.browser import PlaywrightBrowserFactory
from karen_ai.automation.session_registry import BrowserSessionRegistry
from karen_ai.config.settings import Settings
from karen_ai.domain.protocols.ai_gateway import AIGateway


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_message_handler(request: Request) -> MessageHandler:
    """Retorna o handler de mensagens por usuário."""

    return request.app.state.message_handler


def get_conversation_manager(request: Request) -> ConversationManager:
    return request.app.state.conversation_manager


def get_ai_gateway(request: Request) -> AIGateway:
    """Retorna o gateway de IA ativo (real ou mock)."""

    return request.app.state.ai_gateway


def get_session_registry(request: Request) -> BrowserSessionRegistry:
    return request.app.state.browser_sessions


def get_adapter_registry(request: Request) -> AdapterRegistry:
    return request.app.state.adapter_registry


def get_browser_factory(request: Request) -> PlaywrightBrowserFactory | None:
    """Fábrica Playwright (None quando a app usa driver injetado)."""
    return getattr(request.app.state, "browser_factory", None)
