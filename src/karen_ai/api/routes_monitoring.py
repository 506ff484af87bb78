"""Rotas de monitoramento (IA, navegador, status do processo)."""

from __future__ import annotations

import platform
import time
from typing import Any

from fastapi import APIRouter, Depends

from karen_ai.api.dependencies import (
    get_ai_gateway,
    get_browser_factory,
    get_session_registry,
    get_settings,
)
from karen_ai.automation.browser import PlaywrightBrowserFactory
from karen_ai.automation.session_registry import BrowserSessionRegistry
from karen_ai.config.settings import Settings
from karen_ai.domain.protocols.ai_gateway import AIGateway

router = APIRouter(prefix="/monitoring", tags=["monitoring"])

_STARTED_AT = time.monotonic()


@router.get("/health/ai")
async def ai_health(gateway: AIGateway = Depends(get_ai_gateway)) -> dict[str, Any]:
    return await gateway.health()


@router.get("/health/browser")
async def browser_health(
    factory: PlaywrightBrowserFactory | None = Depends(get_browser_factory),
) -> dict[str, Any]:
    if factory is None:
        return {"status": "external_driver"}
    return await factory.get_browser_statistics()


@router.get("/status")
def service_status(
    settings: Settings = Depends(get_settings),
    sessions: BrowserSessionRegistry = Depends(get_session_registry),
) -> dict[str, Any]:
    """Resumo do processo: serviço, sessões abertas e backend configurado."""
    return {
        "service": settings.service_name,
        "version": settings.version,
        "environment": settings.environment,
        "pythonVersion": platform.python_version(),
        "uptimeSeconds": round(time.monotonic() - _STARTED_AT, 1),
        "activeBrowserSessions": len(sessions),
        "conversationStoreBackend": settings.conversation_store_backend,
        "aiMockMode": settings.use_mock_ai,
    }
