"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from karen_ai.ai.gateway import create_ai_gateway
from karen_ai.api.routes import router
from karen_ai.api.routes_automation import router as automation_router
from karen_ai.api.routes_monitoring import router as monitoring_router
from karen_ai.application.conversation_manager import ConversationManager
from karen_ai.application.message_handler import MessageHandler
from karen_ai.automation.adapters.registry import build_adapter_registry
from karen_ai.automation.browser import PlaywrightBrowserFactory
from karen_ai.automation.session_registry import BrowserSessionRegistry, DriverFactory
from karen_ai.config.settings import SCREENSHOT_URL_PREFIX, Settings, get_settings
from karen_ai.domain.protocols.ai_gateway import AIGateway
from karen_ai.domain.protocols.conversation_store import AsyncConversationStoreProtocol
from karen_ai.infra.conversation_store import create_conversation_store
from karen_ai.observability.logging import configure_logging, get_logger
from karen_ai.observability.middleware import RequestContextMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Encerramento: adapters → sessões → navegador
    await app.state.adapter_registry.close_all()
    await app.state.browser_sessions.close_all()
    factory: PlaywrightBrowserFactory | None = app.state.browser_factory
    if factory is not None:
        await factory.shutdown()
    logger.info("app_shutdown_completed")


def create_app(
    settings: Settings | None = None,
    *,
    gateway: AIGateway | None = None,
    store: AsyncConversationStoreProtocol | None = None,
    driver_factory: DriverFactory | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI.

    `gateway`, `store` e `driver_factory` podem ser injetados (testes);
    sem `driver_factory` o navegador é o Playwright compartilhado.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name, settings.log_format)

    validation_errors = settings.validate_all()
    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    app = FastAPI(title=settings.service_name, version=settings.version, lifespan=_lifespan)
    app.add_middleware(RequestContextMiddleware)
    app.include_router(router)
    app.include_router(automation_router)
    app.include_router(monitoring_router)
    app.mount(
        SCREENSHOT_URL_PREFIX,
        StaticFiles(directory=settings.screenshot_dir, check_dir=False),
        name="screenshots",
    )

    app.state.settings = settings
    app.state.ai_gateway = gateway or create_ai_gateway(settings)
    app.state.conversation_store = store or create_conversation_store(settings)

    browser_factory: PlaywrightBrowserFactory | None = None
    if driver_factory is None:
        browser_factory = PlaywrightBrowserFactory(settings)
        driver_factory = browser_factory.create_driver
    app.state.browser_factory = browser_factory

    sessions = BrowserSessionRegistry(
        driver_factory,
        element_timeout_ms=settings.browser_element_timeout_ms,
        navigation_timeout_ms=settings.browser_navigation_timeout_ms,
    )
    app.state.browser_sessions = sessions
    app.state.adapter_registry = build_adapter_registry(app.state.ai_gateway, sessions)

    manager = ConversationManager(
        app.state.ai_gateway,
        app.state.conversation_store,
        sessions,
        settings=settings,
    )
    app.state.conversation_manager = manager
    app.state.message_handler = MessageHandler(manager)

    logger.info(
        "app_created",
        extra={
            "environment": settings.environment,
            "store_backend": settings.conversation_store_backend,
            "ai_mock_mode": settings.use_mock_ai,
        },
    )
    return app


# Instância padrão para `uvicorn karen_ai.api.app:app`
app = create_app()
