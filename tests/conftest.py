from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from karen_ai.ai.mock_gateway import DeterministicGateway
from karen_ai.api.app import create_app
from karen_ai.application.conversation_manager import ConversationManager
from karen_ai.automation.session_registry import BrowserSessionRegistry
from karen_ai.config.settings import Settings, get_settings
from karen_ai.infra.conversation_store_memory import InMemoryConversationStore
from tests.helpers.fakes import DriverPool


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        ai_mock_mode=True,
        conversation_store_backend="memory",
        log_format="text",
    )


@pytest.fixture()
def driver_pool() -> DriverPool:
    return DriverPool()


@pytest.fixture()
def sessions(driver_pool: DriverPool) -> BrowserSessionRegistry:
    return BrowserSessionRegistry(driver_pool)


@pytest.fixture()
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture()
def mock_gateway() -> DeterministicGateway:
    return DeterministicGateway()


@pytest.fixture()
def manager(
    mock_gateway: DeterministicGateway,
    store: InMemoryConversationStore,
    sessions: BrowserSessionRegistry,
    settings: Settings,
) -> ConversationManager:
    return ConversationManager(mock_gateway, store, sessions, settings=settings)


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch, driver_pool: DriverPool):
    monkeypatch.setenv("AI_MOCK_MODE", "true")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("CONVERSATION_STORE_BACKEND", "memory")
    get_settings.cache_clear()
    app = create_app(driver_factory=driver_pool)
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()
