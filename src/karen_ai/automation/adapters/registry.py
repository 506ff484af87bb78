"""Registro de adapters por nome de fornecedor detectado."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from karen_ai.automation.adapters.base import SiteAdapter
from karen_ai.automation.adapters.paddy_power import PaddyPowerAdapter
from karen_ai.automation.session_registry import BrowserSessionRegistry
from karen_ai.domain.protocols.ai_gateway import AIGateway
from karen_ai.domain.services import detect_website
from karen_ai.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

AdapterFactory = Callable[[], SiteAdapter]


def normalize_adapter_name(name: str) -> str:
    """'Paddy Power' / 'paddy-power' / 'paddypower' → 'paddypower'."""
    return re.sub(r"[\s_\-]+", "", name.strip().lower())


class AdapterRegistry:
    """Nome normalizado → fábrica; mantém uma instância ativa por nome."""

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}
        self._active: dict[str, SiteAdapter] = {}

    def register(self, name: str, factory: AdapterFactory) -> None:
        self._factories[normalize_adapter_name(name)] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def supports(self, name: str) -> bool:
        return normalize_adapter_name(name) in self._factories

    def create(self, name: str) -> SiteAdapter | None:
        factory = self._factories.get(normalize_adapter_name(name))
        return factory() if factory else None

    def for_url(self, url: str) -> SiteAdapter | None:
        return self.create(detect_website(url))

    def get_or_create(self, name: str) -> SiteAdapter | None:
        key = normalize_adapter_name(name)
        adapter = self._active.get(key)
        if adapter is None:
            adapter = self.create(key)
            if adapter is not None:
                self._active[key] = adapter
        return adapter

    def get_active(self, name: str) -> SiteAdapter | None:
        return self._active.get(normalize_adapter_name(name))

    async def release(self, name: str) -> bool:
        """Fecha e descarta a instância ativa (no-op se não houver)."""
        adapter = self._active.pop(normalize_adapter_name(name), None)
        if adapter is None:
            return False
        await adapter.close()
        return True

    async def close_all(self) -> None:
        for key in list(self._active):
            await self.release(key)


def build_adapter_registry(
    gateway: AIGateway, sessions: BrowserSessionRegistry
) -> AdapterRegistry:
    """Registry com os adapters suportados."""
    registry = AdapterRegistry()
    registry.register(PaddyPowerAdapter.name, lambda: PaddyPowerAdapter(gateway, sessions))
    logger.info("adapter_registry_built", extra={"adapters": registry.names()})
    return registry
