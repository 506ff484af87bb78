"""Protocolo do driver de navegador consumido pelo ActionExecutor.

Todas as operações são por sessão; nenhuma pode ser chamada sem
uma sessão aberta (NoActiveSessionError).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BrowserLaunchError(RuntimeError):
    """Falha ao iniciar o engine do navegador (propaga ao dono do processo)."""


class NoActiveSessionError(RuntimeError):
    """Operação de página solicitada sem sessão aberta."""

    def __init__(self, message: str = "No active browser session") -> None:
        super().__init__(message)


class BrowserDriver(ABC):
    """Sessão de navegador com uma única página."""

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def open(self) -> None: ...

    @abstractmethod
    async def close(self) -> None:
        """Encerra a sessão; no-op se nunca aberta ou já fechada."""

    @abstractmethod
    async def current_url(self) -> str | None: ...

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def fill(self, selector: str, value: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def click(self, selector: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def extract_text(self, selector: str, timeout_ms: int) -> str | None: ...

    @abstractmethod
    async def screenshot(self, name: str) -> str:
        """Captura página inteira e retorna o caminho do arquivo."""

    @abstractmethod
    async def wait(self, ms: int) -> None: ...

    @abstractmethod
    async def query(self, selector: str) -> bool:
        """True se o seletor existe agora (sem esperar)."""

    @abstractmethod
    async def query_all(self, selector: str) -> list[dict[str, Any]]:
        """Extrai {title, description, link} de cada elemento do seletor."""

    @abstractmethod
    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        """Espera o seletor; False em timeout (não lança)."""
