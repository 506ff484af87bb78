"""Protocolo do gateway de IA (único oráculo de decisão do FSM)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any


class AIGatewayError(RuntimeError):
    """Falha do provedor de IA (timeout, rate limit, erro de API)."""


class AIGateway(ABC):
    """generate(messages, system_prompt) -> texto.

    O texto pode ou não ser JSON; o chamador nunca confia cegamente.
    """

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        system_prompt: str | None = None,
    ) -> str: ...

    @abstractmethod
    async def health(self) -> dict[str, Any]: ...
