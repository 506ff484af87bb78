"""Gateway de IA sobre a API OpenAI.

Normaliza prompt/resposta (system prompt primeiro, depois o histórico) e
converte erros do provedor em AIGatewayError. Inclui limitação simples de
requisições por minuto.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any

from openai import APIError, APITimeoutError, AsyncOpenAI

from karen_ai.ai import prompts
from karen_ai.config.settings import Settings
from karen_ai.domain.protocols.ai_gateway import AIGateway, AIGatewayError
from karen_ai.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_ALLOWED_ROLES = frozenset({"system", "user", "assistant"})


class RequestRateLimiter:
    """Contador por janela de 1 minuto; estoura → atraso de `delay_seconds`."""

    def __init__(self, max_per_minute: int, delay_seconds: float = 1.0) -> None:
        self._max_per_minute = max_per_minute
        self._delay_seconds = delay_seconds
        self._count = 0
        self._window_start = time.monotonic()

    @property
    def request_count(self) -> int:
        return self._count

    def should_delay(self) -> bool:
        if time.monotonic() - self._window_start >= 60:
            self._count = 0
            self._window_start = time.monotonic()
            return False
        return self._count >= self._max_per_minute

    async def acquire(self) -> None:
        if self.should_delay():
            logger.warning("ai_rate_limit_reached", extra={"count": self._count})
            await asyncio.sleep(self._delay_seconds)
        self._count += 1


def format_chat_messages(
    messages: Sequence[dict[str, str]], system_prompt: str | None
) -> list[dict[str, str]]:
    """Monta a lista no formato chat-completions."""
    formatted: list[dict[str, str]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})
    for msg in messages:
        role = msg.get("role", "user")
        if role not in _ALLOWED_ROLES:
            role = "user"
        formatted.append({"role": role, "content": str(msg.get("content", ""))})
    return formatted


class OpenAIGateway(AIGateway):
    """Gateway real (AsyncOpenAI) com timeout e rate limit."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        max_requests_per_minute: int = 100,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(
            api_key=api_key, timeout=timeout_seconds, max_retries=max_retries
        )
        self._model = model
        self._timeout = timeout_seconds
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._limiter = RequestRateLimiter(max_requests_per_minute)
        self._last_request_at: float | None = None

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        system_prompt: str | None = None,
    ) -> str:
        await self._limiter.acquire()
        self._last_request_at = time.time()
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=format_chat_messages(messages, system_prompt),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except (APIError, APITimeoutError) as e:
            logger.warning(
                "ai_generate_error",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise AIGatewayError(f"AI service error: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        logger.info("ai_response_generated", extra={"model": self._model})
        return content or "No response generated"

    async def health(self) -> dict[str, Any]:
        """Faz uma chamada real; requestCount já inclui a própria checagem."""
        try:
            reply = await self.generate(
                [{"role": "user", "content": prompts.HEALTH_CHECK_PROMPT}]
            )
        except AIGatewayError as e:
            return {"status": "error", "error": str(e), **self._health_fields()}
        return {"status": "ok", "response": reply[:100], **self._health_fields()}

    def _health_fields(self) -> dict[str, Any]:
        return {"model": self._model, "requestCount": self._limiter.request_count}


def create_ai_gateway(settings: Settings) -> AIGateway:
    """Seleciona o gateway conforme configuração (mock quando sem chave)."""
    if settings.use_mock_ai:
        from karen_ai.ai.mock_gateway import DeterministicGateway

        logger.info("Using deterministic AI responses (mock mode)")
        return DeterministicGateway()

    logger.info("Using OpenAI gateway", extra={"model": settings.openai_model})
    return OpenAIGateway(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout_seconds=settings.openai_timeout_seconds,
        max_retries=settings.openai_max_retries,
        temperature=settings.openai_temperature,
        max_tokens=settings.openai_max_tokens,
        max_requests_per_minute=settings.ai_max_requests_per_minute,
    )
