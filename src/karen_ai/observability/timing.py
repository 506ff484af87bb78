"""Instrumentação de latência para lotes de ações e turnos de conversa."""

from __future__ import annotations

import contextlib
import time
from collections.abc import AsyncGenerator

from karen_ai.observability.logging import get_logger

logger = get_logger(__name__)


@contextlib.asynccontextmanager
async def timed_async(component: str) -> AsyncGenerator[None, None]:
    """Loga `component_latency` ao sair do bloco, inclusive em exceção.

    Usage:
        async with timed_async("action_batch"):
            await executor.execute_actions(actions)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "component_latency",
            extra={"component": component, "elapsed_ms": round(elapsed_ms, 2)},
        )
