"""Executor de ações declarativas contra uma sessão de navegador.

Contrato:
- Uma ActionResult por ação, na ordem de submissão
- Falha de uma ação nunca aborta o lote
- Sem página aberta: todas falham com "No active browser session",
  sem tentar nenhuma
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from karen_ai.domain.automation import (
    ActionResult,
    AutomationAction,
    ClickAction,
    ExtractAction,
    FillAction,
    NavigateAction,
    ScreenshotAction,
    UnknownAction,
    WaitAction,
    parse_action,
)
from karen_ai.domain.protocols.browser import BrowserDriver, NoActiveSessionError
from karen_ai.observability.logging import get_logger
from karen_ai.observability.timing import timed_async

logger: logging.Logger = get_logger(__name__)

DEFAULT_ELEMENT_TIMEOUT_MS = 10_000
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000


class _RawAction(BaseModel):
    """Envelope para payloads que nem chegaram a virar ação."""

    model_config = ConfigDict(extra="allow")


class ActionExecutor:
    """Despacha ações por tipo para o BrowserDriver."""

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        element_timeout_ms: int = DEFAULT_ELEMENT_TIMEOUT_MS,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ) -> None:
        self._driver = driver
        self._element_timeout_ms = element_timeout_ms
        self._navigation_timeout_ms = navigation_timeout_ms

    @property
    def driver(self) -> BrowserDriver:
        return self._driver

    async def execute_actions(
        self, actions: Sequence[Mapping[str, Any] | BaseModel]
    ) -> list[ActionResult]:
        """Executa o lote em ordem; nunca lança."""
        async with timed_async("action_batch"):
            if not self._driver.is_open:
                logger.warning("action_batch_no_session", extra={"actions_count": len(actions)})
                error = str(NoActiveSessionError())
                return [ActionResult.failed(self._as_model(raw), error) for raw in actions]

            results: list[ActionResult] = []
            for raw in actions:
                results.append(await self._execute_one(raw))

        failed = sum(1 for r in results if not r.success)
        logger.info(
            "action_batch_completed",
            extra={"actions_count": len(results), "failed_count": failed},
        )
        return results

    async def _execute_one(self, raw: object) -> ActionResult:
        try:
            action = parse_action(raw)
        except ValidationError as e:
            logger.warning("action_invalid", extra={"error_count": e.error_count()})
            return ActionResult.failed(self._as_model(raw), f"Invalid action: {e}")
        except (TypeError, ValueError) as e:
            logger.warning("action_invalid", extra={"error_type": type(e).__name__})
            return ActionResult.failed(self._as_model(raw), f"Invalid action: {e}")

        if isinstance(action, UnknownAction):
            logger.warning("action_unknown_type", extra={"action_type": action.type})
            return ActionResult.failed(action, f"Unknown action type: {action.type}")

        try:
            result = await self._dispatch(action)
        except Exception as e:  # noqa: BLE001 - falha isolada por ação
            logger.warning(
                "action_failed",
                extra={"action_type": action.type, "error_type": type(e).__name__},
            )
            return ActionResult.failed(action, str(e) or type(e).__name__)

        return ActionResult.ok(action, result)

    async def _dispatch(self, action: AutomationAction) -> Any:
        driver = self._driver
        if isinstance(action, NavigateAction):
            logger.info("action_navigate")
            await driver.navigate(action.url, self._navigation_timeout_ms)
            return await driver.screenshot("navigation")
        if isinstance(action, FillAction):
            await driver.fill(action.selector, action.value, self._element_timeout_ms)
            return True
        if isinstance(action, ClickAction):
            await driver.click(action.selector, self._element_timeout_ms)
            return True
        if isinstance(action, ExtractAction):
            return await driver.extract_text(action.selector, self._element_timeout_ms)
        if isinstance(action, ScreenshotAction):
            return await driver.screenshot(action.name)
        if isinstance(action, WaitAction):
            await driver.wait(action.ms)
            return True
        raise ValueError(f"Unknown action type: {action.type}")

    @staticmethod
    def _as_model(raw: object) -> BaseModel:
        if isinstance(raw, BaseModel):
            return raw
        if isinstance(raw, Mapping):
            return _RawAction.model_validate({str(key): value for key, value in raw.items()})
        return _RawAction(value=raw)
