"""Ações declarativas de automação e resultados de execução.

Uma ação é stateless: construída por um gerador de plano ou por um adapter
e consumida uma única vez pelo ActionExecutor.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from karen_ai.domain.models import CamelModel


class NavigateAction(BaseModel):
    type: Literal["navigate"] = "navigate"
    url: str


class FillAction(BaseModel):
    type: Literal["fill"] = "fill"
    selector: str
    value: str


class ClickAction(BaseModel):
    type: Literal["click"] = "click"
    selector: str


class ExtractAction(BaseModel):
    type: Literal["extract"] = "extract"
    selector: str


class ScreenshotAction(BaseModel):
    type: Literal["screenshot"] = "screenshot"
    name: str = "custom"


class WaitAction(BaseModel):
    type: Literal["wait"] = "wait"
    ms: int = Field(default=1000, ge=0)


class UnknownAction(BaseModel):
    """Ação com tipo não reconhecido (preservada para registrar a falha)."""

    model_config = ConfigDict(extra="allow")

    type: str = "unknown"


KnownAction = Annotated[
    NavigateAction | FillAction | ClickAction | ExtractAction | ScreenshotAction | WaitAction,
    Field(discriminator="type"),
]

AutomationAction = (
    NavigateAction
    | FillAction
    | ClickAction
    | ExtractAction
    | ScreenshotAction
    | WaitAction
    | UnknownAction
)

ACTION_TYPES = frozenset({"navigate", "fill", "click", "extract", "screenshot", "wait"})

_known_adapter: TypeAdapter[Any] = TypeAdapter(KnownAction)


def parse_action(raw: object) -> AutomationAction:
    """Constrói uma ação a partir de um dict.

    Item que não é mapping, ou cujo `type` não é um dos tipos conhecidos,
    vira UnknownAction; campos inválidos para um tipo conhecido levantam
    ValidationError (erro do chamador, não da página).
    """
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, Mapping):
        return UnknownAction(type=type(raw).__name__)
    action_type = raw.get("type")
    if not isinstance(action_type, str) or action_type not in ACTION_TYPES:
        fields = {str(key): value for key, value in raw.items() if key != "type"}
        return UnknownAction.model_validate({**fields, "type": str(action_type)})
    return _known_adapter.validate_python(dict(raw))


class ActionResult(BaseModel):
    """Resultado de uma ação; sempre produzido, mesmo em falha."""

    action: dict[str, Any]
    success: bool
    result: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, action: BaseModel, result: Any) -> ActionResult:
        return cls(action=action.model_dump(), success=bool(result), result=result)

    @classmethod
    def failed(cls, action: BaseModel, error: str) -> ActionResult:
        return cls(action=action.model_dump(), success=False, error=error)


class AdapterResult(CamelModel):
    """Envelope uniforme devolvido pelas operações de adapter.

    Operações nunca lançam exceção para o chamador; falhas são codificadas
    aqui, com screenshot de diagnóstico quando possível.
    """

    success: bool
    action: str | None = None
    message: str = ""
    results: Any = None
    result: Any = None
    screenshot: str | None = None
    screenshot_url: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


__all__ = [
    "ACTION_TYPES",
    "ActionResult",
    "AdapterResult",
    "AutomationAction",
    "ClickAction",
    "ExtractAction",
    "FillAction",
    "NavigateAction",
    "ScreenshotAction",
    "UnknownAction",
    "WaitAction",
    "parse_action",
]
