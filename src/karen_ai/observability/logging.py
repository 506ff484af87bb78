"""Logging estruturado (JSON) com contexto de turno.

Cada record recebe `service` e os identificadores do contexto corrente:
correlation_id (request HTTP), user_id, conversation_id e session_id
(navegador). O contexto é um ContextVar, então turnos concorrentes de
conversas diferentes não se misturam.

Importante: nunca adicionar texto do usuário ou PII nos logs. Ids entram
sempre truncados por `short_id`, exceto o correlation_id.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Mapping
from contextvars import ContextVar
from types import MappingProxyType

from pythonjsonlogger.json import JsonFormatter

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "user_id", "conversation_id", "session_id")

_EMPTY_CONTEXT: Mapping[str, str] = MappingProxyType({})
_log_context: ContextVar[Mapping[str, str]] = ContextVar("log_context", default=_EMPTY_CONTEXT)

_JSON_FIELDS = " ".join(
    ["%(asctime)s %(levelname)s %(name)s %(message)s %(service)s"]
    + [f"%({name})s" for name in CONTEXT_FIELDS]
)
_TEXT_FORMAT = (
    "%(asctime)s %(levelname)s [%(correlation_id)s conv=%(conversation_id)s] %(name)s: %(message)s"
)


def short_id(value: str | None) -> str:
    """Trunca identificadores para logs (nunca logar ids completos)."""
    if not value:
        return ""
    return value[:8] + "..."


def current_log_context() -> Mapping[str, str]:
    return _log_context.get()


@contextlib.contextmanager
def bind_log_context(
    *,
    correlation_id: str | None = None,
    user_id: str | None = None,
    conversation_id: str | None = None,
    session_id: str | None = None,
) -> Iterator[Mapping[str, str]]:
    """Acrescenta ids ao contexto de log enquanto o bloco executa.

    Valores None mantêm o que já estava no contexto externo.
    """
    updates: dict[str, str] = {}
    if correlation_id:
        updates["correlation_id"] = correlation_id
    if user_id:
        updates["user_id"] = short_id(user_id)
    if conversation_id:
        updates["conversation_id"] = short_id(conversation_id)
    if session_id:
        updates["session_id"] = short_id(session_id)

    merged = MappingProxyType({**_log_context.get(), **updates})
    token = _log_context.set(merged)
    try:
        yield merged
    finally:
        _log_context.reset(token)


class TurnContextFilter(logging.Filter):
    """Injeta service e ids do contexto; `extra` explícito tem precedência."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        context = _log_context.get()
        for name in CONTEXT_FIELDS:
            if not getattr(record, name, None):
                setattr(record, name, context.get(name, ""))
        record.service = self._service_name
        return True


def configure_logging(level: str, service_name: str, log_format: str = "json") -> None:
    """Configura o handler raiz (JSON por padrão, texto para desenvolvimento)."""
    if log_format.lower() == "text":
        formatter: logging.Formatter = logging.Formatter(_TEXT_FORMAT)
    else:
        formatter = JsonFormatter(
            _JSON_FIELDS,
            rename_fields={"levelname": "level", "name": "logger"},
        )

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(TurnContextFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_fallback(logger: logging.Logger, component: str, reason: str | None = None) -> None:
    """Registra que uma decisão da IA caiu na política de fallback.

    `component` identifica o contrato de decodificação ("extraction",
    "sufficiency_check", "channel_selection"); `reason` é curto e sem PII
    ("not_json", "schema_error").
    """
    extra: dict[str, object] = {"fallback_used": True, "component": component}
    if reason:
        extra["reason"] = reason
    logger.info("ai_decision_fallback", extra=extra)
