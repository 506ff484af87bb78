"""Contratos Pydantic para as saídas decodificadas do gateway de IA."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _AIContract(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitialAnalysis(_AIContract):
    """Saída da análise da primeira mensagem."""

    issue: str | None = None
    service: str | None = None
    key_details: dict[str, Any] = Field(default_factory=dict)


class ExtractionOutcome(_AIContract):
    """Saída da extração incremental de fatos.

    - parsed=False: resposta não-JSON; `notes` guarda o texto bruto
    - has_enough_info: sinal explícito da IA (None quando ausente)
    """

    parsed: bool
    facts: dict[str, Any] = Field(default_factory=dict)
    has_enough_info: bool | None = None
    notes: str | None = None


class SufficiencyVerdict(_AIContract):
    """Resposta da pergunta "temos informação suficiente?"."""

    sufficient: bool
    missing: list[str] = Field(default_factory=list)
    parsed: bool = True


class ChannelRecommendation(_AIContract):
    """Canal recomendado para resolver o problema no site do fornecedor."""

    approach: str
    """search | chat | email (outros valores caem no fallback de busca)."""
    search_query: str | None = None
    chat_message: str | None = None
    email_subject: str | None = None
    email_message: str | None = None
