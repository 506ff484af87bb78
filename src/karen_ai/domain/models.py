"""Modelos de domínio: Conversation e seus componentes.

Conversation é a raiz de agregação do atendimento:
- Um conversation_id único e imutável
- messages só cresce (append-only)
- metadata.extracted_info é acumulado (merge), nunca substituído
- Serialização camelCase (by_alias) é o contrato lido por outros serviços
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from karen_ai.domain.conversation.states import ConversationState

Role = Literal["user", "assistant", "system"]


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class CamelModel(BaseModel):
    """Base com aliases camelCase e aceitação de nomes Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump JSON-compatível no formato persistido (camelCase)."""
        return self.model_dump(by_alias=True, mode="json")


class ChatMessage(CamelModel):
    """Mensagem do histórico (nunca alterada após o append)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    def as_prompt(self) -> dict[str, str]:
        """Formato {role, content} aceito pelo gateway de IA."""
        return {"role": self.role, "content": self.content}


class ExtractedInfo(CamelModel):
    """Acumulador tipado dos fatos coletados ao longo da conversa.

    Campos conhecidos são normalizados para str; chaves desconhecidas são
    preservadas (extra="allow"). `notes` guarda texto livre quando a IA
    não devolve JSON.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    order_number: str | None = None
    order_date: str | None = None
    reason: str | None = None
    account_type: str | None = None
    signup_method: str | None = None
    amount: str | None = None
    account_email: str | None = None
    notes: str | None = None

    @field_validator(
        "order_number",
        "order_date",
        "reason",
        "account_type",
        "signup_method",
        "amount",
        "account_email",
        mode="before",
    )
    @classmethod
    def _coerce_scalar(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float, bool)):
            return str(value)
        raise ValueError("known fields only accept scalar values")

    @classmethod
    def _field_name(cls, key: str) -> str:
        """Mapeia alias camelCase (orderNumber) para o nome do campo."""
        for name, info in cls.model_fields.items():
            if key in (name, info.alias):
                return name
        return key

    def merge(self, facts: Mapping[str, Any]) -> ExtractedInfo:
        """Retorna novo acumulador com as chaves de `facts` somadas às atuais.

        - Valores None nunca sobrescrevem valores existentes
        - `notes` é concatenado, não substituído
        - Valores inválidos para campos conhecidos viram nota textual
        """
        data = self.model_dump(exclude_none=True)
        for raw_key, value in facts.items():
            if value is None:
                continue
            key = self._field_name(str(raw_key))
            if key == "notes":
                data["notes"] = _join_notes(data.get("notes"), str(value))
                continue
            if key in type(self).model_fields and isinstance(value, (dict, list)):
                data["notes"] = _join_notes(data.get("notes"), f"{raw_key}: {value}")
                continue
            data[key] = value
        return type(self).model_validate(data)

    def append_note(self, text: str) -> ExtractedInfo:
        return self.merge({"notes": text})

    def known_facts(self) -> dict[str, Any]:
        """Fatos preenchidos (sem notes), no formato camelCase."""
        dumped = self.model_dump(by_alias=True, exclude_none=True)
        dumped.pop("notes", None)
        return dumped


def _join_notes(current: str | None, addition: str) -> str:
    addition = addition.strip()
    if not current:
        return addition
    return f"{current} {addition}"


class ConversationMetadata(CamelModel):
    """Registro mutável de trabalho da conversa."""

    issue: str | None = None
    service: str | None = None
    extracted_info: ExtractedInfo = Field(default_factory=ExtractedInfo)
    automation_plan: str | None = None
    service_url: str | None = None
    screenshots: list[str] = Field(default_factory=list)
    current_step: int = 0
    start_time: datetime = Field(default_factory=utcnow)
    last_update_time: datetime = Field(default_factory=utcnow)
    completion_time: datetime | None = None
    system_prompt: str | None = None
    error_detail: str | None = None

    def touch(self) -> None:
        self.last_update_time = utcnow()

    def mark_completed(self) -> None:
        """Define completion_time apenas uma vez."""
        if self.completion_time is None:
            self.completion_time = utcnow()

    def record_screenshot(self, path: str | None) -> None:
        if path:
            self.screenshots.append(path)


class Conversation(CamelModel):
    """Unidade persistida de interação entre um usuário e o assistente."""

    conversation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    state: ConversationState = ConversationState.INITIAL
    messages: list[ChatMessage] = Field(default_factory=list)
    metadata: ConversationMetadata = Field(default_factory=ConversationMetadata)
    session_id: str | None = None
    version: int = 0

    def append_message(
        self, role: Role, content: str, timestamp: datetime | None = None
    ) -> ChatMessage:
        """Único caminho de escrita no histórico."""
        message = ChatMessage(role=role, content=content, timestamp=timestamp or utcnow())
        self.messages.append(message)
        return message

    def recent_messages(self, limit: int) -> list[ChatMessage]:
        return self.messages[-limit:] if limit > 0 else []

    def summary(self) -> ConversationSummary:
        return ConversationSummary(
            conversation_id=self.conversation_id,
            state=self.state,
            issue=self.metadata.issue,
            service=self.metadata.service,
            start_time=self.metadata.start_time,
            last_update_time=self.metadata.last_update_time,
            completion_time=self.metadata.completion_time,
        )


class ConversationSummary(CamelModel):
    """Projeção usada na listagem de conversas por usuário."""

    conversation_id: str
    state: ConversationState
    issue: str | None = None
    service: str | None = None
    start_time: datetime | None = None
    last_update_time: datetime | None = None
    completion_time: datetime | None = None


class IncomingMessage(CamelModel):
    """Mensagem do usuário recebida pela camada de transporte."""

    text: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    system_prompt: str | None = None


class AssistantResponse(CamelModel):
    """Resposta do assistente devolvida ao transporte."""

    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    state: ConversationState | None = None
    metadata: dict[str, Any] | None = None
    error: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        if not self.error:
            payload.pop("error", None)
        return payload
