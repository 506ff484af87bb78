"""Estados canônicos de uma conversa de atendimento automatizado.

- Transições são monotônicas ao longo do fluxo principal
- ERROR pode ser alcançado a partir de qualquer estado não-terminal
- COMPLETED e ERROR só admitem perguntas de follow-up (sem nova transição)
"""

from __future__ import annotations

from enum import StrEnum


class ConversationState(StrEnum):
    """6 estados canônicos de uma conversa."""

    # === Entrada ===
    INITIAL = "initial"
    """Conversa criada, aguardando a primeira mensagem."""

    # === Coleta ===
    GATHERING_INFO = "gathering_info"
    """Extraindo fatos estruturados até haver informação suficiente."""

    # === Execução ===
    PROCESSING = "processing"
    """Suficiência confirmada; gerando plano de automação."""

    AUTOMATING = "automating"
    """Plano pronto; navegador executando os passos no site do fornecedor."""

    # === Terminais ===
    COMPLETED = "completed"
    """Automação concluída; apenas follow-up."""

    ERROR = "error"
    """Falha no fluxo principal; apenas follow-up."""


TERMINAL_STATES = frozenset({
    ConversationState.COMPLETED,
    ConversationState.ERROR,
})
"""Estados que encerram o fluxo principal (sem transições posteriores)."""

NON_TERMINAL_STATES = frozenset({
    s for s in ConversationState if s not in TERMINAL_STATES
})
"""Estados que permitem transições posteriores."""

STATE_ORDER: dict[ConversationState, int] = {
    ConversationState.INITIAL: 0,
    ConversationState.GATHERING_INFO: 1,
    ConversationState.PROCESSING: 2,
    ConversationState.AUTOMATING: 3,
    ConversationState.COMPLETED: 4,
}
"""Posição no fluxo principal (ERROR fica fora da ordem)."""
