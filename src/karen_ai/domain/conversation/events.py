"""Eventos que disparam transições de estado da conversa.

Cada evento + estado atual → próximo estado (tabela de transições).
"""

from __future__ import annotations

from enum import StrEnum


class ConversationEvent(StrEnum):
    """Eventos canônicos do fluxo de atendimento."""

    # === Coleta ===
    INITIAL_ANALYSIS_DONE = "INITIAL_ANALYSIS_DONE"
    """Primeira mensagem analisada (issue/service/keyDetails)."""

    INFO_INCOMPLETE = "INFO_INCOMPLETE"
    """Fatos extraídos, mas ainda insuficientes."""

    INFO_SUFFICIENT = "INFO_SUFFICIENT"
    """Informação suficiente para iniciar a automação."""

    # === Execução ===
    PLAN_READY = "PLAN_READY"
    """Plano de automação gerado e URL do serviço resolvida."""

    AUTOMATION_STEP = "AUTOMATION_STEP"
    """Passo de automação executado (sessão aberta ou progresso)."""

    AUTOMATION_FINISHED = "AUTOMATION_FINISHED"
    """Limite de passos atingido; automação concluída."""

    # === Exceções ===
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Falha interna (IA, navegador, storage)."""
