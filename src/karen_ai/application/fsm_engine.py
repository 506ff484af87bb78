"""Engine FSM puro: dispatcher determinístico sem side effects.

- Puro: entrada → output sem modificar estado externo
- Testável: resultado é determinístico dado entrada
- Auditável: logs estruturados sem PII
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from karen_ai.domain.conversation.events import ConversationEvent
from karen_ai.domain.conversation.states import TERMINAL_STATES, ConversationState
from karen_ai.domain.conversation.transitions import validate_transition
from karen_ai.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class FSMAction(StrEnum):
    """Efeitos colaterais que o ConversationManager executa após a transição.

    Ordem importa: o screenshot de erro precisa da página ainda aberta.
    """

    CAPTURE_ERROR_SCREENSHOT = "CAPTURE_ERROR_SCREENSHOT"
    CLOSE_BROWSER_SESSION = "CLOSE_BROWSER_SESSION"


@dataclass(slots=True)
class FSMDispatchResult:
    """Resultado da execução do dispatcher FSM.

    Contém:
    - next_state: próximo estado (ou None se inválido)
    - valid: se a transição foi válida
    - error: mensagem de erro (se inválido)
    - actions: lista de ações a executar após transição
    """

    next_state: ConversationState | None = None
    valid: bool = False
    error: str | None = None
    actions: list[FSMAction] = field(default_factory=list)

    def is_terminal(self) -> bool:
        """True se next_state é terminal."""
        return self.next_state in TERMINAL_STATES if self.next_state else False


class FSMEngine:
    """Engine FSM: dispatcher puro e determinístico."""

    def dispatch(
        self,
        current_state: ConversationState,
        event: ConversationEvent,
        payload: dict[str, Any] | None = None,
    ) -> FSMDispatchResult:
        """Executa transição FSM.

        Contrato:
        - Nunca lança exceção
        - Sempre retorna FSMDispatchResult
        - Output é determinístico
        - Sem side effects
        """
        is_valid, next_state, error = validate_transition(current_state, event)

        if not is_valid or next_state is None:
            logger.debug(
                "fsm_transition_invalid",
                extra={
                    "current_state": str(current_state),
                    "event": str(event),
                    "error": error,
                },
            )
            return FSMDispatchResult(next_state=None, valid=False, error=error, actions=[])

        actions = self._determine_actions(event, next_state)

        logger.debug(
            "fsm_transition_valid",
            extra={
                "current_state": str(current_state),
                "event": str(event),
                "next_state": str(next_state),
                "actions_count": len(actions),
            },
        )

        return FSMDispatchResult(
            next_state=next_state,
            valid=True,
            error=None,
            actions=actions,
        )

    def _determine_actions(
        self,
        event: ConversationEvent,
        next_state: ConversationState,
    ) -> list[FSMAction]:
        actions: list[FSMAction] = []

        if event == ConversationEvent.INTERNAL_ERROR:
            actions.append(FSMAction.CAPTURE_ERROR_SCREENSHOT)

        if next_state in TERMINAL_STATES:
            actions.append(FSMAction.CLOSE_BROWSER_SESSION)

        return actions
