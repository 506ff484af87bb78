"""Tabela de transições do FSM de conversa.

- TRANSITIONS[(current_state, event)] = next_state
- Estados terminais não aparecem como origem (sem transições de saída)
- Validação pura: sem side effects
"""

from __future__ import annotations

from karen_ai.domain.conversation.events import ConversationEvent
from karen_ai.domain.conversation.states import (
    NON_TERMINAL_STATES,
    TERMINAL_STATES,
    ConversationState,
)

TRANSITIONS: dict[tuple[ConversationState, ConversationEvent], ConversationState] = {
    # === INITIAL → ... ===
    (
        ConversationState.INITIAL,
        ConversationEvent.INITIAL_ANALYSIS_DONE,
    ): ConversationState.GATHERING_INFO,
    # === GATHERING_INFO → ... ===
    (
        ConversationState.GATHERING_INFO,
        ConversationEvent.INFO_INCOMPLETE,
    ): ConversationState.GATHERING_INFO,
    (
        ConversationState.GATHERING_INFO,
        ConversationEvent.INFO_SUFFICIENT,
    ): ConversationState.PROCESSING,
    # === PROCESSING → ... ===
    (
        ConversationState.PROCESSING,
        ConversationEvent.PLAN_READY,
    ): ConversationState.AUTOMATING,
    # === AUTOMATING → ... ===
    (
        ConversationState.AUTOMATING,
        ConversationEvent.AUTOMATION_STEP,
    ): ConversationState.AUTOMATING,
    (
        ConversationState.AUTOMATING,
        ConversationEvent.AUTOMATION_FINISHED,
    ): ConversationState.COMPLETED,
}

# ERROR é alcançável a partir de qualquer estado não-terminal
TRANSITIONS.update({
    (state, ConversationEvent.INTERNAL_ERROR): ConversationState.ERROR
    for state in NON_TERMINAL_STATES
})


def validate_transition(
    current_state: ConversationState, event: ConversationEvent
) -> tuple[bool, ConversationState | None, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, next_state, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    if current_state in TERMINAL_STATES:
        return (
            False,
            None,
            f"Terminal state {current_state} has no transitions",
        )

    key = (current_state, event)
    if key not in TRANSITIONS:
        return (
            False,
            None,
            f"No transition from {current_state} on event {event}",
        )

    return True, TRANSITIONS[key], ""
