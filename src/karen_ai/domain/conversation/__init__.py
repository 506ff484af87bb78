"""FSM de conversa: estados, eventos e transições.

Exporta:
- ConversationState: 6 estados canônicos
- ConversationEvent: eventos do fluxo
- validate_transition: validador puro
"""

from karen_ai.domain.conversation.events import ConversationEvent
from karen_ai.domain.conversation.states import (
    NON_TERMINAL_STATES,
    STATE_ORDER,
    TERMINAL_STATES,
    ConversationState,
)
from karen_ai.domain.conversation.transitions import TRANSITIONS, validate_transition

__all__ = [
    "ConversationState",
    "ConversationEvent",
    "validate_transition",
    "TRANSITIONS",
    "TERMINAL_STATES",
    "NON_TERMINAL_STATES",
    "STATE_ORDER",
]
