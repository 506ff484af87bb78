"""Testes unitários do FSMEngine de conversa.

Cobertura:
- Fluxo principal completo
- Estados terminais (sem transições de saída)
- Eventos inválidos
- Ações por transição
"""

import pytest

from karen_ai.application.fsm_engine import FSMAction, FSMDispatchResult, FSMEngine
from karen_ai.domain.conversation import (
    NON_TERMINAL_STATES,
    STATE_ORDER,
    TERMINAL_STATES,
    TRANSITIONS,
    ConversationEvent,
    ConversationState,
    validate_transition,
)


class TestFSMEngineHappyPath:
    """Transições do fluxo principal."""

    @pytest.fixture
    def engine(self) -> FSMEngine:
        return FSMEngine()

    def test_initial_to_gathering(self, engine: FSMEngine) -> None:
        """INITIAL + INITIAL_ANALYSIS_DONE → GATHERING_INFO."""
        result = engine.dispatch(
            ConversationState.INITIAL, ConversationEvent.INITIAL_ANALYSIS_DONE
        )
        assert result.valid is True
        assert result.next_state == ConversationState.GATHERING_INFO
        assert result.actions == []

    def test_gathering_self_loop_when_incomplete(self, engine: FSMEngine) -> None:
        result = engine.dispatch(
            ConversationState.GATHERING_INFO, ConversationEvent.INFO_INCOMPLETE
        )
        assert result.next_state == ConversationState.GATHERING_INFO
        assert result.actions == []

    def test_gathering_to_processing(self, engine: FSMEngine) -> None:
        result = engine.dispatch(
            ConversationState.GATHERING_INFO, ConversationEvent.INFO_SUFFICIENT
        )
        assert result.next_state == ConversationState.PROCESSING
        assert result.actions == []

    def test_processing_to_automating(self, engine: FSMEngine) -> None:
        result = engine.dispatch(ConversationState.PROCESSING, ConversationEvent.PLAN_READY)
        assert result.next_state == ConversationState.AUTOMATING
        assert result.actions == []

    def test_automating_step(self, engine: FSMEngine) -> None:
        result = engine.dispatch(
            ConversationState.AUTOMATING, ConversationEvent.AUTOMATION_STEP
        )
        assert result.next_state == ConversationState.AUTOMATING
        assert result.actions == []

    def test_automating_to_completed_closes_session(self, engine: FSMEngine) -> None:
        result = engine.dispatch(
            ConversationState.AUTOMATING, ConversationEvent.AUTOMATION_FINISHED
        )
        assert result.next_state == ConversationState.COMPLETED
        assert result.is_terminal() is True
        assert result.actions == [FSMAction.CLOSE_BROWSER_SESSION]


class TestFSMEngineErrors:
    @pytest.fixture
    def engine(self) -> FSMEngine:
        return FSMEngine()

    @pytest.mark.parametrize("state", sorted(NON_TERMINAL_STATES))
    def test_internal_error_from_any_non_terminal(
        self, engine: FSMEngine, state: ConversationState
    ) -> None:
        result = engine.dispatch(state, ConversationEvent.INTERNAL_ERROR)
        assert result.valid is True
        assert result.next_state == ConversationState.ERROR
        # screenshot antes de fechar a página
        assert result.actions == [
            FSMAction.CAPTURE_ERROR_SCREENSHOT,
            FSMAction.CLOSE_BROWSER_SESSION,
        ]

    @pytest.mark.parametrize("state", sorted(TERMINAL_STATES))
    @pytest.mark.parametrize("event", list(ConversationEvent))
    def test_terminal_states_have_no_transitions(
        self, engine: FSMEngine, state: ConversationState, event: ConversationEvent
    ) -> None:
        result = engine.dispatch(state, event)
        assert result.valid is False
        assert result.next_state is None
        assert result.actions == []
        assert "Terminal state" in (result.error or "")

    def test_skipping_states_is_rejected(self, engine: FSMEngine) -> None:
        """INITIAL não pode pular direto para AUTOMATING."""
        result = engine.dispatch(ConversationState.INITIAL, ConversationEvent.PLAN_READY)
        assert result.valid is False
        assert "No transition" in (result.error or "")

    def test_invalid_result_is_not_terminal(self) -> None:
        assert FSMDispatchResult().is_terminal() is False


class TestTransitionTable:
    """Propriedades da tabela de transições."""

    def test_main_flow_is_monotonic(self) -> None:
        for (state, _event), next_state in TRANSITIONS.items():
            if next_state == ConversationState.ERROR:
                continue
            assert STATE_ORDER[next_state] >= STATE_ORDER[state]

    def test_terminal_states_never_appear_as_source(self) -> None:
        sources = {state for state, _ in TRANSITIONS}
        assert sources.isdisjoint(TERMINAL_STATES)

    def test_validate_transition_never_raises(self) -> None:
        for state in ConversationState:
            for event in ConversationEvent:
                valid, next_state, error = validate_transition(state, event)
                assert valid is (next_state is not None)
                assert valid or error
