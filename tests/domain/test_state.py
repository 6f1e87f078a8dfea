import pytest

from transcript_engine.domain.state import (
    TurnStatus,
    InvalidTransitionError,
    validate_transition,
)


class TestStateTransitions:
    def test_in_progress_to_end(self):
        validate_transition(TurnStatus.IN_PROGRESS, TurnStatus.END)

    def test_in_progress_to_interrupted(self):
        validate_transition(TurnStatus.IN_PROGRESS, TurnStatus.INTERRUPTED)

    def test_invalid_end_to_interrupted(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(TurnStatus.END, TurnStatus.INTERRUPTED)

    def test_invalid_interrupted_to_end(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(TurnStatus.INTERRUPTED, TurnStatus.END)

    def test_invalid_end_to_in_progress(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(TurnStatus.END, TurnStatus.IN_PROGRESS)

    def test_invalid_interrupted_to_in_progress(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(TurnStatus.INTERRUPTED, TurnStatus.IN_PROGRESS)

    def test_invalid_self_transition(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(TurnStatus.IN_PROGRESS, TurnStatus.IN_PROGRESS)

    def test_terminal_flags(self):
        assert not TurnStatus.IN_PROGRESS.is_terminal
        assert TurnStatus.END.is_terminal
        assert TurnStatus.INTERRUPTED.is_terminal

    def test_wire_values(self):
        assert TurnStatus(0) is TurnStatus.IN_PROGRESS
        assert TurnStatus(1) is TurnStatus.END
        assert TurnStatus(2) is TurnStatus.INTERRUPTED
