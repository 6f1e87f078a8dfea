from enum import Enum


class TurnStatus(Enum):
    IN_PROGRESS = 0
    END = 1
    INTERRUPTED = 2

    @property
    def is_terminal(self) -> bool:
        return self is not TurnStatus.IN_PROGRESS


VALID_TRANSITIONS: dict[TurnStatus, set[TurnStatus]] = {
    TurnStatus.IN_PROGRESS: {TurnStatus.END, TurnStatus.INTERRUPTED},
    TurnStatus.END: set(),
    TurnStatus.INTERRUPTED: set(),
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: TurnStatus, target: TurnStatus) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
