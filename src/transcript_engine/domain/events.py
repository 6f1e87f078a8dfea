from dataclasses import dataclass, field
from enum import Enum
from time import time

from transcript_engine.domain.state import TurnStatus


class SenderRole(Enum):
    USER = "user"
    AGENT = "agent"


@dataclass(frozen=True)
class WordTiming:
    text: str
    start_ms: int = 0
    end_ms: int = 0
    is_final: bool = False


@dataclass(frozen=True)
class ProtocolEvent:
    timestamp: float = field(default_factory=time, compare=False)


@dataclass(frozen=True)
class TranscriptionFragment(ProtocolEvent):
    sender_id: str = ""
    role: SenderRole = SenderRole.USER
    turn_id: str | None = None
    text: str = ""
    words: tuple[WordTiming, ...] = ()
    is_final: bool = False
    sequence_id: int | None = None

    @property
    def has_word_timing(self) -> bool:
        return any(w.start_ms > 0 or w.end_ms > 0 for w in self.words)

    @property
    def word_text(self) -> str:
        return "".join(w.text for w in self.words)


@dataclass(frozen=True)
class AgentTurnUpdate(ProtocolEvent):
    turn_id: str = ""
    sequence_id: int | None = None
    turn_status: TurnStatus = TurnStatus.IN_PROGRESS
    quiet: bool = False
    fragment: TranscriptionFragment | None = None


@dataclass(frozen=True)
class InterruptSignal(ProtocolEvent):
    target_turn_id: str = ""
    at_offset_ms: int | None = None


@dataclass(frozen=True)
class DecodeFailure:
    reason: str = ""
    partial: bool = False
    key: str | None = None
    payload: bytes = b""
    part_index: int = 0


DecodeResult = TranscriptionFragment | AgentTurnUpdate | InterruptSignal | DecodeFailure
