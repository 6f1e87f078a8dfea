import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from time import time

from transcript_engine.domain.events import (
    AgentTurnUpdate,
    InterruptSignal,
    ProtocolEvent,
    SenderRole,
    TranscriptionFragment,
    WordTiming,
)
from transcript_engine.domain.granularity import GranularityMode, GranularitySelector
from transcript_engine.domain.state import (
    InvalidTransitionError,
    TurnStatus,
    validate_transition,
)

logger = logging.getLogger(__name__)

AUTO_TURN_ID_PREFIX = "auto-"

TurnKey = tuple[SenderRole, str]


@dataclass
class Turn:
    turn_id: str
    sender_id: str
    role: SenderRole
    sequence_id: int
    created_index: int
    granularity: GranularityMode
    has_wire_sequence: bool = False
    text: str = ""
    words: list[WordTiming] = field(default_factory=list)
    status: TurnStatus = TurnStatus.IN_PROGRESS
    quiet: bool = False
    last_updated_at: float = field(default_factory=time)

    @property
    def key(self) -> TurnKey:
        return (self.role, self.turn_id)


FinalizePolicy = Callable[[Turn, TranscriptionFragment], bool]


def finalize_on_higher_sequence(open_turn: Turn, fragment: TranscriptionFragment) -> bool:
    """Whether a fragment opening a new turn supersedes the sender's open turn.

    Without sequence ids on both sides only arrival order is known, so the
    new fragment counts as newer.
    """
    if fragment.sequence_id is None or not open_turn.has_wire_sequence:
        return True
    return fragment.sequence_id > open_turn.sequence_id


def merge_word_timeline(
    existing: list[WordTiming], incoming: tuple[WordTiming, ...] | list[WordTiming]
) -> list[WordTiming]:
    """Merge incoming words into a turn's timeline without losing accepted words.

    Incoming words that do not reach past the current last word are a stale
    re-send and leave the timeline untouched.
    """
    if existing and incoming:
        if max(w.end_ms for w in incoming) <= max(w.end_ms for w in existing):
            return list(existing)

    finals = [w for w in existing if w.is_final]
    horizon = max(finals, key=lambda w: (w.end_ms, w.start_ms)) if finals else None

    fresh: list[WordTiming] = []
    for word in incoming:
        if horizon is not None:
            if word.start_ms < horizon.end_ms:
                continue
            if (word.start_ms, word.text) == (horizon.start_ms, horizon.text):
                continue
        if fresh and word.start_ms < fresh[-1].start_ms:
            continue
        fresh.append(word)

    if not fresh:
        return list(existing)

    cut = fresh[0].start_ms
    kept = [w for w in existing if w.is_final or w.start_ms < cut]
    return kept + fresh


class TurnStore:
    def __init__(
        self,
        granularity: GranularitySelector | None = None,
        finalize_policy: FinalizePolicy = finalize_on_higher_sequence,
        implicit_finalize: bool = True,
        allow_late_corrections: bool = False,
        clock: Callable[[], float] = time,
    ) -> None:
        self._granularity = granularity or GranularitySelector()
        self._finalize_policy = finalize_policy
        self._implicit_finalize = implicit_finalize
        self._allow_late_corrections = allow_late_corrections
        self._clock = clock

        self._turns: dict[TurnKey, Turn] = {}
        self._open_by_role: dict[SenderRole, TurnKey] = {}
        self._last_by_role: dict[SenderRole, TurnKey] = {}
        self._wire_sequence_by_role: dict[SenderRole, int] = {}
        self._created_count = 0
        self._auto_id_count = 0
        self._max_sequence = 0

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns.values())

    def get(self, role: SenderRole, turn_id: str) -> Turn | None:
        return self._turns.get((role, turn_id))

    def open_turn(self, role: SenderRole) -> Turn | None:
        key = self._open_by_role.get(role)
        return self._turns.get(key) if key else None

    def apply(self, event: ProtocolEvent) -> bool:
        if isinstance(event, TranscriptionFragment):
            return self._apply_fragment(event)
        if isinstance(event, AgentTurnUpdate):
            return self._apply_agent_update(event)
        if isinstance(event, InterruptSignal):
            return self._apply_interrupt(event)
        logger.debug("Unhandled event type %s", type(event).__name__)
        return False

    def clear(self) -> None:
        self._turns.clear()
        self._open_by_role.clear()
        self._last_by_role.clear()
        self._wire_sequence_by_role.clear()
        self._created_count = 0
        self._auto_id_count = 0
        self._max_sequence = 0

    def _apply_fragment(
        self,
        fragment: TranscriptionFragment,
        target_status: TurnStatus | None = None,
        quiet: bool = False,
    ) -> bool:
        if target_status is None and fragment.is_final:
            target_status = TurnStatus.END

        turn_id = fragment.turn_id
        if turn_id is None:
            if self._is_stale_sequence(fragment):
                logger.debug(
                    "Stale %s fragment (seq %d) from %s ignored",
                    fragment.role.value,
                    fragment.sequence_id,
                    fragment.sender_id,
                )
                return False
            open_turn = self.open_turn(fragment.role)
            if open_turn is not None:
                turn_id = open_turn.turn_id
            elif self._is_redelivery(fragment):
                logger.debug("Re-delivered fragment from %s ignored", fragment.sender_id)
                return False

        turn = self._turns.get((fragment.role, turn_id)) if turn_id is not None else None
        if turn is None:
            turn = self._create_turn(fragment, turn_id)
            if turn is None:
                return False
            turn.quiet = quiet
            changed = True
        else:
            changed = self._merge(turn, fragment)

        if target_status is not None and target_status is not TurnStatus.IN_PROGRESS:
            changed = self._transition(turn, target_status) or changed

        if changed:
            turn.last_updated_at = self._clock()
        return changed

    def _apply_agent_update(self, update: AgentTurnUpdate) -> bool:
        fragment = update.fragment
        if fragment is None:
            turn = self._turns.get((SenderRole.AGENT, update.turn_id))
            if turn is None:
                logger.debug("Status update for unknown turn %s ignored", update.turn_id)
                return False
            changed = self._transition(turn, update.turn_status)
            if changed:
                turn.last_updated_at = self._clock()
            return changed
        return self._apply_fragment(fragment, target_status=update.turn_status, quiet=update.quiet)

    def _apply_interrupt(self, signal: InterruptSignal) -> bool:
        turn = self._turns.get((SenderRole.AGENT, signal.target_turn_id)) or self._turns.get(
            (SenderRole.USER, signal.target_turn_id)
        )
        if turn is None:
            logger.debug("Interrupt for unknown turn %s ignored", signal.target_turn_id)
            return False
        if turn.status is not TurnStatus.IN_PROGRESS:
            logger.debug(
                "Interrupt for turn %s ignored, already %s", turn.turn_id, turn.status.name
            )
            return False

        if signal.at_offset_ms is not None and turn.words:
            kept = [w for w in turn.words if w.start_ms < signal.at_offset_ms]
            if len(kept) != len(turn.words):
                logger.info(
                    "Interrupt: turn %s truncated to %d/%d words at %dms",
                    turn.turn_id,
                    len(kept),
                    len(turn.words),
                    signal.at_offset_ms,
                )
                turn.words = kept
                turn.text = "".join(w.text for w in kept)

        self._transition(turn, TurnStatus.INTERRUPTED)
        turn.last_updated_at = self._clock()
        return True

    def _create_turn(self, fragment: TranscriptionFragment, turn_id: str | None) -> Turn | None:
        open_turn = self.open_turn(fragment.role)
        if open_turn is not None and self._implicit_finalize:
            if not self._finalize_policy(open_turn, fragment):
                logger.debug(
                    "Stale fragment for new %s turn (seq %s, open turn %s at seq %s) ignored",
                    fragment.role.value,
                    fragment.sequence_id,
                    open_turn.turn_id,
                    open_turn.sequence_id,
                )
                return None
            logger.info("Turn %s implicitly finalized by newer fragment", open_turn.turn_id)
            self._transition(open_turn, TurnStatus.END)
            open_turn.last_updated_at = self._clock()

        if turn_id is None:
            self._auto_id_count += 1
            turn_id = f"{AUTO_TURN_ID_PREFIX}{self._auto_id_count}"

        if fragment.sequence_id is not None:
            sequence_id = fragment.sequence_id
            self._max_sequence = max(self._max_sequence, sequence_id)
        else:
            sequence_id = self._max_sequence

        turn = Turn(
            turn_id=turn_id,
            sender_id=fragment.sender_id,
            role=fragment.role,
            sequence_id=sequence_id,
            created_index=self._created_count,
            granularity=self._granularity.select(fragment),
            has_wire_sequence=fragment.sequence_id is not None,
        )
        self._created_count += 1
        self._merge_content(turn, fragment)

        self._turns[turn.key] = turn
        self._open_by_role[turn.role] = turn.key
        self._last_by_role[turn.role] = turn.key
        logger.info(
            "Turn: %s created (%s, seq %d, %s)",
            turn.turn_id,
            turn.role.value,
            turn.sequence_id,
            turn.granularity.value,
        )
        return turn

    def _merge(self, turn: Turn, fragment: TranscriptionFragment) -> bool:
        if turn.status is TurnStatus.IN_PROGRESS:
            return self._merge_content(turn, fragment)
        if turn.status is TurnStatus.END and self._allow_late_corrections:
            changed = self._merge_content(turn, fragment)
            if changed:
                logger.info("Turn %s: late correction applied", turn.turn_id)
            return changed
        logger.debug("Fragment for %s turn %s ignored", turn.status.name, turn.turn_id)
        return False

    def _merge_content(self, turn: Turn, fragment: TranscriptionFragment) -> bool:
        if turn.granularity is GranularityMode.WORD and fragment.words:
            merged = merge_word_timeline(turn.words, fragment.words)
            if merged == turn.words:
                return False
            turn.words = merged
            turn.text = "".join(w.text for w in merged)
            return True

        text = fragment.text or fragment.word_text
        if text == turn.text:
            return False
        if len(text) < len(turn.text):
            logger.debug(
                "Turn %s: shorter block ignored (%d < %d chars)",
                turn.turn_id,
                len(text),
                len(turn.text),
            )
            return False
        turn.text = text
        return True

    def _transition(self, turn: Turn, target: TurnStatus) -> bool:
        if turn.status is target:
            return False
        try:
            validate_transition(turn.status, target)
        except InvalidTransitionError as exc:
            logger.debug("Turn %s: %s", turn.turn_id, exc)
            return False
        logger.info("Turn: %s %s -> %s", turn.turn_id, turn.status.name, target.name)
        turn.status = target
        if self._open_by_role.get(turn.role) == turn.key:
            del self._open_by_role[turn.role]
        return True

    def _is_redelivery(self, fragment: TranscriptionFragment) -> bool:
        key = self._last_by_role.get(fragment.role)
        last = self._turns.get(key) if key else None
        if last is None or not last.status.is_terminal:
            return False
        text = fragment.text or fragment.word_text
        return bool(text) and last.text.startswith(text)

    def _is_stale_sequence(self, fragment: TranscriptionFragment) -> bool:
        if fragment.sequence_id is None:
            return False
        seen = self._wire_sequence_by_role.get(fragment.role)
        if seen is not None and fragment.sequence_id <= seen:
            return True
        self._wire_sequence_by_role[fragment.role] = fragment.sequence_id
        return False
