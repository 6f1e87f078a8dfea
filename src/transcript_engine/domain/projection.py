import re
from collections.abc import Iterable
from dataclasses import dataclass

from transcript_engine.domain.events import SenderRole
from transcript_engine.domain.state import TurnStatus
from transcript_engine.domain.turns import Turn

MIN_CONTAINED_CHARS = 4


@dataclass(frozen=True)
class MessageListItem:
    sender_id: str
    turn_id: str
    text: str
    status: TurnStatus
    role: SenderRole = SenderRole.USER


@dataclass(frozen=True)
class Snapshot:
    finalized_turns: tuple[MessageListItem, ...] = ()
    current_turn: MessageListItem | None = None


def _to_item(turn: Turn) -> MessageListItem:
    return MessageListItem(
        sender_id=turn.sender_id,
        turn_id=turn.turn_id,
        text=turn.text,
        status=turn.status,
        role=turn.role,
    )


def is_duplicate_content(live_text: str, finalized_texts: Iterable[str]) -> bool:
    """Whether the live text repeats finalized content.

    Live text inside a finalized text always counts. A finalized text inside
    the live text counts only when it is at least MIN_CONTAINED_CHARS long and
    sits on word boundaries, so a short reply like "ok" does not hide the next
    utterance.
    """
    if not live_text:
        return True
    for text in finalized_texts:
        if not text:
            continue
        if live_text in text:
            return True
        if len(text) >= MIN_CONTAINED_CHARS and _contains_words(live_text, text):
            return True
    return False


def _contains_words(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def project(turns: Iterable[Turn]) -> Snapshot:
    """Derive the public view of the turns.

    Finalized turns are ordered by sequence id, then creation order. The live
    slot holds the most recently created in-progress turn unless its text
    duplicates finalized content.
    """
    finalized: list[Turn] = []
    live: Turn | None = None
    for turn in turns:
        if turn.status.is_terminal:
            finalized.append(turn)
        elif live is None or turn.created_index > live.created_index:
            live = turn

    finalized.sort(key=lambda t: (t.sequence_id, t.created_index))
    items = tuple(_to_item(t) for t in finalized)

    current = None
    if live is not None and not is_duplicate_content(live.text, (i.text for i in items)):
        current = _to_item(live)

    return Snapshot(finalized_turns=items, current_turn=current)
