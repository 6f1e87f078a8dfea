import base64
import json
from collections.abc import AsyncIterator

import pytest

from transcript_engine.adapters.stt_protobuf import encode_text
from transcript_engine.adapters.wire_decoder import WireDecoder
from transcript_engine.domain.engine import TranscriptEngine
from transcript_engine.domain.events import SenderRole, TranscriptionFragment, WordTiming
from transcript_engine.domain.projection import Snapshot
from transcript_engine.domain.reassembler import FragmentReassembler
from transcript_engine.domain.turns import TurnStore
from transcript_engine.ports.chunk_source import RawChunk


AGENT_UID = "1000"
USER_UID = "2001"


def legacy_text(message_id: str, payload: dict | str, part: int = 0, version: int = 1) -> str:
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
    return f"{message_id}|{version}|{part}|{encoded}"


def legacy_chunk(
    message_id: str,
    payload: dict | str,
    part: int = 0,
    sender: str = USER_UID,
) -> RawChunk:
    return RawChunk(sender_id=sender, data=legacy_text(message_id, payload, part).encode("utf-8"))


def legacy_parts(
    message_id: str, payload: dict, split_at: int, sender: str = USER_UID
) -> list[RawChunk]:
    raw = json.dumps(payload)
    return [
        legacy_chunk(message_id, raw[:split_at], part=0, sender=sender),
        legacy_chunk(message_id, raw[split_at:], part=1, sender=sender),
    ]


def binary_chunk(
    words: list[tuple[str, int, int, bool]],
    sender: str = USER_UID,
    seqnum: int = 0,
    end_of_segment: bool = False,
    data_type: str = "transcribe",
) -> RawChunk:
    return RawChunk(
        sender_id=sender,
        data=encode_text(
            words, seqnum=seqnum, end_of_segment=end_of_segment, data_type=data_type
        ),
    )


def fragment(
    text: str = "",
    turn_id: str | None = "1",
    role: SenderRole = SenderRole.USER,
    sender_id: str = USER_UID,
    is_final: bool = False,
    sequence_id: int | None = None,
    words: list[tuple[str, int, int]] | None = None,
    final_words: bool = False,
) -> TranscriptionFragment:
    return TranscriptionFragment(
        sender_id=sender_id,
        role=role,
        turn_id=turn_id,
        text=text,
        words=tuple(
            WordTiming(text=w, start_ms=s, end_ms=e, is_final=final_words)
            for w, s, e in (words or [])
        ),
        is_final=is_final,
        sequence_id=sequence_id,
    )


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SnapshotRecorder:
    def __init__(self) -> None:
        self.snapshots: list[Snapshot] = []

    def __call__(self, snapshot: Snapshot) -> None:
        self.snapshots.append(snapshot)

    @property
    def last(self) -> Snapshot:
        return self.snapshots[-1]

    def __len__(self) -> int:
        return len(self.snapshots)


class FakeChunkSource:
    def __init__(self, chunks: list[RawChunk] | None = None) -> None:
        self._chunks = chunks or []
        self.consumed = 0

    async def chunks(self) -> AsyncIterator[RawChunk]:
        for chunk in self._chunks:
            self.consumed += 1
            yield chunk


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def decoder():
    return WireDecoder(agent_uid=AGENT_UID)


@pytest.fixture
def turn_store():
    return TurnStore()


@pytest.fixture
def recorder():
    return SnapshotRecorder()


@pytest.fixture
def engine(decoder, clock):
    reassembler = FragmentReassembler(
        decoder.event_from_payload, timeout_seconds=5.0, max_attempts=8, clock=clock
    )
    return TranscriptEngine(
        decoder=decoder,
        turns=TurnStore(),
        reassembler=reassembler,
        eviction_interval_seconds=0,
    )
