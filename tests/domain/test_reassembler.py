import json

import pytest

from transcript_engine.domain.events import DecodeFailure, TranscriptionFragment
from transcript_engine.domain.reassembler import FragmentReassembler

from tests.conftest import USER_UID, legacy_parts


PAYLOAD = {"text": "split across two chunks", "is_final": True, "user_id": USER_UID}


def partial(key: str, payload: bytes, part: int = 0) -> DecodeFailure:
    return DecodeFailure(
        reason="incomplete JSON payload", partial=True, key=key, payload=payload, part_index=part
    )


@pytest.fixture
def reassembler(decoder, clock):
    return FragmentReassembler(
        decoder.event_from_payload, timeout_seconds=5.0, max_attempts=4, clock=clock
    )


class TestReassembly:
    def test_two_parts_complete_message(self, reassembler):
        raw = json.dumps(PAYLOAD).encode()
        assert reassembler.accumulate(partial("k", raw[:10]), USER_UID) is None
        event = reassembler.accumulate(partial("k", raw[10:], part=1), USER_UID)
        assert isinstance(event, TranscriptionFragment)
        assert event.text == "split across two chunks"
        assert event.is_final
        assert len(reassembler) == 0

    def test_matches_single_chunk_decode(self, reassembler, decoder):
        from tests.conftest import legacy_chunk

        whole = decoder.decode(legacy_chunk("m1", PAYLOAD))
        first, second = legacy_parts("m1", PAYLOAD, split_at=12)
        first_result = decoder.decode(first)
        second_result = decoder.decode(second)
        assert first_result.partial and second_result.partial
        assert reassembler.accumulate(first_result, USER_UID) is None
        assert reassembler.accumulate(second_result, USER_UID) == whole

    def test_parts_joined_in_index_order(self, reassembler):
        raw = json.dumps(PAYLOAD).encode()
        assert reassembler.accumulate(partial("k", raw[10:], part=1), USER_UID) is None
        event = reassembler.accumulate(partial("k", raw[:10], part=0), USER_UID)
        assert event.text == "split across two chunks"

    def test_keys_are_independent(self, reassembler):
        raw = json.dumps(PAYLOAD).encode()
        reassembler.accumulate(partial("a", raw[:10]), USER_UID)
        reassembler.accumulate(partial("b", raw[:5]), USER_UID)
        assert sorted(reassembler.pending_keys) == ["a", "b"]

    def test_non_object_json_is_failure(self, reassembler):
        assert reassembler.accumulate(partial("k", b"[1, "), USER_UID) is None
        result = reassembler.accumulate(partial("k", b"2]", part=1), USER_UID)
        assert isinstance(result, DecodeFailure)
        assert not result.partial


class TestEviction:
    def test_inactive_buffer_is_evicted(self, reassembler, clock):
        reassembler.accumulate(partial("k", b'{"text": "nev'), USER_UID)
        clock.advance(5.0)
        timeouts = reassembler.evict_expired()
        assert [t.key for t in timeouts] == ["k"]
        assert timeouts[0].parts == 1
        assert timeouts[0].reason == "inactivity timeout"
        assert len(reassembler) == 0

    def test_active_buffer_survives_sweep(self, reassembler, clock):
        reassembler.accumulate(partial("k", b'{"text": "nev'), USER_UID)
        clock.advance(4.0)
        assert reassembler.evict_expired() == []
        assert reassembler.pending_keys == ["k"]

    def test_evicted_data_does_not_leak_into_reused_key(self, reassembler, clock):
        reassembler.accumulate(partial("k", b'{"text": "stale'), USER_UID)
        clock.advance(6.0)
        event = reassembler.accumulate(partial("k", json.dumps(PAYLOAD).encode()), USER_UID)
        assert isinstance(event, TranscriptionFragment)
        assert event.text == "split across two chunks"

    def test_max_attempts_evicts(self, reassembler):
        for part in range(4):
            assert reassembler.accumulate(partial("k", b"{", part=part), USER_UID) is None
        assert len(reassembler) == 0

    def test_clear_drops_everything(self, reassembler):
        reassembler.accumulate(partial("k", b"{"), USER_UID)
        reassembler.clear()
        assert reassembler.pending_keys == []
