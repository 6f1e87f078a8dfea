import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from time import monotonic

from transcript_engine.domain.events import DecodeFailure, DecodeResult

logger = logging.getLogger(__name__)

PayloadMapper = Callable[[str, dict], DecodeResult]


@dataclass(frozen=True)
class ReassemblyTimeout:
    key: str
    parts: int
    age_seconds: float
    reason: str


@dataclass
class _PartialBuffer:
    sender_id: str
    created_at: float
    updated_at: float
    parts: dict[int, bytes] = field(default_factory=dict)
    attempts: int = 0

    def joined(self) -> bytes:
        return b"".join(self.parts[i] for i in sorted(self.parts))


class FragmentReassembler:
    def __init__(
        self,
        to_event: PayloadMapper,
        timeout_seconds: float = 5.0,
        max_attempts: int = 32,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._to_event = to_event
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max_attempts
        self._clock = clock
        self._buffers: dict[str, _PartialBuffer] = {}

    @property
    def pending_keys(self) -> list[str]:
        return list(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)

    def accumulate(self, failure: DecodeFailure, sender_id: str) -> DecodeResult | None:
        """Buffer one partial payload and try to complete its message.

        Returns the decoded event once the buffered parts form valid JSON,
        or None while the message is still incomplete.
        """
        key = failure.key or ""
        self.evict_expired()

        now = self._clock()
        buffer = self._buffers.get(key)
        if buffer is None:
            buffer = _PartialBuffer(sender_id=sender_id, created_at=now, updated_at=now)
            self._buffers[key] = buffer
        buffer.parts[failure.part_index] = failure.payload
        buffer.attempts += 1
        buffer.updated_at = now

        try:
            obj = json.loads(buffer.joined().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            if buffer.attempts >= self._max_attempts:
                self._evict(key, "max attempts reached")
            else:
                logger.debug(
                    "Reassembly: %s incomplete after %d part(s)", key, len(buffer.parts)
                )
            return None

        del self._buffers[key]
        logger.debug("Reassembly: %s complete from %d part(s)", key, len(buffer.parts))
        if not isinstance(obj, dict):
            return DecodeFailure(reason="reassembled payload is not a JSON object", key=key)
        return self._to_event(buffer.sender_id, obj)

    def evict_expired(self) -> list[ReassemblyTimeout]:
        now = self._clock()
        expired = [
            key
            for key, buffer in self._buffers.items()
            if now - buffer.updated_at >= self._timeout_seconds
        ]
        return [self._evict(key, "inactivity timeout") for key in expired]

    def clear(self) -> None:
        self._buffers.clear()

    def _evict(self, key: str, reason: str) -> ReassemblyTimeout:
        buffer = self._buffers.pop(key)
        timeout = ReassemblyTimeout(
            key=key,
            parts=len(buffer.parts),
            age_seconds=self._clock() - buffer.created_at,
            reason=reason,
        )
        logger.warning(
            "Reassembly timeout: %s evicted (%s, %d part(s), %.1fs old)",
            key,
            reason,
            timeout.parts,
            timeout.age_seconds,
        )
        return timeout
