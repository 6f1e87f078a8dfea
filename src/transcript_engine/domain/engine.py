import asyncio
import logging
from collections.abc import Callable

from transcript_engine.domain.events import DecodeFailure
from transcript_engine.domain.projection import Snapshot, project
from transcript_engine.domain.reassembler import FragmentReassembler
from transcript_engine.domain.turns import TurnStore
from transcript_engine.ports.chunk_source import ChunkSourcePort, RawChunk
from transcript_engine.ports.decoder import DecoderPort

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Snapshot], None]


class TranscriptEngine:
    def __init__(
        self,
        decoder: DecoderPort,
        turns: TurnStore | None = None,
        reassembler: FragmentReassembler | None = None,
        eviction_interval_seconds: float = 1.0,
    ) -> None:
        self._decoder = decoder
        self._turns = turns or TurnStore()
        self._reassembler = reassembler or FragmentReassembler(decoder.event_from_payload)
        self._eviction_interval_seconds = eviction_interval_seconds

        self._running = False
        self._generation = 0
        self._on_snapshot: SnapshotCallback | None = None
        self._snapshot = Snapshot()
        self._consumer_task: asyncio.Task | None = None
        self._eviction_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def pending_reassembly(self) -> int:
        return len(self._reassembler)

    def start(
        self,
        source: ChunkSourcePort | None,
        on_snapshot: SnapshotCallback,
    ) -> None:
        """Begin consuming chunks and reporting snapshots to on_snapshot.

        With a source, consumption runs as a task on the current event loop.
        Without one, chunks are pushed through feed().
        """
        if self._running:
            logger.warning("Engine restarted without stop(), discarding state")
            self.stop()

        self._generation += 1
        self._running = True
        self._on_snapshot = on_snapshot
        generation = self._generation

        if source is not None:
            self._consumer_task = asyncio.create_task(self._consume(source, generation))
        if self._eviction_interval_seconds > 0 and _has_running_loop():
            self._eviction_task = asyncio.create_task(self._evict_periodically(generation))
        logger.info("Transcript engine started")

    def stop(self) -> None:
        was_running = self._running
        self._running = False
        self._on_snapshot = None

        current = asyncio.current_task() if _has_running_loop() else None
        for task in (self._consumer_task, self._eviction_task):
            if task is not None and not task.done() and task is not current:
                task.cancel()
        self._consumer_task = None
        self._eviction_task = None

        self._turns.clear()
        self._reassembler.clear()
        self._snapshot = Snapshot()
        if was_running:
            logger.info("Transcript engine stopped")

    def feed(self, chunk: RawChunk) -> bool:
        """Process one chunk; returns True when it changed the transcript."""
        if not self._running:
            return False

        result = self._decoder.decode(chunk)
        if isinstance(result, DecodeFailure) and result.partial:
            result = self._reassembler.accumulate(result, chunk.sender_id)
            if result is None:
                return False

        if isinstance(result, DecodeFailure):
            logger.warning("Decode failure from %s: %s", chunk.sender_id, result.reason)
            return False

        if not self._turns.apply(result):
            return False

        self._emit()
        return True

    def _emit(self) -> None:
        self._snapshot = project(self._turns.turns)
        callback = self._on_snapshot
        if callback is None:
            return
        try:
            callback(self._snapshot)
        except Exception:
            logger.exception("Snapshot subscriber raised")

    async def _consume(self, source: ChunkSourcePort, generation: int) -> None:
        try:
            async for chunk in source.chunks():
                if not self._running or generation != self._generation:
                    break
                self.feed(chunk)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Chunk source failed")

    async def _evict_periodically(self, generation: int) -> None:
        try:
            while self._running and generation == self._generation:
                await asyncio.sleep(self._eviction_interval_seconds)
                self._reassembler.evict_expired()
        except asyncio.CancelledError:
            pass


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
