import asyncio
import logging
from collections.abc import AsyncIterator

from transcript_engine.ports.chunk_source import RawChunk

logger = logging.getLogger(__name__)


class QueueChunkSource:
    """Bridges callback-style transports ("stream-message" handlers) to an async source.

    Transports call push() from their message handler and hand the source to
    TranscriptEngine.start(); factory.create_queue_source() sizes it from config.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[RawChunk | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, sender_id: str | int, data: bytes | str) -> bool:
        if self._closed:
            return False
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            self._queue.put_nowait(RawChunk(sender_id=str(sender_id), data=data))
        except asyncio.QueueFull:
            logger.warning("Chunk queue full, dropping chunk from %s", sender_id)
            return False
        return True

    async def chunks(self) -> AsyncIterator[RawChunk]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(None)
