import base64
import binascii
import json
import logging
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

from transcript_engine.ports.chunk_source import RawChunk

logger = logging.getLogger(__name__)


class JsonlChunkSource:
    """Replays recorded chunks, one JSON object per line.

    Lines look like {"sender": "1001", "data": "<base64>"} for binary chunks
    or {"sender": "1001", "text": "m1|1|0|..."} for text chunks.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def read(self) -> Iterator[RawChunk]:
        with open(self._path) as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                chunk = _parse_line(line)
                if chunk is None:
                    logger.warning("%s:%d: unreadable chunk record", self._path, line_number)
                    continue
                yield chunk

    async def chunks(self) -> AsyncIterator[RawChunk]:
        for chunk in self.read():
            yield chunk


def _parse_line(line: str) -> RawChunk | None:
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(record, dict):
        return None

    sender = str(record.get("sender", ""))
    if isinstance(record.get("text"), str):
        return RawChunk(sender_id=sender, data=record["text"].encode("utf-8"))
    if isinstance(record.get("data"), str):
        try:
            return RawChunk(sender_id=sender, data=base64.b64decode(record["data"], validate=True))
        except (binascii.Error, ValueError):
            return None
    return None
