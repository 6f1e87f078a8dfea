from dataclasses import dataclass
from typing import Protocol, AsyncIterator


@dataclass(frozen=True)
class RawChunk:
    sender_id: str
    data: bytes


class ChunkSourcePort(Protocol):
    def chunks(self) -> AsyncIterator[RawChunk]: ...
