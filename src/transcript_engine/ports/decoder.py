from typing import Protocol

from transcript_engine.domain.events import DecodeResult
from transcript_engine.ports.chunk_source import RawChunk


class DecoderPort(Protocol):
    def decode(self, chunk: RawChunk) -> DecodeResult: ...
    def event_from_payload(self, sender_id: str, payload: dict) -> DecodeResult: ...
