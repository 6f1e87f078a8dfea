import base64
import binascii
import json
import logging

from google.protobuf.message import DecodeError
from pydantic import ValidationError

from transcript_engine.adapters.legacy_payload import (
    OBJECT_MODELS,
    AssistantTranscription,
    InterruptMessage,
    PayloadWord,
    PlainTranscription,
    UserTranscription,
)
from transcript_engine.adapters.stt_protobuf import SttText
from transcript_engine.domain.events import (
    AgentTurnUpdate,
    DecodeFailure,
    DecodeResult,
    InterruptSignal,
    SenderRole,
    TranscriptionFragment,
    WordTiming,
)
from transcript_engine.domain.state import TurnStatus
from transcript_engine.ports.chunk_source import RawChunk

logger = logging.getLogger(__name__)

LEGACY_DELIMITER = "|"
LEGACY_MIN_FIELDS = 4
TRANSLATE_DATA_TYPE = "translate"


class WireDecoder:
    def __init__(self, agent_uid: str = "") -> None:
        self._agent_uid = agent_uid

    def decode(self, chunk: RawChunk) -> DecodeResult:
        """Decode one chunk, trying the protobuf schema before the legacy text format."""
        event = self._decode_binary(chunk)
        if event is not None:
            return event
        return self._decode_legacy(chunk)

    def event_from_payload(self, sender_id: str, payload: dict) -> DecodeResult:
        object_type = payload.get("object")
        if object_type is None:
            model: type = PlainTranscription
        else:
            model = OBJECT_MODELS.get(object_type)
            if model is None:
                return DecodeFailure(reason=f"unsupported object type {object_type!r}")

        try:
            message = model.model_validate(payload)
        except ValidationError as exc:
            return DecodeFailure(reason=f"invalid {model.__name__}: {exc.error_count()} error(s)")

        if isinstance(message, AssistantTranscription):
            return self._from_assistant(sender_id, message)
        if isinstance(message, UserTranscription):
            return self._from_user(sender_id, message)
        if isinstance(message, InterruptMessage):
            return InterruptSignal(target_turn_id=message.turn_id, at_offset_ms=message.start_ms)
        return self._from_plain(sender_id, message)

    def _decode_binary(self, chunk: RawChunk) -> DecodeResult | None:
        message = SttText()
        try:
            message.ParseFromString(chunk.data)
        except DecodeError:
            return None
        if not message.words:
            return None
        if message.data_type == TRANSLATE_DATA_TYPE:
            return DecodeFailure(reason="translation messages are not transcripts")

        words = tuple(
            WordTiming(
                text=w.text,
                start_ms=w.start_ms,
                end_ms=w.start_ms + w.duration_ms,
                is_final=w.is_final,
            )
            for w in message.words
        )
        sender_id = str(message.uid) if message.uid else chunk.sender_id
        return TranscriptionFragment(
            sender_id=sender_id,
            role=self._role_for(sender_id, chunk.sender_id),
            text="".join(w.text for w in words),
            words=words,
            is_final=message.end_of_segment or all(w.is_final for w in words),
            sequence_id=message.seqnum or None,
        )

    def _decode_legacy(self, chunk: RawChunk) -> DecodeResult:
        try:
            text = chunk.data.decode("utf-8")
        except UnicodeDecodeError:
            return DecodeFailure(reason="not protobuf and not UTF-8 text")

        fields = text.split(LEGACY_DELIMITER)
        if len(fields) < LEGACY_MIN_FIELDS:
            return DecodeFailure(
                reason=f"expected {LEGACY_MIN_FIELDS} delimited fields, got {len(fields)}"
            )

        message_id, _version, part, encoded = fields[:LEGACY_MIN_FIELDS]
        try:
            part_index = int(part)
        except ValueError:
            part_index = 0

        try:
            raw = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError):
            return DecodeFailure(reason=f"invalid base64 in message {message_id}")

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return DecodeFailure(
                reason="incomplete JSON payload",
                partial=True,
                key=f"{chunk.sender_id}:{message_id}",
                payload=raw,
                part_index=part_index,
            )

        if not isinstance(payload, dict):
            return DecodeFailure(reason="legacy payload is not a JSON object")
        return self.event_from_payload(chunk.sender_id, payload)

    def _from_plain(self, sender_id: str, message: PlainTranscription) -> DecodeResult:
        if message.user_id == "":
            role = SenderRole.AGENT
        elif message.user_id is not None:
            role = self._role_for(message.user_id)
        else:
            role = self._role_for(sender_id)
        return TranscriptionFragment(
            sender_id=message.user_id or sender_id,
            role=role,
            turn_id=message.turn_id,
            text=message.text,
            is_final=message.is_final,
        )

    def _from_user(self, sender_id: str, message: UserTranscription) -> DecodeResult:
        return TranscriptionFragment(
            sender_id=message.user_id or sender_id,
            role=SenderRole.USER,
            turn_id=message.turn_id,
            text=message.text,
            words=_words(message.words),
            is_final=message.final,
        )

    def _from_assistant(self, sender_id: str, message: AssistantTranscription) -> DecodeResult:
        fragment = TranscriptionFragment(
            sender_id=sender_id,
            role=SenderRole.AGENT,
            turn_id=message.turn_id,
            text=message.text,
            words=_words(message.words),
            is_final=message.turn_status is not TurnStatus.IN_PROGRESS,
            sequence_id=message.turn_seq_id,
        )
        return AgentTurnUpdate(
            turn_id=message.turn_id,
            sequence_id=message.turn_seq_id,
            turn_status=message.turn_status,
            quiet=message.quiet,
            fragment=fragment,
        )

    def _role_for(self, *sender_ids: str) -> SenderRole:
        if self._agent_uid and self._agent_uid in sender_ids:
            return SenderRole.AGENT
        return SenderRole.USER


def _words(words: list[PayloadWord]) -> tuple[WordTiming, ...]:
    return tuple(
        WordTiming(
            text=w.word,
            start_ms=w.start_ms,
            end_ms=w.start_ms + w.duration_ms,
            is_final=w.stable,
        )
        for w in words
    )
