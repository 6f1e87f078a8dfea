from typing import Literal

from pydantic import BaseModel, field_validator

from transcript_engine.domain.state import TurnStatus


class _Payload(BaseModel):
    @field_validator("turn_id", "user_id", mode="before", check_fields=False)
    @classmethod
    def _stringify_ids(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class PayloadWord(BaseModel):
    word: str = ""
    start_ms: int = 0
    duration_ms: int = 0
    stable: bool = False


class PlainTranscription(_Payload):
    text: str = ""
    is_final: bool = False
    user_id: str | None = None
    turn_id: str | None = None
    stream_id: int | str | None = None


class UserTranscription(_Payload):
    object: Literal["user.transcription"]
    text: str = ""
    final: bool = False
    turn_id: str | None = None
    user_id: str | None = None
    words: list[PayloadWord] = []


class AssistantTranscription(_Payload):
    object: Literal["assistant.transcription"]
    text: str = ""
    turn_id: str
    turn_seq_id: int | None = None
    turn_status: TurnStatus = TurnStatus.IN_PROGRESS
    quiet: bool = False
    user_id: str | None = None
    words: list[PayloadWord] = []


class InterruptMessage(_Payload):
    object: Literal["message.interrupt"]
    turn_id: str
    start_ms: int | None = None


OBJECT_MODELS: dict[str, type[_Payload]] = {
    "user.transcription": UserTranscription,
    "assistant.transcription": AssistantTranscription,
    "message.interrupt": InterruptMessage,
}
