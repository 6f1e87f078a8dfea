from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.message_factory import GetMessageClass

PACKAGE = "Agora.SpeechToText"

_FIELD = descriptor_pb2.FieldDescriptorProto


def _add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    repeated: bool = False,
    type_name: str = "",
) -> None:
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,
        label=_FIELD.LABEL_REPEATED if repeated else _FIELD.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = f".{PACKAGE}.{type_name}"


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="SttMessage.proto",
        package=PACKAGE,
        syntax="proto3",
    )

    word = file_proto.message_type.add(name="Word")
    _add_field(word, "text", 1, _FIELD.TYPE_STRING)
    _add_field(word, "start_ms", 2, _FIELD.TYPE_INT32)
    _add_field(word, "duration_ms", 3, _FIELD.TYPE_INT32)
    _add_field(word, "is_final", 4, _FIELD.TYPE_BOOL)
    _add_field(word, "confidence", 5, _FIELD.TYPE_DOUBLE)

    translation = file_proto.message_type.add(name="Translation")
    _add_field(translation, "is_final", 1, _FIELD.TYPE_BOOL)
    _add_field(translation, "lang", 2, _FIELD.TYPE_STRING)
    _add_field(translation, "texts", 3, _FIELD.TYPE_STRING, repeated=True)

    text = file_proto.message_type.add(name="Text")
    _add_field(text, "vendor", 1, _FIELD.TYPE_INT32)
    _add_field(text, "version", 2, _FIELD.TYPE_INT32)
    _add_field(text, "seqnum", 3, _FIELD.TYPE_INT32)
    _add_field(text, "uid", 4, _FIELD.TYPE_INT64)
    _add_field(text, "flag", 5, _FIELD.TYPE_INT32)
    _add_field(text, "time", 6, _FIELD.TYPE_INT64)
    _add_field(text, "lang", 7, _FIELD.TYPE_INT32)
    _add_field(text, "starttime", 8, _FIELD.TYPE_INT32)
    _add_field(text, "offtime", 9, _FIELD.TYPE_INT32)
    _add_field(text, "words", 10, _FIELD.TYPE_MESSAGE, repeated=True, type_name="Word")
    _add_field(text, "end_of_segment", 11, _FIELD.TYPE_BOOL)
    _add_field(text, "duration_ms", 12, _FIELD.TYPE_INT32)
    _add_field(text, "data_type", 13, _FIELD.TYPE_STRING)
    _add_field(text, "trans", 14, _FIELD.TYPE_MESSAGE, repeated=True, type_name="Translation")
    _add_field(text, "culture", 15, _FIELD.TYPE_STRING)
    _add_field(text, "text_ts", 16, _FIELD.TYPE_INT64)
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())

SttText = GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.Text"))


def encode_text(
    words: list[tuple[str, int, int, bool]],
    uid: int = 0,
    seqnum: int = 0,
    end_of_segment: bool = False,
    data_type: str = "transcribe",
) -> bytes:
    """Serialize a Text message; words are (text, start_ms, duration_ms, is_final)."""
    message = SttText(
        uid=uid,
        seqnum=seqnum,
        end_of_segment=end_of_segment,
        data_type=data_type,
    )
    for text, start_ms, duration_ms, is_final in words:
        message.words.add(
            text=text, start_ms=start_ms, duration_ms=duration_ms, is_final=is_final
        )
    return message.SerializeToString()
