"""Payload codecs keyed by command identifier."""

from ..constants import CommandId
from .base import Codec

# Import all codec implementations
from .sequences import SequenceIdCodec, SequenceIdsCodec, SequenceNameCodec
from .timecode import TimecodeCodec
from .transport import TransportStateCodec

__all__ = [
    "Codec",
    "SequenceIdCodec",
    "SequenceIdsCodec",
    "SequenceNameCodec",
    "TimecodeCodec",
    "TransportStateCodec",
    "register_codec",
    "get_codec",
    "list_codecs",
]


# Codec registry
_CODECS: dict[int, type[Codec]] = {}


def register_codec(command_id: int, codec_class: type[Codec]) -> None:
    """Register the reply codec for a command."""
    _CODECS[command_id] = codec_class


def get_codec(command_id: int) -> Codec:
    """Get a codec instance by command ID."""
    if command_id not in _CODECS:
        raise ValueError(f"No codec for command ID: {command_id}")
    return _CODECS[command_id]()


def list_codecs() -> list[int]:
    """List all command IDs with a registered reply codec."""
    return list(_CODECS.keys())


# Register default codecs
register_codec(CommandId.GET_SEQ_TRANSPORT_MODE, TransportStateCodec)
register_codec(CommandId.GET_SEQ_TIME, TimecodeCodec)
register_codec(CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE, TimecodeCodec)
register_codec(CommandId.GET_SEQUENCE_IDS, SequenceIdsCodec)
register_codec(CommandId.GET_SEQUENCE_NAME, SequenceNameCodec)
