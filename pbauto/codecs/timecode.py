"""Timecode reply codec (sequence time and remaining time until next cue)."""

import struct
from typing import Any

from ..models import Timecode
from .base import Codec, unpack


class TimecodeCodec(Codec):
    """Four big-endian int32 fields: hours, minutes, seconds, frames."""

    def encode(self, data: Any) -> bytes:
        if not isinstance(data, Timecode):
            data = Timecode(**data)
        return struct.pack(">4i", data.hours, data.minutes, data.seconds, data.frames)

    def decode(self, data: bytes) -> Timecode:
        h, m, s, f = unpack(">4i", data)
        return Timecode(hours=h, minutes=m, seconds=s, frames=f)
