"""Sequence discovery reply codecs."""

import struct
from typing import Any

from ..frames import write_int, write_string
from .base import Codec, unpack


class SequenceIdsCodec(Codec):
    """Sequence ID list.

    Layout: big-endian int32 count, 4 unused bytes, then ``count`` IDs as
    little-endian int32. The endianness switch is part of the wire format.
    IDs missing from a short reply are not invented; the list stops at the
    last complete ID.
    """

    def encode(self, data: Any) -> bytes:
        ids = list(data)
        return write_int(len(ids)) + b"\x00" * 4 + b"".join(struct.pack("<i", i) for i in ids)

    def decode(self, data: bytes) -> list[int]:
        (count,) = unpack(">i", data)
        ids = []
        offset = 8
        while len(ids) < count and offset + 4 <= len(data):
            ids.append(struct.unpack_from("<i", data, offset)[0])
            offset += 4
        return ids


class SequenceNameCodec(Codec):
    """Big-endian int16 length followed by that many ASCII bytes.

    The name is cut short rather than rejected when the reply is truncated.
    """

    def encode(self, data: Any) -> bytes:
        return write_string(str(data))

    def decode(self, data: bytes) -> str:
        (length,) = unpack(">h", data)
        return data[2 : 2 + max(length, 0)].decode("ascii", errors="replace")


class SequenceIdCodec(Codec):
    """Single big-endian int32 sequence ID (request payloads)."""

    def encode(self, data: Any) -> bytes:
        return write_int(int(data))

    def decode(self, data: bytes) -> int:
        (seq_id,) = unpack(">i", data)
        return seq_id
