"""Transport mode reply codec."""

from typing import Any

from ..constants import TransportState
from ..frames import write_int
from .base import Codec, unpack


class TransportStateCodec(Codec):
    """A single big-endian int32 transport mode."""

    def encode(self, data: Any) -> bytes:
        """Encode a TransportState (or raw mode integer)."""
        if isinstance(data, TransportState):
            return write_int(data.to_wire())
        return write_int(int(data))

    def decode(self, data: bytes) -> TransportState:
        (mode,) = unpack(">i", data)
        return TransportState.from_wire(mode)
