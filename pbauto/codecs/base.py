"""Base payload codec interface."""

import struct
from abc import ABC, abstractmethod
from typing import Any

from ..errors import FrameError


class Codec(ABC):
    """Encodes and decodes the payload of one command's reply."""

    @abstractmethod
    def encode(self, data: Any) -> bytes:
        """Encode data to payload bytes."""
        pass

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        """Decode payload bytes to data."""
        pass


def unpack(fmt: str, data: bytes, offset: int = 0) -> tuple:
    """struct.unpack_from that reports truncation as a FrameError."""
    try:
        return struct.unpack_from(fmt, data, offset)
    except struct.error as e:
        raise FrameError(f"Truncated payload ({len(data)} bytes): {e}") from e
