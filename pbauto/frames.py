"""PandorasAutomation frame structures and serialization."""

import socket
import struct
from dataclasses import dataclass

from .constants import (
    CHECKSUM_OFFSET,
    COMMAND_OFFSET,
    DOMAIN_OFFSET,
    LENGTH_OFFSET,
    MAGIC,
    MAX_BODY_BYTES,
    MIN_FRAME_BYTES,
    PAYLOAD_OFFSET,
    PRE_HEADER,
    RESERVED_BYTES,
)
from .errors import FrameError

# ----------------------------------------------------------------------------
# Payload field helpers
# ----------------------------------------------------------------------------


def write_int(value: int) -> bytes:
    """4-byte big-endian signed integer."""
    return struct.pack(">i", value)


def write_short(value: int) -> bytes:
    """2-byte big-endian unsigned short (negative values wrap, so -1 -> 0xFFFF)."""
    return struct.pack(">H", value & 0xFFFF)


def write_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def write_string(value: str) -> bytes:
    """2-byte big-endian length followed by the ASCII bytes."""
    raw = value.encode("ascii")
    return write_short(len(raw)) + raw


def checksum(header: bytes) -> int:
    """Sum of the header bytes modulo 256."""
    return sum(header) % 256


# ----------------------------------------------------------------------------
# Frame structure
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class Frame:
    """A decoded automation frame."""

    domain: int
    command_id: int
    payload: bytes = b""

    @property
    def is_error(self) -> bool:
        """True for the server's error sentinel (0xFFFF, read as -1)."""
        return self.command_id in (-1, 0xFFFF)


# ----------------------------------------------------------------------------
# Frame serialization/deserialization
# ----------------------------------------------------------------------------


def build_header(domain: int, body_len: int) -> bytes:
    """Build the header that sits between the magic marker and the checksum.

    The body length is written as ``body_len // 256`` followed by
    ``body_len % 256``.
    """
    if body_len > MAX_BODY_BYTES:
        raise FrameError(f"Body length {body_len} exceeds {MAX_BODY_BYTES}")
    return (
        bytes([PRE_HEADER])
        + write_int(domain)
        + bytes([body_len // 256, body_len % 256])
        + b"\x00" * RESERVED_BYTES
    )


def pack_frame(domain: int, command_id: int, *parts: bytes) -> bytes:
    """Pack a command and its payload parts into a complete frame.

    Args:
        domain: Domain the receiving server is configured for
        command_id: Command identifier
        parts: Already-encoded payload fields, concatenated in order

    Returns:
        Binary representation of the frame

    Raises:
        FrameError: If the body does not fit the 16-bit length field
    """
    body = write_short(command_id) + b"".join(parts)
    header = build_header(domain, len(body))
    return MAGIC + header + bytes([checksum(header)]) + body


def body_length(data: bytes) -> int:
    """Read the declared body length from a buffer holding at least a header."""
    return data[LENGTH_OFFSET] * 256 + data[LENGTH_OFFSET + 1]


def parse_frame(data: bytes, domain: int, verify_checksum: bool = False) -> Frame:
    """Parse a complete frame.

    Args:
        data: Raw frame bytes
        domain: Locally configured domain; frames for other domains are rejected
        verify_checksum: Also reject frames whose checksum byte does not match

    Returns:
        Parsed frame

    Raises:
        FrameError: If the frame is short, has a bad magic marker, belongs to
            another domain, or (when requested) fails the checksum
    """
    if len(data) < MIN_FRAME_BYTES:
        raise FrameError(f"Frame too short: {len(data)} bytes")
    if data[: len(MAGIC)] != MAGIC:
        raise FrameError("Bad MAGIC header")

    (frame_domain,) = struct.unpack_from(">i", data, DOMAIN_OFFSET)
    if frame_domain != domain:
        raise FrameError(f"Domain mismatch: got {frame_domain}, expected {domain}")

    if verify_checksum and checksum(data[len(MAGIC) : CHECKSUM_OFFSET]) != data[CHECKSUM_OFFSET]:
        raise FrameError("Checksum mismatch")

    (command_id,) = struct.unpack_from(">h", data, COMMAND_OFFSET)
    return Frame(domain=frame_domain, command_id=command_id, payload=bytes(data[PAYLOAD_OFFSET:]))


def header_is_valid(data: bytes, verify_checksum: bool = True) -> bool:
    """Check the pre-header byte and, optionally, the checksum of a buffered header.

    Args:
        data: Bytes starting at the magic marker, at least up to the command ID
        verify_checksum: Also compare the checksum byte
    """
    if data[len(MAGIC)] != PRE_HEADER:
        return False
    if verify_checksum and checksum(data[len(MAGIC) : CHECKSUM_OFFSET]) != data[CHECKSUM_OFFSET]:
        return False
    return True


class FrameBuffer:
    """Reassemble frames from a TCP byte stream.

    Bytes that do not start with the magic marker are dropped up to the next
    marker. A marker followed by an invalid header is skipped as well, so a
    corrupt length field cannot hold back the frames behind it.
    """

    def __init__(self, verify_checksum: bool = True) -> None:
        self._buf = bytearray()
        self.verify_checksum = verify_checksum

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, data: bytes) -> list[bytes]:
        """Append received bytes and return every complete raw frame."""
        self._buf.extend(data)
        frames = []
        while True:
            start = self._buf.find(MAGIC)
            if start < 0:
                # keep a possible partial marker at the tail
                del self._buf[: max(0, len(self._buf) - (len(MAGIC) - 1))]
                break
            if start > 0:
                del self._buf[:start]
            if len(self._buf) < COMMAND_OFFSET:
                break
            if not header_is_valid(self._buf, self.verify_checksum):
                del self._buf[:1]
                continue
            total = COMMAND_OFFSET + body_length(self._buf)
            if len(self._buf) < total:
                break
            frames.append(bytes(self._buf[:total]))
            del self._buf[:total]
        return frames


def recv_exact(sock: socket.socket, n: int) -> bytes:
    """Receive exactly n bytes from socket.

    Raises:
        ConnectionError: If connection is closed unexpectedly
    """
    buf = bytearray()
    while len(buf) < n:
        chunk = sock.recv(n - len(buf))
        if not chunk:
            raise ConnectionError("Unexpected EOF from peer")
        buf.extend(chunk)
    return bytes(buf)


def recv_frame(sock: socket.socket) -> bytes:
    """Read one raw frame from a socket.

    Raises:
        FrameError: If the magic marker is wrong
        ConnectionError: If connection is closed unexpectedly
    """
    head = recv_exact(sock, COMMAND_OFFSET)
    if head[: len(MAGIC)] != MAGIC:
        raise FrameError("Bad MAGIC header")
    return head + recv_exact(sock, body_length(head))
