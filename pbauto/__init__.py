# Copyright 2025 Maida.AI
# SPDX-License-Identifier: Apache-2.0
r"""pbauto - a client for the Pandoras Box "PandorasAutomation" TCP protocol.

The package provides:
- Frame packing/parsing for the PBAU binary frame format
- A control connection issuing commands, polling sequence transport state and
  discovering sequence names
- Per-sequence timecode connections polling at a rate that follows playback
- Payload codecs keyed by command identifier
- An in-process server emulator for tests and demos
"""

# Import public API from modules
from .client import Client, PollHandlers
from .codecs import (
    Codec,
    get_codec,
    list_codecs,
    register_codec,
)
from .config import DeviceConfig
from .constants import (
    DEFAULT_PORT,
    MAGIC,
    STATUS_POLL_INTERVAL,
    TIMECODE_POLL_FAST,
    TIMECODE_POLL_SLOW,
    CommandId,
    SmpteMode,
    TransportMode,
    TransportState,
)
from .errors import FrameError, PBAutoError, TransportError
from .frames import (
    Frame,
    FrameBuffer,
    pack_frame,
    parse_frame,
)
from .models import SequenceInfo, Timecode
from .scheduler import RepeatingTask
from .server import EmulatedSequence, Server
from .timecode import TimecodeConnection

# Public API exports
__all__ = [
    # Core classes
    "Client",
    "PollHandlers",
    "TimecodeConnection",
    "Frame",
    "FrameBuffer",
    "RepeatingTask",
    "DeviceConfig",
    "SequenceInfo",
    "Timecode",
    "Codec",
    # Emulator
    "Server",
    "EmulatedSequence",
    # Constants and enums
    "MAGIC",
    "DEFAULT_PORT",
    "STATUS_POLL_INTERVAL",
    "TIMECODE_POLL_FAST",
    "TIMECODE_POLL_SLOW",
    "CommandId",
    "TransportMode",
    "TransportState",
    "SmpteMode",
    # Errors
    "PBAutoError",
    "TransportError",
    "FrameError",
    # Frame utilities
    "pack_frame",
    "parse_frame",
    # Codec utilities
    "get_codec",
    "list_codecs",
    "register_codec",
]
