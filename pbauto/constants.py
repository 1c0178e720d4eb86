"""PandorasAutomation protocol constants and enums."""

from enum import Enum, IntEnum

# ----------------------------------------------------------------------------
# Protocol constants
# ----------------------------------------------------------------------------

MAGIC = b"PBAU"
PRE_HEADER = 0x01
DEFAULT_PORT = 6211

HEADER_BYTES = 12  # pre-header + domain + length + reserved
RESERVED_BYTES = 5
DOMAIN_OFFSET = 5
LENGTH_OFFSET = 9
CHECKSUM_OFFSET = len(MAGIC) + HEADER_BYTES  # 16
COMMAND_OFFSET = CHECKSUM_OFFSET + 1  # 17
PAYLOAD_OFFSET = COMMAND_OFFSET + 2  # 19
MIN_FRAME_BYTES = 19
MAX_BODY_BYTES = 0xFFFF

# ----------------------------------------------------------------------------
# Polling intervals (seconds)
# ----------------------------------------------------------------------------

STATUS_POLL_INTERVAL = 0.200  # 5x per second for all watched sequences
TIMECODE_POLL_FAST = 0.033  # ~30x per second while playing
TIMECODE_POLL_SLOW = 0.200  # ~5x per second otherwise

# ----------------------------------------------------------------------------
# Command identifiers
# ----------------------------------------------------------------------------


class CommandId(IntEnum):
    """Automation command identifiers used by this client."""

    RESET_ALL = 8
    SET_SEQ_TRANSPORT_MODE = 9
    MOVE_SEQ_TO_CUE = 11
    MOVE_SEQ_TO_LAST_NEXT_CUE = 12
    IGNORE_NEXT_CUE = 13
    CLEAR_ALL_ACTIVE = 14
    STORE_ACTIVE = 15
    STORE_ACTIVE_TO_BEGINNING = 16
    SAVE_PROJECT = 19
    TOGGLE_FULLSCREEN = 28
    SET_SITE_IP = 47
    APPLY_VIEW = 55
    SET_SEQ_SMPTE_MODE = 68
    GET_SEQ_TRANSPORT_MODE = 72
    GET_SEQ_TIME = 73
    GET_REMAINING_TIME_UNTIL_NEXT_CUE = 74
    SET_SEQ_SELECTION = 80
    GET_SEQUENCE_IDS = 96
    GET_SEQUENCE_NAME = 97

    ERROR = -1  # 0xFFFF on the wire


# ----------------------------------------------------------------------------
# Transport / SMPTE
# ----------------------------------------------------------------------------


class TransportMode(IntEnum):
    """Transport mode values as sent and received on the wire."""

    PLAY = 1
    STOP = 2
    PAUSE = 3


class TransportState(str, Enum):
    """Playback state of a sequence as seen by the client."""

    PLAY = "Play"
    PAUSE = "Pause"
    STOP = "Stop"
    UNKNOWN = "Unknown"

    @classmethod
    def from_wire(cls, value: int) -> "TransportState":
        """Map a wire transport mode to a state; unknown values map to UNKNOWN."""
        if value == TransportMode.PLAY:
            return cls.PLAY
        if value == TransportMode.STOP:
            return cls.STOP
        if value == TransportMode.PAUSE:
            return cls.PAUSE
        return cls.UNKNOWN

    def to_wire(self) -> int:
        """Inverse of from_wire. UNKNOWN is sent as 0."""
        return {
            TransportState.PLAY: TransportMode.PLAY,
            TransportState.STOP: TransportMode.STOP,
            TransportState.PAUSE: TransportMode.PAUSE,
        }.get(self, 0)


class SmpteMode(IntEnum):
    """Per-sequence SMPTE timecode configuration."""

    NONE = 0
    SEND = 1
    RECEIVE = 2
