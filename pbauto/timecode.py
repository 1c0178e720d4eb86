"""Per-sequence timecode polling connection."""

from collections.abc import Callable

from .codecs import get_codec
from .connection import Connection
from .constants import DEFAULT_PORT, TIMECODE_POLL_FAST, TIMECODE_POLL_SLOW, CommandId, TransportState
from .frames import Frame, write_int
from .models import Timecode
from .scheduler import RepeatingTask


class TimecodeConnection(Connection):
    """Dedicated connection that polls one sequence's running timecode.

    Replies to "get sequence time" carry no sequence ID, so each watched
    sequence gets its own socket. The poll rate follows the last known
    transport state: fast while playing, slow otherwise.
    """

    def __init__(
        self,
        host: str,
        domain: int,
        sequence_id: int,
        on_time: Callable[[Timecode], None],
        port: int = DEFAULT_PORT,
        on_debug: Callable[[str], None] | None = None,
        connect_timeout: float = 5.0,
    ):
        super().__init__(host, domain, port=port, connect_timeout=connect_timeout)
        self.sequence_id = sequence_id
        self.on_time = on_time
        self.on_debug = on_debug
        self.state = TransportState.UNKNOWN
        self._poller: RepeatingTask | None = None
        self._codec = get_codec(CommandId.GET_SEQ_TIME)

    @property
    def name(self) -> str:
        return f"SeqConn[{self.sequence_id}]"

    @property
    def poll_interval(self) -> float:
        """Delay before the next timecode request."""
        return TIMECODE_POLL_FAST if self.state == TransportState.PLAY else TIMECODE_POLL_SLOW

    def disconnect(self) -> None:
        """Close the socket and stop polling. The connection never reconnects afterwards."""
        with self._lock:
            self._retired = True
        super().disconnect()

    def update_state(self, state: TransportState) -> None:
        """Record the latest transport state; the next tick uses its rate."""
        self.state = state

    def _on_connected(self) -> None:
        self._stop_polling()
        self._poller = RepeatingTask(lambda: self.poll_interval, self._poll, name=f"{self.name}-poll")
        self._poller.start()

    def _on_closed(self) -> None:
        self._stop_polling()

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.cancel(wait=False)
            self._poller = None

    def _poll(self) -> None:
        if not self.connected:
            return
        try:
            self._send(CommandId.GET_SEQ_TIME, write_int(self.sequence_id))
        except OSError as e:
            self._debug(f"send error: {e}")

    def _handle_frame(self, frame: Frame) -> None:
        if frame.command_id == CommandId.GET_SEQ_TIME:
            self.on_time(self._codec.decode(frame.payload))

    def _debug(self, message: str) -> None:
        super()._debug(message)
        if self.on_debug:
            self.on_debug(f"{self.name} {message}")
