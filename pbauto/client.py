"""PandorasAutomation control connection."""

import functools
import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .codecs import get_codec
from .config import DeviceConfig
from .connection import Connection
from .constants import DEFAULT_PORT, STATUS_POLL_INTERVAL, CommandId, SmpteMode, TransportMode, TransportState
from .errors import FrameError, TransportError
from .frames import Frame, write_bool, write_int, write_string
from .models import SequenceInfo, Timecode
from .scheduler import RepeatingTask
from .timecode import TimecodeConnection

logger = logging.getLogger(__name__)


@dataclass
class PollHandlers:
    """Consumer callbacks. Every handler is optional.

    Reply handlers run on the connection's reader thread, after the client
    has released its internal lock, so they may call back into the client.
    on_error also fires on the thread whose send or connect failed.
    """

    on_sequence_time: Callable[[int, Timecode], None] | None = None
    on_next_cue_time: Callable[[Timecode], None] | None = None
    on_transport: Callable[[TransportState], None] | None = None
    on_sequence_transport: Callable[[int, TransportState], None] | None = None
    on_sequences_updated: Callable[[list[SequenceInfo]], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_debug: Callable[[str], None] | None = None


class Client(Connection):
    """Control connection to a Pandoras Box automation server.

    Besides issuing commands, the client runs two request pipelines over the
    same socket:

    * status polling: every 200 ms the watched sequences are queued and their
      transport state is requested one at a time;
    * discovery: sequence IDs are fetched, then each name is requested one at
      a time.

    Replies name no sequence, so each pipeline keeps at most one request in
    flight and attributes a reply to the ID it sent last. An error reply is
    attributed to the oldest outstanding pipeline request.
    """

    def __init__(
        self,
        host: str,
        domain: int = 0,
        handlers: PollHandlers | None = None,
        port: int = DEFAULT_PORT,
        connect_timeout: float = 5.0,
    ):
        """Initialize client.

        Args:
            host: Server hostname or IP
            domain: Server domain; frames for other domains are ignored
            handlers: Consumer callbacks
            port: Server port
            connect_timeout: Seconds to wait for each TCP connect
        """
        super().__init__(host, domain, port=port, connect_timeout=connect_timeout)
        self._handlers = handlers or PollHandlers()
        self._status_poller: RepeatingTask | None = None

        # Status polling
        self._poll_sequence_ids: list[int] = []
        self._status_queue: deque[int] = deque()
        self.current_status_request_id: int | None = None
        self.status_request_pending = False
        self._sequence_states: dict[int, TransportState] = {}

        # Discovery
        self._pending_sequence_ids: list[int] = []
        self._pending_sequence_names: dict[int, str] = {}
        self._sequence_name_queue: deque[int] = deque()
        self.current_sequence_name_id: int | None = None
        self._discovery_active = False
        self._sequences: list[SequenceInfo] = []

        # Pipeline requests in send order, for attributing error replies
        self._outstanding: deque[int] = deque()

        self._sequence_connections: dict[int, TimecodeConnection] = {}

        self._codecs = {
            CommandId.GET_SEQ_TRANSPORT_MODE: get_codec(CommandId.GET_SEQ_TRANSPORT_MODE),
            CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE: get_codec(CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE),
            CommandId.GET_SEQUENCE_IDS: get_codec(CommandId.GET_SEQUENCE_IDS),
            CommandId.GET_SEQUENCE_NAME: get_codec(CommandId.GET_SEQUENCE_NAME),
        }

    @classmethod
    def from_config(cls, config: DeviceConfig, handlers: PollHandlers | None = None) -> "Client":
        return cls(
            config.host,
            config.domain,
            handlers=handlers,
            port=config.port,
            connect_timeout=config.connect_timeout,
        )

    @property
    def name(self) -> str:
        return f"PBClient[{self.host}:{self.port}/{self.domain}]"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, host: str | None = None, domain: int | None = None) -> None:
        """Connect to the server and start status polling.

        Args:
            host: Replace the configured host before connecting
            domain: Replace the configured domain before connecting

        Raises:
            TransportError: If the TCP connect fails (also reported via on_error)
        """
        if self._sock is None:
            if host is not None:
                self.host = host
            if domain is not None:
                self.domain = domain
        super().connect()

    def disconnect(self) -> None:
        """Stop polling, disconnect every timecode connection and close the socket."""
        super().disconnect()
        with self._lock:
            connections = list(self._sequence_connections.values())
            self._sequence_connections.clear()
        for conn in connections:
            conn.disconnect()

    def update_handlers(self, handlers: PollHandlers) -> None:
        self._handlers = handlers

    def _on_connected(self) -> None:
        with self._lock:
            self._stop_status_polling()
            self.status_request_pending = False
            self.current_status_request_id = None
            self._status_queue.clear()
            self.current_sequence_name_id = None
            self._outstanding.clear()
            self._status_poller = RepeatingTask(
                lambda: STATUS_POLL_INTERVAL, self._status_tick, name=f"{self.name}-status"
            )
            self._status_poller.start()

    def _on_closed(self) -> None:
        with self._lock:
            self._stop_status_polling()

    def _stop_status_polling(self) -> None:
        if self._status_poller is not None:
            self._status_poller.cancel(wait=False)
            self._status_poller = None

    def _on_transport_error(self, exc: Exception) -> None:
        self._debug(f"transport error: {exc}")
        if self._handlers.on_error:
            self._handlers.on_error(exc)

    def _debug(self, message: str) -> None:
        super()._debug(message)
        if self._handlers.on_debug:
            self._handlers.on_debug(message)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def watched_sequences(self) -> list[int]:
        return list(self._poll_sequence_ids)

    @property
    def sequences(self) -> list[SequenceInfo]:
        """Result of the last completed discovery run."""
        return list(self._sequences)

    @property
    def timecode_connections(self) -> dict[int, TimecodeConnection]:
        with self._lock:
            return dict(self._sequence_connections)

    def get_sequence_state(self, sequence_id: int) -> TransportState:
        return self._sequence_states.get(sequence_id, TransportState.UNKNOWN)

    # ------------------------------------------------------------------
    # Watched sequences
    # ------------------------------------------------------------------

    def set_poll_sequences(self, sequence_ids: Iterable[int]) -> None:
        """Replace the watched set and reconcile timecode connections.

        New IDs get a timecode connection that connects on its own thread;
        a failure is logged and does not affect the others. Removed IDs have
        their connection disconnected and discarded.
        """
        ids = list(dict.fromkeys(sequence_ids))
        with self._lock:
            self._poll_sequence_ids = ids
            self._status_queue = deque(i for i in self._status_queue if i in ids)
            removed = [
                self._sequence_connections.pop(seq_id)
                for seq_id in list(self._sequence_connections)
                if seq_id not in ids
            ]
            added = []
            for seq_id in ids:
                if seq_id not in self._sequence_connections:
                    conn = self._create_sequence_connection(seq_id)
                    self._sequence_connections[seq_id] = conn
                    added.append(conn)

        for conn in removed:
            conn.disconnect()
        for conn in added:
            threading.Thread(
                target=self._connect_sequence, args=(conn,), name=f"{conn.name}-connect", daemon=True
            ).start()

    def _create_sequence_connection(self, sequence_id: int) -> TimecodeConnection:
        def on_time(timecode: Timecode) -> None:
            if self._handlers.on_sequence_time:
                self._handlers.on_sequence_time(sequence_id, timecode)

        return TimecodeConnection(
            self.host,
            self.domain,
            sequence_id,
            on_time,
            port=self.port,
            connect_timeout=self.connect_timeout,
        )

    def _connect_sequence(self, conn: TimecodeConnection) -> None:
        try:
            conn.connect()
        except TransportError as e:
            self._debug(f"Failed to connect sequence {conn.sequence_id}: {e}")

    def _retire_sequence(self, sequence_id: int) -> None:
        self._poll_sequence_ids = [i for i in self._poll_sequence_ids if i != sequence_id]
        conn = self._sequence_connections.pop(sequence_id, None)
        if conn is not None:
            conn.disconnect()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_transport(self, sequence_id: int, mode: TransportMode | int) -> bool:
        return self._send(CommandId.SET_SEQ_TRANSPORT_MODE, write_int(sequence_id), write_int(int(mode)))

    def select_sequence(self, sequence_id: int) -> bool:
        return self._send(CommandId.SET_SEQ_SELECTION, write_int(sequence_id))

    def goto_cue(self, sequence_id: int, cue_id: int) -> bool:
        return self._send(CommandId.MOVE_SEQ_TO_CUE, write_int(sequence_id), write_int(cue_id))

    def next_or_last_cue(self, sequence_id: int, is_next: bool) -> bool:
        return self._send(CommandId.MOVE_SEQ_TO_LAST_NEXT_CUE, write_int(sequence_id), write_bool(is_next))

    def ignore_next_cue(self, sequence_id: int, do_ignore: bool) -> bool:
        return self._send(CommandId.IGNORE_NEXT_CUE, write_int(sequence_id), write_bool(do_ignore))

    def apply_view(self, view_id: int) -> bool:
        return self._send(CommandId.APPLY_VIEW, write_int(view_id))

    def save_project(self) -> bool:
        return self._send(CommandId.SAVE_PROJECT)

    def toggle_fullscreen(self, site_id: int) -> bool:
        return self._send(CommandId.TOGGLE_FULLSCREEN, write_int(site_id))

    def set_site_ip(self, site_id: int, ip: str) -> bool:
        return self._send(CommandId.SET_SITE_IP, write_int(site_id), write_string(ip))

    def clear_all_active(self) -> bool:
        return self._send(CommandId.CLEAR_ALL_ACTIVE)

    def store_active(self, sequence_id: int) -> bool:
        return self._send(CommandId.STORE_ACTIVE, write_int(sequence_id))

    def store_active_to_beginning(self, sequence_id: int) -> bool:
        return self._send(CommandId.STORE_ACTIVE_TO_BEGINNING, write_int(sequence_id))

    def reset_all(self) -> bool:
        return self._send(CommandId.RESET_ALL)

    def set_sequence_smpte_mode(self, sequence_id: int, mode: SmpteMode | int) -> bool:
        return self._send(CommandId.SET_SEQ_SMPTE_MODE, write_int(sequence_id), write_int(int(mode)))

    def request_next_cue_time(self, sequence_id: int) -> bool:
        """Ask for the time remaining until the next cue; delivered to on_next_cue_time."""
        return self._send(CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE, write_int(sequence_id))

    def refresh_sequences(self) -> bool:
        """Clear discovery state and start a new discovery run."""
        with self._lock:
            self._pending_sequence_ids = []
            self._pending_sequence_names = {}
            self._sequence_name_queue.clear()
            self._discovery_active = False
            return self._send(CommandId.GET_SEQUENCE_IDS)

    # ------------------------------------------------------------------
    # Status polling
    # ------------------------------------------------------------------

    def _status_tick(self) -> None:
        with self._lock:
            if self._status_queue or not self._poll_sequence_ids:
                return
            self._status_queue.extend(self._poll_sequence_ids)
            try:
                self._process_status_queue()
            except TransportError as e:
                self._debug(f"status poll failed: {e}")

    def _process_status_queue(self) -> None:
        if self.status_request_pending:
            return
        if not self._status_queue:
            self.current_status_request_id = None
            return
        next_id = self._status_queue.popleft()
        self.current_status_request_id = next_id
        self.status_request_pending = True
        self._outstanding.append(CommandId.GET_SEQ_TRANSPORT_MODE)
        self._send(CommandId.GET_SEQ_TRANSPORT_MODE, write_int(next_id))

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _process_sequence_name_queue(self) -> None:
        if self.current_sequence_name_id is not None or not self._sequence_name_queue:
            return
        next_id = self._sequence_name_queue.popleft()
        self.current_sequence_name_id = next_id
        self._outstanding.append(CommandId.GET_SEQUENCE_NAME)
        self._send(CommandId.GET_SEQUENCE_NAME, write_int(next_id))

    def _check_discovery_complete(self, notify: list) -> bool:
        if not self._discovery_active:
            return False
        if len(self._pending_sequence_names) != len(self._pending_sequence_ids):
            return False
        self._discovery_active = False
        self._sequences = [
            SequenceInfo(id=seq_id, name=self._pending_sequence_names[seq_id])
            if self._pending_sequence_names.get(seq_id)
            else SequenceInfo.placeholder(seq_id)
            for seq_id in self._pending_sequence_ids
        ]
        self._notify(notify, "on_sequences_updated", list(self._sequences))
        return True

    # ------------------------------------------------------------------
    # Reply handling
    # ------------------------------------------------------------------

    def _notify(self, notify: list, handler: str, *args) -> None:
        fn = getattr(self._handlers, handler)
        if fn is not None:
            notify.append(functools.partial(fn, *args))

    def _settle(self, command_id: int) -> None:
        """Remove the oldest outstanding request of this kind."""
        try:
            self._outstanding.remove(command_id)
        except ValueError:
            pass

    def _handle_frame(self, frame: Frame) -> None:
        notify: list = []
        try:
            with self._lock:
                self._dispatch(frame, notify)
        finally:
            for fn in notify:
                fn()

    def _dispatch(self, frame: Frame, notify: list) -> None:
        if frame.is_error:
            self._handle_error_reply(notify)
            return

        command_id = frame.command_id
        if command_id == CommandId.GET_SEQ_TRANSPORT_MODE:
            self._handle_transport_reply(frame, notify)
        elif command_id == CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE:
            timecode = self._codecs[command_id].decode(frame.payload)
            self._notify(notify, "on_next_cue_time", timecode)
        elif command_id == CommandId.GET_SEQUENCE_IDS:
            self._handle_sequence_ids_reply(frame, notify)
        elif command_id == CommandId.GET_SEQUENCE_NAME:
            self._handle_sequence_name_reply(frame, notify)

    def _handle_transport_reply(self, frame: Frame, notify: list) -> None:
        seq_id = None
        if self.status_request_pending:
            self._settle(CommandId.GET_SEQ_TRANSPORT_MODE)
            self.status_request_pending = False
            seq_id = self.current_status_request_id

        try:
            state = self._codecs[CommandId.GET_SEQ_TRANSPORT_MODE].decode(frame.payload)
        except FrameError:
            if seq_id is not None:
                self._process_status_queue()
            raise

        if seq_id is None:
            self._notify(notify, "on_transport", state)
            return

        self._sequence_states[seq_id] = state
        conn = self._sequence_connections.get(seq_id)
        if conn is not None:
            conn.update_state(state)
        self._notify(notify, "on_sequence_transport", seq_id, state)
        self._process_status_queue()

    def _handle_sequence_ids_reply(self, frame: Frame, notify: list) -> None:
        ids = list(dict.fromkeys(self._codecs[CommandId.GET_SEQUENCE_IDS].decode(frame.payload)))
        self._pending_sequence_ids = list(ids)
        self._pending_sequence_names = {}
        self._sequence_name_queue = deque(ids)
        self._discovery_active = True
        if not self._check_discovery_complete(notify):
            self._process_sequence_name_queue()

    def _handle_sequence_name_reply(self, frame: Frame, notify: list) -> None:
        seq_id = self.current_sequence_name_id
        if seq_id is None:
            return
        self._settle(CommandId.GET_SEQUENCE_NAME)
        self.current_sequence_name_id = None

        try:
            name = self._codecs[CommandId.GET_SEQUENCE_NAME].decode(frame.payload)
        except FrameError as e:
            self._debug(f"unreadable name for sequence {seq_id}: {e}")
            self._pending_sequence_ids = [i for i in self._pending_sequence_ids if i != seq_id]
        else:
            if seq_id in self._pending_sequence_ids:
                self._pending_sequence_names[seq_id] = name

        if not self._check_discovery_complete(notify):
            self._process_sequence_name_queue()

    def _handle_error_reply(self, notify: list) -> None:
        kind = self._outstanding.popleft() if self._outstanding else None

        if kind == CommandId.GET_SEQ_TRANSPORT_MODE and self.status_request_pending:
            invalid_id = self.current_status_request_id
            self.status_request_pending = False
            self._debug(f"server rejected status request for sequence {invalid_id}; no longer polled")
            self._retire_sequence(invalid_id)
            self._process_status_queue()
        elif kind == CommandId.GET_SEQUENCE_NAME and self.current_sequence_name_id is not None:
            invalid_id = self.current_sequence_name_id
            self.current_sequence_name_id = None
            self._debug(f"server rejected name request for sequence {invalid_id}; dropped from discovery")
            self._pending_sequence_ids = [i for i in self._pending_sequence_ids if i != invalid_id]
            if not self._check_discovery_complete(notify):
                self._process_sequence_name_queue()
        else:
            self._debug("error reply with no outstanding request")
