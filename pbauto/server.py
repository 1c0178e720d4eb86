"""In-process PandorasAutomation server emulator for tests and demos."""
import logging
import socket
import struct
import threading
from dataclasses import dataclass, field

from .codecs import SequenceIdCodec, get_codec
from .constants import CommandId, TransportMode, TransportState
from .errors import FrameError
from .frames import Frame, pack_frame, parse_frame, recv_frame
from .models import Timecode

logger = logging.getLogger(__name__)


@dataclass
class EmulatedSequence:
    """Server-side state of one sequence."""

    name: str
    mode: int = TransportMode.STOP
    time: Timecode = field(default_factory=Timecode)
    remaining: Timecode = field(default_factory=Timecode)
    name_error: bool = False  # answer name requests with the error sentinel


class _ClientHandler(threading.Thread):
    """Handle a single client connection."""

    def __init__(self, server: "Server", sock: socket.socket, addr):
        """Initialize client handler.

        Args:
            server: Owning server (sequence table and request log)
            sock: Client socket
            addr: Client address
        """
        super().__init__(daemon=True)
        self.server = server
        self.sock = sock
        self.addr = addr

    def run(self):
        """Handle client connection."""
        try:
            self._serve()
        except Exception as exc:
            logger.debug("Client %s closed: %s", self.addr, exc)
        finally:
            self.sock.close()
            self.server._forget(self)

    def _serve(self):
        while True:
            try:
                raw = recv_frame(self.sock)
            except FrameError as e:
                logger.debug("Client %s sent garbage: %s", self.addr, e)
                continue
            except (ConnectionError, OSError):
                break
            try:
                frame = parse_frame(raw, self.server.domain)
            except FrameError as e:
                logger.debug("Client %s frame dropped: %s", self.addr, e)
                continue
            self.server._record(frame)
            response = self.server.handle_frame(frame)
            if response is not None:
                self.sock.sendall(response)


class Server:
    """Threaded server that answers automation requests from a sequence table.

    Unknown sequence IDs are answered with the error sentinel, as the real
    server does. Every received frame is kept in ``received`` for inspection.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        domain: int = 0,
        sequences: dict[int, EmulatedSequence] | None = None,
    ):
        """Initialize server.

        Args:
            host: Host to bind to
            port: Port to bind to; 0 picks a free port, see ``port`` once listening
            domain: Domain this server answers for
            sequences: Sequence table keyed by ID, in discovery order
        """
        self.host = host
        self.port = port
        self.domain = domain
        self.sequences: dict[int, EmulatedSequence] = dict(sequences or {})
        self.received: list[Frame] = []
        self._sock: socket.socket | None = None
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._clients: list[_ClientHandler] = []
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def handle_frame(self, frame: Frame) -> bytes | None:
        """Build the reply for a request, or None for commands without one."""
        command_id = frame.command_id
        if command_id == CommandId.GET_SEQUENCE_IDS:
            return self.reply(command_id, list(self.sequences))

        if command_id == CommandId.SET_SEQ_TRANSPORT_MODE:
            seq_id, mode = struct.unpack_from(">ii", frame.payload)
            if seq_id in self.sequences:
                self.sequences[seq_id].mode = mode
            return None

        if command_id not in (
            CommandId.GET_SEQ_TRANSPORT_MODE,
            CommandId.GET_SEQ_TIME,
            CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE,
            CommandId.GET_SEQUENCE_NAME,
        ):
            return None

        seq = self.sequences.get(SequenceIdCodec().decode(frame.payload))
        if seq is None:
            return self.error_reply()
        if command_id == CommandId.GET_SEQ_TRANSPORT_MODE:
            return self.reply(command_id, seq.mode)
        if command_id == CommandId.GET_SEQ_TIME:
            return self.reply(command_id, seq.time)
        if command_id == CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE:
            return self.reply(command_id, seq.remaining)
        if seq.name_error:
            return self.error_reply()
        return self.reply(command_id, seq.name)

    def reply(self, command_id: int, data) -> bytes:
        """Encode a reply with the command's registered codec."""
        return pack_frame(self.domain, command_id, get_codec(command_id).encode(data))

    def error_reply(self) -> bytes:
        return pack_frame(self.domain, CommandId.ERROR)

    def set_state(self, seq_id: int, state: TransportState) -> None:
        self.sequences[seq_id].mode = state.to_wire()

    def requests(self, command_id: int) -> list[Frame]:
        """Received frames for one command, in arrival order."""
        with self._lock:
            return [f for f in self.received if f.command_id == command_id]

    def _record(self, frame: Frame) -> None:
        with self._lock:
            self.received.append(frame)

    def _forget(self, handler: _ClientHandler) -> None:
        with self._lock:
            if handler in self._clients:
                self._clients.remove(handler)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def serve_forever(self):
        """Start the server and handle connections."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as srv:
            srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            srv.bind((self.host, self.port))
            srv.listen()
            self._sock = srv
            self.port = srv.getsockname()[1]
            self._running.set()

            logger.info("Automation emulator listening on %s:%d (domain %d)", self.host, self.port, self.domain)

            while self._running.is_set():
                try:
                    cli_sock, addr = srv.accept()
                except OSError:
                    break  # socket closed
                handler = _ClientHandler(self, cli_sock, addr)
                with self._lock:
                    self._clients.append(handler)
                handler.start()

    def start(self, timeout: float = 5.0) -> "Server":
        """Serve on a background thread and wait until listening."""
        self._thread = threading.Thread(target=self.serve_forever, name="pbauto-emulator", daemon=True)
        self._thread.start()
        if not self._running.wait(timeout):
            raise RuntimeError("Emulator did not start listening")
        return self

    def stop(self):
        """Stop the server and close every client connection."""
        self._running.clear()
        if self._sock:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
        with self._lock:
            clients = list(self._clients)
        for handler in clients:
            try:
                handler.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        if self._thread is not None:
            self._thread.join(timeout=1.0)

    def __enter__(self) -> "Server":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()
