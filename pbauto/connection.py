"""Socket lifecycle shared by the control and timecode connections."""

import logging
import socket
import threading

from .constants import DEFAULT_PORT
from .errors import FrameError, TransportError
from .frames import Frame, FrameBuffer, pack_frame, parse_frame

logger = logging.getLogger(__name__)

RECV_BYTES = 4096


class Connection:
    """One TCP connection to an automation server.

    A reader thread feeds inbound bytes through a FrameBuffer and hands every
    frame for the configured domain to ``_handle_frame``. Sends are
    fire-and-forget: a send while disconnected or mid-connect does nothing.
    A socket error tears the connection down; nothing reconnects it.
    """

    def __init__(self, host: str, domain: int, port: int = DEFAULT_PORT, connect_timeout: float = 5.0):
        """Initialize connection.

        Args:
            host: Server hostname or IP
            domain: Domain the server is configured for
            port: Server port
            connect_timeout: Seconds to wait for the TCP connect
        """
        self.host = host
        self.domain = domain
        self.port = port
        self.connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._connecting = False
        self._closing = False
        self._retired = False
        self._reader: threading.Thread | None = None
        self._lock = threading.RLock()
        self._send_lock = threading.Lock()

    @property
    def name(self) -> str:
        return f"{type(self).__name__}[{self.host}:{self.port}]"

    @property
    def connected(self) -> bool:
        return self._sock is not None and not self._connecting

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the socket and start reading. Does nothing if already open or retired.

        Raises:
            TransportError: If the TCP connect fails
        """
        with self._lock:
            if self._retired or self._sock is not None or self._connecting:
                return
            self._connecting = True
            self._closing = False

        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
        except OSError as e:
            with self._lock:
                self._connecting = False
            self._on_transport_error(e)
            raise TransportError(f"{self.name}: connect failed: {e}") from e

        sock.settimeout(None)
        with self._lock:
            self._connecting = False
            if self._closing:
                # disconnect() raced the connect
                _close_socket(sock)
                return
            self._sock = sock
            self._reader = threading.Thread(
                target=self._read_loop, args=(sock,), name=f"{self.name}-reader", daemon=True
            )
            self._reader.start()
        logger.info("%s connected", self.name)
        self._on_connected()

    def disconnect(self) -> None:
        """Stop polling and close the socket."""
        with self._lock:
            sock = self._sock
            self._sock = None
            self._closing = True
        self._on_closed()
        if sock is not None:
            _close_socket(sock)
            logger.info("%s disconnected", self.name)

    def _drop(self, sock: socket.socket) -> None:
        """Invalidate the connection after a socket error or peer close."""
        with self._lock:
            if self._sock is not sock:
                return
            self._sock = None
        self._on_closed()
        _close_socket(sock)

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def _send(self, command_id: int, *parts: bytes) -> bool:
        """Send one command. Returns False when there is no open connection.

        Raises:
            TransportError: If the write fails; the connection is dropped first
        """
        sock = self._sock
        if sock is None or self._connecting:
            return False
        data = pack_frame(self.domain, command_id, *parts)
        try:
            with self._send_lock:
                sock.sendall(data)
        except OSError as e:
            if self._closing or self._sock is not sock:
                # cancelled while the write was in flight
                return False
            self._on_transport_error(e)
            self._drop(sock)
            raise TransportError(f"{self.name}: send failed: {e}") from e
        return True

    def _read_loop(self, sock: socket.socket) -> None:
        buffer = FrameBuffer()
        try:
            while True:
                data = sock.recv(RECV_BYTES)
                if not data:
                    break
                for raw in buffer.feed(data):
                    self._handle_raw(raw)
        except OSError as e:
            if not self._closing and self._sock is sock:
                self._on_transport_error(e)
        finally:
            self._drop(sock)

    def _handle_raw(self, raw: bytes) -> None:
        try:
            frame = parse_frame(raw, self.domain)
            self._handle_frame(frame)
        except FrameError as e:
            self._debug(f"dropped frame: {e}")
        except TransportError as e:
            self._debug(f"send from reply handler failed: {e}")
        except Exception:
            logger.exception("%s: error handling frame", self.name)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _handle_frame(self, frame: Frame) -> None:
        pass

    def _on_connected(self) -> None:
        pass

    def _on_closed(self) -> None:
        pass

    def _on_transport_error(self, exc: Exception) -> None:
        self._debug(f"transport error: {exc}")

    def _debug(self, message: str) -> None:
        logger.debug("%s: %s", self.name, message)


def _close_socket(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    finally:
        sock.close()
