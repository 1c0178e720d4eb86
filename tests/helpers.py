"""Helpers shared by the pbauto tests."""

import socket
import threading
import time

import pytest

from pbauto import PollHandlers, get_codec, pack_frame, parse_frame
from pbauto.constants import CommandId
from pbauto.frames import Frame, recv_frame

DOMAIN = 7


class Recorder:
    """Collects every consumer callback as (kind, *args) tuples."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[tuple] = []

    def _add(self, *event) -> None:
        with self._lock:
            self.events.append(event)

    def of(self, kind: str) -> list[tuple]:
        with self._lock:
            return [e[1:] for e in self.events if e[0] == kind]

    def handlers(self) -> PollHandlers:
        return PollHandlers(
            on_sequence_time=lambda seq_id, tc: self._add("sequence_time", seq_id, tc),
            on_next_cue_time=lambda tc: self._add("next_cue_time", tc),
            on_transport=lambda state: self._add("transport", state),
            on_sequence_transport=lambda seq_id, state: self._add("sequence_transport", seq_id, state),
            on_sequences_updated=lambda seqs: self._add("sequences", seqs),
            on_error=lambda exc: self._add("error", exc),
            on_debug=lambda msg: self._add("debug", msg),
        )

    @property
    def callbacks(self) -> list[tuple]:
        """Every event except debug traces."""
        with self._lock:
            return [e for e in self.events if e[0] != "debug"]


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def reply(command_id: int, data=None, domain: int = DOMAIN) -> bytes:
    """Encode a server reply with the command's codec."""
    if data is None:
        return pack_frame(domain, command_id)
    return pack_frame(domain, command_id, get_codec(command_id).encode(data))


def error_reply(domain: int = DOMAIN) -> bytes:
    return pack_frame(domain, CommandId.ERROR)


def read_request(sock: socket.socket) -> Frame:
    return parse_frame(recv_frame(sock), DOMAIN)


def assert_no_request(sock: socket.socket, wait: float = 0.1) -> None:
    """Fail if the client has sent anything else."""
    previous = sock.gettimeout()
    sock.settimeout(wait)
    try:
        with pytest.raises(TimeoutError):
            sock.recv(1)
    finally:
        sock.settimeout(previous)
