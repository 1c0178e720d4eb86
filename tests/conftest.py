"""Shared fixtures for pbauto tests."""

import socket

import pytest

from pbauto import Client, Server

from .helpers import DOMAIN, Recorder, free_port


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def wired_client(recorder):
    """A client whose socket is one end of a socketpair.

    No reader thread runs: tests inject replies with ``client._handle_raw``
    and read the client's requests from the peer socket.
    """
    ours, theirs = socket.socketpair()
    theirs.settimeout(2.0)
    # nothing listens on the timecode port, so those connects fail fast
    client = Client("127.0.0.1", DOMAIN, handlers=recorder.handlers(), port=free_port())
    client._sock = ours
    try:
        yield client, theirs
    finally:
        client._sock = None
        client.disconnect()
        ours.close()
        theirs.close()


@pytest.fixture
def emulator():
    server = Server(domain=DOMAIN).start()
    try:
        yield server
    finally:
        server.stop()
