"""Tests for the control connection's request pipelines.

The client's socket is one end of a socketpair: requests are read from the
other end and replies are injected straight into the frame handler.
"""

import struct

from pbauto import Client, CommandId, PollHandlers, SequenceInfo, Timecode, TransportMode, TransportState, pack_frame
from pbauto.frames import write_int

from .helpers import DOMAIN, assert_no_request, error_reply, read_request, reply


def _seq_id(frame) -> int:
    return struct.unpack_from(">i", frame.payload)[0]


def _start_discovery(client, peer, ids) -> None:
    client.refresh_sequences()
    assert read_request(peer).command_id == CommandId.GET_SEQUENCE_IDS
    client._handle_raw(reply(CommandId.GET_SEQUENCE_IDS, ids))


def _answer_name(client, peer, expected_id, name) -> None:
    request = read_request(peer)
    assert request.command_id == CommandId.GET_SEQUENCE_NAME
    assert _seq_id(request) == expected_id
    assert client.current_sequence_name_id == expected_id
    client._handle_raw(reply(CommandId.GET_SEQUENCE_NAME, name))


# ----------------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------------


def test_discovery_preserves_id_order(wired_client, recorder) -> None:
    """Test that names are requested one at a time and reported in ID order."""
    client, peer = wired_client
    _start_discovery(client, peer, [3, 7, 2])

    _answer_name(client, peer, 3, "Act 1")
    _answer_name(client, peer, 7, "Act 2")
    assert recorder.of("sequences") == []
    _answer_name(client, peer, 2, "Act 3")

    expected = [SequenceInfo(id=3, name="Act 1"), SequenceInfo(id=7, name="Act 2"), SequenceInfo(id=2, name="Act 3")]
    assert recorder.of("sequences") == [(expected,)]
    assert client.sequences == expected
    assert client.current_sequence_name_id is None
    assert_no_request(peer)


def test_discovery_error_drops_sequence(wired_client, recorder) -> None:
    """Test that an error reply removes the ID and discovery still completes."""
    client, peer = wired_client
    _start_discovery(client, peer, [3, 7, 2])

    _answer_name(client, peer, 3, "Act 1")
    request = read_request(peer)
    assert _seq_id(request) == 7
    client._handle_raw(error_reply())
    assert recorder.of("sequences") == []
    _answer_name(client, peer, 2, "Act 3")

    assert recorder.of("sequences") == [([SequenceInfo(id=3, name="Act 1"), SequenceInfo(id=2, name="Act 3")],)]


def test_discovery_error_on_last_sequence_completes(wired_client, recorder) -> None:
    client, peer = wired_client
    _start_discovery(client, peer, [4, 5])

    _answer_name(client, peer, 4, "Intro")
    assert _seq_id(read_request(peer)) == 5
    client._handle_raw(error_reply())

    assert recorder.of("sequences") == [([SequenceInfo(id=4, name="Intro")],)]


def test_empty_name_falls_back_to_label(wired_client, recorder) -> None:
    client, peer = wired_client
    _start_discovery(client, peer, [9])
    _answer_name(client, peer, 9, "")

    assert recorder.of("sequences") == [([SequenceInfo(id=9, name="Sequence 9")],)]


def test_empty_discovery_reports_empty_list(wired_client, recorder) -> None:
    client, peer = wired_client
    _start_discovery(client, peer, [])

    assert recorder.of("sequences") == [([],)]
    assert_no_request(peer)


def test_duplicate_ids_resolved_once(wired_client, recorder) -> None:
    """Test that a repeated ID is named once and discovery still completes."""
    client, peer = wired_client
    _start_discovery(client, peer, [4, 5, 4])

    _answer_name(client, peer, 4, "Intro")
    _answer_name(client, peer, 5, "Finale")

    assert recorder.of("sequences") == [([SequenceInfo(id=4, name="Intro"), SequenceInfo(id=5, name="Finale")],)]
    assert_no_request(peer)


def test_refresh_restarts_discovery(wired_client, recorder) -> None:
    client, peer = wired_client
    _start_discovery(client, peer, [1, 2])
    _answer_name(client, peer, 1, "Old")

    # name request for 2 is in flight while a new run starts
    assert _seq_id(read_request(peer)) == 2
    _start_discovery(client, peer, [8])
    assert_no_request(peer)

    # the stale reply belongs to no ID of the new run
    client._handle_raw(reply(CommandId.GET_SEQUENCE_NAME, "Stale"))
    _answer_name(client, peer, 8, "New")

    assert recorder.of("sequences") == [([SequenceInfo(id=8, name="New")],)]


def test_name_reply_without_request_ignored(wired_client, recorder) -> None:
    client, _ = wired_client
    client._handle_raw(reply(CommandId.GET_SEQUENCE_NAME, "Nobody asked"))
    assert recorder.callbacks == []


# ----------------------------------------------------------------------------
# Status polling
# ----------------------------------------------------------------------------


def test_single_outstanding_status_request(wired_client, recorder) -> None:
    """Test that a second status request waits for the first reply."""
    client, peer = wired_client
    client.set_poll_sequences([1, 2])

    client._status_tick()
    first = read_request(peer)
    assert first.command_id == CommandId.GET_SEQ_TRANSPORT_MODE
    assert _seq_id(first) == 1
    assert client.status_request_pending
    assert client.current_status_request_id == 1

    client._status_tick()
    client._process_status_queue()
    assert_no_request(peer)

    client._handle_raw(reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.PLAY))
    second = read_request(peer)
    assert _seq_id(second) == 2
    assert client.current_status_request_id == 2

    client._handle_raw(reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.STOP))
    assert not client.status_request_pending
    assert client.current_status_request_id is None
    assert_no_request(peer)

    assert recorder.of("sequence_transport") == [(1, TransportState.PLAY), (2, TransportState.STOP)]
    assert client.get_sequence_state(1) is TransportState.PLAY
    assert client.get_sequence_state(2) is TransportState.STOP
    assert client.get_sequence_state(99) is TransportState.UNKNOWN


def test_status_reply_updates_timecode_connection(wired_client) -> None:
    client, peer = wired_client
    client.set_poll_sequences([4])
    conn = client.timecode_connections[4]
    assert conn.state is TransportState.UNKNOWN

    client._status_tick()
    read_request(peer)
    client._handle_raw(reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.PLAY))

    assert conn.state is TransportState.PLAY


def test_status_queue_refills_only_when_empty(wired_client) -> None:
    client, peer = wired_client
    client.set_poll_sequences([1])

    for _ in range(2):
        client._status_tick()
        assert _seq_id(read_request(peer)) == 1
        client._handle_raw(reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.PAUSE))


def test_status_error_evicts_sequence(wired_client, recorder) -> None:
    """Test that an error reply stops polling the rejected sequence."""
    client, peer = wired_client
    client.set_poll_sequences([5, 6])

    client._status_tick()
    assert _seq_id(read_request(peer)) == 5
    client._handle_raw(error_reply())

    assert client.watched_sequences == [6]
    assert 5 not in client.timecode_connections
    assert _seq_id(read_request(peer)) == 6
    assert recorder.of("error") == []


def test_error_attributed_to_oldest_request(wired_client, recorder) -> None:
    """Test error attribution when both pipelines have a request in flight."""
    client, peer = wired_client
    _start_discovery(client, peer, [3])
    assert _seq_id(read_request(peer)) == 3

    client.set_poll_sequences([1])
    client._status_tick()
    assert read_request(peer).command_id == CommandId.GET_SEQ_TRANSPORT_MODE
    assert client.status_request_pending
    assert client.current_sequence_name_id == 3

    client._handle_raw(error_reply())

    assert recorder.of("sequences") == [([],)]
    assert client.current_sequence_name_id is None
    assert client.status_request_pending
    assert client.watched_sequences == [1]


def test_unsolicited_transport_reply(wired_client, recorder) -> None:
    client, _ = wired_client
    client._handle_raw(reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.PAUSE))
    assert recorder.of("transport") == [(TransportState.PAUSE,)]
    assert recorder.of("sequence_transport") == []


def test_next_cue_time(wired_client, recorder) -> None:
    client, peer = wired_client
    assert client.request_next_cue_time(4)
    request = read_request(peer)
    assert request.command_id == CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE
    assert _seq_id(request) == 4

    remaining = Timecode(minutes=1, seconds=5, frames=12)
    client._handle_raw(reply(CommandId.GET_REMAINING_TIME_UNTIL_NEXT_CUE, remaining))
    assert recorder.of("next_cue_time") == [(remaining,)]


# ----------------------------------------------------------------------------
# Malformed input
# ----------------------------------------------------------------------------


def test_malformed_frames_are_dropped(wired_client, recorder) -> None:
    """Test that short, bad-magic and wrong-domain frames change nothing."""
    client, peer = wired_client
    client.set_poll_sequences([1])
    client._status_tick()
    read_request(peer)

    good = reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.PLAY)
    client._handle_raw(good[:18])
    client._handle_raw(b"XXXX" + good[4:])
    client._handle_raw(reply(CommandId.GET_SEQ_TRANSPORT_MODE, TransportMode.PLAY, domain=DOMAIN + 1))

    assert recorder.callbacks == []
    assert client.status_request_pending
    dropped = [m for (m,) in recorder.of("debug") if "dropped frame" in m]
    assert len(dropped) == 3


def test_truncated_status_reply_advances_queue(wired_client, recorder) -> None:
    client, peer = wired_client
    client.set_poll_sequences([1, 2])
    client._status_tick()
    read_request(peer)

    client._handle_raw(pack_frame(DOMAIN, CommandId.GET_SEQ_TRANSPORT_MODE, b"\x00\x01"))

    assert recorder.of("sequence_transport") == []
    assert _seq_id(read_request(peer)) == 2


def test_callback_may_reenter_client(wired_client, recorder) -> None:
    client, peer = wired_client
    client.update_handlers(
        PollHandlers(on_sequences_updated=lambda seqs: client.set_poll_sequences([s.id for s in seqs]))
    )
    _start_discovery(client, peer, [6])
    _answer_name(client, peer, 6, "Loop")

    assert client.watched_sequences == [6]


# ----------------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------------


def test_command_payloads(wired_client) -> None:
    """Test the payload layout of each command."""
    client, peer = wired_client
    cases = [
        (lambda: client.set_transport(3, TransportMode.PAUSE), CommandId.SET_SEQ_TRANSPORT_MODE, write_int(3) + write_int(3)),
        (lambda: client.select_sequence(2), CommandId.SET_SEQ_SELECTION, write_int(2)),
        (lambda: client.goto_cue(4, 9), CommandId.MOVE_SEQ_TO_CUE, write_int(4) + write_int(9)),
        (lambda: client.next_or_last_cue(4, True), CommandId.MOVE_SEQ_TO_LAST_NEXT_CUE, write_int(4) + b"\x01"),
        (lambda: client.ignore_next_cue(4, False), CommandId.IGNORE_NEXT_CUE, write_int(4) + b"\x00"),
        (lambda: client.apply_view(11), CommandId.APPLY_VIEW, write_int(11)),
        (client.save_project, CommandId.SAVE_PROJECT, b""),
        (lambda: client.toggle_fullscreen(1), CommandId.TOGGLE_FULLSCREEN, write_int(1)),
        (lambda: client.set_site_ip(2, "10.0.0.5"), CommandId.SET_SITE_IP, write_int(2) + b"\x00\x0810.0.0.5"),
        (client.clear_all_active, CommandId.CLEAR_ALL_ACTIVE, b""),
        (lambda: client.store_active(5), CommandId.STORE_ACTIVE, write_int(5)),
        (lambda: client.store_active_to_beginning(5), CommandId.STORE_ACTIVE_TO_BEGINNING, write_int(5)),
        (client.reset_all, CommandId.RESET_ALL, b""),
        (lambda: client.set_sequence_smpte_mode(5, 2), CommandId.SET_SEQ_SMPTE_MODE, write_int(5) + write_int(2)),
    ]
    for send, command_id, payload in cases:
        assert send() is True
        request = read_request(peer)
        assert request.command_id == command_id
        assert request.payload == payload


def test_commands_while_disconnected_are_noops(recorder) -> None:
    client = Client("127.0.0.1", DOMAIN, handlers=recorder.handlers())
    assert client.save_project() is False
    assert client.goto_cue(1, 2) is False
    assert client.refresh_sequences() is False
    assert recorder.callbacks == []
