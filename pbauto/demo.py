#!/usr/bin/env python3
"""Demo: discover sequences, watch them and render a live status table."""

import argparse
import logging
import threading
import time

from rich import box
from rich.console import Console
from rich.live import Live
from rich.table import Table

from . import Client, DeviceConfig, EmulatedSequence, PollHandlers, Server, Timecode, TransportMode


class _Board:
    """Latest values reported by the client, keyed by sequence ID."""

    def __init__(self):
        self.lock = threading.Lock()
        self.names: dict[int, str] = {}
        self.states: dict[int, str] = {}
        self.times: dict[int, Timecode] = {}
        self.discovered = threading.Event()

    def handlers(self) -> PollHandlers:
        def on_sequences(sequences):
            with self.lock:
                self.names = {s.id: s.name for s in sequences}
            self.discovered.set()

        def on_state(seq_id, state):
            with self.lock:
                self.states[seq_id] = state.value

        def on_time(seq_id, timecode):
            with self.lock:
                self.times[seq_id] = timecode

        return PollHandlers(
            on_sequences_updated=on_sequences,
            on_sequence_transport=on_state,
            on_sequence_time=on_time,
            on_error=lambda exc: logging.error("Transport error: %s", exc),
        )

    def render(self) -> Table:
        table = Table(title="Pandoras Box sequences", box=box.SIMPLE_HEAVY)
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("State")
        table.add_column("Time", justify="right")
        with self.lock:
            for seq_id, name in self.names.items():
                table.add_row(
                    str(seq_id),
                    name,
                    self.states.get(seq_id, "Unknown"),
                    str(self.times.get(seq_id, Timecode())),
                )
        return table


def _start_emulator(domain: int) -> Server:
    server = Server(
        domain=domain,
        sequences={
            1: EmulatedSequence("Opening", mode=TransportMode.PLAY, time=Timecode(minutes=1, seconds=12, frames=5)),
            2: EmulatedSequence("Act 1", time=Timecode(seconds=30)),
            5: EmulatedSequence("Finale", mode=TransportMode.PAUSE, remaining=Timecode(seconds=8)),
        },
    )
    return server.start()


def run_demo(config: DeviceConfig, duration: float, emulate: bool) -> None:
    """Connect, discover, watch every sequence for ``duration`` seconds."""
    console = Console()
    server = None
    if emulate:
        server = _start_emulator(config.domain)
        config = config.model_copy(update={"host": server.host, "port": server.port})
        console.print(f"Emulator listening on {server.host}:{server.port}")

    board = _Board()
    client = Client.from_config(config, board.handlers())
    try:
        client.connect()
        client.refresh_sequences()
        if not board.discovered.wait(5.0):
            console.print("[red]No sequence list received[/red]")
            return
        client.set_poll_sequences(list(board.names))

        deadline = time.monotonic() + duration
        with Live(board.render(), console=console, refresh_per_second=10) as live:
            while time.monotonic() < deadline:
                time.sleep(0.1)
                live.update(board.render())
    finally:
        client.disconnect()
        if server is not None:
            server.stop()


def main():
    """Main entry point for the demo."""
    parser = argparse.ArgumentParser(description="PandorasAutomation client demo")
    parser.add_argument("--host", default="127.0.0.1", help="Server host")
    parser.add_argument("--domain", default="0", help="Server domain")
    parser.add_argument("--port", type=int, default=None, help="Server port")
    parser.add_argument("--duration", type=float, default=5.0, help="Seconds to watch")
    parser.add_argument("--emulate", action="store_true", help="Run against a local emulator")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    options = {"host": args.host, "domain": args.domain}
    if args.port is not None:
        options["port"] = args.port
    run_demo(DeviceConfig(**options), args.duration, args.emulate)


if __name__ == "__main__":
    main()
