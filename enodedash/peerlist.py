#!/usr/bin/env python3
"""
ENODE-DASH - Peer List Display
Live table of peers announced by the node's peer feed
Rows appear as events arrive - geo lookups are local, no API calls
"""

import logging
import os
import signal
import sys
import threading
import time
from datetime import datetime
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from . import __version__
from .config import Config, ConfigError, load_config
from .errors import EnodeDashError
from .geo import GEO_OK, GeoResolver
from .ingest import IngestionLoop, SessionState
from .registry import PeerRegistry
from .stream import PeerStreamClient
from .table import (STYLE_BORDER, STYLE_DIM, STYLE_ERROR, STYLE_HEADER, STYLE_SUCCESS,
                    TableAdapter, truncate_identifier)

# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

REFRESH_PER_SECOND = 4
REDRAW_WAIT = 0.1      # Seconds between key/stop-flag polls when idle
RECENT_WINDOW = 20     # Seconds a new peer stays in the recent panel
RECENT_MAX = 8

STYLE_NEW = "bold green"

console = Console()

logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """File logging when configured, otherwise only errors to stderr"""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.log_file:
        handler = logging.FileHandler(config.log_file)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"))
        level = getattr(logging, config.log_level, logging.WARNING)
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        level = logging.ERROR

    root.addHandler(handler)
    root.setLevel(level)


def exit_code_for(state: SessionState, interrupted: bool) -> int:
    """0 only for an interrupt or quit key; a feed close or fault -> 1"""
    if state == SessionState.FAULTED:
        return 1
    return 0 if interrupted else 1


# ═══════════════════════════════════════════════════════════════════════════════
# LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════════

class Dashboard:
    """Wires the ingestion thread to the render loop and to shutdown"""

    def __init__(self, config: Config, resolver: GeoResolver, client,
                 console: Console = console):
        self.config = config
        self.resolver = resolver
        self.console = console

        self.registry = PeerRegistry()
        self.adapter = TableAdapter(self.registry)
        self.loop = IngestionLoop(
            client, resolver, self.registry,
            on_apply=self._on_apply,
            on_exit=self._on_exit,
        )

        # Set by the signal handler or by the ingestion thread exiting
        self.stop_flag = threading.Event()
        # Set after each appended row, wakes the render loop
        self.redraw = threading.Event()
        self.interrupted = False

        self.offset = 0
        self.follow = True

    def _on_apply(self, row_id: int):
        self.redraw.set()

    def _on_exit(self, loop: IngestionLoop):
        self.stop_flag.set()
        self.redraw.set()

    def request_stop(self):
        self.interrupted = True
        self.stop_flag.set()
        self.redraw.set()

    def start(self):
        """Connect, subscribe, start ingesting. Raises on startup failure."""
        self.loop.open()
        self.loop.start()

    def shutdown(self) -> int:
        self.stop_flag.set()
        self.loop.stop()
        logger.info("Session ended: %s, %d peers", self.loop.state.value, self.registry.count())
        return exit_code_for(self.loop.state, self.interrupted)

    # ───────────────────────────────────────────────────────────────────────────
    # Keys
    # ───────────────────────────────────────────────────────────────────────────

    def handle_key(self, key: str, page_rows: int) -> bool:
        """Returns False when the key asks to quit"""
        count = self.registry.count()
        last_page = max(0, count - page_rows)

        if key in ('q', 'Q'):
            return False
        if key == 'j':
            self.offset = min(self._first_row(page_rows) + 1, last_page)
            self.follow = self.offset >= last_page
        elif key == 'k':
            self.offset = max(0, self._first_row(page_rows) - 1)
            self.follow = False
        elif key == 'g':
            self.offset = 0
            self.follow = False
        elif key == 'G':
            self.follow = True
        return True

    def _first_row(self, page_rows: int) -> int:
        if self.follow:
            return max(0, self.registry.count() - page_rows)
        return self.offset

    # ───────────────────────────────────────────────────────────────────────────
    # Display
    # ───────────────────────────────────────────────────────────────────────────

    def create_recent_panel(self) -> Panel:
        """Peers first seen within the recent window"""
        now = time.time()
        recent = [p for p in self.registry.tail(RECENT_MAX)
                  if now - p.first_seen < RECENT_WINDOW]

        if not recent:
            content = Text(f"No new peers in last {RECENT_WINDOW}s", style=STYLE_DIM)
        else:
            lines = []
            for peer in recent:
                time_str = datetime.fromtimestamp(peer.first_seen).strftime('%H:%M:%S')
                lines.append(Text(
                    f"+ {peer.remote_address} ({peer.location}) "
                    f"{truncate_identifier(peer.identifier)} [{time_str}]",
                    style=STYLE_NEW,
                ))
            content = Text("\n").join(lines)

        return Panel(
            content,
            title=f"New Peers (last {RECENT_WINDOW}s)",
            border_style=STYLE_BORDER,
            padding=(0, 1),
            height=min(len(recent) + 2, RECENT_MAX + 2) if recent else 3,
        )

    def create_display(self, term_height: int) -> Group:
        parts = []
        page_rows = page_size(term_height)

        state = self.loop.state
        state_style = STYLE_ERROR if state == SessionState.FAULTED else STYLE_SUCCESS

        header_text = Text()
        header_text.append("═" * 96 + "\n", style=STYLE_HEADER)
        header_text.append(f"  ENODE-DASH Peer Feed v{__version__}", style=STYLE_HEADER)
        header_text.append("   ")
        header_text.append(state.value, style=state_style)
        header_text.append(f" {self.loop.client.endpoint}", style=STYLE_DIM)
        header_text.append("   q quit | j/k scroll | g/G top/follow\n", style=STYLE_DIM)
        header_text.append("═" * 96, style=STYLE_HEADER)
        parts.append(header_text)

        count = self.registry.count()
        parts.append(Text(f"\nPeers seen: {count}\n", style="bold cyan"))

        if count:
            parts.append(self.adapter.build_table(self._first_row(page_rows), page_rows))
        else:
            parts.append(Text("Waiting for peer events...", style=STYLE_DIM))

        peers = self.registry.snapshot()
        located = sum(1 for p in peers if p.geo_status == GEO_OK)
        stats_text = Text(
            f"\nGeo: {located} located | {len(peers) - located} unknown | "
            f"Feed: {self.loop.received} frames, {self.loop.dropped} dropped\n",
            style=STYLE_DIM,
        )
        parts.append(stats_text)

        parts.append(self.create_recent_panel())

        now = datetime.now().strftime('%H:%M:%S')
        parts.append(Text(f"Updated: {now}", style=STYLE_DIM))

        return Group(*parts)

    # ───────────────────────────────────────────────────────────────────────────
    # Render loop
    # ───────────────────────────────────────────────────────────────────────────

    def run(self) -> int:
        """Paint until interrupted, quit, or the session ends. Returns exit code."""
        interactive = sys.stdin.isatty()
        old_settings = None

        if interactive:
            import select
            import termios
            import tty
            old_settings = termios.tcgetattr(sys.stdin)

        try:
            if interactive:
                tty.setcbreak(sys.stdin.fileno())

            with Live(console=self.console, refresh_per_second=REFRESH_PER_SECOND,
                      screen=True) as live:
                while not self.stop_flag.is_set():
                    term_height = self.console.size.height

                    if interactive and select.select([sys.stdin], [], [], 0)[0]:
                        key = sys.stdin.read(1)
                        if not self.handle_key(key, page_size(term_height)):
                            self.interrupted = True
                            break

                    live.update(self.create_display(term_height))

                    self.redraw.wait(REDRAW_WAIT)
                    self.redraw.clear()
        finally:
            code = self.shutdown()
            if old_settings is not None:
                termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)

        return code


def page_size(term_height: int) -> int:
    # Header (4) + count (2) + table header (1) + stats (3) + panel (<=10) + footer
    return max(5, term_height - 20)


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════════

def main(argv: Optional[list] = None):
    try:
        config = load_config(argv)
    except ConfigError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(1)

    setup_logging(config)

    try:
        resolver = GeoResolver.open(config.mmdb)
    except EnodeDashError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(1)

    dashboard = Dashboard(config, resolver, PeerStreamClient(config.endpoint), console=console)

    # Signal handler for graceful exit, second Ctrl+C forces it
    shutdown_count = [0]

    def signal_handler(signum, frame):
        shutdown_count[0] += 1
        dashboard.request_stop()
        if shutdown_count[0] >= 2:
            os._exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    console.print(f"[bold cyan]Connecting to {escape(config.endpoint)}...[/]")
    try:
        dashboard.start()
    except EnodeDashError as e:
        resolver.close()
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(1)

    try:
        code = dashboard.run()
    finally:
        resolver.close()

    if code:
        console.print(f"[red]Error:[/] {escape(dashboard.loop.error or 'peer feed failed')}")
    else:
        console.print(f"\n[green]Peer list closed[/] ({dashboard.registry.count()} peers seen)")
    sys.exit(code)


if __name__ == "__main__":
    main()
