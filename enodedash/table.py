"""
ENODE-DASH - Table Adapter
Read-only (row, column) -> cell view over the peer registry
"""

from enum import IntEnum
from typing import Optional

from rich.style import Style
from rich.table import Table
from rich.text import Text

from .geo import GEO_OK, GEO_PRIVATE
from .registry import Peer, PeerNotFound, PeerRegistry

# ═══════════════════════════════════════════════════════════════════════════════
# STYLES
# ═══════════════════════════════════════════════════════════════════════════════

STYLE_HEADER = Style(color="dodger_blue1", bold=True)
STYLE_BORDER = Style(color="steel_blue")
STYLE_DIM = Style(color="grey70")
STYLE_SUCCESS = Style(color="green")
STYLE_WARN = Style(color="yellow")
STYLE_ERROR = Style(color="red")

IDENTIFIER_DISPLAY_LEN = 20
ELLIPSIS = "…"


class Column(IntEnum):
    ADDRESS = 0
    LOCATION = 1
    STATUS = 2
    IDENTIFIER = 3


COLUMN_TITLES = {
    Column.ADDRESS: "Remote",
    Column.LOCATION: "Location",
    Column.STATUS: "Status",
    Column.IDENTIFIER: "Enode",
}


def truncate_identifier(identifier: str) -> str:
    """First 20 chars plus an ellipsis; shorter identifiers pass through"""
    if len(identifier) < IDENTIFIER_DISPLAY_LEN:
        return identifier
    return identifier[:IDENTIFIER_DISPLAY_LEN] + ELLIPSIS


def location_style(peer: Peer) -> Optional[Style]:
    if peer.geo_status == GEO_OK:
        return None
    if peer.geo_status == GEO_PRIVATE:
        return STYLE_WARN
    return STYLE_DIM


class TableAdapter:
    """Projection of the registry for the renderer. Never mutates it."""

    def __init__(self, registry: PeerRegistry):
        self._registry = registry

    def row_count(self) -> int:
        return self._registry.count()

    def column_count(self) -> int:
        return len(Column)

    def cell(self, row: int, column: int) -> Optional[Text]:
        """Display value, or None when (row, column) is outside the table"""
        if column < 0 or column >= len(Column):
            return None
        try:
            peer = self._registry.get(row)
        except PeerNotFound:
            return None
        return self.render_cell(peer, Column(column))

    @staticmethod
    def render_cell(peer: Peer, column: Column) -> Text:
        if column == Column.ADDRESS:
            return Text(peer.remote_address)
        if column == Column.LOCATION:
            return Text(peer.location, style=location_style(peer) or "")
        if column == Column.STATUS:
            if peer.active:
                return Text("active", style=STYLE_SUCCESS)
            return Text("inactive", style=STYLE_ERROR)
        return Text(truncate_identifier(peer.identifier))

    def build_table(self, first_row: int, max_rows: int) -> Table:
        """Rich table for rows [first_row, first_row + max_rows)"""
        table = Table(
            show_header=True,
            header_style=STYLE_HEADER,
            border_style=STYLE_BORDER,
            expand=True,
            box=None,
        )

        table.add_column("#", style="white", width=6)
        table.add_column(COLUMN_TITLES[Column.ADDRESS], style="white", width=22)
        table.add_column(COLUMN_TITLES[Column.LOCATION], style="white", width=28)
        table.add_column(COLUMN_TITLES[Column.STATUS], style="white", width=8)
        table.add_column(COLUMN_TITLES[Column.IDENTIFIER], style="white", width=22)

        # One consistent view of the rows for this frame
        peers = self._registry.snapshot()
        first_row = max(0, min(first_row, len(peers) - 1))
        window = peers[first_row:first_row + max(0, max_rows)]

        for peer in window:
            table.add_row(
                str(peer.row_id),
                *(self.render_cell(peer, column) for column in Column),
            )

        hidden = len(peers) - (first_row + len(window))
        if hidden > 0:
            table.add_row(
                "", "",
                Text(f"... and {hidden} more peers", style=STYLE_DIM),
                "", "",
            )

        return table
