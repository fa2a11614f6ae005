#!/usr/bin/env python3
"""
  2D  M O F A N G
  A flat Rubik's-style puzzle for the terminal.

  A 5x5 board starts with one colour per row. Move the cursor around and
  cycle whole rows or columns of colour to scramble (or unscramble) it.

  Controls:
    arrows    move the cursor (stops at the edges)
    a         rotate the cursor's row one step left
    s         rotate the cursor's column one step up
    q         quit

  The header counts the seconds since the session started.
"""

from __future__ import annotations

import curses
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import IO, Callable, ClassVar, Sequence

import numpy as np
from numpy.typing import NDArray

from mofang_events import (
    EXIT_KEY,
    TICK_RATE,
    ChannelClosed,
    CursesKeySource,
    EventsConfig,
    Events,
    Input,
)

# ── Palette ─────────────────────────────────────────────────────────────
# One colour per starting row, top to bottom.


class Color(IntEnum):
    RED = 0
    YELLOW = 1
    BLUE = 2
    GREEN = 3
    CYAN = 4


PALETTE: tuple[Color, ...] = tuple(Color)

CURSES_COLORS: dict[Color, int] = {
    Color.RED: curses.COLOR_RED,
    Color.YELLOW: curses.COLOR_YELLOW,
    Color.BLUE: curses.COLOR_BLUE,
    Color.GREEN: curses.COLOR_GREEN,
    Color.CYAN: curses.COLOR_CYAN,
}

# ── Board ───────────────────────────────────────────────────────────────
GRID_SIZE: int = 5

# ── Screen ──────────────────────────────────────────────────────────────
TITLE = "2D Mofang game"
OUTER_SPLIT: tuple[int, ...] = (10, 80, 10)   # percent, header / board / footer
INNER_SPLIT: tuple[int, ...] = (10, 80, 10)   # percent, margin / content / margin

# Cell titles: on the cursor's row and column, row only, column only
MARK_BOTH = "|--"
MARK_ROW = "--"
MARK_COL = "|"

# Rounded outer frame, square cell frames
ROUND_BOX = ("╭", "╮", "╰", "╯", "─", "│")
SQUARE_BOX = ("┌", "┐", "└", "┘", "─", "│")


# ═══════════════════════════════════════════════════════════════════════
#  Errors
# ═══════════════════════════════════════════════════════════════════════

class TerminalInitError(RuntimeError):
    """The terminal could not be put into full-screen mode."""


class IndexOutOfRange(IndexError):
    """A row or column index outside the board."""


# ═══════════════════════════════════════════════════════════════════════
#  The board
# ═══════════════════════════════════════════════════════════════════════

class Direction(Enum):
    UP = (-1, 0)
    DOWN = (1, 0)
    LEFT = (0, -1)
    RIGHT = (0, 1)


@dataclass(frozen=True, eq=False)
class GridSnapshot:
    """Read-only copy of the board and cursor, handed to the renderer."""
    colors: NDArray[np.int8]
    cursor_row: int
    cursor_col: int

    @property
    def size(self) -> int:
        return int(self.colors.shape[0])

    @property
    def cursor(self) -> tuple[int, int]:
        return self.cursor_row, self.cursor_col

    def color_at(self, row: int, col: int) -> Color:
        return Color(int(self.colors[row, col]))

    def rows(self) -> tuple[tuple[Color, ...], ...]:
        return tuple(tuple(Color(int(c)) for c in row) for row in self.colors)


class MofangGrid:
    """
    The colour board and its cursor.

    Colours are stored as palette indices in an int8 matrix. Rotations are
    cyclic shifts by one (np.roll), so every line keeps exactly the colours
    it had and N rotations of the same line restore it.
    """

    def __init__(self, size: int = GRID_SIZE, palette: Sequence[Color] = PALETTE) -> None:
        if size < 1:
            raise ValueError(f"grid size must be at least 1, got {size}")
        if not palette:
            raise ValueError("palette must not be empty")
        self.size: int = size
        self.colors: NDArray[np.int8] = np.empty((size, size), dtype=np.int8)
        for i in range(size):
            self.colors[i, :] = int(palette[i % len(palette)])
        self.cursor_row: int = 0
        self.cursor_col: int = 0

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[Color]]) -> MofangGrid:
        size = len(rows)
        if size == 0 or any(len(r) != size for r in rows):
            raise ValueError("rows must form a non-empty square matrix")
        grid = cls(size)
        grid.colors[:, :] = np.array(
            [[int(Color(c)) for c in r] for r in rows], dtype=np.int8
        )
        return grid

    @property
    def cursor(self) -> tuple[int, int]:
        return self.cursor_row, self.cursor_col

    # ── Cursor ──────────────────────────────────────────────────────

    def move_cursor(self, direction: Direction) -> tuple[int, int]:
        """Step the cursor one cell, stopping at the board edge."""
        dy, dx = direction.value
        last = self.size - 1
        self.cursor_row = max(0, min(self.cursor_row + dy, last))
        self.cursor_col = max(0, min(self.cursor_col + dx, last))
        return self.cursor

    # ── Rotations ───────────────────────────────────────────────────

    def _check_index(self, idx: int, what: str) -> None:
        if not 0 <= idx < self.size:
            raise IndexOutOfRange(f"{what} {idx} outside [0, {self.size})")

    def rotate_row(self, row_idx: int) -> None:
        """Shift a row one step left; the first colour wraps to the end."""
        self._check_index(row_idx, "row")
        self.colors[row_idx, :] = np.roll(self.colors[row_idx, :], -1)

    def rotate_col(self, col_idx: int) -> None:
        """Shift a column one step up; the top colour wraps to the bottom."""
        self._check_index(col_idx, "column")
        self.colors[:, col_idx] = np.roll(self.colors[:, col_idx], -1)

    def rotate_current_row(self) -> None:
        self.rotate_row(self.cursor_row)

    def rotate_current_col(self) -> None:
        self.rotate_col(self.cursor_col)

    # ── Rendering view ──────────────────────────────────────────────

    def snapshot(self) -> GridSnapshot:
        colors = self.colors.copy()
        colors.flags.writeable = False
        return GridSnapshot(colors, self.cursor_row, self.cursor_col)


# ── Key bindings ────────────────────────────────────────────────────────
MOVE_KEYS: dict[str, Direction] = {
    "up": Direction.UP,
    "down": Direction.DOWN,
    "left": Direction.LEFT,
    "right": Direction.RIGHT,
}
ROTATE_ROW_KEY = "a"
ROTATE_COL_KEY = "s"


def handle_key(grid: MofangGrid, key: str, exit_key: str = EXIT_KEY) -> bool:
    """Apply one key press to the board. Returns False when it means quit."""
    if key == exit_key:
        return False
    if key in MOVE_KEYS:
        grid.move_cursor(MOVE_KEYS[key])
    elif key == ROTATE_ROW_KEY:
        grid.rotate_current_row()
    elif key == ROTATE_COL_KEY:
        grid.rotate_current_col()
    return True


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes a per-move CSV log for replay analysis."""

    HEADER: ClassVar[str] = "move,time_s,key,cursor_row,cursor_col,event\n"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    def log(self, move: int, key: str, row: int, col: int, event: str = "") -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        self._fh.write(f"{move},{t:.3f},{key},{row},{col},{event}\n")
        if event or move % 50 == 0:
            try:
                self._fh.flush()
            except OSError:
                pass

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  Color management
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ColorMap:
    """Curses colour pairs: one per palette colour plus the frame."""

    _cell_pairs: dict[Color, int] = field(default_factory=dict)
    _chrome_pair: int = 0

    def setup(self) -> None:
        curses.start_color()
        curses.use_default_colors()
        pair_id = 1
        for color in PALETTE:
            curses.init_pair(pair_id, curses.COLOR_BLACK, CURSES_COLORS[color])
            self._cell_pairs[color] = pair_id
            pair_id += 1
        curses.init_pair(pair_id, -1, -1)
        self._chrome_pair = pair_id

    def cell(self, color: Color) -> int:
        return curses.color_pair(self._cell_pairs.get(color, 0))

    def chrome(self) -> int:
        return curses.color_pair(self._chrome_pair)


# ═══════════════════════════════════════════════════════════════════════
#  Rendering
# ═══════════════════════════════════════════════════════════════════════

# (top, left, height, width)
Rect = tuple[int, int, int, int]


def split(start: int, length: int, weights: Sequence[int]) -> list[tuple[int, int]]:
    """Divide a span by weight. Returns (offset, size) pairs that tile it."""
    total = sum(weights)
    out: list[tuple[int, int]] = []
    acc = 0
    prev = 0
    for w in weights:
        acc += w
        edge = round(length * acc / total)
        out.append((start + prev, edge - prev))
        prev = edge
    return out


def split_rows(rect: Rect, weights: Sequence[int]) -> list[Rect]:
    y, x, h, w = rect
    return [(oy, x, oh, w) for oy, oh in split(y, h, weights)]


def split_cols(rect: Rect, weights: Sequence[int]) -> list[Rect]:
    y, x, h, w = rect
    return [(y, ox, h, ow) for ox, ow in split(x, w, weights)]


def cell_marker(row: int, col: int, cursor: tuple[int, int]) -> str:
    on_row = row == cursor[0]
    on_col = col == cursor[1]
    if on_row and on_col:
        return MARK_BOTH
    if on_row:
        return MARK_ROW
    if on_col:
        return MARK_COL
    return ""


def _put(stdscr: curses.window, y: int, x: int, text: str, attr: int) -> None:
    try:
        stdscr.addstr(y, x, text, attr)
    except curses.error:
        pass


def _draw_box(
    stdscr: curses.window,
    rect: Rect,
    attr: int,
    glyphs: tuple[str, ...],
    title: str = "",
    fill: bool = False,
) -> None:
    y, x, h, w = rect
    if h < 2 or w < 2:
        if fill and h > 0 and w > 0:
            for row in range(y, y + h):
                _put(stdscr, row, x, " " * w, attr)
        return
    tl, tr, bl, br, horiz, vert = glyphs
    _put(stdscr, y, x, tl + horiz * (w - 2) + tr, attr)
    middle = " " * (w - 2) if fill else None
    for row in range(y + 1, y + h - 1):
        if middle is not None:
            _put(stdscr, row, x, vert + middle + vert, attr)
        else:
            _put(stdscr, row, x, vert, attr)
            _put(stdscr, row, x + w - 1, vert, attr)
    _put(stdscr, y + h - 1, x, bl + horiz * (w - 2) + br, attr)
    if title:
        _put(stdscr, y, x + 1, title[: w - 2], attr)


def render(
    stdscr: curses.window,
    snap: GridSnapshot,
    cmap: ColorMap,
    elapsed_seconds: int,
) -> None:
    """Draw the frame, the elapsed-time header and the board."""
    max_y, max_x = stdscr.getmaxyx()
    screen: Rect = (0, 0, max_y, max_x)
    chrome = cmap.chrome()

    _draw_box(stdscr, screen, chrome, ROUND_BOX, title=TITLE)
    inner: Rect = (1, 1, max_y - 2, max_x - 2) if max_y > 2 and max_x > 2 else screen

    header_area, board_area, _footer = split_rows(inner, OUTER_SPLIT)

    # ── Header ──────────────────────────────────────────────────────
    hy, hx, hh, hw = split_cols(header_area, INNER_SPLIT)[1]
    if hh > 0 and hw > 0:
        text = f"{elapsed_seconds} seconds passed!"[:hw]
        _put(stdscr, hy, hx + (hw - len(text)) // 2, text, chrome)

    # ── Board ───────────────────────────────────────────────────────
    board = split_cols(board_area, INNER_SPLIT)[1]
    n = snap.size
    for i, row_rect in enumerate(split_rows(board, [1] * n)):
        for j, cell_rect in enumerate(split_cols(row_rect, [1] * n)):
            _draw_box(
                stdscr,
                cell_rect,
                cmap.cell(snap.color_at(i, j)),
                SQUARE_BOX,
                title=cell_marker(i, j, snap.cursor),
                fill=True,
            )


# ═══════════════════════════════════════════════════════════════════════
#  Main loop
# ═══════════════════════════════════════════════════════════════════════

def play(
    stdscr: curses.window,
    grid: MofangGrid,
    events: Events,
    cmap: ColorMap,
    screen_lock: threading.Lock,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Render, wait for an event, apply it, repeat until quit."""
    started = clock()
    exit_key = events.config.exit_key
    while True:
        with screen_lock:
            stdscr.erase()
            render(stdscr, grid.snapshot(), cmap, int(clock() - started))
            stdscr.refresh()
        try:
            event = events.next()
        except ChannelClosed:
            break
        if isinstance(event, Input) and not handle_key(grid, event.key, exit_key):
            break


def main(stdscr: curses.window) -> None:
    try:
        curses.curs_set(0)
        cmap = ColorMap()
        cmap.setup()
    except curses.error as exc:
        raise TerminalInitError(f"terminal setup failed: {exc}") from exc

    screen_lock = threading.Lock()
    events = Events(
        CursesKeySource(stdscr, screen_lock),
        EventsConfig(exit_key=EXIT_KEY, tick_rate=TICK_RATE),
    ).start()
    try:
        play(stdscr, MofangGrid(), events, cmap, screen_lock)
    finally:
        events.stop()


def run() -> int:
    """Run a full-screen session. Returns the process exit status.

    Only a curses.error raised before the session starts (screen setup in
    curses.wrapper) becomes TerminalInitError; errors during play propagate.
    """
    started = False

    def session(stdscr: curses.window) -> None:
        nonlocal started
        started = True
        main(stdscr)

    try:
        curses.wrapper(session)
    except curses.error as exc:
        if started:
            raise
        raise TerminalInitError(f"could not initialise terminal: {exc}") from exc
    return 0


if __name__ == "__main__":
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        pass
