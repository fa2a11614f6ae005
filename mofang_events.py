"""
Event multiplexer for the Mofang game.

Merges keyboard input and a fixed-rate tick into one ordered stream that
the render loop consumes with a blocking next().

Architecture:
  Two daemon producer threads (input, tick) put frozen Event values on a
  shared queue.Queue. Each producer posts an end marker when it exits,
  so the consumer sees a producer's death only after all of its events.
  Once every producer has ended and the queue is drained, next() raises
  ChannelClosed.

Shutdown: stop() sets a flag that the tick producer waits on (instead of
sleeping) and the input producer checks between polls, then joins both.
"""

from __future__ import annotations

import curses
import queue
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Protocol, Union


# ═══════════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════════

EXIT_KEY: str = "q"
TICK_RATE: float = 0.25       # seconds between Tick events
POLL_INTERVAL: float = 0.01   # seconds between polls of a non-blocking key source

# ── Key names for special curses codes ─────────────────────────────────
SPECIAL_KEYS: dict[int, str] = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_ENTER: "enter",
    curses.KEY_BACKSPACE: "backspace",
    10: "enter",
    13: "enter",
    27: "esc",
    127: "backspace",
}


# ═══════════════════════════════════════════════════════════════════════
#  Events
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Input:
    """A decoded key press."""
    key: str


@dataclass(frozen=True)
class Tick:
    """Periodic timer event, independent of input."""


Event = Union[Input, Tick]


class ChannelClosed(Exception):
    """Every producer has stopped and no event is pending."""


@dataclass(frozen=True)
class EventsConfig:
    exit_key: str = EXIT_KEY
    tick_rate: float = TICK_RATE
    poll_interval: float = POLL_INTERVAL


# Posted by a producer as its last item on the queue.
_END = object()


# ═══════════════════════════════════════════════════════════════════════
#  Key decoding and sources
# ═══════════════════════════════════════════════════════════════════════

def decode_key(raw: int | str | None) -> str | None:
    """Map a curses key code or character to a key name.

    Returns None for "no key" (None / -1) and for codes that do not
    decode to anything we know.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        if len(raw) != 1:
            return None
        code = ord(raw)
        if code in SPECIAL_KEYS:
            return SPECIAL_KEYS[code]
        return raw if raw.isprintable() else None
    if raw < 0:
        return None
    if raw in SPECIAL_KEYS:
        return SPECIAL_KEYS[raw]
    if raw < 256:
        ch = chr(raw)
        return ch if ch.isprintable() else None
    return None


class KeySource(Protocol):
    def read(self) -> int | str | None: ...


class CursesKeySource:
    """Polls a curses window for keys without blocking.

    Reads happen under ``lock``; the render loop takes the same lock while
    drawing, since getch() refreshes the window it reads from.
    """

    def __init__(self, window: curses.window, lock: threading.Lock) -> None:
        self._window = window
        self._lock = lock
        with self._lock:
            self._window.keypad(True)
            self._window.nodelay(True)

    def read(self) -> int | None:
        with self._lock:
            code = self._window.getch()
        return None if code == -1 else code


class ScriptedKeySource:
    """Replays a fixed key sequence, then reports end of input."""

    def __init__(self, keys: Iterable[int | str], delay: float = 0.0) -> None:
        self._keys = list(keys)
        self._pos = 0
        self._delay = delay

    def read(self) -> int | str:
        if self._pos >= len(self._keys):
            raise EOFError
        if self._delay:
            time.sleep(self._delay)
        key = self._keys[self._pos]
        self._pos += 1
        return key


# ═══════════════════════════════════════════════════════════════════════
#  The multiplexer
# ═══════════════════════════════════════════════════════════════════════

class Events:
    """
    Merged stream of Input and Tick events.

    Call start() once, next() from the consuming thread, and stop() on
    shutdown. The exit key (config.exit_key) ends the input producer right
    after it is emitted unless set_ignore_exit_key() is in effect.
    """

    def __init__(self, source: KeySource, config: EventsConfig | None = None) -> None:
        self.config: EventsConfig = config or EventsConfig()
        self._source = source
        self._queue: queue.Queue[object] = queue.Queue()
        self._ignore_exit_key = threading.Event()
        self._stopping = threading.Event()
        self._input_thread = threading.Thread(
            target=self._run_input, daemon=True, name="mofang-input",
        )
        self._tick_thread = threading.Thread(
            target=self._run_tick, daemon=True, name="mofang-tick",
        )
        self._producers: int = 0
        self._started: bool = False

    # ── Lifecycle ──────────────────────────────────────────────────────

    def start(self) -> Events:
        if self._started:
            raise RuntimeError("events already started")
        self._started = True
        self._producers = 2
        self._input_thread.start()
        self._tick_thread.start()
        return self

    def stop(self, timeout: float = 1.0) -> None:
        """Ask both producers to exit and wait for them.

        Pending events stay queued; next() drains them before raising
        ChannelClosed.
        """
        self._stopping.set()
        for thread in (self._input_thread, self._tick_thread):
            if thread.is_alive() and thread is not threading.current_thread():
                thread.join(timeout)

    @property
    def alive(self) -> int:
        """Number of producer threads still running."""
        return sum(t.is_alive() for t in (self._input_thread, self._tick_thread))

    # ── Exit key suppression ───────────────────────────────────────────

    @property
    def ignore_exit_key(self) -> bool:
        return self._ignore_exit_key.is_set()

    def set_ignore_exit_key(self, flag: bool = True) -> None:
        if flag:
            self._ignore_exit_key.set()
        else:
            self._ignore_exit_key.clear()

    def clear_ignore_exit_key(self) -> None:
        self._ignore_exit_key.clear()

    # ── Consumer ───────────────────────────────────────────────────────

    def next(self) -> Event:
        """Block until the next event and return it.

        Raises ChannelClosed once every producer has ended and all of
        their events have been consumed.
        """
        while True:
            if self._producers == 0:
                raise ChannelClosed("all event producers have stopped")
            item = self._queue.get()
            if item is _END:
                self._producers -= 1
                continue
            return item  # type: ignore[return-value]

    # ── Producers (background threads) ─────────────────────────────────

    def _run_input(self) -> None:
        exit_key = self.config.exit_key
        try:
            while not self._stopping.is_set():
                try:
                    raw = self._source.read()
                except EOFError:
                    return
                except curses.error:
                    self._stopping.wait(self.config.poll_interval)
                    continue
                if raw is None or raw == -1:
                    self._stopping.wait(self.config.poll_interval)
                    continue
                key = decode_key(raw)
                if key is None:
                    continue
                self._queue.put(Input(key))
                if key == exit_key and not self._ignore_exit_key.is_set():
                    return
        finally:
            self._queue.put(_END)

    def _run_tick(self) -> None:
        try:
            while not self._stopping.is_set():
                self._queue.put(Tick())
                self._stopping.wait(self.config.tick_rate)
        finally:
            self._queue.put(_END)


def start(
    source: KeySource,
    tick_rate: float = TICK_RATE,
    exit_key: str = EXIT_KEY,
) -> Events:
    """Spawn the input and tick producers and return the running handle."""
    return Events(source, EventsConfig(exit_key=exit_key, tick_rate=tick_rate)).start()
