"""A line-disciplined console: input editing, line reads and output capture."""

from __future__ import annotations

import threading
from typing import Callable, Optional, Union

INPUT_BUF_SIZE = 128


def _ctrl(x: str) -> int:
    return ord(x) - ord("@")


_ERASE = b"\b \b"
_DELETE = 0x7F


class Console:
    """Console input buffered a line at a time, with erase and kill handling.

    Typed characters arrive through :meth:`interrupt`; everything echoed or
    written is appended to :attr:`output`.
    """

    def __init__(self, procdump: Optional[Callable[[], None]] = None):
        self.output = bytearray()
        self._procdump = procdump
        self._buf = bytearray(INPUT_BUF_SIZE)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._cond = threading.Condition()

    def _putc(self, c: int) -> None:
        self.output.append(c)

    def _erase(self) -> None:
        self.output += _ERASE

    def interrupt(self, c: Union[int, str]) -> None:
        """Handle one typed character."""
        if isinstance(c, str):
            c = ord(c)
        if not 0 <= c <= 0xFF:
            raise ValueError(f"console input must be a byte, got {c}")
        with self._cond:
            if c == _ctrl("P"):
                if self._procdump is not None:
                    self._procdump()
            elif c == _ctrl("U"):
                while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF_SIZE] != ord("\n"):
                    self._e -= 1
                    self._erase()
            elif c in (_ctrl("H"), _DELETE):
                if self._e != self._w:
                    self._e -= 1
                    self._erase()
            elif c != 0 and self._e - self._r < INPUT_BUF_SIZE:
                if c == ord("\r"):
                    c = ord("\n")
                self._putc(c)
                self._buf[self._e % INPUT_BUF_SIZE] = c
                self._e += 1
                if c in (ord("\n"), _ctrl("D")) or self._e - self._r == INPUT_BUF_SIZE:
                    self._w = self._e
                    self._cond.notify_all()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; blocks for input.

        An empty result means end of file (control-D).
        """
        out = bytearray()
        remaining = n
        with self._cond:
            while remaining > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF_SIZE]
                self._r += 1
                if c == _ctrl("D"):
                    if remaining < n:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                remaining -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        """Send ``data`` to the console; returns the number of bytes written."""
        data = bytes(data)
        with self._cond:
            self.output += data
        return len(data)