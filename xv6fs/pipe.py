"""In-memory pipes with a bounded buffer shared by a reader and a writer."""

from __future__ import annotations

import threading

from .layout import FsError

PIPESIZE = 512


class Pipe:
    """A byte channel holding at most PIPESIZE unread bytes.

    Writers block while the buffer is full and readers block while it is
    empty and the write end is still open.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._buf = bytearray()
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes) -> int:
        """Write all of ``data``, blocking while the pipe is full."""
        view = memoryview(bytes(data))
        written = 0
        with self._cond:
            while written < len(view):
                if not self.readopen:
                    raise FsError("pipe: read end is closed")
                space = PIPESIZE - len(self._buf)
                if space == 0:
                    self._cond.notify_all()
                    self._cond.wait()
                    continue
                chunk = view[written:written + space]
                self._buf += chunk
                self.nwrite += len(chunk)
                written += len(chunk)
            self._cond.notify_all()
        return written

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; an empty result means end of file."""
        with self._cond:
            while not self._buf and self.writeopen:
                self._cond.wait()
            take = max(0, min(n, len(self._buf)))
            data = bytes(self._buf[:take])
            del self._buf[:take]
            self.nread += take
            self._cond.notify_all()
        return data

    def close(self, writable: bool) -> None:
        """Close the write end when ``writable`` is true, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()

    def __repr__(self) -> str:
        return (
            f"Pipe(unread={len(self._buf)}, readopen={self.readopen}, "
            f"writeopen={self.writeopen})"
        )