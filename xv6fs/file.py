"""Open files: reference-counted handles onto pipes, inodes and devices."""

from __future__ import annotations

import enum
import threading
from typing import Any, Optional

from .fs import FileSystem, Inode, Stat
from .layout import BSIZE, FsError, Panic
from .pipe import Pipe

NDEV = 10

# Major device number -> object with read(n) and write(data) methods.
devsw: dict[int, Any] = {}

_ftable_lock = threading.Lock()


class _Kind(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2
    DEVICE = 3


class OpenFile:
    """An open file: a pipe end, an inode with an offset, or a device."""

    def __init__(
        self,
        readable: bool,
        writable: bool,
        *,
        pipe: Optional[Pipe] = None,
        fs: Optional[FileSystem] = None,
        ip: Optional[Inode] = None,
        major: Optional[int] = None,
    ):
        if pipe is not None:
            self._kind = _Kind.PIPE
        elif major is not None:
            self._kind = _Kind.DEVICE
        elif ip is not None:
            if fs is None:
                raise ValueError("an inode file needs its file system")
            self._kind = _Kind.INODE
        else:
            raise ValueError("an open file needs a pipe, an inode or a device")
        self.readable = bool(readable)
        self.writable = bool(writable)
        self.pipe = pipe
        self.fs = fs
        self.ip = ip
        self.major = major
        self.off = 0
        self.ref = 1

    def _device(self, op: str):
        if self.major is None or not 0 <= self.major < NDEV:
            raise FsError(f"{op}: bad device number {self.major}")
        fn = getattr(devsw.get(self.major), op, None)
        if fn is None:
            raise FsError(f"{op}: no driver for device {self.major}")
        return fn

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes."""
        if not self.readable:
            raise FsError("read: file is not open for reading")
        if self._kind is _Kind.PIPE:
            return self.pipe.read(n)
        if self._kind is _Kind.DEVICE:
            return bytes(self._device("read")(n))
        if self._kind is _Kind.INODE:
            self.fs.ilock(self.ip)
            try:
                data = self.fs.readi(self.ip, self.off, n)
                self.off += len(data)
            finally:
                self.fs.iunlock(self.ip)
            return data
        raise FsError("read: file is closed")

    def write(self, data: bytes) -> int:
        """Write all of ``data``; returns the number of bytes written."""
        if not self.writable:
            raise FsError("write: file is not open for writing")
        data = bytes(data)
        if self._kind is _Kind.PIPE:
            return self.pipe.write(data)
        if self._kind is _Kind.DEVICE:
            return self._device("write")(data)
        if self._kind is _Kind.INODE:
            # Keep each transaction within the log: inode, indirect block,
            # bitmap and two blocks of slop for unaligned writes.
            chunk = max(1, ((self.fs.log.maxopblocks - 1 - 1 - 2) // 2) * BSIZE)
            for start in range(0, len(data), chunk):
                piece = data[start:start + chunk]
                with self.fs.log.transaction():
                    self.fs.ilock(self.ip)
                    try:
                        written = self.fs.writei(self.ip, self.off, piece)
                        self.off += written
                    finally:
                        self.fs.iunlock(self.ip)
                if written != len(piece):
                    raise FsError("write: out of disk space")
            return len(data)
        raise FsError("write: file is closed")

    def stat(self) -> Stat:
        """Metadata of the inode behind this file."""
        if self._kind in (_Kind.INODE, _Kind.DEVICE) and self.ip is not None:
            self.fs.ilock(self.ip)
            try:
                return self.fs.stati(self.ip)
            finally:
                self.fs.iunlock(self.ip)
        raise FsError("stat: file has no inode")

    def dup(self) -> "OpenFile":
        """Take another reference to this file."""
        with _ftable_lock:
            if self.ref < 1:
                raise Panic("filedup")
            self.ref += 1
        return self

    def close(self) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with _ftable_lock:
            if self.ref < 1:
                raise Panic("fileclose")
            self.ref -= 1
            if self.ref > 0:
                return
            kind = self._kind
            self._kind = _Kind.NONE
        if kind is _Kind.PIPE:
            self.pipe.close(self.writable)
        elif kind in (_Kind.INODE, _Kind.DEVICE) and self.ip is not None:
            with self.fs.log.transaction():
                self.fs.iput(self.ip)

    def __enter__(self) -> "OpenFile":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"OpenFile({self._kind.name}, ref={self.ref}, off={self.off})"


def pipe_pair() -> tuple[OpenFile, OpenFile]:
    """A new pipe as (read end, write end)."""
    p = Pipe()
    return OpenFile(True, False, pipe=p), OpenFile(False, True, pipe=p)