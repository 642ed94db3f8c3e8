"""Block device access and the in-memory buffer cache of disk blocks."""

from __future__ import annotations

import os
import threading
from typing import BinaryIO, Union

from .layout import BSIZE, FsError, Panic


class BlockDevice:
    """A disk image addressed in blocks of BSIZE bytes."""

    def __init__(self, target: Union[str, os.PathLike, BinaryIO]):
        if isinstance(target, (str, os.PathLike)):
            self._file = open(target, "r+b")
            self._owned = True
        else:
            self._file = target
            self._owned = False
        self._lock = threading.Lock()

    def read_block(self, blockno: int) -> bytes:
        if blockno < 0:
            raise FsError(f"read: bad block number {blockno}")
        with self._lock:
            self._file.seek(blockno * BSIZE)
            data = self._file.read(BSIZE)
        if len(data) != BSIZE:
            raise FsError(f"read: block {blockno} is beyond the end of the device")
        return data

    def write_block(self, blockno: int, data: bytes) -> None:
        if len(data) != BSIZE:
            raise ValueError(f"write: block data must be {BSIZE} bytes")
        if blockno < 0:
            raise FsError(f"write: bad block number {blockno}")
        with self._lock:
            self._file.seek(blockno * BSIZE)
            self._file.write(bytes(data))

    def close(self) -> None:
        if self._owned:
            self._file.close()

    def __enter__(self) -> "BlockDevice":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Buffer:
    """A cached copy of one disk block, guarded by a sleeping lock."""

    def __init__(self, cache: "BufferCache"):
        self.blockno: int | None = None
        self.data = bytearray(BSIZE)
        self.valid = False
        self.refcnt = 0
        self._cache = cache
        self._cond = threading.Condition()
        self._owner: int | None = None

    @property
    def held(self) -> bool:
        """Whether the calling thread holds this buffer's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                raise Panic("acquiresleep: buffer already held")
            while self._owner is not None:
                self._cond.wait()
            self._owner = me

    def _release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def __enter__(self) -> "Buffer":
        return self

    def __exit__(self, *exc) -> None:
        self._cache.brelse(self)

    def __repr__(self) -> str:
        return f"Buffer(blockno={self.blockno}, valid={self.valid}, refcnt={self.refcnt})"


class BufferCache:
    """A fixed pool of buffers, recycled least recently used first."""

    def __init__(self, device: BlockDevice, nbuf: int = 30):
        if nbuf < 1:
            raise ValueError("buffer cache needs at least one buffer")
        self.device = device
        self._lock = threading.Lock()
        # Most recently used first.
        self._lru = [Buffer(self) for _ in range(nbuf)]

    def _bget(self, blockno: int) -> Buffer:
        with self._lock:
            buf = next((b for b in self._lru if b.blockno == blockno), None)
            if buf is not None:
                buf.refcnt += 1
            else:
                buf = next((b for b in reversed(self._lru) if b.refcnt == 0), None)
                if buf is None:
                    raise Panic("bget: no buffers")
                buf.blockno = blockno
                buf.valid = False
                buf.refcnt = 1
        try:
            buf._acquire()
        except Panic:
            with self._lock:
                buf.refcnt -= 1
            raise
        return buf

    def bread(self, blockno: int) -> Buffer:
        """Return a locked buffer holding the contents of ``blockno``."""
        buf = self._bget(blockno)
        if not buf.valid:
            try:
                buf.data[:] = self.device.read_block(blockno)
            except Exception:
                self.brelse(buf)
                raise
            buf.valid = True
        return buf

    def bwrite(self, buf: Buffer) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.held:
            raise Panic("bwrite")
        self.device.write_block(buf.blockno, bytes(buf.data))

    def brelse(self, buf: Buffer) -> None:
        """Release a locked buffer; an unused one becomes most recently used."""
        if not buf.held:
            raise Panic("brelse")
        buf._release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._lru.remove(buf)
                self._lru.insert(0, buf)

    def bpin(self, buf: Buffer) -> None:
        with self._lock:
            buf.refcnt += 1

    def bunpin(self, buf: Buffer) -> None:
        with self._lock:
            buf.refcnt -= 1