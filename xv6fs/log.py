"""Write-ahead redo log that makes multi-block updates atomic."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .disk import Buffer, BufferCache
from .layout import BSIZE, FsError, Panic, Superblock

DEFAULT_MAXOPBLOCKS = 10

_COUNT = struct.Struct("<i")


class Log:
    """A physical redo log of whole disk blocks.

    On disk the log is a header block holding the block numbers of the
    logged blocks, followed by copies of those blocks.  Several operations
    may run inside one transaction; it commits when the last one ends.
    """

    def __init__(
        self,
        cache: BufferCache,
        sb: Superblock,
        logsize: Optional[int] = None,
        maxopblocks: int = DEFAULT_MAXOPBLOCKS,
    ):
        self.cache = cache
        self.start = sb.logstart
        self.size = sb.nlog
        self.logsize = self.size if logsize is None else logsize
        self.maxopblocks = maxopblocks
        if _COUNT.size * (1 + self.logsize) >= BSIZE:
            raise Panic("initlog: too big logheader")
        if not 1 <= maxopblocks <= self.logsize:
            raise ValueError("maxopblocks must be between 1 and the log size")
        self._cond = threading.Condition()
        self._outstanding = 0
        self._committing = False
        self._blocks: list[int] = []
        self.recover()

    @property
    def outstanding(self) -> int:
        """Number of operations currently inside the transaction."""
        return self._outstanding

    @property
    def committing(self) -> bool:
        return self._committing

    @property
    def pending(self) -> tuple[int, ...]:
        """Block numbers logged in the current transaction."""
        with self._cond:
            return tuple(self._blocks)

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install_trans(recovering=True)
        self._blocks = []
        self._write_head()

    def _read_head(self) -> None:
        with self.cache.bread(self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data, 0)
            if not 0 <= n <= self.logsize:
                raise FsError(f"log header holds a bad block count {n}")
            self._blocks = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        """Write the in-memory header to disk; this is the commit point."""
        n = len(self._blocks)
        with self.cache.bread(self.start) as buf:
            struct.pack_into(f"<i{n}i", buf.data, 0, n, *self._blocks)
            self.cache.bwrite(buf)

    def _install_trans(self, recovering: bool) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, blockno in enumerate(self._blocks):
            with self.cache.bread(self.start + tail + 1) as lbuf:
                with self.cache.bread(blockno) as dbuf:
                    dbuf.data[:] = lbuf.data
                    self.cache.bwrite(dbuf)
                    if not recovering:
                        self.cache.bunpin(dbuf)

    def _write_log(self) -> None:
        """Copy modified blocks from the cache into the log area."""
        for tail, blockno in enumerate(self._blocks):
            with self.cache.bread(self.start + tail + 1) as to:
                with self.cache.bread(blockno) as frm:
                    to.data[:] = frm.data
                self.cache.bwrite(to)

    def _commit(self) -> None:
        if self._blocks:
            self._write_log()
            self._write_head()
            self._install_trans(recovering=False)
            self._blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Join the current transaction, waiting while the log might overflow."""
        with self._cond:
            while self._committing or (
                len(self._blocks) + (self._outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self._outstanding += 1

    def end_op(self) -> None:
        """Leave the transaction; the last one out commits it."""
        do_commit = False
        with self._cond:
            self._outstanding -= 1
            if self._committing:
                raise Panic("log.committing")
            if self._outstanding == 0:
                do_commit = True
                self._committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self._committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buffer) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        with self._cond:
            n = len(self._blocks)
            if n >= self.logsize or n >= self.size - 1:
                raise Panic("too big a transaction")
            if self._outstanding < 1:
                raise Panic("log_write outside of trans")
            if buf.blockno not in self._blocks:
                self.cache.bpin(buf)
                self._blocks.append(buf.blockno)

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the enclosed block as one file-system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()