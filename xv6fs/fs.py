"""Inodes, directories and path names on top of the block cache and log."""

from __future__ import annotations

import os
import struct
import threading
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from .disk import BlockDevice, BufferCache
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    FSMAGIC,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    Dirent,
    DiskInode,
    FileType,
    FsError,
    Panic,
    Superblock,
    bblock,
    iblock,
)
from .log import DEFAULT_MAXOPBLOCKS, Log

ROOTDEV = 1
DEFAULT_NINODE = 50
DEFAULT_NBUF = 30

_ADDR = struct.Struct("<I")


def _encode(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


def namecmp(s: str, t: str) -> int:
    """Compare two names over at most DIRSIZ bytes; zero when equal."""
    a = _encode(s)[:DIRSIZ].split(b"\0", 1)[0]
    b = _encode(t)[:DIRSIZ].split(b"\0", 1)[0]
    return (a > b) - (a < b)


def skipelem(path: str) -> Optional[tuple[str, str]]:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes and
    ``name`` is cut to DIRSIZ bytes, or None when no element is left.
    """
    stripped = path.lstrip("/")
    if not stripped:
        return None
    elem, _, rest = stripped.partition("/")
    raw = _encode(elem)[:DIRSIZ]
    return raw.decode("utf-8", "surrogateescape"), rest.lstrip("/")


@dataclass
class Stat:
    """Metadata of an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


class Inode:
    """The in-memory copy of an inode, guarded by a sleeping lock."""

    def __init__(self) -> None:
        self.dev = 0
        self.inum = 0
        self.ref = 0
        self.valid = False
        self.type = 0
        self.major = 0
        self.minor = 0
        self.nlink = 0
        self.size = 0
        self.addrs = [0] * (NDIRECT + 1)
        self._cond = threading.Condition()
        self._owner: Optional[int] = None

    @property
    def held(self) -> bool:
        """Whether the calling thread holds this inode's lock."""
        return self._owner == threading.get_ident()

    def _acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                raise Panic("acquiresleep: inode already held")
            while self._owner is not None:
                self._cond.wait()
            self._owner = me

    def _release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def __repr__(self) -> str:
        return (
            f"Inode(dev={self.dev}, inum={self.inum}, ref={self.ref}, "
            f"type={self.type}, nlink={self.nlink}, size={self.size})"
        )


DeviceArg = Union[BlockDevice, str, os.PathLike, BinaryIO]


class FileSystem:
    """A mounted file system: inode table, block allocator and name lookup."""

    def __init__(
        self,
        device: DeviceArg,
        nbuf: int = DEFAULT_NBUF,
        ninode: int = DEFAULT_NINODE,
        logsize: Optional[int] = None,
        maxopblocks: int = DEFAULT_MAXOPBLOCKS,
    ):
        if isinstance(device, BlockDevice):
            self.device = device
            self._owned = False
        else:
            self.device = BlockDevice(device)
            self._owned = True
        self.dev = ROOTDEV
        try:
            self.cache = BufferCache(self.device, nbuf)
            with self.cache.bread(1) as bp:
                self.sb = Superblock.unpack(bytes(bp.data))
            if self.sb.magic != FSMAGIC:
                raise FsError("invalid file system")
            self.log = Log(self.cache, self.sb, logsize, maxopblocks)
        except Exception:
            self.close()
            raise
        self._lock = threading.Lock()
        self._itable = [Inode() for _ in range(ninode)]

    # Blocks.

    def _bzero(self, bno: int) -> None:
        with self.cache.bread(bno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _balloc(self) -> Optional[int]:
        """Allocate a zeroed block; None when the disk is full."""
        for b in range(0, self.sb.size, BPB):
            with self.cache.bread(bblock(b, self.sb)) as bp:
                found = None
                for bi in range(min(BPB, self.sb.size - b)):
                    m = 1 << (bi % 8)
                    if bp.data[bi // 8] & m == 0:
                        bp.data[bi // 8] |= m
                        self.log.log_write(bp)
                        found = b + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        return None

    def _bfree(self, b: int) -> None:
        with self.cache.bread(bblock(b, self.sb)) as bp:
            bi = b % BPB
            m = 1 << (bi % 8)
            if bp.data[bi // 8] & m == 0:
                raise Panic("freeing free block")
            bp.data[bi // 8] &= ~m & 0xFF
            self.log.log_write(bp)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate an on-disk inode of ``type``; returned unlocked and referenced."""
        for inum in range(1, self.sb.ninodes):
            with self.cache.bread(iblock(inum, self.sb)) as bp:
                off = self._dinode_offset(inum)
                din = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
                if din.type != 0:
                    continue
                bp.data[off:off + DINODE_SIZE] = DiskInode(type=int(type)).pack()
                self.log.log_write(bp)
            return self._iget(self.dev, inum)
        raise FsError("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        with self.cache.bread(iblock(ip.inum, self.sb)) as bp:
            off = self._dinode_offset(ip.inum)
            din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
            bp.data[off:off + DINODE_SIZE] = din.pack()
            self.log.log_write(bp)

    def _iget(self, dev: int, inum: int) -> Inode:
        with self._lock:
            empty = None
            for ip in self._itable:
                if ip.ref > 0 and ip.dev == dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise Panic("iget: no inodes")
            empty.dev = dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip`` and return it."""
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise Panic("ilock")
        ip._acquire()
        if not ip.valid:
            with self.cache.bread(iblock(ip.inum, self.sb)) as bp:
                off = self._dinode_offset(ip.inum)
                din = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                ip._release()
                raise Panic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        if ip is None or not ip.held or ip.ref < 1:
            raise Panic("iunlock")
        ip._release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; the last one to an unlinked inode frees it on disk."""
        with self._lock:
            free = ip.ref == 1 and ip.valid and ip.nlink == 0
            if free:
                # No other reference exists, so this cannot block.
                ip._acquire()
        if free:
            try:
                self.itrunc(ip)
                ip.type = 0
                self.iupdate(ip)
                ip.valid = False
            finally:
                ip._release()
        with self._lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    def _bmap(self, ip: Inode, bn: int) -> Optional[int]:
        """Disk block of the ``bn``th block of ``ip``, allocating it if absent."""
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                addr = self._balloc()
                if addr is None:
                    return None
                ip.addrs[bn] = addr
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                addr = self._balloc()
                if addr is None:
                    return None
                ip.addrs[NDIRECT] = addr
            with self.cache.bread(ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    if addr is not None:
                        _ADDR.pack_into(bp.data, bn * _ADDR.size, addr)
                        self.log.log_write(bp)
            return addr
        raise Panic("bmap: out of range")

    def itrunc(self, ip: Inode) -> None:
        """Discard the contents of a locked inode."""
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.bread(ip.addrs[NDIRECT]) as bp:
                entries = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if off < 0 or n < 0 or off > ip.size:
            return b""
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            addr = self._bmap(ip, off // BSIZE)
            if addr is None:
                break
            start = off % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.cache.bread(addr) as bp:
                out += bp.data[start:start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, off: int, data: bytes) -> int:
        """Write ``data`` at ``off`` into a locked inode; returns bytes written."""
        view = memoryview(bytes(data))
        if off < 0 or off > ip.size:
            raise FsError(f"writei: offset {off} is past the end of the file")
        if off + len(view) > MAXFILE * BSIZE:
            raise FsError("writei: file would exceed the maximum size")
        tot = 0
        while tot < len(view):
            addr = self._bmap(ip, off // BSIZE)
            if addr is None:
                break
            start = off % BSIZE
            m = min(len(view) - tot, BSIZE - start)
            with self.cache.bread(addr) as bp:
                bp.data[start:start + m] = view[tot:tot + m]
                self.log.log_write(bp)
            tot += m
            off += m
        if off > ip.size:
            ip.size = off
        # bmap may have added blocks even when the size stayed the same.
        self.iupdate(ip)
        return tot

    # Directories.

    def _entries(self, dp: Inode, start: int = 0):
        for off in range(start, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise Panic("directory read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> Optional[tuple[Inode, int]]:
        """Find ``name`` in directory ``dp``: (referenced inode, entry offset) or None."""
        if dp.type != FileType.DIR:
            raise Panic("dirlookup not DIR")
        for off, de in self._entries(dp):
            if de.inum != 0 and namecmp(name, de.name) == 0:
                return self._iget(dp.dev, de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FsError(f"{name}: already exists")
        off = next((o for o, de in self._entries(dp) if de.inum == 0), dp.size)
        if self.writei(dp, off, Dirent(inum, name).pack()) != DIRENT_SIZE:
            raise FsError(f"{name}: cannot write directory entry")

    # Path names.

    def _namex(self, path: str, parent: bool, cwd: Optional[Inode]):
        if path.startswith("/") or cwd is None:
            ip = self._iget(ROOTDEV, ROOTINO)
        else:
            ip = self.idup(cwd)
        while (elem := skipelem(path)) is not None:
            name, path = elem
            self.ilock(ip)
            if ip.type != FileType.DIR:
                self.iunlockput(ip)
                raise FsError(f"{name}: a path component is not a directory")
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                raise FsError(f"{name}: no such file or directory")
            ip = found[0]
        if parent:
            self.iput(ip)
            raise FsError("path has no final element")
        return ip

    def namei(self, path: str, cwd: Optional[Inode] = None) -> Inode:
        """Referenced, unlocked inode for ``path``; relative paths start at ``cwd``."""
        return self._namex(path, False, cwd)

    def nameiparent(self, path: str, cwd: Optional[Inode] = None) -> tuple[Inode, str]:
        """Inode of the parent directory of ``path`` and the final element's name."""
        return self._namex(path, True, cwd)

    def close(self) -> None:
        if self._owned:
            self.device.close()

    def __enter__(self) -> "FileSystem":
        return self

    def __exit__(self, *exc) -> None:
        self.close()