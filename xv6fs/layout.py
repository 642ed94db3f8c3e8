"""On-disk layout: constants, record formats and block arithmetic."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

ROOTINO = 1
BSIZE = 1024
FSMAGIC = 0x10203040

NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14
BPB = BSIZE * 8

CONSOLE = 1

_SUPERBLOCK = struct.Struct("<8I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

IPB = BSIZE // DINODE_SIZE


class FsError(Exception):
    """A file-system operation failed."""


class Panic(RuntimeError):
    """An internal invariant of the file system was violated."""


class FileType(enum.IntEnum):
    """Inode types as stored on disk."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEVICE = 3


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    if len(data) < layout.size:
        raise FsError(f"{what}: need {layout.size} bytes, got {len(data)}")
    return layout.unpack_from(data)


def _pack(layout: struct.Struct, what: str, *values) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(f"{what}: {exc}") from exc


@dataclass
class Superblock:
    """Describes the disk layout."""

    magic: int = FSMAGIC
    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _pack(
            _SUPERBLOCK,
            "superblock",
            self.magic,
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        return cls(*_unpack(_SUPERBLOCK, data, "superblock"))


@dataclass
class DiskInode:
    """The on-disk inode record."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"dinode: expected {NDIRECT + 1} addresses")
        return _pack(
            _DINODE,
            "dinode",
            self.type,
            self.major,
            self.minor,
            self.nlink,
            self.size,
            *self.addrs,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        type_, major, minor, nlink, size, *addrs = _unpack(_DINODE, data, "dinode")
        return cls(type_, major, minor, nlink, size, list(addrs))


@dataclass
class Dirent:
    """A directory entry: inode number and a name of at most DIRSIZ bytes."""

    inum: int = 0
    name: str = ""

    def pack(self) -> bytes:
        raw = self.name.encode("utf-8", "surrogateescape")[:DIRSIZ]
        return _pack(_DIRENT, "dirent", self.inum, raw)

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        inum, raw = _unpack(_DIRENT, data, "dirent")
        name = raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")
        return cls(inum, name)


def iblock(inum: int, sb: Superblock) -> int:
    """Block that holds inode ``inum``."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: Superblock) -> int:
    """Bitmap block that holds the bit for block ``b``."""
    return b // BPB + sb.bmapstart


def major(dev: int) -> int:
    return dev >> 16 & 0xFFFF


def minor(dev: int) -> int:
    return dev & 0xFFFF


def mkdev(m: int, n: int) -> int:
    return ((m << 16) | n) & 0xFFFFFFFF