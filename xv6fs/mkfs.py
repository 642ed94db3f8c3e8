"""Build an initial file-system image holding a set of files in its root."""

from __future__ import annotations

import os
import struct
import sys
from typing import Callable, Iterable, Optional, Union

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
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
    Superblock,
    iblock,
)

DEFAULT_FSSIZE = 2000
DEFAULT_NINODES = 200
DEFAULT_NLOG = 30

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")

PathArg = Union[str, os.PathLike]


class _ImageBuilder:
    def __init__(self, fssize: int, ninodes: int, nlog: int, echo: Callable[[str], None]):
        if fssize < 1 or ninodes < 2 or nlog < 0:
            raise ValueError("bad file-system geometry")
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        if self.nmeta >= fssize:
            raise ValueError("file-system size leaves no room for data blocks")
        self.sb = Superblock(
            magic=FSMAGIC,
            size=fssize,
            nblocks=fssize - self.nmeta,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        echo(
            f"nmeta {self.nmeta} (boot, super, log blocks {nlog} inode blocks "
            f"{self.ninodeblocks}, bitmap blocks {self.nbitmap}) blocks "
            f"{self.sb.nblocks} total {fssize}"
        )
        self.echo = echo
        self.image = bytearray(fssize * BSIZE)
        self.freeblock = self.nmeta
        self.freeinode = 1
        self.wsect(1, self.sb.pack().ljust(BSIZE, b"\0"))

    def _span(self, sec: int) -> slice:
        if not 0 <= sec < self.sb.size:
            raise FsError(f"sector {sec} is outside the image")
        return slice(sec * BSIZE, (sec + 1) * BSIZE)

    def rsect(self, sec: int) -> bytearray:
        return bytearray(self.image[self._span(sec)])

    def wsect(self, sec: int, data: bytes) -> None:
        self.image[self._span(sec)] = data

    def _inode_span(self, inum: int) -> slice:
        start = iblock(inum, self.sb) * BSIZE + (inum % IPB) * DINODE_SIZE
        return slice(start, start + DINODE_SIZE)

    def rinode(self, inum: int) -> DiskInode:
        self._span(iblock(inum, self.sb))
        return DiskInode.unpack(bytes(self.image[self._inode_span(inum)]))

    def winode(self, inum: int, din: DiskInode) -> None:
        self._span(iblock(inum, self.sb))
        self.image[self._inode_span(inum)] = din.pack()

    def ialloc(self, type_: FileType) -> int:
        inum = self.freeinode
        if inum >= self.sb.ninodes:
            raise FsError("mkfs: out of inodes")
        self.freeinode += 1
        self.winode(inum, DiskInode(type=int(type_), nlink=1, size=0))
        return inum

    def _alloc_block(self) -> int:
        block = self.freeblock
        if block >= self.sb.size:
            raise FsError("mkfs: out of blocks")
        self.freeblock += 1
        return block

    def _block_for(self, din: DiskInode, fbn: int) -> int:
        if fbn < NDIRECT:
            if din.addrs[fbn] == 0:
                din.addrs[fbn] = self._alloc_block()
            return din.addrs[fbn]
        if din.addrs[NDIRECT] == 0:
            din.addrs[NDIRECT] = self._alloc_block()
        indirect = list(_INDIRECT.unpack(self.rsect(din.addrs[NDIRECT])))
        if indirect[fbn - NDIRECT] == 0:
            indirect[fbn - NDIRECT] = self._alloc_block()
            self.wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
        return indirect[fbn - NDIRECT]

    def iappend(self, inum: int, data: bytes) -> None:
        din = self.rinode(inum)
        off = din.size
        view = memoryview(data)
        while view:
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise FsError("mkfs: file too large")
            block = self._block_for(din, fbn)
            n1 = min(len(view), (fbn + 1) * BSIZE - off)
            buf = self.rsect(block)
            start = off - fbn * BSIZE
            buf[start:start + n1] = view[:n1]
            self.wsect(block, buf)
            view = view[n1:]
            off += n1
        din.size = off
        self.winode(inum, din)

    def balloc(self, used: int) -> None:
        self.echo(f"balloc: first {used} blocks have been allocated")
        if used >= BPB:
            raise FsError("mkfs: too many blocks for one bitmap block")
        bitmap = bytearray(BSIZE)
        full, rest = divmod(used, 8)
        bitmap[:full] = b"\xff" * full
        if rest:
            bitmap[full] = (1 << rest) - 1
        self.echo(f"balloc: write bitmap block at sector {self.sb.bmapstart}")
        self.wsect(self.sb.bmapstart, bitmap)


def _short_name(path: PathArg) -> str:
    name = os.fspath(path)
    if name.startswith("user/"):
        name = name[len("user/"):]
    if "/" in name:
        raise ValueError(f"{name}: file names may not contain '/'")
    # Host binaries carry a leading '_' so they are not run in place of system tools.
    if name.startswith("_"):
        name = name[1:]
    if len(name.encode("utf-8", "surrogateescape")) > DIRSIZ:
        raise ValueError(f"{name}: name longer than {DIRSIZ} bytes")
    return name


def _build(
    path: PathArg,
    files: Iterable[PathArg],
    fssize: int,
    ninodes: int,
    nlog: int,
    echo: Callable[[str], None],
) -> _ImageBuilder:
    builder = _ImageBuilder(fssize, ninodes, nlog, echo)

    rootino = builder.ialloc(FileType.DIR)
    if rootino != ROOTINO:
        raise FsError("mkfs: root inode has the wrong number")
    builder.iappend(rootino, Dirent(rootino, ".").pack())
    builder.iappend(rootino, Dirent(rootino, "..").pack())

    for file in files:
        shortname = _short_name(file)
        with open(file, "rb") as src:
            inum = builder.ialloc(FileType.FILE)
            builder.iappend(rootino, Dirent(inum, shortname).pack())
            while chunk := src.read(BSIZE):
                builder.iappend(inum, chunk)

    root = builder.rinode(rootino)
    root.size = (root.size // BSIZE + 1) * BSIZE
    builder.winode(rootino, root)

    builder.balloc(builder.freeblock)

    with open(path, "wb") as out:
        out.write(builder.image)
    return builder


def make_image(
    path: PathArg,
    files: Iterable[PathArg] = (),
    fssize: int = DEFAULT_FSSIZE,
    ninodes: int = DEFAULT_NINODES,
    nlog: int = DEFAULT_NLOG,
) -> Superblock:
    """Write a fresh file-system image to ``path`` and return its superblock."""
    return _build(path, files, fssize, ninodes, nlog, lambda _msg: None).sb


def main(argv: Optional[list[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    try:
        _build(args[0], args[1:], DEFAULT_FSSIZE, DEFAULT_NINODES, DEFAULT_NLOG, print)
    except OSError as exc:
        print(f"{exc.filename or args[0]}: {exc.strerror or exc}", file=sys.stderr)
        return 1
    except (ValueError, FsError) as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())