"""Byte-by-byte comparison of two files."""

from __future__ import annotations

from dataclasses import dataclass, field

from .fs import FileSystem, Inode
from .kformat import kformat
from .layout import BSIZE, FileType, FsError


@dataclass
class DiffResult:
    """The number of differences found and the report lines."""

    differences: int
    lines: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(line + "\n" for line in self.lines)


def compare_bytes(data1: bytes, data2: bytes, name1: str, name2: str) -> DiffResult:
    """Compare two byte strings block by block and report every difference."""
    data1, data2 = bytes(data1), bytes(data2)
    size1, size2 = len(data1), len(data2)
    lines: list[str] = []
    differences = 0

    for off in range(0, max(size1, size2), BSIZE):
        chunk1 = data1[off:off + BSIZE]
        chunk2 = data2[off:off + BSIZE]
        for i, (a, b) in enumerate(zip(chunk1, chunk2)):
            if a != b:
                lines.append(kformat("byte %d: 0x%x vs 0x%x", off + i, a, b))
                differences += 1
        if len(chunk1) != len(chunk2):
            extra = abs(len(chunk1) - len(chunk2))
            differences += extra
            name = name1 if len(chunk1) > len(chunk2) else name2
            shared = min(len(chunk1), len(chunk2))
            lines.append(kformat("%d extra bytes at offset %d in %s", extra, off + shared, name))

    if size1 != size2:
        differences += abs(size1 - size2)
        lines.append(kformat("size mismatch: %d vs %d bytes", size1, size2))

    lines.append(kformat("Total differences: %d", differences))
    return DiffResult(differences, lines)


def _lookup(fs: FileSystem, path: str) -> Inode:
    try:
        return fs.namei(path)
    except FsError as exc:
        raise FsError(f"diff: {path} not found") from exc


def _read_all(fs: FileSystem, ip: Inode, path: str) -> bytes:
    data = fs.readi(ip, 0, ip.size)
    if len(data) != ip.size:
        raise FsError(f"diff: error reading {path}")
    return data


def diff(fs: FileSystem, path1: str, path2: str) -> DiffResult:
    """Compare the regular files ``path1`` and ``path2``."""
    with fs.log.transaction():
        ip1 = _lookup(fs, path1)
        try:
            ip2 = _lookup(fs, path2)
        except BaseException:
            fs.iput(ip1)
            raise
        try:
            order = [ip1] if ip1 is ip2 else sorted((ip1, ip2), key=lambda ip: ip.inum)
            held: list[Inode] = []
            try:
                for ip in order:
                    fs.ilock(ip)
                    held.append(ip)
                if ip1.type != FileType.FILE or ip2.type != FileType.FILE:
                    raise FsError("diff: not regular files")
                data1 = _read_all(fs, ip1, path1)
                data2 = _read_all(fs, ip2, path2)
            finally:
                for ip in reversed(held):
                    fs.iunlock(ip)
        finally:
            fs.iput(ip1)
            fs.iput(ip2)
    return compare_bytes(data1, data2, path1, path2)