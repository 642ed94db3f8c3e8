"""Small LZ77-style compressor and the zip/unzip file operations built on it."""

from __future__ import annotations

from .fs import FileSystem
from .layout import FileType, FsError
from .sysfile import create

MAX_COMPRESS_SIZE = 1024
PGSIZE = 4096

_WINDOW = 255
_MAX_MATCH = 255
_MIN_MATCH = 3


def compress(data: bytes) -> bytes:
    """Encode ``data`` as (offset, length) byte pairs.

    A pair with offset 0 carries one literal byte; any other pair copies
    ``length`` bytes starting ``offset`` bytes back in the output.
    """
    data = bytes(data)
    length = len(data)
    out = bytearray()
    pos = 0
    while pos < length:
        best_len = 0
        best_off = 0
        for start in range(max(0, pos - _WINDOW), pos):
            n = 0
            while (
                pos + n < length
                and n < _MAX_MATCH
                and data[start + n] == data[pos + n]
            ):
                n += 1
            if n > best_len:
                best_len, best_off = n, pos - start
        if best_len >= _MIN_MATCH:
            out += bytes((best_off, best_len))
            pos += best_len
        else:
            out += bytes((0, data[pos]))
            pos += 1
        if len(out) >= PGSIZE:
            break
    return bytes(out)


def decompress(data: bytes) -> bytes:
    """Decode pairs produced by :func:`compress`; a trailing odd byte is ignored."""
    out = bytearray()
    pairs = iter(bytes(data))
    for offset, n in zip(pairs, pairs):
        if offset == 0:
            out.append(n)
            continue
        for _ in range(n):
            if len(out) < offset:
                raise FsError("decompress: back-reference before the start of the output")
            out.append(out[-offset])
    return bytes(out)


def _read_source(fs: FileSystem, path: str, limit: int) -> bytes:
    ip = fs.namei(path)
    fs.ilock(ip)
    try:
        if ip.type != FileType.FILE or ip.size == 0 or ip.size > limit:
            raise FsError(f"{path}: must be a non-empty regular file of at most {limit} bytes")
        data = fs.readi(ip, 0, ip.size)
        if len(data) != ip.size:
            raise FsError(f"{path}: short read")
    finally:
        fs.iunlockput(ip)
    return data


def _write_dest(fs: FileSystem, path: str, data: bytes) -> int:
    op = create(fs, path, FileType.FILE, 0, 0)
    try:
        if fs.writei(op, 0, data) != len(data):
            raise FsError(f"{path}: short write")
    finally:
        fs.iunlockput(op)
    return len(data)


def zip_file(fs: FileSystem, src: str, dst: str) -> int:
    """Compress file ``src`` into ``dst``; returns the compressed size."""
    with fs.log.transaction():
        data = _read_source(fs, src, MAX_COMPRESS_SIZE)
        packed = compress(data)
        if not packed:
            raise FsError(f"{src}: compression produced no output")
        return _write_dest(fs, dst, packed)


def unzip_file(fs: FileSystem, src: str, dst: str) -> int:
    """Decompress file ``src`` into ``dst``; returns the decompressed size."""
    with fs.log.transaction():
        data = _read_source(fs, src, MAX_COMPRESS_SIZE * 2)
        unpacked = decompress(data)
        if not unpacked:
            raise FsError(f"{src}: decompression produced no output")
        if len(unpacked) > PGSIZE:
            raise FsError(f"{src}: decompressed data exceeds {PGSIZE} bytes")
        return _write_dest(fs, dst, unpacked)