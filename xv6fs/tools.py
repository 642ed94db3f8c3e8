"""File copy and move commands working inside a file-system image."""

from __future__ import annotations

import sys
from typing import Optional

from .fs import FileSystem
from .layout import FsError
from .sysfile import OpenMode, open_file, unlink

BUF_SIZE = 512


def _copy(fs: FileSystem, src: str, dst: str, prog: str) -> int:
    try:
        source = open_file(fs, src, OpenMode.RDONLY)
    except FsError as exc:
        raise FsError(f"{prog}: cannot open source file") from exc
    copied = 0
    with source:
        try:
            dest = open_file(fs, dst, OpenMode.CREATE | OpenMode.WRONLY)
        except FsError as exc:
            raise FsError(f"{prog}: cannot create destination file") from exc
        with dest:
            while chunk := source.read(BUF_SIZE):
                try:
                    dest.write(chunk)
                except FsError as exc:
                    raise FsError(f"{prog}: write error") from exc
                copied += len(chunk)
    return copied


def copy_file(fs: FileSystem, src: str, dst: str) -> int:
    """Copy ``src`` over ``dst``; returns the number of bytes copied."""
    return _copy(fs, src, dst, "cp")


def move_file(fs: FileSystem, src: str, dst: str) -> int:
    """Copy ``src`` to ``dst`` and then remove ``src``."""
    copied = _copy(fs, src, dst, "mv")
    try:
        unlink(fs, src)
    except FsError as exc:
        raise FsError("mv: failed to delete source file") from exc
    return copied


_COMMANDS = {"cp": copy_file, "mv": move_file}


def main(argv: Optional[list[str]] = None) -> int:
    """Run ``cp`` or ``mv`` on a file-system image: COMMAND IMAGE SOURCE DESTINATION."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 4 or args[0] not in _COMMANDS:
        name = args[0] if args and args[0] in _COMMANDS else "cp|mv"
        print(f"Usage: {name} <image> <source> <destination>", file=sys.stderr)
        return 1
    cmd, image, src, dst = args
    try:
        with FileSystem(image) as fs:
            _COMMANDS[cmd](fs, src, dst)
    except FsError as exc:
        print(exc, file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"{cmd}: {image}: {exc.strerror or exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())