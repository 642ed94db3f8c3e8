"""File-system operations on path names: open, create, link, unlink, mkdir, mknod."""

from __future__ import annotations

import enum

from .file import NDEV, OpenFile
from .fs import FileSystem, Inode, namecmp
from .layout import DIRENT_SIZE, Dirent, FileType, FsError, Panic


class OpenMode(enum.IntFlag):
    """Flags for open_file."""

    RDONLY = 0x000
    WRONLY = 0x001
    RDWR = 0x002
    CREATE = 0x200
    TRUNC = 0x400


def create(fs: FileSystem, path: str, type: int, major: int, minor: int) -> Inode:
    """Create ``path`` with inode ``type``; returns it locked.

    Must run inside a transaction.  An existing regular file or device is
    returned when a regular file is asked for.
    """
    dp, name = fs.nameiparent(path)
    fs.ilock(dp)

    found = fs.dirlookup(dp, name)
    if found is not None:
        ip = found[0]
        fs.iunlockput(dp)
        fs.ilock(ip)
        if type == FileType.FILE and ip.type in (FileType.FILE, FileType.DEVICE):
            return ip
        fs.iunlockput(ip)
        raise FsError(f"{path}: already exists")

    try:
        ip = fs.ialloc(type)
    except BaseException:
        fs.iunlockput(dp)
        raise

    fs.ilock(ip)
    ip.major = major
    ip.minor = minor
    ip.nlink = 1
    fs.iupdate(ip)

    try:
        if type == FileType.DIR:
            # No nlink increment for ".": avoid a cyclic reference count.
            fs.dirlink(ip, ".", ip.inum)
            fs.dirlink(ip, "..", dp.inum)
        fs.dirlink(dp, name, ip.inum)
    except BaseException:
        ip.nlink = 0
        fs.iupdate(ip)
        fs.iunlockput(ip)
        fs.iunlockput(dp)
        raise

    if type == FileType.DIR:
        dp.nlink += 1  # for ".."
        fs.iupdate(dp)
    fs.iunlockput(dp)
    return ip


def open_file(fs: FileSystem, path: str, omode: int) -> OpenFile:
    """Open ``path`` with the OpenMode flags ``omode``."""
    omode = int(omode)
    readable = not omode & OpenMode.WRONLY
    writable = bool(omode & (OpenMode.WRONLY | OpenMode.RDWR))
    with fs.log.transaction():
        if omode & OpenMode.CREATE:
            ip = create(fs, path, FileType.FILE, 0, 0)
        else:
            ip = fs.namei(path)
            fs.ilock(ip)
        try:
            if ip.type == FileType.DIR and omode != OpenMode.RDONLY:
                raise FsError(f"{path}: is a directory")
            if ip.type == FileType.DEVICE:
                if not 0 <= ip.major < NDEV:
                    raise FsError(f"{path}: bad device number {ip.major}")
                f = OpenFile(readable, writable, fs=fs, ip=ip, major=ip.major)
            else:
                f = OpenFile(readable, writable, fs=fs, ip=ip)
            if omode & OpenMode.TRUNC and ip.type == FileType.FILE:
                fs.itrunc(ip)
        except BaseException:
            fs.iunlockput(ip)
            raise
        fs.iunlock(ip)
    return f


def link(fs: FileSystem, old: str, new: str) -> None:
    """Make ``new`` another name for the file ``old``."""
    with fs.log.transaction():
        ip = fs.namei(old)
        fs.ilock(ip)
        if ip.type == FileType.DIR:
            fs.iunlockput(ip)
            raise FsError(f"{old}: cannot link a directory")
        ip.nlink += 1
        fs.iupdate(ip)
        fs.iunlock(ip)

        try:
            dp, name = fs.nameiparent(new)
            fs.ilock(dp)
            try:
                if dp.dev != ip.dev:
                    raise FsError(f"{new}: cross-device link")
                fs.dirlink(dp, name, ip.inum)
            finally:
                fs.iunlockput(dp)
        except BaseException:
            fs.ilock(ip)
            ip.nlink -= 1
            fs.iupdate(ip)
            fs.iunlockput(ip)
            raise
        fs.iput(ip)


def _isdirempty(fs: FileSystem, dp: Inode) -> bool:
    """Whether directory ``dp`` holds nothing but "." and ".."."""
    for off in range(2 * DIRENT_SIZE, dp.size, DIRENT_SIZE):
        raw = fs.readi(dp, off, DIRENT_SIZE)
        if len(raw) != DIRENT_SIZE:
            raise Panic("isdirempty: readi")
        if Dirent.unpack(raw).inum != 0:
            return False
    return True


def unlink(fs: FileSystem, path: str) -> None:
    """Remove the directory entry ``path``."""
    with fs.log.transaction():
        dp, name = fs.nameiparent(path)
        fs.ilock(dp)
        try:
            if namecmp(name, ".") == 0 or namecmp(name, "..") == 0:
                raise FsError(f"{path}: cannot unlink '.' or '..'")
            found = fs.dirlookup(dp, name)
            if found is None:
                raise FsError(f"{path}: no such file or directory")
            ip, off = found
            fs.ilock(ip)
            if ip.nlink < 1:
                raise Panic("unlink: nlink < 1")
            if ip.type == FileType.DIR and not _isdirempty(fs, ip):
                fs.iunlockput(ip)
                raise FsError(f"{path}: directory not empty")
        except BaseException:
            fs.iunlockput(dp)
            raise

        if fs.writei(dp, off, bytes(DIRENT_SIZE)) != DIRENT_SIZE:
            raise Panic("unlink: writei")
        if ip.type == FileType.DIR:
            dp.nlink -= 1
            fs.iupdate(dp)
        fs.iunlockput(dp)

        ip.nlink -= 1
        fs.iupdate(ip)
        fs.iunlockput(ip)


def mkdir(fs: FileSystem, path: str) -> None:
    """Create the directory ``path``."""
    with fs.log.transaction():
        fs.iunlockput(create(fs, path, FileType.DIR, 0, 0))


def mknod(fs: FileSystem, path: str, major: int, minor: int) -> None:
    """Create the device file ``path``."""
    with fs.log.transaction():
        fs.iunlockput(create(fs, path, FileType.DEVICE, major, minor))