# xv6fs

`xv6fs` builds, reads and writes disk images in the xv6 file system format,
in plain Python with no dependencies. The image layout is a boot block, a
superblock, a redo log, inode blocks, a free-block bitmap and data blocks,
with 1024-byte blocks, twelve direct block pointers and one indirect block
per inode, and directory entry names of at most 14 bytes.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Building a disk image

`xv6-mkfs` creates an image of 2000 blocks with 200 inodes and a 30-block
log, and copies the named host files into its root directory. A leading
`user/` on a file name is dropped, and then a leading underscore; the
remaining name must not contain `/` and must fit in 14 bytes.

```
xv6-mkfs fs.img README user/_cat user/_ls
```

It prints the layout it chose and the number of blocks it allocated. From
Python, `xv6fs.mkfs.make_image(path, files, fssize, ninodes, nlog)` does the
same work silently and returns the image's `Superblock`.

## Working with an image

```python
from xv6fs.fs import FileSystem
from xv6fs.sysfile import OpenMode, mkdir, open_file

with FileSystem("fs.img") as fs:
    mkdir(fs, "/docs")
    with open_file(fs, "/docs/note", OpenMode.CREATE | OpenMode.RDWR) as f:
        f.write(b"hello\n")
    with open_file(fs, "/docs/note", OpenMode.RDONLY) as f:
        print(f.read(100))
```

Failures are raised as `xv6fs.layout.FsError`; a broken internal invariant
is raised as `xv6fs.layout.Panic`.

The package is layered the same way the file system is:

- `xv6fs.layout` holds the on-disk records (`Superblock`, `DiskInode` and
  `Dirent`, each with `pack` and `unpack`), the `FileType` values and the
  helpers `iblock`, `bblock`, `major`, `minor` and `mkdev`.
- `xv6fs.disk` provides `BlockDevice` over an image file or a binary file
  object, and a least-recently-used `BufferCache` with `bread`, `bwrite`,
  `brelse`, `bpin` and `bunpin`. A buffer from `bread` can be used as a
  context manager that releases it.
- `xv6fs.log` is the crash-recovery `Log`. Opening a file system replays any
  committed transaction left in the log. Group changes with
  `Log.transaction()` as a context manager, or with `begin_op` and `end_op`;
  the transaction commits when the last operation in it ends.
- `xv6fs.fs` has `FileSystem`, which takes a path, a binary file object or a
  `BlockDevice`. It offers inode allocation, locking and reference counting
  (`ialloc`, `ilock`, `iunlock`, `iput`, `iunlockput`, `idup`), `readi` and
  `writei`, `itrunc`, `stati`, directory lookup and linking (`dirlookup`,
  `dirlink`), and path resolution with `namei` and `nameiparent`. Relative
  paths start at the `cwd` inode given, or at the root when none is given.
- `xv6fs.file` wraps inodes, devices and pipes as an `OpenFile` with `read`,
  `write`, `stat`, `dup` and `close`. Device files look up their driver in
  the `xv6fs.file.devsw` dictionary by major number; a driver is any object
  with `read(n)` and `write(data)`. `pipe_pair()` returns the read and write
  ends of a new `xv6fs.pipe.Pipe`, which holds at most 512 unread bytes.
- `xv6fs.sysfile` holds the path-level operations: `open_file` (with the
  `OpenMode` flags `RDONLY`, `WRONLY`, `RDWR`, `CREATE` and `TRUNC`),
  `create`, `link`, `unlink`, `mkdir` and `mknod`.

## Extras

- `xv6fs.lz` is a small LZ-style codec of (offset, length) byte pairs.
  `compress` and `decompress` work on bytes:

  ```python
  from xv6fs import lz

  packed = lz.compress(b"abcabcabcabc")
  assert lz.decompress(packed) == b"abcabcabcabc"
  ```

  `zip_file(fs, src, dst)` compresses a non-empty regular file of at most
  1024 bytes inside an image, and `unzip_file(fs, src, dst)` expands one of
  at most 2048 bytes; both return the size written.
- `xv6fs.diff` compares two files byte by byte. `compare_bytes` works on
  plain data and `diff(fs, path1, path2)` on regular files inside an image;
  both return a `DiffResult` with the `differences` count, the report
  `lines` and the report as `text`.
- `xv6fs.console.Console` models a line-editing console: `interrupt` feeds
  one typed character (backspace, delete, control-U to kill the line,
  control-D for end of file, control-P to call an optional callback),
  `read` returns input a line at a time, and everything echoed or written
  collects in `output`.
- `xv6fs.kformat` formats text like a kernel `printf`: `kformat` handles
  `%d`, `%u` and `%x` (with `l` and `ll`), `%p`, `%s` and `%%`;
  `format_hex_byte` and `format_dec` give single values.

## File tools

`xv6fs.tools` offers `copy_file` and `move_file` on files inside an image.
The destination is created if missing and overwritten from the start but
not truncated, so a shorter source leaves the old tail in place;
`move_file` then unlinks the source. Both are on the command line too:

```
xv6-tools cp fs.img README README.bak
xv6-tools mv fs.img README.bak notes
```

## What it does not do

There is no command to list directories or to extract files back to the
host, and images are not mounted into the host's own file system; use the
Python API for those. Nothing here runs programs stored in an image: there
are no processes, scheduler or memory management.