import pytest

from xv6fs.file import devsw
from xv6fs.fs import FileSystem
from xv6fs.layout import FileType, FsError
from xv6fs.mkfs import make_image
from xv6fs.sysfile import OpenMode, create, link, mkdir, mknod, open_file, unlink

README = b"hello world\n"


@pytest.fixture
def fs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "readme").write_bytes(README)
    make_image("fs.img", ["readme"])
    with FileSystem("fs.img") as filesystem:
        yield filesystem


def read_all(fs, path):
    with open_file(fs, path, OpenMode.RDONLY) as f:
        return f.read(1 << 20)


def write_new(fs, path, data):
    with open_file(fs, path, OpenMode.CREATE | OpenMode.WRONLY) as f:
        return f.write(data)


def nlink_of(fs, path):
    with open_file(fs, path, OpenMode.RDONLY) as f:
        return f.stat().nlink


class FakeDevice:
    def __init__(self):
        self.written = b""

    def read(self, n):
        return b""

    def write(self, data):
        self.written += data
        return len(data)


def test_open_existing_file(fs):
    assert read_all(fs, "/readme") == README


def test_open_missing_raises(fs):
    with pytest.raises(FsError):
        open_file(fs, "/nothing", OpenMode.RDONLY)


def test_create_write_and_reopen(fs):
    assert write_new(fs, "/notes", b"some text") == 9
    assert read_all(fs, "/notes") == b"some text"


def test_write_only_file_not_readable(fs):
    with open_file(fs, "/readme", OpenMode.WRONLY) as f:
        with pytest.raises(FsError):
            f.read(1)


def test_trunc_empties_file(fs):
    with open_file(fs, "/readme", OpenMode.WRONLY | OpenMode.TRUNC) as f:
        assert f.stat().size == 0
    assert read_all(fs, "/readme") == b""


def test_directory_only_opens_read_only(fs):
    with open_file(fs, "/", OpenMode.RDONLY) as f:
        assert f.stat().type == FileType.DIR
    with pytest.raises(FsError):
        open_file(fs, "/", OpenMode.RDWR)


def test_mkdir_and_nested_file(fs):
    before = nlink_of(fs, "/")
    mkdir(fs, "/d")
    assert nlink_of(fs, "/") == before + 1
    write_new(fs, "/d/f", b"inner")
    assert read_all(fs, "/d/f") == b"inner"
    assert read_all(fs, "d/../d/f") == b"inner"


def test_mkdir_existing_raises(fs):
    mkdir(fs, "/d")
    with pytest.raises(FsError):
        mkdir(fs, "/d")


def test_create_returns_existing_file_locked(fs):
    with fs.log.transaction():
        ip = create(fs, "/readme", FileType.FILE, 0, 0)
        assert ip.held
        assert ip.size == len(README)
        fs.iunlockput(ip)


def test_link_shares_inode(fs):
    link(fs, "/readme", "/alias")
    assert read_all(fs, "/alias") == README
    assert nlink_of(fs, "/readme") == 2


def test_link_directory_raises(fs):
    mkdir(fs, "/d")
    with pytest.raises(FsError):
        link(fs, "/d", "/d2")


def test_link_to_missing_parent_restores_nlink(fs):
    with pytest.raises(FsError):
        link(fs, "/readme", "/nodir/x")
    assert nlink_of(fs, "/readme") == 1


def test_unlink_removes_name(fs):
    link(fs, "/readme", "/alias")
    unlink(fs, "/alias")
    assert nlink_of(fs, "/readme") == 1
    unlink(fs, "/readme")
    with pytest.raises(FsError):
        open_file(fs, "/readme", OpenMode.RDONLY)


def test_unlink_dot_raises(fs):
    mkdir(fs, "/d")
    with pytest.raises(FsError):
        unlink(fs, "/d/.")


def test_unlink_missing_raises(fs):
    with pytest.raises(FsError):
        unlink(fs, "/ghost")


def test_unlink_nonempty_directory(fs):
    before = nlink_of(fs, "/")
    mkdir(fs, "/d")
    write_new(fs, "/d/f", b"x")
    with pytest.raises(FsError):
        unlink(fs, "/d")
    unlink(fs, "/d/f")
    unlink(fs, "/d")
    assert nlink_of(fs, "/") == before
    with pytest.raises(FsError):
        open_file(fs, "/d", OpenMode.RDONLY)


def test_unlinked_blocks_are_reused(fs):
    write_new(fs, "/a", b"q" * 3000)
    with open_file(fs, "/a", OpenMode.RDONLY) as f:
        first = f.stat().ino
    unlink(fs, "/a")
    write_new(fs, "/b", b"r" * 3000)
    with open_file(fs, "/b", OpenMode.RDONLY) as f:
        assert f.stat().ino == first
    assert read_all(fs, "/b") == b"r" * 3000


def test_mknod_device_file(fs, monkeypatch):
    dev = FakeDevice()
    monkeypatch.setitem(devsw, 1, dev)
    mknod(fs, "/console", 1, 0)
    with open_file(fs, "/console", OpenMode.RDWR) as f:
        assert f.write(b"hi") == 2
        assert f.stat().type == FileType.DEVICE
    assert dev.written == b"hi"


def test_mknod_bad_major_cannot_open(fs):
    mknod(fs, "/bad", 99, 0)
    with pytest.raises(FsError):
        open_file(fs, "/bad", OpenMode.RDONLY)


def test_open_create_on_device_returns_device(fs, monkeypatch):
    dev = FakeDevice()
    monkeypatch.setitem(devsw, 1, dev)
    mknod(fs, "/console", 1, 0)
    with open_file(fs, "/console", OpenMode.CREATE | OpenMode.WRONLY) as f:
        assert f.stat().type == FileType.DEVICE
        assert f.write(b"ok") == 2
    assert dev.written == b"ok"