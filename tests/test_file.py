import pytest

from xv6fs.file import OpenFile, devsw, pipe_pair
from xv6fs.fs import FileSystem
from xv6fs.layout import FileType, FsError, Panic
from xv6fs.mkfs import make_image
from xv6fs.sysfile import OpenMode, open_file

README = b"hello world\n"


@pytest.fixture
def fs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "readme").write_bytes(README)
    make_image("fs.img", ["readme"])
    with FileSystem("fs.img") as filesystem:
        yield filesystem


class FakeDevice:
    def __init__(self):
        self.written = b""

    def read(self, n):
        return b"z" * n

    def write(self, data):
        self.written += data
        return len(data)


def test_pipe_pair_round_trip():
    r, w = pipe_pair()
    assert w.write(b"ping") == 4
    assert r.read(10) == b"ping"


def test_pipe_ends_enforce_direction():
    r, w = pipe_pair()
    with pytest.raises(FsError):
        r.write(b"x")
    with pytest.raises(FsError):
        w.read(1)


def test_dup_keeps_pipe_open_until_last_close():
    r, w = pipe_pair()
    w.dup()
    w.close()
    w.write(b"still")
    w.close()
    assert r.read(10) == b"still"
    assert r.read(10) == b""


def test_close_too_often_panics():
    r, _ = pipe_pair()
    r.close()
    with pytest.raises(Panic):
        r.close()


def test_read_after_close_raises():
    r, _ = pipe_pair()
    r.close()
    with pytest.raises(FsError):
        r.read(1)


def test_pipe_stat_raises():
    r, _ = pipe_pair()
    with pytest.raises(FsError):
        r.stat()


def test_inode_read_advances_offset(fs):
    f = OpenFile(True, False, fs=fs, ip=fs.namei("/readme"))
    assert f.read(5) == README[:5]
    assert f.off == 5
    assert f.read(100) == README[5:]
    assert f.read(100) == b""
    f.close()


def test_inode_stat(fs):
    with OpenFile(True, False, fs=fs, ip=fs.namei("/readme")) as f:
        st = f.stat()
    assert st.size == len(README)
    assert st.type == FileType.FILE
    assert st.nlink == 1


def test_large_write_spans_transactions(fs):
    payload = bytes(range(251)) * 20
    with open_file(fs, "/big", OpenMode.CREATE | OpenMode.RDWR) as f:
        assert f.write(payload) == len(payload)
    with OpenFile(True, False, fs=fs, ip=fs.namei("/big")) as f:
        assert f.read(len(payload) + 10) == payload
        assert f.stat().size == len(payload)


def test_close_releases_inode_reference(fs):
    ip = fs.namei("/readme")
    f = OpenFile(True, False, fs=fs, ip=fs.idup(ip))
    assert ip.ref == 2
    f.close()
    assert ip.ref == 1
    fs.iput(ip)


def test_device_read_and_write(monkeypatch):
    dev = FakeDevice()
    monkeypatch.setitem(devsw, 1, dev)
    f = OpenFile(True, True, major=1)
    assert f.read(3) == b"zzz"
    assert f.write(b"out") == 3
    assert dev.written == b"out"


def test_missing_device_raises(monkeypatch):
    monkeypatch.delitem(devsw, 7, raising=False)
    f = OpenFile(True, True, major=7)
    with pytest.raises(FsError):
        f.read(1)
    with pytest.raises(FsError):
        f.write(b"x")


def test_constructor_needs_target():
    with pytest.raises(ValueError):
        OpenFile(True, True)