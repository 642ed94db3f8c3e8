import pytest

from xv6fs.fs import FileSystem
from xv6fs.layout import FsError
from xv6fs.mkfs import make_image
from xv6fs.sysfile import OpenMode, mkdir, open_file
from xv6fs.tools import copy_file, main, move_file


@pytest.fixture
def image(tmp_path):
    img = tmp_path / "fs.img"
    make_image(img)
    return img


@pytest.fixture
def fs(image):
    with FileSystem(image) as filesystem:
        yield filesystem


def write_file(fs, path, data):
    with open_file(fs, path, OpenMode.CREATE | OpenMode.RDWR) as f:
        f.write(data)


def read_file(fs, path):
    chunks = []
    with open_file(fs, path, OpenMode.RDONLY) as f:
        while chunk := f.read(1024):
            chunks.append(chunk)
    return b"".join(chunks)


def test_copy(fs):
    write_file(fs, "src", b"some text")
    assert copy_file(fs, "src", "dst") == len(b"some text")
    assert read_file(fs, "dst") == b"some text"
    assert read_file(fs, "src") == b"some text"


def test_copy_many_chunks(fs):
    data = bytes(range(256)) * 10
    write_file(fs, "src", data)
    copy_file(fs, "src", "dst")
    assert read_file(fs, "dst") == data


def test_copy_overwrites_without_truncating(fs):
    write_file(fs, "dst", b"XXXXXXXX")
    write_file(fs, "src", b"ab")
    copy_file(fs, "src", "dst")
    assert read_file(fs, "dst") == b"ab" + b"XXXXXXXX"[2:]


def test_copy_missing_source(fs):
    with pytest.raises(FsError, match="cp: cannot open source file"):
        copy_file(fs, "missing", "dst")


def test_copy_to_directory(fs):
    write_file(fs, "src", b"x")
    mkdir(fs, "d")
    with pytest.raises(FsError, match="cp: cannot create destination file"):
        copy_file(fs, "src", "d")


def test_move(fs):
    write_file(fs, "src", b"moving")
    move_file(fs, "src", "dst")
    assert read_file(fs, "dst") == b"moving"
    with pytest.raises(FsError):
        open_file(fs, "src", OpenMode.RDONLY)


def test_move_missing_source(fs):
    with pytest.raises(FsError, match="mv: cannot open source file"):
        move_file(fs, "missing", "dst")


def test_main_usage(capsys):
    assert main(["cp", "only-one"]) == 1
    assert "Usage: cp" in capsys.readouterr().err


def test_main_copy(image):
    with FileSystem(image) as fs:
        write_file(fs, "a", b"payload")
    assert main(["cp", str(image), "a", "b"]) == 0
    with FileSystem(image) as fs:
        assert read_file(fs, "b") == b"payload"


def test_main_move(image):
    with FileSystem(image) as fs:
        write_file(fs, "a", b"payload")
    assert main(["mv", str(image), "a", "b"]) == 0
    with FileSystem(image) as fs:
        assert read_file(fs, "b") == b"payload"
        with pytest.raises(FsError):
            open_file(fs, "a", OpenMode.RDONLY)


def test_main_error(image, capsys):
    assert main(["cp", str(image), "missing", "b"]) == 1
    assert "cp: cannot open source file" in capsys.readouterr().err