import io
import struct
import threading

import pytest

from xv6fs.disk import BlockDevice, BufferCache
from xv6fs.layout import BSIZE, FsError, Panic, Superblock
from xv6fs.log import Log

LOGSTART = 2


def make_log(nblocks=64, nlog=10, device_bytes=None, **kw):
    raw = device_bytes if device_bytes is not None else bytes(nblocks * BSIZE)
    dev = BlockDevice(io.BytesIO(raw))
    cache = BufferCache(dev, nbuf=30)
    sb = Superblock(size=nblocks, nlog=nlog, logstart=LOGSTART)
    return dev, cache, Log(cache, sb, **kw)


def header_count(dev):
    return struct.unpack_from("<i", dev.read_block(LOGSTART))[0]


def test_commit_installs_block_at_home():
    dev, cache, log = make_log()
    with log.transaction():
        with cache.bread(40) as buf:
            buf.data[:5] = b"hello"
            log.log_write(buf)
        assert dev.read_block(40) == bytes(BSIZE)
        assert log.pending == (40,)
    assert dev.read_block(40)[:5] == b"hello"
    assert dev.read_block(LOGSTART + 1)[:5] == b"hello"
    assert log.pending == ()
    assert header_count(dev) == 0


def test_logged_buffer_is_pinned_until_commit():
    _, cache, log = make_log()
    with log.transaction():
        with cache.bread(41) as buf:
            log.log_write(buf)
        assert buf.refcnt == 1
    assert buf.refcnt == 0


def test_absorption_logs_block_once():
    _, cache, log = make_log()
    log.begin_op()
    with cache.bread(42) as buf:
        log.log_write(buf)
        log.log_write(buf)
    assert log.pending == (42,)
    log.end_op()
    assert log.pending == ()


def test_log_write_outside_transaction_panics():
    _, cache, log = make_log()
    with cache.bread(43) as buf:
        with pytest.raises(Panic):
            log.log_write(buf)


def test_too_big_transaction_panics():
    dev, cache, log = make_log(nlog=5, maxopblocks=2)
    with pytest.raises(Panic):
        with log.transaction():
            for blockno in range(30, 35):
                with cache.bread(blockno) as buf:
                    buf.data[0] = blockno
                    log.log_write(buf)
    # The four blocks logged before the failure were committed.
    assert [dev.read_block(b)[0] for b in range(30, 34)] == [30, 31, 32, 33]
    assert dev.read_block(34)[0] == 0


def test_commit_waits_for_last_operation():
    dev, cache, log = make_log(maxopblocks=3)
    log.begin_op()
    log.begin_op()
    assert log.outstanding == 2
    with cache.bread(44) as buf:
        buf.data[0] = 0xAB
        log.log_write(buf)
    log.end_op()
    assert dev.read_block(44)[0] == 0
    log.end_op()
    assert dev.read_block(44)[0] == 0xAB
    assert log.outstanding == 0
    assert log.committing is False


def test_begin_op_waits_for_log_space():
    _, _, log = make_log(nlog=6, maxopblocks=3)
    log.begin_op()
    log.begin_op()
    entered = threading.Event()

    def third():
        log.begin_op()
        entered.set()

    worker = threading.Thread(target=third)
    worker.start()
    worker.join(0.2)
    assert not entered.is_set()
    log.end_op()
    log.end_op()
    worker.join(5)
    assert entered.is_set()
    log.end_op()
    assert log.outstanding == 0


def test_recovery_installs_committed_transaction():
    raw = bytearray(64 * BSIZE)
    struct.pack_into("<ii", raw, LOGSTART * BSIZE, 1, 50)
    pattern = bytes(range(256)) * (BSIZE // 256)
    raw[(LOGSTART + 1) * BSIZE:(LOGSTART + 2) * BSIZE] = pattern
    dev, _, log = make_log(device_bytes=bytes(raw))
    assert dev.read_block(50) == pattern
    assert header_count(dev) == 0
    assert log.pending == ()


def test_recovery_of_empty_log_changes_nothing():
    raw = bytearray(64 * BSIZE)
    raw[20 * BSIZE] = 7
    dev, _, _ = make_log(device_bytes=bytes(raw))
    assert dev.read_block(20)[0] == 7
    assert header_count(dev) == 0


def test_corrupt_header_is_rejected():
    raw = bytearray(64 * BSIZE)
    struct.pack_into("<i", raw, LOGSTART * BSIZE, 50)
    with pytest.raises(FsError):
        make_log(device_bytes=bytes(raw))


def test_header_larger_than_block_panics():
    with pytest.raises(Panic):
        make_log(nlog=255)


def test_maxopblocks_larger_than_log_is_rejected():
    with pytest.raises(ValueError):
        make_log(nlog=5, maxopblocks=6)