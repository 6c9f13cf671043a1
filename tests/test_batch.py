import os

import pytest

from flydb.batch import WriteBatch
from flydb.db import DB
from flydb.errors import ExceedMaxBatchNumError, KeyIsEmptyError, KeyNotFoundError
from flydb.options import FIOType, Options, WriteBatchOptions


def make_key(i: int) -> bytes:
    return f"flydb-key-{i:09d}".encode()


def random_value(n: int) -> bytes:
    return os.urandom(n // 2 + 1).hex()[:n].encode()


@pytest.fixture
def options(tmp_path):
    return Options(
        dir_path=str(tmp_path / "db"),
        data_file_size=4 * 1024 * 1024,
        fio_type=FIOType.FILE_IO,
    )


@pytest.fixture
def db(options):
    database = DB(options)
    yield database
    database.close()


def test_write_batch_visibility(db):
    wb = WriteBatch(db, WriteBatchOptions())
    wb.put(make_key(1), random_value(10))
    wb.delete(make_key(2))

    with pytest.raises(KeyNotFoundError):
        db.get(make_key(1))

    wb.commit()
    assert len(db.get(make_key(1))) == 10

    wb2 = WriteBatch(db, WriteBatchOptions())
    wb2.delete(make_key(1))
    wb2.commit()
    with pytest.raises(KeyNotFoundError):
        db.get(make_key(1))


def test_write_batch_restart(options):
    db = DB(options)
    db.put(make_key(1), random_value(10))

    wb = WriteBatch(db, WriteBatchOptions())
    wb.put(make_key(2), random_value(10))
    wb.delete(make_key(1))
    wb.commit()

    value3 = random_value(10)
    wb.put(make_key(3), value3)
    wb.commit()
    db.close()

    db2 = DB(options)
    try:
        with pytest.raises(KeyNotFoundError):
            db2.get(make_key(1))
        assert db2.get(make_key(3)) == value3
        assert len(db2.get(make_key(2))) == 10
        assert db2._trans_seq_no == 2
    finally:
        db2.close()


def test_large_batch(db):
    wb = WriteBatch(db, WriteBatchOptions(max_batch_num=1_000_000))
    for i in range(3000):
        wb.put(make_key(i), random_value(256))
    wb.commit()
    assert len(db.list_keys()) == 3000
    assert len(db.get(make_key(2999))) == 256


def test_exceed_max_batch_num(db):
    wb = WriteBatch(db, WriteBatchOptions(max_batch_num=2))
    for i in range(3):
        wb.put(make_key(i), b"v")
    with pytest.raises(ExceedMaxBatchNumError):
        wb.commit()
    with pytest.raises(KeyNotFoundError):
        db.get(make_key(0))


def test_empty_key_rejected(db):
    wb = WriteBatch(db)
    with pytest.raises(KeyIsEmptyError):
        wb.put(b"", b"v")
    with pytest.raises(KeyIsEmptyError):
        wb.delete(b"")


def test_delete_of_absent_key_drops_staged_put(db):
    wb = WriteBatch(db)
    wb.put(make_key(5), b"value")
    assert len(wb) == 1
    wb.delete(make_key(5))
    assert len(wb) == 0
    wb.commit()
    with pytest.raises(KeyNotFoundError):
        db.get(make_key(5))


def test_empty_commit_writes_nothing(db):
    wb = WriteBatch(db)
    wb.commit()
    assert db.list_keys() == []
    assert db._trans_seq_no == 0


def test_commit_clears_pending(db):
    wb = WriteBatch(db)
    wb.put(make_key(7), b"seven")
    wb.commit()
    assert len(wb) == 0
    assert db.get(make_key(7)) == b"seven"
    assert db._trans_seq_no == 1