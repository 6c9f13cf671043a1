import dataclasses
import tempfile

import pytest

from flydb.options import (
    DEFAULT_DATA_FILE_SIZE,
    FIOType,
    IndexType,
    IteratorOptions,
    Options,
    WriteBatchOptions,
)


def test_default_options():
    opts = Options()
    assert opts.dir_path == tempfile.gettempdir()
    assert opts.data_file_size == 256 * 1024 * 1024
    assert opts.sync_write is False
    assert opts.index_type is IndexType.ART
    assert opts.fio_type is FIOType.MMAP_IO


def test_default_data_file_size_constant_matches_options():
    assert Options().data_file_size == DEFAULT_DATA_FILE_SIZE


def test_replace_keeps_other_fields():
    opts = Options()
    changed = dataclasses.replace(opts, dir_path="/somewhere", sync_write=True)
    assert changed.dir_path == "/somewhere"
    assert changed.sync_write is True
    assert changed.data_file_size == opts.data_file_size
    assert changed.index_type == opts.index_type
    assert opts.sync_write is False


def test_options_are_immutable():
    opts = Options()
    with pytest.raises(dataclasses.FrozenInstanceError):
        opts.dir_path = "/elsewhere"
    assert opts.dir_path == tempfile.gettempdir()


def test_iterator_defaults():
    it = IteratorOptions()
    assert it.prefix == b""
    assert it.reverse is False


def test_write_batch_defaults():
    wb = WriteBatchOptions()
    assert wb.max_batch_num == 10000
    assert wb.sync_writes is True


def test_enum_orderings():
    assert FIOType.FILE_IO < FIOType.BUF_IO < FIOType.MMAP_IO
    assert IndexType.BTREE < IndexType.ART
    assert FIOType(int(FIOType.BUF_IO)) is FIOType.BUF_IO