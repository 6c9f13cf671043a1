"""Configuration for the database, its iterators and write batches."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from enum import IntEnum

DEFAULT_ADDR = "127.0.0.1:8999"
DEFAULT_DATA_FILE_SIZE = 256 * 1024 * 1024


class FIOType(IntEnum):
    """How data files are read and written."""

    FILE_IO = 1  # standard file IO
    BUF_IO = 2  # file IO with a write buffer
    MMAP_IO = 3  # memory-mapped IO


class IndexType(IntEnum):
    """Which in-memory index keeps key positions."""

    BTREE = 1
    ART = 2


@dataclass(frozen=True)
class Options:
    """Settings for opening a database."""

    dir_path: str = field(default_factory=tempfile.gettempdir)
    data_file_size: int = DEFAULT_DATA_FILE_SIZE
    sync_write: bool = False
    index_type: IndexType = IndexType.ART
    fio_type: FIOType = FIOType.MMAP_IO


@dataclass(frozen=True)
class IteratorOptions:
    """Settings for iterating over the index."""

    prefix: bytes = b""
    reverse: bool = False


@dataclass(frozen=True)
class WriteBatchOptions:
    """Settings for atomic batch writes."""

    max_batch_num: int = 10000
    sync_writes: bool = True