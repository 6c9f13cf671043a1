"""Merging: rewrite live records into fresh files and build a hint index."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable

from .datafile import (
    HINT_FILE_NAME,
    MERGE_FINISHED_FILE_NAME,
    DataFile,
    data_file_name,
    open_data_file,
    open_hint_file,
    open_merge_finished_file,
)
from .index import Indexer
from .options import Options
from .record import (
    NON_TRANSACTION_SEQ_NO,
    LogRecord,
    LogRecordPos,
    decode_log_record_pos,
    encode_key_with_seq,
    encode_log_record,
    parse_key_and_seq,
)

MERGE_DIR_SUFFIX = "dbmerge"
MERGE_FINISHED_KEY = b"mergeFina.finished"

_MASK32 = 0xFFFFFFFF


def merge_path(dir_path) -> str:
    """Directory a merge of dir_path is written to: a sibling named <base>dbmerge."""
    cleaned = os.path.normpath(os.fspath(dir_path))
    parent = os.path.dirname(cleaned)
    base = os.path.basename(cleaned)
    return os.path.join(parent, base + MERGE_DIR_SUFFIX)


class _MergeWriter:
    """Appends records to data files in a directory, rolling over at the size limit."""

    def __init__(self, dir_path: str, file_size: int, fio_type) -> None:
        self._dir_path = dir_path
        self._file_size = file_size
        self._fio_type = fio_type
        self._active: DataFile | None = None
        self._older: list[DataFile] = []

    def _open(self, file_id: int) -> DataFile:
        return open_data_file(self._dir_path, file_id, self._file_size, self._fio_type)

    def append(self, record: LogRecord) -> LogRecordPos:
        encoded = encode_log_record(record)
        if self._active is None:
            self._active = self._open(0)
        if self._active.write_off + len(encoded) > self._file_size:
            self._active.sync()
            self._older.append(self._active)
            self._active = self._open(self._active.file_id + 1)
        offset = self._active.write_off
        self._active.write(encoded)
        return LogRecordPos(fid=self._active.file_id, offset=offset)

    def sync(self) -> None:
        if self._active is not None:
            self._active.sync()

    def close(self) -> None:
        files = list(self._older)
        if self._active is not None:
            files.append(self._active)
        for data_file in files:
            data_file.close()
        self._older = []
        self._active = None


def _remove_path(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


def write_merge_files(
    files: Iterable[DataFile],
    index: Indexer,
    options: Options,
    non_merge_file_id: int,
) -> str:
    """Rewrite the records of files that index still points at into the merge directory.

    Also writes a hint file mapping each key to its new position and a marker
    recording non_merge_file_id, the first file that took no part in the merge.
    Returns the merge directory.
    """
    path = merge_path(options.dir_path)
    if os.path.lexists(path):
        _remove_path(path)
    os.makedirs(path, exist_ok=True)

    file_size = options.data_file_size
    fio_type = options.fio_type
    writer = _MergeWriter(path, file_size, fio_type)
    hint_file = open_hint_file(path, file_size, fio_type)
    try:
        for data_file in sorted(files, key=lambda f: f.file_id):
            for offset, record, _size in data_file.iter_records():
                real_key, _ = parse_key_and_seq(record.key)
                pos = index.get(real_key)
                if pos is None or pos.fid != data_file.file_id or pos.offset != offset:
                    continue
                rewritten = LogRecord(
                    key=encode_key_with_seq(real_key, NON_TRANSACTION_SEQ_NO),
                    value=record.value,
                    record_type=record.record_type,
                )
                new_pos = writer.append(rewritten)
                hint_file.write_hint_record(real_key, new_pos)

        hint_file.sync()
        writer.sync()
    finally:
        hint_file.close()
        writer.close()

    marker = LogRecord(
        key=MERGE_FINISHED_KEY,
        value=str(non_merge_file_id).encode(),
    )
    with open_merge_finished_file(path, file_size, fio_type) as finished_file:
        finished_file.write(encode_log_record(marker))
        finished_file.sync()
    return path


def recently_non_merge_file_id(dir_path, data_file_size: int, fio_type) -> int:
    """Id of the first data file that did not take part in the last merge."""
    with open_merge_finished_file(dir_path, data_file_size, fio_type) as finished_file:
        record, _ = finished_file.read_log_record(0)
    return int(bytes(record.value).decode()) & _MASK32


def load_merge_files(dir_path, data_file_size: int, fio_type) -> bool:
    """Move the results of a finished merge into dir_path.

    Data files replaced by the merge are removed first. The merge directory is
    deleted in every case. Returns whether a finished merge was applied.
    """
    dir_path = os.fspath(dir_path)
    path = merge_path(dir_path)
    if not os.path.exists(path):
        return False
    try:
        names = os.listdir(path)
        if MERGE_FINISHED_FILE_NAME not in names:
            return False

        non_merge_id = recently_non_merge_file_id(path, data_file_size, fio_type)
        for file_id in range(non_merge_id):
            old_name = data_file_name(dir_path, file_id)
            if os.path.exists(old_name):
                os.remove(old_name)

        for name in names:
            os.replace(os.path.join(path, name), os.path.join(dir_path, name))
        return True
    finally:
        shutil.rmtree(path, ignore_errors=True)


def load_index_from_hint_file(index: Indexer, dir_path, data_file_size: int, fio_type) -> int:
    """Fill index from the hint file in dir_path, returning the entries read."""
    hint_name = os.path.join(os.fspath(dir_path), HINT_FILE_NAME)
    if not os.path.exists(hint_name):
        return 0
    count = 0
    with open_hint_file(dir_path, data_file_size, fio_type) as hint_file:
        for _offset, record, _size in hint_file.iter_records():
            index.put(record.key, decode_log_record_pos(record.value))
            count += 1
    return count