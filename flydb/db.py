"""The storage engine: a log-structured key/value store with an in-memory index."""

from __future__ import annotations

import dataclasses
import logging
import os
import shutil
import threading
from collections.abc import Callable
from collections.abc import Iterator as TypingIterator

from .datafile import (
    DATA_FILE_SUFFIX,
    MERGE_FINISHED_FILE_NAME,
    DataFile,
    open_data_file,
)
from .errors import (
    DataDirectoryCorruptedError,
    DataFileNotFoundError,
    IndexUpdateFailedError,
    InvalidOptionError,
    KeyIsEmptyError,
    KeyNotFoundError,
    MergeInProgressError,
)
from .index import IndexIterator, new_indexer
from .merge import (
    load_index_from_hint_file,
    load_merge_files,
    recently_non_merge_file_id,
    write_merge_files,
)
from .options import IteratorOptions, Options
from .record import (
    NON_TRANSACTION_SEQ_NO,
    LogRecord,
    LogRecordPos,
    LogRecordType,
    TransactionRecord,
    encode_key_with_seq,
    encode_log_record,
    parse_key_and_seq,
)

logger = logging.getLogger(__name__)


def _check_options(options: Options) -> None:
    if not options.dir_path:
        raise InvalidOptionError("database dir path is empty")
    if options.data_file_size <= 0:
        raise InvalidOptionError("database data file size must be greater than 0")


def _require_key(key) -> bytes:
    if not key:
        raise KeyIsEmptyError()
    return bytes(key)


class DB:
    """A bitcask-style database: appends records to log files, keeps positions in memory."""

    def __init__(self, options: Options | None = None) -> None:
        options = options or Options()
        _check_options(options)
        options = dataclasses.replace(options, dir_path=os.fspath(options.dir_path))
        logger.info("open db: %s", options)

        self.options = options
        self._lock = threading.RLock()
        self._file_ids: list[int] = []
        self._active_file: DataFile | None = None
        self._older_files: dict[int, DataFile] = {}
        self._index = new_indexer(options.index_type, options.dir_path)
        self._trans_seq_no = NON_TRANSACTION_SEQ_NO
        self._merging = False
        self._closed = False

        os.makedirs(options.dir_path, exist_ok=True)
        try:
            load_merge_files(options.dir_path, options.data_file_size, options.fio_type)
            self._load_data_files()
            load_index_from_hint_file(
                self._index, options.dir_path, options.data_file_size, options.fio_type
            )
            self._load_index_from_data_files()
        except BaseException:
            self._close_files()
            raise

    # -- loading -------------------------------------------------------------

    def _load_data_files(self) -> None:
        try:
            names = os.listdir(self.options.dir_path)
        except OSError:
            return
        file_ids = []
        for name in names:
            if not name.endswith(DATA_FILE_SUFFIX):
                continue
            try:
                file_ids.append(int(name.split(".")[0]))
            except ValueError:
                raise DataDirectoryCorruptedError() from None
        file_ids.sort()
        self._file_ids = file_ids

        for i, fid in enumerate(file_ids):
            data_file = open_data_file(
                self.options.dir_path, fid, self.options.data_file_size, self.options.fio_type
            )
            if i == len(file_ids) - 1:
                self._active_file = data_file
            else:
                self._older_files[fid] = data_file

    def _update_index(self, key: bytes, record_type: int, pos: LogRecordPos) -> None:
        if record_type == LogRecordType.DELETED:
            ok = self._index.delete(key)
        else:
            ok = self._index.put(key, pos)
        if not ok:
            raise IndexUpdateFailedError()

    def _load_index_from_data_files(self) -> None:
        if not self._file_ids:
            return
        opts = self.options
        has_merge = False
        non_merge_file_id = 0
        if os.path.exists(os.path.join(opts.dir_path, MERGE_FINISHED_FILE_NAME)):
            non_merge_file_id = recently_non_merge_file_id(
                opts.dir_path, opts.data_file_size, opts.fio_type
            )
            has_merge = True

        pending: dict[int, list[TransactionRecord]] = {}
        current_seq_no = NON_TRANSACTION_SEQ_NO
        last = len(self._file_ids) - 1

        for i, fid in enumerate(self._file_ids):
            if has_merge and fid < non_merge_file_id:
                continue
            data_file = self._data_file(fid)
            end = 0
            for offset, record, size in data_file.iter_records():
                pos = LogRecordPos(fid=fid, offset=offset)
                real_key, seq_no = parse_key_and_seq(record.key)
                if seq_no == NON_TRANSACTION_SEQ_NO:
                    self._update_index(real_key, record.record_type, pos)
                elif record.record_type == LogRecordType.TRANS_FINISHED:
                    for held in pending.pop(seq_no, []):
                        self._update_index(held.record.key, held.record.record_type, held.pos)
                else:
                    record.key = real_key
                    pending.setdefault(seq_no, []).append(TransactionRecord(record, pos))
                current_seq_no = max(current_seq_no, seq_no)
                end = offset + size
            if i == last and self._active_file is not None:
                self._active_file.write_off = end

        self._trans_seq_no = current_seq_no

    # -- internals shared with write batches ----------------------------------

    def _data_file(self, fid: int) -> DataFile | None:
        if self._active_file is not None and fid == self._active_file.file_id:
            return self._active_file
        return self._older_files.get(fid)

    def _set_active_data_file(self) -> None:
        file_id = 0 if self._active_file is None else self._active_file.file_id + 1
        self._active_file = open_data_file(
            self.options.dir_path, file_id, self.options.data_file_size, self.options.fio_type
        )

    def _append_log_record(self, record: LogRecord) -> LogRecordPos:
        """Append a record to the active file; the caller holds the lock."""
        if self._active_file is None:
            self._set_active_data_file()
        encoded = encode_log_record(record)
        if self._active_file.write_off + len(encoded) > self.options.data_file_size:
            self._active_file.sync()
            self._older_files[self._active_file.file_id] = self._active_file
            self._set_active_data_file()

        write_off = self._active_file.write_off
        self._active_file.write(encoded)
        if self.options.sync_write:
            self._active_file.sync()
        return LogRecordPos(fid=self._active_file.file_id, offset=write_off)

    def _append_log_record_with_lock(self, record: LogRecord) -> LogRecordPos:
        with self._lock:
            return self._append_log_record(record)

    def _next_trans_seq_no(self) -> int:
        with self._lock:
            self._trans_seq_no += 1
            return self._trans_seq_no

    def _value_at(self, pos: LogRecordPos) -> bytes:
        data_file = self._data_file(pos.fid)
        if data_file is None:
            raise DataFileNotFoundError()
        record, _ = data_file.read_log_record(pos.offset)
        if record.record_type == LogRecordType.DELETED:
            raise KeyNotFoundError()
        return record.value

    # -- public API ------------------------------------------------------------

    def put(self, key: bytes, value: bytes | None) -> None:
        """Write key with value; the key must not be empty."""
        key = _require_key(key)
        logger.debug("put %r", key)
        record = LogRecord(
            key=encode_key_with_seq(key, NON_TRANSACTION_SEQ_NO),
            value=bytes(value or b""),
            record_type=LogRecordType.NORMAL,
        )
        pos = self._append_log_record_with_lock(record)
        if not self._index.put(key, pos):
            raise IndexUpdateFailedError()

    def get(self, key: bytes) -> bytes:
        """Value stored under key; raises KeyNotFoundError when absent."""
        with self._lock:
            key = _require_key(key)
            pos = self._index.get(key)
            if pos is None:
                raise KeyNotFoundError()
            return self._value_at(pos)

    def delete(self, key: bytes) -> None:
        """Remove key; removing an absent key does nothing."""
        key = _require_key(key)
        logger.debug("delete %r", key)
        if self._index.get(key) is None:
            return
        record = LogRecord(
            key=encode_key_with_seq(key, NON_TRANSACTION_SEQ_NO),
            record_type=LogRecordType.DELETED,
        )
        self._append_log_record_with_lock(record)
        if not self._index.delete(key):
            raise IndexUpdateFailedError()

    def list_keys(self) -> list[bytes]:
        """All keys in ascending order."""
        return [key for key, _ in self._index.iterator(False)]

    def fold(self, fn: Callable[[bytes, bytes], bool]) -> None:
        """Call fn(key, value) for each entry in key order until it returns False."""
        with self._lock:
            for key, pos in self._index.iterator(False):
                if not fn(key, self._value_at(pos)):
                    break

    def iterator(self, options: IteratorOptions | None = None) -> Iterator:
        return Iterator(self, options)

    def merge(self) -> None:
        """Rewrite live records into compact files applied on the next open."""
        if self._active_file is None:
            return
        with self._lock:
            if self._merging:
                raise MergeInProgressError()
            self._merging = True
        try:
            with self._lock:
                self._active_file.sync()
                self._older_files[self._active_file.file_id] = self._active_file
                self._set_active_data_file()
                non_merge_file_id = self._active_file.file_id
                files = list(self._older_files.values())
            write_merge_files(files, self._index, self.options, non_merge_file_id)
        finally:
            self._merging = False

    def sync(self) -> None:
        if self._active_file is None:
            return
        with self._lock:
            self._active_file.sync()

    def _close_files(self) -> None:
        files = list(self._older_files.values())
        if self._active_file is not None:
            files.insert(0, self._active_file)
        for data_file in files:
            data_file.close()

    def close(self) -> None:
        """Close every data file."""
        logger.info("close db: %s", self.options.dir_path)
        if self._active_file is None:
            return
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_files()

    def clean(self) -> None:
        """Close the database and remove its directory."""
        try:
            self.close()
        except OSError:
            pass
        shutil.rmtree(self.options.dir_path, ignore_errors=False) if os.path.exists(
            self.options.dir_path
        ) else None

    def __enter__(self) -> DB:
        return self

    def __exit__(self, *args) -> None:
        self.close()


class Iterator:
    """Walks the database in key order, optionally reversed or limited to a prefix."""

    def __init__(self, db: DB, options: IteratorOptions | None = None) -> None:
        self._db = db
        self.options = options or IteratorOptions()
        self._index_iter: IndexIterator = db._index.iterator(self.options.reverse)
        self._skip_to_match()

    def _skip_to_match(self) -> None:
        prefix = bytes(self.options.prefix or b"")
        if not prefix:
            return
        while self._index_iter.valid() and not self._index_iter.key().startswith(prefix):
            self._index_iter.next()

    def rewind(self) -> None:
        self._index_iter.rewind()
        self._skip_to_match()

    def seek(self, key: bytes) -> None:
        self._index_iter.seek(key)
        self._skip_to_match()

    def next(self) -> None:
        self._index_iter.next()
        self._skip_to_match()

    def valid(self) -> bool:
        return self._index_iter.valid()

    def key(self) -> bytes:
        return self._index_iter.key()

    def value(self) -> bytes:
        pos = self._index_iter.value()
        with self._db._lock:
            return self._db._value_at(pos)

    def close(self) -> None:
        self._index_iter.close()

    def __iter__(self) -> TypingIterator[tuple[bytes, bytes]]:
        self.rewind()
        while self.valid():
            yield self.key(), self.value()
            self.next()


def open_db(options: Options | None = None) -> DB:
    """Open the database described by options."""
    return DB(options)