"""Atomic batch writes: records become visible together or not at all."""

from __future__ import annotations

import threading

from .db import DB
from .errors import ExceedMaxBatchNumError, KeyIsEmptyError
from .options import WriteBatchOptions
from .record import (
    TRANS_FINISHED_KEY,
    LogRecord,
    LogRecordPos,
    LogRecordType,
    encode_key_with_seq,
)


class WriteBatch:
    """Collects puts and deletes and writes them to the database as one transaction."""

    def __init__(self, db: DB, options: WriteBatchOptions | None = None) -> None:
        self.db = db
        self.options = options or WriteBatchOptions()
        self._lock = threading.Lock()
        self._pending: dict[bytes, LogRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def put(self, key: bytes, value: bytes | None) -> None:
        """Stage key with value."""
        if not key:
            raise KeyIsEmptyError()
        key = bytes(key)
        with self._lock:
            self._pending[key] = LogRecord(
                key=key,
                value=bytes(value or b""),
                record_type=LogRecordType.NORMAL,
            )

    def delete(self, key: bytes) -> None:
        """Stage the removal of key; an absent key only drops what is staged for it."""
        if not key:
            raise KeyIsEmptyError()
        key = bytes(key)
        with self._lock:
            if self.db._index.get(key) is None:
                self._pending.pop(key, None)
                return
            self._pending[key] = LogRecord(key=key, record_type=LogRecordType.DELETED)

    def commit(self) -> None:
        """Write the staged records and a completion marker, then update the index."""
        with self._lock:
            if not self._pending:
                return
            if len(self._pending) > self.options.max_batch_num:
                raise ExceedMaxBatchNumError()

            db = self.db
            with db._lock:
                seq_no = db._next_trans_seq_no()
                positions: dict[bytes, LogRecordPos] = {}
                for key, record in self._pending.items():
                    positions[key] = db._append_log_record(
                        LogRecord(
                            key=encode_key_with_seq(record.key, seq_no),
                            value=record.value,
                            record_type=record.record_type,
                        )
                    )
                db._append_log_record(
                    LogRecord(
                        key=encode_key_with_seq(TRANS_FINISHED_KEY, seq_no),
                        record_type=LogRecordType.TRANS_FINISHED,
                    )
                )
                if self.options.sync_writes and db._active_file is not None:
                    db._active_file.sync()

                for key, record in self._pending.items():
                    if record.record_type == LogRecordType.NORMAL:
                        db._index.put(key, positions[key])
                    elif record.record_type == LogRecordType.DELETED:
                        db._index.delete(key)

            self._pending = {}