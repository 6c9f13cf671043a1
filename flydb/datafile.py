"""Data files: append-only logs of encoded records."""

from __future__ import annotations

import os
from collections.abc import Iterator

from .errors import InvalidCRCError
from .fileio import IOManager, open_io_manager
from .record import (
    CRC_SIZE,
    MAX_LOG_RECORD_HEADER_SIZE,
    LogRecord,
    LogRecordPos,
    LogRecordType,
    decode_log_record_header,
    encode_log_record,
    encode_log_record_pos,
    log_record_crc,
)

DATA_FILE_SUFFIX = ".data"
HINT_FILE_NAME = "hintIndex"
MERGE_FINISHED_FILE_NAME = "mergeFina"


def _record_type(value: int) -> int:
    try:
        return LogRecordType(value)
    except ValueError:
        return value


class DataFile:
    """One log file: records are appended at the end and read back by offset."""

    def __init__(self, file_id: int, io_manager: IOManager, write_off: int = 0) -> None:
        self.file_id = file_id
        self.io_manager = io_manager
        self.write_off = write_off

    def read_log_record(self, offset: int) -> tuple[LogRecord, int]:
        """Read the record at offset, returning it with its encoded size.

        Raises EOFError when no further record starts at offset.
        """
        file_size = self.io_manager.size()
        if offset >= file_size:
            raise EOFError(f"no record at offset {offset}")
        header_bytes = min(MAX_LOG_RECORD_HEADER_SIZE, file_size - offset)
        header_buf = self.io_manager.read(header_bytes, offset)

        decoded = decode_log_record_header(header_buf)
        if decoded is None:
            raise EOFError(f"no record at offset {offset}")
        header, header_size = decoded
        if header.crc == 0 and header.key_size == 0 and header.value_size == 0:
            raise EOFError(f"no record at offset {offset}")

        key_size, value_size = header.key_size, header.value_size
        kv = b""
        if key_size or value_size:
            kv = self.io_manager.read(key_size + value_size, offset + header_size)
        record = LogRecord(
            key=kv[:key_size],
            value=kv[key_size:],
            record_type=_record_type(header.record_type),
        )

        if log_record_crc(record, header_buf[CRC_SIZE:header_size]) != header.crc:
            raise InvalidCRCError()
        return record, header_size + key_size + value_size

    def iter_records(self, offset: int = 0) -> Iterator[tuple[int, LogRecord, int]]:
        """Yield (offset, record, size) for each record from offset to the end."""
        while True:
            try:
                record, size = self.read_log_record(offset)
            except EOFError:
                return
            yield offset, record, size
            offset += size

    def write(self, data: bytes) -> None:
        written = self.io_manager.write(data)
        self.write_off += written

    def write_hint_record(self, key: bytes, pos: LogRecordPos) -> None:
        """Append an index entry mapping key to its position."""
        record = LogRecord(key=bytes(key), value=encode_log_record_pos(pos))
        self.write(encode_log_record(record))

    def sync(self) -> None:
        self.io_manager.sync()

    def close(self) -> None:
        self.io_manager.close()

    def __enter__(self) -> DataFile:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def data_file_name(dir_path, file_id: int) -> str:
    return os.path.join(os.fspath(dir_path), f"{file_id:09d}{DATA_FILE_SUFFIX}")


def _open(path: str, file_id: int, file_size: int, fio_type) -> DataFile:
    return DataFile(file_id, open_io_manager(path, file_size, fio_type))


def open_data_file(dir_path, file_id: int, file_size: int, fio_type) -> DataFile:
    return _open(data_file_name(dir_path, file_id), file_id, file_size, fio_type)


def open_hint_file(dir_path, file_size: int, fio_type) -> DataFile:
    path = os.path.join(os.fspath(dir_path), HINT_FILE_NAME)
    return _open(path, 0, file_size, fio_type)


def open_merge_finished_file(dir_path, file_size: int, fio_type) -> DataFile:
    path = os.path.join(os.fspath(dir_path), MERGE_FINISHED_FILE_NAME)
    return _open(path, 0, file_size, fio_type)