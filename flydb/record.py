"""Log record encoding: the on-disk format of every entry in a data file."""

from __future__ import annotations

import itertools
import struct
import zlib
from dataclasses import dataclass
from enum import IntEnum

from .errors import InvalidCRCError

MAX_VARINT_LEN16 = 3
MAX_VARINT_LEN32 = 5
MAX_VARINT_LEN64 = 10
CRC_SIZE = 4

# crc (4) + type (1) + key size (max 5) + value size (max 5)
MAX_LOG_RECORD_HEADER_SIZE = MAX_VARINT_LEN32 * 2 + 5

NON_TRANSACTION_SEQ_NO = 0
TRANS_FINISHED_KEY = b"lgr-fina"

_MASK32 = 0xFFFFFFFF
_MASK64 = (1 << 64) - 1


class LogRecordType(IntEnum):
    NORMAL = 0
    DELETED = 1
    TRANS_FINISHED = 2


@dataclass
class LogRecord:
    """A record written to a data file."""

    key: bytes
    value: bytes = b""
    record_type: int = LogRecordType.NORMAL


@dataclass(frozen=True)
class LogRecordHeader:
    crc: int
    record_type: int
    key_size: int
    value_size: int


@dataclass(frozen=True)
class LogRecordPos:
    """Where a record lives on disk: file id and offset within it."""

    fid: int
    offset: int


@dataclass
class TransactionRecord:
    """A record held back until its transaction is seen to finish."""

    record: LogRecord
    pos: LogRecordPos


def _put_uvarint(value: int) -> bytes:
    value &= _MASK64
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def _put_varint(value: int) -> bytes:
    return _put_uvarint((value << 1) ^ (value >> 63))


def _uvarint(buf: bytes, pos: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint; n is 0 if incomplete, negative on overflow."""
    x = 0
    shift = 0
    for i, b in enumerate(itertools.islice(buf, pos, None)):
        if i == MAX_VARINT_LEN64:
            return 0, -(i + 1)
        if b < 0x80:
            if i == MAX_VARINT_LEN64 - 1 and b > 1:
                return 0, -(i + 1)
            return x | (b << shift), i + 1
        x |= (b & 0x7F) << shift
        shift += 7
    return 0, 0


def _varint(buf: bytes, pos: int = 0) -> tuple[int, int]:
    ux, n = _uvarint(buf, pos)
    x = ux >> 1
    if ux & 1:
        x = ~x
    return x, n


def encode_log_record(record: LogRecord) -> bytes:
    """Encode a record as crc | type | key size | value size | key | value."""
    key = bytes(record.key)
    value = bytes(record.value or b"")
    body = (
        bytes([int(record.record_type)])
        + _put_varint(len(key))
        + _put_varint(len(value))
        + key
        + value
    )
    return struct.pack("<I", zlib.crc32(body)) + body


def decode_log_record_header(buf: bytes) -> tuple[LogRecordHeader, int] | None:
    """Decode a header, returning it with its size, or None if buf is too short."""
    if len(buf) <= CRC_SIZE:
        return None
    crc = struct.unpack_from("<I", buf, 0)[0]
    record_type = buf[CRC_SIZE]
    index = CRC_SIZE + 1
    key_size, n = _varint(buf, index)
    if n < 0:
        raise InvalidCRCError()
    index += n
    value_size, n = _varint(buf, index)
    if n < 0:
        raise InvalidCRCError()
    index += n
    header = LogRecordHeader(
        crc=crc,
        record_type=record_type,
        key_size=key_size & _MASK32,
        value_size=value_size & _MASK32,
    )
    return header, index


def log_record_crc(record: LogRecord | None, header: bytes) -> int:
    """CRC of the header bytes after the checksum, then key, then value."""
    if record is None:
        return 0
    crc = zlib.crc32(bytes(header))
    crc = zlib.crc32(bytes(record.key), crc)
    return zlib.crc32(bytes(record.value or b""), crc)


def encode_log_record_pos(pos: LogRecordPos) -> bytes:
    return _put_varint(pos.fid) + _put_varint(pos.offset)


def decode_log_record_pos(buf: bytes) -> LogRecordPos:
    fid, n = _varint(buf, 0)
    offset, _ = _varint(buf, max(n, 0))
    return LogRecordPos(fid=fid & _MASK32, offset=offset)


def encode_key_with_seq(key: bytes, seq_no: int) -> bytes:
    """Prefix a key with its transaction sequence number."""
    return _put_uvarint(seq_no) + bytes(key)


def parse_key_and_seq(key: bytes) -> tuple[bytes, int]:
    """Split an encoded key into the real key and its sequence number."""
    seq_no, n = _uvarint(key, 0)
    if n < 0:
        raise ValueError("sequence number overflows 64 bits")
    return bytes(key[n:]), seq_no