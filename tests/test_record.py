import pytest

from flydb.record import (
    CRC_SIZE,
    LogRecord,
    LogRecordPos,
    LogRecordType,
    decode_log_record_header,
    decode_log_record_pos,
    encode_key_with_seq,
    encode_log_record,
    encode_log_record_pos,
    log_record_crc,
    parse_key_and_seq,
)


def test_encode_log_record_sizes():
    buf1 = encode_log_record(LogRecord(b"name", b"flydb", LogRecordType.NORMAL))
    assert len(buf1) > 5
    buf2 = encode_log_record(LogRecord(b"name", record_type=LogRecordType.NORMAL))
    assert len(buf2) > 5
    buf3 = encode_log_record(LogRecord(b"name", b"flydb", LogRecordType.DELETED))
    assert len(buf3) > 5


def test_encode_log_record_bytes():
    assert encode_log_record(LogRecord(b"name", b"flydb")) == (
        bytes([98, 201, 3, 114, 0, 8, 10]) + b"nameflydb"
    )
    assert encode_log_record(LogRecord(b"name")) == (
        bytes([9, 252, 88, 14, 0, 8, 0]) + b"name"
    )
    assert encode_log_record(
        LogRecord(b"name", b"flydb", LogRecordType.DELETED)
    ) == bytes([13, 133, 166, 233, 1, 8, 10]) + b"nameflydb"


@pytest.mark.parametrize(
    "buf, crc, rtype, key_size, value_size",
    [
        ([98, 201, 3, 114, 0, 8, 10], 1912850786, LogRecordType.NORMAL, 4, 5),
        ([9, 252, 88, 14, 0, 8, 0], 240712713, LogRecordType.NORMAL, 4, 0),
        ([13, 133, 166, 233, 1, 8, 10], 3920004365, LogRecordType.DELETED, 4, 5),
    ],
)
def test_decode_log_record_header(buf, crc, rtype, key_size, value_size):
    result = decode_log_record_header(bytes(buf))
    assert result is not None
    header, size = result
    assert size == 7
    assert header.crc == crc
    assert header.record_type == rtype
    assert header.key_size == key_size
    assert header.value_size == value_size


def test_decode_header_too_short():
    assert decode_log_record_header(b"\x01\x02\x03\x04") is None
    assert decode_log_record_header(b"") is None


@pytest.mark.parametrize(
    "record, buf, expected",
    [
        (LogRecord(b"name", b"flydb"), [98, 201, 3, 114, 0, 8, 10], 1912850786),
        (LogRecord(b"name"), [9, 252, 88, 14, 0, 8, 0], 240712713),
        (
            LogRecord(b"name", b"flydb", LogRecordType.DELETED),
            [13, 133, 166, 233, 1, 8, 10],
            3920004365,
        ),
    ],
)
def test_log_record_crc(record, buf, expected):
    assert log_record_crc(record, bytes(buf)[CRC_SIZE:]) == expected


def test_log_record_crc_of_none():
    assert log_record_crc(None, b"abc") == 0


def test_encode_then_decode_round_trip():
    record = LogRecord(b"some-key" * 20, b"v" * 300, LogRecordType.TRANS_FINISHED)
    enc = encode_log_record(record)
    header, size = decode_log_record_header(enc)
    assert header.key_size == len(record.key)
    assert header.value_size == len(record.value)
    assert header.record_type == LogRecordType.TRANS_FINISHED
    key = enc[size : size + header.key_size]
    value = enc[size + header.key_size :]
    decoded = LogRecord(key, value, header.record_type)
    assert decoded == record
    assert log_record_crc(decoded, enc[CRC_SIZE:size]) == header.crc


@pytest.mark.parametrize(
    "pos",
    [
        LogRecordPos(1, 12),
        LogRecordPos(12, 123),
        LogRecordPos(0, 0),
        LogRecordPos(4294967295, 2**40),
    ],
)
def test_log_record_pos_round_trip(pos):
    assert decode_log_record_pos(encode_log_record_pos(pos)) == pos


def test_encode_key_with_seq_layout():
    assert encode_key_with_seq(b"key", 0) == b"\x00key"
    assert encode_key_with_seq(b"k", 1) == b"\x01k"


@pytest.mark.parametrize("seq", [0, 1, 127, 128, 300, 2**64 - 1])
def test_key_seq_round_trip(seq):
    real_key, parsed = parse_key_and_seq(encode_key_with_seq(b"lgr-fina", seq))
    assert real_key == b"lgr-fina"
    assert parsed == seq


def test_parse_key_overflow_raises():
    with pytest.raises(ValueError):
        parse_key_and_seq(b"\xff" * 11)