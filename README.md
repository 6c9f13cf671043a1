# flydb

An embedded key-value storage engine built on the bitcask model. Every write
is appended to a data file, and an in-memory index maps each key to the file
and offset of its latest record, so a read costs a single disk access.

The package has no dependencies outside the Python standard library.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Quick start

```python
from flydb.db import open_db
from flydb.options import Options

options = Options(dir_path="/tmp/flydb")

with open_db(options) as db:
    db.put(b"name", b"flydb-example")
    print(db.get(b"name"))        # b'flydb-example'
    db.delete(b"name")
```

`open_db(options)` is the same as `DB(options)`. Leaving the `with` block
closes the data files; `db.clean()` closes the database and removes its
directory.

Errors all derive from `flydb.errors.FlyDBError`:

- reading a missing key raises `KeyNotFoundError`
- an empty key raises `KeyIsEmptyError`
- an empty `dir_path` or a non-positive `data_file_size` raises `InvalidOptionError`
- a record whose checksum does not match raises `InvalidCRCError`

Deleting a key that is not present does nothing.

## Options

`flydb.options.Options` (a frozen dataclass) controls how a database is opened:

- `dir_path` – directory holding the data files (the system temporary
  directory by default); it is created if missing
- `data_file_size` – size at which the active data file is rotated
  (256 MiB by default)
- `sync_write` – flush to disk after every write (off by default)
- `index_type` – `IndexType.BTREE` or `IndexType.ART` (the default)
- `fio_type` – `FIOType.FILE_IO`, `FIOType.BUF_IO` or `FIOType.MMAP_IO`
  (the default)

Both index types keep keys in memory and iterate them in sorted byte order.
With `MMAP_IO` each data file is grown to `data_file_size` while open and
trimmed back to its content when closed.

## Iterating

```python
from flydb.options import IteratorOptions

it = db.iterator(IteratorOptions(prefix=b"user:", reverse=False))
it.rewind()
while it.valid():
    print(it.key(), it.value())
    it.next()
it.close()
```

An iterator works on a snapshot of the keys taken when it is created.
`seek(key)` moves to the first key at or after `key`, or at or before it when
`reverse` is set. Iterating over the object itself yields `(key, value)`
pairs from the start:

```python
for key, value in db.iterator():
    ...
```

`db.list_keys()` returns every key in ascending order, and `db.fold(fn)`
calls `fn(key, value)` for each pair in key order until `fn` returns a false
value.

## Atomic batches

```python
from flydb.batch import WriteBatch
from flydb.options import WriteBatchOptions

batch = WriteBatch(db, WriteBatchOptions())
batch.put(b"a", b"1")
batch.delete(b"b")
batch.commit()
```

Nothing in a batch is visible until `commit()` succeeds. A commit holding more
than `max_batch_num` records (10,000 by default) raises
`ExceedMaxBatchNumError`. When the database is reopened, records of a batch
whose completion marker was never written are ignored.

## Compaction

`db.merge()` copies the live records into fresh data files in a sibling
directory (named after the data directory with `dbmerge` appended) and
writes a hint file of key positions. The merged files replace the old ones
the next time the database is opened, and the index is then loaded from the
hint file. Calling `merge()` while another merge runs raises
`MergeInProgressError`.

## Lower-level modules

- `flydb.record` – the on-disk record format (`encode_log_record`,
  `decode_log_record_header`, `LogRecordPos` and friends)
- `flydb.datafile` – `DataFile`, an append-only file of records, with
  `read_log_record(offset)` and `iter_records()`
- `flydb.fileio` – the `FileIO`, `BufIO` and `MMapIO` file access strategies,
  chosen by `open_io_manager`
- `flydb.index` – the in-memory indexes and their iterator
- `flydb.merge` – the helpers behind `DB.merge()` and its loading on open

## What it does not do

flydb is a library used inside one Python process. It has no network server,
no client, no command-line tool and no clustering or replication.