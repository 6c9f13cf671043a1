"""File access strategies behind data files: plain, buffered and memory-mapped."""

from __future__ import annotations

import mmap
import os
import threading
from abc import ABC, abstractmethod

from .errors import FileSizeExceededError
from .options import DEFAULT_DATA_FILE_SIZE, FIOType

DATA_FILE_PERM = 0o644
DEFAULT_FILE_SIZE = DEFAULT_DATA_FILE_SIZE


def _opener(path: str, flags: int) -> int:
    return os.open(path, flags, DATA_FILE_PERM)


def _read_exact(fileobj, n: int) -> bytes:
    chunks = []
    remaining = n
    while remaining > 0:
        chunk = fileobj.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class IOManager(ABC):
    """Reads at offsets and appends to one file."""

    @abstractmethod
    def read(self, n: int, offset: int) -> bytes:
        """Read n bytes starting at offset."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Append data, returning the number of bytes written."""

    @abstractmethod
    def sync(self) -> None:
        """Persist written data to disk."""

    @abstractmethod
    def close(self) -> None:
        """Close the file."""

    @abstractmethod
    def size(self) -> int:
        """Current size of the file's content."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FileIO(IOManager):
    """Unbuffered standard file IO."""

    def __init__(self, path) -> None:
        self.path = os.fspath(path)
        self._file = open(self.path, "a+b", buffering=0, opener=_opener)
        self._lock = threading.Lock()

    def read(self, n: int, offset: int) -> bytes:
        with self._lock:
            self._file.seek(offset)
            data = _read_exact(self._file, n)
        if len(data) < n:
            raise EOFError(f"short read: wanted {n} bytes at {offset}, got {len(data)}")
        return data

    def write(self, data: bytes) -> int:
        view = memoryview(bytes(data))
        with self._lock:
            while view:
                written = self._file.write(view)
                view = view[written:]
        return len(data)

    def sync(self) -> None:
        os.fsync(self._file.fileno())

    def close(self) -> None:
        self._file.close()

    def size(self) -> int:
        return os.fstat(self._file.fileno()).st_size


class BufIO(IOManager):
    """File IO that buffers writes until a read, flush, sync or close."""

    def __init__(self, path) -> None:
        self.path = os.fspath(path)
        self._file = open(self.path, "a+b", opener=_opener)
        self._lock = threading.Lock()

    def read(self, n: int, offset: int) -> bytes:
        with self._lock:
            self._file.flush()
            self._file.seek(offset)
            data = _read_exact(self._file, n)
        if len(data) < n:
            raise EOFError(f"short read: wanted {n} bytes at {offset}, got {len(data)}")
        return data

    def write(self, data: bytes) -> int:
        with self._lock:
            self._file.write(bytes(data))
        return len(data)

    def flush(self) -> None:
        with self._lock:
            self._file.flush()

    def sync(self) -> None:
        self.flush()
        os.fsync(self._file.fileno())

    def close(self) -> None:
        if self._file.closed:
            return
        self.flush()
        self._file.close()

    def size(self) -> int:
        self.flush()
        return os.fstat(self._file.fileno()).st_size


class MMapIO(IOManager):
    """Memory-mapped IO over a file grown to a fixed maximum size."""

    def __init__(self, path, file_size: int) -> None:
        if file_size <= 0:
            raise ValueError("file size must be positive")
        self.path = os.fspath(path)
        self._file_size = file_size
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, DATA_FILE_PERM)
        try:
            self._offset = os.fstat(fd).st_size
            # Grow to the maximum size; trimmed back to the content on close.
            os.ftruncate(fd, file_size)
            self._map: mmap.mmap | None = mmap.mmap(fd, file_size)
        except BaseException:
            os.close(fd)
            raise
        self._fd = fd
        self._dirty = False
        self._lock = threading.Lock()

    def read(self, n: int, offset: int) -> bytes:
        with self._lock:
            return bytes(self._map[offset : offset + n])

    def write(self, data: bytes) -> int:
        data = bytes(data)
        with self._lock:
            start = self._offset
            end = start + len(data)
            if end > self._file_size:
                raise FileSizeExceededError()
            self._map[start:end] = data
            self._offset = end
            self._dirty = True
        return len(data)

    def sync(self) -> None:
        with self._lock:
            if self._map is None or not self._dirty:
                return
            self._map.flush()
            self._dirty = False

    def close(self) -> None:
        if self._map is None:
            return
        self.sync()
        with self._lock:
            self._map.close()
            self._map = None
            os.ftruncate(self._fd, self._offset)
            os.close(self._fd)

    def size(self) -> int:
        return self._offset


def open_io_manager(path, file_size: int, fio_type) -> IOManager:
    """Open path with the IO strategy named by fio_type; unknown types use mmap."""
    try:
        kind = FIOType(fio_type)
    except ValueError:
        kind = FIOType.MMAP_IO
    if kind is FIOType.FILE_IO:
        return FileIO(path)
    if kind is FIOType.BUF_IO:
        return BufIO(path)
    return MMapIO(path, file_size)