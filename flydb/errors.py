"""Exceptions raised by the storage engine."""

from __future__ import annotations


class FlyDBError(Exception):
    """Base class of every error raised by the engine."""

    default_message = "flydb error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class KeyIsEmptyError(FlyDBError, ValueError):
    default_message = "the key is empty"


class KeyNotFoundError(FlyDBError, LookupError):
    default_message = "key is not found in database"


class InvalidCRCError(FlyDBError):
    default_message = "InvalidCrcError : invalid crc value, log record maybe corrupted"


class DataFileNotFoundError(FlyDBError):
    default_message = "data file is not found"


class DataDirectoryCorruptedError(FlyDBError):
    default_message = "the database directory maybe corrupted"


class IndexUpdateFailedError(FlyDBError):
    default_message = "failed to update index"


class MergeInProgressError(FlyDBError):
    default_message = "merge is in progress, try again later"


class ExceedMaxBatchNumError(FlyDBError):
    default_message = "exceed the max batch num"


class InvalidOptionError(FlyDBError, ValueError):
    default_message = "invalid database option"


class FileSizeExceededError(FlyDBError):
    default_message = "exceed file max content length"