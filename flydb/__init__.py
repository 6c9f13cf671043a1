"""An embedded key-value storage engine built on the bitcask log-structured model."""

__version__ = "1.0.0"

__all__ = ["batch", "datafile", "db", "errors", "fileio", "index", "merge", "options", "record"]