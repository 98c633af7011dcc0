"""Incremental email archiving into a dated .eml tree."""

from .cache import ExistenceCache
from .engine import RunStats, SyncEngine
from .errors import ArchiveError, ConfigurationError, PersistenceError, SourceEnumerationError
from .layouts import TreeStore, archive_filename, archive_path
from .sources import EmlDirSource, ImapSource, Message, SearchQuery
from .watermark import MemoryPropertyStore, WatermarkStore, YamlPropertyStore

__all__ = [
    "ArchiveError",
    "ConfigurationError",
    "EmlDirSource",
    "ExistenceCache",
    "ImapSource",
    "MemoryPropertyStore",
    "Message",
    "PersistenceError",
    "RunStats",
    "SearchQuery",
    "SourceEnumerationError",
    "SyncEngine",
    "TreeStore",
    "WatermarkStore",
    "YamlPropertyStore",
    "archive_filename",
    "archive_path",
]
