"""Archive layout: path/filename scheme and file stores."""

from .base import FileStore, Handle
from .tree import TreeStore
from .path_template import (
    ARCHIVE_EXTENSION,
    DEFAULT_GRANULARITY,
    GRANULARITIES,
    archive_filename,
    archive_path,
    content_hash,
    disambiguate,
    resolve_timezone,
    sanitize_label,
    validate_granularity,
)

__all__ = [
    "ARCHIVE_EXTENSION",
    "DEFAULT_GRANULARITY",
    "FileStore",
    "GRANULARITIES",
    "Handle",
    "TreeStore",
    "archive_filename",
    "archive_path",
    "content_hash",
    "disambiguate",
    "resolve_timezone",
    "sanitize_label",
    "validate_granularity",
]
