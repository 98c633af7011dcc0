"""Run-local cache of which archive files already exist.

Only the folders that the current batch of candidates maps to are listed,
so store I/O grows with the number of distinct folders touched, not with the
size of the archive.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .layouts.base import FileStore, Handle

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Known state of one archive folder."""
    folder: Handle | None  # None: folder doesn't exist in the store yet
    files: dict[str, Handle] = field(default_factory=dict)


class ExistenceCache:
    """Map archive path -> {filename: handle}, filled lazily from a FileStore."""

    def __init__(self, store: FileStore, root: Handle | None = None):
        self.store = store
        self.root = root if root is not None else store.root
        self._entries: dict[str, CacheEntry] = {}
        self.store_queries = 0  # store round-trips made by the cache

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _load(self, path: str) -> CacheEntry:
        self.store_queries += 1
        folder = self.store.resolve_folder(self.root, path)
        if folder is None:
            # Nothing archived here yet
            entry = CacheEntry(folder=None)
        else:
            self.store_queries += 1
            entry = CacheEntry(folder=folder, files=dict(self.store.list_files(folder)))
        logger.debug(f"Loaded {path}: {len(entry.files)} files")
        self._entries[path] = entry
        return entry

    def _entry(self, path: str) -> CacheEntry:
        entry = self._entries.get(path)
        if entry is None:
            entry = self._load(path)
        return entry

    def preload(self, paths: Iterable[str]) -> None:
        """Load every path not already cached."""
        for path in sorted(set(paths)):
            if path not in self._entries:
                self._load(path)

    def lookup(self, path: str, filename: str) -> Handle | None:
        """Handle of an existing file, or None."""
        return self._entry(path).files.get(filename)

    def record(self, path: str, filename: str, handle: Handle) -> None:
        """Remember a file just written (or replaced)."""
        self._entry(path).files[filename] = handle

    def folder(self, path: str) -> Handle | None:
        return self._entry(path).folder

    def ensure_folder(self, path: str) -> Handle:
        """Folder handle for `path`, creating missing segments in the store."""
        entry = self._entry(path)
        if entry.folder is not None:
            return entry.folder

        parent = self.root
        prefix = ""
        for name in path.split("/"):
            if not name:
                continue
            prefix = f"{prefix}/{name}" if prefix else name
            known = self._entries.get(prefix)
            if known is not None and known.folder is not None:
                parent = known.folder
                continue
            self.store_queries += 1
            existing = self.store.resolve_folder(parent, name)
            if existing is None:
                self.store_queries += 1
                existing = self.store.create_folder(parent, name)
                logger.debug(f"Created folder {prefix}")
            parent = existing
            if known is not None:
                known.folder = existing

        entry.folder = parent
        return parent
