"""Tree-based file store: .eml files in a local directory tree."""

import os
from datetime import datetime
from pathlib import Path
from typing import Iterator

from ..errors import ConfigurationError
from .path_template import ARCHIVE_EXTENSION

TRASH_DIR = ".trash"


class TreeStore:
    """Store archived emails as files under a root directory.

    Handles are `Path`s. Trashed files are moved to `<root>/.trash/`, keeping
    their path relative to the root, so they can be restored by hand.
    """

    def __init__(self, root: Path | str):
        self._root = Path(root)
        if not self._root.is_dir():
            raise ConfigurationError(f"Archive root is not a directory: {self._root}")

    @property
    def root(self) -> Path:
        return self._root

    def resolve_folder(self, root: Path, path: str) -> Path | None:
        folder = root.joinpath(*[p for p in path.split("/") if p])
        if folder.is_dir():
            return folder
        return None

    def create_folder(self, parent: Path, name: str) -> Path:
        folder = parent / name
        folder.mkdir(exist_ok=True)
        return folder

    def list_files(self, folder: Path) -> Iterator[tuple[str, Path]]:
        for path in folder.iterdir():
            if path.is_file():
                yield path.name, path

    def create_file(self, folder: Path, name: str, data: bytes) -> Path:
        path = folder / name
        # Exclusive: an unexpected file on disk is an error, not an overwrite
        with open(path, "xb") as f:
            f.write(data)
        return path

    def set_modified_time(self, handle: Path, when: datetime) -> None:
        ts = when.timestamp()
        os.utime(handle, (ts, ts))

    def replace_file(self, handle: Path, data: bytes) -> Path:
        part = handle.with_name(f".{handle.name}.part")
        try:
            with open(part, "wb") as f:
                f.write(data)
            self.trash(handle)
        except Exception:
            part.unlink(missing_ok=True)
            raise
        os.replace(part, handle)
        return handle

    def trash(self, handle: Path) -> None:
        try:
            rel = handle.relative_to(self._root)
        except ValueError:
            rel = Path(handle.name)
        dest = self._root / TRASH_DIR / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        # Keep earlier trashed copies
        n = 1
        while dest.exists():
            n += 1
            dest = dest.with_name(f"{rel.stem}.{n}{rel.suffix}")
        handle.rename(dest)

    def count(self) -> int:
        """Count archived .eml files (excluding trash and state dirs)."""
        count = 0
        for path in self._root.rglob(f"*{ARCHIVE_EXTENSION}"):
            rel = path.relative_to(self._root)
            if rel.parts[0].startswith("."):
                continue
            count += 1
        return count
