"""File store protocol for eml-archive."""

from datetime import datetime
from typing import Any, Iterable, Protocol, runtime_checkable


# Opaque store handles; the engine never looks inside them
Handle = Any


@runtime_checkable
class FileStore(Protocol):
    """Protocol for archive destinations.

    Implementations:
    - TreeStore: .eml files in a local directory tree
    """

    @property
    def root(self) -> Handle:
        """Handle of the archive root folder."""
        ...

    def resolve_folder(self, root: Handle, path: str) -> Handle | None:
        """Resolve a `/`-separated path under `root`, or None if it doesn't exist."""
        ...

    def create_folder(self, parent: Handle, name: str) -> Handle:
        """Create a child folder. Returns its handle."""
        ...

    def list_files(self, folder: Handle) -> Iterable[tuple[str, Handle]]:
        """List (name, handle) for files directly inside `folder`."""
        ...

    def create_file(self, folder: Handle, name: str, data: bytes) -> Handle:
        """Create a file. Returns its handle."""
        ...

    def set_modified_time(self, handle: Handle, when: datetime) -> None:
        """Set a file's modification time."""
        ...

    def replace_file(self, handle: Handle, data: bytes) -> Handle:
        """Replace a file's content, trashing the old copy.

        The old copy stays in place until the new content is fully written.
        Returns the handle of the new file.
        """
        ...

    def trash(self, handle: Handle) -> None:
        """Move a file out of the archive (recoverable)."""
        ...
