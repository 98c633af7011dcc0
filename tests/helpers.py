"""In-memory mail source and file store for tests."""

from collections import Counter
from datetime import datetime

from eml_archive.sources import Message


def make_message(id: str, when: str, subject: str = "", raw: bytes | None = None) -> Message:
    """Build a Message from an ISO timestamp (`Z` allowed)."""
    received_at = datetime.fromisoformat(when.replace("Z", "+00:00"))
    if raw is None:
        raw = f"Message-ID: {id}\r\nSubject: {subject}\r\n\r\nBody of {id}\r\n".encode()
    return Message(id=id, received_at=received_at, subject=subject, content=raw)


class FakeSource:
    """Mail source returning a fixed list, ignoring the coarse date bound."""

    def __init__(self, messages=(), fail: bool = False):
        self.messages = list(messages)
        self.fail = fail
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("mail source unreachable")
        return iter(self.messages)


class MemoryStore:
    """FileStore keeping folders and files in dicts.

    Folder handles are path strings, file handles are (folder, name) tuples.
    """

    def __init__(self, files: dict[str, bytes] | None = None):
        self.folders: dict[str, dict[str, bytes]] = {"": {}}
        self.mtimes: dict[tuple[str, str], datetime] = {}
        self.trashed: list[tuple[tuple[str, str], bytes]] = []
        self.calls: Counter = Counter()
        self.log: list[str] = []
        self.fail_on: set[str] = set()
        for key, data in (files or {}).items():
            self.add(key, data)

    def add(self, key: str, data: bytes) -> None:
        """Put a file in place without counting it as a store call."""
        folder, _, name = key.rpartition("/")
        parent = ""
        for part in folder.split("/"):
            parent = self._join(parent, part)
            self.folders.setdefault(parent, {})
        self.folders[folder][name] = data

    @property
    def root(self) -> str:
        return ""

    @staticmethod
    def _join(parent: str, name: str) -> str:
        return f"{parent}/{name}" if parent else name

    def resolve_folder(self, root, path):
        self.calls["resolve_folder"] += 1
        self.log.append(f"resolve {path}")
        full = self._join(root, path)
        return full if full in self.folders else None

    def create_folder(self, parent, name):
        self.calls["create_folder"] += 1
        full = self._join(parent, name)
        self.folders.setdefault(full, {})
        return full

    def list_files(self, folder):
        self.calls["list_files"] += 1
        self.log.append(f"list {folder}")
        return [(name, (folder, name)) for name in self.folders[folder]]

    def create_file(self, folder, name, data):
        self.calls["create_file"] += 1
        self.log.append(f"create {folder}/{name}")
        if name in self.fail_on:
            raise OSError(f"simulated store failure: {name}")
        if name in self.folders[folder]:
            raise FileExistsError(name)
        self.folders[folder][name] = data
        return (folder, name)

    def set_modified_time(self, handle, when):
        self.calls["set_modified_time"] += 1
        self.mtimes[handle] = when

    def replace_file(self, handle, data):
        self.calls["replace_file"] += 1
        folder, name = handle
        self.log.append(f"replace {folder}/{name}")
        if name in self.fail_on:
            raise OSError(f"simulated store failure: {name}")
        self.trashed.append((handle, self.folders[folder][name]))
        self.folders[folder][name] = data
        return handle

    def trash(self, handle):
        self.calls["trash"] += 1
        folder, name = handle
        self.trashed.append((handle, self.folders[folder].pop(name)))

    def files(self) -> dict[str, bytes]:
        """All files as {"path/name": content}."""
        return {
            f"{folder}/{name}": data
            for folder, names in self.folders.items()
            for name, data in names.items()
        }
