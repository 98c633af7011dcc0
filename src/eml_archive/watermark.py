"""Persisted watermark: the newest receipt time known to be archived."""

from pathlib import Path
from typing import Protocol

import yaml

from .errors import ConfigurationError

WATERMARK_KEY = "lastRun"


class PropertyStore(Protocol):
    """A string key/value store."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryPropertyStore:
    """In-process property store."""

    def __init__(self, values: dict[str, str] | None = None):
        self.values: dict[str, str] = dict(values or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class YamlPropertyStore:
    """Property store backed by a YAML mapping file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"State file is not a mapping: {self.path}")
        return data

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename, so a crash never leaves a truncated state file
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        with open(tmp, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        tmp.replace(self.path)


class WatermarkStore:
    """Wraps the single persisted watermark value (epoch seconds)."""

    def __init__(
        self,
        properties: PropertyStore,
        initial: int | None = None,
        key: str = WATERMARK_KEY,
    ):
        self.properties = properties
        self.initial = initial
        self.key = key

    def stored(self) -> int | None:
        """The persisted value, or None if nothing has been stored yet."""
        value = self.properties.get(self.key)
        if value is None or value == "":
            return None
        try:
            return int(value)
        except ValueError as e:
            raise ConfigurationError(
                f"Stored watermark {self.key}={value!r} is not an integer"
            ) from e

    def read(self) -> int:
        """Stored watermark, falling back to the configured initial value."""
        value = self.stored()
        if value is not None:
            return value
        if self.initial is None:
            raise ConfigurationError(
                f"No stored watermark ({self.key}) and no initial value configured"
            )
        return self.initial

    def write(self, value: int) -> None:
        self.properties.set(self.key, str(int(value)))
