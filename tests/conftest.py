"""Shared fixtures."""

from datetime import timezone

import pytest

from eml_archive.config import ENV_OVERRIDES, ROOT_ENV
from eml_archive.engine import SyncEngine
from eml_archive.watermark import MemoryPropertyStore, WatermarkStore

from helpers import FakeSource, MemoryStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment from leaking into config."""
    for var in [*ENV_OVERRIDES, ROOT_ENV, "FOLDER_ID", "IMAP_PASSWORD"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def props():
    return MemoryPropertyStore()


@pytest.fixture
def make_engine(store, props):
    """Factory for engines over the shared store and property store."""
    def _make(messages=(), source=None, initial: int | None = 0, **kwargs) -> SyncEngine:
        kwargs.setdefault("tz", timezone.utc)
        return SyncEngine(
            source=source or FakeSource(messages),
            store=store,
            watermark=WatermarkStore(props, initial=initial),
            **kwargs,
        )
    return _make
