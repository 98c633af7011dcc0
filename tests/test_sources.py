"""Tests for mail sources and search queries."""

from datetime import datetime, timezone

import pytest

from eml_archive.engine import SyncEngine
from eml_archive.errors import SourceEnumerationError
from eml_archive.layouts.path_template import content_hash
from eml_archive.sources import EmlDirSource, Message, SearchQuery
from eml_archive.watermark import MemoryPropertyStore, WatermarkStore

from helpers import MemoryStore


class TestSearchQuery:
    def test_expression(self):
        assert SearchQuery("label:receipts", 1742032800).expression == "label:receipts after:1742032800"
        assert SearchQuery("", 5).expression == "after:5"

    def test_imap_all(self):
        assert SearchQuery().build_imap_query() == "ALL"

    def test_imap_since_is_a_day_early(self):
        # 2025-03-15T10:00:00Z
        assert SearchQuery(after=1742032800).build_imap_query() == "SINCE 14-Mar-2025"

    def test_imap_with_fragment(self):
        query = SearchQuery('FROM "billing@example.com"', 1742032800)
        assert query.build_imap_query() == '(FROM "billing@example.com") SINCE 14-Mar-2025'


class TestMessage:
    def test_naive_datetime_is_utc(self):
        msg = Message(id="x", received_at=datetime(2025, 3, 15, 10, 0), content=b"")
        assert msg.timestamp == 1742032800

    def test_lazy_raw(self):
        calls = []

        def load():
            calls.append(1)
            return b"raw"

        msg = Message(id="x", received_at=datetime(2025, 3, 15, tzinfo=timezone.utc), loader=load)
        assert calls == []
        assert msg.raw == b"raw"
        assert msg.raw == b"raw"
        assert calls == [1]

    def test_no_content(self):
        msg = Message(id="x", received_at=datetime(2025, 3, 15, tzinfo=timezone.utc))
        with pytest.raises(RuntimeError):
            msg.raw


class TestEmlDirSource:
    def test_reads_headers(self, tmp_path):
        raw = (
            b"Message-ID: <a@example.com>\r\n"
            b"Date: Sat, 15 Mar 2025 11:00:00 +0100\r\n"
            b"Subject: =?utf-8?q?Caf=C3=A9?=\r\n\r\nBody\r\n"
        )
        (tmp_path / "a.eml").write_bytes(raw)

        [msg] = EmlDirSource(tmp_path).search(SearchQuery())
        assert msg.id == "<a@example.com>"
        assert msg.subject == "Café"
        assert msg.timestamp == 1742032800
        assert msg.raw == raw

    def test_missing_message_id(self, tmp_path):
        raw = b"Date: Sat, 15 Mar 2025 10:00:00 +0000\r\nSubject: x\r\n\r\nBody\r\n"
        (tmp_path / "a.eml").write_bytes(raw)
        [msg] = EmlDirSource(tmp_path).search(SearchQuery())
        assert msg.id == f"<{content_hash(raw)}@content-hash>"

    def test_missing_date_uses_mtime(self, tmp_path):
        import os

        path = tmp_path / "a.eml"
        path.write_bytes(b"Subject: x\r\n\r\nBody\r\n")
        os.utime(path, (1700000000, 1700000000))
        [msg] = EmlDirSource(tmp_path).search(SearchQuery())
        assert msg.timestamp == 1700000000

    def test_after_bound(self, tmp_path):
        (tmp_path / "old.eml").write_bytes(b"Date: Sat, 15 Mar 2025 10:00:00 +0000\r\n\r\n")
        (tmp_path / "new.eml").write_bytes(b"Date: Sat, 15 Mar 2025 10:00:01 +0000\r\n\r\n")
        found = list(EmlDirSource(tmp_path).search(SearchQuery(after=1742032800)))
        assert [m.timestamp for m in found] == [1742032801]

    def test_missing_directory(self, tmp_path):
        engine = SyncEngine(
            source=EmlDirSource(tmp_path / "nope"),
            store=MemoryStore(),
            watermark=WatermarkStore(MemoryPropertyStore(), initial=0),
        )
        with pytest.raises(SourceEnumerationError, match="nope"):
            engine.run()
