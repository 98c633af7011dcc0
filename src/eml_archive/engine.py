"""Incremental archive run: watermark -> candidates -> files.

One run is a single sequential pass:

1. read the watermark (stored value, else the configured initial value)
2. search the mail source and keep messages strictly newer than the watermark
3. derive each candidate's folder and list only those folders
4. save, skip or replace each candidate; a failure only affects that message
5. persist max(receipt time) of what was written, if anything new was saved

Concurrent runs against the same archive are not supported; callers
serialize them (the CLI uses a lock file).
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Callable

import humanize

from . import policy
from .cache import ExistenceCache
from .errors import PersistenceError, SourceEnumerationError
from .layouts.base import FileStore
from .layouts.path_template import (
    archive_filename,
    archive_path,
    disambiguate,
    validate_granularity,
)
from .sources import MailSource, Message, SearchQuery
from .watermark import WatermarkStore

logger = logging.getLogger(__name__)

# Per-message outcomes reported to progress callbacks
SAVED = "saved"
SKIPPED = "skipped"
REPLACED = "replaced"
FAILED = "failed"
WOULD_SAVE = "would_save"
WOULD_REPLACE = "would_replace"


@dataclass
class RunStats:
    """Counters for one archive run."""
    total_candidates: int = 0
    saved_count: int = 0
    skipped_count: int = 0  # includes replaced
    replaced_count: int = 0
    error_count: int = 0
    filtered_count: int = 0  # returned by the source but not newer than the watermark
    errors: list[str] = field(default_factory=list)
    watermark_before: int | None = None
    watermark_after: int | None = None
    dry_run: bool = False
    granularity: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    _start_clock: float = field(default_factory=time.monotonic, repr=False)
    _duration: float | None = field(default=None, repr=False)

    def finish(self) -> None:
        self.finished_at = datetime.now()
        self._duration = time.monotonic() - self._start_clock

    @property
    def duration(self) -> float:
        """Run duration in seconds (so far, if not finished)."""
        if self._duration is not None:
            return self._duration
        return time.monotonic() - self._start_clock

    @property
    def watermark_advanced(self) -> bool:
        return (
            self.watermark_after is not None
            and self.watermark_after != self.watermark_before
        )

    def summary(self) -> str:
        verb = "Would save" if self.dry_run else "Saved"
        parts = [
            f"{verb} {self.saved_count:,}",
            f"skipped {self.skipped_count:,}",
        ]
        if self.replaced_count:
            parts.append(f"replaced {self.replaced_count:,}")
        parts.append(f"errors {self.error_count:,}")
        elapsed = humanize.naturaldelta(self.duration, minimum_unit="milliseconds")
        layout = f" ({self.granularity})" if self.granularity else ""
        return f"{', '.join(parts)} of {self.total_candidates:,} candidates in {elapsed}{layout}"


ProgressCallback = Callable[[Message, str], None]


class SyncEngine:
    """Archive new messages from a MailSource into a FileStore."""

    def __init__(
        self,
        source: MailSource,
        store: FileStore,
        watermark: WatermarkStore,
        granularity: str = "monthly",
        duplicate_mode: str = policy.IGNORE,
        search_query: str = "",
        tz: tzinfo | None = None,
        dry_run: bool = False,
    ):
        # Configuration errors surface here, before any I/O
        self.granularity = validate_granularity(granularity)
        self.duplicate_mode = policy.validate_mode(duplicate_mode)
        self.source = source
        self.store = store
        self.watermark = watermark
        self.search_query = search_query
        self.tz = tz
        self.dry_run = dry_run
        self.stats = RunStats(dry_run=dry_run, granularity=self.granularity)
        self.cache: ExistenceCache | None = None
        # (path, filename) -> id of the message that claimed it this run
        self._claimed: dict[tuple[str, str], str] = {}

    def path_for(self, msg: Message) -> str:
        return archive_path(msg.timestamp, self.granularity, self.tz)

    def filename_for(self, msg: Message) -> str:
        return archive_filename(msg.timestamp, msg.subject, self.tz)

    def _enumerate(self, since: int) -> list[Message]:
        query = SearchQuery(fragment=self.search_query, after=since)
        logger.info(f"Searching: {query.expression}")
        try:
            found = list(self.source.search(query))
        except Exception as e:
            raise SourceEnumerationError(f"Mail source search failed ({query.expression}): {e}") from e

        candidates = [m for m in found if m.timestamp > since]
        # Stable order keeps collision suffixes the same across re-runs
        candidates.sort(key=lambda m: (m.timestamp, m.id))
        self.stats.filtered_count = len(found) - len(candidates)
        if self.stats.filtered_count:
            logger.debug(f"Dropped {self.stats.filtered_count} messages not newer than {since}")
        return candidates

    def _target(self, msg: Message, path: str) -> str:
        """Filename for `msg`, avoiding names claimed by other messages this run."""
        filename = self.filename_for(msg)
        n = 1
        name = filename
        while True:
            owner = self._claimed.get((path, name))
            if owner is None or owner == msg.id:
                self._claimed[(path, name)] = msg.id
                return name
            n += 1
            name = disambiguate(filename, n)

    def _process(self, msg: Message) -> tuple[str, str]:
        """Handle one candidate. Returns (action, outcome)."""
        path = self.path_for(msg)
        filename = self._target(msg, path)
        existing = self.cache.lookup(path, filename)
        action = policy.resolve(existing, self.duplicate_mode)

        if action == policy.SKIP:
            logger.debug(f"Skip {path}/{filename} (exists)")
            return action, SKIPPED

        if self.dry_run:
            return action, WOULD_SAVE if action == policy.SAVE else WOULD_REPLACE

        raw = msg.raw
        if action == policy.REPLACE:
            # Old copy is trashed only once the new content is written
            handle = self.store.replace_file(existing, raw)
            logger.debug(f"Trashed old copy of {path}/{filename}")
        else:
            folder = self.cache.ensure_folder(path)
            handle = self.store.create_file(folder, filename, raw)
        self.cache.record(path, filename, handle)
        self.store.set_modified_time(handle, msg.received_at)
        logger.debug(f"{'Saved' if action == policy.SAVE else 'Replaced'} {path}/{filename}")
        return action, SAVED if action == policy.SAVE else REPLACED

    def run(
        self,
        progress_callback: ProgressCallback | None = None,
        on_candidates: Callable[[int], None] | None = None,
    ) -> RunStats:
        """Run one archive pass. Raises ArchiveError subclasses on fatal errors."""
        stats = self.stats = RunStats(dry_run=self.dry_run, granularity=self.granularity)
        self._claimed = {}

        since = self.watermark.read()
        stats.watermark_before = since
        logger.info(f"Watermark: {since}")

        candidates = self._enumerate(since)
        stats.total_candidates = len(candidates)
        logger.info(f"Candidates: {len(candidates)}")
        if on_candidates:
            on_candidates(len(candidates))

        # All folder listings happen before the first write
        self.cache = ExistenceCache(self.store)
        paths = {self.path_for(m) for m in candidates}
        self.cache.preload(paths)
        logger.debug(f"Preloaded {len(paths)} folders ({self.cache.store_queries} store queries)")

        newest = 0
        for msg in candidates:
            try:
                action, outcome = self._process(msg)
            except Exception as e:
                stats.error_count += 1
                stats.errors.append(f"{msg.id}: {e}")
                logger.error(f"Failed to archive {msg.id} ({msg.subject!r}): {e}")
                outcome = FAILED
            else:
                if action == policy.SAVE:
                    stats.saved_count += 1
                else:
                    stats.skipped_count += 1
                    if action == policy.REPLACE:
                        stats.replaced_count += 1
                if action != policy.SKIP:
                    newest = max(newest, msg.timestamp)
            if progress_callback:
                progress_callback(msg, outcome)

        self._finalize(newest)
        stats.finish()
        logger.info(stats.summary())
        return stats

    def _finalize(self, newest: int) -> None:
        stats = self.stats
        stats.watermark_after = stats.watermark_before
        if self.dry_run:
            return
        if stats.saved_count == 0 or newest <= 0:
            logger.info("No new messages saved; watermark unchanged")
            return
        if newest <= stats.watermark_before:
            return
        try:
            self.watermark.write(newest)
        except Exception as e:
            stats.finish()
            logger.error(
                f"Failed to persist watermark {newest}: {e}. "
                f"The next run will reprocess the {stats.saved_count} messages saved by this one."
            )
            raise PersistenceError(f"Failed to persist watermark {newest}: {e}", stats=stats) from e
        stats.watermark_after = newest
        logger.info(f"Watermark advanced: {stats.watermark_before} -> {newest}")
