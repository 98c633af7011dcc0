"""Archive path and filename derivation.

Both are pure functions of a message's receipt time (epoch seconds) and,
for filenames, its subject. All formatting happens in one reference timezone
so that the same message always lands in the same place.
"""

import hashlib
import re
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import ConfigurationError


# Granularity presets - strftime patterns for the folder path
GRANULARITIES: dict[str, str] = {
    "yearly": "%Y",
    "monthly": "%Y/%m",
    "daily": "%Y/%Y%m%d",
}

DEFAULT_GRANULARITY = "monthly"

ARCHIVE_EXTENSION = ".eml"

# Same pattern as the archive filenames, minus the subject
STAMP_FORMAT = "%Y-%m-%dT%H_%M_%S"

# Characters that are unsafe in file names on at least one common store
_UNSAFE_CHARS = re.compile(r'[/\\?%*:|"<>]')
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

# Subjects are cut to this many UTF-8 bytes so that stamp, subject, a " (n)"
# counter and the extension stay under the usual 255-byte name limit
MAX_SUBJECT_BYTES = 200


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Resolve an IANA zone name. None means the process local zone."""
    if not name:
        return None
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {name!r}") from e


def to_local(ts: int, tz: tzinfo | None = None) -> datetime:
    """Convert epoch seconds to an aware datetime in the reference zone."""
    if tz is None:
        return datetime.fromtimestamp(ts).astimezone()
    return datetime.fromtimestamp(ts, tz)


def validate_granularity(granularity: str) -> str:
    if granularity not in GRANULARITIES:
        raise ConfigurationError(
            f"Unknown granularity: {granularity!r} "
            f"(expected one of: {', '.join(GRANULARITIES)})"
        )
    return granularity


def archive_path(ts: int, granularity: str, tz: tzinfo | None = None) -> str:
    """Folder path for a message received at `ts`.

    >>> archive_path(1742032800, "monthly", timezone.utc)
    '2025/03'
    """
    pattern = GRANULARITIES.get(granularity)
    if pattern is None:
        validate_granularity(granularity)
    return to_local(ts, tz).strftime(pattern)


def sanitize_label(label: str, max_bytes: int = MAX_SUBJECT_BYTES) -> str:
    """Make a subject safe for use as a file name.

    - Replace / \\ ? % * : | " < > with underscore
    - Replace control characters (folded header newlines, tabs) with spaces
    - Strip surrounding whitespace
    - Truncate to `max_bytes` of UTF-8, on a character boundary
    """
    if not label:
        return ""
    s = _CONTROL_CHARS.sub(" ", str(label))
    s = _UNSAFE_CHARS.sub("_", s).strip()
    # Lone surrogates (undecodable header bytes) can't be written to a file name
    encoded = s.encode("utf-8", errors="ignore")[:max_bytes]
    return encoded.decode("utf-8", errors="ignore").rstrip()


def archive_filename(ts: int, label: str, tz: tzinfo | None = None) -> str:
    """File name for a message: `<stamp> <subject>.eml`."""
    stamp = to_local(ts, tz).strftime(STAMP_FORMAT)
    subject = sanitize_label(label)
    if subject:
        return f"{stamp} {subject}{ARCHIVE_EXTENSION}"
    return f"{stamp}{ARCHIVE_EXTENSION}"


def disambiguate(filename: str, n: int) -> str:
    """Insert a ` (n)` counter before the extension."""
    if filename.endswith(ARCHIVE_EXTENSION):
        stem = filename[: -len(ARCHIVE_EXTENSION)]
        return f"{stem} ({n}){ARCHIVE_EXTENSION}"
    return f"{filename} ({n})"


def content_hash(raw: bytes) -> str:
    """Compute SHA-256 hash of raw email content."""
    return hashlib.sha256(raw).hexdigest()
