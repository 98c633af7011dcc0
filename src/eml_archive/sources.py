"""Mail sources: where candidate messages come from."""

import email
import imaplib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.parser import BytesParser
from email.policy import default as email_policy
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, Protocol

from .layouts.path_template import ARCHIVE_EXTENSION, content_hash

logger = logging.getLogger(__name__)

IMAP_PORT = 993
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@dataclass
class Message:
    """A message offered by a mail source.

    The raw body is loaded on first access, so messages that end up skipped
    never cost a body fetch.
    """
    id: str
    received_at: datetime
    subject: str = ""
    content: bytes | None = field(default=None, repr=False)
    loader: Callable[[], bytes] | None = field(default=None, repr=False)

    def __post_init__(self):
        if self.received_at.tzinfo is None:
            self.received_at = self.received_at.replace(tzinfo=timezone.utc)

    @property
    def timestamp(self) -> int:
        """Receipt time in epoch seconds."""
        return int(self.received_at.timestamp())

    @property
    def raw(self) -> bytes:
        if self.content is None:
            if self.loader is None:
                raise RuntimeError(f"No content for message {self.id}")
            self.content = self.loader()
        return self.content


@dataclass(frozen=True)
class SearchQuery:
    """User query fragment plus a coarse lower bound on receipt time.

    The bound is advisory: sources may return older messages, the engine
    filters strictly.
    """
    fragment: str = ""
    after: int = 0

    @property
    def expression(self) -> str:
        """Gmail-style search expression, e.g. `label:receipts after:1742032800`."""
        return f"{self.fragment} after:{self.after}".strip()

    def since_date(self) -> str | None:
        """IMAP SINCE date, one day early to absorb server timezone offsets."""
        if self.after <= 0:
            return None
        d = datetime.fromtimestamp(self.after, timezone.utc) - timedelta(days=1)
        return f"{d.day:02d}-{_MONTHS[d.month - 1]}-{d.year}"

    def build_imap_query(self) -> str:
        """Build IMAP SEARCH criteria from the fragment and lower bound."""
        terms = []
        if self.fragment.strip():
            terms.append(f"({self.fragment.strip()})")
        since = self.since_date()
        if since:
            terms.append(f"SINCE {since}")
        if not terms:
            return "ALL"
        return " ".join(terms)


class MailSource(Protocol):
    """Protocol for mail sources.

    Implementations:
    - ImapSource: a folder on an IMAP server
    - EmlDirSource: .eml files in a local directory
    """

    def search(self, query: SearchQuery) -> Iterable[Message]:
        ...


def _parse_date(value: str | None) -> datetime | None:
    """Parse a Date header into an aware datetime."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(str(value))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ImapSource:
    """Search one IMAP folder; INTERNALDATE is the receipt time."""

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        folder: str = "INBOX",
        port: int = IMAP_PORT,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.folder = folder
        self._conn: imaplib.IMAP4_SSL | None = None

    def connect(self) -> None:
        self._conn = imaplib.IMAP4_SSL(self.host, self.port)
        self._conn.login(self.user, self.password)
        typ, data = self._conn.select(self.folder, readonly=True)
        if typ != "OK":
            raise RuntimeError(f"Failed to select folder {self.folder}: {data}")

    def disconnect(self) -> None:
        if self._conn:
            try:
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.debug(f"Logout failed: {e}")
            self._conn = None

    @property
    def conn(self) -> imaplib.IMAP4_SSL:
        if not self._conn:
            raise RuntimeError("Not connected")
        return self._conn

    def _search_uids(self, criteria: str) -> list[bytes]:
        typ, data = self.conn.uid("SEARCH", None, criteria)
        if typ != "OK":
            raise RuntimeError(f"Search failed: {data}")
        return data[0].split()

    def _fetch_message(self, uid: bytes) -> Message:
        typ, data = self.conn.uid(
            "FETCH", uid, "(INTERNALDATE BODY.PEEK[HEADER.FIELDS (MESSAGE-ID SUBJECT)])"
        )
        if typ != "OK" or not data or not data[0]:
            raise RuntimeError(f"Failed to fetch headers for UID {uid!r}")

        envelope, header_data = data[0][0], data[0][1]
        parsed = imaplib.Internaldate2tuple(envelope)
        if parsed is None:
            raise RuntimeError(f"No INTERNALDATE for UID {uid!r}")
        received_at = datetime.fromtimestamp(time.mktime(parsed), timezone.utc)

        msg = email.message_from_bytes(header_data, policy=email_policy)
        message_id = str(msg.get("Message-ID", "")).strip() or f"uid:{uid.decode()}"
        return Message(
            id=message_id,
            received_at=received_at,
            subject=str(msg.get("Subject", "")),
            loader=lambda: self.fetch_raw(uid),
        )

    def fetch_raw(self, uid: bytes) -> bytes:
        """Fetch full raw message by UID."""
        typ, data = self.conn.uid("FETCH", uid, "(RFC822)")
        if typ != "OK" or not data or not data[0]:
            raise RuntimeError(f"Failed to fetch message for UID {uid!r}")
        return data[0][1]

    def search(self, query: SearchQuery) -> Iterator[Message]:
        if not self._conn:
            self.connect()
        criteria = query.build_imap_query()
        logger.debug(f"IMAP search in {self.folder}: {criteria}")
        for uid in self._search_uids(criteria):
            yield self._fetch_message(uid)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.disconnect()


class EmlDirSource:
    """Read .eml files from a local directory tree.

    Receipt time comes from the Date header (file mtime if missing). The
    query fragment is not interpreted; only the lower bound applies.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _read(self, eml_path: Path) -> Message:
        with open(eml_path, "rb") as f:
            headers = BytesParser(policy=email_policy).parse(f, headersonly=True)

        received_at = _parse_date(headers.get("Date"))
        if received_at is None:
            received_at = datetime.fromtimestamp(eml_path.stat().st_mtime, timezone.utc)

        message_id = str(headers.get("Message-ID", "")).strip()
        if not message_id:
            message_id = f"<{content_hash(eml_path.read_bytes())}@content-hash>"

        return Message(
            id=message_id,
            received_at=received_at,
            subject=str(headers.get("Subject", "")),
            loader=eml_path.read_bytes,
        )

    def search(self, query: SearchQuery) -> Iterator[Message]:
        if not self.path.is_dir():
            raise FileNotFoundError(f"Source directory not found: {self.path}")
        if query.fragment:
            logger.debug(f"Ignoring query fragment for directory source: {query.fragment!r}")
        for eml_path in sorted(self.path.rglob(f"*{ARCHIVE_EXTENSION}")):
            msg = self._read(eml_path)
            if msg.timestamp > query.after:
                yield msg

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass
