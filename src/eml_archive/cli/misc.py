"""Misc commands: init, status, watermark."""

from datetime import datetime, timezone
from pathlib import Path

import click
import humanize
from click import argument, echo, option, style

from ..config import (
    ARCHIVE_DIR,
    ArchiveConfig,
    SourceConfig,
    get_archive_root,
    get_config_path,
    load_config,
    make_watermark,
    save_config,
    validate_config,
)
from ..errors import ArchiveError
from ..layouts import GRANULARITIES, TreeStore
from ..policy import DUPLICATE_MODES
from .utils import echo_kv, format_ts, parse_watermark, read_lock, require_init


# =============================================================================
# init
# =============================================================================


@click.command()
@option('-g', '--granularity', type=click.Choice(list(GRANULARITIES)), default="monthly",
        help="Folder layout: yearly (YYYY), monthly (YYYY/MM), daily (YYYY/YYYYMMDD)")
@option('-d', '--duplicate-mode', type=click.Choice(DUPLICATE_MODES), default="ignore",
        help="When the target file exists: ignore (keep it) or overwrite (trash and rewrite)")
@option('-i', '--initial-last-run', default="0",
        help="Starting watermark (epoch seconds or ISO date)")
@option('-q', '--query', 'search_query', default="", help="Search query fragment for the source")
@option('-z', '--timezone', help="IANA timezone for paths and filenames (default: local)")
@option('-H', '--host', help="IMAP host")
@option('-P', '--port', type=int, default=993, help="IMAP port")
@option('-u', '--user', help="IMAP username")
@option('-f', '--folder', default="INBOX", help="IMAP folder")
@option('-D', '--dir', 'src_dir', type=click.Path(file_okay=False), help="Read .eml files from a directory instead of IMAP")
@argument('directory', required=False, type=click.Path(file_okay=False))
def init(
    granularity: str,
    duplicate_mode: str,
    initial_last_run: str,
    search_query: str,
    timezone: str | None,
    host: str | None,
    port: int,
    user: str | None,
    folder: str,
    src_dir: str | None,
    directory: str | None,
):
    """Initialize an archive directory.

    \b
    Examples:
      eml-archive init -H imap.gmail.com -u me@gmail.com -f '[Gmail]/All Mail'
      eml-archive init ~/mail-archive -g daily -d overwrite -D ~/exports
    """
    root = Path(directory or ".").resolve()
    config_path = get_config_path(root)
    if config_path.exists():
        echo(f"Already initialized: {root / ARCHIVE_DIR}")
        return

    if src_dir:
        source = SourceConfig(type="dir", path=str(Path(src_dir).expanduser().resolve()))
    elif host:
        source = SourceConfig(type="imap", host=host, port=port, user=user or "", folder=folder)
    else:
        source = None

    config = ArchiveConfig(
        granularity=granularity,
        duplicate_mode=duplicate_mode,
        initial_last_run=parse_watermark(initial_last_run),
        search_query=search_query,
        timezone=timezone,
        source=source,
    )
    if source:
        try:
            validate_config(config)
        except ArchiveError as e:
            raise click.ClickException(str(e))

    root.mkdir(parents=True, exist_ok=True)
    save_config(config, root)
    echo(f"Initialized archive in {root / ARCHIVE_DIR}")
    echo(f"Layout: {granularity}, duplicates: {duplicate_mode}")
    if not source:
        echo(style(f"No source configured; edit {config_path}", fg="yellow"))


# =============================================================================
# status
# =============================================================================


@click.command()
@require_init
def status():
    """Show archive config, watermark and file count."""
    root = get_archive_root()
    try:
        config = load_config(root)
        stored = make_watermark(config, root).stored()
    except ArchiveError as e:
        raise click.ClickException(str(e))

    echo_kv("Archive", root)
    echo_kv("Layout", config.granularity)
    echo_kv("Duplicates", config.duplicate_mode)
    echo_kv("Timezone", config.timezone or "local")
    src = config.source
    if src is None:
        echo_kv("Source", style("not configured", fg="yellow"))
    elif src.type == "dir":
        echo_kv("Source", f"dir {src.path}")
    else:
        echo_kv("Source", f"imap {src.user}@{src.host}/{src.folder}")
    if config.search_query:
        echo_kv("Query", config.search_query)

    if stored is None:
        initial = config.initial_last_run
        echo_kv("Watermark", f"none (initial: {initial if initial is not None else 'unset'})")
    else:
        age = humanize.naturaltime(datetime.now(timezone.utc) - datetime.fromtimestamp(stored, timezone.utc))
        echo_kv("Watermark", f"{stored} ({format_ts(stored)}, {age})")

    echo_kv("Files", f"{TreeStore(root).count():,}")
    pid = read_lock(root)
    if pid:
        echo(style(f"Run in progress [PID {pid}]", fg="yellow"))


# =============================================================================
# watermark
# =============================================================================


@click.command()
@require_init
@argument('value', required=False)
def watermark(value: str | None):
    """Show or set the watermark.

    Setting it lower makes the next run re-examine older messages; files that
    already exist are handled by the duplicate mode.

    \b
    Examples:
      eml-archive watermark                 # Show
      eml-archive watermark 1735689600      # Set (epoch seconds)
      eml-archive watermark 2025-01-01      # Set (ISO date, UTC)
    """
    root = get_archive_root()
    try:
        config = load_config(root)
    except ArchiveError as e:
        raise click.ClickException(str(e))
    store = make_watermark(config, root)
    if value is None:
        try:
            current = store.read()
        except ArchiveError as e:
            raise click.ClickException(str(e))
        echo(f"{current} ({format_ts(current)})")
        return

    ts = parse_watermark(value)
    if read_lock(root):
        raise click.ClickException("A run is in progress; not changing the watermark")
    store.write(ts)
    echo(f"Watermark set: {ts} ({format_ts(ts)})")
