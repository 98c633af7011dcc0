"""Run command: archive new messages."""

import click
from click import echo, option, style
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..config import get_archive_root, load_config, make_source, make_watermark, validate_config
from ..engine import FAILED, SyncEngine
from ..errors import ArchiveError, PersistenceError
from ..layouts import TreeStore, resolve_timezone
from .utils import format_ts, require_init, run_lock, setup_logging


@click.command()
@require_init
@option('-n', '--dry-run', is_flag=True, help="Show what would be archived")
@option('-p', '--password', envvar="IMAP_PASSWORD", help="IMAP password (overrides config)")
@option('-v', '--verbose', is_flag=True, help="Debug logging, and show each message")
def run(dry_run: bool, password: str | None, verbose: bool):
    """Archive messages received since the last run.

    \b
    Examples:
      eml-archive run          # Archive new messages
      eml-archive run -n       # Dry run
      eml-archive r -v         # Log each message
    """
    setup_logging(verbose)
    root = get_archive_root()
    try:
        config = load_config(root)
        validate_config(config)
        tz = resolve_timezone(config.timezone)
    except ArchiveError as e:
        raise click.ClickException(str(e))

    src = config.source
    echo(f"Archive: {root}")
    echo(f"Source: {src.type} ({src.path if src.type == 'dir' else f'{src.user}@{src.host}/{src.folder}'})")
    echo(f"Layout: {config.granularity}, duplicates: {config.duplicate_mode}")
    if dry_run:
        echo(style("DRY RUN - no changes will be made", fg="yellow"))
    echo()

    console = Console(stderr=True)
    with run_lock(root):
        try:
            source = make_source(config, password=password, root=root)
            engine = SyncEngine(
                source=source,
                store=TreeStore(root),
                watermark=make_watermark(config, root),
                granularity=config.granularity,
                duplicate_mode=config.duplicate_mode,
                search_query=config.search_query,
                tz=tz,
                dry_run=dry_run,
            )
        except ArchiveError as e:
            raise click.ClickException(str(e))

        with source, Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]Archiving"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("run", total=None)

            def on_candidates(n: int) -> None:
                progress.update(task, total=n)

            def on_message(msg, outcome: str) -> None:
                if verbose or outcome == FAILED:
                    color = "red" if outcome == FAILED else "dim"
                    console.print(f"[{color}]{outcome:>13}[/] {format_ts(msg.timestamp)} {msg.subject[:60]}")
                progress.advance(task)

            try:
                stats = engine.run(progress_callback=on_message, on_candidates=on_candidates)
            except PersistenceError as e:
                if e.stats:
                    echo(e.stats.summary())
                raise click.ClickException(f"{e} (next run will reprocess saved messages)")
            except ArchiveError as e:
                raise click.ClickException(str(e))

    echo(stats.summary())
    if stats.filtered_count:
        echo(f"Not newer than watermark: {stats.filtered_count:,}")
    if stats.watermark_advanced:
        echo(f"Watermark: {format_ts(stats.watermark_before)} -> {format_ts(stats.watermark_after)}")
    elif not dry_run:
        echo("No new messages saved; watermark unchanged")
    if stats.error_count:
        echo(style(f"Failed: {stats.error_count}", fg="red"))
        for line in stats.errors[:10]:
            echo(f"  {line}")
