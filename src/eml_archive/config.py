"""Project configuration and state via YAML files."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigurationError
from .layouts.path_template import (
    DEFAULT_GRANULARITY,
    resolve_timezone,
    validate_granularity,
)
from .policy import IGNORE, validate_mode
from .sources import IMAP_PORT, EmlDirSource, ImapSource, MailSource
from .watermark import WatermarkStore, YamlPropertyStore

ARCHIVE_DIR = ".eml-archive"
CONFIG_FILE = "config.yaml"
STATE_FILE = "state.yaml"
LOCK_FILE = "run.lock"
ROOT_ENV = "EML_ARCHIVE_ROOT"

# Environment overrides: variable -> config attribute
ENV_OVERRIDES = {
    "DUPLICATE_MODE": "duplicate_mode",
    "GRANULARITY": "granularity",
    "INITIAL_LAST_RUN": "initial_last_run",
    "SEARCH_QUERY": "search_query",
    "ARCHIVE_TIMEZONE": "timezone",
}


@dataclass
class SourceConfig:
    """Where to read messages from."""
    type: str  # "imap" or "dir"
    host: str | None = None
    port: int = IMAP_PORT
    user: str = ""
    password: str = ""
    folder: str = "INBOX"
    path: str | None = None


@dataclass
class ArchiveConfig:
    """Top-level archive configuration."""
    granularity: str = DEFAULT_GRANULARITY
    duplicate_mode: str = IGNORE
    initial_last_run: int | None = 0
    search_query: str = ""
    timezone: str | None = None
    source: SourceConfig | None = None


def find_archive_root(start: Path | None = None) -> Path | None:
    """Find archive root (directory containing .eml-archive/).

    Checks FOLDER_ID and EML_ARCHIVE_ROOT first, then walks up from start/cwd.
    """
    for var in ("FOLDER_ID", ROOT_ENV):
        env_root = os.environ.get(var)
        if env_root:
            env_path = Path(env_root).expanduser().resolve()
            if (env_path / ARCHIVE_DIR).is_dir():
                return env_path

    path = (start or Path.cwd()).resolve()
    while path != path.parent:
        if (path / ARCHIVE_DIR).is_dir():
            return path
        path = path.parent
    return None


def get_archive_root(require: bool = True) -> Path:
    """Get archive root, raising if not found and require=True."""
    root = find_archive_root()
    if not root and require:
        raise ConfigurationError(
            "Not in an archive. Run 'eml-archive init' first."
        )
    return root or Path.cwd()


def get_config_path(root: Path | None = None) -> Path:
    root = root or get_archive_root()
    return root / ARCHIVE_DIR / CONFIG_FILE


def get_state_path(root: Path | None = None) -> Path:
    root = root or get_archive_root()
    return root / ARCHIVE_DIR / STATE_FILE


def get_lock_path(root: Path | None = None) -> Path:
    root = root or get_archive_root()
    return root / ARCHIVE_DIR / LOCK_FILE


def _parse_int(name: str, value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer (epoch seconds), got {value!r}") from e


def _parse_source(data: dict | None) -> SourceConfig | None:
    if not data:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(f"source must be a mapping, got {data!r}")
    return SourceConfig(
        type=data.get("type", "imap"),
        host=data.get("host"),
        port=int(data.get("port", IMAP_PORT)),
        user=data.get("user", ""),
        password=data.get("password", ""),
        folder=data.get("folder", "INBOX"),
        path=data.get("path"),
    )


def apply_env(config: ArchiveConfig, environ=None) -> ArchiveConfig:
    """Override config values from environment variables."""
    environ = os.environ if environ is None else environ
    for var, attr in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        if attr == "initial_last_run":
            value = _parse_int(var, value)
        setattr(config, attr, value)
    return config


def load_config(root: Path | None = None, environ=None) -> ArchiveConfig:
    """Load config from config.yaml, then apply environment overrides."""
    config_path = get_config_path(root)
    data = {}
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    config = ArchiveConfig(
        granularity=data.get("granularity", DEFAULT_GRANULARITY),
        duplicate_mode=data.get("duplicate_mode", IGNORE),
        initial_last_run=_parse_int("initial_last_run", data.get("initial_last_run")),
        search_query=data.get("search_query") or "",
        timezone=data.get("timezone"),
        source=_parse_source(data.get("source")),
    )
    return apply_env(config, environ)


def save_config(config: ArchiveConfig, root: Path | None = None) -> None:
    """Save config to config.yaml."""
    config_path = get_config_path(root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "granularity": config.granularity,
        "duplicate_mode": config.duplicate_mode,
        "initial_last_run": config.initial_last_run,
    }
    if config.search_query:
        data["search_query"] = config.search_query
    if config.timezone:
        data["timezone"] = config.timezone
    if config.source:
        src = config.source
        src_data = {"type": src.type}
        if src.type == "dir":
            src_data["path"] = src.path
        else:
            src_data["host"] = src.host
            if src.port != IMAP_PORT:
                src_data["port"] = src.port
            src_data["user"] = src.user
            if src.password:
                src_data["password"] = src.password
            src_data["folder"] = src.folder
        data["source"] = src_data

    with open(config_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def validate_config(config: ArchiveConfig) -> None:
    """Raise ConfigurationError for any invalid setting."""
    validate_granularity(config.granularity)
    validate_mode(config.duplicate_mode)
    resolve_timezone(config.timezone)
    src = config.source
    if src is None:
        raise ConfigurationError("No mail source configured")
    if src.type == "dir":
        if not src.path:
            raise ConfigurationError("Directory source requires a path")
    elif src.type == "imap":
        if not src.host or not src.user:
            raise ConfigurationError("IMAP source requires host and user")
    else:
        raise ConfigurationError(f"Unknown source type: {src.type!r}")


def make_source(config: ArchiveConfig, password: str | None = None, root: Path | None = None) -> MailSource:
    """Build the configured mail source."""
    src = config.source
    if src is None:
        raise ConfigurationError("No mail source configured")
    if src.type == "dir":
        path = Path(src.path).expanduser()
        if not path.is_absolute() and root is not None:
            path = root / path
        return EmlDirSource(path)
    return ImapSource(
        host=src.host,
        user=src.user,
        password=password or src.password,
        folder=src.folder,
        port=src.port,
    )


def make_watermark(config: ArchiveConfig, root: Path | None = None) -> WatermarkStore:
    return WatermarkStore(
        YamlPropertyStore(get_state_path(root)),
        initial=config.initial_last_run,
    )
