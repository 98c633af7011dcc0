"""What to do when an archive file with the target name already exists."""

from .errors import ConfigurationError
from .layouts.base import Handle

# Duplicate modes
IGNORE = "ignore"
OVERWRITE = "overwrite"
DUPLICATE_MODES = (IGNORE, OVERWRITE)

# Actions
SAVE = "save"
SKIP = "skip"
REPLACE = "replace"


def validate_mode(mode: str) -> str:
    if mode not in DUPLICATE_MODES:
        raise ConfigurationError(
            f"Unknown duplicate mode: {mode!r} "
            f"(expected one of: {', '.join(DUPLICATE_MODES)})"
        )
    return mode


def resolve(existing: Handle | None, mode: str) -> str:
    """Decide between SAVE, SKIP and REPLACE.

    The caller does the trashing and writing. A REPLACE is reported as a skip
    in run statistics, since it adds no new content to the archive.
    """
    if mode not in DUPLICATE_MODES:
        validate_mode(mode)
    if existing is None:
        return SAVE
    if mode == IGNORE:
        return SKIP
    return REPLACE
