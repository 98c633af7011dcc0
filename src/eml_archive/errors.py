"""Error types for eml-archive.

Only fatal conditions are raised out of a run. Failures tied to a single
message are recorded in RunStats and never escape the engine.
"""


class ArchiveError(Exception):
    """Base class for fatal archive errors."""


class ConfigurationError(ArchiveError):
    """Invalid or missing configuration (granularity, mode, root, watermark)."""


class SourceEnumerationError(ArchiveError):
    """The mail source could not be searched."""


class PersistenceError(ArchiveError):
    """The watermark could not be written at the end of a run.

    Everything saved by the run is on disk, but the next run will start from
    the old watermark and re-examine those messages.
    """

    def __init__(self, message: str, stats=None):
        super().__init__(message)
        self.stats = stats
