"""Exception taxonomy for the analysis core."""
from typing import List, Optional


class AnalysisError(Exception):
    """Base class for analyzer failures."""


class PreconditionError(AnalysisError, ValueError):
    """Raised before any scanning when the run cannot start.

    Covers a missing or non-directory root and a usage pass invoked with
    empty symbol tables.
    """


class PartitionError(AnalysisError):
    """A worker partition failed or could not be spawned.

    Recorded on the result, never raised out of a run.
    """

    def __init__(self, phase: str, index: int, files: List[str], cause: Optional[BaseException] = None):
        self.phase = phase
        self.index = index
        self.files = list(files)
        self.cause = cause
        reason = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown failure"
        super().__init__(
            f"{phase} partition {index} ({len(self.files)} files) failed: {reason}"
        )
