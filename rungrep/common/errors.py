"""Error types."""


class RungrepError(Exception):
    """Base class for all rungrep errors."""


class ExecutorError(RungrepError):
    """The search process exited abnormally."""

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = ""):
        """Store the exit code and error output of the failed process."""
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class MalformedRecordError(RungrepError):
    """A line of search output could not be decoded."""


class StorageError(RungrepError):
    """The history file could not be read or written."""


class NoMatchesError(RungrepError):
    """There is nothing to navigate."""
