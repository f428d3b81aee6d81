from typing import Sequence

from pathlib_abc import UnsupportedOperation


class ArchiveError(Exception):
    """Base class of all errors raised by roarchive."""

    pass


class NotAnArchiveError(ArchiveError):
    """Raised if no backend is found for the requested archive."""

    pass


class NoSuchFileError(ArchiveError, FileNotFoundError):
    """Raised if a path is absent in an otherwise valid archive."""

    pass


class HintNotFoundError(NoSuchFileError):
    """Raised at open time if none of the hint candidates is present in the archive."""

    def __init__(self, hint: Sequence[str], path) -> None:
        self.hint = tuple(hint)
        self.path = path

        names = " or ".join(f'"{candidate}"' for candidate in self.hint)
        super().__init__(f"No {names} found in the archive at {path}.")


class ArchiveIOError(ArchiveError, OSError):
    """Transport, decompression or filesystem failure."""

    pass


class UnsupportedOperationError(ArchiveError, UnsupportedOperation):
    """Raised if an operation is not supported by the archive backend."""

    pass
