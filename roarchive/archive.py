import fnmatch
import io
import logging
import pathlib
from typing import IO, Iterable, Optional, Union

from pathlib_abc import PathBase

from .backend import Backend, OpenOptions, create_backend
from .errors import ArchiveError, ArchiveIOError
from .hint import make_hint
from .stream import FilterInit, IStream

logger = logging.getLogger(__name__)


class ArchivePath(PathBase):
    """Represents a path within an archive."""

    def __init__(self, archive: "RoArchive", path: pathlib.PurePath) -> None:
        self._archive = archive
        self._path = path

    def open(
        self,
        mode="r",
        filter_init: Optional[FilterInit] = None,
        encoding: Optional[str] = None,
        errors: Optional[str] = None,
        newline: Optional[str] = None,
    ) -> IO:
        if any(c in mode for c in "wax+"):
            raise ValueError("Can not write to a read-only archive")

        stream = self._archive.open_stream(self._path, filter_init)

        if "b" in mode:
            if encoding is not None or errors is not None or newline is not None:
                stream.close()
                raise ValueError("encoding args invalid for binary operation")
            return stream

        # Text mode
        return io.TextIOWrapper(
            stream, encoding=encoding or "utf-8", errors=errors, newline=newline
        )  # type: ignore

    def read_bytes(self) -> bytes:
        with self._archive.open_stream(self._path) as stream:
            return stream.read_all()

    def read_text(self, encoding: Optional[str] = None, errors: Optional[str] = None) -> str:
        return self.read_bytes().decode(encoding or "utf-8", errors or "strict")

    def __truediv__(self, key: Union[str, pathlib.PurePath]) -> "ArchivePath":
        return ArchivePath(self._archive, self._path / key)

    def exists(self) -> bool:
        return self._archive.exists(self._path)

    def is_file(self) -> bool:
        return self._archive.exists(self._path)

    def glob(self, pattern: str, **kwargs) -> Iterable["ArchivePath"]:
        return self._archive.glob(str(self._path / pattern), **kwargs)

    def iterdir(self) -> Iterable["ArchivePath"]:
        return self._archive._iterdir_at(self._path)

    def match(self, pattern: str, case_sensitive=None) -> bool:
        matches = fnmatch.fnmatchcase if case_sensitive else fnmatch.fnmatch

        return matches(str(self._path), pattern)

    def __str__(self) -> str:
        return f"{self._archive.archive_path}/{self._path.as_posix()}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self._path})>"

    @property
    def parent(self) -> "ArchivePath":
        return ArchivePath(self._archive, self._path.parent)

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def stem(self) -> str:
        return self._path.stem

    @property
    def suffix(self) -> str:
        return self._path.suffix

    def __lt__(self, other) -> bool:
        if not isinstance(other, ArchivePath):
            return NotImplemented

        if self._archive.archive_path != other._archive.archive_path:
            return NotImplemented

        return self._path < other._path


class RoArchive:
    """
    Read-only access to files in a directory, a tar file, a zip file or below an HTTP URL.

    The archive format is determined from the URL schema or the content type. All paths are
    relative to the effective root of the archive, which is the directory holding the file
    named by `hint` (see OpenOptions). Without a hint, the effective root is the archive
    itself.

    Usage:
        with RoArchive("dataset.tar", hint=["tileset.conf", "mapconfig.json"]) as archive:
            data = archive.open_stream("tileset.conf").read_all()

    Raises:
        NotAnArchiveError if the content type is not supported.
        HintNotFoundError if no hint candidate is found.
    """

    def __init__(
        self,
        archive_path: Union[str, pathlib.Path],
        options: Optional[OpenOptions] = None,
        *,
        hint=None,
        mime: Optional[str] = None,
        scan_limit: Optional[int] = None,
    ):
        if options is None:
            options = OpenOptions(make_hint(hint), scan_limit, mime)
        elif hint is not None or mime is not None or scan_limit is not None:
            raise ValueError("Pass either options or hint/mime/scan_limit, not both")

        self._archive_path = archive_path
        self._backend: Backend = create_backend(archive_path, options)
        self._directio = self._backend.supports_direct_access()

        logger.info(
            "Opened %s archive %s (hint: %s)",
            type(self._backend).__name__,
            archive_path,
            self._backend.used_hint(),
        )

    @property
    def archive_path(self) -> Union[str, pathlib.Path]:
        """Physical path (or URL) of the archive."""
        return self._archive_path

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def directio(self) -> bool:
        """True if files can be accessed directly in the filesystem, see direct_path."""
        return self._directio

    def open_stream(
        self, path: Union[str, pathlib.PurePath], filter_init: Optional[FilterInit] = None
    ) -> IStream:
        """
        Open a file for reading.

        `filter_init` is called with the FilterChain of the stream before anything is read,
        e.g. `lambda chain: chain.push(gunzip)`.

        Raises:
            NoSuchFileError if the file does not exist.
            ArchiveIOError if the file can not be read.
        """

        try:
            return self._backend.open_stream(path, filter_init)
        except ArchiveError:
            raise
        except OSError as exc:
            raise ArchiveIOError(f"Cannot open {path} in {self._archive_path}: {exc}") from exc

    def exists(self, path: Union[str, pathlib.PurePath]) -> bool:
        return self._backend.exists(path)

    def enumerate(self) -> Iterable[pathlib.PurePath]:
        """
        List all files in the archive, relative to the effective root.

        Raises:
            UnsupportedOperationError for remote archives.
        """
        return self._backend.enumerate()

    def find_by_name(self, filename: str) -> Optional[pathlib.PurePath]:
        """
        Find the first file named `filename`.

        Raises:
            UnsupportedOperationError for remote archives.
        """
        return self._backend.find_by_name(filename)

    def apply_hint(self, hint) -> None:
        """
        Resolve the effective root again, using `hint` on the original archive.

        Must not be called concurrently with any other operation on this archive.
        """
        backend = self._backend.with_hint(make_hint(hint))
        self._backend = backend

        logger.debug("Re-hinted %s (hint: %s)", self._archive_path, backend.used_hint())

    def used_hint(self) -> Optional[str]:
        """The hint candidate the effective root was found by."""
        return self._backend.used_hint()

    def direct_path(self, path: Union[str, pathlib.PurePath]) -> pathlib.Path:
        """
        Filesystem path of a file inside a directory archive.

        Raises:
            UnsupportedOperationError if the archive does not support direct access.
        """
        return self._backend.direct_path(path)

    def handles_schema(self, schema: str) -> bool:
        return self._backend.handles_schema(schema)

    def changed(self) -> bool:
        """Best-effort check whether the archive was modified since it was opened."""
        return self._backend.changed()

    def members(self) -> Iterable[ArchivePath]:
        return (ArchivePath(self, path) for path in self.enumerate())

    def glob(self, pattern: str, **kwargs) -> Iterable[ArchivePath]:
        for member in self.members():
            if member.match(pattern, **kwargs):
                yield member

    def iterdir(self) -> Iterable[ArchivePath]:
        return self._iterdir_at()

    def _iterdir_at(self, at: Optional[pathlib.PurePath] = None) -> Iterable[ArchivePath]:
        if at is None:
            at = pathlib.PurePath(".")

        for member in self.members():
            if member.parent._path == at:
                yield member

    def __truediv__(self, key: Union[str, pathlib.PurePath]) -> ArchivePath:
        if isinstance(key, str):
            key = pathlib.PurePosixPath(key)

        return ArchivePath(self, key)

    def close(self):
        """Close the archive and free resources. Open streams stay readable."""
        self._backend.close()

    def __enter__(self):
        return self

    def __exit__(self, *_, **__):
        self.close()

    def __str__(self) -> str:
        return str(self._archive_path)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self._archive_path!s})>"
