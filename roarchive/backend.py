import dataclasses
import logging
import pathlib
import tarfile
import urllib.parse
import zipfile
from typing import List, Optional, Tuple, Type, Union

from .errors import ArchiveIOError, NoSuchFileError, NotAnArchiveError, UnsupportedOperationError
from .hint import FileHint, HintedPath, make_hint
from .stream import FilterInit, IStream

logger = logging.getLogger(__name__)

MIME_DIRECTORY = "inode/directory"
MIME_TAR = "application/x-tar"
MIME_ZIP = "application/zip"
MIME_GZIP = "application/gzip"
MIME_UNKNOWN = "application/octet-stream"


@dataclasses.dataclass(frozen=True)
class OpenOptions:
    """
    Options for opening an archive.

    Attributes:
        hint: Ordered list of file names (most preferred first) locating the effective root.
        scan_limit: Maximum number of members inspected while looking for the hint.
        mime: Content type of the archive. Skips content sniffing if given.
    """

    hint: FileHint = ()
    scan_limit: Optional[int] = None
    mime: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "hint", make_hint(self.hint))


class Backend:
    """
    Common contract of all archive formats.

    All path arguments are relative to the effective root of the archive.
    """

    #: Content types handled by this backend
    mime_types: Tuple[str, ...] = ()

    archive_path: Union[str, pathlib.Path]
    hinted: HintedPath

    @classmethod
    def handles_schema(cls, schema: str) -> bool:
        """Whether this backend takes care of paths with the given URI schema."""
        return False

    def open_stream(
        self, path: Union[str, pathlib.PurePath], filter_init: Optional[FilterInit] = None
    ) -> IStream:
        """
        Open a file for reading.

        Raises:
            NoSuchFileError if the file does not exist.
        """
        raise NotImplementedError()  # pragma: no cover

    def exists(self, path: Union[str, pathlib.PurePath]) -> bool:
        """Check if a file exists. Never raises."""
        raise NotImplementedError()  # pragma: no cover

    def enumerate(self) -> List[pathlib.PurePath]:
        """List all files below the effective root."""
        raise NotImplementedError()  # pragma: no cover

    def find_by_name(self, filename: str) -> Optional[pathlib.PurePath]:
        """Return the first file whose final component equals `filename`."""
        for path in self.enumerate():
            if path.name == filename:
                return path
        return None

    def with_hint(self, hint: FileHint) -> "Backend":
        """Return a new backend for the same archive, resolved with another hint."""
        raise NotImplementedError()  # pragma: no cover

    def used_hint(self) -> Optional[str]:
        return self.hinted.used_hint

    def supports_direct_access(self) -> bool:
        return False

    def direct_path(self, path: Union[str, pathlib.PurePath]) -> pathlib.Path:
        """Path of a file in the local filesystem, for backends with direct access."""
        raise UnsupportedOperationError(f"No direct access to files in {self.archive_path}")

    def changed(self) -> bool:
        """Best-effort check whether the archive was modified since it was opened."""
        return False

    def close(self):
        pass


def _is_plain_tar(path: pathlib.Path) -> bool:
    # Pre-POSIX tarballs carry no magic
    try:
        with tarfile.open(path, "r:"):
            return True
    except (tarfile.TarError, OSError):
        return False


def sniff_mime(path: Union[str, pathlib.Path]) -> str:
    """Determine the content type of a local file or directory."""
    path = pathlib.Path(path)

    if path.is_dir():
        return MIME_DIRECTORY

    if not path.exists():
        raise NoSuchFileError(f"No archive at {path}.")

    try:
        with path.open("rb") as f:
            header = f.read(tarfile.BLOCKSIZE)
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read {path}: {exc}") from exc

    if header[257:262] == b"ustar":
        return MIME_TAR

    if header[:2] == b"\x1f\x8b":
        return MIME_GZIP

    if zipfile.is_zipfile(path):
        return MIME_ZIP

    if _is_plain_tar(path):
        return MIME_TAR

    return MIME_UNKNOWN


def _schema(path: Union[str, pathlib.Path]) -> str:
    if not isinstance(path, str):
        return ""
    return urllib.parse.urlsplit(path).scheme.lower()


def create_backend(path: Union[str, pathlib.Path], options: OpenOptions) -> Backend:
    """
    Instantiate the backend matching `path`.

    Backends that handle the schema of `path` take precedence. Otherwise, the backend is
    selected by the content type given in `options` or sniffed from the file.

    Raises:
        NotAnArchiveError if no backend supports the content type.
    """

    backends: List[Type[Backend]] = Backend.__subclasses__()

    schema = _schema(path)
    if schema:
        for backend_cls in backends:
            if backend_cls.handles_schema(schema):
                logger.debug("%s handles schema %r of %s", backend_cls.__name__, schema, path)
                return backend_cls(path, options)  # type: ignore

    path = pathlib.Path(path)
    mime = options.mime or sniff_mime(path)

    for backend_cls in backends:
        if mime in backend_cls.mime_types:
            logger.debug("Opening %s (%s) with %s", path, mime, backend_cls.__name__)
            return backend_cls(path, options)  # type: ignore

    raise NotAnArchiveError(f"Unsupported archive type <{mime}> of {path}.")


def file_signature(path: Union[str, pathlib.Path]) -> Optional[Tuple[int, int]]:
    """Size and modification time of a file, used to detect changes. None if unavailable."""
    try:
        stat = pathlib.Path(path).stat()
    except OSError:
        return None
    return stat.st_size, stat.st_mtime_ns
