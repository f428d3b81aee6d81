import dataclasses
import logging
import os
import pathlib
from typing import Iterator, List, Optional, Union

from .backend import MIME_DIRECTORY, Backend, OpenOptions
from .errors import ArchiveIOError, NoSuchFileError
from .hint import FileHint, resolve_hint
from .stream import FilterInit, IStream

logger = logging.getLogger(__name__)


def _iterdir_recursive(path: pathlib.Path) -> Iterator[pathlib.Path]:
    """Yield all files below `path`: files of a directory first, then its subdirectories."""
    try:
        entries = sorted(path.iterdir())
    except FileNotFoundError as exc:
        raise NoSuchFileError(f"No directory at {path}.") from exc
    except OSError as exc:
        raise ArchiveIOError(f"Cannot list {path}: {exc}") from exc

    subdirs = []
    for entry in entries:
        if entry.is_dir():
            subdirs.append(entry)
        elif entry.is_file():
            yield entry

    for subdir in subdirs:
        yield from _iterdir_recursive(subdir)


class DirectoryArchive(Backend):
    """Backend for plain filesystem directories. The filesystem is the index."""

    mime_types = (MIME_DIRECTORY,)

    def __init__(self, archive_path: Union[str, pathlib.Path], options: OpenOptions):
        self.archive_path = pathlib.Path(archive_path)
        self.options = options

        if not self.archive_path.is_dir():
            raise NoSuchFileError(f"No directory at {self.archive_path}.")

        # Relative paths of the native flavour
        self._pure_path_impl = type(pathlib.PurePath())

        members = (
            entry.relative_to(self.archive_path)
            for entry in _iterdir_recursive(self.archive_path)
        )
        self.hinted = resolve_hint(
            members, options.hint, self.archive_path, scan_limit=options.scan_limit
        )
        self.root = self.archive_path / self.hinted.path
        self._mtime = self._root_mtime()

        logger.debug("Directory %s has effective root %s", self.archive_path, self.root)

    def _root_mtime(self) -> Optional[int]:
        try:
            return self.root.stat().st_mtime_ns
        except OSError:
            return None

    def _resolve(self, path: Union[str, pathlib.PurePath]) -> pathlib.Path:
        # Absolute paths (e.g. obtained via direct_path) are used as they are
        member_path = self._pure_path_impl(path)
        if not member_path.is_absolute() and ".." in member_path.parts:
            raise NoSuchFileError(f"{path!s} is outside of the archive at {self.root}.")

        return self.root / member_path

    def open_stream(
        self, path: Union[str, pathlib.PurePath], filter_init: Optional[FilterInit] = None
    ) -> IStream:
        full_path = self._resolve(path)

        try:
            f = full_path.open("rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise NoSuchFileError(f"File {path!s} not found in the archive at {self.root}.") from exc
        except OSError as exc:
            raise ArchiveIOError(f"Cannot open {full_path}: {exc}") from exc

        try:
            stat = os.fstat(f.fileno())
            return IStream(
                f,
                filter_init,
                size=stat.st_size,
                path=full_path,
                index=path,
                timestamp=stat.st_mtime,
            )
        except BaseException:
            f.close()
            raise

    def exists(self, path: Union[str, pathlib.PurePath]) -> bool:
        try:
            return self._resolve(path).is_file()
        except OSError:
            return False

    def enumerate(self) -> List[pathlib.PurePath]:
        return [
            self._pure_path_impl(entry.relative_to(self.root))
            for entry in _iterdir_recursive(self.root)
        ]

    def find_by_name(self, filename: str) -> Optional[pathlib.PurePath]:
        for entry in _iterdir_recursive(self.root):
            if entry.name == filename:
                return self._pure_path_impl(entry.relative_to(self.root))
        return None

    def with_hint(self, hint: FileHint) -> "DirectoryArchive":
        return DirectoryArchive(self.archive_path, dataclasses.replace(self.options, hint=hint))

    def supports_direct_access(self) -> bool:
        return True

    def direct_path(self, path: Union[str, pathlib.PurePath]) -> pathlib.Path:
        return self._resolve(path)

    def changed(self) -> bool:
        return self._root_mtime() != self._mtime
