import dataclasses
import logging
import pathlib
import time
import zipfile
from typing import IO, Dict, List, NamedTuple, Optional, Union

from .backend import MIME_ZIP, Backend, OpenOptions, file_signature
from .errors import ArchiveIOError, NoSuchFileError
from .hint import FileHint, resolve_hint, strip_prefix
from .stream import FilterInit, IStream

logger = logging.getLogger(__name__)


class ZipMember(NamedTuple):
    path: pathlib.PurePosixPath
    index: int


class PluggedMember(NamedTuple):
    """An opened zip member as reported by the zip library."""

    path: pathlib.PurePosixPath
    fileobj: IO[bytes]
    size: Optional[int]
    seekable: bool
    timestamp: Optional[float]


class ZipReader:
    """Wraps one ZipFile that is shared by all streams of the archive."""

    def __init__(self, path: Union[str, pathlib.Path]) -> None:
        self.path = path

        try:
            self._zipfile = zipfile.ZipFile(path, "r")
        except FileNotFoundError as exc:
            raise NoSuchFileError(f"No archive at {path}.") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveIOError(f"Cannot read zip archive {path}: {exc}") from exc

        self._infos = self._zipfile.infolist()
        self._files = [
            ZipMember(pathlib.PurePosixPath(zip_info.filename.lstrip("/")), index)
            for index, zip_info in enumerate(self._infos)
            if not zip_info.is_dir()
        ]
        self._signature = file_signature(path)

        logger.debug("Read %d members from %s", len(self._files), path)

    def files(self) -> List[ZipMember]:
        return self._files

    def plug(self, index: int) -> PluggedMember:
        zip_info = self._infos[index]

        try:
            # ZipFile keeps track of the file position for each open member
            fileobj = self._zipfile.open(zip_info, "r")
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError) as exc:
            raise ArchiveIOError(
                f"Cannot open {zip_info.filename} in {self.path}: {exc}"
            ) from exc

        try:
            timestamp: Optional[float] = time.mktime(zip_info.date_time + (0, 0, -1))
        except (OverflowError, ValueError):
            timestamp = None

        return PluggedMember(
            pathlib.PurePosixPath(zip_info.filename),
            fileobj,
            zip_info.file_size,
            fileobj.seekable(),
            timestamp,
        )

    def changed(self) -> bool:
        return file_signature(self.path) != self._signature

    def close(self):
        self._zipfile.close()


class ZipArchive(Backend):
    """Backend for zip files. Decompression is left to the zipfile module."""

    mime_types = (MIME_ZIP,)

    def __init__(
        self,
        archive_path: Union[str, pathlib.Path],
        options: OpenOptions,
        reader: Optional[ZipReader] = None,
    ):
        self.archive_path = pathlib.Path(archive_path)
        self.options = options
        self._reader = reader if reader is not None else ZipReader(self.archive_path)

        try:
            self._build_index(options)
        except BaseException:
            # A shared reader belongs to the backend it was taken from
            if reader is None:
                self._reader.close()
            raise

    def _build_index(self, options: OpenOptions):
        files = self._reader.files()
        self.hinted = resolve_hint(
            (member.path for member in files),
            options.hint,
            self.archive_path,
            scan_limit=options.scan_limit,
        )
        self.root = pathlib.PurePosixPath(self.hinted.path)

        self._index: Dict[pathlib.PurePosixPath, int] = {}
        for member in files:
            relative = strip_prefix(member.path, self.root)
            if relative is not None:
                self._index[relative] = member.index

        logger.debug(
            "Indexed %d files under %s in %s", len(self._index), self.root, self.archive_path
        )

    def open_stream(
        self, path: Union[str, pathlib.PurePath], filter_init: Optional[FilterInit] = None
    ) -> IStream:
        try:
            index = self._index[pathlib.PurePosixPath(path)]
        except KeyError as exc:
            raise NoSuchFileError(
                f'File "{path!s}" not found in the archive at {self.archive_path}.'
            ) from exc

        member = self._reader.plug(index)
        return IStream(
            member.fileobj,
            filter_init,
            size=member.size,
            seekable=member.seekable,
            path=pathlib.PurePosixPath(self.archive_path.as_posix()) / member.path,
            index=path,
            timestamp=member.timestamp,
        )

    def exists(self, path: Union[str, pathlib.PurePath]) -> bool:
        return pathlib.PurePosixPath(path) in self._index

    def enumerate(self) -> List[pathlib.PurePath]:
        return list(self._index.keys())

    def with_hint(self, hint: FileHint) -> "ZipArchive":
        return ZipArchive(
            self.archive_path, dataclasses.replace(self.options, hint=hint), self._reader
        )

    def changed(self) -> bool:
        return self._reader.changed()

    def close(self):
        self._reader.close()
