import dataclasses
import io
import logging
import os
import pathlib
import tarfile
import threading
from typing import Dict, List, NamedTuple, Optional, Union

from .backend import MIME_TAR, Backend, OpenOptions, file_signature
from .errors import ArchiveIOError, NoSuchFileError
from .hint import FileHint, resolve_hint, strip_prefix
from .stream import FilterInit, IStream

logger = logging.getLogger(__name__)

_BUFFER_SIZE = 1 << 16


class TarMember(NamedTuple):
    """Location of a member's data inside the tar file."""

    path: pathlib.PurePosixPath
    start: int
    end: int
    mtime: float


class SharedDescriptor:
    """
    A reference-counted file descriptor shared by all streams of one tar file.

    Reads are positioned, so no stream ever depends on (or modifies) a shared file cursor.
    """

    def __init__(self, path: Union[str, pathlib.Path]) -> None:
        self.path = path
        self._file = open(path, "rb")
        self._refs = 1
        # Only needed where os.pread is unavailable
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def acquire(self) -> "SharedDescriptor":
        if self._file.closed:
            raise ArchiveIOError(f"{self.path} is already closed")
        self._refs += 1
        return self

    def release(self):
        self._refs -= 1
        if self._refs <= 0:
            self._file.close()

    def pread(self, size: int, offset: int) -> bytes:
        if hasattr(os, "pread"):
            return os.pread(self._file.fileno(), size, offset)

        with self._lock:  # pragma: no cover
            self._file.seek(offset)
            return self._file.read(size)


class TarReader:
    """Reads the member list of a plain (uncompressed) tar file once."""

    def __init__(self, path: Union[str, pathlib.Path]) -> None:
        self.path = path

        try:
            with tarfile.open(path, "r:") as tf:
                tar_infos = tf.getmembers()
        except FileNotFoundError as exc:
            raise NoSuchFileError(f"No archive at {path}.") from exc
        except (tarfile.TarError, OSError) as exc:
            raise ArchiveIOError(f"Cannot read tar archive {path}: {exc}") from exc

        self._files: List[TarMember] = []
        for tar_info in tar_infos:
            if not tar_info.isreg():
                continue

            if tar_info.issparse():
                logger.warning("Skipping sparse member %s of %s", tar_info.name, path)
                continue

            self._files.append(
                TarMember(
                    pathlib.PurePosixPath(tar_info.name.lstrip("/")),
                    tar_info.offset_data,
                    tar_info.offset_data + tar_info.size,
                    tar_info.mtime,
                )
            )

        self._signature = file_signature(path)
        self._filedes = SharedDescriptor(path)
        self._closed = False

        logger.debug("Read %d members from %s", len(self._files), path)

    def files(self) -> List[TarMember]:
        return self._files

    def filedes(self) -> SharedDescriptor:
        return self._filedes

    def changed(self) -> bool:
        return file_signature(self.path) != self._signature

    def close(self):
        # Streams still open keep the descriptor alive
        if not self._closed:
            self._closed = True
            self._filedes.release()


class _TarMemberIO(io.RawIOBase):
    """Raw stream over the byte range [start, end) of a shared descriptor."""

    def __init__(self, filedes: SharedDescriptor, member: TarMember) -> None:
        super().__init__()
        self._filedes = filedes
        self._start = member.start
        self._size = member.end - member.start
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        n = min(len(b), self._size - self._pos)
        if n <= 0:
            return 0

        data = self._filedes.pread(n, self._start + self._pos)
        if len(data) < n:
            raise ArchiveIOError(
                f"Unexpected end of {self._filedes.path} at offset {self._start + self._pos + len(data)}"
            )

        b[:n] = data
        self._pos += n
        return n

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            pos = offset
        elif whence == io.SEEK_CUR:
            pos = self._pos + offset
        elif whence == io.SEEK_END:
            pos = self._size + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")

        if pos < 0:
            raise ValueError(f"Negative seek position {pos}")

        self._pos = pos
        return pos

    def tell(self) -> int:
        return self._pos

    def close(self) -> None:
        if not self.closed:
            self._filedes.release()
        super().close()


class TarArchive(Backend):
    """Backend for plain tar files."""

    mime_types = (MIME_TAR,)

    def __init__(
        self,
        archive_path: Union[str, pathlib.Path],
        options: OpenOptions,
        reader: Optional[TarReader] = None,
    ):
        self.archive_path = pathlib.Path(archive_path)
        self.options = options
        self._reader = reader if reader is not None else TarReader(self.archive_path)

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

        # Map from relative path to member, so that the member list does not have to be
        # iterated each time a name is searched.
        self._index: Dict[pathlib.PurePosixPath, TarMember] = {}
        for member in files:
            relative = strip_prefix(member.path, self.root)
            if relative is not None:
                self._index[relative] = member

        logger.debug(
            "Indexed %d files under %s in %s", len(self._index), self.root, self.archive_path
        )

    def open_stream(
        self, path: Union[str, pathlib.PurePath], filter_init: Optional[FilterInit] = None
    ) -> IStream:
        try:
            member = self._index[pathlib.PurePosixPath(path)]
        except KeyError as exc:
            raise NoSuchFileError(
                f'File "{path!s}" not found in the archive at {self.archive_path}.'
            ) from exc

        raw = _TarMemberIO(self._reader.filedes().acquire(), member)
        return IStream(
            io.BufferedReader(raw, _BUFFER_SIZE),
            filter_init,
            size=member.end - member.start,
            path=pathlib.PurePosixPath(self.archive_path.as_posix()) / member.path,
            index=path,
            timestamp=member.mtime,
        )

    def exists(self, path: Union[str, pathlib.PurePath]) -> bool:
        return pathlib.PurePosixPath(path) in self._index

    def enumerate(self) -> List[pathlib.PurePath]:
        return list(self._index.keys())

    def with_hint(self, hint: FileHint) -> "TarArchive":
        return TarArchive(
            self.archive_path, dataclasses.replace(self.options, hint=hint), self._reader
        )

    def changed(self) -> bool:
        return self._reader.changed()

    def close(self):
        self._reader.close()
