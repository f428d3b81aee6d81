"""
Byte streams returned by the archive backends.

Every stream wraps one readable source, optionally seen through a chain of filters
(e.g. decompressors). A stream knows its size and whether it is seekable only as long as
no filter is stacked on top of the source.
"""

import bz2
import gzip
import io
import lzma
import os
import pathlib
import shutil
import zipfile
import zlib
from typing import IO, Callable, List, Optional, Union

from .errors import ArchiveError, ArchiveIOError

Filter = Callable[[IO[bytes]], IO[bytes]]
FilterInit = Callable[["FilterChain"], None]

# Errors raised by sources and filters that are turned into ArchiveIOError
_READ_ERRORS = (OSError, EOFError, zlib.error, lzma.LZMAError, zipfile.BadZipFile)


def gunzip(fileobj: IO[bytes]) -> IO[bytes]:
    return gzip.GzipFile(fileobj=fileobj, mode="rb")


def bunzip2(fileobj: IO[bytes]) -> IO[bytes]:
    return bz2.BZ2File(fileobj, mode="rb")


def unxz(fileobj: IO[bytes]) -> IO[bytes]:
    return lzma.LZMAFile(fileobj, mode="rb")


class FilterChain:
    """
    Ordered list of filters applied to a stream source.

    Filters wrap in push order: the first pushed filter reads directly from the source,
    each following one reads from its predecessor.
    """

    def __init__(self) -> None:
        self._filters: List[Filter] = []

    def push(self, transform: Filter) -> "FilterChain":
        self._filters.append(transform)
        return self

    def __len__(self) -> int:
        return len(self._filters)

    def apply(self, source: IO[bytes]) -> IO[bytes]:
        fileobj = source
        for transform in self._filters:
            fileobj = transform(fileobj)
        return fileobj


class IStream(io.RawIOBase):
    """
    Readable binary stream of an archive member.

    Args:
        source: Readable binary file object, owned by the stream.
        filter_init: Called with an empty FilterChain before anything is read.
        size: Size of the source, if known.
        seekable: Whether the source supports seeking.
        path: Real location of the data (filesystem path, archive location or URL).
        index: Path the stream was requested by.
        timestamp: Modification time (seconds since the epoch), if known.

    If `filter_init` stacks at least one filter, the stream is "stacked":
    its size becomes unknown and it is no longer seekable.
    """

    def __init__(
        self,
        source: IO[bytes],
        filter_init: Optional[FilterInit] = None,
        *,
        size: Optional[int] = None,
        seekable: bool = True,
        path: Union[str, pathlib.PurePath] = "",
        index: Union[str, pathlib.PurePath] = "",
        timestamp: Optional[float] = None,
    ) -> None:
        super().__init__()

        self._source = source
        self.path = path
        self.index = index
        self.timestamp = timestamp

        chain = FilterChain()
        if filter_init is not None:
            filter_init(chain)

        if len(chain):
            # A filter breaks the correspondence between source and logical offsets
            self.stacked = True
            self._size = None
            self._seekable = False
            try:
                self._top = chain.apply(source)
            except _READ_ERRORS as exc:
                source.close()
                raise ArchiveIOError(f"Cannot set up filters for {path}: {exc}") from exc
        else:
            self.stacked = False
            self._size = size
            self._seekable = seekable
            self._top = source

    @property
    def size(self) -> Optional[int]:
        """Size of the stream in bytes, None if unknown."""
        return self._size

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return self._seekable

    def readinto(self, b) -> int:
        try:
            readinto = getattr(self._top, "readinto", None)
            if readinto is not None:
                n = readinto(b)
            else:
                data = self._top.read(len(b))
                n = len(data)
                b[:n] = data
        except ArchiveError:
            raise
        except _READ_ERRORS as exc:
            raise ArchiveIOError(f"Error reading {self.path}: {exc}") from exc

        return 0 if n is None else n

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if not self._seekable:
            raise io.UnsupportedOperation(f"{self.path} is not seekable")

        try:
            return self._top.seek(offset, whence)
        except ArchiveError:
            raise
        except _READ_ERRORS as exc:
            raise ArchiveIOError(f"Error seeking in {self.path}: {exc}") from exc

    def tell(self) -> int:
        if not self._seekable:
            raise io.UnsupportedOperation(f"{self.path} is not seekable")
        return self._top.tell()

    def read_all(self) -> bytes:
        """
        Read the whole stream. The stream must not have been read from before.

        With a known size, exactly that many bytes are read into a preallocated buffer.
        A seekable stream of unknown size is measured by seeking to its end first.
        Otherwise, data is copied incrementally.
        """

        size = self._size
        if size is None and self._seekable:
            size = self.seek(0, io.SEEK_END)
            self.seek(0)

        if size is not None:
            buffer = bytearray(size)
            view = memoryview(buffer)
            filled = 0
            while filled < size:
                n = self.readinto(view[filled:])
                if not n:
                    raise ArchiveIOError(
                        f"Unexpected end of data in {self.path}: got {filled} of {size} bytes"
                    )
                filled += n
            return bytes(buffer)

        buffer = bytearray()
        while True:
            chunk = self.read(io.DEFAULT_BUFFER_SIZE)
            if not chunk:
                break
            buffer += chunk
        return bytes(buffer)

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._top is not self._source:
                self._top.close()
            self._source.close()
        finally:
            super().close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.index})>"


def copy(stream: IStream, out: Union[IO[bytes], str, os.PathLike]) -> None:
    """Copy an open stream to a binary file object or to a local file."""
    if hasattr(out, "write"):
        shutil.copyfileobj(stream, out)  # type: ignore
        return

    with open(out, "wb") as f:
        shutil.copyfileobj(stream, f)
