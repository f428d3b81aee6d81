"""
Read-only access to a tree of files served over HTTP(S).

Remote trees can not be listed, so neither enumeration nor hint resolution touches the
network: the effective root is derived from the URL alone, and file existence is only
known once a file is actually fetched.

All backends share one process-wide httpx.Client with a fixed number of connections.
Callers exceeding that number block until a connection is free.
"""

import dataclasses
import io
import logging
import threading
import urllib.parse
from typing import List, NamedTuple, Optional

import httpx

from .backend import Backend, OpenOptions
from .errors import ArchiveIOError, NoSuchFileError, UnsupportedOperationError
from .hint import FileHint, HintedPath
from .stream import FilterInit, IStream

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
DEFAULT_TIMEOUT = 30.0

_NOT_FOUND = (404, 410)


class FetchResult(NamedTuple):
    status: int
    body: bytes


class Fetcher:
    """Synchronous fetch client with a bounded connection pool."""

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.concurrency = concurrency
        self._client = httpx.Client(
            limits=httpx.Limits(
                max_connections=concurrency, max_keepalive_connections=concurrency
            ),
            # Wait for a free connection as long as it takes
            timeout=httpx.Timeout(timeout, pool=None),
            follow_redirects=True,
            transport=transport,
        )

    def fetch(self, uri: str) -> FetchResult:
        """
        Fetch `uri`.

        Raises:
            httpx.HTTPError on transport failures.
        """
        response = self._client.get(uri)
        return FetchResult(response.status_code, response.content)

    def close(self):
        self._client.close()


_fetcher: Optional[Fetcher] = None
_fetcher_lock = threading.Lock()


def configure_fetcher(
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    transport: Optional[httpx.BaseTransport] = None,
) -> Fetcher:
    """
    (Re)configure the process-wide fetch client.

    Meant to be called once at startup, before any HTTP archive is read.
    """
    global _fetcher

    with _fetcher_lock:
        if _fetcher is not None:
            _fetcher.close()
        _fetcher = Fetcher(concurrency, timeout, transport)
        return _fetcher


def get_fetcher() -> Fetcher:
    global _fetcher

    with _fetcher_lock:
        if _fetcher is None:
            _fetcher = Fetcher()
        return _fetcher


def apply_hint_to_url(url: str, hint: FileHint) -> HintedPath:
    """
    Derive the effective root of a remote tree from its URL.

    A URL naming a file is taken to point at the hinted file: its directory becomes the
    effective root and the file name is recorded as the used hint. A URL ending in a
    slash is used as it is.
    """

    if not hint:
        return HintedPath(url)

    parts = urllib.parse.urlsplit(url)
    if not parts.path or parts.path.endswith("/"):
        return HintedPath(url)

    parent, _, filename = parts.path.rpartition("/")
    root = urllib.parse.urlunsplit((parts.scheme, parts.netloc, parent + "/", "", ""))
    return HintedPath(root, filename)


class HttpArchive(Backend):
    """Backend for files below an HTTP(S) URL."""

    def __init__(self, archive_path: str, options: OpenOptions):
        self.archive_path = str(archive_path)
        self.options = options
        self.hinted = apply_hint_to_url(self.archive_path, options.hint)
        self.root = str(self.hinted.path)

        logger.debug("Remote tree %s has effective root %s", self.archive_path, self.root)

    @classmethod
    def handles_schema(cls, schema: str) -> bool:
        return schema in ("http", "https")

    def _resolve(self, path) -> str:
        return urllib.parse.urljoin(self.root, str(path))

    def open_stream(self, path, filter_init: Optional[FilterInit] = None) -> IStream:
        url = self._resolve(path)

        try:
            result = get_fetcher().fetch(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ArchiveIOError(f"Failed to download data from <{url}>: {exc}") from exc

        if result.status in _NOT_FOUND:
            raise NoSuchFileError(f"File at URL <{url}> doesn't exist.")

        if not 200 <= result.status < 300:
            raise ArchiveIOError(
                f"Failed to download data from <{url}>: Unexpected HTTP status code <{result.status}>."
            )

        return IStream(
            io.BytesIO(result.body),
            filter_init,
            size=len(result.body),
            path=url,
            index=path,
        )

    def exists(self, path) -> bool:
        # Existence is only known when fetching
        return True

    def enumerate(self) -> List:
        raise UnsupportedOperationError("HTTP list not implemented.")

    def find_by_name(self, filename: str):
        raise UnsupportedOperationError("HTTP find not implemented.")

    def with_hint(self, hint: FileHint) -> "HttpArchive":
        return HttpArchive(self.archive_path, dataclasses.replace(self.options, hint=hint))
