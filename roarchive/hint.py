"""
Hint resolution.

A hint is an ordered list of file names, most preferred first. The archive is scanned for
these names and the directory holding the best match becomes the effective root of the
archive, so that the same logical layout can be read from archives that wrap it in an
arbitrary number of leading directories.
"""

import dataclasses
import logging
import pathlib
from typing import Iterable, Optional, Tuple, Union

from .errors import HintNotFoundError

logger = logging.getLogger(__name__)

FileHint = Tuple[str, ...]


def make_hint(hint: Union[None, str, Iterable[str]]) -> FileHint:
    """Normalize a user supplied hint: None, a single file name or a list of file names."""
    if hint is None:
        return ()

    if isinstance(hint, str):
        return (hint,)

    return tuple(hint)


@dataclasses.dataclass(frozen=True)
class HintedPath:
    """Effective root found by hint resolution and the candidate that matched (if any)."""

    path: Union[pathlib.PurePath, str]
    used_hint: Optional[str] = None


def resolve_hint(
    members: Iterable[pathlib.PurePath],
    hint: FileHint,
    archive_path,
    *,
    scan_limit: Optional[int] = None,
) -> HintedPath:
    """
    Find the effective root for `hint` among `members`.

    A member matching a candidate of higher priority always wins over one found earlier
    that matches a candidate of lower priority. Scanning stops early only on a match of the
    most preferred candidate or after `scan_limit` members.

    Raises:
        HintNotFoundError if no candidate matches.
    """

    if not hint:
        return HintedPath(pathlib.PurePath("."))

    best_index = len(hint)
    best_match: Optional[pathlib.PurePath] = None

    for scanned, member in enumerate(members, 1):
        name = member.name
        for i in range(best_index):
            if name == hint[i]:
                best_index = i
                best_match = member
                logger.debug("Hint candidate %r matched by %s", hint[i], member)
                break

        if best_index == 0:
            break

        if scan_limit is not None and scanned >= scan_limit:
            logger.debug("Stopped hint scan in %s after %d members", archive_path, scanned)
            break

    if best_match is None:
        raise HintNotFoundError(hint, archive_path)

    return HintedPath(best_match.parent, hint[best_index])


def strip_prefix(
    path: pathlib.PurePath, prefix: pathlib.PurePath
) -> Optional[pathlib.PurePath]:
    """Return `path` relative to `prefix`, or None if `path` is not under `prefix`."""
    if not prefix.parts:
        return path

    if path.parts[: len(prefix.parts)] != prefix.parts or path == prefix:
        return None

    return path.relative_to(prefix)
