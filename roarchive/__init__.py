"""
roarchive

This Python module provides uniform read-only access to files stored in various archive formats,
including plain filesystem directories, TAR and ZIP archives and file trees served over HTTP.
"""

from .archive import ArchivePath, RoArchive
from .backend import OpenOptions, sniff_mime
from .errors import (
    ArchiveError,
    ArchiveIOError,
    HintNotFoundError,
    NoSuchFileError,
    NotAnArchiveError,
    UnsupportedOperationError,
)
from .stream import FilterChain, IStream, bunzip2, copy, gunzip, unxz

# Importing the backends registers them with the factory
from .dir import DirectoryArchive
from .tar import TarArchive
from .zip import ZipArchive
from .http import HttpArchive, configure_fetcher

__all__ = [
    "RoArchive",
    "ArchivePath",
    "OpenOptions",
    "sniff_mime",
    "ArchiveError",
    "ArchiveIOError",
    "HintNotFoundError",
    "NoSuchFileError",
    "NotAnArchiveError",
    "UnsupportedOperationError",
    "FilterChain",
    "IStream",
    "copy",
    "gunzip",
    "bunzip2",
    "unxz",
    "DirectoryArchive",
    "TarArchive",
    "ZipArchive",
    "HttpArchive",
    "configure_fetcher",
]

__version__ = "0.1.0"
