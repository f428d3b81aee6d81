import io
import os
import pathlib
import tarfile
import time
import zipfile
from typing import Iterable, Optional, Tuple

import pytest

KINDS = ["dir", "tar", "zip"]


def make_archive(
    tmp_path: pathlib.Path,
    kind: str,
    files: Iterable[Tuple[str, bytes]],
    name="archive",
    mtime: Optional[int] = None,
) -> pathlib.Path:
    """
    Create an archive of the given kind, with members in the given order.

    If `mtime` is given, it is used as the modification time of every member.
    """

    if kind == "dir":
        archive_path = tmp_path / name
        archive_path.mkdir()
        for member_fn, data in files:
            (archive_path / member_fn).parent.mkdir(parents=True, exist_ok=True)
            (archive_path / member_fn).write_bytes(data)
            if mtime is not None:
                os.utime(archive_path / member_fn, (mtime, mtime))
        return archive_path

    if kind == "tar":
        archive_path = tmp_path / (name + ".tar")
        with tarfile.open(archive_path, "w") as tf:
            for member_fn, data in files:
                tar_info = tarfile.TarInfo(member_fn)
                tar_info.size = len(data)
                if mtime is not None:
                    tar_info.mtime = mtime
                tf.addfile(tar_info, io.BytesIO(data))
        return archive_path

    if kind == "zip":
        archive_path = tmp_path / (name + ".zip")
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for member_fn, data in files:
                if mtime is not None:
                    zip_info = zipfile.ZipInfo(member_fn, time.localtime(mtime)[:6])
                    zf.writestr(zip_info, data, compress_type=zipfile.ZIP_DEFLATED)
                else:
                    zf.writestr(member_fn, data)
        return archive_path

    raise ValueError(f"Unknown kind: {kind}")


TILE_DATA = bytes(range(256)) * 300

DATASET = [
    ("wrap/other.txt", b"other"),
    ("wrap/data/tileset.conf", b'{"tileset": 1}'),
    ("wrap/data/tiles/1.bin", TILE_DATA),
    ("wrap/data/tiles/2.bin", b""),
]


@pytest.fixture(params=KINDS)
def kind(request):
    return request.param


@pytest.fixture
def dataset_path(tmp_path, kind):
    return make_archive(tmp_path, kind, DATASET)
