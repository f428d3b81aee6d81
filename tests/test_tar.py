import io
import os
import tarfile

import pytest

from conftest import make_archive

from roarchive import ArchiveIOError, RoArchive, TarArchive

FILES = [
    ("pkg/a.bin", os.urandom(100_000)),
    ("pkg/b.bin", os.urandom(70_001)),
    ("pkg/c.txt", b"c" * 513),
    ("pkg/hint.conf", b"hint"),
]


@pytest.fixture
def tar_path(tmp_path):
    return make_archive(tmp_path, "tar", FILES)


def test_members_byte_identical(tar_path):
    with RoArchive(tar_path, hint="hint.conf") as archive:
        assert isinstance(archive.backend, TarArchive)

        for member_fn, data in FILES:
            name = member_fn.split("/", 1)[1]
            stream = archive.open_stream(name)
            assert stream.size == len(data)
            assert stream.read_all() == data, f"{name} differs"
            stream.close()


def test_reads_stay_within_member(tar_path):
    with RoArchive(tar_path, hint="hint.conf") as archive:
        stream = archive.open_stream("c.txt")

        # Ask for more than the member holds
        assert stream.read(10_000) == b"c" * 513
        assert stream.read(10_000) == b""

        stream.seek(500)
        assert stream.read() == b"c" * 13


def test_interleaved_streams(tar_path):
    data = dict(FILES)

    with RoArchive(tar_path, hint="hint.conf") as archive:
        a = archive.open_stream("a.bin")
        b = archive.open_stream("b.bin")

        chunks_a, chunks_b = [], []
        while True:
            chunk_a = a.read(4096)
            chunk_b = b.read(3000)
            if not chunk_a and not chunk_b:
                break
            chunks_a.append(chunk_a)
            chunks_b.append(chunk_b)

        assert b"".join(chunks_a) == data["pkg/a.bin"]
        assert b"".join(chunks_b) == data["pkg/b.bin"]


def test_stream_outlives_archive(tar_path):
    archive = RoArchive(tar_path, hint="hint.conf")
    stream = archive.open_stream("c.txt")
    archive.close()

    assert stream.read_all() == b"c" * 513
    stream.close()


def test_truncated_archive(tar_path):
    with RoArchive(tar_path, hint="hint.conf") as archive:
        # Cut the archive in the middle of a.bin
        with open(tar_path, "r+b") as f:
            f.truncate(50_000)

        with pytest.raises(ArchiveIOError):
            archive.open_stream("a.bin").read_all()


def test_apply_hint_reuses_member_list(tmp_path):
    tar_path = make_archive(tmp_path, "tar", [("x/one.conf", b"1"), ("y/two.conf", b"2")])

    with RoArchive(tar_path, hint="one.conf") as archive:
        reader = archive.backend._reader

        archive.apply_hint("two.conf")

        assert archive.backend._reader is reader
        assert archive.open_stream("two.conf").read_all() == b"2"


def test_dot_prefix_and_directories(tmp_path):
    tar_path = tmp_path / "dot.tar"
    with tarfile.open(tar_path, "w") as tf:
        dir_info = tarfile.TarInfo("./root")
        dir_info.type = tarfile.DIRTYPE
        tf.addfile(dir_info)

        tar_info = tarfile.TarInfo("./root/hint.conf")
        tar_info.size = 4
        tf.addfile(tar_info, io.BytesIO(b"hint"))

    with RoArchive(tar_path, hint="hint.conf") as archive:
        assert [str(m) for m in archive.enumerate()] == ["hint.conf"]
        assert archive.open_stream("hint.conf").read_all() == b"hint"


def test_compressed_tar_is_not_supported(tmp_path):
    tar_path = tmp_path / "archive.tar.gz"
    with tarfile.open(tar_path, "w:gz") as tf:
        tar_info = tarfile.TarInfo("hint.conf")
        tar_info.size = 4
        tf.addfile(tar_info, io.BytesIO(b"hint"))

    with pytest.raises(ArchiveIOError):
        RoArchive(tar_path, mime="application/x-tar")
