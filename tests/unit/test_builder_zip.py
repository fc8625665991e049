"""Unit tests for ZipBuilder and the shared builder behaviour."""

from __future__ import annotations

import os
import stat
import struct
import zipfile
from pathlib import Path

import pytest

from packforge.archives import ArchiveBuilder, ArchiveFormat, ZipBuilder
from packforge.archives.writers import EXTENDED_TIMESTAMP_ID, extended_timestamp
from packforge.core.errors import ArchiveWriteError, ConfigError, FileSetError, TraversalError
from packforge.files import ArchiveFileSet, Directory, FileSet


def _names(path: Path) -> list[str]:
    with zipfile.ZipFile(path) as zf:
        return zf.namelist()


def test_build_round_trips_bytes_and_sizes(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "out" / "app.zip"
    count = ZipBuilder(out, resolver=config_resolver).file_set(tree).build()

    # 3 directories + 4 files
    assert count == 7
    with zipfile.ZipFile(out) as zf:
        for rel in ("a.txt", "lib/b.txt", "lib/d.orig", "lib/deep/er/c.bin"):
            origin = tree / rel
            assert zf.read(rel) == origin.read_bytes()
            assert zf.getinfo(rel).file_size == origin.stat().st_size


def test_directories_first_with_trailing_slash(tree: Path, tmp_path: Path, config_resolver):
    out = tmp_path / "app.zip"
    ZipBuilder(out, resolver=config_resolver).file_set(tree).build()

    assert _names(out) == [
        "lib/",
        "lib/deep/",
        "lib/deep/er/",
        "a.txt",
        "lib/b.txt",
        "lib/d.orig",
        "lib/deep/er/c.bin",
    ]


def test_shared_ancestors_appear_once(tree: Path, tmp_path: Path, config_resolver) -> None:
    other = tmp_path / "other"
    (other / "lib" / "deep").mkdir(parents=True)
    (other / "lib" / "deep" / "x.txt").write_text("x")

    out = tmp_path / "app.zip"
    count = (
        ZipBuilder(out, resolver=config_resolver)
        .file_set(tree)
        .file_set(other)
        .directory(Directory("lib"))
        .build()
    )

    names = _names(out)
    dirs = [n for n in names if n.endswith("/")]
    assert dirs == ["lib/", "lib/deep/", "lib/deep/er/"]
    assert len(names) == len(set(names))
    assert count == 3 + 5


def test_explicit_empty_directory(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.zip"
    count = (
        ZipBuilder(out, resolver=config_resolver)
        .directory(Directory("test/directory", 0o700, "root", "root"))
        .file_set(tree)
        .build()
    )
    assert count == 8
    with zipfile.ZipFile(out) as zf:
        info = zf.getinfo("test/directory/")
        assert info.is_dir()
        assert stat.S_IMODE(info.external_attr >> 16) == 0o700


def test_first_registered_fileset_wins(tmp_path: Path, config_resolver) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    for root, text in ((first, "first"), (second, "second")):
        (root / "conf").mkdir(parents=True)
        (root / "conf" / "app.properties").write_text(text)

    out = tmp_path / "app.zip"
    count = ZipBuilder(out, resolver=config_resolver).file_set(first).file_set(second).build()

    assert count == 2
    with zipfile.ZipFile(out) as zf:
        assert zf.read("conf/app.properties") == b"first"


def test_required_fileset_missing_root_fails_at_registration(tmp_path: Path, config_resolver):
    out = tmp_path / "app.zip"
    builder = ZipBuilder(out, resolver=config_resolver)
    with pytest.raises(FileSetError, match="does not exist"):
        builder.file_set(tmp_path / "missing")
    assert not out.exists()


def test_required_fileset_file_root_fails(tmp_path: Path, config_resolver) -> None:
    plain = tmp_path / "plain.txt"
    plain.write_text("x")
    with pytest.raises(FileSetError, match="is a file"):
        ZipBuilder(tmp_path / "app.zip", resolver=config_resolver).file_set(plain)


def test_optional_fileset_missing_root_is_skipped(tree: Path, tmp_path: Path, config_resolver):
    out = tmp_path / "app.zip"
    count = (
        ZipBuilder(out, resolver=config_resolver)
        .file_set(tree)
        .optional_file_set(tmp_path / "missing")
        .build()
    )
    assert count == 7


def test_optional_fileset_file_root_still_fails(tmp_path: Path, config_resolver) -> None:
    plain = tmp_path / "plain.txt"
    plain.write_text("x")
    with pytest.raises(FileSetError):
        ZipBuilder(tmp_path / "app.zip", resolver=config_resolver).optional_file_set(plain)


def test_existing_output_is_replaced(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.zip"
    out.write_bytes(b"not a zip")
    ZipBuilder(out, resolver=config_resolver).file_set(tree).build()
    assert zipfile.is_zipfile(out)


def test_entry_metadata(tree: Path, tmp_path: Path, config_resolver) -> None:
    os.chmod(tree / "a.txt", 0o751)
    os.utime(tree / "a.txt", (1_600_000_000, 1_500_000_000))

    out = tmp_path / "app.zip"
    ZipBuilder(out, resolver=config_resolver).file_set(tree).build()

    with zipfile.ZipFile(out) as zf:
        info = zf.getinfo("a.txt")
    assert stat.S_IMODE(info.external_attr >> 16) == 0o751
    assert stat.S_ISREG(info.external_attr >> 16)
    assert info.compress_type == zipfile.ZIP_DEFLATED

    # central directory: local flags, modification time only
    tag, size, flags, mtime = struct.unpack("<HHBi", info.extra)
    assert tag == EXTENDED_TIMESTAMP_ID
    assert size == 5
    assert flags == 0b111
    assert mtime == 1_500_000_000

    # local header: every flagged time follows
    raw = out.read_bytes()
    off = info.header_offset
    name_len, extra_len = struct.unpack("<HH", raw[off + 26 : off + 30])
    start = off + 30 + name_len
    local = raw[start : start + extra_len]
    tag, size, flags, mtime, atime = struct.unpack("<HHBii", local[:13])
    assert tag == EXTENDED_TIMESTAMP_ID
    assert size == 13
    assert flags == 0b111
    assert (mtime, atime) == (1_500_000_000, 1_600_000_000)


def test_archive_fileset_overrides_reach_entries(tree: Path, tmp_path: Path, config_resolver):
    out = tmp_path / "app.zip"
    ZipBuilder(out, resolver=config_resolver).file_set(
        ArchiveFileSet(tree, "opt/app", mode=0o600, dir_mode=0o700)
    ).build()

    with zipfile.ZipFile(out) as zf:
        assert stat.S_IMODE(zf.getinfo("opt/app/a.txt").external_attr >> 16) == 0o600
        assert stat.S_IMODE(zf.getinfo("opt/").external_attr >> 16) == 0o700
        assert zf.getinfo("opt/app/lib/deep/er/").is_dir()


def test_stored_compression_from_config(tree: Path, tmp_path: Path, config_resolver) -> None:
    config_resolver.cli_args = {"archives": {"compression": "stored"}}
    out = tmp_path / "app.zip"
    ZipBuilder(out, resolver=config_resolver).file_set(tree).build()
    with zipfile.ZipFile(out) as zf:
        assert zf.getinfo("lib/deep/er/c.bin").compress_type == zipfile.ZIP_STORED


def test_header_becomes_comment(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.zip"
    ZipBuilder(out, resolver=config_resolver).set_header({"Built-By": "ci"}).file_set(
        tree
    ).build()
    with zipfile.ZipFile(out) as zf:
        assert zf.comment == b"Built-By: ci\r\n\r\n"


def test_plan_does_not_touch_output(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.zip"
    plan = ZipBuilder(out, resolver=config_resolver).file_set(FileSet(tree)).plan()
    assert plan.entries == 7
    assert not out.exists()


def test_format_detection(tmp_path: Path, config_resolver) -> None:
    assert ArchiveBuilder(tmp_path / "a.zip", resolver=config_resolver).format == ArchiveFormat.ZIP
    assert ArchiveBuilder(tmp_path / "a.war", resolver=config_resolver).format == ArchiveFormat.JAR
    assert (
        ArchiveBuilder(tmp_path / "a.tgz", resolver=config_resolver).format
        == ArchiveFormat.TAR_GZ
    )
    with pytest.raises(ConfigError):
        ArchiveBuilder(tmp_path / "a.bin", resolver=config_resolver)
    with pytest.raises(ConfigError):
        ZipBuilder(tmp_path / "a.zip", ArchiveFormat.TAR, resolver=config_resolver)


def test_extended_timestamp_encoding() -> None:
    assert extended_timestamp(None) == b""
    data = extended_timestamp(10.9, None, 30)
    assert data == struct.pack("<HHBii", EXTENDED_TIMESTAMP_ID, 9, 0b101, 10, 30)


def test_write_failure_is_wrapped(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.zip"
    out.mkdir()
    with pytest.raises(ArchiveWriteError) as exc_info:
        ZipBuilder(out, resolver=config_resolver).file_set(tree).build()
    assert exc_info.value.path == str(out)
    assert isinstance(exc_info.value.__cause__, OSError)


def test_extended_timestamp_central_copy_keeps_only_mtime() -> None:
    data = extended_timestamp(10, 20, 30, central=True)
    assert data == struct.pack("<HHBi", EXTENDED_TIMESTAMP_ID, 5, 0b111, 10)


def test_symlinked_file_content_is_archived(tree: Path, tmp_path: Path, config_resolver):
    outside = tmp_path / "LICENSE.txt"
    outside.write_text("license text\n")
    (tree / "LICENSE").symlink_to(outside)

    out = tmp_path / "app.zip"
    count = ZipBuilder(out, resolver=config_resolver).file_set(tree).build()

    assert count == 8
    with zipfile.ZipFile(out) as zf:
        assert zf.read("LICENSE") == b"license text\n"


def test_traversal_failure_keeps_previous_output(
    tree: Path, tmp_path: Path, config_resolver, monkeypatch
) -> None:
    out = tmp_path / "app.zip"
    out.write_bytes(b"previous")
    builder = ZipBuilder(out, resolver=config_resolver).file_set(tree)

    real_scandir = os.scandir

    def _scandir(path):
        if Path(path).name == "lib":
            raise OSError(5, "Input/output error", str(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", _scandir)

    with pytest.raises(TraversalError) as exc_info:
        builder.build()
    assert isinstance(exc_info.value.__cause__, OSError)
    assert out.read_bytes() == b"previous"


def test_unknown_format_name_is_a_config_error(tmp_path: Path, config_resolver) -> None:
    with pytest.raises(ConfigError, match="Unknown archive format 'rar'") as exc_info:
        ArchiveBuilder(tmp_path / "a.zip", "rar", resolver=config_resolver)
    assert "zip" in exc_info.value.suggestion
