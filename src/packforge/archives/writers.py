"""Format-specific archive writers.

A writer is a context manager that owns the output stream. The builder
decides what goes in and in which order; a writer only knows how to stamp
one entry with its metadata and stream its bytes.
"""

from __future__ import annotations

import grp
import pwd
import shutil
import stat
import struct
import tarfile
import time
import zipfile
from pathlib import Path
from types import TracebackType
from typing import Literal, cast

from packforge.core.config import ArchiveOptions
from packforge.files.modes import to_mode
from packforge.files.types import Directory, FileInfo

from .manifest import MANIFEST_VERSION, Manifest
from .types import ArchiveFormat

TarWriteMode = Literal["w:", "w:gz", "w:xz"]

DEFAULT_DIR_MODE = 0o755
MANIFEST_MODE = 0o644

DOS_EPOCH = (1980, 1, 1, 0, 0, 0)
DOS_MAX = (2107, 12, 31, 23, 59, 58)

EXTENDED_TIMESTAMP_ID = 0x5455
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def _dos_date_time(ts: float | None) -> tuple[int, int, int, int, int, int]:
    if ts is None:
        return DOS_EPOCH
    t = time.localtime(ts)
    if t.tm_year < 1980:
        return DOS_EPOCH
    if t.tm_year > 2107:
        return DOS_MAX
    return (t.tm_year, t.tm_mon, t.tm_mday, t.tm_hour, t.tm_min, t.tm_sec)


def extended_timestamp(
    mtime: float | None,
    atime: float | None = None,
    ctime: float | None = None,
    *,
    central: bool = False,
) -> bytes:
    """Encode the 0x5455 "UT" extra field; empty when no time is known.

    The central-directory copy keeps the local flags but carries only the
    modification time.
    """
    flags = 0
    data = b""
    for bit, ts in ((1, mtime), (2, atime), (4, ctime)):
        if ts is None:
            continue
        flags |= bit
        if bit == 1 or not central:
            data += struct.pack("<i", min(max(int(ts), _INT32_MIN), _INT32_MAX))
    if not flags:
        return b""
    return struct.pack("<HHB", EXTENDED_TIMESTAMP_ID, 1 + len(data), flags) + data


class _ZipEntry(zipfile.ZipInfo):
    """ZipInfo whose local header carries its own extra field."""

    __slots__ = ("local_extra",)

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.local_extra = b""

    def FileHeader(self, zip64=None):  # noqa: N802
        central = self.extra
        self.extra = self.local_extra
        try:
            return super().FileHeader(zip64)
        finally:
            self.extra = central

    def stamp(
        self, mtime: float | None, atime: float | None = None, ctime: float | None = None
    ) -> None:
        self.local_extra = extended_timestamp(mtime, atime, ctime)
        self.extra = extended_timestamp(mtime, atime, ctime, central=True)


def _set_compress_level(zi: zipfile.ZipInfo, level: int) -> None:
    # ZipFile.open(zinfo, "w") takes the level from the ZipInfo only.
    if hasattr(zi, "compress_level"):  # Python 3.13+
        zi.compress_level = level
    else:
        zi._compresslevel = level  # type: ignore[attr-defined]


def _uid_for(user_name: str | None) -> int:
    if not user_name:
        return 0
    if user_name.isdigit():
        return int(user_name)
    try:
        return pwd.getpwnam(user_name).pw_uid
    except KeyError:
        return 0


def _gid_for(group_name: str | None) -> int:
    if not group_name:
        return 0
    if group_name.isdigit():
        return int(group_name)
    try:
        return grp.getgrnam(group_name).gr_gid
    except KeyError:
        return 0


class ArchiveWriter:
    """Base class for writers.

    ``reserved_directories`` are written before any other directory;
    ``reserved_files`` are produced by the writer itself and must not be
    supplied by a fileset.
    """

    reserved_directories: tuple[str, ...] = ()
    reserved_files: tuple[str, ...] = ()

    def __init__(self, path: Path, header: Manifest, options: ArchiveOptions) -> None:
        self.path = path
        self.header = header
        self.options = options

    def __enter__(self) -> ArchiveWriter:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def open(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def write_directory(self, directory: Directory) -> None:
        raise NotImplementedError

    def write_file(self, info: FileInfo) -> None:
        raise NotImplementedError


class ZipWriter(ArchiveWriter):
    """ZIP output; a non-empty header is stored as the archive comment."""

    def __init__(self, path: Path, header: Manifest, options: ArchiveOptions) -> None:
        super().__init__(path, header, options)
        self._zf: zipfile.ZipFile | None = None

    @property
    def compress_type(self) -> int:
        if self.options.compression == "stored":
            return zipfile.ZIP_STORED
        return zipfile.ZIP_DEFLATED

    @property
    def zf(self) -> zipfile.ZipFile:
        if self._zf is None:
            raise RuntimeError(f"{type(self).__name__} for {self.path} is not open")
        return self._zf

    def open(self) -> None:
        self._zf = zipfile.ZipFile(self.path, "w")

    def close(self) -> None:
        if self._zf is None:
            return
        try:
            self._write_trailer()
        finally:
            self._zf.close()
            self._zf = None

    def _write_trailer(self) -> None:
        if len(self.header):
            self.zf.comment = self.header.to_bytes()

    def _zipinfo(self, name: str, mtime: float | None) -> _ZipEntry:
        zi = _ZipEntry(filename=name, date_time=_dos_date_time(mtime))
        zi.create_system = 3
        return zi

    def write_directory(self, directory: Directory) -> None:
        mode = directory.mode if directory.mode is not None else DEFAULT_DIR_MODE
        zi = self._zipinfo(directory.name, directory.last_modified_time)
        zi.external_attr = ((stat.S_IFDIR | mode) << 16) | 0x10
        zi.stamp(directory.last_modified_time)
        self.zf.writestr(zi, b"", compress_type=zipfile.ZIP_STORED)

    def write_file(self, info: FileInfo) -> None:
        zi = self._zipinfo(info.relative, info.last_modified_time)
        zi.external_attr = (stat.S_IFREG | to_mode(info.permissions)) << 16
        zi.stamp(info.last_modified_time, info.last_access_time, info.creation_time)
        zi.compress_type = self.compress_type
        _set_compress_level(zi, self.options.deflate_level)
        zi.file_size = info.size
        with self.zf.open(zi, "w") as dest, info.origin.open("rb") as src:
            shutil.copyfileobj(src, dest)

    def write_bytes(self, name: str, data: bytes, mode: int) -> None:
        """Write an entry the writer generates itself."""
        now = time.time()
        zi = self._zipinfo(name, now)
        zi.external_attr = (stat.S_IFREG | mode) << 16
        zi.stamp(now)
        zi.compress_type = self.compress_type
        _set_compress_level(zi, self.options.deflate_level)
        self.zf.writestr(zi, data)


class JarWriter(ZipWriter):
    """JAR output: a ZIP whose header is ``META-INF/MANIFEST.MF``.

    The manifest entry directly follows the ``META-INF/`` directory entry,
    which the builder writes first.
    """

    META_INF = "META-INF/"
    MANIFEST_NAME = "META-INF/MANIFEST.MF"

    reserved_directories = (META_INF,)
    reserved_files = (MANIFEST_NAME,)

    def __init__(self, path: Path, header: Manifest, options: ArchiveOptions) -> None:
        super().__init__(path, Manifest(dict(header.items())), options)
        self.header.set_default(MANIFEST_VERSION, "1.0")
        self._manifest_written = False

    def write_directory(self, directory: Directory) -> None:
        super().write_directory(directory)
        if directory.name == self.META_INF:
            self._write_manifest()

    def _write_trailer(self) -> None:
        self._write_manifest()

    def _write_manifest(self) -> None:
        if self._manifest_written:
            return
        self.write_bytes(self.MANIFEST_NAME, self.header.to_bytes(), MANIFEST_MODE)
        self._manifest_written = True


class TarWriter(ArchiveWriter):
    """POSIX (PAX) tar output; the header becomes the PAX global header."""

    _MODES: dict[ArchiveFormat, TarWriteMode] = {
        ArchiveFormat.TAR: "w:",
        ArchiveFormat.TAR_GZ: "w:gz",
        ArchiveFormat.TAR_XZ: "w:xz",
    }

    def __init__(
        self,
        path: Path,
        header: Manifest,
        options: ArchiveOptions,
        fmt: ArchiveFormat = ArchiveFormat.TAR,
    ) -> None:
        super().__init__(path, header, options)
        self.format = fmt
        self._tf: tarfile.TarFile | None = None

    @property
    def tf(self) -> tarfile.TarFile:
        if self._tf is None:
            raise RuntimeError(f"TarWriter for {self.path} is not open")
        return self._tf

    def open(self) -> None:
        mode = cast(TarWriteMode, self._MODES[self.format])
        self._tf = tarfile.open(
            name=str(self.path),
            mode=mode,
            format=tarfile.PAX_FORMAT,
            pax_headers=dict(self.header.items()),
        )

    def close(self) -> None:
        if self._tf is not None:
            self._tf.close()
            self._tf = None

    def _tarinfo(
        self,
        name: str,
        mode: int,
        user_name: str | None,
        group_name: str | None,
        mtime: float | None,
    ) -> tarfile.TarInfo:
        ti = tarfile.TarInfo(name=name)
        ti.mode = mode
        ti.uname = user_name if user_name and not user_name.isdigit() else ""
        ti.gname = group_name if group_name and not group_name.isdigit() else ""
        ti.uid = _uid_for(user_name)
        ti.gid = _gid_for(group_name)
        ti.mtime = mtime if mtime is not None else 0
        return ti

    def write_directory(self, directory: Directory) -> None:
        ti = self._tarinfo(
            directory.name,
            directory.mode if directory.mode is not None else DEFAULT_DIR_MODE,
            directory.user_name,
            directory.group_name,
            directory.last_modified_time,
        )
        ti.type = tarfile.DIRTYPE
        self.tf.addfile(ti)

    def write_file(self, info: FileInfo) -> None:
        ti = self._tarinfo(
            info.relative,
            to_mode(info.permissions),
            info.user_name,
            info.group_name,
            info.last_modified_time,
        )
        ti.size = info.size
        pax: dict[str, str] = {}
        if info.last_access_time is not None:
            pax["atime"] = f"{info.last_access_time:f}"
        if info.creation_time is not None:
            pax["LIBARCHIVE.creationtime"] = f"{info.creation_time:f}"
        ti.pax_headers = pax
        with info.origin.open("rb") as src:
            self.tf.addfile(ti, src)


def writer_for(
    fmt: ArchiveFormat, path: Path, header: Manifest, options: ArchiveOptions
) -> ArchiveWriter:
    if fmt == ArchiveFormat.JAR:
        return JarWriter(path, header, options)
    if fmt == ArchiveFormat.ZIP:
        return ZipWriter(path, header, options)
    return TarWriter(path, header, options, fmt)
