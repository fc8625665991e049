"""Archive format types.

Format detection from the output path is only used when a builder is not
told the format explicitly.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path


class ArchiveFormat(StrEnum):
    JAR = "jar"
    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"

    @property
    def is_zip(self) -> bool:
        return self in (ArchiveFormat.JAR, ArchiveFormat.ZIP)

    @property
    def is_tar(self) -> bool:
        return self in (ArchiveFormat.TAR, ArchiveFormat.TAR_GZ, ArchiveFormat.TAR_XZ)


_SUFFIX_MAP: list[tuple[str, ArchiveFormat]] = [
    (".tar.gz", ArchiveFormat.TAR_GZ),
    (".tgz", ArchiveFormat.TAR_GZ),
    (".tar.xz", ArchiveFormat.TAR_XZ),
    (".txz", ArchiveFormat.TAR_XZ),
    (".tar", ArchiveFormat.TAR),
    (".jar", ArchiveFormat.JAR),
    (".war", ArchiveFormat.JAR),
    (".ear", ArchiveFormat.JAR),
    (".zip", ArchiveFormat.ZIP),
]

_TAR_COMPRESSION: dict[str, ArchiveFormat] = {
    "none": ArchiveFormat.TAR,
    "gz": ArchiveFormat.TAR_GZ,
    "xz": ArchiveFormat.TAR_XZ,
}


def detect_from_suffix(path: Path) -> ArchiveFormat | None:
    name = path.name.lower()
    for suffix, fmt in _SUFFIX_MAP:
        if name.endswith(suffix):
            return fmt
    return None


def tar_format_for(compression: str) -> ArchiveFormat:
    """Map an ``archives.tar.compression`` value to a tar format."""
    return _TAR_COMPRESSION[compression]
