"""ArchiveFileSet: a FileSet plus archive-specific overrides.

The overrides are a plain value applied to the FileSet's output, so the
transform can be tested without touching the filesystem:

- ``prefix`` relocates every file (and so every derived directory)
- ``mode`` / ``user_name`` / ``group_name`` replace file metadata
- ``dir_mode`` / ``dir_user_name`` / ``dir_group_name`` replace directory
  metadata; each falls back to the filesystem value on its own
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .fileset import FileSet, PatternLike, directory_closure
from .modes import to_permissions
from .types import Directory, FileInfo


def normalize_prefix(prefix: str | None) -> str | None:
    if prefix is None:
        return None
    cleaned = "/".join(part for part in prefix.replace("\\", "/").split("/") if part)
    return cleaned or None


@dataclass(frozen=True)
class ArchiveOverrides:
    prefix: str | None = None
    mode: int | None = None
    user_name: str | None = None
    group_name: str | None = None
    dir_mode: int | None = None
    dir_user_name: str | None = None
    dir_group_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", normalize_prefix(self.prefix))


def apply_file_overrides(files: Iterable[FileInfo], overrides: ArchiveOverrides) -> list[FileInfo]:
    """Return new FileInfo values with the prefix and file overrides applied."""
    changes: dict[str, object] = {}
    if overrides.mode is not None:
        changes["permissions"] = to_permissions(overrides.mode)
    if overrides.user_name is not None:
        changes["user_name"] = overrides.user_name
    if overrides.group_name is not None:
        changes["group_name"] = overrides.group_name

    result: list[FileInfo] = []
    for info in files:
        updated = dataclasses.replace(info, **changes) if changes else info
        if overrides.prefix is not None:
            updated = dataclasses.replace(updated, relative=f"{overrides.prefix}/{info.relative}")
        result.append(updated)
    return result


class ArchiveFileSet:
    """A FileSet whose entries are relocated and re-owned for an archive."""

    def __init__(
        self,
        directory: Path | str,
        prefix: str | None = None,
        *,
        mode: int | None = None,
        user_name: str | None = None,
        group_name: str | None = None,
        dir_mode: int | None = None,
        dir_user_name: str | None = None,
        dir_group_name: str | None = None,
        include_patterns: Iterable[PatternLike] | None = None,
        exclude_patterns: Iterable[PatternLike] | None = None,
    ) -> None:
        self.file_set = FileSet(directory, include_patterns, exclude_patterns)
        self.overrides = ArchiveOverrides(
            prefix=prefix,
            mode=mode,
            user_name=user_name,
            group_name=group_name,
            dir_mode=dir_mode,
            dir_user_name=dir_user_name,
            dir_group_name=dir_group_name,
        )

    @classmethod
    def wrap(cls, file_set: FileSet, overrides: ArchiveOverrides) -> ArchiveFileSet:
        return cls(
            file_set.directory,
            overrides.prefix,
            mode=overrides.mode,
            user_name=overrides.user_name,
            group_name=overrides.group_name,
            dir_mode=overrides.dir_mode,
            dir_user_name=overrides.dir_user_name,
            dir_group_name=overrides.dir_group_name,
            include_patterns=file_set.include_patterns,
            exclude_patterns=file_set.exclude_patterns,
        )

    @property
    def directory(self) -> Path:
        return self.file_set.directory

    @property
    def include_patterns(self) -> tuple[re.Pattern[str], ...]:
        return self.file_set.include_patterns

    @property
    def exclude_patterns(self) -> tuple[re.Pattern[str], ...]:
        return self.file_set.exclude_patterns

    def check_root(self) -> None:
        self.file_set.check_root()

    def list_files(self) -> list[FileInfo]:
        return apply_file_overrides(self.file_set.list_files(), self.overrides)

    def list_directories(self) -> list[Directory]:
        # Derived from the relocated files so directory names match file paths.
        return directory_closure(
            self.list_files(),
            self.file_set.directory,
            dir_mode=self.overrides.dir_mode,
            dir_user_name=self.overrides.dir_user_name,
            dir_group_name=self.overrides.dir_group_name,
        )

    def __repr__(self) -> str:
        return f"ArchiveFileSet(directory={str(self.directory)!r}, overrides={self.overrides!r})"
