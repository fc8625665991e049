"""Entity types for files and directories destined for an archive.

Relative names are archive-facing and always use forward slashes.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .modes import PosixPermission


def entry_sort_key(name: str) -> str:
    """Canonical archive entry order: plain lexicographic order of the name.

    Every writer sorts with this key so output is deterministic.
    """
    return name


@dataclass(frozen=True)
class FileInfo:
    """One regular file: where it comes from and where it goes."""

    origin: Path
    relative: str
    permissions: frozenset[PosixPermission] = frozenset()
    user_name: str | None = None
    group_name: str | None = None
    size: int = 0
    creation_time: float | None = None
    last_access_time: float | None = None
    last_modified_time: float | None = None


def sort_files(files: Iterable[FileInfo]) -> list[FileInfo]:
    return sorted(files, key=lambda f: entry_sort_key(f.relative))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Directory:
    """A directory entry.

    Identity, equality, hashing and ordering use ``name`` only, so sets of
    directories deduplicate by name regardless of metadata.
    """

    name: str
    mode: int | None = None
    user_name: str | None = None
    group_name: str | None = None
    last_modified_time: float | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Directory):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Directory):
            return NotImplemented
        return entry_sort_key(self.name) < entry_sort_key(other.name)

    def normalized(self) -> Directory:
        """Return a copy whose name ends with exactly one ``/``."""
        name = self.name.rstrip("/") + "/"
        if name == self.name:
            return self
        return Directory(
            name=name,
            mode=self.mode,
            user_name=self.user_name,
            group_name=self.group_name,
            last_modified_time=self.last_modified_time,
        )


class FileSource(Protocol):
    """Anything that can feed files and their directory closure to a builder."""

    @property
    def directory(self) -> Path: ...

    def check_root(self) -> None: ...

    def list_files(self) -> list[FileInfo]: ...

    def list_directories(self) -> list[Directory]: ...
