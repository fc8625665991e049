"""FileSet: a filtered view over a directory tree.

A FileSet lists every regular file below its root that passes the
include/exclude filter, and derives the directory closure those files need
inside an archive.

Filter semantics for a relative path P:
- keep when there are no include patterns, or any include pattern matches P
- drop when kept and any exclude pattern matches P

Patterns must match the whole relative path (``re.fullmatch``).
"""

from __future__ import annotations

import grp
import os
import pwd
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from packforge.core.errors import FileSetError, TraversalError
from packforge.core.logging import get_logger

from .modes import PERMISSION_BITS, to_permissions
from .types import Directory, FileInfo, sort_files

log = get_logger(__name__)

PatternLike = re.Pattern[str] | str


def compile_patterns(patterns: Iterable[PatternLike] | None) -> tuple[re.Pattern[str], ...]:
    if not patterns:
        return ()
    return tuple(p if isinstance(p, re.Pattern) else re.compile(str(p)) for p in patterns)


def lookup_owner(st: os.stat_result) -> str:
    try:
        return pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        return str(st.st_uid)


def lookup_group(st: os.stat_result) -> str:
    try:
        return grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        return str(st.st_gid)


def _creation_time(st: os.stat_result) -> float:
    # st_birthtime is missing on most Linux filesystems; mtime is the fallback.
    birth = getattr(st, "st_birthtime", None)
    return float(birth) if birth is not None else float(st.st_mtime)


def _stat(path: Path) -> os.stat_result:
    try:
        return path.stat()
    except OSError as e:
        raise TraversalError(str(path), e.strerror or str(e)) from e


def read_file_info(origin: Path, relative: str) -> FileInfo:
    """Read a FileInfo for ``origin``; a symlink reports its target's metadata."""
    st = _stat(origin)
    return FileInfo(
        origin=origin,
        relative=relative,
        permissions=to_permissions(st.st_mode & PERMISSION_BITS),
        user_name=lookup_owner(st),
        group_name=lookup_group(st),
        size=int(st.st_size),
        creation_time=_creation_time(st),
        last_access_time=float(st.st_atime),
        last_modified_time=float(st.st_mtime),
    )


def read_directory(
    origin: Path,
    name: str,
    *,
    mode: int | None = None,
    user_name: str | None = None,
    group_name: str | None = None,
) -> Directory:
    """Read a Directory entry for ``origin``; explicit values replace filesystem ones."""
    st = _stat(origin)
    return Directory(
        name=name,
        mode=mode if mode is not None else st.st_mode & PERMISSION_BITS,
        user_name=user_name if user_name is not None else lookup_owner(st),
        group_name=group_name if group_name is not None else lookup_group(st),
        last_modified_time=float(st.st_mtime),
    )


def directory_closure(
    files: Iterable[FileInfo],
    root: Path,
    *,
    dir_mode: int | None = None,
    dir_user_name: str | None = None,
    dir_group_name: str | None = None,
) -> list[Directory]:
    """Return every ancestor directory of ``files``, once each, sorted by name.

    Each level of a file's relative parent chain is paired with the matching
    origin ancestor. Levels above the part of the path that exists below
    ``root`` (a relocation prefix) read their metadata from ``root`` itself.
    The first file to reach a name decides its metadata.
    """
    closure: dict[str, Directory] = {}
    for info in files:
        rel = PurePosixPath(info.relative).parent
        origin = info.origin.parent
        while rel.parts:
            name = rel.as_posix()
            if name not in closure:
                closure[name] = read_directory(
                    origin,
                    name,
                    mode=dir_mode,
                    user_name=dir_user_name,
                    group_name=dir_group_name,
                )
            rel = rel.parent
            if origin != root:
                origin = origin.parent
    return sorted(closure.values())


@dataclass(frozen=True, init=False)
class FileSet:
    """All regular files below ``directory`` that pass the filter."""

    directory: Path
    include_patterns: tuple[re.Pattern[str], ...]
    exclude_patterns: tuple[re.Pattern[str], ...]

    def __init__(
        self,
        directory: Path | str,
        include_patterns: Iterable[PatternLike] | None = None,
        exclude_patterns: Iterable[PatternLike] | None = None,
    ) -> None:
        object.__setattr__(self, "directory", Path(directory).absolute())
        object.__setattr__(self, "include_patterns", compile_patterns(include_patterns))
        object.__setattr__(self, "exclude_patterns", compile_patterns(exclude_patterns))

    def with_include_patterns(self, patterns: Iterable[PatternLike] | None) -> FileSet:
        return FileSet(self.directory, patterns, self.exclude_patterns)

    def with_exclude_patterns(self, patterns: Iterable[PatternLike] | None) -> FileSet:
        return FileSet(self.directory, self.include_patterns, patterns)

    def includes(self, relative: str) -> bool:
        keep = not self.include_patterns
        if any(p.fullmatch(relative) for p in self.include_patterns):
            keep = True
        if keep and any(p.fullmatch(relative) for p in self.exclude_patterns):
            keep = False
        return keep

    def check_root(self) -> None:
        """Raise FileSetError unless the root is an existing directory."""
        if self.directory.is_file():
            raise FileSetError(
                f"The fileset directory '{self.directory}' is a file and must be a directory"
            )
        if not self.directory.is_dir():
            raise FileSetError(f"The fileset directory '{self.directory}' does not exist")

    def list_files(self) -> list[FileInfo]:
        """Return a FileInfo for every matching regular file, sorted by relative path."""
        self.check_root()
        files = [
            read_file_info(origin, relative)
            for origin, relative in self._walk()
            if self.includes(relative)
        ]
        log.debug(f"fileset {self.directory} matched {len(files)} file(s)")
        return sort_files(files)

    def list_directories(self) -> list[Directory]:
        """Return the directory closure of ``list_files()``."""
        return directory_closure(self.list_files(), self.directory)

    def _walk(self) -> Iterator[tuple[Path, str]]:
        pending: list[tuple[Path, str]] = [(self.directory, "")]
        while pending:
            current, prefix = pending.pop()
            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                raise TraversalError(str(current), e.strerror or str(e)) from e

            # File symlinks resolve to their target; directory symlinks are not followed.
            subdirs: list[tuple[Path, str]] = []
            for entry in entries:
                relative = f"{prefix}{entry.name}"
                try:
                    if entry.is_dir(follow_symlinks=False):
                        subdirs.append((Path(entry.path), relative + "/"))
                    elif entry.is_file():
                        yield Path(entry.path), relative
                except OSError as e:
                    raise TraversalError(entry.path, e.strerror or str(e)) from e
            pending.extend(reversed(subdirs))
