"""Copy filesets into a directory, optionally rewriting file content.

Files land at ``to_dir / relative`` so the layout matches what an archive
builder would produce for the same filesets. Substitutions run in the order
they were registered. Text is decoded as UTF-8 with ``surrogateescape`` so
bytes that are not valid UTF-8 survive untouched; whether a substitution
makes sense for a binary file is up to the caller.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from packforge.core.errors import FileError
from packforge.core.logging import get_logger

from .fileset import FileSet
from .types import FileInfo, FileSource

log = get_logger(__name__)


@dataclass(frozen=True)
class Substitution:
    pattern: re.Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        # A callable keeps backslashes in the replacement literal.
        return self.pattern.sub(lambda _m: self.replacement, text)


class Copier:
    """Copies one or more filesets into ``to_dir``."""

    def __init__(self, to_dir: Path | str) -> None:
        self.to_dir = Path(to_dir)
        self.file_sets: list[FileSource] = []
        self.substitutions: list[Substitution] = []

    def file_set(self, file_set: FileSource | Path | str) -> Copier:
        fs = _as_source(file_set)
        fs.check_root()
        self.file_sets.append(fs)
        return self

    def optional_file_set(self, file_set: FileSource | Path | str) -> Copier:
        fs = _as_source(file_set)
        if fs.directory.is_file():
            fs.check_root()
        if fs.directory.is_dir():
            self.file_sets.append(fs)
        else:
            log.debug(f"copier: skipping missing optional fileset {fs.directory}")
        return self

    def filter(self, token: str, replacement: str) -> Copier:
        """Replace every occurrence of the exact text ``token``."""
        self.substitutions.append(Substitution(re.compile(re.escape(token)), replacement))
        return self

    def filter_pattern(self, pattern: re.Pattern[str] | str, replacement: str) -> Copier:
        """Replace every match of the regular expression ``pattern``."""
        compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)
        self.substitutions.append(Substitution(compiled, replacement))
        return self

    def copy(self) -> int:
        """Copy every file; returns the number of files written."""
        count = 0
        for fs in self.file_sets:
            for info in fs.list_files():
                self._copy_one(info)
                count += 1
        log.info(f"copy status=succeeded files_count={count} to_dir={str(self.to_dir)!r}")
        return count

    def _copy_one(self, info: FileInfo) -> None:
        target = self.to_dir / Path(*info.relative.split("/"))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if not self.substitutions:
                shutil.copy2(info.origin, target)
                return

            text = info.origin.read_bytes().decode("utf-8", errors="surrogateescape")
            for sub in self.substitutions:
                text = sub.apply(text)
            target.write_bytes(text.encode("utf-8", errors="surrogateescape"))
            shutil.copymode(info.origin, target)
        except OSError as e:
            raise FileError(f"Failed to copy '{info.origin}' to '{target}': {e}") from e


def _as_source(value: FileSource | Path | str) -> FileSource:
    if isinstance(value, (str, Path)):
        return FileSet(value)
    return value
