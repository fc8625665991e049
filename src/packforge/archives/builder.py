"""Archive builders: merge filesets and directories into one archive.

Usage:
    JarBuilder("build/jars/app.jar")
        .file_set("build/classes/main")
        .optional_file_set("src/main/resources")
        .ensure_manifest("example.org", "1.0.0")
        .build()

Registration is eager: a required fileset whose root is missing or is a
plain file fails when it is added, before any output exists. ``build()``
computes the whole entry plan before it touches the output path.

Merge policy:
- directories: explicitly added directories win, then the first fileset
  that contributes a name
- files: the first registered fileset wins; later duplicates are dropped
- writer-reserved files (``META-INF/MANIFEST.MF`` for JARs) are never taken
  from a fileset
"""

from __future__ import annotations

import tarfile
import time
import zipfile
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

from packforge.core.config import ConfigResolver
from packforge.core.errors import ArchiveWriteError, ConfigError
from packforge.core.logging import apply_logging_policy, get_logger
from packforge.files.fileset import FileSet
from packforge.files.types import Directory, FileInfo, FileSource, entry_sort_key

from .manifest import (
    IMPLEMENTATION_VENDOR,
    IMPLEMENTATION_VERSION,
    MANIFEST_VERSION,
    SPECIFICATION_VENDOR,
    SPECIFICATION_VERSION,
    Manifest,
)
from .types import ArchiveFormat, detect_from_suffix, tar_format_for
from .writers import ArchiveWriter, writer_for

_logger = get_logger(__name__)


@contextmanager
def _observe_build(*, operation: str, base: dict[str, Any]) -> Iterator[dict[str, Any]]:
    start = time.perf_counter()
    summary: dict[str, Any] = {}
    try:
        yield summary
    except Exception as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        _logger.warning(
            f"{operation} status=failed duration_ms={duration_ms} "
            f"path={base.get('path')!r} error_type={type(e).__name__}"
        )
        raise
    else:
        duration_ms = int((time.perf_counter() - start) * 1000)
        summary_parts = [
            "status=succeeded",
            f"duration_ms={duration_ms}",
            f"path={base.get('path')!r}",
            f"format={base.get('format')!r}",
        ]
        for k in ("dirs_count", "files_count", "entries"):
            if k in summary:
                summary_parts.append(f"{k}={summary[k]!r}")
        _logger.info(f"{operation} " + " ".join(summary_parts))


@dataclass(frozen=True)
class BuildPlan:
    """Everything ``build()`` will write, in write order."""

    directories: list[Directory]
    files: list[FileInfo]

    @property
    def entries(self) -> int:
        return len(self.directories) + len(self.files)


@dataclass(frozen=True)
class _Registration:
    source: FileSource
    required: bool


def _as_source(value: FileSource | Path | str) -> FileSource:
    if isinstance(value, (str, Path)):
        return FileSet(value)
    return value


class ArchiveBuilder:
    """Collects filesets, directories and a header, then writes one archive.

    ``fmt`` defaults to the builder's own format, or is detected from the
    output file name.
    """

    default_format: ArchiveFormat | None = None

    def __init__(
        self,
        file: Path | str,
        fmt: ArchiveFormat | str | None = None,
        *,
        resolver: ConfigResolver | None = None,
    ) -> None:
        self.file = Path(file)
        self._resolver = resolver or ConfigResolver()
        apply_logging_policy(self._resolver.resolve_logging_policy())
        self.format = self._check_format(self._parse_format(fmt) if fmt else self._default_format())
        self.header = Manifest()
        self.directories: dict[str, Directory] = {}
        self._registrations: list[_Registration] = []

    def _default_format(self) -> ArchiveFormat:
        if self.default_format is not None:
            return self.default_format
        detected = detect_from_suffix(self.file)
        if detected is None:
            raise ConfigError(
                f"Unable to detect archive format for '{self.file}'",
                "Pass fmt explicitly or use a .jar, .zip, .tar, .tar.gz or .tar.xz name",
            )
        return detected

    @staticmethod
    def _parse_format(fmt: ArchiveFormat | str) -> ArchiveFormat:
        try:
            return ArchiveFormat(fmt)
        except ValueError:
            choices = ", ".join(f.value for f in ArchiveFormat)
            raise ConfigError(
                f"Unknown archive format {fmt!r}",
                f"Use one of: {choices}",
            ) from None

    def _check_format(self, fmt: ArchiveFormat) -> ArchiveFormat:
        return fmt

    @property
    def file_sets(self) -> list[FileSource]:
        return [r.source for r in self._registrations]

    def file_set(self, file_set: FileSource | Path | str) -> Self:
        """Add a fileset whose root must be an existing directory."""
        source = _as_source(file_set)
        source.check_root()
        self._registrations.append(_Registration(source, required=True))
        return self

    def optional_file_set(self, file_set: FileSource | Path | str) -> Self:
        """Add a fileset that is skipped when its root does not exist.

        A root that exists as a plain file is still an error.
        """
        source = _as_source(file_set)
        if source.directory.is_file():
            source.check_root()
        if source.directory.is_dir():
            self._registrations.append(_Registration(source, required=False))
        else:
            _logger.debug(f"archive: skipping missing optional fileset {source.directory}")
        return self

    def directory(self, directory: Directory) -> Self:
        """Add an explicit directory entry, e.g. to force an empty directory."""
        normalized = directory.normalized()
        self.directories.setdefault(normalized.name, normalized)
        return self

    def set_header(self, entries: Mapping[str, object]) -> Self:
        self.header.update(entries)
        return self

    def read_header(self, path: Path | str) -> Self:
        self.header.read_file(Path(path))
        return self

    def ensure_header(self, vendor: str, version: str) -> Self:
        """Stamp vendor and version, keeping any value already set."""
        self.header.set_default(MANIFEST_VERSION, "1.0")
        self.header.set_default(IMPLEMENTATION_VENDOR, vendor)
        self.header.set_default(IMPLEMENTATION_VERSION, version)
        self.header.set_default(SPECIFICATION_VENDOR, vendor)
        self.header.set_default(SPECIFICATION_VERSION, version)
        return self

    def _writer(self) -> ArchiveWriter:
        return writer_for(
            self.format, self.file, self.header, self._resolver.resolve_archive_options()
        )

    def plan(self) -> BuildPlan:
        """Merge every registered source into the ordered entry list."""
        writer = self._writer()
        reserved_dirs = writer.reserved_directories
        reserved_files = set(writer.reserved_files)

        directories = dict(self.directories)
        files: dict[str, FileInfo] = {}
        for reg in self._registrations:
            source = reg.source
            if not reg.required and not source.directory.is_dir():
                if source.directory.is_file():
                    source.check_root()
                _logger.debug(f"archive: optional fileset {source.directory} disappeared")
                continue

            for directory in source.list_directories():
                normalized = directory.normalized()
                directories.setdefault(normalized.name, normalized)

            for info in source.list_files():
                if info.relative in reserved_files:
                    _logger.warning(
                        f"archive: ignoring {info.relative!r} from {source.directory}; "
                        f"the {self.format.value} writer generates it"
                    )
                    continue
                if info.relative in files:
                    _logger.verbose(
                        f"archive: duplicate {info.relative!r} from {source.directory} dropped; "
                        f"kept {str(files[info.relative].origin)!r}"
                    )
                    continue
                files[info.relative] = info

        for name in reserved_dirs:
            directories.setdefault(name, Directory(name))

        ordered_dirs = sorted(
            directories.values(),
            key=lambda d: (d.name not in reserved_dirs, entry_sort_key(d.name)),
        )
        ordered_files = sorted(files.values(), key=lambda f: entry_sort_key(f.relative))
        return BuildPlan(directories=ordered_dirs, files=ordered_files)

    def build(self) -> int:
        """Write the archive and return the number of entries written.

        Directories and files are counted; a JAR manifest is not.
        """
        base = {"path": str(self.file), "format": self.format.value}
        with _observe_build(operation="archive.build", base=base) as summary:
            plan = self.plan()
            writer = self._writer()
            try:
                self._prepare_output()
                with writer:
                    for directory in plan.directories:
                        writer.write_directory(directory)
                    for info in plan.files:
                        writer.write_file(info)
            except (OSError, tarfile.TarError, zipfile.LargeZipFile) as e:
                raise ArchiveWriteError(str(self.file), str(e)) from e

            summary["dirs_count"] = len(plan.directories)
            summary["files_count"] = len(plan.files)
            summary["entries"] = plan.entries
            return plan.entries

    def _prepare_output(self) -> None:
        if self.file.exists() or self.file.is_symlink():
            self.file.unlink()
        self.file.parent.mkdir(parents=True, exist_ok=True)


class JarBuilder(ArchiveBuilder):
    """Builds a JAR; the header is written as ``META-INF/MANIFEST.MF``."""

    default_format = ArchiveFormat.JAR

    def _check_format(self, fmt: ArchiveFormat) -> ArchiveFormat:
        if fmt != ArchiveFormat.JAR:
            raise ConfigError(f"JarBuilder cannot write {fmt.value!r} archives")
        return fmt

    def manifest(self, entries: Mapping[str, object]) -> Self:
        return self.set_header(entries)

    def manifest_file(self, path: Path | str) -> Self:
        return self.read_header(path)

    def ensure_manifest(self, vendor: str, version: str) -> Self:
        return self.ensure_header(vendor, version)


class ZipBuilder(ArchiveBuilder):
    default_format = ArchiveFormat.ZIP

    def _check_format(self, fmt: ArchiveFormat) -> ArchiveFormat:
        if fmt != ArchiveFormat.ZIP:
            raise ConfigError(f"ZipBuilder cannot write {fmt.value!r} archives")
        return fmt


class TarBuilder(ArchiveBuilder):
    """Builds a tar archive.

    Without an explicit format the compression comes from the file name
    (``.tar.gz``, ``.tgz``, ``.tar.xz``, ``.txz``, ``.tar``) and otherwise
    from the ``archives.tar.compression`` config key.
    """

    def _default_format(self) -> ArchiveFormat:
        detected = detect_from_suffix(self.file)
        if detected is not None and detected.is_tar:
            return detected
        return tar_format_for(self._resolver.resolve_archive_options().tar_compression)

    def _check_format(self, fmt: ArchiveFormat) -> ArchiveFormat:
        if not fmt.is_tar:
            raise ConfigError(f"TarBuilder cannot write {fmt.value!r} archives")
        return fmt
