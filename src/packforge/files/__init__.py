"""Filesets: tree traversal, filtering, directory closure and overrides."""

from .archive_fileset import ArchiveFileSet, ArchiveOverrides, apply_file_overrides
from .attributes import (
    ARCHIVE_FILE_SET_ATTRIBUTES,
    FILE_SET_ATTRIBUTES,
    AttributeSchema,
    archive_file_set_from_attributes,
    attributes_valid,
    file_set_from_attributes,
    to_patterns,
)
from .copier import Copier
from .fileset import FileSet, directory_closure
from .modes import (
    PosixPermission,
    from_hex_mode,
    parse_mode,
    to_hex_mode,
    to_mode,
    to_permissions,
)
from .types import Directory, FileInfo, FileSource, entry_sort_key, sort_files

__all__ = [
    "ARCHIVE_FILE_SET_ATTRIBUTES",
    "FILE_SET_ATTRIBUTES",
    "ArchiveFileSet",
    "ArchiveOverrides",
    "AttributeSchema",
    "Copier",
    "Directory",
    "FileInfo",
    "FileSet",
    "FileSource",
    "PosixPermission",
    "apply_file_overrides",
    "archive_file_set_from_attributes",
    "attributes_valid",
    "directory_closure",
    "entry_sort_key",
    "file_set_from_attributes",
    "from_hex_mode",
    "parse_mode",
    "sort_files",
    "to_hex_mode",
    "to_mode",
    "to_patterns",
    "to_permissions",
]
