"""Typed construction of filesets from untyped attribute maps.

Build scripts describe filesets as plain mappings, e.g.::

    {"dir": "build/classes", "prefix": "lib", "mode": 0o644,
     "excludePatterns": [".*\\.orig"]}

``attributes_valid`` reports every problem at once (``None`` means valid);
the ``*_from_attributes`` helpers raise ``AttributeValidationError`` with the
same message.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from packforge.core.errors import AttributeValidationError, ConfigError

from .archive_fileset import ArchiveFileSet
from .fileset import FileSet
from .modes import parse_mode


@dataclass(frozen=True)
class AttributeSchema:
    """Immutable description of the attributes one entity type accepts."""

    entity: str
    required: frozenset[str]
    valid: frozenset[str]
    collection_keys: frozenset[str] = frozenset()
    mode_keys: frozenset[str] = frozenset()


FILE_SET_ATTRIBUTES = AttributeSchema(
    entity="a FileSet",
    required=frozenset({"dir"}),
    valid=frozenset({"dir", "includePatterns", "excludePatterns"}),
    collection_keys=frozenset({"includePatterns", "excludePatterns"}),
)

ARCHIVE_FILE_SET_ATTRIBUTES = AttributeSchema(
    entity="an ArchiveFileSet",
    required=frozenset({"dir"}),
    valid=frozenset(
        {
            "dir",
            "dirGroupName",
            "dirMode",
            "dirUserName",
            "groupName",
            "mode",
            "prefix",
            "userName",
            "includePatterns",
            "excludePatterns",
        }
    ),
    collection_keys=frozenset({"includePatterns", "excludePatterns"}),
    mode_keys=frozenset({"mode", "dirMode"}),
)


def _is_collection(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping))


def attributes_valid(schema: AttributeSchema, attributes: Mapping[str, Any]) -> str | None:
    """Return None when ``attributes`` fit ``schema``, else one line per problem."""
    problems: list[str] = []
    keys = set(attributes)

    missing = schema.required - keys
    if missing:
        problems.append(f"Missing required attributes {sorted(missing)} for {schema.entity}")

    invalid = keys - schema.valid
    if invalid:
        problems.append(f"Invalid attributes {sorted(invalid)} for {schema.entity}")

    for key in sorted(schema.collection_keys & keys):
        if not _is_collection(attributes[key]):
            problems.append(
                f"The [{key}] attribute for {schema.entity} must be a collection of some kind"
            )

    for key in sorted(schema.mode_keys & keys):
        try:
            parse_mode(attributes[key])
        except ConfigError:
            problems.append(
                f"The [{key}] attribute for {schema.entity} must be an integer or octal string"
            )

    if problems:
        return "\n".join(problems)
    return None


def to_patterns(values: Iterable[Any] | None) -> list[re.Pattern[str]]:
    """Compile pattern sources; already-compiled patterns pass through."""
    if values is None:
        return []
    patterns: list[re.Pattern[str]] = []
    for item in values:
        if isinstance(item, re.Pattern):
            patterns.append(item)
            continue
        try:
            patterns.append(re.compile(str(item)))
        except re.error as e:
            raise AttributeValidationError(f"Invalid pattern {item!r}: {e}") from e
    return patterns


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _check(schema: AttributeSchema, attributes: Mapping[str, Any]) -> None:
    message = attributes_valid(schema, attributes)
    if message is not None:
        raise AttributeValidationError(message)


def file_set_from_attributes(
    attributes: Mapping[str, Any], *, base_dir: Path | None = None
) -> FileSet:
    """Build a FileSet; a relative ``dir`` is resolved against ``base_dir``."""
    _check(FILE_SET_ATTRIBUTES, attributes)
    return FileSet(
        _resolve_dir(attributes["dir"], base_dir),
        to_patterns(attributes.get("includePatterns")),
        to_patterns(attributes.get("excludePatterns")),
    )


def archive_file_set_from_attributes(
    attributes: Mapping[str, Any], *, base_dir: Path | None = None
) -> ArchiveFileSet:
    """Build an ArchiveFileSet; a relative ``dir`` is resolved against ``base_dir``."""
    _check(ARCHIVE_FILE_SET_ATTRIBUTES, attributes)
    return ArchiveFileSet(
        _resolve_dir(attributes["dir"], base_dir),
        _to_str(attributes.get("prefix")),
        mode=parse_mode(attributes.get("mode")),
        user_name=_to_str(attributes.get("userName")),
        group_name=_to_str(attributes.get("groupName")),
        dir_mode=parse_mode(attributes.get("dirMode")),
        dir_user_name=_to_str(attributes.get("dirUserName")),
        dir_group_name=_to_str(attributes.get("dirGroupName")),
        include_patterns=to_patterns(attributes.get("includePatterns")),
        exclude_patterns=to_patterns(attributes.get("excludePatterns")),
    )


def _resolve_dir(value: Any, base_dir: Path | None) -> Path:
    path = Path(str(value))
    if base_dir is not None and not path.is_absolute():
        return base_dir / path
    return path
