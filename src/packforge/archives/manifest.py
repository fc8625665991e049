"""JAR manifest: the archive header key/value block.

Only the main section is modelled. Names are case-insensitive and keep the
spelling they were first set with; insertion order is preserved, except that
``Manifest-Version`` is always written first.

Serialized form::

    Manifest-Version: 1.0\\r\\n
    Implementation-Vendor: example.org\\r\\n
    \\r\\n

Lines longer than 72 bytes continue on the next line after a single space.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from pathlib import Path

from packforge.core.errors import ConfigError

MANIFEST_VERSION = "Manifest-Version"
IMPLEMENTATION_VENDOR = "Implementation-Vendor"
IMPLEMENTATION_VERSION = "Implementation-Version"
SPECIFICATION_VENDOR = "Specification-Vendor"
SPECIFICATION_VERSION = "Specification-Version"

MAX_LINE_BYTES = 72

_NAME_RE = re.compile(r"[0-9A-Za-z_-]{1,70}")


def _check_name(name: str) -> str:
    if not _NAME_RE.fullmatch(name):
        raise ConfigError(
            f"Invalid manifest attribute name {name!r}",
            "Use 1-70 characters from A-Z, a-z, 0-9, '-' and '_'",
        )
    return name


def _check_value(name: str, value: object) -> str:
    text = str(value)
    if "\r" in text or "\n" in text or "\0" in text:
        raise ConfigError(f"Manifest attribute {name!r} must be a single line")
    return text


def _wrap(line: bytes) -> list[bytes]:
    parts: list[bytes] = []
    limit = MAX_LINE_BYTES
    while len(line) > limit:
        cut = limit
        # Never split inside a UTF-8 sequence.
        while cut > 0 and (line[cut] & 0xC0) == 0x80:
            cut -= 1
        parts.append(line[:cut])
        line = line[cut:]
        limit = MAX_LINE_BYTES - 1
    parts.append(line)
    return [parts[0]] + [b" " + p for p in parts[1:]]


class Manifest:
    """Ordered, case-insensitive main-section manifest attributes."""

    def __init__(self, entries: Mapping[str, object] | None = None) -> None:
        self._entries: dict[str, tuple[str, str]] = {}
        if entries:
            self.update(entries)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return (name for name, _value in self._entries.values())

    def __repr__(self) -> str:
        return f"Manifest({dict(self.items())!r})"

    def get(self, name: str, default: str | None = None) -> str | None:
        entry = self._entries.get(name.lower())
        return entry[1] if entry is not None else default

    def items(self) -> list[tuple[str, str]]:
        return list(self._entries.values())

    def set(self, name: str, value: object) -> None:
        key = _check_name(name).lower()
        existing = self._entries.get(key)
        spelled = existing[0] if existing is not None else name
        self._entries[key] = (spelled, _check_value(name, value))

    def set_default(self, name: str, value: object) -> bool:
        """Set ``name`` only when it is absent; returns True when it was set."""
        if name in self:
            return False
        self.set(name, value)
        return True

    def update(self, entries: Mapping[str, object]) -> None:
        for name, value in entries.items():
            self.set(name, value)

    def read(self, data: bytes | str) -> None:
        """Merge the main section of a serialized manifest into this one."""
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        current: list[str] | None = None
        parsed: list[list[str]] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line:
                break
            if line.startswith(" "):
                if current is None:
                    raise ConfigError(f"Manifest line {lineno}: continuation without attribute")
                current[1] += line[1:]
                continue
            name, sep, value = line.partition(": ")
            if not sep:
                raise ConfigError(f"Manifest line {lineno}: expected 'Name: value', got {line!r}")
            current = [name, value]
            parsed.append(current)

        for name, value in parsed:
            self.set(name, value)

    def read_file(self, path: Path) -> None:
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ConfigError(f"Failed to read manifest from {path}: {e}") from e
        self.read(data)

    def to_bytes(self) -> bytes:
        entries = self.items()
        entries.sort(key=lambda kv: kv[0].lower() != MANIFEST_VERSION.lower())
        out = bytearray()
        for name, value in entries:
            for piece in _wrap(f"{name}: {value}".encode()):
                out += piece + b"\r\n"
        out += b"\r\n"
        return bytes(out)

    def to_text(self) -> str:
        return self.to_bytes().decode("utf-8")
