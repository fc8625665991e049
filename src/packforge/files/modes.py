"""POSIX permission bits and mode conversion.

A mode here is the 9-bit rwx pattern (``0o755``). Older build scripts write
modes with hex digits that read like octal (``0x755``); ``from_hex_mode`` and
``to_hex_mode`` translate between the two notations.
"""

from __future__ import annotations

import stat
from collections.abc import Iterable
from enum import Enum

from packforge.core.errors import ConfigError


class PosixPermission(Enum):
    OWNER_READ = stat.S_IRUSR
    OWNER_WRITE = stat.S_IWUSR
    OWNER_EXECUTE = stat.S_IXUSR
    GROUP_READ = stat.S_IRGRP
    GROUP_WRITE = stat.S_IWGRP
    GROUP_EXECUTE = stat.S_IXGRP
    OTHERS_READ = stat.S_IROTH
    OTHERS_WRITE = stat.S_IWOTH
    OTHERS_EXECUTE = stat.S_IXOTH


PERMISSION_BITS = 0o777


def to_permissions(mode: int) -> frozenset[PosixPermission]:
    """Convert the low 9 bits of ``mode`` into a permission set."""
    return frozenset(p for p in PosixPermission if mode & p.value)


def to_mode(permissions: Iterable[PosixPermission]) -> int:
    mode = 0
    for p in permissions:
        mode |= p.value
    return mode


def from_hex_mode(hex_mode: int) -> int:
    """Read each hex digit of ``hex_mode`` as an octal digit: ``0x755 -> 0o755``."""
    if hex_mode < 0:
        raise ValueError(f"Mode must be non-negative, got {hex_mode}")
    mode = 0
    shift = 0
    while hex_mode:
        digit = hex_mode & 0xF
        if digit > 7:
            raise ValueError(f"Hex-style mode digit {digit:x} is not an octal digit")
        mode |= digit << shift
        hex_mode >>= 4
        shift += 3
    return mode


def to_hex_mode(mode: int) -> int:
    """Inverse of ``from_hex_mode``: ``0o755 -> 0x755``."""
    if mode < 0:
        raise ValueError(f"Mode must be non-negative, got {mode}")
    hex_mode = 0
    shift = 0
    while mode:
        hex_mode |= (mode & 0o7) << shift
        mode >>= 3
        shift += 4
    return hex_mode


def parse_mode(value: object) -> int | None:
    """Coerce a configured mode into bits.

    ``None`` stays ``None`` (unset is not the same as ``0``). Ints are taken
    as bit patterns; strings are read as octal (``"755"``, ``"0755"``,
    ``"0o755"``).
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"Mode must be an int or octal string, got {value!r}")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError:
            raise ConfigError(f"Mode {value!r} is not an octal number") from None
    else:
        raise ConfigError(f"Mode must be an int or octal string, got {type(value).__name__}")

    if mode < 0 or mode > 0o7777:
        raise ConfigError(f"Mode {value!r} is out of range")
    return mode
