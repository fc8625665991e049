"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments (explicit overrides passed by the caller)
2. Environment variables (PACKFORGE_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from packforge.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"

ALLOWED_COMPRESSION = frozenset({"deflated", "stored"})
ALLOWED_TAR_COMPRESSION = frozenset({"none", "gz", "xz"})


@dataclass(frozen=True)
class LoggingPolicy:
    """Resolved, immutable logging policy."""

    level_name: str  # quiet | normal | verbose | debug
    emit_info: bool
    emit_verbose: bool
    emit_debug: bool
    color: bool


@dataclass(frozen=True)
class ArchiveOptions:
    """Resolved archive writer options."""

    compression: str  # deflated | stored
    deflate_level: int
    tar_compression: str  # none | gz | xz


class ConfigResolver:
    """Resolve configuration with strict 4-level priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'archives': {'compression': 'stored'}},
            user_config_path=Path('~/.config/packforge/config.yaml')
        )

        value, source = resolver.resolve('archives.compression')
        # value = 'stored', source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/packforge/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/packforge/config.yaml")
        self.defaults = defaults or self._default_config()

        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'logging.level')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        value = self._from_cli(key)
        if value is not None:
            return value, "cli"

        value = self._from_env(key)
        if value is not None:
            return value, "env"

        value = self._from_user_config(key)
        if value is not None:
            return value, "user_config"

        value = self._from_system_config(key)
        if value is not None:
            return value, "system_config"

        value = self._from_defaults(key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_logging_policy(self) -> LoggingPolicy:
        """Resolve canonical logging policy (side-effect free)."""
        level_name = self._resolve_choice("logging.level", ALLOWED_LOGGING_LEVELS)
        color = self._resolve_bool("logging.color")

        return LoggingPolicy(
            level_name=level_name,
            emit_info=level_name != "quiet",
            emit_verbose=level_name in ("verbose", "debug"),
            emit_debug=level_name == "debug",
            color=color,
        )

    def resolve_archive_options(self) -> ArchiveOptions:
        """Resolve and validate the archives.* keys."""
        compression = self._resolve_choice("archives.compression", ALLOWED_COMPRESSION)
        tar_compression = self._resolve_choice("archives.tar.compression", ALLOWED_TAR_COMPRESSION)

        key = "archives.deflate_level"
        raw, _src = self.resolve(key)
        try:
            level = int(raw)
        except (TypeError, ValueError):
            raise ConfigError(f"Config key '{key}' must be an int, got {raw!r}") from None
        if not 0 <= level <= 9:
            raise ConfigError(f"Config key '{key}' must be between 0 and 9, got {level}")

        return ArchiveOptions(
            compression=compression,
            deflate_level=level,
            tar_compression=tar_compression,
        )

    def _resolve_choice(self, key: str, allowed: frozenset[str]) -> str:
        value, _src = self.resolve(key)
        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in allowed:
            choices = ", ".join(sorted(allowed))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {choices}")
        return norm

    def _resolve_bool(self, key: str) -> bool:
        value, _src = self.resolve(key)
        if isinstance(value, bool):
            return value
        # Environment values arrive as strings.
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ConfigError(f"Config key '{key}' must be a bool, got {value!r}")

    def _from_cli(self, key: str) -> Any | None:
        return self._get_nested(self.cli_args, key)

    def _from_env(self, key: str) -> Any | None:
        """Get value from environment variables.

        Environment variable format: PACKFORGE_KEY_NAME
        Example: PACKFORGE_ARCHIVES_COMPRESSION
        """
        env_key = f"PACKFORGE_{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _from_user_config(self, key: str) -> Any | None:
        return self._get_nested(self._get_user_config(), key)

    def _from_system_config(self, key: str) -> Any | None:
        return self._get_nested(self._get_system_config(), key)

    def _from_defaults(self, key: str) -> Any | None:
        return self._get_nested(self.defaults, key)

    def _get_user_config(self) -> dict[str, Any]:
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'logging': {'level': 'debug'}}
            _get_nested(data, 'logging.level') -> 'debug'
        """
        current: Any = data

        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None

        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        return {
            "logging": {
                "level": DEFAULT_LOGGING_LEVEL,
                "color": True,
            },
            "archives": {
                "compression": "deflated",
                "deflate_level": 6,
                "tar": {
                    "compression": "none",
                },
            },
        }
