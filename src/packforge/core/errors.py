"""Error handling with friendly messages."""

from __future__ import annotations


class PackforgeError(Exception):
    """Base exception for all packforge errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigError(PackforgeError):
    """Configuration error."""

    pass


class AttributeValidationError(ConfigError):
    """Untyped attributes could not be turned into a fileset.

    The message lists every problem found, one per line.
    """

    pass


class FileError(PackforgeError):
    """File operation error."""

    pass


class FileSetError(FileError):
    """Fileset root is missing or is not a directory."""

    pass


class TraversalError(FileError):
    """Reading a directory tree or its attributes failed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Unable to read '{path}': {reason}")
        self.path = path


class ArchiveWriteError(FileError):
    """Writing an archive failed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write archive '{path}': {reason}",
            "The output may be truncated; build to a temporary path and rename on success",
        )
        self.path = path
