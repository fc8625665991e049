"""packforge core: errors, logging and configuration shared by every layer."""

__version__ = "1.0.0"

from packforge.core.config import ArchiveOptions, ConfigResolver, LoggingPolicy
from packforge.core.errors import (
    ArchiveWriteError,
    AttributeValidationError,
    ConfigError,
    FileError,
    FileSetError,
    PackforgeError,
    TraversalError,
)
from packforge.core.logging import (
    VerbosityLevel,
    apply_logging_policy,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)

__all__ = [
    # Config
    "ArchiveOptions",
    "ConfigResolver",
    "LoggingPolicy",
    # Errors
    "ArchiveWriteError",
    "AttributeValidationError",
    "ConfigError",
    "FileError",
    "FileSetError",
    "PackforgeError",
    "TraversalError",
    # Logging
    "VerbosityLevel",
    "apply_logging_policy",
    "get_logger",
    "get_verbosity",
    "set_colors",
    "set_verbosity",
]
