"""Archive assembly: builders, writers and the manifest header."""

from .builder import ArchiveBuilder, BuildPlan, JarBuilder, TarBuilder, ZipBuilder
from .manifest import Manifest
from .types import ArchiveFormat, detect_from_suffix
from .writers import ArchiveWriter, JarWriter, TarWriter, ZipWriter

__all__ = [
    "ArchiveBuilder",
    "ArchiveFormat",
    "ArchiveWriter",
    "BuildPlan",
    "JarBuilder",
    "JarWriter",
    "Manifest",
    "TarBuilder",
    "TarWriter",
    "ZipBuilder",
    "ZipWriter",
    "detect_from_suffix",
]
