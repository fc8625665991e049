"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest

# Add src to path (for 'packforge.*' imports without an install)
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))


@pytest.fixture(autouse=True)
def _reset_logging():
    """Keep global verbosity and log bus subscriptions from leaking between tests."""
    from packforge.core.log_bus import get_log_bus
    from packforge.core.logging import VerbosityLevel, set_colors, set_verbosity

    yield
    set_verbosity(VerbosityLevel.NORMAL)
    set_colors(True)
    get_log_bus().clear()


@pytest.fixture
def config_resolver(tmp_path, monkeypatch):
    """Create ConfigResolver isolated from user/system config and PACKFORGE_* env.

    Returns:
        ConfigResolver instance
    """
    from packforge.core.config import ConfigResolver

    for name in [k for k in os.environ if k.startswith("PACKFORGE_")]:
        monkeypatch.delenv(name)

    return ConfigResolver(
        cli_args={},
        user_config_path=tmp_path / "no-user-config.yaml",
        system_config_path=tmp_path / "no-system-config.yaml",
    )


@pytest.fixture
def tree(tmp_path):
    """Create a small source tree.

    Layout::

        src/
          a.txt
          lib/b.txt
          lib/deep/er/c.bin
          lib/d.orig
    """
    root = tmp_path / "src"
    (root / "lib" / "deep" / "er").mkdir(parents=True)
    (root / "a.txt").write_text("alpha\n")
    (root / "lib" / "b.txt").write_text("beta\n")
    (root / "lib" / "deep" / "er" / "c.bin").write_bytes(bytes(range(256)) * 4)
    (root / "lib" / "d.orig").write_text("orig\n")
    return root
