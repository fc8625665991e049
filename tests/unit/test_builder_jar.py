"""Unit tests for JarBuilder."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from packforge.archives import JarBuilder, Manifest
from packforge.core.errors import ConfigError


def _manifest(path: Path) -> Manifest:
    m = Manifest()
    with zipfile.ZipFile(path) as zf:
        m.read(zf.read("META-INF/MANIFEST.MF"))
    return m


def test_meta_inf_and_manifest_come_first(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "jars" / "app.jar"
    count = JarBuilder(out, resolver=config_resolver).file_set(tree).build()

    # META-INF/ + 3 directories + 4 files; the manifest is not counted
    assert count == 8
    with zipfile.ZipFile(out) as zf:
        names = zf.namelist()
    assert names[:2] == ["META-INF/", "META-INF/MANIFEST.MF"]
    assert names[2:5] == ["lib/", "lib/deep/", "lib/deep/er/"]
    assert len(names) == 9


def test_manifest_always_has_version(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.jar"
    JarBuilder(out, resolver=config_resolver).file_set(tree).build()
    with zipfile.ZipFile(out) as zf:
        assert zf.read("META-INF/MANIFEST.MF") == b"Manifest-Version: 1.0\r\n\r\n"


def test_ensure_manifest_does_not_overwrite(tree: Path, tmp_path: Path, config_resolver) -> None:
    out = tmp_path / "app.jar"
    (
        JarBuilder(out, resolver=config_resolver)
        .manifest({"Implementation-Vendor": "caller.org", "Main-Class": "org.example.Main"})
        .ensure_manifest("default.org", "1.2.3")
        .file_set(tree)
        .build()
    )
    m = _manifest(out)
    assert m.get("Implementation-Vendor") == "caller.org"
    assert m.get("Implementation-Version") == "1.2.3"
    assert m.get("Specification-Vendor") == "default.org"
    assert m.get("Specification-Version") == "1.2.3"
    assert m.get("Main-Class") == "org.example.Main"
    assert m.get("Manifest-Version") == "1.0"


def test_manifest_file_is_merged(tree: Path, tmp_path: Path, config_resolver) -> None:
    mf = tmp_path / "MANIFEST.MF"
    mf.write_text("Manifest-Version: 1.0\r\nCreated-By: build-tool\r\n\r\n")
    out = tmp_path / "app.jar"
    JarBuilder(out, resolver=config_resolver).manifest_file(mf).file_set(tree).build()
    assert _manifest(out).get("Created-By") == "build-tool"


def test_fileset_manifest_is_ignored(tmp_path: Path, config_resolver) -> None:
    src = tmp_path / "classes"
    (src / "META-INF").mkdir(parents=True)
    (src / "META-INF" / "MANIFEST.MF").write_text("Manifest-Version: 9.9\r\n\r\n")
    (src / "App.class").write_bytes(b"\xca\xfe\xba\xbe")

    out = tmp_path / "app.jar"
    count = JarBuilder(out, resolver=config_resolver).file_set(src).build()

    assert count == 2
    with zipfile.ZipFile(out) as zf:
        assert zf.namelist().count("META-INF/") == 1
        assert zf.namelist().count("META-INF/MANIFEST.MF") == 1
        assert _manifest(out).get("Manifest-Version") == "1.0"
        assert zf.read("App.class") == b"\xca\xfe\xba\xbe"


def test_builder_header_is_not_mutated_by_build(tree: Path, tmp_path: Path, config_resolver):
    builder = JarBuilder(tmp_path / "app.jar", resolver=config_resolver).file_set(tree)
    builder.build()
    assert "Manifest-Version" not in builder.header


def test_jar_builder_rejects_other_formats(tmp_path: Path, config_resolver) -> None:
    with pytest.raises(ConfigError):
        JarBuilder(tmp_path / "app.jar", "zip", resolver=config_resolver)
