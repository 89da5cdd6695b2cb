"""Java version table, discovery and runtime installation."""

import io
import os
import zipfile

import pytest

from conftest import FakeHTTP
from mclaunch.errors import RuntimeNotFound
from mclaunch.runtime import java_manager
from mclaunch.runtime.java_manager import JavaManager, java_binaries, parse_java_version, required_major


@pytest.mark.parametrize("version, major", [
    ("1.8.9", 8),
    ("1.12.2", 8),
    ("1.16.5", 8),
    ("1.17.1", 16),
    ("1.18.2", 17),
    ("1.20.1", 17),
    ("1.20.4", 17),
    ("1.20.5", 21),
    ("1.20.6", 21),
    ("1.21", 21),
    ("1.21.11", 21),
    ("24w01a", 8),
])
def test_required_major(version, major):
    assert required_major(version) == major


def test_parse_java_version():
    assert parse_java_version('java version "1.8.0_311"') == 8
    assert parse_java_version('openjdk version "17.0.9" 2023-10-17') == 17
    assert parse_java_version('openjdk version "21" 2023-09-19') == 21
    assert parse_java_version("command not found") is None


def test_locate_prefers_exact_system_match(config, monkeypatch):
    monkeypatch.setattr(JavaManager, "system_java_major", lambda self, binary="java": 17)
    manager = JavaManager(config)
    assert manager.locate(17) is not None
    assert manager.locate(21) is None


def test_locate_finds_installed_runtime(config, monkeypatch):
    monkeypatch.setattr(JavaManager, "system_java_major", lambda self, binary="java": None)
    manager = JavaManager(config)
    binary = java_binaries(config.java_dir / "21")[0]
    binary.parent.mkdir(parents=True)
    binary.write_bytes(b"")
    assert manager.locate(21) == str(binary)


def _runtime_zip() -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        info = zipfile.ZipInfo("jdk-17.0.9+9-jre/bin/java")
        info.external_attr = 0o755 << 16
        zf.writestr(info, b"#!/bin/sh\n")
        zf.writestr("jdk-17.0.9+9-jre/release", b'JAVA_VERSION="17.0.9"\n')
    return buf.getvalue()


@pytest.mark.asyncio
async def test_acquire_downloads_and_extracts(config, monkeypatch):
    monkeypatch.setattr(java_manager, "os_name", lambda: "linux")
    monkeypatch.setattr(java_manager, "os_arch", lambda: "x64")
    monkeypatch.setattr(JavaManager, "system_java_major", lambda self, binary="java": None)
    info_url = f"{config.adoptium_api_url}/assets/latest/17/hotspot?architecture=x64&os=linux&image_type=jre"
    link = "https://github.test/OpenJDK17U-jre_x64_linux.zip"
    http = FakeHTTP(
        json_bodies={info_url: [{"binary": {"package": {"link": link, "name": "jre17.zip"}}}]},
        files={link: _runtime_zip()},
    )

    found = await JavaManager(config, http).ensure(17)

    assert found == str(config.java_dir / "17" / "bin" / "java")
    assert os.access(found, os.X_OK)
    assert (config.java_dir / "17" / "release").exists()
    assert not (config.java_dir / "17" / "jre17.zip").exists()


@pytest.mark.asyncio
async def test_acquire_without_network_or_system_java(config, monkeypatch):
    monkeypatch.setattr(JavaManager, "system_java_major", lambda self, binary="java": 8)
    with pytest.raises(RuntimeNotFound) as exc:
        await JavaManager(config, FakeHTTP()).ensure(21)
    assert exc.value.major == 21
