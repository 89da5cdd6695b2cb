"""Forge build discovery, install detection and path assembly."""

import pytest

from conftest import FakeHTTP, write_json
from mclaunch.core.classpath import BOOTSTRAP_MAIN_CLASS
from mclaunch.core.instance import InstanceLayout
from mclaunch.errors import LoaderInstallFailure, NetworkFailure
from mclaunch.modloaders.base import LoaderContext
from mclaunch.modloaders.forge import (
    ForgeLoader,
    highest_build,
    installed_forge_id,
    listing_versions,
    metadata_versions,
    promoted_build,
)
from mclaunch.versions.models import VersionDescriptor

METADATA = """<?xml version="1.0" encoding="UTF-8"?>
<metadata>
  <groupId>net.minecraftforge</groupId>
  <artifactId>forge</artifactId>
  <versioning>
    <versions>
      <version>1.20.1-47.1.0</version>
      <version>1.20.1-47.2.0</version>
      <version>1.19.2-43.3.0</version>
    </versions>
  </versioning>
</metadata>
"""


def _loader(config, http, profile, tmp_path, mc="1.20.1"):
    layout = InstanceLayout(tmp_path / "inst", config)
    return ForgeLoader(LoaderContext(config, http, layout, profile), mc)


def test_promoted_build_order():
    promos = {"1.20.1-latest": "47.2.20", "1.20.1-recommended": "47.2.0", "1.19.2-latest": "43.3.0"}
    assert promoted_build(promos, "1.20.1") == "47.2.0"
    assert promoted_build({"1.20.1-latest": "47.2.20"}, "1.20.1") == "47.2.20"
    assert promoted_build({"1.20.1-beta": "47.0.1"}, "1.20.1") == "47.0.1"
    assert promoted_build(promos, "1.18.2") is None


def test_highest_build_compares_numerically():
    names = ["1.20.1-47.1.0", "1.20.1-47.10.0", "1.20.1-47.2.0", "1.19.2-43.1.1"]
    assert highest_build(names, "1.20.1") == "47.10.0"
    assert highest_build(names, "1.16.5") is None


def test_metadata_and_listing_parsing():
    assert metadata_versions(METADATA)[:2] == ["1.20.1-47.1.0", "1.20.1-47.2.0"]
    assert metadata_versions("<not xml") == []
    html = '<a href="../">../</a><a href="1.20.1-47.2.0/">1.20.1-47.2.0/</a>'
    assert highest_build(listing_versions(html), "1.20.1") == "47.2.0"


def test_installed_forge_id(tmp_path):
    versions = tmp_path / "versions"
    assert installed_forge_id(versions, "1.20.1", "47.2.0") is None
    write_json(versions / "1.20.1-forge-47.2.0" / "1.20.1-forge-47.2.0.json", {"id": "1.20.1-forge-47.2.0"})
    assert installed_forge_id(versions, "1.20.1", "47.2.0") == "1.20.1-forge-47.2.0"


def test_installed_forge_id_scans_unusual_names(tmp_path):
    versions = tmp_path / "versions"
    write_json(versions / "Forge 1.20.1 (47.2.0)" / "Forge 1.20.1 (47.2.0).json", {"id": "x"})
    assert installed_forge_id(versions, "1.20.1", "47.2.0") == "Forge 1.20.1 (47.2.0)"


@pytest.mark.asyncio
async def test_recommended_build_falls_back_to_maven_metadata(config, profile, tmp_path):
    metadata_url = "https://maven.creeperhost.net/net/minecraftforge/forge/maven-metadata.xml"
    http = FakeHTTP(texts={metadata_url: METADATA})

    assert await _loader(config, http, profile, tmp_path).recommended_build() == "47.2.0"
    assert ("GET", "https://maven.minecraftforge.net/net/minecraftforge/forge/maven-metadata.xml") in http.calls


@pytest.mark.asyncio
async def test_recommended_build_known_fallback(config, profile, tmp_path):
    loader = _loader(config, FakeHTTP(), profile, tmp_path, mc="1.21.11")
    assert await loader.recommended_build() == "61.0.8"


@pytest.mark.asyncio
async def test_recommended_build_failure(config, profile, tmp_path):
    with pytest.raises(LoaderInstallFailure, match="No forge version found for Minecraft 1.7.10"):
        await _loader(config, FakeHTTP(), profile, tmp_path, mc="1.7.10").recommended_build()


@pytest.mark.asyncio
async def test_existing_install_skips_installer(config, profile, tmp_path):
    http = FakeHTTP(json_bodies={config.forge_promotions_urls[0]: {"promos": {"1.20.1-recommended": "47.2.0"}}})
    write_json(config.versions_dir / "1.20.1-forge-47.2.0" / "1.20.1-forge-47.2.0.json", {"id": "1.20.1-forge-47.2.0"})

    assert await _loader(config, http, profile, tmp_path).ensure_installed() == "1.20.1-forge-47.2.0"
    assert http.calls == [("GET", config.forge_promotions_urls[0])]


def _installed(config, profile, tmp_path):
    loader = _loader(config, FakeHTTP(), profile, tmp_path)
    loader.descriptor = VersionDescriptor.model_validate({
        "id": "1.20.1-forge-47.2.0",
        "mainClass": "cpw.mods.modlauncher.Launcher",
        "libraries": [
            {"name": "cpw.mods:securejarhandler:2.1.10"},
            {"name": "cpw.mods:modlauncher:10.0.9"},
            {"name": "cpw.mods:bootstraplauncher:1.1.2"},
            {"name": "net.minecraftforge:fmlloader:1.20.1-47.2.0"},
            {"name": "com.google.guava:guava:31.1-jre"},
        ],
    })
    libraries_dir = config.libraries_dir
    loader.library_classpath = [libraries_dir / lib.coordinate.path for lib in loader.descriptor.libraries]
    return loader


def test_main_class_depends_on_bootstrap_jar(config, profile, tmp_path):
    loader = _installed(config, profile, tmp_path)
    assert loader.main_class() == "cpw.mods.modlauncher.Launcher"
    for path in loader.library_classpath:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"jar")
    assert loader.main_class() == BOOTSTRAP_MAIN_CLASS


def test_assemble_paths_keeps_existing_classpath_entries(config, profile, tmp_path):
    loader = _installed(config, profile, tmp_path)
    for path in loader.library_classpath:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"jar")
    loader.layout.client_jar.parent.mkdir(parents=True)
    loader.layout.client_jar.write_bytes(b"client")

    module_path, classpath = loader.assemble_paths([])

    names = [p.name for p in classpath]
    assert names[0] == "client.jar"
    assert "bootstraplauncher-1.1.2.jar" in names
    assert "modlauncher-10.0.9.jar" not in names
    assert [p.name for p in module_path] == [
        "securejarhandler-2.1.10.jar", "modlauncher-10.0.9.jar", "bootstraplauncher-1.1.2.jar"]


def test_library_checks_report(config, profile, tmp_path):
    loader = _installed(config, profile, tmp_path)
    loader.descriptor.libraries = loader.descriptor.libraries[1:]
    checks = loader.library_checks()
    assert checks[0].startswith("cpw.mods:bootstraplauncher path=") and "exists=False" in checks[0]
    assert checks[2] == "cpw.mods:securejarhandler path=<not-found-in-version.json>"


def test_forge_flags(config, profile, tmp_path):
    loader = _loader(config, FakeHTTP(), profile, tmp_path)
    flags = loader.extra_jvm_flags(17, 17)
    assert "-Dfml.earlyprogresswindow=false" in flags
    assert any(f.startswith("-DignoreList=") for f in flags)
    assert "--enable-native-access=ALL-UNNAMED" not in flags
    assert "--enable-native-access=ALL-UNNAMED" in loader.extra_jvm_flags(21, 21)
    assert loader.natives_flags() == [f"-Djava.library.path={loader.layout.natives_dir}"]


@pytest.mark.asyncio
async def test_library_failure_aborts_forge_prepare(config, profile, tmp_path):
    config = config.model_copy(update={"library_workers": 1})
    bad = "https://maven.test/a/bad/1/bad-1.jar"
    good = "https://maven.test/a/good/1/good-1.jar"
    http = FakeHTTP(files={good: b"good"})
    descriptor = VersionDescriptor.model_validate({
        "id": "1.20.1-forge-47.2.0",
        "mainClass": "cpw.mods.bootstraplauncher.BootstrapLauncher",
        "libraries": [
            {"name": "net.minecraftforge:forge:1.20.1-47.2.0:client",
             "downloads": {"artifact": {"path": "net/minecraftforge/forge/1.20.1-47.2.0/forge-1.20.1-47.2.0-client.jar",
                                        "url": ""}}},
            {"name": "a:bad:1", "downloads": {"artifact": {"path": "a/bad/1/bad-1.jar", "url": bad}}},
            {"name": "a:good:1", "downloads": {"artifact": {"path": "a/good/1/good-1.jar", "url": good}}},
        ],
    })
    loader = _loader(config, http, profile, tmp_path)

    with pytest.raises(NetworkFailure):
        await loader.acquire_libraries(descriptor)

    assert http.calls == [("DOWNLOAD", bad)] * 3
    assert not (config.libraries_dir / "a/good/1/good-1.jar").exists()
