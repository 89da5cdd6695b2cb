"""Descriptor resolution and inheritance merging."""

import pytest
from aiohttp import test_utils, web

from conftest import FakeHTTP, write_json
from mclaunch.config import LauncherConfig
from mclaunch.errors import CyclicDescriptor, NetworkFailure, VersionNotFound
from mclaunch.utils.async_http import AsyncHTTPClient
from mclaunch.versions.manager import VersionManager, dedupe_libraries, merge_descriptors
from mclaunch.versions.models import Library, VersionDescriptor

MANIFEST = {
    "latest": {"release": "1.20.4", "snapshot": "24w01a"},
    "versions": [
        {"id": "1.20.4", "type": "release", "url": "https://meta.test/1.20.4.json",
         "time": "2023-12-07T12:00:00+00:00", "releaseTime": "2023-12-07T12:00:00+00:00"},
        {"id": "24w01a", "type": "snapshot", "url": "https://meta.test/24w01a.json",
         "time": "2024-01-03T12:00:00+00:00", "releaseTime": "2024-01-03T12:00:00+00:00"},
        {"id": "1.19.2", "type": "release", "url": "https://meta.test/1.19.2.json",
         "time": "2022-08-05T12:00:00+00:00", "releaseTime": "2022-08-05T12:00:00+00:00"},
    ],
}

PARENT = {
    "id": "1.20.4",
    "type": "release",
    "mainClass": "net.minecraft.client.main.Main",
    "assetIndex": {"id": "12", "url": "https://meta.test/12.json"},
    "downloads": {"client": {"url": "https://meta.test/client.jar", "sha1": "aa"}},
    "arguments": {"game": ["--username", "${auth_player_name}"], "jvm": ["-Dparent=1"]},
    "libraries": [
        {"name": "org.ow2.asm:asm:9.5"},
        {"name": "com.google.guava:guava:31.0"},
    ],
}

CHILD = {
    "id": "fabric-loader-0.15.0-1.20.4",
    "inheritsFrom": "1.20.4",
    "mainClass": "net.fabricmc.loader.impl.launch.knot.KnotClient",
    "arguments": {"game": [], "jvm": ["-DFabricMcEmu= net.minecraft.client.main.Main "]},
    "libraries": [
        {"name": "org.ow2.asm:asm:9.6", "url": "https://maven.fabricmc.net/"},
        {"name": "net.fabricmc:fabric-loader:0.15.0", "url": "https://maven.fabricmc.net/"},
    ],
}


def test_merge_fills_scalars_and_keeps_child_values():
    merged = merge_descriptors(VersionDescriptor.model_validate(CHILD), VersionDescriptor.model_validate(PARENT))
    assert merged.id == CHILD["id"]
    assert merged.mainClass == CHILD["mainClass"]
    assert merged.assetIndex.id == "12"
    assert merged.downloads.client.url == "https://meta.test/client.jar"
    assert merged.type == "release"


def test_merge_concatenates_arguments_parent_first():
    merged = merge_descriptors(VersionDescriptor.model_validate(CHILD), VersionDescriptor.model_validate(PARENT))
    assert [a.tokens()[0] for a in merged.arguments.jvm] == [
        "-Dparent=1", "-DFabricMcEmu= net.minecraft.client.main.Main "]


def test_merge_dedupes_libraries_last_wins_first_position():
    merged = merge_descriptors(VersionDescriptor.model_validate(CHILD), VersionDescriptor.model_validate(PARENT))
    names = [lib.name for lib in merged.libraries]
    assert names == ["org.ow2.asm:asm:9.6", "com.google.guava:guava:31.0", "net.fabricmc:fabric-loader:0.15.0"]


def test_merge_is_deterministic_and_pure():
    child = VersionDescriptor.model_validate(CHILD)
    parent = VersionDescriptor.model_validate(PARENT)
    before = (child.model_dump(), parent.model_dump())
    first = merge_descriptors(child, parent)
    second = merge_descriptors(child, parent)
    assert first.model_dump() == second.model_dump()
    assert (child.model_dump(), parent.model_dump()) == before


def test_dedupe_keeps_classifiers_apart():
    libs = [Library(name="org.lwjgl:lwjgl:3.3.1"), Library(name="org.lwjgl:lwjgl:3.3.1:natives-linux"),
            Library(name="org.lwjgl:lwjgl:3.3.3")]
    assert [lib.name for lib in dedupe_libraries(libs)] == [
        "org.lwjgl:lwjgl:3.3.3", "org.lwjgl:lwjgl:3.3.1:natives-linux"]


@pytest.mark.asyncio
async def test_resolve_complete_uses_cache_without_network(config, http):
    manager = VersionManager(http, config)
    write_json(manager.descriptor_path("1.20.4"), PARENT)
    write_json(manager.descriptor_path(CHILD["id"]), CHILD)

    merged = await manager.resolve_complete(CHILD["id"])

    assert merged.mainClass == CHILD["mainClass"]
    assert http.calls == []


@pytest.mark.asyncio
async def test_resolve_fetches_and_caches_verbatim(config):
    text = '{"id": "1.20.4", "mainClass": "M", "customKey": 7}'
    http = FakeHTTP(json_bodies={config.manifest_urls[0]: MANIFEST},
                    texts={"https://meta.test/1.20.4.json": text})
    manager = VersionManager(http, config)

    descriptor = await manager.resolve("1.20.4")

    assert descriptor.model_extra["customKey"] == 7
    assert manager.descriptor_path("1.20.4").read_text(encoding="utf-8") == text


@pytest.mark.asyncio
async def test_unknown_version_is_not_found(config):
    http = FakeHTTP(json_bodies={config.manifest_urls[0]: MANIFEST})
    with pytest.raises(VersionNotFound):
        await VersionManager(http, config).resolve("9.9.9")


@pytest.mark.asyncio
async def test_cycle_is_detected(config, http):
    manager = VersionManager(http, config)
    write_json(manager.descriptor_path("a"), {"id": "a", "inheritsFrom": "b"})
    write_json(manager.descriptor_path("b"), {"id": "b", "inheritsFrom": "a"})

    with pytest.raises(CyclicDescriptor) as exc:
        await manager.resolve_complete("a")
    assert exc.value.chain == ["a", "b", "a"]


@pytest.mark.asyncio
async def test_manifest_falls_back_to_next_mirror(config):
    first, second = config.manifest_urls[:2]
    http = FakeHTTP(json_bodies={second: MANIFEST}, failures={first: 5})
    manager = VersionManager(http, config)

    assert await manager.release_versions() == ["1.20.4", "1.19.2"]
    assert (config.versions_dir / "version_manifest.json").exists()
    assert [url for _, url in http.calls] == [first, second]


@pytest.mark.asyncio
async def test_manifest_all_mirrors_failing(config, http):
    with pytest.raises(NetworkFailure, match="all mirrors"):
        await VersionManager(http, config).fetch_manifest()


@pytest.mark.asyncio
async def test_three_level_chain_resolves_identically(config, http):
    pack = {
        "id": "modpack-1.20.4",
        "inheritsFrom": CHILD["id"],
        "arguments": {"game": ["--quickPlayPath", "qp.json"], "jvm": ["-Dpack=1"]},
        "libraries": [{"name": "net.fabricmc:fabric-loader:0.15.3", "url": "https://maven.fabricmc.net/"}],
    }
    seed = VersionManager(http, config)
    write_json(seed.descriptor_path("1.20.4"), PARENT)
    write_json(seed.descriptor_path(CHILD["id"]), CHILD)
    write_json(seed.descriptor_path(pack["id"]), pack)

    first = await VersionManager(http, config).resolve_complete(pack["id"])
    second = await VersionManager(http, config).resolve_complete(pack["id"])

    assert first.to_json() == second.to_json()
    assert [a.tokens()[0] for a in first.arguments.jvm] == [
        "-Dparent=1", "-DFabricMcEmu= net.minecraft.client.main.Main ", "-Dpack=1"]
    assert [lib.name for lib in first.libraries] == [
        "org.ow2.asm:asm:9.6", "com.google.guava:guava:31.0", "net.fabricmc:fabric-loader:0.15.3"]
    assert first.assetIndex.id == "12"
    assert http.calls == []


@pytest.mark.asyncio
async def test_manifest_skips_mirror_serving_html(tmp_path):
    async def maintenance(request):
        return web.Response(text="<html><body>Down for maintenance</body></html>", content_type="text/html")

    async def manifest(request):
        return web.json_response(MANIFEST)

    app = web.Application()
    app.router.add_get("/bad", maintenance)
    app.router.add_get("/good", manifest)

    async with test_utils.TestServer(app) as server:
        config = LauncherConfig(root_dir=tmp_path / "root", backoff_seconds=0,
                                manifest_urls=[str(server.make_url("/bad")), str(server.make_url("/good"))])
        async with AsyncHTTPClient() as http:
            found = await VersionManager(http, config).fetch_manifest()

    assert [v.id for v in found.versions] == ["1.20.4", "24w01a", "1.19.2"]
