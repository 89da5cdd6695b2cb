"""Forge module-path and classpath partitioning."""

from mclaunch.core.classpath import (
    BOOTSTRAP_LAUNCHER,
    build_library_index,
    library_location,
    normalize_path,
    partition_forge_paths,
)
from mclaunch.versions.models import Library

NAMES = [
    "cpw.mods:securejarhandler:2.1.10",
    "cpw.mods:modlauncher:10.0.9",
    "cpw.mods:bootstraplauncher:1.1.2",
    "org.ow2.asm:asm:9.5",
    "net.minecraftforge:fmlloader:1.20.1-47.2.0",
    "com.google.guava:guava:31.1-jre",
    "org.lwjgl:lwjgl:3.3.1:natives-linux",
    "net.minecraftforge:JarJarFileSystems:0.3.19",
    "net.java.dev.jna:jna:5.12.1",
]


def identities_of(paths, libraries, libraries_dir):
    index = build_library_index(libraries, libraries_dir)
    return {index[normalize_path(p)].module_key for p in paths if normalize_path(p) in index}


def _setup(tmp_path):
    libraries = [Library(name=name) for name in NAMES]
    libraries_dir = tmp_path / "libraries"
    paths = {lib.coordinate.artifact + (lib.coordinate.classifier or ""): libraries_dir / lib.coordinate.path
             for lib in libraries}
    return libraries, libraries_dir, paths


def test_partition(tmp_path):
    libraries, libraries_dir, paths = _setup(tmp_path)
    client = tmp_path / "minecraft" / "client.jar"
    declared = [str(paths["asm"]), str(paths["securejarhandler"]), str(paths["asm"]),
                str(paths["JarJarFileSystems"])]
    entries = [client] + [libraries_dir / lib.coordinate.path for lib in libraries]

    result = partition_forge_paths(libraries, libraries_dir, declared, entries)

    assert result.module_path == [
        paths["asm"], paths["securejarhandler"], paths["JarJarFileSystems"],
        paths["modlauncher"], paths["bootstraplauncher"],
    ]
    assert result.classpath == [client, paths["bootstraplauncher"], paths["fmlloader"], paths["guava"]]


def test_only_bootstrap_launcher_is_on_both_paths(tmp_path):
    libraries, libraries_dir, paths = _setup(tmp_path)
    entries = [libraries_dir / lib.coordinate.path for lib in libraries]

    result = partition_forge_paths(libraries, libraries_dir, [str(paths["asm"])], entries)

    shared = (identities_of(result.module_path, libraries, libraries_dir)
              & identities_of(result.classpath, libraries, libraries_dir))
    assert shared == {BOOTSTRAP_LAUNCHER}


def test_fmlloader_not_duplicated_when_declared_as_module(tmp_path):
    libraries, libraries_dir, paths = _setup(tmp_path)
    entries = [libraries_dir / lib.coordinate.path for lib in libraries]

    result = partition_forge_paths(libraries, libraries_dir, [str(paths["fmlloader"])], entries)

    assert paths["fmlloader"] in result.module_path
    assert paths["fmlloader"] not in result.classpath


def test_library_location_scans_disk_when_not_declared(tmp_path):
    libraries_dir = tmp_path / "libraries"
    jar = libraries_dir / "cpw/mods/bootstraplauncher/1.1.2/bootstraplauncher-1.1.2.jar"
    jar.parent.mkdir(parents=True)
    jar.write_bytes(b"")
    assert library_location([], libraries_dir, BOOTSTRAP_LAUNCHER) == jar
