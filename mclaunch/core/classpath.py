"""Classpath and module-path partitioning for Forge launches."""

from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple, Union

from ..versions.maven import MavenCoordinate
from ..versions.models import Library
from ..versions.rules import os_name

BOOTSTRAP_LAUNCHER = ("cpw.mods", "bootstraplauncher")
FML_LOADER = ("net.minecraftforge", "fmlloader")
CORE_MODULES = (
    ("cpw.mods", "securejarhandler"),
    ("cpw.mods", "modlauncher"),
    BOOTSTRAP_LAUNCHER,
)

BOOTSTRAP_MAIN_CLASS = "cpw.mods.bootstraplauncher.BootstrapLauncher"

# File-name substrings of jars that break the module layer when also on the classpath.
CLASSPATH_BLACKLIST = (
    "asm", "asm-commons", "asm-tree", "asm-util", "asm-analysis",
    "java-objc-bridge", "jna", "oshi-core",
    "sponge-mixin", "mixin", "jakarta.activation", "jakarta.xml.bind",
)


def normalize_path(path: Union[str, Path]) -> str:
    text = str(path).replace("\\", "/")
    return text.lower() if os_name() == "windows" else text


def build_library_index(libraries: Iterable[Library], libraries_dir: Path) -> Dict[str, MavenCoordinate]:
    """Map each library's on-disk location to its coordinate."""
    index: Dict[str, MavenCoordinate] = {}
    for library in libraries:
        coordinate = library.coordinate
        if coordinate is None:
            continue
        index[normalize_path(libraries_dir / coordinate.path)] = coordinate
        artifact = library.downloads.artifact if library.downloads else None
        if artifact is not None and artifact.path:
            index[normalize_path(libraries_dir / artifact.path)] = coordinate
    return index


def find_coordinate(libraries: Iterable[Library], key: Tuple[str, str]) -> Optional[MavenCoordinate]:
    """First non-classified library with the given (group, artifact)."""
    for library in libraries:
        coordinate = library.coordinate
        if coordinate is not None and coordinate.module_key == key and not coordinate.classifier:
            return coordinate
    return None


def scan_library_jar(libraries_dir: Path, key: Tuple[str, str]) -> Optional[Path]:
    """Look for any installed version of ``key`` below ``libraries_dir``."""
    group, artifact = key
    base = libraries_dir.joinpath(*group.split("."), artifact)
    if not base.is_dir():
        return None
    for version_dir in sorted(p for p in base.iterdir() if p.is_dir()):
        for jar in sorted(version_dir.glob(f"{artifact}-*.jar")):
            return jar
    return None


def library_location(libraries: Sequence[Library], libraries_dir: Path, key: Tuple[str, str]) -> Optional[Path]:
    coordinate = find_coordinate(libraries, key)
    if coordinate is not None:
        return libraries_dir / coordinate.path
    return scan_library_jar(libraries_dir, key)


class ForgePaths(NamedTuple):
    module_path: List[Path]
    classpath: List[Path]
    module_keys: Set[Tuple[str, str]]


def partition_forge_paths(
    libraries: Sequence[Library],
    libraries_dir: Path,
    declared_module_path: Iterable[Union[str, Path]],
    classpath_entries: Iterable[Path],
) -> ForgePaths:
    """Split artifacts between the module path and the classpath.

    The module path keeps the first occurrence of each (group, artifact) and
    always carries the core bootstrap modules. The classpath drops anything
    whose identity is already a module, blacklisted jars and native bundles.
    The bootstrap launcher is the one artifact present on both.
    """
    index = build_library_index(libraries, libraries_dir)

    module_path: List[Path] = []
    module_keys: Set[Tuple[str, str]] = set()
    module_norms: Set[str] = set()

    def add_module(path: Path) -> None:
        norm = normalize_path(path)
        if norm in module_norms:
            return
        coordinate = index.get(norm)
        if coordinate is not None:
            if coordinate.module_key in module_keys:
                return
            module_keys.add(coordinate.module_key)
        module_norms.add(norm)
        module_path.append(path)

    for entry in declared_module_path:
        if entry:
            add_module(Path(entry))

    for key in CORE_MODULES:
        if key in module_keys:
            continue
        coordinate = find_coordinate(libraries, key)
        if coordinate is not None:
            add_module(libraries_dir / coordinate.path)
            module_keys.add(key)

    classpath: List[Path] = []
    classpath_norms: Set[str] = set()

    def add_classpath(path: Path) -> None:
        norm = normalize_path(path)
        if norm not in classpath_norms:
            classpath_norms.add(norm)
            classpath.append(path)

    for entry in classpath_entries:
        norm = normalize_path(entry)
        coordinate = index.get(norm)
        name = entry.name.lower()
        if "bootstraplauncher" in name or (coordinate and coordinate.module_key == BOOTSTRAP_LAUNCHER):
            add_classpath(entry)
            continue
        if norm in module_norms:
            continue
        if coordinate is not None and coordinate.module_key in module_keys:
            continue
        if any(blocked in name for blocked in CLASSPATH_BLACKLIST):
            continue
        if coordinate is not None and coordinate.is_native:
            continue
        add_classpath(entry)

    bootstrap = library_location(libraries, libraries_dir, BOOTSTRAP_LAUNCHER)
    if bootstrap is not None:
        add_classpath(bootstrap)
    if FML_LOADER not in module_keys:
        fmlloader = library_location(libraries, libraries_dir, FML_LOADER)
        if fmlloader is not None:
            add_classpath(fmlloader)

    return ForgePaths(module_path, classpath, module_keys)
