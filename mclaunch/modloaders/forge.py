"""Forge loader support.

The official installer is run once per (game version, build); afterwards the
installed descriptor is merged with its vanilla parent and launched through
the bootstrap launcher with a split module path and classpath.
"""

import asyncio
import functools
import logging
import re
import subprocess
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.arguments import (
    ADD_OPENS_FLAGS,
    FML_FLAGS,
    FORGE_IGNORE_LIST,
    NATIVE_ACCESS_FLAG,
    descriptor_game_tokens,
)
from ..core.classpath import (
    BOOTSTRAP_LAUNCHER,
    BOOTSTRAP_MAIN_CLASS,
    CORE_MODULES,
    FML_LOADER,
    find_coordinate,
    library_location,
    partition_forge_paths,
)
from ..errors import DownloadError, LoaderInstallFailure, NetworkFailure
from ..progress import Stage
from ..versions.maven import ensure_trailing_slash
from ..versions.models import VersionDescriptor
from .base import LoaderAdapter

log = logging.getLogger(__name__)

# Builds known to work when every remote lookup fails.
KNOWN_BUILDS = {"1.21.11": "61.0.8"}

LISTING_HREF_RE = re.compile(r'href="([^"]+)"')
INSTALLER_TIMEOUT = 1800
TAIL_CHARS = 2000


def promoted_build(promos: dict, mc_version: str) -> Optional[str]:
    """Recommended, then latest, then any promotion for ``mc_version``."""
    for key in (f"{mc_version}-recommended", f"{mc_version}-latest"):
        if promos.get(key):
            return str(promos[key])
    for key, value in promos.items():
        if key.startswith(mc_version) and value:
            return str(value)
    return None


def _build_key(build: str) -> Tuple[int, ...]:
    return tuple(int(part) if part.isdigit() else 0 for part in build.split("."))


def highest_build(names: Iterable[str], mc_version: str) -> Optional[str]:
    """Highest numeric build among ``<mc>-<build>`` names."""
    prefix = f"{mc_version}-"
    builds = []
    for name in names:
        if name.startswith(prefix):
            build = name.split("-")[1]
            if build:
                builds.append(build)
    if not builds:
        return None
    return max(builds, key=_build_key)


def metadata_versions(text: str) -> List[str]:
    """``<version>`` values of a maven-metadata.xml document."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        log.debug("Unparseable maven metadata: %s", e)
        return []
    return [node.text.strip() for node in root.iter("version") if node.text]


def listing_versions(html: str) -> List[str]:
    """Directory names linked from a maven directory listing."""
    return [href.strip("/").split("/")[-1] for href in LISTING_HREF_RE.findall(html)]


def candidate_ids(mc_version: str, build: str) -> List[str]:
    return [f"{mc_version}-forge-{build}", f"forge-{mc_version}-{build}"]


def installed_forge_id(versions_dir: Path, mc_version: str, build: str) -> Optional[str]:
    """Id of an already installed Forge version matching ``mc_version`` and ``build``."""
    for candidate in candidate_ids(mc_version, build):
        if (versions_dir / candidate / f"{candidate}.json").exists():
            return candidate
    if not versions_dir.is_dir():
        return None
    for entry in sorted(versions_dir.iterdir()):
        name = entry.name
        if ("forge" in name.lower() and mc_version in name and build in name
                and (entry / f"{name}.json").exists()):
            return name
    return None


def _tail(text: str) -> str:
    return text[-TAIL_CHARS:] if text else ""


class ForgeLoader(LoaderAdapter):
    """Forge: installer driven, module-path aware."""

    name = "forge"

    def __init__(self, context, mc_version: str):
        super().__init__(context, mc_version)
        self.build: Optional[str] = None
        self.forge_id: Optional[str] = None

    @property
    def default_repo(self) -> str:
        return ensure_trailing_slash(self.config.forge_maven_urls[0])

    # Build discovery

    async def recommended_build(self) -> str:
        """Pick a Forge build for the game version, trying each source in turn."""
        http = self.context.http
        mc = self.mc_version
        last_error = "no sources tried"

        for url in self.config.forge_promotions_urls:
            try:
                data = await http.get(url)
            except NetworkFailure as e:
                last_error = str(e)
                continue
            build = promoted_build((data or {}).get("promos") or {}, mc)
            if build:
                return build
            last_error = f"no promotion for {mc} in {url}"

        for base in self.config.forge_maven_urls:
            url = f"{ensure_trailing_slash(base)}net/minecraftforge/forge/maven-metadata.xml"
            try:
                build = highest_build(metadata_versions(await http.get_text(url)), mc)
            except NetworkFailure as e:
                last_error = str(e)
                continue
            if build:
                return build
            last_error = f"no {mc} build in {url}"

        for base in self.config.forge_maven_urls:
            url = f"{ensure_trailing_slash(base)}net/minecraftforge/forge/"
            try:
                build = highest_build(listing_versions(await http.get_text(url)), mc)
            except NetworkFailure as e:
                last_error = str(e)
                continue
            if build:
                return build
            last_error = f"no {mc} build listed at {url}"

        if mc in KNOWN_BUILDS:
            log.warning("Falling back to known Forge build %s for %s", KNOWN_BUILDS[mc], mc)
            return KNOWN_BUILDS[mc]
        raise LoaderInstallFailure(f"No forge version found for Minecraft {mc}. Last error: {last_error}")

    # Installer

    def installer_path(self, build: str) -> Path:
        return self.config.forge_installers_dir / f"forge-{self.mc_version}-{build}-installer.jar"

    async def download_installer(self, build: str) -> Path:
        path = self.installer_path(build)
        path.unlink(missing_ok=True)
        name = path.name
        last_error: Optional[DownloadError] = None
        for base in self.config.forge_maven_urls:
            url = f"{ensure_trailing_slash(base)}net/minecraftforge/forge/{self.mc_version}-{build}/{name}"
            try:
                await self.context.downloads.download_file(url, path)
                return path
            except DownloadError as e:
                log.warning("Forge installer download from %s failed: %s", url, e)
                last_error = e
        raise LoaderInstallFailure(f"Failed to download Forge installer {name}: {last_error}")

    def _seed_launcher_profiles(self) -> None:
        profiles = self.config.root_dir / "launcher_profiles.json"
        if profiles.exists():
            return
        profiles.parent.mkdir(parents=True, exist_ok=True)
        profiles.write_text('{"profiles": {}, "selectedUser": {}}', encoding="utf-8")

    async def run_installer(self, java: str, installer: Path, build: str) -> str:
        """Run the installer in client mode until one invocation shape produces a version."""
        root = str(self.config.root_dir)
        versions_dir = self.config.versions_dir
        shapes = [
            ["--installClient"],
            ["--installClient", root],
            ["--installClient", "--target", root],
        ]
        loop = asyncio.get_running_loop()
        stdout = stderr = ""
        for shape in shapes:
            cmd = [java, "-jar", str(installer), *shape]
            log.info("Running Forge installer: %s", " ".join(cmd))
            try:
                result = await loop.run_in_executor(None, functools.partial(
                    subprocess.run, cmd, cwd=root, capture_output=True, text=True, timeout=INSTALLER_TIMEOUT))
            except (OSError, subprocess.SubprocessError) as e:
                stderr = str(e)
                log.warning("Forge installer could not run: %s", e)
                continue
            stdout, stderr = result.stdout or "", result.stderr or ""
            found = installed_forge_id(versions_dir, self.mc_version, build)
            if result.returncode == 0 or found:
                if found:
                    return found
                break
            log.warning("Forge installer exited with %d", result.returncode)

        found = installed_forge_id(versions_dir, self.mc_version, build)
        if found:
            return found
        if versions_dir.is_dir():
            for entry in sorted(versions_dir.iterdir()):
                if entry.name.startswith(self.mc_version) and "forge" in entry.name.lower():
                    return entry.name
        raise LoaderInstallFailure(
            f"Forge installer did not produce a version for {self.mc_version}-{build}.\n"
            f"stdout: {_tail(stdout)}\nstderr: {_tail(stderr)}")

    async def ensure_installed(self) -> str:
        """Return the installed Forge version id, running the installer if needed."""
        self.progress.emit(Stage.FORGE, 10, "Resolving Forge version")
        build = await self.recommended_build()
        self.build = build
        existing = installed_forge_id(self.config.versions_dir, self.mc_version, build)
        if existing:
            log.info("Forge %s already installed as %s", build, existing)
            return existing

        self.progress.emit(Stage.FORGE, 22, f"Downloading Forge {build} installer")
        installer = await self.download_installer(build)
        java = await self.context.java.ensure(self.context.java.required_major(self.mc_version), self.progress)
        self._seed_launcher_profiles()
        self.progress.emit(Stage.FORGE, 24, f"Installing Forge {build}")
        return await self.run_installer(java, installer, build)

    async def resolve_descriptor(self) -> VersionDescriptor:
        self.forge_id = await self.ensure_installed()
        return await self.context.versions.resolve_complete(self.forge_id)

    # Command assembly

    async def prepare_paths(self) -> None:
        """Fetch core modules the installer left out."""
        libraries = self.descriptor.libraries
        base = self.default_repo
        for key in (*CORE_MODULES, FML_LOADER):
            coordinate = find_coordinate(libraries, key)
            if coordinate is None:
                continue
            dest = self.config.libraries_dir / coordinate.path
            if dest.exists():
                continue
            try:
                await self.context.downloads.download_file(coordinate.url(base), dest)
            except DownloadError as e:
                log.warning("Could not fetch %s: %s", coordinate, e)

    def assemble_paths(self, declared_module_path: Sequence[str]) -> Tuple[List[Path], List[Path]]:
        entries = list(self.library_classpath)
        if self.layout.client_jar.exists():
            entries.insert(0, self.layout.client_jar)
        paths = partition_forge_paths(
            self.descriptor.libraries, self.config.libraries_dir, declared_module_path, entries)
        return paths.module_path, [p for p in paths.classpath if p.exists()]

    def main_class(self) -> str:
        bootstrap = library_location(self.descriptor.libraries, self.config.libraries_dir, BOOTSTRAP_LAUNCHER)
        if bootstrap is not None and bootstrap.exists():
            return BOOTSTRAP_MAIN_CLASS
        return self.descriptor.mainClass

    def game_tokens(self) -> List[str]:
        return descriptor_game_tokens(self.descriptor, self.features)

    def natives_flags(self) -> List[str]:
        return [f"-Djava.library.path={self.layout.natives_dir}"]

    def extra_jvm_flags(self, required: int, java_major: int) -> List[str]:
        flags = list(FML_FLAGS) + [FORGE_IGNORE_LIST] + list(ADD_OPENS_FLAGS)
        if java_major >= 21:
            flags.append(NATIVE_ACCESS_FLAG)
        return flags

    def library_checks(self) -> List[str]:
        checks = []
        for key in (BOOTSTRAP_LAUNCHER, ("cpw.mods", "modlauncher"), ("cpw.mods", "securejarhandler"), FML_LOADER):
            label = ":".join(key)
            coordinate = find_coordinate(self.descriptor.libraries, key)
            if coordinate is None:
                checks.append(f"{label} path=<not-found-in-version.json>")
                continue
            path = self.config.libraries_dir / coordinate.path
            size = path.stat().st_size if path.exists() else 0
            checks.append(f"{label} path={path} exists={path.exists()} size={size}")
        return checks
