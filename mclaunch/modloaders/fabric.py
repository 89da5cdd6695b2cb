"""Fabric loader support."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..core.arguments import ADD_OPENS_FLAGS, NATIVE_ACCESS_FLAG
from ..errors import DownloadError, LoaderInstallFailure, NetworkFailure, RequiredLibraryMissing
from ..progress import Stage
from ..versions.maven import MavenCoordinate
from ..versions.models import VersionDescriptor
from .base import LoaderAdapter

log = logging.getLogger(__name__)

JOPT_SIMPLE = MavenCoordinate("net.sf.jopt-simple", "jopt-simple", "5.0.4")


def stable_loader_version(entries: list) -> Optional[str]:
    """First loader marked stable (a missing flag counts as stable)."""
    for entry in entries or []:
        loader = entry.get("loader") or {}
        if loader.get("stable", True) and loader.get("version"):
            return loader["version"]
    return None


def _has_jar(classpath: Sequence[Path], needle: str) -> bool:
    return any(needle in p.name.lower() for p in classpath)


class FabricLoader(LoaderAdapter):
    """Fabric profile merged over the vanilla descriptor it inherits from."""

    name = "fabric"

    @property
    def default_repo(self) -> str:
        return self.config.fabric_maven_url

    async def loader_version(self) -> str:
        url = f"{self.config.fabric_meta_url}/versions/loader/{self.mc_version}"
        try:
            entries = await self.context.http.get(url)
        except NetworkFailure as e:
            raise LoaderInstallFailure(f"Failed to fetch fabric loader list: {e}") from e
        version = stable_loader_version(entries if isinstance(entries, list) else [])
        if version is None:
            raise LoaderInstallFailure(f"No fabric loader version found for {self.mc_version}")
        return version

    async def fetch_profile(self, loader_version: str) -> str:
        """Download the generated profile and cache it as a version descriptor; returns its id."""
        url = f"{self.config.fabric_meta_url}/versions/loader/{self.mc_version}/{loader_version}/profile/json"
        try:
            text = await self.context.http.get_text(url)
        except NetworkFailure as e:
            raise LoaderInstallFailure(f"Failed to fetch fabric profile: {e}") from e
        profile = VersionDescriptor.from_json(text, url)
        path = self.context.versions.descriptor_path(profile.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return profile.id

    async def resolve_descriptor(self) -> VersionDescriptor:
        self.progress.emit(Stage.FABRIC, 15, "Resolving Fabric profile")
        loader_version = await self.loader_version()
        profile_id = f"fabric-loader-{loader_version}-{self.mc_version}"
        if not self.context.versions.descriptor_path(profile_id).exists():
            profile_id = await self.fetch_profile(loader_version)
        log.info("Using Fabric loader %s (%s)", loader_version, profile_id)
        return await self.context.versions.resolve_complete(profile_id)

    async def prepare_paths(self) -> None:
        if _has_jar(self.library_classpath, "jopt-simple"):
            return
        dest = self.config.libraries_dir / JOPT_SIMPLE.path
        try:
            await self.context.downloads.download_file(JOPT_SIMPLE.url(self.config.libraries_url), dest)
        except DownloadError as e:
            log.warning("Could not fetch jopt-simple fallback: %s", e)
            return
        self.library_classpath.append(dest)

    def assemble_paths(self, declared_module_path: Sequence[str]) -> Tuple[List[Path], List[Path]]:
        module_path, classpath = super().assemble_paths(declared_module_path)
        if not _has_jar(classpath, "fabric-loader"):
            raise RequiredLibraryMissing(
                "fabric-loader is missing from the classpath; verify the instance to repair it")
        return module_path, classpath

    def extra_jvm_flags(self, required: int, java_major: int) -> List[str]:
        flags = list(ADD_OPENS_FLAGS) if required >= 16 else []
        if java_major >= 21:
            flags.append(NATIVE_ACCESS_FLAG)
        return flags
