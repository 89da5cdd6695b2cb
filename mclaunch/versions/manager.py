"""Version manifest and metadata manager."""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import ValidationError

from ..config import LauncherConfig
from ..errors import CyclicDescriptor, NetworkFailure, VersionNotFound
from .models import Arguments, Library, VersionDescriptor, VersionManifest

log = logging.getLogger(__name__)

# Filled from the parent only when the child leaves them unset.
INHERITED_FIELDS = (
    "assetIndex",
    "assets",
    "downloads",
    "javaVersion",
    "minecraftArguments",
    "logging",
    "mainClass",
    "type",
)


def dedupe_libraries(libraries: Iterable[Library]) -> List[Library]:
    """Collapse libraries sharing an identity.

    The last entry seen for an identity wins, placed where the identity first
    appeared.
    """
    order = []
    chosen = {}
    for library in libraries:
        key = library.identity
        if key not in chosen:
            order.append(key)
        chosen[key] = library
    return [chosen[key] for key in order]


def _concat(parent: Optional[list], child: Optional[list]) -> Optional[list]:
    if parent is None and child is None:
        return None
    return list(parent or []) + list(child or [])


def merge_descriptors(child: VersionDescriptor, parent: VersionDescriptor) -> VersionDescriptor:
    """Merge ``child`` over ``parent`` without touching either input."""
    merged = child.model_copy(deep=True)
    for field in INHERITED_FIELDS:
        if getattr(merged, field) is None:
            value = getattr(parent, field)
            setattr(merged, field, value.model_copy(deep=True) if hasattr(value, "model_copy") else value)

    if parent.arguments is not None or child.arguments is not None:
        parent_args = parent.arguments or Arguments()
        child_args = child.arguments or Arguments()
        merged.arguments = Arguments(
            game=_concat(parent_args.game, child_args.game),
            jvm=_concat(parent_args.jvm, child_args.jvm),
        )

    merged.libraries = dedupe_libraries(
        [lib.model_copy(deep=True) for lib in parent.libraries] + merged.libraries)
    return merged


class VersionManager:
    """Catalog lookup and inheritance-aware descriptor resolution."""

    def __init__(self, http, config: LauncherConfig):
        self.http = http
        self.config = config
        self.cache_dir = config.versions_dir
        self._manifest: Optional[VersionManifest] = None

    def descriptor_path(self, version_id: str) -> Path:
        return self.cache_dir / version_id / f"{version_id}.json"

    def snapshot_path(self, version_id: str) -> Path:
        return self.cache_dir / version_id / "version.json"

    async def fetch_manifest(self, refresh: bool = False) -> VersionManifest:
        """Fetch the launcher version manifest, trying each mirror in order."""
        if self._manifest is not None and not refresh:
            return self._manifest

        last_error = "no manifest mirrors configured"
        for url in self.config.manifest_urls:
            try:
                data = await self.http.get(url)
                manifest = VersionManifest.model_validate(data)
            except NetworkFailure as e:
                last_error = str(e)
                log.warning("Manifest mirror %s failed: %s", url, e)
                continue
            except ValidationError as e:
                last_error = f"Malformed manifest from {url}: {e}"
                log.warning("Manifest mirror %s returned an unusable document", url)
                continue

            log.info("Loaded version manifest from %s (%d versions)", url, len(manifest.versions))
            self._manifest = manifest
            self._write_manifest_cache(data)
            return manifest

        raise NetworkFailure(f"Failed to fetch version manifest from all mirrors. Last error: {last_error}")

    def _write_manifest_cache(self, data) -> None:
        path = self.cache_dir / "version_manifest.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as e:
            log.warning("Could not cache version manifest at %s: %s", path, e)

    async def release_versions(self, limit: Optional[int] = None) -> List[str]:
        """Release ids, newest first."""
        manifest = await self.fetch_manifest()
        releases = sorted(
            (v for v in manifest.versions if v.type == "release"),
            key=lambda v: v.releaseTime,
            reverse=True,
        )
        ids = [v.id for v in releases]
        return ids[:limit] if limit else ids

    async def resolve(self, version_id: str) -> VersionDescriptor:
        """Load one descriptor from the local cache, fetching it if absent."""
        cache_path = self.descriptor_path(version_id)
        if cache_path.exists():
            log.debug("Using cached descriptor %s", cache_path)
            return VersionDescriptor.from_file(cache_path)

        manifest = await self.fetch_manifest()
        info = manifest.find(version_id)
        if info is None:
            raise VersionNotFound(f"Version {version_id} not found in manifest")

        log.info("Downloading descriptor for %s", version_id)
        text = await self.http.get_text(info.url)
        descriptor = VersionDescriptor.from_json(text, info.url)

        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(text, encoding="utf-8")
        return descriptor

    async def resolve_complete(self, version_id: str, _chain: Optional[List[str]] = None) -> VersionDescriptor:
        """Resolve ``version_id`` and merge its whole ``inheritsFrom`` chain."""
        chain = list(_chain or [])
        if version_id in chain:
            raise CyclicDescriptor(chain + [version_id])
        chain.append(version_id)

        descriptor = await self.resolve(version_id)
        if not descriptor.inheritsFrom:
            return descriptor
        parent = await self.resolve_complete(descriptor.inheritsFrom, chain)
        return merge_descriptors(descriptor, parent)

    def save_snapshot(self, descriptor: VersionDescriptor) -> Path:
        path = self.snapshot_path(descriptor.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(descriptor.to_json(), encoding="utf-8")
        return path
