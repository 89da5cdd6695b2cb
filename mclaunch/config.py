"""Launcher configuration."""

import os
import platform
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

APP_DIR_NAME = "mclaunch"

MANIFEST_URLS = [
    "https://piston-meta.mojang.com/mc/game/version_manifest.json",
    "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json",
    "https://launchermeta.mojang.com/mc/game/version_manifest.json",
    "https://bmclapi2.bangbang93.com/mc/game/version_manifest.json",
]


def default_root_dir() -> Path:
    """Per-platform application data directory."""
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home()))
    elif system == "Darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


class LauncherConfig(BaseModel):
    root_dir: Path = Field(default_factory=default_root_dir)

    library_workers: int = 10
    asset_workers: int = 24
    mod_workers: int = 10
    library_progress_every: int = 10
    asset_progress_every: int = 50
    mod_progress_every: int = 5

    download_attempts: int = 3
    backoff_seconds: float = 0.5
    # Existing files without a known hash are reused as-is.
    trust_unhashed_files: bool = True
    fs_error_policy: Literal["warn", "fail"] = "warn"

    user_agent: str = "mclaunch/0.1"
    launcher_name: str = "mclaunch"
    launcher_version: str = "0.1"

    manifest_urls: List[str] = Field(default_factory=lambda: list(MANIFEST_URLS))
    libraries_url: str = "https://libraries.minecraft.net/"
    resources_url: str = "https://resources.download.minecraft.net"
    fabric_meta_url: str = "https://meta.fabricmc.net/v2"
    fabric_maven_url: str = "https://maven.fabricmc.net/"
    forge_maven_urls: List[str] = Field(default_factory=lambda: [
        "https://maven.minecraftforge.net/",
        "https://maven.creeperhost.net/",
    ])
    forge_promotions_urls: List[str] = Field(default_factory=lambda: [
        "https://files.minecraftforge.net/net/minecraftforge/forge/promotions_slim.json",
        "https://files.minecraftforge.net/net/minecraftforge/forge/promotions.json",
    ])
    adoptium_api_url: str = "https://api.adoptium.net/v3"

    @classmethod
    def from_env(cls, **overrides) -> "LauncherConfig":
        """Build a config, letting MCLAUNCH_* environment variables override defaults."""
        values = {}
        root = os.environ.get("MCLAUNCH_ROOT")
        if root:
            values["root_dir"] = Path(root)
        policy = os.environ.get("MCLAUNCH_FS_ERRORS")
        if policy in ("warn", "fail"):
            values["fs_error_policy"] = policy
        trust = os.environ.get("MCLAUNCH_TRUST_UNHASHED")
        if trust is not None:
            values["trust_unhashed_files"] = trust.lower() not in ("0", "false", "no")
        for key in ("library_workers", "asset_workers", "mod_workers"):
            raw = os.environ.get(f"MCLAUNCH_{key.upper()}")
            if raw and raw.isdigit():
                values[key] = int(raw)
        values.update(overrides)
        return cls(**values)

    # Shared directory layout

    @property
    def assets_dir(self) -> Path:
        return self.root_dir / "assets"

    @property
    def libraries_dir(self) -> Path:
        return self.root_dir / "libraries"

    @property
    def versions_dir(self) -> Path:
        return self.root_dir / "versions"

    @property
    def java_dir(self) -> Path:
        return self.root_dir / "java"

    @property
    def forge_installers_dir(self) -> Path:
        return self.root_dir / "forge" / "installers"


class LaunchOptions(BaseModel):
    """Per-launch settings taken from the instance record."""

    ram_mb: int = 4096
    width: int = 854
    height: int = 480
    mods: List[str] = Field(default_factory=list)
    modpack_url: Optional[str] = None
    force_update: bool = False
