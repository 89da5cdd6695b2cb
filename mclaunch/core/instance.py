"""Per-instance directory layout and scaffolding."""

import json
import logging
import shutil
from pathlib import Path
from typing import Optional

from ..config import LauncherConfig
from ..errors import ScaffoldError

log = logging.getLogger(__name__)

LOADER_COMPONENTS = {
    "forge": ("Forge", "net.minecraftforge"),
    "fabric": ("Fabric Loader", "net.fabricmc.fabric-loader"),
}


class InstanceLayout:
    """Paths for one instance.

    The game directory is ``<instance>/minecraft``; process logs and the
    MultiMC-style metadata live at the instance root.
    """

    def __init__(self, instance_dir: Path, config: LauncherConfig):
        self.root = Path(instance_dir)
        self.config = config
        self.minecraft_dir = self.root / "minecraft"
        self.mods_dir = self.minecraft_dir / "mods"
        self.resourcepacks_dir = self.minecraft_dir / "resourcepacks"
        self.saves_dir = self.minecraft_dir / "saves"
        self.game_logs_dir = self.minecraft_dir / "logs"
        self.natives_dir = self.minecraft_dir / "natives"
        self.coremods_dir = self.minecraft_dir / "coremods"
        self.server_resource_packs_dir = self.minecraft_dir / "server-resource-packs"
        self.client_jar = self.minecraft_dir / "client.jar"
        self.args_file = self.minecraft_dir / "args.txt"
        self.debug_dump = self.game_logs_dir / "launch-debug.txt"
        self.modpack_zip = self.minecraft_dir / "modpack.zip"
        self.logs_dir = self.root / "logs"
        self.stdout_log = self.logs_dir / "latest.log"
        self.stderr_log = self.logs_dir / "latest_err.log"
        self.instance_cfg = self.root / "instance.cfg"
        self.mmc_pack = self.root / "mmc-pack.json"

    @property
    def instance_id(self) -> str:
        return self.root.name

    def _tolerate(self, action: str, error: OSError) -> None:
        if self.config.fs_error_policy == "fail":
            raise ScaffoldError(f"Failed to {action}: {error}") from error
        log.warning("Failed to %s: %s", action, error)

    def _mkdir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._tolerate(f"create {path}", e)

    def _write_once(self, path: Path, content: str) -> None:
        if path.exists():
            return
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            self._tolerate(f"write {path}", e)

    def scaffold(self, name: Optional[str] = None, version: str = "", loader: Optional[str] = None,
                 notes: str = "") -> None:
        """Create the standard directories and metadata files.

        Existing metadata files are left untouched. ``coremods`` is removed on
        every call.
        """
        for path in (self.root, self.logs_dir, self.minecraft_dir, self.mods_dir,
                     self.resourcepacks_dir, self.saves_dir, self.game_logs_dir,
                     self.natives_dir, self.server_resource_packs_dir):
            self._mkdir(path)

        if self.coremods_dir.exists():
            try:
                shutil.rmtree(self.coremods_dir)
            except OSError as e:
                self._tolerate(f"remove {self.coremods_dir}", e)

        self._write_once(self.minecraft_dir / "options.txt", "")
        self._write_once(
            self.instance_cfg,
            f"InstanceType=OneSix\nname={name or self.instance_id}\nnotes={notes}\n",
        )
        self._write_once(self.mmc_pack, json.dumps(mmc_pack(version, loader), indent=2))


def mmc_pack(version: str, loader: Optional[str] = None) -> dict:
    components = [{
        "cachedName": "Minecraft",
        "cachedVersion": version,
        "important": True,
        "uid": "net.minecraft",
        "version": version,
    }]
    if loader in LOADER_COMPONENTS:
        cached_name, uid = LOADER_COMPONENTS[loader]
        components.append({
            "cachedName": cached_name,
            "cachedVersion": "latest",
            "uid": uid,
            "version": "latest",
        })
    return {"components": components, "formatVersion": 1}
