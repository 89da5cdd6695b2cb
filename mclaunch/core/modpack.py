"""Mod list and modpack archive synchronisation."""

import asyncio
import logging
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

from ..errors import DownloadError, LauncherError, NetworkFailure
from ..progress import ProgressReporter, Stage
from ..versions.download_manager import DownloadManager
from ..versions.models import ArtifactTask
from .instance import InstanceLayout

log = logging.getLogger(__name__)

CLEANED_DIRS = ("mods", "config", "scripts", "kubejs", "defaultconfigs")
SKIPPED_FILES = {"manifest.json", "modlist.html", "instance.cfg"}
OVERRIDES_PREFIX = "overrides/"


def mod_filename(url: str) -> str:
    name = unquote(PurePosixPath(urlparse(url).path).name)
    return name or "mod.jar"


def direct_download_url(url: str) -> str:
    """Turn a Dropbox share link into a direct download."""
    if "dropbox.com" not in url:
        return url
    if "?dl=0" in url:
        return url.replace("?dl=0", "?dl=1")
    if "?dl=" not in url:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}dl=1"
    return url


def has_installed_mods(mods_dir: Path) -> bool:
    return mods_dir.is_dir() and any(p.suffix == ".jar" for p in mods_dir.iterdir())


def extract_modpack(archive: Path, game_dir: Path) -> int:
    """Unpack a modpack archive into the game directory; returns files written.

    ``overrides/`` is stripped and jars at the archive root land in ``mods/``.
    """
    count = 0
    root = game_dir.resolve()
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            name = info.filename.replace("\\", "/")
            if name.startswith(OVERRIDES_PREFIX):
                name = name[len(OVERRIDES_PREFIX):]
            if not name or name in SKIPPED_FILES:
                continue
            if "/" not in name and name.endswith(".jar"):
                name = f"mods/{name}"
            target = (game_dir / name).resolve()
            if root not in target.parents:
                log.warning("Skipping modpack entry outside the game directory: %s", info.filename)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            count += 1
    return count


def clean_game_dirs(game_dir: Path, names: Iterable[str] = CLEANED_DIRS) -> None:
    for name in names:
        path = game_dir / name
        if path.is_dir():
            shutil.rmtree(path)
    (game_dir / "mods").mkdir(parents=True, exist_ok=True)


async def download_mods(
    downloads: DownloadManager,
    layout: InstanceLayout,
    urls: List[str],
    progress: Optional[ProgressReporter] = None,
) -> int:
    """Fetch each mod URL into the instance's mods directory."""
    if not urls:
        return 0
    config = downloads.config
    tasks = [ArtifactTask(url=url, dest=layout.mods_dir / mod_filename(url)) for url in urls]
    if progress:
        progress.emit(Stage.MODS, 80, f"Downloading {len(tasks)} mods")
    return await downloads.run_batch(
        tasks,
        config.mod_workers,
        progress=progress,
        stage=Stage.MODS,
        low=80,
        high=90,
        progress_every=config.mod_progress_every,
        label="mods",
    )


async def sync_modpack(
    downloads: DownloadManager,
    layout: InstanceLayout,
    url: str,
    force_update: bool = False,
    progress: Optional[ProgressReporter] = None,
) -> bool:
    """Bring the instance in line with the modpack archive at ``url``.

    Returns True when the archive was extracted.
    """
    progress = progress or ProgressReporter()
    url = direct_download_url(url)
    archive = layout.modpack_zip

    if archive.exists():
        try:
            remote_size = await downloads.http.head_length(url)
        except NetworkFailure as e:
            log.warning("Could not check modpack size: %s", e)
            remote_size = None
        if remote_size is not None and remote_size != archive.stat().st_size:
            log.info("Modpack changed (%d -> %d bytes)", archive.stat().st_size, remote_size)
            progress.emit(Stage.MODS, 5, "Modpack update detected")
            archive.unlink()

    fresh = False
    if not archive.exists():
        progress.emit(Stage.MODS, 80, "Downloading modpack")
        try:
            await downloads.download_file(url, archive)
        except DownloadError as e:
            raise DownloadError(f"Failed to download modpack: {e}", url) from e
        fresh = True

    if not (fresh or force_update or not has_installed_mods(layout.mods_dir)):
        progress.emit(Stage.MODS, 90, "Modpack verified")
        return False

    progress.emit(Stage.MODS, 81, "Syncing modpack")
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, clean_game_dirs, layout.minecraft_dir)
        progress.emit(Stage.MODS, 82, "Extracting modpack")
        count = await loop.run_in_executor(None, extract_modpack, archive, layout.minecraft_dir)
    except (OSError, zipfile.BadZipFile) as e:
        raise LauncherError(f"Failed to extract modpack: {e}") from e
    log.info("Extracted %d modpack files into %s", count, layout.minecraft_dir)
    progress.emit(Stage.MODS, 90, "Modpack verified")
    return True
