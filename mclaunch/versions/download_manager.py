"""Download manager for assets and libraries."""

import asyncio
import hashlib
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import aiofiles

from ..config import LauncherConfig
from ..errors import DownloadError, HashMismatch, LauncherError
from ..progress import ProgressReporter, Stage
from .models import ArtifactTask, AssetIndex, DownloadArtifact, Library, VersionDescriptor
from .rules import natives_arch_bits, os_name, rules_allow

log = logging.getLogger(__name__)


def extract_natives(archive: Path, natives_dir: Path) -> int:
    """Unpack a native bundle flat into ``natives_dir``, skipping META-INF."""
    natives_dir.mkdir(parents=True, exist_ok=True)
    count = 0
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if info.is_dir() or info.filename.startswith("META-INF"):
                continue
            name = Path(info.filename).name
            if not name:
                continue
            with zf.open(info) as src:
                (natives_dir / name).write_bytes(src.read())
            count += 1
    return count


class _BatchState:
    def __init__(self, total: int):
        self.total = total
        self.done = 0
        self.error: Optional[BaseException] = None


class DownloadManager:
    """Fetch-verify-retry engine shared by every acquisition step."""

    def __init__(self, http, config: LauncherConfig):
        self.http = http
        self.config = config

    @staticmethod
    async def verify_sha1(file_path: Path, expected_sha1: str) -> bool:
        """Verify SHA1 hash of a file."""
        hash_sha1 = hashlib.sha1()
        async with aiofiles.open(file_path, 'rb') as f:
            while chunk := await f.read(65536):
                hash_sha1.update(chunk)
        return hash_sha1.hexdigest() == expected_sha1.lower()

    async def download_file(self, url: str, dest: Path, expected_sha1: Optional[str] = None) -> bool:
        """Make ``dest`` hold the verified content of ``url``.

        Returns False when the existing file was reused without touching the
        network, True after a fresh download.
        """
        if dest.exists():
            if expected_sha1:
                if await self.verify_sha1(dest, expected_sha1):
                    return False
                log.info("Cached %s failed verification, downloading again", dest.name)
            elif self.config.trust_unhashed_files:
                return False

        attempts = max(1, self.config.download_attempts)
        last_error: Optional[DownloadError] = None
        for attempt in range(1, attempts + 1):
            try:
                try:
                    await self.http.download(url, dest)
                except OSError as e:
                    raise DownloadError(f"Could not write {dest.name} from {url}: {e}", url) from e
                if expected_sha1 and not await self.verify_sha1(dest, expected_sha1):
                    raise HashMismatch(f"SHA1 mismatch for {dest.name} from {url}", url)
                return True
            except DownloadError as e:
                last_error = e
                dest.unlink(missing_ok=True)
                log.warning("Attempt %d/%d for %s failed: %s", attempt, attempts, url, e)
                if attempt < attempts:
                    await asyncio.sleep(self.config.backoff_seconds * attempt)

        raise last_error

    async def run_batch(
        self,
        tasks: Iterable[ArtifactTask],
        workers: int,
        progress: Optional[ProgressReporter] = None,
        stage: Stage = Stage.LIBRARIES,
        low: int = 0,
        high: int = 100,
        progress_every: int = 1,
        natives_dir: Optional[Path] = None,
        label: str = "files",
    ) -> int:
        """Acquire ``tasks`` with a fixed pool of workers.

        The first failure stops further dequeues and is raised once every
        worker has finished its current transfer. Returns the number of tasks
        completed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        for task in tasks:
            queue.put_nowait(task)
        state = _BatchState(queue.qsize())
        if state.total == 0:
            return 0

        loop = asyncio.get_running_loop()
        every = max(1, progress_every)

        async def worker() -> None:
            while state.error is None:
                try:
                    task = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    await self.download_file(task.url, task.dest, task.sha1)
                    if task.native and natives_dir is not None:
                        await loop.run_in_executor(None, extract_natives, task.dest, natives_dir)
                except (LauncherError, OSError, zipfile.BadZipFile) as e:
                    if state.error is None:
                        state.error = e
                    return
                state.done += 1
                if progress is not None and (state.done % every == 0 or state.done == state.total):
                    percent = low + state.done * (high - low) // state.total
                    progress.emit(stage, percent, f"{label} {state.done}/{state.total}")

        log.debug("Starting batch of %d %s with %d workers", state.total, label, workers)
        await asyncio.gather(*(worker() for _ in range(max(1, min(workers, state.total)))))

        if state.error is not None:
            if isinstance(state.error, LauncherError):
                raise state.error
            raise DownloadError(f"Failed to store {label}: {state.error}") from state.error
        return state.done

    # Task planning

    def library_tasks(
        self,
        descriptor: VersionDescriptor,
        libraries_dir: Path,
        default_repo: Optional[str] = None,
        features: Optional[Dict[str, bool]] = None,
    ) -> Tuple[List[ArtifactTask], List[Path]]:
        """Plan library downloads for the current platform.

        Returns the tasks and the classpath entries, in descriptor order.
        Artifacts without a URL (written by a loader installer) are kept on
        the classpath but never queued.
        """
        default_repo = default_repo or self.config.libraries_url
        tasks: List[ArtifactTask] = []
        classpath: List[Path] = []
        seen = set()

        def add(task: ArtifactTask) -> None:
            if task.dest not in seen:
                seen.add(task.dest)
                tasks.append(task)

        for library in descriptor.libraries:
            if not rules_allow(library.rules, features):
                continue
            coordinate = library.coordinate
            downloads = library.downloads

            artifact = downloads.artifact if downloads else None
            if artifact is not None:
                path = artifact.path or (coordinate.path if coordinate else None)
                if path is None:
                    log.warning("Skipping library %s without a storage path", library.name)
                else:
                    dest = libraries_dir / path
                    if dest not in classpath:
                        classpath.append(dest)
                    if artifact.url:
                        add(ArtifactTask(url=artifact.url, dest=dest, sha1=artifact.sha1,
                                         native=bool(coordinate and coordinate.is_native)))
            elif coordinate is not None and not library.natives:
                dest = libraries_dir / coordinate.path
                if dest not in classpath:
                    classpath.append(dest)
                extra = library.model_extra or {}
                add(ArtifactTask(url=coordinate.url(library.url or default_repo), dest=dest,
                                 sha1=extra.get("sha1")))

            native = self._native_task(library, libraries_dir, default_repo)
            if native is not None:
                add(native)

        return tasks, classpath

    def _native_task(self, library: Library, libraries_dir: Path, default_repo: str) -> Optional[ArtifactTask]:
        if not library.natives:
            return None
        template = library.natives.get(os_name())
        if not template:
            return None
        classifier = template.replace("${arch}", natives_arch_bits())

        classifiers = library.downloads.classifiers if library.downloads else None
        artifact: Optional[DownloadArtifact] = (classifiers or {}).get(classifier)
        coordinate = library.coordinate
        if artifact is not None and artifact.url:
            path = artifact.path or (coordinate.with_classifier(classifier).path if coordinate else None)
            if path is None:
                return None
            return ArtifactTask(url=artifact.url, dest=libraries_dir / path, sha1=artifact.sha1, native=True)
        if coordinate is None:
            return None
        native = coordinate.with_classifier(classifier)
        return ArtifactTask(url=native.url(library.url or default_repo),
                            dest=libraries_dir / native.path, native=True)

    def asset_tasks(self, index: AssetIndex, assets_dir: Path) -> List[ArtifactTask]:
        """One task per distinct object hash."""
        tasks = []
        seen = set()
        base = self.config.resources_url.rstrip("/")
        for obj in index.objects.values():
            if obj.hash in seen:
                continue
            seen.add(obj.hash)
            prefix = obj.hash[:2]
            tasks.append(ArtifactTask(
                url=f"{base}/{prefix}/{obj.hash}",
                dest=assets_dir / "objects" / prefix / obj.hash,
                sha1=obj.hash,
            ))
        return tasks
