"""Java runtime manager for Minecraft."""

import asyncio
import logging
import os
import re
import shutil
import subprocess
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

from ..config import LauncherConfig
from ..errors import DownloadError, NetworkFailure, RuntimeNotFound
from ..progress import ProgressReporter, Stage
from ..versions.download_manager import DownloadManager
from ..versions.rules import os_arch, os_name

log = logging.getLogger(__name__)

VERSION_RE = re.compile(r'version "([^"]+)"')
ADOPTIUM_OS = {"windows": "windows", "osx": "mac", "linux": "linux"}
ADOPTIUM_ARCH = {"x64": "x64", "x86": "x86", "arm64": "aarch64"}


def required_major(version_id: str) -> int:
    """Java major a game version needs.

    <= 1.16 -> 8, 1.17 -> 16, 1.18 to 1.20.4 -> 17, 1.20.5 and later -> 21.
    Snapshots and other ids without a dotted minor fall back to 8.
    """
    parts = version_id.split(".")
    if len(parts) < 2:
        return 8
    minor = _leading_int(parts[1]) or 0
    if minor <= 16:
        return 8
    if minor == 17:
        return 16
    if minor <= 20:
        if minor == 20 and len(parts) > 2 and (_leading_int(parts[2]) or 0) >= 5:
            return 21
        return 17
    return 21


def _leading_int(text: str) -> Optional[int]:
    match = re.match(r"\d+", text)
    return int(match.group()) if match else None


def parse_java_version(output: str) -> Optional[int]:
    """Major version from ``java -version`` output (``1.8.0_311`` -> 8, ``17.0.1`` -> 17)."""
    match = VERSION_RE.search(output)
    if not match:
        return None
    version = match.group(1)
    if version.startswith("1."):
        return _leading_int(version[2:])
    return _leading_int(version)


def java_binaries(home: Path) -> List[Path]:
    """Candidate executables below a runtime home, in preference order."""
    names = ["java.exe", "javaw.exe"] if os_name() == "windows" else ["java"]
    # macOS archives nest the home under Contents/Home.
    bins = [home / "bin", home / "Contents" / "Home" / "bin"]
    return [b / name for b in bins for name in names]


def _strip_top(name: str) -> Optional[Path]:
    parts = [p for p in Path(name).parts if p not in ("", ".")]
    if len(parts) < 2 or ".." in parts:
        return None
    return Path(*parts[1:])


def extract_runtime(archive: Path, dest: Path) -> None:
    """Unpack a zip or tar.gz runtime into ``dest``, dropping the top-level directory."""
    dest.mkdir(parents=True, exist_ok=True)
    if zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                rel = _strip_top(info.filename)
                if rel is None:
                    continue
                out = dest / rel
                if info.is_dir():
                    out.mkdir(parents=True, exist_ok=True)
                    continue
                out.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(out, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                mode = info.external_attr >> 16
                if mode and os.name != "nt":
                    os.chmod(out, mode & 0o7777)
        return

    with tarfile.open(archive, "r:*") as tf:
        for member in tf.getmembers():
            rel = _strip_top(member.name)
            if rel is None:
                continue
            out = dest / rel
            if member.isdir():
                out.mkdir(parents=True, exist_ok=True)
            elif member.issym():
                out.parent.mkdir(parents=True, exist_ok=True)
                if not out.exists() and not out.is_symlink():
                    os.symlink(member.linkname, out)
            elif member.isfile():
                out.parent.mkdir(parents=True, exist_ok=True)
                src = tf.extractfile(member)
                with src, open(out, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                os.chmod(out, member.mode & 0o7777)


class JavaManager:
    """Finds or installs the Java runtime a game version needs."""

    def __init__(self, config: LauncherConfig, http=None):
        self.config = config
        self.http = http
        self.runtime_dir = config.java_dir
        self._system_majors: Dict[str, Optional[int]] = {}

    required_major = staticmethod(required_major)

    def system_java_major(self, binary: str = "java") -> Optional[int]:
        """Major version of ``binary`` or None when it cannot be run."""
        if binary in self._system_majors:
            return self._system_majors[binary]
        try:
            result = subprocess.run([binary, "-version"], capture_output=True, text=True, timeout=30)
            major = parse_java_version(result.stderr or result.stdout)
        except (OSError, subprocess.SubprocessError) as e:
            log.debug("Could not run %s -version: %s", binary, e)
            major = None
        self._system_majors[binary] = major
        return major

    def embedded_java(self, major: int) -> Optional[Path]:
        for candidate in java_binaries(self.runtime_dir / str(major)):
            if candidate.exists():
                return candidate
        return None

    def locate(self, major: int) -> Optional[str]:
        """System Java when its major matches exactly, else an installed runtime."""
        if self.system_java_major("java") == major:
            return shutil.which("java") or "java"
        embedded = self.embedded_java(major)
        return str(embedded) if embedded else None

    def java_major(self, executable: str) -> Optional[int]:
        return self.system_java_major(executable)

    async def _package_info(self, major: int) -> dict:
        os_id = ADOPTIUM_OS.get(os_name(), "linux")
        arch_id = ADOPTIUM_ARCH.get(os_arch(), "x64")
        url = (f"{self.config.adoptium_api_url}/assets/latest/{major}/hotspot"
               f"?architecture={arch_id}&os={os_id}&image_type=jre")

        attempts = max(1, self.config.download_attempts)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                releases = await self.http.get(url)
                package = releases[0]["binary"]["package"]
                return {"link": package["link"], "name": package.get("name") or "java.zip"}
            except NetworkFailure as e:
                last_error = e
            except (LookupError, TypeError) as e:
                raise RuntimeNotFound(major, f"unexpected runtime listing from {url}") from e
            log.warning("Java info attempt %d/%d failed: %s", attempt, attempts, last_error)
            if attempt < attempts:
                await asyncio.sleep(self.config.backoff_seconds * attempt)
        raise last_error

    async def acquire(self, major: int, progress: Optional[ProgressReporter] = None) -> str:
        """Download and unpack the latest JRE for ``major``."""
        embedded = self.embedded_java(major)
        if embedded:
            return str(embedded)
        if self.http is None:
            raise RuntimeNotFound(major, "no HTTP client available to download one")

        if progress:
            progress.emit(Stage.JAVA, 0, f"Downloading Java {major}")
        base_dir = self.runtime_dir / str(major)
        try:
            package = await self._package_info(major)
            archive = base_dir / package["name"]
            await DownloadManager(self.http, self.config).download_file(package["link"], archive)
        except DownloadError as e:
            if self.system_java_major("java") == major:
                log.warning("Java %d download failed (%s); using system java", major, e)
                return shutil.which("java") or "java"
            raise RuntimeNotFound(major, str(e)) from e

        if progress:
            progress.emit(Stage.JAVA, 50, f"Extracting Java {major}")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, extract_runtime, archive, base_dir)
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise RuntimeNotFound(major, f"could not extract {archive.name}: {e}") from e
        finally:
            archive.unlink(missing_ok=True)

        embedded = self.embedded_java(major)
        if embedded is None:
            raise RuntimeNotFound(major, "Java downloaded but executable not found in expected path")
        log.info("Installed Java %d at %s", major, embedded)
        if progress:
            progress.emit(Stage.JAVA, 100, f"Java {major} ready")
        return str(embedded)

    async def ensure(self, major: int, progress: Optional[ProgressReporter] = None) -> str:
        """Ensure Java is available, download if needed."""
        found = self.locate(major)
        if found:
            log.debug("Using Java %d at %s", major, found)
            return found
        return await self.acquire(major, progress)
