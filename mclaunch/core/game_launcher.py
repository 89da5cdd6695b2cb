"""Game launcher for Minecraft."""

import asyncio
import logging
import os
import platform
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional

from ..auth.profile import AuthProfile
from ..config import LauncherConfig, LaunchOptions
from ..errors import LauncherError
from ..modloaders.base import LoaderContext
from ..modloaders.modloader_manager import ModLoaderManager
from ..progress import ProgressReporter, ProgressSink, Stage
from ..runtime.java_manager import JavaManager
from ..versions.download_manager import DownloadManager
from ..versions.manager import VersionManager
from ..versions.models import ResolvedCommand
from .instance import InstanceLayout
from .modpack import download_mods, sync_modpack

log = logging.getLogger(__name__)

CRASH_TAIL_LINES = 10


def tail_lines(path: Path, count: int = CRASH_TAIL_LINES) -> str:
    """Last ``count`` lines of a text file, or "" when it cannot be read."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return "\n".join(line.rstrip("\n") for line in deque(f, maxlen=count))
    except OSError:
        return ""


class LaunchHandle:
    """A running game process and the thread watching it."""

    def __init__(self, process: subprocess.Popen, layout: InstanceLayout, progress: ProgressReporter,
                 log_files=()):
        self.process = process
        self.layout = layout
        self.progress = progress
        self._log_files = list(log_files)
        self._thread = threading.Thread(
            target=self._monitor, name=f"game-{layout.instance_id}", daemon=True)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def start(self) -> "LaunchHandle":
        self._thread.start()
        return self

    def _monitor(self) -> None:
        try:
            code = self.process.wait()
        except (OSError, subprocess.SubprocessError) as e:
            self.progress.emit(Stage.ERROR, 100, f"Error monitoring process: {e}")
            return
        finally:
            for f in self._log_files:
                f.close()

        if code != 0:
            details = tail_lines(self.layout.stderr_log) or tail_lines(self.layout.stdout_log)
            message = f"Game exited with error (code {code})"
            if details:
                message = f"{message}. Details:\n{details}"
            log.error("Instance %s crashed with exit code %d", self.layout.instance_id, code)
            self.progress.emit(Stage.CRASHED, 100, message)
        else:
            log.info("Instance %s closed", self.layout.instance_id)
            self.progress.emit(Stage.CLOSED, 100, "Game closed")

    def cancel(self) -> None:
        """Terminate the game if it is still running."""
        if self.process.poll() is None:
            log.info("Terminating instance %s", self.layout.instance_id)
            self.process.terminate()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the monitor has reported the exit; returns the exit code."""
        self._thread.join(timeout)
        return self.process.returncode


class GameLauncher:
    """Prepares instances and spawns the game.

    Concurrent prepares of the same instance are serialised.
    """

    def __init__(self, config: Optional[LauncherConfig] = None, http=None,
                 sink: Optional[ProgressSink] = None,
                 java: Optional[JavaManager] = None):
        self.config = config or LauncherConfig.from_env()
        self.http = http
        self.sink = sink
        self.versions = VersionManager(http, self.config)
        self.downloads = DownloadManager(http, self.config)
        self.java = java or JavaManager(self.config, http)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, layout: InstanceLayout) -> asyncio.Lock:
        key = str(layout.root.resolve())
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def reporter(self, layout: InstanceLayout) -> ProgressReporter:
        return ProgressReporter(self.sink, layout.instance_id)

    async def prepare(
        self,
        instance_dir: Path,
        version: str,
        profile: AuthProfile,
        loader: Optional[str] = None,
        options: Optional[LaunchOptions] = None,
        name: Optional[str] = None,
    ) -> ResolvedCommand:
        """Install everything the instance needs and build its launch command."""
        layout = InstanceLayout(instance_dir, self.config)
        progress = self.reporter(layout)
        options = options or LaunchOptions()

        async with self._lock_for(layout):
            try:
                progress.emit(Stage.STARTING, 0, "Starting launch")
                layout.scaffold(name=name, version=version, loader=ModLoaderManager.normalize(loader))
                context = LoaderContext(
                    self.config, self.http, layout, profile, options, progress,
                    versions=self.versions, downloads=self.downloads, java=self.java,
                )
                adapter = ModLoaderManager.adapter_for(loader, context, version)
                await adapter.install()

                if options.modpack_url:
                    await sync_modpack(self.downloads, layout, options.modpack_url,
                                       force_update=options.force_update, progress=progress)
                if options.mods:
                    await download_mods(self.downloads, layout, options.mods, progress)
                    progress.emit(Stage.MODS, 90, "Mods ready")

                command = await adapter.build_command()
                progress.emit(Stage.READY, 95, "Preparation complete")
                return command
            except LauncherError as e:
                log.error("Prepare of %s failed: %s", layout.instance_id, e)
                progress.error(str(e))
                raise

    def spawn(self, command: ResolvedCommand, instance_dir: Path) -> LaunchHandle:
        """Start the game process with output redirected to the instance logs."""
        layout = InstanceLayout(instance_dir, self.config)
        progress = self.reporter(layout)
        layout.logs_dir.mkdir(parents=True, exist_ok=True)

        stdout = open(layout.stdout_log, "wb")
        stderr = open(layout.stderr_log, "wb")
        popen_args = {
            "args": command.argv,
            "cwd": command.cwd,
            "env": os.environ.copy(),
            "stdout": stdout,
            "stderr": stderr,
            "stdin": subprocess.DEVNULL,
        }
        if platform.system() == "Windows":
            popen_args["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            process = subprocess.Popen(**popen_args)
        except OSError as e:
            stdout.close()
            stderr.close()
            message = f"Failed to spawn process: {e}"
            progress.error(message)
            raise LauncherError(message) from e

        log.info("Launched %s (pid %d)", layout.instance_id, process.pid)
        progress.emit(Stage.LAUNCHED, 100, "Game started")
        return LaunchHandle(process, layout, progress, [stdout, stderr]).start()

    async def launch(
        self,
        instance_dir: Path,
        version: str,
        profile: AuthProfile,
        loader: Optional[str] = None,
        options: Optional[LaunchOptions] = None,
        name: Optional[str] = None,
    ) -> LaunchHandle:
        command = await self.prepare(instance_dir, version, profile, loader, options, name)
        return self.spawn(command, instance_dir)


def describe_command(command: ResolvedCommand) -> List[str]:
    """Human readable summary lines for a resolved command."""
    return [
        f"java:       {command.executable} (Java {command.java_major})",
        f"main class: {command.main_class}",
        f"workdir:    {command.cwd}",
        f"args file:  {command.args_file}",
        f"classpath:  {len(command.classpath)} entries",
        f"modules:    {len(command.module_path)} entries",
    ]
