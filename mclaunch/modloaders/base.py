"""Shared install and command assembly flow for every loader."""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..auth.profile import AuthProfile
from ..config import LauncherConfig, LaunchOptions
from ..core.arguments import (
    LEGACY_GAME_TEMPLATE,
    declared_jvm_arguments,
    default_jvm_flags,
    game_arguments,
    substitution_context,
    write_args_file,
    write_debug_dump,
)
from ..core.instance import InstanceLayout
from ..errors import LauncherError, MalformedDescriptor, RequiredLibraryMissing
from ..progress import ProgressReporter, Stage
from ..runtime.java_manager import JavaManager
from ..versions.download_manager import DownloadManager
from ..versions.manager import VersionManager
from ..versions.models import AssetIndex, ResolvedCommand, VersionDescriptor
from ..versions.rules import classpath_separator

log = logging.getLogger(__name__)


class LoaderState(str, Enum):
    NOT_INSTALLED = "not_installed"
    DOWNLOADING = "downloading"
    INSTALLED = "installed"
    COMMAND_BUILT = "command_built"


TRANSITIONS = {
    LoaderState.NOT_INSTALLED: {LoaderState.DOWNLOADING},
    LoaderState.DOWNLOADING: {LoaderState.INSTALLED, LoaderState.NOT_INSTALLED},
    LoaderState.INSTALLED: {LoaderState.COMMAND_BUILT, LoaderState.DOWNLOADING},
    LoaderState.COMMAND_BUILT: {LoaderState.DOWNLOADING},
}


class LoaderContext:
    """Collaborators shared by one prepare of one instance."""

    def __init__(
        self,
        config: LauncherConfig,
        http,
        layout: InstanceLayout,
        profile: AuthProfile,
        options: Optional[LaunchOptions] = None,
        progress: Optional[ProgressReporter] = None,
        versions: Optional[VersionManager] = None,
        downloads: Optional[DownloadManager] = None,
        java: Optional[JavaManager] = None,
    ):
        self.config = config
        self.http = http
        self.layout = layout
        self.profile = profile
        self.options = options or LaunchOptions()
        self.progress = progress or ProgressReporter(instance_id=layout.instance_id)
        self.versions = versions or VersionManager(http, config)
        self.downloads = downloads or DownloadManager(http, config)
        self.java = java or JavaManager(config, http)


class LoaderAdapter:
    """Vanilla behaviour; loaders override the hooks they change.

    ``install`` resolves the descriptor and acquires every artifact,
    ``build_command`` turns the result into a ``ResolvedCommand``.
    """

    name = "vanilla"
    default_repo: Optional[str] = None

    def __init__(self, context: LoaderContext, mc_version: str):
        self.context = context
        self.mc_version = mc_version
        self.features: Dict[str, bool] = {}
        self.descriptor: Optional[VersionDescriptor] = None
        self.library_classpath: List[Path] = []
        self._state = LoaderState.NOT_INSTALLED

    @property
    def state(self) -> LoaderState:
        return self._state

    def _advance(self, state: LoaderState) -> None:
        if state not in TRANSITIONS[self._state]:
            raise LauncherError(f"{self.name} loader cannot go from {self._state.value} to {state.value}")
        self._state = state

    @property
    def config(self) -> LauncherConfig:
        return self.context.config

    @property
    def layout(self) -> InstanceLayout:
        return self.context.layout

    @property
    def progress(self) -> ProgressReporter:
        return self.context.progress

    # Install

    async def resolve_descriptor(self) -> VersionDescriptor:
        return await self.context.versions.resolve_complete(self.mc_version)

    async def install(self) -> VersionDescriptor:
        """Resolve the descriptor and acquire client, assets and libraries."""
        self._advance(LoaderState.DOWNLOADING)
        try:
            descriptor = (await self.resolve_descriptor()).ensure_complete()
            self.progress.emit(Stage.VERSION, 20, f"Resolved {descriptor.id}")
            self.context.versions.save_snapshot(descriptor)
            await self.acquire(descriptor)
        except Exception:
            self._state = LoaderState.NOT_INSTALLED
            raise
        self.descriptor = descriptor
        self._advance(LoaderState.INSTALLED)
        return descriptor

    async def acquire(self, descriptor: VersionDescriptor) -> None:
        self.library_classpath = await self.acquire_libraries(descriptor)
        await self.acquire_client(descriptor)
        await self.acquire_assets(descriptor)
        await self.acquire_log_config(descriptor)

    async def acquire_libraries(self, descriptor: VersionDescriptor) -> List[Path]:
        downloads = self.context.downloads
        tasks, classpath = downloads.library_tasks(
            descriptor, self.config.libraries_dir, self.default_repo, self.features)
        self.progress.emit(Stage.LIBRARIES, 20, "Downloading libraries")
        await downloads.run_batch(
            tasks,
            self.config.library_workers,
            progress=self.progress,
            stage=Stage.LIBRARIES,
            low=20,
            high=50,
            progress_every=self.config.library_progress_every,
            natives_dir=self.layout.natives_dir,
            label="libraries",
        )
        return classpath

    async def acquire_client(self, descriptor: VersionDescriptor) -> Path:
        client = descriptor.client_download
        self.progress.emit(Stage.CLIENT, 55, "Downloading client")
        await self.context.downloads.download_file(client.url, self.layout.client_jar, client.sha1)
        return self.layout.client_jar

    async def acquire_assets(self, descriptor: VersionDescriptor) -> None:
        ref = descriptor.assetIndex
        index_path = self.config.assets_dir / "indexes" / f"{ref.id}.json"
        downloads = self.context.downloads
        await downloads.download_file(ref.url, index_path, ref.sha1)
        try:
            index = AssetIndex.model_validate_json(index_path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise MalformedDescriptor(f"Asset index {ref.id} is malformed: {e}") from e

        self.progress.emit(Stage.ASSETS, 60, "Downloading assets")
        await downloads.run_batch(
            downloads.asset_tasks(index, self.config.assets_dir),
            self.config.asset_workers,
            progress=self.progress,
            stage=Stage.ASSETS,
            low=60,
            high=75,
            progress_every=self.config.asset_progress_every,
            label="assets",
        )

    async def acquire_log_config(self, descriptor: VersionDescriptor) -> Optional[Path]:
        client = descriptor.logging.client if descriptor.logging else None
        if client is None or client.file is None or not client.file.url:
            return None
        path = self.config.assets_dir / "log_configs" / client.file.id
        await self.context.downloads.download_file(client.file.url, path, client.file.sha1)
        return path

    # Command assembly

    def required_java(self) -> int:
        descriptor = self.descriptor
        if descriptor is not None and descriptor.javaVersion is not None:
            return descriptor.javaVersion.majorVersion
        return self.context.java.required_major(self.mc_version)

    def assemble_paths(self, declared_module_path: Sequence[str]) -> Tuple[List[Path], List[Path]]:
        """Module path and classpath; vanilla puts the client jar first and uses no modules."""
        if not self.layout.client_jar.exists():
            raise RequiredLibraryMissing("client.jar missing in instance")
        classpath = [self.layout.client_jar]
        classpath += [p for p in self.library_classpath if p.exists() and p not in classpath]
        return [], classpath

    def main_class(self) -> str:
        return self.descriptor.mainClass

    def game_tokens(self) -> List[str]:
        return list(LEGACY_GAME_TEMPLATE)

    def natives_flags(self) -> List[str]:
        natives = str(self.layout.natives_dir)
        return [f"-Dorg.lwjgl.librarypath={natives}", f"-Djava.library.path={natives}"]

    def extra_jvm_flags(self, required: int, java_major: int) -> List[str]:
        return []

    def log_config_flags(self) -> List[str]:
        client = self.descriptor.logging.client if self.descriptor.logging else None
        if client is None or client.file is None or not client.argument:
            return []
        path = self.config.assets_dir / "log_configs" / client.file.id
        if not path.exists():
            return []
        return [client.argument.replace("${path}", str(path))]

    def library_checks(self) -> List[str]:
        return []

    async def prepare_paths(self) -> None:
        """Hook run before path assembly, e.g. to fetch missing core jars."""

    async def build_command(self) -> ResolvedCommand:
        """Write the args file and debug dump and return the process invocation."""
        if self._state is not LoaderState.INSTALLED:
            raise LauncherError(f"{self.name} loader is {self._state.value}; install it before building a command")
        descriptor = self.descriptor
        layout = self.layout
        options = self.context.options
        config = self.config

        required = self.required_java()
        java = await self.context.java.ensure(required, self.progress)
        java_major = self.context.java.java_major(java) or required

        variables = substitution_context(
            self.context.profile,
            descriptor.id,
            layout.minecraft_dir,
            config.assets_dir,
            descriptor.asset_index_id,
            layout.natives_dir,
            config.libraries_dir,
            width=options.width,
            height=options.height,
            version_type=descriptor.type or "release",
            launcher_name=config.launcher_name,
            launcher_version=config.launcher_version,
        )
        declared_flags, declared_module_path = declared_jvm_arguments(descriptor, variables, self.features)
        await self.prepare_paths()
        module_path, classpath = self.assemble_paths(declared_module_path)
        main_class = self.main_class()

        separator = classpath_separator()
        module_path_str = separator.join(str(p) for p in module_path)
        classpath_str = separator.join(str(p) for p in classpath)
        file_tokens = list(declared_flags)
        if module_path:
            file_tokens += ["-p", module_path_str]
        file_tokens += ["-cp", classpath_str, main_class]
        file_tokens += game_arguments(self.game_tokens(), variables, options.width, options.height)
        args_content = write_args_file(layout.args_file, file_tokens)

        jvm_flags = default_jvm_flags(options.ram_mb)
        jvm_flags += self.natives_flags()
        jvm_flags += [
            f"-Dminecraft.launcher.brand={config.launcher_name}",
            f"-Dminecraft.launcher.version={config.launcher_version}",
        ]
        jvm_flags += self.extra_jvm_flags(required, java_major)
        jvm_flags += self.log_config_flags()

        write_debug_dump(
            layout.debug_dump,
            {
                "JAVA_PATH": java,
                "JAVA_MAJOR": str(java_major),
                "JAVA_REQUIRED": str(required),
                "WORK_DIR": str(layout.minecraft_dir),
                "NATIVES_DIR": str(layout.natives_dir),
                "MAIN_CLASS": main_class,
                "MODULE_PATH": module_path_str,
                "CLASSPATH": classpath_str,
                "JVM_FLAGS": " ".join(jvm_flags),
                "ARGS_FILE": str(layout.args_file),
            },
            args_content,
            self.library_checks(),
        )

        command = ResolvedCommand(
            executable=java,
            args=jvm_flags + [f"@{layout.args_file}"],
            cwd=layout.minecraft_dir,
            args_file=layout.args_file,
            arguments=file_tokens,
            classpath=[str(p) for p in classpath],
            module_path=[str(p) for p in module_path],
            main_class=main_class,
            java_major=java_major,
        )
        self._advance(LoaderState.COMMAND_BUILT)
        log.info("Built %s command for %s with Java %d", self.name, descriptor.id, java_major)
        return command
