"""Argument substitution, filtering and args-file output."""

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..auth.profile import AuthProfile
from ..versions.models import ArgumentToken, ComplexArgument, VersionDescriptor
from ..versions.rules import classpath_separator, rules_allow

log = logging.getLogger(__name__)

G1_FLAGS = [
    "-XX:+UseG1GC",
    "-XX:MaxGCPauseMillis=120",
    "-XX:G1HeapRegionSize=8M",
    "-XX:G1NewSizePercent=30",
    "-XX:G1MaxNewSizePercent=40",
    "-XX:G1ReservePercent=20",
    "-XX:G1HeapWastePercent=5",
    "-XX:G1MixedGCCountTarget=4",
    "-XX:InitiatingHeapOccupancyPercent=15",
    "-XX:G1MixedGCLiveThresholdPercent=90",
    "-XX:G1RSetUpdatingPauseTimePercent=5",
    "-XX:ReservedCodeCacheSize=768M",
    "-XX:InitialCodeCacheSize=128M",
    "-XX:+ParallelRefProcEnabled",
    "-XX:+DisableExplicitGC",
    "-XX:+AlwaysPreTouch",
    "-XX:+UseStringDeduplication",
    "-XX:+UseCompressedOops",
    "-XX:+UseCompressedClassPointers",
    "-XX:+PerfDisableSharedMem",
    "-Djava.net.preferIPv4Stack=true",
    "-Dfile.encoding=UTF-8",
    "-Djava.awt.headless=false",
]

ADD_OPENS_FLAGS = [
    "--add-opens", "java.base/java.util=ALL-UNNAMED",
    "--add-opens", "java.base/java.lang=ALL-UNNAMED",
    "--add-opens", "java.base/java.lang.reflect=ALL-UNNAMED",
    "--add-opens", "java.base/java.lang.invoke=ALL-UNNAMED",
    "--add-opens", "java.base/java.text=ALL-UNNAMED",
    "--add-opens", "java.desktop/java.awt.font=ALL-UNNAMED",
    "--add-opens", "java.base/java.nio=ALL-UNNAMED",
    "--add-opens", "java.base/sun.nio.ch=ALL-UNNAMED",
    "--add-opens", "java.base/java.util.jar=ALL-UNNAMED",
    "--add-exports", "java.base/sun.security.util=ALL-UNNAMED",
    "--add-exports", "jdk.naming.dns/com.sun.jndi.dns=java.naming",
]

FORGE_IGNORE_LIST = (
    "-DignoreList=asm-commons,asm-util,asm-analysis,asm-tree,asm,javassist,"
    "commons-compress,commons-io,httpclient,httpcore,netty-handler,netty-buffer,"
    "netty-common,netty-codec,netty-transport,netty-resolver,fastutil,jna,oshi-core,"
    "gson,guava,slf4j-api,log4j-api,log4j-core,org.jetbrains.annotations,annotations,"
    "kotlin-stdlib,kotlin-stdlib-jdk8,kotlin-stdlib-jdk7,mixin,sponge-mixin,"
    "commons-lang3,commons-logging,jakarta.activation,jakarta.xml.bind"
)

FML_FLAGS = [
    "-Dfml.ignoreInvalidMinecraftCertificates=true",
    "-Dfml.ignorePatchDiscrepancies=true",
    "-Dfml.earlyprogresswindow=false",
    "-Dfml.earlyWindowControl=false",
    "-Dforge.logging.console.level=info",
]

NATIVE_ACCESS_FLAG = "--enable-native-access=ALL-UNNAMED"

# Game arguments used by the vanilla and Fabric launches in place of the
# descriptor's own list.
LEGACY_GAME_TEMPLATE = [
    "--username", "${auth_player_name}",
    "--version", "${version_name}",
    "--gameDir", "${game_directory}",
    "--assetsDir", "${assets_root}",
    "--assetIndex", "${assets_index_name}",
    "--uuid", "${auth_uuid}",
    "--accessToken", "${auth_access_token}",
    "--userType", "${user_type}",
    "--versionType", "${version_type}",
]

RESOLUTION_PLACEHOLDERS = ("${resolution_width}", "${resolution_height}")


def memory_flags(ram_mb: int) -> List[str]:
    return [f"-Xms{max(512, ram_mb // 4)}M", f"-Xmx{ram_mb}M"]


def default_jvm_flags(ram_mb: int) -> List[str]:
    """Memory and G1 tuning shared by every loader."""
    return ["-XX:+UnlockExperimentalVMOptions"] + memory_flags(ram_mb) + G1_FLAGS


def user_type(profile: AuthProfile) -> str:
    return "legacy" if profile.is_offline else "msa"


def substitution_context(
    profile: AuthProfile,
    version_id: str,
    game_dir: Path,
    assets_dir: Path,
    asset_index: str,
    natives_dir: Path,
    libraries_dir: Path,
    width: int = 854,
    height: int = 480,
    version_type: str = "release",
    launcher_name: str = "mclaunch",
    launcher_version: str = "0.1",
    classpath: str = "",
) -> Dict[str, str]:
    """Values for every ``${name}`` placeholder a descriptor may use."""
    return {
        "auth_player_name": profile.name,
        "version_name": version_id,
        "game_directory": str(game_dir),
        "assets_root": str(assets_dir),
        "game_assets": str(assets_dir),
        "assets_index_name": asset_index,
        "auth_uuid": profile.id,
        "auth_access_token": profile.access_token,
        "auth_session": profile.access_token,
        "user_type": user_type(profile),
        "version_type": version_type,
        "natives_directory": str(natives_dir),
        "launcher_name": launcher_name,
        "launcher_version": launcher_version,
        "library_directory": str(libraries_dir),
        "classpath_separator": classpath_separator(),
        "classpath": classpath,
        "resolution_width": str(width),
        "resolution_height": str(height),
        "user_properties": "{}",
    }


def substitute(token: str, context: Dict[str, str]) -> str:
    if "${" not in token:
        return token
    for key, value in context.items():
        token = token.replace("${" + key + "}", value)
    return token


def iter_tokens(tokens: Optional[Iterable[ArgumentToken]],
                features: Optional[Dict[str, bool]] = None) -> Iterator[str]:
    """Flatten argument tokens in order, dropping rule-guarded ones that do not apply."""
    for token in tokens or []:
        if isinstance(token, ComplexArgument) and not rules_allow(token.rules, features):
            continue
        yield from token.tokens()


def declared_jvm_arguments(
    descriptor: VersionDescriptor,
    context: Dict[str, str],
    features: Optional[Dict[str, bool]] = None,
) -> Tuple[List[str], List[str]]:
    """Split the descriptor's JVM tokens into plain flags and module-path entries.

    Classpath options are removed since the launcher supplies its own, as is
    any ``-DignoreList``.
    """
    flags: List[str] = []
    module_path: List[str] = []
    tokens = iter(iter_tokens(descriptor.arguments.jvm if descriptor.arguments else None, features))
    separator = classpath_separator()
    for token in tokens:
        if token in ("-cp", "-classpath"):
            next(tokens, None)
            continue
        if token in ("-p", "--module-path"):
            value = next(tokens, None)
            if value:
                module_path.extend(p for p in substitute(value, context).split(separator) if p)
            continue
        if token in ("${classpath}", "${module_path}"):
            continue
        if token.startswith(("--add-exports", "--add-opens")) and "cpw.mods." in token:
            continue
        value = substitute(token, context)
        if value.startswith("-DignoreList="):
            continue
        flags.append(value)
    return flags, module_path


def filter_game_tokens(tokens: Iterable[str], width: int, height: int) -> List[str]:
    """Drop demo mode and any declared window size, then pin the launch resolution."""
    result = ["--width", str(width), "--height", str(height)]
    tokens = iter(tokens)
    for token in tokens:
        if token == "--demo" or token in RESOLUTION_PLACEHOLDERS:
            continue
        if token in ("--width", "--height"):
            next(tokens, None)
            continue
        result.append(token)
    return result


def descriptor_game_tokens(descriptor: VersionDescriptor,
                           features: Optional[Dict[str, bool]] = None) -> List[str]:
    """Structured game arguments, or the legacy flat string split on whitespace."""
    if descriptor.arguments is not None and descriptor.arguments.game:
        return list(iter_tokens(descriptor.arguments.game, features))
    if descriptor.minecraftArguments:
        return descriptor.minecraftArguments.split()
    return []


def game_arguments(tokens: Iterable[str], context: Dict[str, str], width: int, height: int) -> List[str]:
    return [substitute(token, context) for token in filter_game_tokens(tokens, width, height)]


def escape_arg(arg: str) -> str:
    """Quote a token for an args file when it holds whitespace; escape embedded quotes."""
    escaped = arg.replace('"', '\\"')
    if " " in arg or "\t" in arg:
        return f'"{escaped}"'
    return escaped


def write_args_file(path: Path, tokens: Sequence[str]) -> str:
    """Write one escaped token per line; returns the file content."""
    content = "".join(escape_arg(token) + "\n" for token in tokens)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return content


def write_debug_dump(path: Path, fields: Dict[str, str], args_content: str,
                     library_checks: Sequence[str] = ()) -> None:
    lines = [f"{key}={value}" for key, value in fields.items()]
    lines += ["ARGS_CONTENT_BEGIN", args_content.rstrip("\n"), "ARGS_CONTENT_END"]
    lines += ["LIB_CHECKS_BEGIN", *library_checks, "LIB_CHECKS_END"]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        log.warning("Could not write launch debug dump %s: %s", path, e)
