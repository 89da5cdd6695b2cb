"""Data models for Minecraft versions."""

import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    model_serializer,
    model_validator,
)

from ..errors import MalformedDescriptor, MissingRequiredField
from .maven import MavenCoordinate


class OsRule(BaseModel):
    name: Optional[str] = None
    version: Optional[str] = None
    arch: Optional[str] = None


class Rule(BaseModel):
    action: str = "allow"
    os: Optional[OsRule] = None
    features: Optional[Dict[str, bool]] = None


class DownloadArtifact(BaseModel):
    url: str = ""
    sha1: Optional[str] = None
    size: Optional[int] = None
    path: Optional[str] = None


class VersionDownloads(BaseModel):
    model_config = ConfigDict(extra="allow")

    client: Optional[DownloadArtifact] = None
    server: Optional[DownloadArtifact] = None


class LibraryDownloads(BaseModel):
    artifact: Optional[DownloadArtifact] = None
    classifiers: Optional[Dict[str, DownloadArtifact]] = None


class Library(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    downloads: Optional[LibraryDownloads] = None
    url: Optional[str] = None
    natives: Optional[Dict[str, str]] = None
    rules: Optional[List[Rule]] = None
    extract: Optional[Dict[str, Any]] = None

    @property
    def coordinate(self) -> Optional[MavenCoordinate]:
        return MavenCoordinate.parse(self.name)

    @property
    def identity(self):
        """Dedup key; unparseable names fall back to the raw name."""
        coordinate = self.coordinate
        return coordinate.identity if coordinate else self.name


class AssetIndexRef(BaseModel):
    id: str
    sha1: Optional[str] = None
    size: Optional[int] = None
    totalSize: Optional[int] = None
    url: str


class JavaVersion(BaseModel):
    component: Optional[str] = None
    majorVersion: int


class LogFile(BaseModel):
    id: str
    sha1: Optional[str] = None
    size: Optional[int] = None
    url: Optional[str] = None


class ClientLogging(BaseModel):
    argument: Optional[str] = None
    file: Optional[LogFile] = None
    type: Optional[str] = None


class Logging(BaseModel):
    client: Optional[ClientLogging] = None


class SimpleArgument(BaseModel):
    """Bare string token."""

    value: str

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"value": data}
        return data

    @model_serializer
    def _to_string(self) -> str:
        return self.value

    def tokens(self) -> List[str]:
        return [self.value]


class ComplexArgument(BaseModel):
    """Rule-guarded token or token group."""

    rules: List[Rule] = Field(default_factory=list)
    value: Union[str, List[str]]

    def tokens(self) -> List[str]:
        if isinstance(self.value, str):
            return [self.value]
        return list(self.value)


def _argument_kind(raw: Any) -> str:
    if isinstance(raw, (str, SimpleArgument)):
        return "simple"
    return "complex"


ArgumentToken = Annotated[
    Union[
        Annotated[SimpleArgument, Tag("simple")],
        Annotated[ComplexArgument, Tag("complex")],
    ],
    Discriminator(_argument_kind),
]


class Arguments(BaseModel):
    game: Optional[List[ArgumentToken]] = None
    jvm: Optional[List[ArgumentToken]] = None


class VersionDescriptor(BaseModel):
    """Parsed version json; unknown keys survive a save/load cycle."""

    model_config = ConfigDict(extra="allow")

    id: str
    inheritsFrom: Optional[str] = None
    type: Optional[str] = None
    assetIndex: Optional[AssetIndexRef] = None
    assets: Optional[str] = None
    downloads: Optional[VersionDownloads] = None
    libraries: List[Library] = Field(default_factory=list)
    mainClass: Optional[str] = None
    minecraftArguments: Optional[str] = None
    arguments: Optional[Arguments] = None
    javaVersion: Optional[JavaVersion] = None
    logging: Optional[Logging] = None

    @classmethod
    def from_json(cls, text: str, source: str = "") -> "VersionDescriptor":
        try:
            return cls.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            where = f" ({source})" if source else ""
            raise MalformedDescriptor(f"Failed to parse version descriptor{where}: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> "VersionDescriptor":
        return cls.from_json(path.read_text(encoding="utf-8"), str(path))

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True)

    @property
    def asset_index_id(self) -> str:
        if self.assetIndex is not None:
            return self.assetIndex.id
        return self.assets or "legacy"

    @property
    def client_download(self) -> Optional[DownloadArtifact]:
        return self.downloads.client if self.downloads else None

    def ensure_complete(self) -> "VersionDescriptor":
        """Fail unless client download, main class and asset index are all present."""
        if self.client_download is None or not self.client_download.url:
            raise MissingRequiredField(
                f"No client download information found for {self.id} (missing downloads section)")
        if not self.mainClass:
            raise MissingRequiredField(f"No main class declared for {self.id}")
        if self.assetIndex is None:
            raise MissingRequiredField(f"No asset index found for {self.id}")
        return self


class AssetObject(BaseModel):
    hash: str
    size: int = 0


class AssetIndex(BaseModel):
    objects: Dict[str, AssetObject] = Field(default_factory=dict)
    virtual: bool = False
    map_to_resources: bool = False


class VersionInfo(BaseModel):
    id: str
    type: str
    url: str
    time: datetime
    releaseTime: datetime
    sha1: Optional[str] = None
    complianceLevel: int = 0


class VersionManifest(BaseModel):
    latest: Dict[str, str]
    versions: List[VersionInfo]

    def find(self, version_id: str) -> Optional[VersionInfo]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None


class ArtifactTask(BaseModel):
    """One file to acquire."""

    url: str
    dest: Path
    sha1: Optional[str] = None
    native: bool = False


class ResolvedCommand(BaseModel):
    executable: str
    args: List[str]
    cwd: Path
    args_file: Path
    arguments: List[str] = Field(default_factory=list)
    classpath: List[str] = Field(default_factory=list)
    module_path: List[str] = Field(default_factory=list)
    main_class: str = ""
    java_major: int = 0

    @property
    def argv(self) -> List[str]:
        return [self.executable] + self.args
