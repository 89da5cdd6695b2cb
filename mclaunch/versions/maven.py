"""Maven coordinate parsing and storage paths."""

from typing import NamedTuple, Optional, Tuple


class MavenCoordinate(NamedTuple):
    group: str
    artifact: str
    version: str
    classifier: Optional[str] = None
    ext: str = "jar"

    @classmethod
    def parse(cls, name: str) -> Optional["MavenCoordinate"]:
        """Parse ``group:artifact:version[:classifier][@ext]``; None when malformed."""
        main, _, ext = name.partition("@")
        items = main.split(":")
        if len(items) < 3:
            return None
        classifier = items[3] if len(items) > 3 else None
        return cls(items[0], items[1], items[2], classifier, ext or "jar")

    @property
    def identity(self) -> Tuple[str, str, str]:
        """Deduplication key: versions collapse, classifiers stay distinct."""
        return (self.group, self.artifact, self.classifier or "")

    @property
    def module_key(self) -> Tuple[str, str]:
        return (self.group, self.artifact)

    @property
    def is_native(self) -> bool:
        return bool(self.classifier) and "natives" in self.classifier

    @property
    def filename(self) -> str:
        name = f"{self.artifact}-{self.version}"
        if self.classifier:
            name = f"{name}-{self.classifier}"
        return f"{name}.{self.ext}"

    @property
    def path(self) -> str:
        """Repository-relative path, always with forward slashes."""
        return "/".join([self.group.replace(".", "/"), self.artifact, self.version, self.filename])

    def with_classifier(self, classifier: Optional[str]) -> "MavenCoordinate":
        return self._replace(classifier=classifier)

    def url(self, repository: str) -> str:
        return ensure_trailing_slash(repository) + self.path

    def __str__(self) -> str:
        text = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier:
            text += f":{self.classifier}"
        if self.ext != "jar":
            text += f"@{self.ext}"
        return text


def ensure_trailing_slash(value: str) -> str:
    return value if value.endswith("/") else value + "/"
