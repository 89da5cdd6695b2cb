"""Launcher exception hierarchy.

Every failure that can stop a prepare or launch is a ``LauncherError``; the
message is meant to be shown to the user as-is and is also forwarded to the
progress sink with the ``error`` stage.
"""


class LauncherError(Exception):
    """Base exception for all launcher operations."""

    pass


class DownloadError(LauncherError):
    """Raised when an artifact could not be acquired."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class NetworkFailure(DownloadError):
    """Transport error or non-success HTTP status."""

    pass


class HashMismatch(DownloadError):
    """Downloaded bytes do not match the expected SHA-1."""

    pass


class MalformedDescriptor(LauncherError):
    """A version descriptor or metadata document failed to parse."""

    pass


class MissingRequiredField(MalformedDescriptor):
    """A fully resolved descriptor lacks a field needed to launch."""

    pass


class VersionNotFound(LauncherError):
    """Version id is neither cached on disk nor listed in the manifest."""

    pass


class CyclicDescriptor(LauncherError):
    """The ``inheritsFrom`` chain refers back to itself."""

    def __init__(self, chain):
        self.chain = list(chain)
        super().__init__("Cyclic inheritsFrom chain: " + " -> ".join(self.chain))


class LoaderInstallFailure(LauncherError):
    """A mod loader could not be resolved or installed."""

    pass


class RuntimeNotFound(LauncherError):
    """No Java runtime with the required major version is available."""

    def __init__(self, major: int, detail: str = ""):
        self.major = major
        message = f"No suitable Java {major} found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RequiredLibraryMissing(LauncherError):
    """Post-resolution sanity check failed (e.g. loader jar absent from classpath)."""

    pass


class ScaffoldError(LauncherError):
    """Directory scaffolding failed and the policy says to fail."""

    pass
