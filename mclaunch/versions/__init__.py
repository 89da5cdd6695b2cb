"""Version management module."""

from .manager import VersionManager, merge_descriptors
from .download_manager import DownloadManager
from .models import VersionDescriptor, VersionManifest, VersionInfo

__all__ = [
    "VersionManager",
    "DownloadManager",
    "merge_descriptors",
    "VersionDescriptor",
    "VersionManifest",
    "VersionInfo",
]
