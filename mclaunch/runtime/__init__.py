"""Java runtime discovery and installation."""

from .java_manager import JavaManager, required_major

__all__ = ["JavaManager", "required_major"]
