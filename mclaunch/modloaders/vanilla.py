"""Vanilla loader."""

from .base import LoaderAdapter


class VanillaLoader(LoaderAdapter):
    """Plain game client: the merged descriptor, the client jar first on the classpath."""

    name = "vanilla"
