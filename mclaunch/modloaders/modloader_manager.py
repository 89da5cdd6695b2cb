"""Mod loader manager."""

import logging
from typing import Dict, Optional, Type

from ..errors import LoaderInstallFailure
from .base import LoaderAdapter, LoaderContext
from .fabric import FabricLoader
from .forge import ForgeLoader
from .vanilla import VanillaLoader

log = logging.getLogger(__name__)

LOADERS: Dict[str, Type[LoaderAdapter]] = {
    "vanilla": VanillaLoader,
    "fabric": FabricLoader,
    "forge": ForgeLoader,
}


class ModLoaderManager:
    """Maps loader names to adapters."""

    @staticmethod
    def normalize(loader: Optional[str]) -> str:
        return (loader or "vanilla").strip().lower()

    @classmethod
    def adapter_for(cls, loader: Optional[str], context: LoaderContext, mc_version: str) -> LoaderAdapter:
        name = cls.normalize(loader)
        adapter_cls = LOADERS.get(name)
        if adapter_cls is None:
            raise LoaderInstallFailure(f"Unknown mod loader '{loader}'; expected one of {', '.join(LOADERS)}")
        log.debug("Using %s adapter for %s", name, mc_version)
        return adapter_cls(context, mc_version)
