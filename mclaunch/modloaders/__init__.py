from .base import LoaderAdapter, LoaderContext, LoaderState
from .fabric import FabricLoader
from .forge import ForgeLoader
from .modloader_manager import LOADERS, ModLoaderManager
from .vanilla import VanillaLoader

__all__ = [
    "LoaderAdapter",
    "LoaderContext",
    "LoaderState",
    "VanillaLoader",
    "FabricLoader",
    "ForgeLoader",
    "ModLoaderManager",
    "LOADERS",
]
