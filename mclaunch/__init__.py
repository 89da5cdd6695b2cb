"""Minecraft instance preparation and launch core."""

__version__ = "0.1.0"
