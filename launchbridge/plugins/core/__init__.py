"""Shared plugin types and contracts."""

from .contracts import LoaderHost
from .types import LoaderState, Manifest, PluginRecord, PluginSnapshot

__all__ = [
    "LoaderHost",
    "LoaderState",
    "Manifest",
    "PluginRecord",
    "PluginSnapshot",
]
