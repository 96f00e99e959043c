"""Runtime contracts between loaders and their provider."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from launchbridge.config.settings import SettingsStore
    from launchbridge.plugins.runtime import ExtensionRuntime


@runtime_checkable
class LoaderHost(Protocol):
    """What an ExtensionLoader needs from the provider that created it."""

    runtime: "ExtensionRuntime"
    settings: "SettingsStore"
    batch_size: int

    def check_packages(self, packages: list[str]) -> bool: ...
    def install_packages(self, packages: list[str]) -> str | None: ...
    def cache_location(self) -> Path: ...
    def config_location(self) -> Path: ...
    def data_location(self) -> Path: ...
