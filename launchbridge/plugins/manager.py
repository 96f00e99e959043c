"""Singleton provider owning the Python plugin runtime, package environment and loaders."""

from __future__ import annotations

import importlib.metadata
import threading
import time
from concurrent.futures import Future
from dataclasses import asdict
from pathlib import Path
from typing import Any

from loguru import logger

from launchbridge.config.access import get_config
from launchbridge.config.schema import BridgeConfig
from launchbridge.config.settings import SettingsStore
from launchbridge.plugins.core.types import LoaderState, PluginSnapshot
from launchbridge.plugins.environment import PackageEnvironment
from launchbridge.plugins.native.loader import ExtensionLoader
from launchbridge.plugins.runtime import ExtensionRuntime, get_runtime
from launchbridge.plugins.version_gate import INTERFACE_VERSION
from launchbridge.utils.exceptions import BridgeError, ErrorCategory, NotAPluginError, classify_exception

PLUGINS_DIRNAME = "plugins"
SETTINGS_FILENAME = "settings.json"

_singleton_lock = threading.Lock()
_singleton: "PythonPluginProvider | None" = None


class PythonPluginProvider:
    """Discovers Python plugins in the data locations and manages their loaders."""

    def __init__(self, config: BridgeConfig | None = None, runtime: ExtensionRuntime | None = None):
        self.config = config or get_config()
        self.runtime = runtime or get_runtime()
        self.data_dir = self.config.data_path
        self.settings = SettingsStore(self.data_dir / SETTINGS_FILENAME)
        env_cfg = self.config.environment
        self.environment = PackageEnvironment(
            self.data_dir,
            self.settings,
            python=env_cfg.python_executable or None,
            timeout=env_cfg.process_timeout_seconds,
        )
        self.batch_size = self.config.query.batch_size
        self.diagnostics: list[dict[str, Any]] = []
        self._loaders: dict[str, ExtensionLoader] = {}
        self._lock = threading.RLock()

    # Locations handed to plugins (per plugin id subdirectories).

    def cache_location(self) -> Path:
        return self.data_dir / "cache"

    def config_location(self) -> Path:
        return self.data_dir / "config"

    def data_location(self) -> Path:
        return self.data_dir / "data"

    def plugin_dirs(self) -> list[Path]:
        return [location / PLUGINS_DIRNAME for location in self.config.data_locations()]

    def initialize(self) -> Future:
        """Prepare the package environment and runtime, then scan. Runs off-thread."""
        return self.runtime.submit(self._initialize_blocking)

    def _initialize_blocking(self) -> list[ExtensionLoader]:
        site_dirs: list[Path] = []
        if self.config.environment.enabled:
            site_dirs.append(self.environment.ensure())
        self.runtime.initialize(site_dirs)
        for directory in site_dirs:
            self.runtime.add_site_dir(directory)
        loaders = self.scan()
        for plugin_id in self.config.plugins.autoload:
            loader = self.loader(plugin_id)
            if loader is None:
                logger.warning("Autoload plugin {} not found", plugin_id)
            elif loader.state is LoaderState.VALIDATED:
                loader.load()
        return loaders

    def scan(self) -> list[ExtensionLoader]:
        """Rebuild the loader list from the plugin directories. Never raises for single candidates."""
        found: dict[str, ExtensionLoader] = {}
        diagnostics: list[dict[str, Any]] = []
        for directory in self.plugin_dirs():
            if not directory.is_dir():
                continue
            logger.debug("Scanning for Python plugins in {}", directory)
            try:
                entries = sorted(directory.iterdir())
            except OSError as exc:
                logger.warning("Failed listing {}: {}", directory, exc)
                continue
            for entry in entries:
                try:
                    loader = ExtensionLoader(self, entry)
                except NotAPluginError as exc:
                    logger.debug("Skipping {}: {}", entry, exc)
                    continue
                except Exception as exc:
                    code, category = classify_exception(exc)
                    logger.warning("Failed to read plugin candidate {}: {}", entry, exc)
                    diagnostics.append({"path": str(entry), "code": code, "category": category.value, "message": str(exc)})
                    continue
                if loader.id in found:
                    logger.warning("Plugin {} at {} shadowed by {}", loader.id, entry, found[loader.id].path)
                    diagnostics.append(
                        {
                            "path": str(entry),
                            "code": "DUPLICATE_PLUGIN_ID",
                            "category": ErrorCategory.VALIDATION.value,
                            "message": f"Duplicate plugin id {loader.id}",
                        }
                    )
                    continue
                if loader.state is LoaderState.REJECTED:
                    logger.info("Plugin {} rejected: {}", loader.id, loader.error)
                found[loader.id] = loader

        with self._lock:
            previous, self._loaders = self._loaders, found
            self.diagnostics = diagnostics
        for old in previous.values():
            if old.state is LoaderState.LOADED:
                old.unload()
        logger.info("Found {} Python plugin(s)", len(found))
        return list(found.values())

    def plugins(self) -> list[ExtensionLoader]:
        with self._lock:
            return list(self._loaders.values())

    def loader(self, plugin_id: str) -> ExtensionLoader | None:
        """Loader by id; bare module names are accepted too."""
        key = plugin_id.strip()
        with self._lock:
            if key in self._loaders:
                return self._loaders[key]
            for loader in self._loaders.values():
                if loader.module_name == key:
                    return loader
        return None

    def _require(self, plugin_id: str) -> ExtensionLoader:
        loader = self.loader(plugin_id)
        if loader is None:
            raise BridgeError(
                f"Plugin not found: {plugin_id}",
                code="PLUGIN_NOT_FOUND",
                category=ErrorCategory.VALIDATION,
                details={"plugin_id": plugin_id},
            )
        return loader

    def load(self, plugin_id: str) -> Future:
        return self._require(plugin_id).load()

    def unload(self, plugin_id: str) -> None:
        self._require(plugin_id).unload()

    def check_packages(self, packages: list[str]) -> bool:
        if not self.config.environment.enabled:
            return all(_distribution_installed(p) for p in packages)
        self.environment.ensure()
        return self.environment.check_packages(packages)

    def install_packages(self, packages: list[str]) -> str | None:
        if not self.config.environment.enabled:
            return "Package environment is disabled. Install manually: " + " ".join(packages)
        self.environment.ensure()
        return self.environment.install_packages(packages)

    def status(self) -> PluginSnapshot:
        return PluginSnapshot(
            loaded_at_ms=int(time.time() * 1000),
            data_dir=str(self.data_dir),
            interface_version=INTERFACE_VERSION,
            python_version=self.runtime.python_version,
            plugins=[loader.to_record() for loader in self.plugins()],
            diagnostics=list(self.diagnostics),
        )

    def status_dict(self) -> dict[str, Any]:
        return asdict(self.status())

    def shutdown(self) -> None:
        """Unload every loaded plugin."""
        for loader in self.plugins():
            if loader.state is LoaderState.LOADED:
                loader.unload()
        with self._lock:
            self._loaders = {}


def _distribution_installed(name: str) -> bool:
    try:
        importlib.metadata.distribution(name)
    except importlib.metadata.PackageNotFoundError:
        return False
    return True


def get_plugin_provider(config: BridgeConfig | None = None) -> PythonPluginProvider:
    """Get or create the process-global plugin provider."""
    global _singleton
    with _singleton_lock:
        if _singleton is None:
            _singleton = PythonPluginProvider(config=config)
    return _singleton


def reset_plugin_provider() -> None:
    """Shut down and forget the process-global provider."""
    global _singleton
    with _singleton_lock:
        provider, _singleton = _singleton, None
    if provider is not None:
        provider.shutdown()
