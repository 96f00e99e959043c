"""Python plugin loader: discovery, validation, load and unload of one plugin."""

from __future__ import annotations

import importlib.util
import shutil
import sys
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from launchbridge import api
from launchbridge.config.settings import SettingsStore
from launchbridge.plugins.core.contracts import LoaderHost
from launchbridge.plugins.core.types import LoaderState, Manifest, PluginRecord
from launchbridge.plugins.metadata import extract_manifest
from launchbridge.plugins.runtime import ForeignRef
from launchbridge.plugins.trampolines import PluginInstanceTrampoline
from launchbridge.plugins.version_gate import check_manifest
from launchbridge.utils.exceptions import (
    BridgeError,
    DependencyInstallError,
    EntryClassTypeError,
    ErrorCategory,
    ExtensionExecutionError,
    InvalidManifestError,
    MissingBinaryDependencyError,
    NotAPluginError,
)

ENTRY_CLASS_NAME = "Plugin"
MODULE_NAMESPACE = "launchbridge.python"
PACKAGE_INIT = "__init__.py"
SOURCE_SUFFIX = ".py"
LOG_FUNCTIONS = ("debug", "info", "warning", "critical")

FinishedCallback = Callable[["ExtensionLoader", "BaseException | None"], None]


def _discover(path: Path) -> tuple[str, Path, bool]:
    """(module name, source file, is package) for a plugin candidate path."""
    if path.is_file() and path.suffix == SOURCE_SUFFIX:
        return path.stem, path, False
    if path.is_dir() and (path / PACKAGE_INIT).is_file():
        return path.name, path / PACKAGE_INIT, True
    raise NotAPluginError(str(path), f"Not a Python module or package: {path.name}")


def _log_function(channel_logger: Any, level: str) -> Callable[[str], None]:
    log = getattr(channel_logger.opt(depth=1), level)

    def emit(message: str) -> None:
        log(str(message))

    emit.__name__ = level
    return emit


class ExtensionLoader:
    """
    One Python plugin candidate.

    Construction discovers and validates the candidate without executing it.
    load() runs off the calling thread and reports through the returned future
    and the on_finished callbacks.
    """

    def __init__(self, provider: LoaderHost, path: Path | str):
        self.provider = provider
        self.path = Path(path)
        if not self.path.exists():
            raise BridgeError(
                f"Plugin path does not exist: {self.path}",
                code="FILE_ERROR",
                category=ErrorCategory.FATAL,
                details={"path": str(self.path)},
            )
        self.module_name, self.source_path, self.is_package = _discover(self.path)
        self.state = LoaderState.DISCOVERED
        self.logger = logger.bind(channel=self.qualified_module_name)

        try:
            source = self.source_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise BridgeError(
                f"Failed reading plugin source {self.source_path}: {exc}",
                code="FILE_ERROR",
                category=ErrorCategory.FATAL,
                details={"path": str(self.source_path)},
            ) from exc

        self.manifest: Manifest = extract_manifest(source, self.module_name, str(self.source_path))
        self.errors: list[str] = check_manifest(self.manifest)
        self.state = LoaderState.REJECTED if self.errors else LoaderState.VALIDATED
        self.error: str | None = ", ".join(self.errors) or None

        runtime = provider.runtime
        self._module = ForeignRef(runtime)
        self._instance = ForeignRef(runtime)
        self._trampoline: PluginInstanceTrampoline | None = None
        self._state_lock = threading.Lock()
        self.on_finished: list[FinishedCallback] = []

    @property
    def id(self) -> str:
        return self.manifest.id

    @property
    def qualified_module_name(self) -> str:
        return f"{MODULE_NAMESPACE}.{self.module_name}"

    @property
    def settings(self) -> SettingsStore:
        return self.provider.settings

    def cache_location(self) -> Path:
        return self.provider.cache_location() / self.id

    def config_location(self) -> Path:
        return self.provider.config_location() / self.id

    def data_location(self) -> Path:
        return self.provider.data_location() / self.id

    def instance(self) -> PluginInstanceTrampoline | None:
        """Adapter for the loaded plugin instance, None unless loaded."""
        return self._trampoline

    def load(self) -> Future:
        """Start loading off-thread. The future resolves to a timing message or raises the load error."""
        with self._state_lock:
            if self.state is LoaderState.REJECTED:
                raise InvalidManifestError(self.id, self.errors)
            if self.state is LoaderState.LOADING:
                raise RuntimeError(f"{self.id} is already loading")
            if self.state is LoaderState.LOADED:
                raise RuntimeError(f"{self.id} is already loaded")
            self.state = LoaderState.LOADING
            self.error = None
        return self.provider.runtime.submit(self._load_task)

    def _load_task(self) -> str:
        started = time.perf_counter()
        try:
            self._load_blocking()
        except Exception as exc:
            self.state = LoaderState.LOAD_FAILED
            self.error = str(exc)
            self.logger.warning("Loading {} failed: {}", self.id, exc)
            self._notify(exc)
            raise
        self.state = LoaderState.LOADED
        message = f"{self.id} loaded in {(time.perf_counter() - started) * 1000:.0f} ms"
        self.logger.debug(message)
        self._notify(None)
        return message

    def _notify(self, error: BaseException | None) -> None:
        for callback in list(self.on_finished):
            try:
                callback(self, error)
            except Exception as exc:
                logger.warning("on_finished callback for {} failed: {}", self.id, exc)

    def _load_blocking(self) -> None:
        try:
            self._check_binary_dependencies()
            self._ensure_runtime_dependencies()
            with self.provider.runtime.locked():
                self._execute()
        except BridgeError:
            self.unload()
            raise
        except Exception as exc:
            self.unload()
            raise ExtensionExecutionError.from_exception(exc) from exc

    def _check_binary_dependencies(self) -> None:
        for executable in self.manifest.binary_dependencies:
            if shutil.which(executable) is None:
                raise MissingBinaryDependencyError(executable)

    def _ensure_runtime_dependencies(self) -> None:
        packages = list(self.manifest.runtime_dependencies)
        if not packages or self.provider.check_packages(packages):
            return
        self.logger.info("Installing dependencies of {}: {}", self.id, ", ".join(packages))
        error = self.provider.install_packages(packages)
        if error is not None:
            raise DependencyInstallError(packages, error)

    def _execute(self) -> None:
        runtime = self.provider.runtime
        name = self.qualified_module_name
        search_locations = [str(self.path)] if self.is_package else None
        spec = importlib.util.spec_from_file_location(
            name, self.source_path, submodule_search_locations=search_locations
        )
        if spec is None or spec.loader is None:
            raise ImportError(f"failed to load spec for {self.source_path}")

        module = importlib.util.module_from_spec(spec)
        for level in LOG_FUNCTIONS:
            setattr(module, level, _log_function(self.logger, level))
        self._module = ForeignRef(runtime, module)
        sys.modules[name] = module
        spec.loader.exec_module(module)

        entry = getattr(module, ENTRY_CLASS_NAME, None)
        if entry is None:
            raise AttributeError(f"module '{self.module_name}' has no attribute '{ENTRY_CLASS_NAME}'")
        token = api.current_loader.set(self)
        try:
            instance = entry()
        finally:
            api.current_loader.reset(token)
        if not isinstance(instance, api.PluginInstance):
            raise EntryClassTypeError(type(instance).__name__)

        self._instance = ForeignRef(runtime, instance)
        self._trampoline = PluginInstanceTrampoline(runtime, instance, batch_size=self.provider.batch_size)

    def unload(self) -> None:
        """Drop the plugin instance and module and run finalizers. Safe to call repeatedly."""
        runtime = self.provider.runtime
        with runtime.locked():
            self._trampoline = None
            self._instance.release()
            self._module.release()
            prefix = self.qualified_module_name + "."
            for key in [k for k in sys.modules if k == self.qualified_module_name or k.startswith(prefix)]:
                sys.modules.pop(key, None)
            runtime.collect()
        if self.state in (LoaderState.LOADED, LoaderState.LOAD_FAILED):
            self.state = LoaderState.UNLOADED
            self.logger.debug("{} unloaded", self.id)

    def to_record(self) -> PluginRecord:
        extension_ids: list[str] = []
        trampoline = self._trampoline
        if trampoline is not None:
            try:
                extension_ids = [ext.id() for ext in trampoline.extensions()]
            except BridgeError as exc:
                self.logger.warning("Listing extensions of {} failed: {}", self.id, exc)
        return PluginRecord(
            id=self.id,
            name=self.manifest.name or self.module_name,
            source=str(self.path),
            state=self.state.value,
            version=self.manifest.version or None,
            description=self.manifest.description or None,
            iid=self.manifest.iid or None,
            extension_ids=extension_ids,
            runtime_dependencies=list(self.manifest.runtime_dependencies),
            binary_dependencies=list(self.manifest.binary_dependencies),
            error=self.error,
        )

    def __repr__(self) -> str:
        return f"ExtensionLoader(id={self.id!r}, state={self.state.value!r})"
