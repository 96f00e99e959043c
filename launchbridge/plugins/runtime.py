"""Process-wide extension runtime: execution lock, worker pool and lifetime guards.

Every touch of an extension object (construction, calls, attribute lookups and
dropping the last native reference) happens while holding the runtime's
execution lock. The lock is released by default so host-only code never
waits on it.
"""

from __future__ import annotations

import gc
import platform
import site
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from loguru import logger

from launchbridge.utils.exceptions import BridgeError, ExtensionExecutionError

DEFAULT_MAX_WORKERS = 4

# Runtimes whose execution lock the current thread holds, innermost last.
_held = threading.local()
_live_runtimes: "weakref.WeakSet[ExtensionRuntime]" = weakref.WeakSet()


class ExtensionRuntime:
    """Owns the execution lock, the background executor and the adapter cache."""

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS):
        self.python_version = platform.python_version()
        self._lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._adapters: dict[int, tuple[weakref.ref, Any]] = {}
        self._initialized = False
        self._closed = False
        self.site_dirs: list[str] = []
        _live_runtimes.add(self)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, site_dirs: list[Path] | tuple[Path, ...] = ()) -> None:
        """Prepare the import path once. The lock is held during init and released afterwards."""
        with self._state_lock:
            if self._closed:
                raise RuntimeError("extension runtime has been shut down")
            if self._initialized:
                return
            with self._lock:
                logger.debug("Initializing extension runtime (Python {})", self.python_version)
                for directory in site_dirs:
                    self._add_site_dir(directory)
            self._initialized = True

    def add_site_dir(self, directory: Path) -> None:
        with self._lock:
            self._add_site_dir(directory)

    def _add_site_dir(self, directory: Path) -> None:
        path = str(directory)
        if path in self.site_dirs:
            return
        site.addsitedir(path)
        self.site_dirs.append(path)
        logger.debug("Added site directory {}", path)

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the execution lock for the duration of the block, on every exit path."""
        self._lock.acquire()
        held = _held.__dict__.setdefault("runtimes", [])
        held.append(self)
        try:
            yield
        finally:
            held.pop()
            self._lock.release()

    def collect(self) -> int:
        """Force a garbage collection pass so extension finalizers run now."""
        with self.locked():
            return gc.collect()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Run fn off the calling thread."""
        with self._state_lock:
            if self._closed:
                raise RuntimeError("extension runtime has been shut down")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="launchbridge"
                )
            executor = self._executor
        return executor.submit(fn, *args, **kwargs)

    def cached_adapter(self, foreign: Any) -> Any | None:
        entry = self._adapters.get(id(foreign))
        if entry is None:
            return None
        ref, adapter = entry
        return adapter if ref() is foreign else None

    def cache_adapter(self, foreign: Any, adapter: Any) -> None:
        """Remember adapter for foreign; the entry disappears together with foreign."""
        key = id(foreign)
        adapters = self._adapters

        def _drop(_ref: weakref.ref, key: int = key) -> None:
            entry = adapters.get(key)
            if entry is not None and entry[0] is _ref:
                adapters.pop(key, None)

        try:
            ref = weakref.ref(foreign, _drop)
        except TypeError:
            return
        adapters[key] = (ref, adapter)

    def shutdown(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            executor, self._executor = self._executor, None
        _live_runtimes.discard(self)
        if executor is not None:
            executor.shutdown(wait=True)
        with self._lock:
            self._adapters.clear()
            gc.collect()


class ForeignRef:
    """
    Owning, move-only handle to an extension object.

    The reference is dropped while holding the execution lock, including when
    the handle itself is garbage collected. Use take() to move ownership.
    """

    __slots__ = ("_runtime", "_obj", "__weakref__")

    def __init__(self, runtime: ExtensionRuntime, obj: Any = None):
        self._runtime = runtime
        self._obj = obj

    def get(self) -> Any:
        return self._obj

    def __bool__(self) -> bool:
        return self._obj is not None

    def take(self) -> "ForeignRef":
        moved = ForeignRef(self._runtime, self._obj)
        self._obj = None
        return moved

    def release(self) -> None:
        if self._obj is None:
            return
        with self._runtime.locked():
            self._obj = None

    def __copy__(self):
        raise TypeError("ForeignRef cannot be copied; use take()")

    def __deepcopy__(self, memo):
        raise TypeError("ForeignRef cannot be copied; use take()")

    def __reduce__(self):
        raise TypeError("ForeignRef cannot be pickled")

    def __del__(self):
        if getattr(self, "_obj", None) is not None:
            self.release()

    def __repr__(self) -> str:
        return f"ForeignRef({type(self._obj).__name__})"


class ForeignCallable:
    """Extension callback that runs under the execution lock. Failures are logged, not raised."""

    __slots__ = ("_runtime", "_ref", "__weakref__")

    def __init__(self, runtime: ExtensionRuntime, fn: Callable[[], Any]):
        if not callable(fn):
            raise TypeError(f"callback must be callable, got {type(fn).__name__}")
        self._runtime = runtime
        self._ref = ForeignRef(runtime, fn)

    def __call__(self) -> None:
        with self._runtime.locked():
            fn = self._ref.get()
            if fn is None:
                logger.warning("Action callback was released")
                return
            try:
                fn()
            except Exception as exc:
                logger.warning("Action callback failed: {}: {}", type(exc).__name__, exc)


class ForeignFactory:
    """Extension callable whose result goes back to the host, such as an icon factory."""

    __slots__ = ("_runtime", "_ref", "_name", "__weakref__")

    def __init__(self, runtime: ExtensionRuntime, fn: Callable[[], Any], name: str = "factory"):
        if not callable(fn):
            raise TypeError(f"{name} must be callable, got {type(fn).__name__}")
        self._runtime = runtime
        self._ref = ForeignRef(runtime, fn)
        self._name = name

    def __call__(self) -> Any:
        with self._runtime.locked():
            fn = self._ref.get()
            if fn is None:
                return None
            try:
                return fn()
            except BridgeError:
                raise
            except Exception as exc:
                raise ExtensionExecutionError.from_exception(exc, self._name) from exc


def current_runtime() -> ExtensionRuntime | None:
    """Runtime whose execution lock the calling thread holds, or None."""
    held = getattr(_held, "runtimes", None)
    return held[-1] if held else None


def find_runtime(foreign: Any) -> ExtensionRuntime | None:
    """Live runtime holding an adapter for foreign, or None."""
    for runtime in list(_live_runtimes):
        if runtime.cached_adapter(foreign) is not None:
            return runtime
    return None


_singleton_lock = threading.Lock()
_singleton: ExtensionRuntime | None = None


def get_runtime() -> ExtensionRuntime:
    """Return the process-wide extension runtime."""
    global _singleton
    with _singleton_lock:
        if _singleton is None:
            _singleton = ExtensionRuntime()
        return _singleton


def reset_runtime() -> None:
    """Shut down and forget the process-wide runtime."""
    global _singleton
    with _singleton_lock:
        runtime, _singleton = _singleton, None
    if runtime is not None:
        runtime.shutdown()
