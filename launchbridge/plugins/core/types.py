"""Types for the Python plugin bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class LoaderState(str, Enum):
    """Lifecycle of one discovered plugin candidate."""

    DISCOVERED = "discovered"
    VALIDATED = "validated"
    REJECTED = "rejected"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    UNLOADED = "unloaded"


@dataclass(frozen=True, slots=True)
class Manifest:
    """Statically extracted plugin metadata. Immutable once created."""

    id: str
    iid: str = ""
    name: str = ""
    version: str = ""
    description: str = ""
    license: str = ""
    url: str = ""
    readme_url: str = ""
    authors: tuple[str, ...] = ()
    maintainers: tuple[str, ...] = ()
    runtime_dependencies: tuple[str, ...] = ()
    binary_dependencies: tuple[str, ...] = ()
    third_party_credits: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()


@dataclass(slots=True)
class PluginRecord:
    """Serializable plugin record for status reports."""

    id: str
    name: str
    source: str
    state: str
    version: str | None = None
    description: str | None = None
    iid: str | None = None
    extension_ids: list[str] = field(default_factory=list)
    runtime_dependencies: list[str] = field(default_factory=list)
    binary_dependencies: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class PluginSnapshot:
    """Snapshot of provider state."""

    loaded_at_ms: int
    data_dir: str
    interface_version: str
    python_version: str
    plugins: list[PluginRecord] = field(default_factory=list)
    diagnostics: list[dict[str, Any]] = field(default_factory=list)
