"""
Interface for Python plugin authors.

A plugin is a module (or package) defining top-level ``md_*`` metadata and a
class named ``Plugin`` deriving from :class:`PluginInstance`. The plugin
instance may itself be an extension by also deriving from one of the handler
classes below::

    from launchbridge import api

    md_iid = "3.1"
    md_name = "Hello"
    md_description = "Says hello"

    class Plugin(api.PluginInstance, api.GeneratorQueryHandler):
        def items(self, query):
            yield [api.StandardItem(id="hello", text=f"Hello {query.string}")]

Methods the host may call are looked up by name. Leaving out a method with a
default keeps the host behavior; leaving out one without a default fails the
call with PureVirtualError.
"""

from __future__ import annotations

import weakref
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from launchbridge.host import items as _host_items
from launchbridge.host.items import IndexItem, RankItem
from launchbridge.host.query import Match, MatchConfig, Matcher, Query
from launchbridge.plugins.runtime import (
    ExtensionRuntime,
    ForeignCallable,
    ForeignFactory,
    current_runtime,
    find_runtime,
    get_runtime,
)
from launchbridge.plugins.version_gate import INTERFACE_VERSION

if TYPE_CHECKING:
    from launchbridge.plugins.native.loader import ExtensionLoader

# Loader whose entry class is being instantiated.
current_loader: ContextVar["ExtensionLoader | None"] = ContextVar("launchbridge_current_loader", default=None)

_HOST_DEFAULT_ATTR = "__launchbridge_host_default__"


def host_default(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Mark fn as a stand-in for host behavior. The host ignores it when dispatching."""
    setattr(fn, _HOST_DEFAULT_ATTR, True)
    return fn


def is_host_default(fn: Any) -> bool:
    return bool(getattr(getattr(fn, "__func__", fn), _HOST_DEFAULT_ATTR, False))


def _runtime(obj: Any = None) -> ExtensionRuntime:
    """
    Runtime serving obj, or the code running on this thread when obj is None.

    A plugin instance uses the runtime of its loader. Other extension objects
    use the runtime that already adapted them. Otherwise the runtime whose lock
    this thread holds, then the loader being instantiated, then the process-wide
    runtime.
    """
    if isinstance(obj, PluginInstance):
        loader = obj._launchbridge_loader()
        if loader is not None:
            return loader.provider.runtime
    if obj is not None:
        runtime = find_runtime(obj)
        if runtime is not None:
            return runtime
    runtime = current_runtime()
    if runtime is not None:
        return runtime
    loader = current_loader.get()
    if loader is not None:
        return loader.provider.runtime
    return get_runtime()


def _adapter(obj: Any):
    from launchbridge.plugins.trampolines import adapter_for

    return adapter_for(_runtime(obj), obj)


def _host(obj: Any, name: str) -> Callable[..., Any]:
    from launchbridge.plugins.trampolines import host_method

    return host_method(_adapter(obj), name)


class Action(_host_items.Action):
    """Item action. The callable runs under the execution lock; its exceptions are logged."""

    def __init__(self, id: str, text: str, callable: Callable[[], Any]):
        super().__init__(id, text, ForeignCallable(_runtime(), callable))


class StandardItem(_host_items.StandardItem):
    """Item holding its values. The icon factory and action callables run under the execution lock."""

    def __init__(
        self,
        id: str = "",
        text: str = "",
        subtext: str = "",
        icon_factory: Callable[[], Any] | None = None,
        actions: list[_host_items.Action] | None = None,
        input_action_text: str = "",
    ):
        from launchbridge.plugins.trampolines import to_native_action

        self._runtime = _runtime()
        super().__init__(
            id,
            text,
            subtext,
            icon_factory,
            [to_native_action(self._runtime, a) for a in actions or []],
            input_action_text,
        )

    @property
    def icon_factory(self) -> ForeignFactory | None:
        return self._icon_factory

    @icon_factory.setter
    def icon_factory(self, factory: Callable[[], Any] | None) -> None:
        if factory is not None and not isinstance(factory, ForeignFactory):
            factory = ForeignFactory(self._runtime, factory, "icon_factory")
        self._icon_factory = factory


class Item:
    """
    Base for custom result items.

    Subclasses implement id, text, subtext, inputActionText, icon and actions.
    """


class Extension:
    """Base for extensions. Subclasses implement id, name and description."""


class QueryHandler(Extension):
    """Extension handling triggered queries."""

    @host_default
    def synopsis(self, query: str) -> str:
        return ""

    @host_default
    def allowTriggerRemap(self) -> bool:  # noqa: N802
        return True

    @host_default
    def defaultTrigger(self) -> str:  # noqa: N802
        return f"{self.id()} "

    @host_default
    def supportsFuzzyMatching(self) -> bool:  # noqa: N802
        return False

    @host_default
    def setTrigger(self, trigger: str) -> None:  # noqa: N802
        _host(self, "set_trigger")(trigger)

    @host_default
    def setFuzzyMatching(self, enabled: bool) -> None:  # noqa: N802
        _host(self, "set_fuzzy_matching")(enabled)

    def trigger(self) -> str:
        return _adapter(self).trigger()

    def fuzzyMatchingEnabled(self) -> bool:  # noqa: N802
        return _adapter(self).fuzzy_matching_enabled()


TriggerQueryHandler = QueryHandler


class GeneratorQueryHandler(QueryHandler):
    """Query handler producing batches: implement ``items(query)`` as a generator of item lists."""


class RankedQueryHandler(GeneratorQueryHandler):
    """Query handler scoring items: implement ``rankItems(query)`` returning RankItems."""


class GlobalQueryHandler(RankedQueryHandler):
    """Ranked handler also taking part in global queries."""

    @host_default
    def handleGlobalQuery(self, query: Query) -> list[RankItem]:  # noqa: N802
        return _host(self, "handle_global_query")(query)


class IndexQueryHandler(GlobalQueryHandler):
    """
    Global handler backed by a host-side index.

    Implement ``updateIndexItems()`` and call ``setIndexItems`` from it. Queries
    are answered from the index unless ``rankItems`` is overridden.
    """

    @host_default
    def supportsFuzzyMatching(self) -> bool:  # noqa: N802
        return True

    @host_default
    def rankItems(self, query: Query) -> list[RankItem]:  # noqa: N802
        return _host(self, "rank_items")(query)

    def setIndexItems(self, index_items: list[IndexItem]) -> None:  # noqa: N802
        from launchbridge.plugins.trampolines import adapter_for, to_native_index_items

        runtime = _runtime(self)
        adapter = adapter_for(runtime, self)
        with runtime.locked():
            converted = to_native_index_items(runtime, index_items)
        adapter.set_index_items(converted)


class FallbackHandler(Extension):
    """Extension offering items when nothing matched: implement ``fallbacks(query)``."""


class PluginInstance:
    """
    Root object of a plugin. Must be constructed by the loader.

    Provides the extension identity from the plugin metadata, per-plugin
    locations and a small typed settings store.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        loader = current_loader.get()
        if loader is None:
            raise RuntimeError("PluginInstance can only be created while its plugin is being loaded")
        self._launchbridge_loader = weakref.ref(loader)
        super().__init__(*args, **kwargs)

    def _loader(self) -> "ExtensionLoader":
        loader = self._launchbridge_loader()
        if loader is None:
            raise RuntimeError("plugin loader is gone")
        return loader

    def id(self) -> str:
        return self._loader().manifest.id

    def name(self) -> str:
        return self._loader().manifest.name

    def description(self) -> str:
        return self._loader().manifest.description

    def cacheLocation(self) -> Path:  # noqa: N802
        return self._loader().cache_location()

    def configLocation(self) -> Path:  # noqa: N802
        return self._loader().config_location()

    def dataLocation(self) -> Path:  # noqa: N802
        return self._loader().data_location()

    def readConfig(self, key: str, type: type) -> Any:  # noqa: N802
        """Stored value for key converted to type (bool, int, float or str), or None."""
        return self._loader().settings.read(self.id(), key, type)

    def writeConfig(self, key: str, value: Any) -> None:  # noqa: N802
        """Store value; values other than bool, int, float or str are logged and dropped."""
        self._loader().settings.set_value(self.id(), key, value)


__all__ = [
    "INTERFACE_VERSION",
    "Action",
    "Extension",
    "FallbackHandler",
    "GeneratorQueryHandler",
    "GlobalQueryHandler",
    "IndexItem",
    "IndexQueryHandler",
    "Item",
    "Match",
    "MatchConfig",
    "Matcher",
    "PluginInstance",
    "Query",
    "QueryHandler",
    "RankItem",
    "RankedQueryHandler",
    "StandardItem",
    "TriggerQueryHandler",
    "current_loader",
    "host_default",
    "is_host_default",
]
