"""
Adapters exposing extension objects through the host interfaces.

Each host method looks up the camelCase attribute on the extension object
while holding the execution lock. When the extension overrides it, the call is
forwarded and the result converted to host values; otherwise the host default
runs, or PureVirtualError is raised for methods without one. Exceptions from
extension code surface as ExtensionExecutionError.
"""

from __future__ import annotations

import functools
import weakref
from collections.abc import Iterable
from typing import Any, Callable

from launchbridge import api, host
from launchbridge.plugins.runtime import ExtensionRuntime, ForeignCallable, ForeignRef
from launchbridge.plugins.streaming import DEFAULT_BATCH_SIZE, BatchStream
from launchbridge.utils.exceptions import (
    BridgeError,
    ExtensionExecutionError,
    ForeignObjectExpiredError,
    PureVirtualError,
)


def _expect(kind: type) -> Callable[[Any], Any]:
    def check(value: Any) -> Any:
        if not isinstance(value, kind):
            raise TypeError(f"expected {kind.__name__}, got {type(value).__name__}")
        return value

    return check


def _as_list(values: Any, what: str) -> list[Any]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise TypeError(f"expected a list of {what}, got {type(values).__name__}")
    return list(values)


class ForeignDispatch:
    """Reference to an extension object plus the lookup/invoke/translate machinery."""

    def __init__(self, runtime: ExtensionRuntime, foreign: Any, *, owning: bool = False):
        self._runtime = runtime
        self._foreign_type = type(foreign).__name__
        self._owned: ForeignRef | None = None
        self._weak: weakref.ref | None = None
        if not owning:
            try:
                self._weak = weakref.ref(foreign)
            except TypeError:
                owning = True
        if owning:
            self._owned = ForeignRef(runtime, foreign)
        super().__init__()

    def foreign(self) -> Any:
        """The extension object. Raises ForeignObjectExpiredError once it is gone."""
        obj = self._owned.get() if self._owned is not None else self._weak()
        if obj is None:
            raise ForeignObjectExpiredError(self._foreign_type)
        return obj

    def _override(self, name: str) -> Callable[..., Any] | None:
        """Extension-defined callable for name, or None. Caller holds the lock."""
        obj = self.foreign()
        try:
            fn = getattr(obj, name, None)
        except Exception as exc:
            raise ExtensionExecutionError.from_exception(exc, name) from exc
        if fn is None or not callable(fn) or api.is_host_default(fn):
            return None
        return fn

    def _overrides(self, name: str) -> bool:
        with self._runtime.locked():
            return self._override(name) is not None

    def _call(
        self,
        name: str,
        *args: Any,
        default: Callable[[], Any] | None = None,
        convert: Callable[[Any], Any] | None = None,
    ) -> Any:
        with self._runtime.locked():
            fn = self._override(name)
            if fn is not None:
                try:
                    result = fn(*args)
                    return convert(result) if convert is not None else result
                except BridgeError:
                    raise
                except Exception as exc:
                    raise ExtensionExecutionError.from_exception(exc, name) from exc
        if default is None:
            raise PureVirtualError(name, self._foreign_type)
        return default()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._foreign_type})"


# Conversions from extension values to host values. Callers hold the lock.


def to_native_action(runtime: ExtensionRuntime, value: Any) -> host.Action:
    if not isinstance(value, host.Action):
        raise TypeError(f"expected Action, got {type(value).__name__}")
    if isinstance(value.function, ForeignCallable):
        return value
    return host.Action(str(value.id), str(value.text), ForeignCallable(runtime, value.function))


def to_native_item(runtime: ExtensionRuntime, value: Any, memo: dict[int, host.Item] | None = None) -> host.Item:
    """Host items pass through; extension items get an owning ItemTrampoline."""
    if isinstance(value, host.Item):
        return value
    if not isinstance(value, api.Item):
        raise TypeError(f"expected Item, got {type(value).__name__}")
    if memo is None:
        return ItemTrampoline(runtime, value)
    key = id(value)
    if key not in memo:
        memo[key] = ItemTrampoline(runtime, value)
    return memo[key]


def to_native_items(runtime: ExtensionRuntime, values: Any) -> list[host.Item]:
    memo: dict[int, host.Item] = {}
    return [to_native_item(runtime, v, memo) for v in _as_list(values, "items")]


def to_native_rank_items(runtime: ExtensionRuntime, values: Any) -> list[host.RankItem]:
    memo: dict[int, host.Item] = {}
    out: list[host.RankItem] = []
    for value in _as_list(values, "rank items"):
        if isinstance(value, host.RankItem):
            item, score = value.item, value.score
        elif isinstance(value, tuple) and len(value) == 2:
            item, score = value
        else:
            raise TypeError(f"expected RankItem, got {type(value).__name__}")
        out.append(host.RankItem(to_native_item(runtime, item, memo), float(score)))
    return out


def to_native_index_items(runtime: ExtensionRuntime, values: Any) -> list[host.IndexItem]:
    memo: dict[int, host.Item] = {}
    out: list[host.IndexItem] = []
    for value in _as_list(values, "index items"):
        if isinstance(value, host.IndexItem):
            item, string = value.item, value.string
        elif isinstance(value, tuple) and len(value) == 2:
            item, string = value
        else:
            raise TypeError(f"expected IndexItem, got {type(value).__name__}")
        out.append(host.IndexItem(to_native_item(runtime, item, memo), _expect(str)(string)))
    return out


class ItemTrampoline(ForeignDispatch, host.Item):
    """Owns its extension item; results may outlive the handler that produced them."""

    def __init__(self, runtime: ExtensionRuntime, foreign: Any):
        super().__init__(runtime, foreign, owning=True)

    def id(self) -> str:
        return self._call("id", convert=_expect(str))

    def text(self) -> str:
        return self._call("text", convert=_expect(str))

    def subtext(self) -> str:
        return self._call("subtext", convert=_expect(str))

    def input_action_text(self) -> str:
        return self._call("inputActionText", convert=_expect(str))

    def icon(self) -> Any:
        return self._call("icon")

    def actions(self) -> list[host.Action]:
        return self._call(
            "actions",
            convert=lambda values: [to_native_action(self._runtime, v) for v in _as_list(values, "actions")],
        )


class ExtensionTrampoline(ForeignDispatch, host.Extension):
    def id(self) -> str:
        return self._call("id", convert=_expect(str))

    def name(self) -> str:
        return self._call("name", convert=_expect(str))

    def description(self) -> str:
        return self._call("description", convert=_expect(str))


class QueryHandlerTrampoline(ExtensionTrampoline, host.QueryHandler):
    batch_size = DEFAULT_BATCH_SIZE

    def synopsis(self, query: str) -> str:
        return self._call(
            "synopsis",
            query,
            default=lambda: host.QueryHandler.synopsis(self, query),
            convert=_expect(str),
        )

    def allow_trigger_remap(self) -> bool:
        return self._call(
            "allowTriggerRemap",
            default=lambda: host.QueryHandler.allow_trigger_remap(self),
            convert=_expect(bool),
        )

    def default_trigger(self) -> str:
        return self._call(
            "defaultTrigger",
            default=lambda: host.QueryHandler.default_trigger(self),
            convert=_expect(str),
        )

    def set_trigger(self, trigger: str) -> None:
        self._call("setTrigger", trigger, default=lambda: None)
        super().set_trigger(trigger)

    def supports_fuzzy_matching(self) -> bool:
        return self._call(
            "supportsFuzzyMatching",
            default=lambda: host.QueryHandler.supports_fuzzy_matching(self),
            convert=_expect(bool),
        )

    def set_fuzzy_matching(self, enabled: bool) -> None:
        self._call("setFuzzyMatching", bool(enabled), default=lambda: None)
        super().set_fuzzy_matching(enabled)


class GeneratorQueryHandlerTrampoline(QueryHandlerTrampoline, host.GeneratorQueryHandler):
    def _stream(self, context: host.Query) -> BatchStream:
        return BatchStream(
            self._runtime,
            lambda: self._call("items", context),
            lambda batch: to_native_items(self._runtime, batch),
            name="items",
        )

    def items(self, context: host.Query) -> BatchStream:
        if not self._overrides("items"):
            raise PureVirtualError("items", self._foreign_type)
        return self._stream(context)


class RankedQueryHandlerTrampoline(GeneratorQueryHandlerTrampoline, host.RankedQueryHandler):
    def rank_items(self, context: host.Query) -> list[host.RankItem]:
        return self._call("rankItems", context, convert=lambda v: to_native_rank_items(self._runtime, v))

    def items(self, context: host.Query):
        if self._overrides("items"):
            return self._stream(context)
        return host.RankedQueryHandler.items(self, context)


class GlobalQueryHandlerTrampoline(RankedQueryHandlerTrampoline, host.GlobalQueryHandler):
    def handle_global_query(self, context: host.Query) -> list[host.RankItem]:
        return self._call(
            "handleGlobalQuery",
            context,
            default=lambda: host.GlobalQueryHandler.handle_global_query(self, context),
            convert=lambda v: to_native_rank_items(self._runtime, v),
        )


class IndexQueryHandlerTrampoline(GlobalQueryHandlerTrampoline, host.IndexQueryHandler):
    def supports_fuzzy_matching(self) -> bool:
        return self._call(
            "supportsFuzzyMatching",
            default=lambda: host.IndexQueryHandler.supports_fuzzy_matching(self),
            convert=_expect(bool),
        )

    def update_index_items(self) -> None:
        self._call("updateIndexItems")

    def rank_items(self, context: host.Query) -> list[host.RankItem]:
        return self._call(
            "rankItems",
            context,
            default=lambda: host.IndexQueryHandler.rank_items(self, context),
            convert=lambda v: to_native_rank_items(self._runtime, v),
        )


class FallbackHandlerTrampoline(ExtensionTrampoline, host.FallbackHandler):
    def fallbacks(self, query: str) -> list[host.Item]:
        return self._call("fallbacks", query, convert=lambda v: to_native_items(self._runtime, v))


class PluginInstanceTrampoline(ForeignDispatch, host.PluginInstance):
    """Adapter for a plugin's entry instance."""

    def __init__(self, runtime: ExtensionRuntime, foreign: Any, *, batch_size: int | None = None):
        super().__init__(runtime, foreign)
        self.batch_size = batch_size

    def _adapt(self, value: Any) -> host.Extension:
        return adapter_for(self._runtime, value, batch_size=self.batch_size)

    def _default_extensions(self) -> list[host.Extension]:
        with self._runtime.locked():
            obj = self.foreign()
            if isinstance(obj, api.Extension):
                return [self._adapt(obj)]
            return []

    def extensions(self) -> list[host.Extension]:
        return self._call(
            "extensions",
            default=self._default_extensions,
            convert=lambda values: [self._adapt(v) for v in _as_list(values, "extensions")],
        )


_QUERY_CAPABILITIES: tuple[tuple[type, type], ...] = (
    (api.IndexQueryHandler, IndexQueryHandlerTrampoline),
    (api.GlobalQueryHandler, GlobalQueryHandlerTrampoline),
    (api.RankedQueryHandler, RankedQueryHandlerTrampoline),
    (api.GeneratorQueryHandler, GeneratorQueryHandlerTrampoline),
    (api.QueryHandler, QueryHandlerTrampoline),
)


@functools.lru_cache(maxsize=None)
def _with_fallback(query_trampoline: type) -> type:
    name = query_trampoline.__name__.replace("Trampoline", "FallbackTrampoline")
    return type(query_trampoline)(name, (query_trampoline, FallbackHandlerTrampoline), {"__module__": __name__})


def trampoline_class(foreign_type: type) -> type | None:
    """Adapter class for the most specific capability combination of foreign_type."""
    query = next((t for cap, t in _QUERY_CAPABILITIES if issubclass(foreign_type, cap)), None)
    fallback = issubclass(foreign_type, api.FallbackHandler)
    if query is not None:
        return _with_fallback(query) if fallback else query
    if fallback:
        return FallbackHandlerTrampoline
    if issubclass(foreign_type, api.Extension):
        return ExtensionTrampoline
    return None


def adapter_for(runtime: ExtensionRuntime, foreign: Any, *, batch_size: int | None = None) -> host.Extension:
    """
    Host adapter for an extension object, created once per object.

    Objects already implementing the host interfaces are returned unchanged.
    Raises TypeError for objects that are not extensions.
    """
    if isinstance(foreign, host.Extension):
        return foreign
    with runtime.locked():
        adapter = runtime.cached_adapter(foreign)
        if adapter is None:
            cls = trampoline_class(type(foreign))
            if cls is None:
                raise TypeError(f"{type(foreign).__name__} is not an Extension")
            adapter = cls(runtime, foreign)
            runtime.cache_adapter(foreign, adapter)
        if batch_size is not None and isinstance(adapter, QueryHandlerTrampoline):
            adapter.batch_size = batch_size
    return adapter


def host_method(adapter: ForeignDispatch, name: str) -> Callable[..., Any]:
    """Host implementation of name bound to adapter, skipping extension dispatch."""
    return getattr(super(ForeignDispatch, adapter), name)
