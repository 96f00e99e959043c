"""Host-side extension interfaces and their native default behavior."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator

from launchbridge.host.items import IndexItem, Item, RankItem
from launchbridge.host.query import Matcher, MatchConfig, Query


class Extension(ABC):
    """Anything the host can register: identified, named, described."""

    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def description(self) -> str: ...


class QueryHandler(Extension):
    """Extension that answers triggered queries."""

    def __init__(self) -> None:
        super().__init__()
        self._trigger: str | None = None
        self._fuzzy = False

    def synopsis(self, query: str) -> str:
        return ""

    def allow_trigger_remap(self) -> bool:
        return True

    def default_trigger(self) -> str:
        return f"{self.id()} "

    def trigger(self) -> str:
        """Active trigger: the remapped one if set, else the default."""
        return self._trigger if self._trigger is not None else self.default_trigger()

    def set_trigger(self, trigger: str) -> None:
        self._trigger = trigger

    def supports_fuzzy_matching(self) -> bool:
        return False

    def fuzzy_matching_enabled(self) -> bool:
        return self._fuzzy

    def set_fuzzy_matching(self, enabled: bool) -> None:
        self._fuzzy = bool(enabled)


class GeneratorQueryHandler(QueryHandler):
    """Query handler producing results as a lazy sequence of batches."""

    @abstractmethod
    def items(self, context: Query) -> Iterator[list[Item]]: ...


class RankedQueryHandler(GeneratorQueryHandler):
    """Query handler that scores items; batches are derived by sorting the scores."""

    batch_size = 10

    @abstractmethod
    def rank_items(self, context: Query) -> list[RankItem]: ...

    def items(self, context: Query) -> Iterator[list[Item]]:
        from launchbridge.plugins.streaming import lazy_sort_batches

        return lazy_sort_batches(self.rank_items(context), self.batch_size)


class GlobalQueryHandler(RankedQueryHandler):
    """Ranked handler that also takes part in untriggered (global) queries."""

    def handle_global_query(self, context: Query) -> list[RankItem]:
        return self.rank_items(context)


class IndexQueryHandler(GlobalQueryHandler):
    """Global handler backed by a host-maintained string index."""

    def __init__(self) -> None:
        super().__init__()
        self._index: list[IndexItem] = []
        self._index_lock = threading.Lock()

    @abstractmethod
    def update_index_items(self) -> None: ...

    def set_index_items(self, index_items: list[IndexItem]) -> None:
        with self._index_lock:
            self._index = list(index_items)

    def index_items(self) -> list[IndexItem]:
        with self._index_lock:
            return list(self._index)

    def supports_fuzzy_matching(self) -> bool:
        return True

    def set_fuzzy_matching(self, enabled: bool) -> None:
        changed = bool(enabled) != self.fuzzy_matching_enabled()
        super().set_fuzzy_matching(enabled)
        if changed:
            self.update_index_items()

    def rank_items(self, context: Query) -> list[RankItem]:
        matcher = Matcher(context.string, MatchConfig(fuzzy=self.fuzzy_matching_enabled()))
        best: dict[int, RankItem] = {}
        for entry in self.index_items():
            if not context.isValid:
                break
            match = matcher.match(entry.string)
            if not match:
                continue
            key = id(entry.item)
            current = best.get(key)
            if current is None or match.score > current.score:
                best[key] = RankItem(entry.item, match.score)
        return list(best.values())


class FallbackHandler(Extension):
    """Extension offering items when nothing else matched."""

    @abstractmethod
    def fallbacks(self, query: str) -> list[Item]: ...


class PluginInstance(ABC):
    """Root object of a loaded plugin."""

    @abstractmethod
    def extensions(self) -> list[Extension]: ...
