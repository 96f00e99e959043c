"""Batch streaming between extension generators and the host pull contract."""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from launchbridge.host.items import Item, RankItem
from launchbridge.utils.exceptions import BridgeError, ExtensionExecutionError

if TYPE_CHECKING:
    from launchbridge.plugins.runtime import ExtensionRuntime

DEFAULT_BATCH_SIZE = 10


class StreamState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


class BatchStream(Iterator[list[Item]]):
    """
    Host-side iterator over an extension generator's batches.

    The generator is obtained lazily on the first pull by calling start. Every
    pull runs under the execution lock; StopIteration ends the stream, any
    other exception is raised as ExtensionExecutionError. The generator is
    dropped under the lock once the stream ends, fails or is closed.
    """

    def __init__(
        self,
        runtime: "ExtensionRuntime",
        start: Callable[[], Any],
        convert: Callable[[Any], list[Item]],
        *,
        name: str = "items",
    ):
        self._runtime = runtime
        self._start = start
        self._convert = convert
        self._name = name
        self._generator: Any = None
        self.state = StreamState.NOT_STARTED

    def __iter__(self) -> "BatchStream":
        return self

    def __next__(self) -> list[Item]:
        if self.state is StreamState.EXHAUSTED:
            raise StopIteration
        with self._runtime.locked():
            try:
                if self.state is StreamState.NOT_STARTED:
                    self._begin()
                batch = next(self._generator)
                return self._convert(batch)
            except StopIteration:
                self._finish()
                raise
            except BridgeError:
                self._finish()
                raise
            except Exception as exc:
                self._finish()
                raise ExtensionExecutionError.from_exception(exc, self._name) from exc

    def _begin(self) -> None:
        generator = self._start()
        if not hasattr(generator, "__next__"):
            raise TypeError(f"'{self._name}' must return a generator, got {type(generator).__name__}")
        self._generator = generator
        self.state = StreamState.ACTIVE

    def _finish(self) -> None:
        self.state = StreamState.EXHAUSTED
        self._start = None
        self._generator = None

    def close(self) -> None:
        """Stop early. Closes the extension generator if it supports it."""
        if self.state is StreamState.EXHAUSTED:
            return
        with self._runtime.locked():
            generator = self._generator
            self._finish()
            close = getattr(generator, "close", None)
            if callable(close):
                try:
                    close()
                except Exception as exc:
                    logger.warning("Closing '{}' generator failed: {}: {}", self._name, type(exc).__name__, exc)

    def __del__(self):
        if getattr(self, "state", StreamState.EXHAUSTED) is not StreamState.EXHAUSTED:
            self.close()


def lazy_sort_batches(rank_items: Iterable[RankItem], batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[list[Item]]:
    """
    Yield items in descending score order, batch_size at a time.

    Equal scores keep their input order. Sorting is incremental: only the
    items handed out so far have been popped from the heap.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    heap = [(-float(r.score), index, r.item) for index, r in enumerate(rank_items)]
    heapq.heapify(heap)
    while heap:
        batch = [heapq.heappop(heap)[2] for _ in range(min(batch_size, len(heap)))]
        yield batch
