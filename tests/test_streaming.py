import threading

import pytest

from launchbridge.host import RankItem, StandardItem
from launchbridge.plugins.streaming import BatchStream, StreamState, lazy_sort_batches
from launchbridge.utils.exceptions import ExtensionExecutionError


def _item(name: str) -> StandardItem:
    return StandardItem(id=name, text=name)


def _ids(batch):
    return [item.id() for item in batch]


def test_lazy_sort_orders_by_descending_score_and_keeps_ties_stable():
    ranked = [RankItem(_item("a"), 0.5), RankItem(_item("b"), 0.9), RankItem(_item("c"), 0.1), RankItem(_item("d"), 0.5)]
    batches = [_ids(b) for b in lazy_sort_batches(ranked, 2)]
    assert batches == [["b", "a"], ["d", "c"]]


def test_lazy_sort_batch_sizes():
    ranked = [RankItem(_item(str(i)), float(i)) for i in range(25)]
    sizes = [len(b) for b in lazy_sort_batches(ranked, 10)]
    assert sizes == [10, 10, 5]


def test_lazy_sort_empty_and_invalid_batch_size():
    assert list(lazy_sort_batches([], 10)) == []
    with pytest.raises(ValueError):
        next(lazy_sort_batches([RankItem(_item("a"), 1.0)], 0))


def _stream(runtime, start):
    return BatchStream(runtime, start, list)


def test_stream_yields_batches_then_exhausts(runtime):
    def gen():
        yield [_item("a"), _item("b")]
        yield [_item("c")]

    stream = _stream(runtime, gen)
    assert [_ids(b) for b in stream] == [["a", "b"], ["c"]]
    assert stream.state is StreamState.EXHAUSTED
    with pytest.raises(StopIteration):
        next(stream)


def test_stream_starts_lazily(runtime):
    started = []

    def gen():
        started.append(True)
        yield [_item("a")]

    stream = _stream(runtime, lambda: (started.append("called"), gen())[1])
    assert started == []
    assert stream.state is StreamState.NOT_STARTED
    next(stream)
    assert started == ["called", True]
    assert stream.state is StreamState.ACTIVE


def test_stream_translates_generator_errors(runtime):
    def gen():
        yield [_item("a")]
        raise ValueError("boom")

    stream = _stream(runtime, gen)
    next(stream)
    with pytest.raises(ExtensionExecutionError) as exc_info:
        next(stream)
    assert str(exc_info.value) == "ValueError: boom"
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert stream.state is StreamState.EXHAUSTED


def test_stream_requires_a_generator(runtime):
    stream = _stream(runtime, lambda: [[_item("a")]])
    with pytest.raises(ExtensionExecutionError) as exc_info:
        next(stream)
    assert "must return a generator" in str(exc_info.value)


def test_close_closes_the_generator(runtime):
    closed = []

    def gen():
        try:
            yield [_item("a")]
            yield [_item("b")]
        finally:
            closed.append(True)

    stream = _stream(runtime, gen)
    next(stream)
    stream.close()
    assert closed == [True]
    assert stream.state is StreamState.EXHAUSTED
    with pytest.raises(StopIteration):
        next(stream)


def test_lock_is_held_while_generator_runs(runtime):
    observed = []

    def probe_lock():
        got = runtime._lock.acquire(blocking=False)
        observed.append(got)
        if got:
            runtime._lock.release()

    def gen():
        t = threading.Thread(target=probe_lock)
        t.start()
        t.join()
        yield [_item("a")]

    next(_stream(runtime, gen))
    assert observed == [False]
