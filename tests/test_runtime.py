import copy
import gc
import threading

import pytest
from loguru import logger

from launchbridge.plugins.runtime import ExtensionRuntime, ForeignCallable, ForeignRef


class _Thing:
    pass


def test_foreign_ref_take_moves_ownership(runtime):
    obj = _Thing()
    ref = ForeignRef(runtime, obj)
    moved = ref.take()
    assert not ref
    assert ref.get() is None
    assert moved.get() is obj


def test_foreign_ref_cannot_be_copied(runtime):
    ref = ForeignRef(runtime, _Thing())
    with pytest.raises(TypeError):
        copy.copy(ref)
    with pytest.raises(TypeError):
        copy.deepcopy(ref)


def test_foreign_ref_releases_under_lock(runtime):
    seen = []

    def other_thread_can_acquire() -> bool:
        result = []

        def probe():
            got = runtime._lock.acquire(blocking=False)
            result.append(got)
            if got:
                runtime._lock.release()

        t = threading.Thread(target=probe)
        t.start()
        t.join()
        return result[0]

    class Finalized:
        def __del__(self):
            seen.append(other_thread_can_acquire())

    ref = ForeignRef(runtime, Finalized())
    ref.release()
    assert seen == [False]


def test_foreign_callable_logs_instead_of_raising(runtime):
    messages = []
    sink_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="WARNING")

    def boom():
        raise ValueError("bad action")

    try:
        ForeignCallable(runtime, boom)()
    finally:
        logger.remove(sink_id)
    assert any("ValueError: bad action" in m for m in messages)


def test_foreign_callable_rejects_non_callable(runtime):
    with pytest.raises(TypeError):
        ForeignCallable(runtime, 42)


def test_adapter_cache_entry_disappears_with_object(runtime):
    obj = _Thing()
    adapter = object()
    runtime.cache_adapter(obj, adapter)
    assert runtime.cached_adapter(obj) is adapter
    del obj
    gc.collect()
    assert runtime._adapters == {}


def test_locked_releases_on_exception(runtime):
    with pytest.raises(RuntimeError):
        with runtime.locked():
            raise RuntimeError("inside")

    acquired = []

    def other():
        got = runtime._lock.acquire(blocking=False)
        acquired.append(got)
        if got:
            runtime._lock.release()

    t = threading.Thread(target=other)
    t.start()
    t.join()
    assert acquired == [True]


def test_lock_is_reentrant(runtime):
    with runtime.locked():
        with runtime.locked():
            pass


def test_submit_runs_off_thread(runtime):
    caller = threading.get_ident()
    worker = runtime.submit(threading.get_ident).result(timeout=5)
    assert worker != caller


def test_submit_after_shutdown_raises():
    rt = ExtensionRuntime(max_workers=1)
    rt.initialize()
    assert rt.submit(lambda: 7).result(timeout=5) == 7
    rt.shutdown()
    with pytest.raises(RuntimeError):
        rt.submit(lambda: 1)
    with pytest.raises(RuntimeError):
        rt.initialize()


def test_initialize_adds_site_dirs_once(tmp_path):
    rt = ExtensionRuntime()
    rt.initialize([tmp_path])
    rt.add_site_dir(tmp_path)
    assert rt.site_dirs == [str(tmp_path)]
    assert rt.initialized
    rt.shutdown()
