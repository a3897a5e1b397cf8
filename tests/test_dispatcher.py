import threading

import pytest

from turntalker.services.dispatcher import SerialDispatcher


@pytest.fixture
def dispatcher():
    d = SerialDispatcher()
    d.start()
    yield d
    d.stop()


def test_posts_run_in_order(dispatcher) -> None:
    seen: list[int] = []
    done = threading.Event()
    for i in range(5):
        dispatcher.post(seen.append, i)
    dispatcher.post(done.set)
    assert done.wait(2)
    assert seen == [0, 1, 2, 3, 4]


def test_timer_fires_on_worker_thread(dispatcher) -> None:
    fired = threading.Event()
    names: list[str] = []

    def cb():
        names.append(threading.current_thread().name)
        fired.set()

    dispatcher.call_later(0.01, cb)
    assert fired.wait(2)
    assert names == ["dispatcher"]


def test_cancelled_timer_never_runs(dispatcher) -> None:
    fired = threading.Event()
    handle = dispatcher.call_later(0.05, fired.set)
    handle.cancel()
    handle.cancel()
    assert not fired.wait(0.2)


def test_failing_callback_does_not_stop_worker(dispatcher) -> None:
    done = threading.Event()

    def boom():
        raise RuntimeError("boom")

    dispatcher.post(boom)
    dispatcher.post(done.set)
    assert done.wait(2)


def test_wrap_forwards_arguments(dispatcher) -> None:
    got: list[str] = []
    done = threading.Event()
    forward = dispatcher.wrap(lambda text: (got.append(text), done.set()))
    forward("hello")
    assert done.wait(2)
    assert got == ["hello"]
