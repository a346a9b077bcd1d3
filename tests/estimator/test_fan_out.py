# This test file validates the bounded fan-out helper used for per-category work.
# It exists so result ordering and failure propagation stay independent of thread scheduling.
# The tests cover ordering, first-error propagation, cancellation, deadlines, and the abandon signal.

from __future__ import annotations

import threading
import time

import pytest

from src.estimator.errors import EstimationCancelledError
from src.estimator.fan_out import run_fan_out


def test_results_follow_task_order_not_completion_order() -> None:
    def make_task(index: int, delay: float):
        def task() -> int:
            time.sleep(delay)
            return index

        return task

    tasks = [make_task(0, 0.15), make_task(1, 0.0), make_task(2, 0.05)]

    assert run_fan_out(tasks, max_workers=3) == [0, 1, 2]


def test_empty_task_list() -> None:
    assert run_fan_out([], max_workers=2) == []


def test_first_failure_is_raised() -> None:
    def boom() -> int:
        raise KeyError("missing")

    with pytest.raises(KeyError):
        run_fan_out([lambda: 1, boom], max_workers=2)


def test_cancel_event_and_deadline() -> None:
    release = threading.Event()
    cancel_event = threading.Event()
    cancel_event.set()

    try:
        with pytest.raises(EstimationCancelledError, match="cancelled"):
            run_fan_out([lambda: release.wait(5)], max_workers=1, cancel_event=cancel_event)
        with pytest.raises(EstimationCancelledError, match="deadline"):
            run_fan_out([lambda: release.wait(5)], max_workers=1, deadline_seconds=0.1)
    finally:
        release.set()


def test_abandon_event_is_set_only_when_the_join_exits_early() -> None:
    release = threading.Event()
    finished = threading.Event()
    failed = threading.Event()

    assert run_fan_out([lambda: 1, lambda: 2], max_workers=2, abandon_event=finished) == [1, 2]
    assert finished.is_set() is False

    def slow() -> bool:
        return release.wait(5)

    try:
        with pytest.raises(EstimationCancelledError, match="deadline"):
            run_fan_out([slow], max_workers=1, deadline_seconds=0.1, abandon_event=failed)
    finally:
        release.set()
    assert failed.is_set() is True


def test_running_task_sees_abandon_event_after_first_failure() -> None:
    abandoned = threading.Event()
    noticed = threading.Event()

    def watcher() -> None:
        if abandoned.wait(5):
            noticed.set()

    def boom() -> None:
        time.sleep(0.05)
        raise KeyError("missing")

    with pytest.raises(KeyError):
        run_fan_out([watcher, boom], max_workers=2, abandon_event=abandoned)

    assert noticed.wait(2) is True
