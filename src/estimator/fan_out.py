# This module runs independent per-category calls on a bounded worker pool and joins them at a barrier.
# It exists so the orchestrator and the coverage summarizer share one structured-concurrency helper.
# The first failure, a caller cancellation, or an exceeded deadline stops the join and cancels queued work.
# Results are slotted by task index, so output order never depends on completion order.

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, TypeVar

from src.estimator.errors import EstimationCancelledError

T = TypeVar("T")

POLL_INTERVAL_SECONDS = 0.05


def run_fan_out(
    tasks: Sequence[Callable[[], T]],
    *,
    max_workers: int,
    deadline_seconds: float | None = None,
    cancel_event: threading.Event | None = None,
    abandon_event: threading.Event | None = None,
    label: str = "fan-out",
) -> list[T]:
    """Run every task concurrently and return their results in task order.

    Raises the first task exception as-is, or EstimationCancelledError when
    `cancel_event` is set or `deadline_seconds` elapses before all tasks finish.
    When the join exits early, `abandon_event` is set so tasks that are already
    running can notice and stop; tasks still queued never start.
    """

    if not tasks:
        return []

    results: list[Any] = [None] * len(tasks)
    started = time.monotonic()
    completed = False
    executor = ThreadPoolExecutor(max_workers=min(max_workers, len(tasks)), thread_name_prefix=label)
    try:
        future_to_index: dict[Future[T], int] = {executor.submit(task): index for index, task in enumerate(tasks)}
        pending = set(future_to_index)
        while pending:
            if cancel_event is not None and cancel_event.is_set():
                raise EstimationCancelledError(
                    f"{label} cancelled by caller",
                    details={"pending_tasks": len(pending)},
                )

            timeout = POLL_INTERVAL_SECONDS
            if deadline_seconds is not None:
                remaining = deadline_seconds - (time.monotonic() - started)
                if remaining <= 0:
                    raise EstimationCancelledError(
                        f"{label} exceeded deadline of {deadline_seconds:.2f}s",
                        details={"pending_tasks": len(pending), "deadline_seconds": deadline_seconds},
                    )
                timeout = min(timeout, remaining)

            done, pending = wait(pending, timeout=timeout, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    raise error
                results[future_to_index[future]] = future.result()
        completed = True
    finally:
        if not completed and abandon_event is not None:
            abandon_event.set()
        executor.shutdown(wait=False, cancel_futures=True)

    return results
