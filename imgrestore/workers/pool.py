"""
Restore Pool - Bounded CPU Worker Pool
======================================
Runs restore requests on a thread pool sized to the CPU count.

Technical Notes:
- numpy and OpenCV release the GIL inside pixel kernels, so threads scale
  with cores; more workers than cores only adds contention
- Admission is bounded to max_workers + max_queue in-flight tasks so queued
  source buffers cannot grow without limit
- Backpressure policy "reject" fails fast, "wait" blocks up to admit_timeout
- A per-request timeout sets the task's cancel event; pipelines poll it
  between stages, a running blur cannot be interrupted
"""

import logging
import os
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Optional

from imgrestore.core.errors import PoolSaturated, ProcessingCancelled, ProcessingTimeout

logger = logging.getLogger(__name__)

BACKPRESSURE_POLICIES = ("reject", "wait")


@dataclass
class PoolConfig:
    """Sizing and backpressure settings for RestorePool."""
    max_workers: Optional[int] = None  # None = os.cpu_count()
    max_queue: int = 16
    policy: str = "reject"  # "reject" | "wait"
    admit_timeout: Optional[float] = 30.0  # seconds, "wait" policy only
    timeout: Optional[float] = 120.0  # per-request seconds, None = no limit

    def __post_init__(self):
        if self.policy not in BACKPRESSURE_POLICIES:
            raise ValueError(f"Unknown backpressure policy: {self.policy}")
        if self.max_workers is None:
            self.max_workers = os.cpu_count() or 1
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_queue < 0:
            raise ValueError("max_queue cannot be negative")


class RestoreTask:
    """Handle for one submitted request."""

    def __init__(self, future: Future, cancel_event: threading.Event):
        self._future = future
        self._cancel_event = cancel_event

    @property
    def future(self) -> Future:
        return self._future

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self):
        """Request cooperative cancellation; drops the task if not started yet."""
        self._cancel_event.set()
        self._future.cancel()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the result.

        Raises:
            ProcessingTimeout: If the task did not finish in time. The task
                               is asked to cancel before this is raised.
            ProcessingCancelled: If the task was cancelled before it ran.
        """
        try:
            return self._future.result(timeout=timeout)
        except FutureTimeout:
            self.cancel()
            raise ProcessingTimeout(f"Request exceeded {timeout}s")
        except CancelledError:
            raise ProcessingCancelled("Request cancelled before it started")


class RestorePool:
    """
    Bounded worker pool for restore requests.

    Usage:
        with RestorePool(PoolConfig(max_queue=4)) as pool:
            result = pool.run(service.de_mosaic, data, form)

    Submitted callables receive a `should_cancel` keyword argument.
    """

    def __init__(self, config: Optional[PoolConfig] = None):
        self.config = config or PoolConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="restore",
        )
        self._slots = threading.BoundedSemaphore(
            self.config.max_workers + self.config.max_queue
        )
        logger.debug(
            "RestorePool started: workers=%d queue=%d policy=%s",
            self.config.max_workers, self.config.max_queue, self.config.policy
        )

    def _admit(self):
        if self.config.policy == "wait":
            acquired = self._slots.acquire(timeout=self.config.admit_timeout)
        else:
            acquired = self._slots.acquire(blocking=False)
        if not acquired:
            logger.warning("RestorePool saturated, request rejected")
            raise PoolSaturated("Too many requests in flight")

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> RestoreTask:
        """
        Queue `fn(*args, should_cancel=..., **kwargs)`.

        Raises:
            PoolSaturated: If no slot is free under the backpressure policy.
        """
        self._admit()
        cancel_event = threading.Event()

        def call():
            if cancel_event.is_set():
                raise ProcessingCancelled("Cancelled before start")
            return fn(*args, should_cancel=cancel_event.is_set, **kwargs)

        try:
            future = self._executor.submit(call)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(lambda _: self._slots.release())
        return RestoreTask(future, cancel_event)

    def run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Submit and wait, honouring the configured per-request timeout."""
        return self.submit(fn, *args, **kwargs).result(timeout=self.config.timeout)

    def shutdown(self, wait: bool = True, cancel_pending: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)

    def __enter__(self) -> "RestorePool":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True, cancel_pending=exc_type is not None)
