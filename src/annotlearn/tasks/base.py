"""Lifecycle primitive shared by the background workers.

Each worker runs on its own daemon thread. Workers sleep on a condition
variable that can be woken early by bump(), and all workers in a process
share one stop event so a single shutdown request reaches every loop.
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import psutil

from annotlearn.config import WorkerSettings

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    """Lifecycle states of a worker thread."""

    CREATED = "created"
    STARTED = "started"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


def log_memory_usage(name: str) -> None:
    """Log process and system memory at INFO level."""
    rss = psutil.Process().memory_info().rss
    mem = psutil.virtual_memory()
    logger.info(
        f"{name}: memory rss {rss / (1024 ** 2):.1f} MB, "
        f"system available {mem.available / (1024 ** 3):.1f} GB of {mem.total / (1024 ** 3):.1f} GB"
    )


class BaseWorker(ABC):
    """A background worker with start/stop, bump, wait and pause.

    Subclasses implement run(), which must return promptly once
    ``stopped`` becomes true.
    """

    name = "worker"

    def __init__(
        self,
        stop_event: Optional[threading.Event] = None,
        settings: Optional[WorkerSettings] = None,
    ):
        self.settings = settings or WorkerSettings()
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._condition = threading.Condition()
        self._bumped = False
        self._paused = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = WorkerState.CREATED

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def is_paused(self) -> bool:
        """True while the worker sits in a cooperative pause."""
        return self._paused.is_set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Spawn the worker thread.

        Raises:
            RuntimeError: If the worker was already started
        """
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._state = WorkerState.STARTED
        self._thread = threading.Thread(target=self._main, name=self.name, daemon=True)
        self._thread.start()

    def _main(self) -> None:
        self._state = WorkerState.RUNNING
        logger.info(f"{self.name}: starting")
        try:
            self.run()
        except Exception as e:
            logger.error(f"{self.name}: terminated by error: {e}", exc_info=True)
        finally:
            self._state = WorkerState.STOPPED
            logger.info(f"{self.name}: stopped")

    @abstractmethod
    def run(self) -> None:
        """Main loop, executed on the worker thread."""
        pass

    def request_stop(self) -> None:
        """Raise the shared stop signal and wake this worker."""
        if self._state in (WorkerState.STARTED, WorkerState.RUNNING):
            self._state = WorkerState.STOPPING
        self._stop_event.set()
        self.bump()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the thread to finish.

        Returns:
            True if the thread is no longer running
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Request stop and wait for the thread to exit."""
        logger.info(f"{self.name}: shutdown requested")
        self.request_stop()
        finished = self.join(self.settings.stop_timeout if timeout is None else timeout)
        if not finished:
            logger.warning(f"{self.name}: still running after stop timeout")
        return finished

    def bump(self) -> None:
        """Wake the worker from an idle wait.

        A bump made while the worker is busy is remembered, so the next
        wait returns immediately.
        """
        with self._condition:
            self._bumped = True
            self._condition.notify_all()

    def wait_task(self, seconds: float) -> bool:
        """Sleep until bumped, stopped or the timeout passes.

        Returns:
            True if woken by a bump
        """
        with self._condition:
            self._condition.wait_for(lambda: self._bumped or self.stopped, timeout=seconds)
            bumped = self._bumped
            self._bumped = False
        return bumped

    def pause_task(self, seconds: float) -> None:
        """Pause during heavy work; only a stop request ends it early."""
        self._paused.set()
        try:
            logger.info(f"{self.name}: paused")
            log_memory_usage(self.name)
            self._stop_event.wait(seconds)
            log_memory_usage(self.name)
        finally:
            self._paused.clear()

    def sleep_on_error(self) -> None:
        """Back off after an unexpected failure; stop ends it early."""
        self._stop_event.wait(self.settings.error_sleep)
