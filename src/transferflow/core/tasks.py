"""
TransferFlow background tasks.

A task owns its own lifecycle: it is started, runs on a daemon thread, and
can be cancelled cooperatively through its ``TaskContext``.
"""

from __future__ import annotations

import threading
import traceback
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Generic, TypeVar

from transferflow.core.logging import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


class TaskStatus(Enum):
    """Status of a task execution."""

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


class TaskCancelledException(Exception):
    """Raised inside a task when it has been cancelled."""


@dataclass
class TaskResult(Generic[T]):
    """Result of a finished task."""

    success: bool
    data: T | None = None
    error: BaseException | None = None
    error_traceback: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


class TaskContext:
    """Cancellation token passed to a running task."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation of the task."""
        self._cancelled.set()

    def check_cancelled(self) -> None:
        """Raise if cancellation has been requested."""
        if self._cancelled.is_set():
            raise TaskCancelledException("Task was cancelled")

    def sleep(self, seconds: float) -> None:
        """Wait up to ``seconds``, waking early and raising on cancellation."""
        if seconds > 0 and self._cancelled.wait(seconds):
            raise TaskCancelledException("Task was cancelled while waiting")
        self.check_cancelled()


class BackgroundTask(ABC, Generic[T]):
    """Base class for a self-managed cancellable task."""

    def __init__(self, name: str) -> None:
        self.id = str(uuid.uuid4())
        self.name = name
        self.status = TaskStatus.PENDING
        self.context = TaskContext()
        self.result: TaskResult[T] | None = None
        self._thread: threading.Thread | None = None
        self._done = threading.Event()
        self._status_callbacks: list[Callable[[TaskStatus], None]] = []

    @abstractmethod
    def execute(self, context: TaskContext) -> T:
        """Run the task body. Subclasses must implement this."""

    def start(self) -> None:
        """Run the task on a daemon thread."""
        if self.status is not TaskStatus.PENDING:
            raise RuntimeError(f"Task {self.name} already started")
        self._thread = threading.Thread(
            target=self._run,
            name=f"{self.name}-{self.id[:8]}",
            daemon=True,
        )
        self._thread.start()

    def run_sync(self) -> TaskResult[T]:
        """Run the task on the calling thread and return its result."""
        if self.status is not TaskStatus.PENDING:
            raise RuntimeError(f"Task {self.name} already started")
        self._run()
        assert self.result is not None
        return self.result

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the task already finished."""
        if self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED):
            return False
        self.context.cancel()
        logger.info("Task cancellation requested", task_id=self.id, task_name=self.name)
        return True

    def wait(self, timeout: float | None = None) -> TaskResult[T] | None:
        """Block until the task finishes or ``timeout`` elapses."""
        self._done.wait(timeout)
        return self.result

    @property
    def is_finished(self) -> bool:
        return self._done.is_set()

    def add_status_callback(self, callback: Callable[[TaskStatus], None]) -> None:
        """Add a callback to be notified of status changes."""
        self._status_callbacks.append(callback)

    def _run(self) -> None:
        started = datetime.now()
        self._set_status(TaskStatus.RUNNING)
        logger.debug("Task started", task_id=self.id, task_name=self.name)

        try:
            data = self.execute(self.context)
            self.result = TaskResult(
                success=True, data=data, start_time=started, end_time=datetime.now()
            )
            self._set_status(TaskStatus.COMPLETED)

        except TaskCancelledException as e:
            self.result = TaskResult(
                success=False, error=e, start_time=started, end_time=datetime.now()
            )
            self._set_status(TaskStatus.CANCELLED)
            logger.info("Task cancelled", task_id=self.id, task_name=self.name)

        except Exception as e:
            self.result = TaskResult(
                success=False,
                error=e,
                error_traceback=traceback.format_exc(),
                start_time=started,
                end_time=datetime.now(),
            )
            self._set_status(TaskStatus.FAILED)
            logger.warning(
                "Task failed",
                task_id=self.id,
                task_name=self.name,
                error_type=type(e).__name__,
                error=str(e),
            )

        finally:
            self._done.set()

    def _set_status(self, status: TaskStatus) -> None:
        self.status = status
        for callback in self._status_callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.warning("Status callback error", error=str(e))
