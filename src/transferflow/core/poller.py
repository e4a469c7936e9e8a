"""
Worker assignment polling.

Polls the backend until a transfer worker has been assigned to the job and
has published its public key, up to a fixed number of attempts. Requests
are strictly sequential: the next one is only issued after the previous
response has been handled and the interval has elapsed.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum, auto

from transferflow.core.errors import PollTimeout, TransportFailure
from transferflow.core.logging import get_logger
from transferflow.core.models import ReservedWorker
from transferflow.core.tasks import BackgroundTask, TaskContext
from transferflow.core.transport import TransferApi

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 1.5
DEFAULT_MAX_ATTEMPTS = 20


class PollerState(Enum):
    """Lifecycle of a worker assignment poll."""

    IDLE = auto()
    POLLING = auto()
    RESOLVED = auto()
    TIMED_OUT = auto()
    CANCELLED = auto()


class WorkerAssignmentPoller(BackgroundTask[str]):
    """
    Bounded polling loop waiting for a worker public key.

    ``on_resolved`` is invoked exactly once with the key when one appears,
    and never after ``cancel()`` has been called.
    """

    def __init__(
        self,
        api: TransferApi,
        transfer_id: str,
        on_resolved: Callable[[str], None] | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        super().__init__(name="worker-poll")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.api = api
        self.transfer_id = transfer_id
        self.on_resolved = on_resolved
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.attempts = 0
        self.public_key: str | None = None
        self._state = PollerState.IDLE
        self._resolve_lock = threading.Lock()

    @property
    def state(self) -> PollerState:
        return self._state

    def cancel(self) -> bool:
        with self._resolve_lock:
            if self._state in (PollerState.RESOLVED, PollerState.TIMED_OUT, PollerState.CANCELLED):
                return False
            self.context.cancel()
            self._state = PollerState.CANCELLED
        logger.info("Worker polling cancelled", transfer_id=self.transfer_id, attempts=self.attempts)
        return True

    def execute(self, context: TaskContext) -> str:
        with self._resolve_lock:
            context.check_cancelled()
            self._state = PollerState.POLLING
        logger.info(
            "Waiting for worker assignment",
            transfer_id=self.transfer_id,
            max_attempts=self.max_attempts,
        )

        while self.attempts < self.max_attempts:
            context.check_cancelled()
            self.attempts += 1
            worker = self._poll_once()

            with self._resolve_lock:
                # A response arriving after cancellation is discarded
                context.check_cancelled()
                if worker.is_assigned:
                    self._state = PollerState.RESOLVED
                    self.public_key = worker.public_key
                    logger.info(
                        "Worker assigned",
                        transfer_id=self.transfer_id,
                        attempts=self.attempts,
                    )
                    break

            if self.attempts < self.max_attempts:
                context.sleep(self.interval_seconds)

        if self._state is PollerState.RESOLVED:
            assert self.public_key is not None
            if self.on_resolved is not None:
                self.on_resolved(self.public_key)
            return self.public_key

        with self._resolve_lock:
            context.check_cancelled()
            self._state = PollerState.TIMED_OUT
        logger.warning(
            "Worker assignment timed out",
            transfer_id=self.transfer_id,
            attempts=self.attempts,
        )
        raise PollTimeout(self.attempts)

    def _poll_once(self) -> ReservedWorker:
        try:
            return self.api.get_reserved_worker(self.transfer_id)
        except TransportFailure as e:
            logger.warning(
                "Worker status request failed",
                transfer_id=self.transfer_id,
                attempt=self.attempts,
                error=str(e),
            )
            return ReservedWorker()

