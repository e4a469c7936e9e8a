"""
TransferFlow progress state machine.

Owns the step and the accumulated fields of a transfer. Every mutation is
read-modify-persist under a lock, so a restart at any point resumes exactly
where the user left off.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable

from transferflow.core.logging import get_logger
from transferflow.core.models import Step, TransferState
from transferflow.core.store import StateStore

logger = get_logger(__name__)


class ProgressStateMachine:
    """Single owner of a ``TransferState`` mirrored to a ``StateStore``."""

    def __init__(self, store: StateStore, key: str = "appstate") -> None:
        self._store = store
        self._key = key
        self._lock = threading.RLock()
        self._state = self._restore()

    def _restore(self) -> TransferState:
        serialized = self._store.get(self._key)
        if serialized is not None:
            try:
                state = TransferState.from_dict(json.loads(serialized))
                logger.info("Transfer state restored", step=state.step.name)
                return state
            except (ValueError, TypeError) as e:
                logger.warning("Discarding unreadable transfer state", error=str(e))
                self._store.remove(self._key)

        state = TransferState()
        self._save(state)
        return state

    def _save(self, state: TransferState) -> None:
        self._store.set(self._key, json.dumps(state.to_dict()))

    def _purge(self) -> None:
        self._store.remove(self._key)

    def _transition(self, mutate: Callable[[TransferState], None]) -> None:
        with self._lock:
            previous = self._state.step
            # Memory only advances once the record is persisted
            updated = self._state.copy()
            mutate(updated)
            self._save(updated)
            self._state = updated
            if previous is not updated.step:
                logger.info("Transfer step changed", from_step=previous.name, to_step=self._state.step.name)

    # Accessors

    @property
    def state(self) -> TransferState:
        """Snapshot of the current state."""
        with self._lock:
            return self._state.copy()

    @property
    def current_step(self) -> Step:
        return self._state.step

    @property
    def transfer_id(self) -> str | None:
        return self._state.transfer_id

    @property
    def data_type(self) -> str | None:
        return self._state.data_type

    @property
    def export_service(self) -> str | None:
        return self._state.export_service

    @property
    def import_service(self) -> str | None:
        return self._state.import_service

    @property
    def export_url(self) -> str | None:
        return self._state.export_url

    @property
    def import_url(self) -> str | None:
        return self._state.import_url

    @property
    def export_auth_data(self) -> str | None:
        return self._state.export_auth_data

    @property
    def import_auth_data(self) -> str | None:
        return self._state.import_auth_data

    @property
    def worker_public_key(self) -> str | None:
        return self._state.worker_public_key

    # Transitions

    def begin(self) -> None:
        def mutate(state: TransferState) -> None:
            if state.step.before(Step.DATA):
                state.step = Step.DATA

        self._transition(mutate)

    def data_selected(self, data_type: str) -> None:
        def mutate(state: TransferState) -> None:
            state.data_type = data_type
            if state.step.before(Step.SERVICES):
                state.step = Step.SERVICES

        self._transition(mutate)

    def services_selected(self, export_service: str, import_service: str) -> None:
        """Record both services and land exactly on CREATE, allowing re-selection."""

        def mutate(state: TransferState) -> None:
            state.export_service = export_service
            state.import_service = import_service
            # Fields recorded after CREATE belong to the superseded selection
            state.transfer_id = None
            state.export_url = None
            state.import_url = None
            state.export_auth_data = None
            state.import_auth_data = None
            state.worker_public_key = None
            state.step = Step.CREATE

        self._transition(mutate)

    def create_complete(self, transfer_id: str, export_url: str, import_url: str) -> None:
        def mutate(state: TransferState) -> None:
            state.transfer_id = transfer_id
            state.export_url = export_url
            state.import_url = import_url
            state.step = Step.AUTHENTICATE_EXPORT

        self._transition(mutate)

    def auth_export_complete(self, export_auth_data: str) -> None:
        def mutate(state: TransferState) -> None:
            state.export_auth_data = export_auth_data
            state.step = Step.AUTHENTICATE_IMPORT

        self._transition(mutate)

    def auth_import_complete(self, import_auth_data: str) -> None:
        def mutate(state: TransferState) -> None:
            state.import_auth_data = import_auth_data
            state.step = Step.WORKER_RESERVED

        self._transition(mutate)

    def worker_reserved(self, worker_public_key: str) -> None:
        def mutate(state: TransferState) -> None:
            state.worker_public_key = worker_public_key
            state.step = Step.INITIATE

        self._transition(mutate)

    def initiated(self) -> None:
        """Mark the transfer running and purge the persisted record.

        The in-memory state keeps its values for the lifetime of this object.
        """
        with self._lock:
            previous = self._state.step
            self._purge()
            self._state.step = Step.RUNNING
        logger.info("Transfer step changed", from_step=previous.name, to_step=Step.RUNNING.name)

    def reset(self) -> None:
        """Return to BEGIN with every other field absent and purge the record."""
        with self._lock:
            previous = self._state.step
            self._purge()
            self._state = TransferState()
        logger.info("Transfer state reset", from_step=previous.name)
