"""
TransferFlow session.

Wires the state machine, the backend API, the authorization callback
handling, worker polling and credential packaging for one storage scope,
and drives the transfer flow from data selection to the start request.
"""

from __future__ import annotations

import threading
import uuid
from typing import Any

from transferflow.core.auth import AuthOrchestrator
from transferflow.core.config import TransferFlowConfig, load_config
from transferflow.core.encryption import CredentialEncryptor
from transferflow.core.errors import (
    InvalidSelection,
    MissingPrecondition,
    OutOfSequence,
    TransferFlowError,
    TransportFailure,
)
from transferflow.core.logging import get_logger, setup_logging
from transferflow.core.models import (
    EncryptionScheme,
    FlowResult,
    Screen,
    ServiceDescriptions,
    Step,
    TransferState,
)
from transferflow.core.navigation import LoggingRouter, Router, check_entry
from transferflow.core.poller import PollerState, WorkerAssignmentPoller
from transferflow.core.progress import ProgressStateMachine
from transferflow.core.store import FileStateStore, StateStore
from transferflow.core.tasks import TaskStatus
from transferflow.core.transport import RequestsTransport, TransferApi, Transport

logger = get_logger(__name__)


class TransferSession:
    """
    One transfer flow bound to a storage scope.

    Every collaborator is passed in explicitly or built from the
    configuration; nothing is looked up globally.
    """

    def __init__(
        self,
        config: TransferFlowConfig | None = None,
        transport: Transport | None = None,
        store: StateStore | None = None,
        router: Router | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.config = config or load_config()

        setup_logging(self.config.logging)

        self.transport = transport or RequestsTransport(
            self.config.api.base_url, timeout=self.config.api.timeout_seconds
        )
        self.store = store or FileStateStore(self.config.storage.state_directory)
        self.router: Router = router or LoggingRouter()

        self.progress = ProgressStateMachine(self.store, key=self.config.storage.state_key)
        self.api = TransferApi(self.transport)
        self.encryptor = CredentialEncryptor(EncryptionScheme(self.config.encryption.scheme))
        self.auth = AuthOrchestrator(
            self.progress, self.api, self.router, self.config.api.callback_url
        )
        self.poller: WorkerAssignmentPoller | None = None
        self._initiate_lock = threading.Lock()

        logger.info(
            "Session started",
            session_id=self.id,
            step=self.progress.current_step.name,
            scheme=self.encryptor.scheme.value,
        )

    # Navigation

    def enter(self, screen: Screen) -> FlowResult[TransferState]:
        """Check entry to ``screen``; on denial reset and redirect to BEGIN."""
        try:
            check_entry(screen, self.progress.state)
        except (OutOfSequence, MissingPrecondition) as e:
            logger.info("Screen entry denied", screen=screen.value, reason=str(e))
            return self._reset_to_begin(e)
        return FlowResult.ok(data=self.progress.state, redirect=screen)

    def status(self) -> TransferState:
        """Read-only snapshot of the transfer state."""
        return self.progress.state

    # Selection

    def begin(self) -> FlowResult[TransferState]:
        self.progress.begin()
        self.router.navigate(Screen.DATA)
        return FlowResult.ok(data=self.progress.state, redirect=Screen.DATA)

    def list_data_types(self) -> FlowResult[list[str]]:
        try:
            return FlowResult.ok(data=self.api.list_data_types())
        except TransportFailure as e:
            return FlowResult.failed(e)

    def list_services(self, data_type: str | None = None) -> FlowResult[ServiceDescriptions]:
        data_type = data_type or self.progress.data_type
        if data_type is None:
            return FlowResult.failed(InvalidSelection("No data type selected"))
        try:
            return FlowResult.ok(data=self.api.list_services(data_type))
        except TransportFailure as e:
            return FlowResult.failed(e)

    def select_data(self, data_type: str, validate: bool = True) -> FlowResult[TransferState]:
        """Record the data type and move on to service selection.

        With ``validate`` the backend must list ``data_type``.
        """
        if validate:
            listed = self.list_data_types()
            if not listed.success:
                return FlowResult.failed(listed.error)  # type: ignore[arg-type]
            if data_type not in (listed.data or []):
                return FlowResult.failed(
                    InvalidSelection(f"Unsupported data type: {data_type}")
                )

        self.progress.data_selected(data_type)
        self.router.navigate(Screen.SERVICES)
        return FlowResult.ok(data=self.progress.state, redirect=Screen.SERVICES)

    def select_services(
        self, export_service: str, import_service: str, validate: bool = True
    ) -> FlowResult[TransferState]:
        entered = self.enter(Screen.SERVICES)
        if not entered.success:
            return entered

        if validate:
            listed = self.list_services()
            if not listed.success:
                return FlowResult.failed(listed.error)  # type: ignore[arg-type]
            services = listed.data or ServiceDescriptions()
            if export_service not in services.export_services:
                return FlowResult.failed(
                    InvalidSelection(f"Unsupported export service: {export_service}")
                )
            if import_service not in services.import_services:
                return FlowResult.failed(
                    InvalidSelection(f"Unsupported import service: {import_service}")
                )

        self.progress.services_selected(export_service, import_service)
        self.router.navigate(Screen.CREATE)
        return FlowResult.ok(data=self.progress.state, redirect=Screen.CREATE)

    # Job creation and authorization

    def create_transfer(self) -> FlowResult[TransferState]:
        """Create the transfer job and send the user to the export service."""
        entered = self.enter(Screen.CREATE)
        if not entered.success:
            return entered

        state = self.progress.state
        if state.export_service is None or state.import_service is None:
            return self._reset_to_begin(MissingPrecondition("Services not selected"))

        try:
            job = self.api.create_transfer_job(
                export_service=state.export_service,
                import_service=state.import_service,
                export_callback_url=self.config.api.callback_url(state.export_service),
                import_callback_url=self.config.api.callback_url(state.import_service),
                data_type=state.data_type,  # type: ignore[arg-type]
                encryption_scheme=self.encryptor.scheme,
            )
        except TransportFailure as e:
            return FlowResult.failed(e)

        self.progress.create_complete(job.id, job.export_url, job.import_url)
        self.router.redirect_external(job.export_url)
        return FlowResult.ok(data=self.progress.state, external_url=job.export_url)

    def handle_callback(self, service: str, params: dict[str, str]) -> FlowResult[str]:
        """Handle an authorization redirect back from ``service``."""
        return self.auth.handle_callback(service, params)

    def reserve_worker(self) -> FlowResult[str]:
        """Retry the worker reservation after a failed attempt."""
        if self.progress.current_step is not Step.WORKER_RESERVED:
            return self._reset_to_begin(
                OutOfSequence(f"Cannot reserve a worker at step {self.progress.current_step.name}")
            )
        try:
            return self.auth.reserve_worker()
        except TransportFailure as e:
            return FlowResult.failed(e)

    # Initiation

    def initiate(self, wait: bool = True, timeout: float | None = None) -> FlowResult[str]:
        """Wait for a worker, package the credentials and start the transfer.

        With ``wait`` False the poll runs in the background and the result
        only reports that polling started.
        """
        if self.progress.current_step is Step.RUNNING:
            return FlowResult.ok(data=self.progress.transfer_id, redirect=Screen.RUNNING)

        entered = self.enter(Screen.INITIATE)
        if not entered.success:
            return FlowResult.failed(entered.error, redirect=entered.redirect)  # type: ignore[arg-type]

        # One attempt at a time; a new poll only follows a finished one
        with self._initiate_lock:
            current = self.poller
            if (
                current is not None
                and not current.is_finished
                and current.state is not PollerState.CANCELLED
            ):
                poller = current
            else:
                poller = WorkerAssignmentPoller(
                    self.api,
                    self.progress.transfer_id,  # type: ignore[arg-type]
                    on_resolved=self._start_transfer,
                    interval_seconds=self.config.polling.interval_seconds,
                    max_attempts=self.config.polling.max_attempts,
                )
                self.poller = poller
                poller.start()

        if not wait:
            return FlowResult.ok(data=self.progress.transfer_id)
        poller.wait(timeout)
        return self.initiation_result()

    def initiation_result(self) -> FlowResult[str]:
        """Outcome of the most recent initiation attempt."""
        poller = self.poller
        if poller is None or not poller.is_finished:
            return FlowResult.ok(data=self.progress.transfer_id)

        result = poller.result
        if poller.status is TaskStatus.COMPLETED:
            return FlowResult.ok(data=self.progress.transfer_id, redirect=Screen.RUNNING)
        if result is not None and isinstance(result.error, TransferFlowError):
            return FlowResult.failed(result.error)
        return FlowResult.failed(
            TransferFlowError(f"Initiation ended with status {poller.status.name}")
        )

    def _start_transfer(self, worker_public_key: str) -> None:
        self.progress.worker_reserved(worker_public_key)

        state = self.progress.state
        credentials = self.encryptor.package(
            state.export_auth_data,  # type: ignore[arg-type]
            state.import_auth_data,  # type: ignore[arg-type]
            worker_public_key,
        )
        self.api.start_transfer_job(state.transfer_id, credentials)  # type: ignore[arg-type]
        self.progress.initiated()
        logger.info("Transfer started", transfer_id=state.transfer_id)
        self.router.navigate(Screen.RUNNING)

    # Reset and teardown

    def reset(self) -> FlowResult[TransferState]:
        """Abandon the flow: stop polling, clear state, return to BEGIN."""
        self._cancel_poller()
        self.progress.reset()
        self.router.navigate(Screen.BEGIN)
        return FlowResult.ok(data=self.progress.state, redirect=Screen.BEGIN)

    def _reset_to_begin(self, error: TransferFlowError) -> FlowResult[Any]:
        self._cancel_poller()
        self.progress.reset()
        self.router.navigate(Screen.BEGIN)
        return FlowResult.failed(error, redirect=Screen.BEGIN)

    def _cancel_poller(self) -> None:
        if self.poller is not None:
            self.poller.cancel()

    def close(self) -> None:
        """Stop background work and release the transport."""
        self._cancel_poller()
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()
        logger.info("Session closed", session_id=self.id, step=self.progress.current_step.name)

    def __enter__(self) -> TransferSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
