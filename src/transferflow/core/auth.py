"""
Authorization callback handling.

The same callback endpoint serves both the export and the import
authorization, so dispatch is by the current step rather than by the shape
of the incoming request.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from transferflow.core.errors import (
    AuthorizationDenied,
    MissingCredential,
    MissingPrecondition,
    OutOfSequence,
    TransferFlowError,
    TransportFailure,
)
from transferflow.core.logging import get_logger
from transferflow.core.models import AuthMode, FlowResult, Screen, Step
from transferflow.core.navigation import Router
from transferflow.core.progress import ProgressStateMachine
from transferflow.core.tokens import extract_token
from transferflow.core.transport import TransferApi

logger = get_logger(__name__)


class AuthOrchestrator:
    """Exchanges callback tokens for auth data and sequences the next hop."""

    def __init__(
        self,
        progress: ProgressStateMachine,
        api: TransferApi,
        router: Router,
        callback_url: Callable[[str], str],
    ) -> None:
        self.progress = progress
        self.api = api
        self.router = router
        self.callback_url = callback_url

    def handle_callback(self, service: str, params: Mapping[str, str]) -> FlowResult[str]:
        """Handle one redirect back from an external authorization service.

        ``service`` is the route parameter naming the calling service and
        ``params`` the query parameters of the callback.
        """
        log = logger.bind(service=service, step=self.progress.current_step.name)

        try:
            token = extract_token(params)
        except (MissingCredential, AuthorizationDenied) as e:
            log.warning("Authorization callback rejected", error_type=type(e).__name__, error=str(e))
            return FlowResult.failed(e)

        step = self.progress.current_step
        try:
            if step is Step.AUTHENTICATE_EXPORT:
                return self._complete_export(service, token)
            if step is Step.AUTHENTICATE_IMPORT:
                return self._complete_import(service, token)
            raise OutOfSequence(f"Authorization callback received at step {step.name}")
        except TransportFailure as e:
            log.warning("Authorization exchange failed", error=str(e))
            return FlowResult.failed(e)
        except (OutOfSequence, MissingPrecondition) as e:
            log.info("Resetting out-of-sequence flow", reason=str(e))
            return self._reset(e)

    def reserve_worker(self) -> FlowResult[str]:
        """Request a worker for the job and move on to the initiate screen."""
        transfer_id = self._transfer_id()
        self.api.reserve_worker(transfer_id)
        logger.info("Worker reservation requested", transfer_id=transfer_id)
        self.router.navigate(Screen.INITIATE)
        return FlowResult.ok(data=transfer_id, redirect=Screen.INITIATE)

    def _complete_export(self, service: str, token: str) -> FlowResult[str]:
        transfer_id = self._transfer_id()
        import_url = self.progress.import_url
        if import_url is None:
            raise MissingPrecondition("Import authorization URL is missing")

        auth_data = self.api.generate_auth_data(
            transfer_id, token, AuthMode.EXPORT, self.callback_url(service)
        )
        self.progress.auth_export_complete(auth_data)
        self.router.redirect_external(import_url)
        return FlowResult.ok(data=transfer_id, external_url=import_url)

    def _complete_import(self, service: str, token: str) -> FlowResult[str]:
        transfer_id = self._transfer_id()
        auth_data = self.api.generate_auth_data(
            transfer_id, token, AuthMode.IMPORT, self.callback_url(service)
        )
        self.progress.auth_import_complete(auth_data)
        return self.reserve_worker()

    def _transfer_id(self) -> str:
        transfer_id = self.progress.transfer_id
        if transfer_id is None:
            raise MissingPrecondition("Transfer id is missing")
        return transfer_id

    def _reset(self, error: TransferFlowError) -> FlowResult[str]:
        self.progress.reset()
        self.router.navigate(Screen.BEGIN)
        return FlowResult.failed(error, redirect=Screen.BEGIN)
