"""
Tests for transferflow.core.auth module.
"""

import pytest

from transferflow.core.auth import AuthOrchestrator
from transferflow.core.errors import (
    AuthorizationDenied,
    MissingCredential,
    OutOfSequence,
    TransportFailure,
)
from transferflow.core.models import Screen, Step
from transferflow.core.progress import ProgressStateMachine
from transferflow.core.transport import TransferApi


def callback_url(service: str) -> str:
    return f"http://client.test/callback/{service}"


@pytest.fixture
def progress(memory_store) -> ProgressStateMachine:
    progress = ProgressStateMachine(memory_store)
    progress.begin()
    progress.data_selected("PHOTOS")
    progress.services_selected("ServiceA", "ServiceB")
    progress.create_complete("tx1", "urlA", "urlB")
    return progress


@pytest.fixture
def orchestrator(progress, fake_transport, router) -> AuthOrchestrator:
    return AuthOrchestrator(progress, TransferApi(fake_transport), router, callback_url)


class TestExportCallback:
    """Callbacks arriving at AUTHENTICATE_EXPORT."""

    def test_export_completes_and_redirects_to_import(
        self, orchestrator, progress, fake_transport, router
    ) -> None:
        fake_transport.on("POST", "transfer/tx1/generate", {"authData": "exportData"})

        result = orchestrator.handle_callback("ServiceA", {"code": "c1"})

        assert result.success
        assert result.external_url == "urlB"
        assert router.last == "urlB"
        assert progress.current_step is Step.AUTHENTICATE_IMPORT
        assert progress.export_auth_data == "exportData"
        payload = fake_transport.payloads("POST", "transfer/tx1/generate")[0]
        assert payload["mode"] == "EXPORT"
        assert payload["token"] == "c1"
        assert payload["callbackUrl"] == "http://client.test/callback/ServiceA"

    def test_oauth1_verifier(self, orchestrator, progress, fake_transport) -> None:
        fake_transport.on("POST", "transfer/tx1/generate", {"authData": "exportData"})

        orchestrator.handle_callback("ServiceA", {"oauth_verifier": "v1"})

        assert fake_transport.payloads("POST", "transfer/tx1/generate")[0]["token"] == "v1"

    def test_missing_token(self, orchestrator, progress, fake_transport) -> None:
        result = orchestrator.handle_callback("ServiceA", {"state": "s"})

        assert not result.success
        assert isinstance(result.error, MissingCredential)
        assert result.error.user_visible
        assert progress.current_step is Step.AUTHENTICATE_EXPORT
        assert fake_transport.calls == []

    def test_denied(self, orchestrator, progress, fake_transport) -> None:
        result = orchestrator.handle_callback("ServiceA", {"error": "access_denied"})

        assert isinstance(result.error, AuthorizationDenied)
        assert progress.current_step is Step.AUTHENTICATE_EXPORT
        assert fake_transport.calls == []

    def test_transport_failure_stays_on_step(self, orchestrator, progress, fake_transport) -> None:
        fake_transport.on(
            "POST", "transfer/tx1/generate", TransportFailure("generateAuthData", "boom", 500)
        )

        result = orchestrator.handle_callback("ServiceA", {"code": "c1"})

        assert isinstance(result.error, TransportFailure)
        assert result.redirect is None
        assert progress.current_step is Step.AUTHENTICATE_EXPORT
        assert progress.export_auth_data is None

    def test_retry_after_transport_failure(self, orchestrator, progress, fake_transport) -> None:
        fake_transport.on(
            "POST",
            "transfer/tx1/generate",
            TransportFailure("generateAuthData", "boom", 500),
            {"authData": "exportData"},
        )

        assert not orchestrator.handle_callback("ServiceA", {"code": "c1"}).success
        assert orchestrator.handle_callback("ServiceA", {"code": "c1"}).success
        assert progress.current_step is Step.AUTHENTICATE_IMPORT


class TestImportCallback:
    """Callbacks arriving at AUTHENTICATE_IMPORT."""

    def test_import_completes_and_reserves_worker(
        self, orchestrator, progress, fake_transport, router
    ) -> None:
        fake_transport.on(
            "POST", "transfer/tx1/generate", {"authData": "exportData"}, {"authData": "importData"}
        )
        fake_transport.on("POST", "transfer/tx1/worker", None)
        orchestrator.handle_callback("ServiceA", {"code": "c1"})

        result = orchestrator.handle_callback("ServiceB", {"frob": "f1"})

        assert result.success
        assert result.redirect is Screen.INITIATE
        assert router.last is Screen.INITIATE
        assert progress.current_step is Step.WORKER_RESERVED
        assert progress.import_auth_data == "importData"
        assert fake_transport.count("POST", "transfer/tx1/worker") == 1
        payload = fake_transport.payloads("POST", "transfer/tx1/generate")[1]
        assert payload["mode"] == "IMPORT"
        assert payload["token"] == "f1"

    def test_reservation_failure_keeps_auth_data(
        self, orchestrator, progress, fake_transport
    ) -> None:
        progress.auth_export_complete("exportData")
        fake_transport.on("POST", "transfer/tx1/generate", {"authData": "importData"})
        fake_transport.on(
            "POST", "transfer/tx1/worker", TransportFailure("reserveWorker", "busy", 503)
        )

        result = orchestrator.handle_callback("ServiceB", {"code": "c2"})

        assert isinstance(result.error, TransportFailure)
        assert progress.current_step is Step.WORKER_RESERVED
        assert progress.import_auth_data == "importData"


class TestOutOfSequence:
    """Callbacks arriving at any other step."""

    @pytest.mark.parametrize("step", [Step.BEGIN, Step.SERVICES, Step.WORKER_RESERVED])
    def test_resets_to_begin(self, memory_store, fake_transport, router, step: Step) -> None:
        progress = ProgressStateMachine(memory_store)
        progress._state.step = step
        orchestrator = AuthOrchestrator(
            progress, TransferApi(fake_transport), router, callback_url
        )

        result = orchestrator.handle_callback("ServiceA", {"code": "c1"})

        assert isinstance(result.error, OutOfSequence)
        assert result.redirect is Screen.BEGIN
        assert router.last is Screen.BEGIN
        assert progress.current_step is Step.BEGIN
        assert fake_transport.calls == []
