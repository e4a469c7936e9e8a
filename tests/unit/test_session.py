"""
Tests for transferflow.core.session module.
"""

import threading
from collections.abc import Iterator

import pytest

from transferflow.core.errors import (
    InvalidSelection,
    MissingPrecondition,
    OutOfSequence,
    PollTimeout,
    TransportFailure,
)
from transferflow.core.models import Screen, Step
from transferflow.core.poller import PollerState
from transferflow.core.session import TransferSession


@pytest.fixture
def session(sample_config, fake_transport, memory_store, router) -> Iterator[TransferSession]:
    fake_transport.on("GET", "listDataTypes", ["PHOTOS", "MAIL"])
    fake_transport.on("GET", "listServices", {"export": ["ServiceA"], "import": ["ServiceB"]})
    fake_transport.on("POST", "transfer", {"id": "tx1", "exportUrl": "urlA", "importUrl": "urlB"})
    fake_transport.on(
        "POST", "transfer/tx1/generate", {"authData": "exportData"}, {"authData": "importData"}
    )
    fake_transport.on("POST", "transfer/tx1/worker", None)
    fake_transport.on("POST", "transfer/tx1/start", None)
    with TransferSession(
        config=sample_config, transport=fake_transport, store=memory_store, router=router
    ) as session:
        yield session


def advance_to_worker_reserved(session: TransferSession) -> None:
    session.begin()
    session.select_data("PHOTOS")
    session.select_services("ServiceA", "ServiceB")
    session.create_transfer()
    session.handle_callback("ServiceA", {"code": "c1"})
    session.handle_callback("ServiceB", {"code": "c2"})


class TestSelection:
    """Tests for data and service selection."""

    def test_begin(self, session, router) -> None:
        result = session.begin()

        assert result.redirect is Screen.DATA
        assert router.last is Screen.DATA
        assert session.status().step is Step.DATA

    def test_unsupported_data_type(self, session) -> None:
        session.begin()

        result = session.select_data("VIDEOS")

        assert isinstance(result.error, InvalidSelection)
        assert result.error.user_visible
        assert session.status().step is Step.DATA

    def test_select_data_without_validation(self, session, fake_transport) -> None:
        result = session.select_data("VIDEOS", validate=False)

        assert result.success
        assert session.status().data_type == "VIDEOS"
        assert fake_transport.count("GET", "listDataTypes") == 0

    def test_list_data_types_failure(self, session, fake_transport) -> None:
        fake_transport.on("GET", "listDataTypes", TransportFailure("listDataTypes", "down"))

        result = session.select_data("PHOTOS")

        assert isinstance(result.error, TransportFailure)
        assert session.status().step is Step.BEGIN

    def test_list_services_requires_data_type(self, session) -> None:
        result = session.list_services()

        assert isinstance(result.error, InvalidSelection)

    def test_unsupported_service(self, session) -> None:
        session.select_data("PHOTOS")

        result = session.select_services("ServiceA", "ServiceZ")

        assert isinstance(result.error, InvalidSelection)
        assert session.status().step is Step.SERVICES

    def test_select_services(self, session, router) -> None:
        session.select_data("PHOTOS")

        result = session.select_services("ServiceA", "ServiceB")

        assert result.redirect is Screen.CREATE
        assert router.last is Screen.CREATE
        state = session.status()
        assert (state.export_service, state.import_service) == ("ServiceA", "ServiceB")

    def test_services_screen_needs_data_type(self, session, router) -> None:
        result = session.select_services("ServiceA", "ServiceB")

        assert isinstance(result.error, MissingPrecondition)
        assert result.redirect is Screen.BEGIN
        assert router.last is Screen.BEGIN


class TestCreateTransfer:
    """Tests for transfer job creation."""

    def test_create_redirects_to_export(self, session, fake_transport, router) -> None:
        session.select_data("PHOTOS")
        session.select_services("ServiceA", "ServiceB")

        result = session.create_transfer()

        assert result.success
        assert result.external_url == "urlA"
        assert router.last == "urlA"
        state = session.status()
        assert state.step is Step.AUTHENTICATE_EXPORT
        assert state.transfer_id == "tx1"
        payload = fake_transport.payloads("POST", "transfer")[0]
        assert payload["exportCallbackUrl"] == "http://client.test/callback/ServiceA"
        assert payload["importCallbackUrl"] == "http://client.test/callback/ServiceB"
        assert payload["encryptionScheme"] == "jwe"

    def test_create_at_data_step_resets(self, session, fake_transport, router) -> None:
        session.begin()

        result = session.create_transfer()

        assert isinstance(result.error, OutOfSequence)
        assert result.redirect is Screen.BEGIN
        assert router.last is Screen.BEGIN
        assert session.status().step is Step.BEGIN
        assert session.status().transfer_id is None
        assert fake_transport.count("POST", "transfer") == 0

    def test_create_failure_stays_on_create(self, session, fake_transport) -> None:
        fake_transport.on("POST", "transfer", TransportFailure("createTransferJob", "down", 502))
        session.select_data("PHOTOS")
        session.select_services("ServiceA", "ServiceB")

        result = session.create_transfer()

        assert isinstance(result.error, TransportFailure)
        assert session.status().step is Step.CREATE


class TestWorkerReservation:
    """Tests for the explicit reservation retry."""

    def test_reserve_at_wrong_step_resets(self, session) -> None:
        session.begin()

        result = session.reserve_worker()

        assert isinstance(result.error, OutOfSequence)
        assert session.status().step is Step.BEGIN

    def test_reserve_retry(self, session, fake_transport, router) -> None:
        fake_transport.on(
            "POST", "transfer/tx1/worker", TransportFailure("reserveWorker", "busy", 503), None
        )
        advance_to_worker_reserved(session)

        result = session.reserve_worker()

        assert result.success
        assert router.last is Screen.INITIATE
        assert fake_transport.count("POST", "transfer/tx1/worker") == 2


class TestInitiate:
    """Tests for initiation."""

    def test_initiate_before_worker_reserved_resets(self, session, router) -> None:
        session.select_data("PHOTOS")

        result = session.initiate()

        assert isinstance(result.error, OutOfSequence)
        assert result.redirect is Screen.BEGIN
        assert session.poller is None

    def test_initiate_times_out(self, session, fake_transport) -> None:
        fake_transport.on("GET", "transfer/tx1/worker", {})
        advance_to_worker_reserved(session)

        result = session.initiate(timeout=5)

        assert isinstance(result.error, PollTimeout)
        assert session.poller.state is PollerState.TIMED_OUT
        assert fake_transport.count("GET", "transfer/tx1/worker") == 20
        assert fake_transport.count("POST", "transfer/tx1/start") == 0
        assert session.status().step is Step.WORKER_RESERVED

    def test_initiate_again_after_timeout(self, session, fake_transport) -> None:
        fake_transport.on("GET", "transfer/tx1/worker", {})
        advance_to_worker_reserved(session)
        session.initiate(timeout=5)
        first = session.poller

        session.initiate(timeout=5)

        assert session.poller is not first
        assert fake_transport.count("GET", "transfer/tx1/worker") == 40

    def test_start_failure_is_reported(self, session, fake_transport, worker_key) -> None:
        fake_transport.on("GET", "transfer/tx1/worker", {"publicKey": worker_key.export_public()})
        fake_transport.on("POST", "transfer/tx1/start", TransportFailure("startTransferJob", "down"))
        advance_to_worker_reserved(session)

        result = session.initiate(timeout=5)

        assert isinstance(result.error, TransportFailure)
        assert session.status().step is Step.INITIATE

    def test_second_initiate_reuses_pending_start(self, session, fake_transport, worker_key) -> None:
        fake_transport.on("GET", "transfer/tx1/worker", {"publicKey": worker_key.export_public()})
        advance_to_worker_reserved(session)
        in_start = threading.Event()
        release = threading.Event()
        starts: list[str] = []

        def slow_start(transfer_id: str, credentials: dict[str, str]) -> None:
            starts.append(transfer_id)
            in_start.set()
            release.wait(timeout=5)

        session.api.start_transfer_job = slow_start

        session.initiate(wait=False)
        first = session.poller
        assert in_start.wait(timeout=5)
        assert first.state is PollerState.RESOLVED

        second = session.initiate(wait=False)
        release.set()
        first.wait(timeout=5)

        assert second.success
        assert session.poller is first
        assert starts == ["tx1"]
        assert session.status().step is Step.RUNNING

    def test_back_to_back_initiate_shares_one_poll(self, session, fake_transport) -> None:
        session.config.polling.interval_ms = 10000
        fake_transport.on("GET", "transfer/tx1/worker", {})
        advance_to_worker_reserved(session)

        session.initiate(wait=False)
        first = session.poller
        session.initiate(wait=False)

        assert session.poller is first
        assert fake_transport.count("GET", "transfer/tx1/worker") <= 1

    def test_initiate_after_reset_starts_new_poll(self, session, fake_transport) -> None:
        session.config.polling.interval_ms = 10000
        fake_transport.on("GET", "transfer/tx1/worker", {})
        advance_to_worker_reserved(session)
        session.initiate(wait=False)
        cancelled = session.poller
        session.reset()
        advance_to_worker_reserved(session)

        session.initiate(wait=False)

        assert session.poller is not cancelled

    def test_initiate_when_running(self, session, fake_transport, worker_key) -> None:
        fake_transport.on("GET", "transfer/tx1/worker", {"publicKey": worker_key.export_public()})
        advance_to_worker_reserved(session)
        assert session.initiate(timeout=5).redirect is Screen.RUNNING

        result = session.initiate()

        assert result.success
        assert result.redirect is Screen.RUNNING
        assert fake_transport.count("POST", "transfer/tx1/start") == 1


class TestReset:
    """Tests for reset."""

    def test_reset_clears_state(self, session, memory_store, router) -> None:
        advance_to_worker_reserved(session)

        result = session.reset()

        assert result.redirect is Screen.BEGIN
        assert router.last is Screen.BEGIN
        assert session.status().transfer_id is None
        assert memory_store.get("appstate") is None

    def test_reset_cancels_polling(self, session, fake_transport) -> None:
        session.config.polling.interval_ms = 10000
        fake_transport.on("GET", "transfer/tx1/worker", {})
        advance_to_worker_reserved(session)
        session.initiate(wait=False)
        poller = session.poller

        session.reset()
        poller.wait(timeout=5)

        assert poller.state is PollerState.CANCELLED
        assert fake_transport.count("POST", "transfer/tx1/start") == 0
