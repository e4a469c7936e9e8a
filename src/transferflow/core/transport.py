"""
TransferFlow backend transport.

``Transport`` is the request/response collaborator the core talks through;
``TransferApi`` layers the typed transfer operations on top of it.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import requests

from transferflow.core.errors import TransportFailure
from transferflow.core.logging import OperationLogger, get_logger
from transferflow.core.models import (
    AuthMode,
    EncryptionScheme,
    ReservedWorker,
    ServiceDescriptions,
    TransferJob,
)

logger = get_logger(__name__)


class Transport(ABC):
    """Request/response channel to the backend transfer API."""

    @abstractmethod
    def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """Issue a request and return the decoded JSON body.

        Raises:
            TransportFailure: On any network, HTTP or decoding error.
        """


class RequestsTransport(Transport):
    """JSON-over-HTTP transport backed by ``requests``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportFailure(f"{method} {path}", str(e)) from e

        if response.status_code >= 400:
            raise TransportFailure(
                f"{method} {path}",
                _error_detail(response),
                status_code=response.status_code,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(f"{method} {path}", "Response was not valid JSON") from e

    def close(self) -> None:
        self._session.close()


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason or response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason or str(body)[:200]


def _require(body: Any, key: str, operation: str) -> Any:
    if not isinstance(body, dict) or body.get(key) in (None, ""):
        raise TransportFailure(operation, f"Response is missing '{key}'")
    return body[key]


def _names(value: Any) -> list[str]:
    if isinstance(value, dict):
        return [str(v) for v in value.values()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return []


class TransferApi:
    """Typed client for the remote transfer operations."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def list_data_types(self) -> list[str]:
        with OperationLogger("listDataTypes", logger):
            body = self.transport.request("GET", "listDataTypes")
        if isinstance(body, dict) and "dataTypes" in body:
            body = body["dataTypes"]
        return _names(body)

    def list_services(self, data_type: str) -> ServiceDescriptions:
        with OperationLogger("listServices", logger, data_type=data_type):
            body = self.transport.request("GET", "listServices", params={"dataType": data_type})
        if not isinstance(body, dict):
            raise TransportFailure("listServices", "Unexpected response shape")
        return ServiceDescriptions(
            export_services=_names(body.get("export")),
            import_services=_names(body.get("import")),
        )

    def create_transfer_job(
        self,
        export_service: str,
        import_service: str,
        export_callback_url: str,
        import_callback_url: str,
        data_type: str,
        encryption_scheme: EncryptionScheme,
    ) -> TransferJob:
        payload = {
            "exportService": export_service,
            "importService": import_service,
            "exportCallbackUrl": export_callback_url,
            "importCallbackUrl": import_callback_url,
            "dataType": data_type,
            "encryptionScheme": encryption_scheme.value,
        }
        with OperationLogger(
            "createTransferJob",
            logger,
            export_service=export_service,
            import_service=import_service,
            data_type=data_type,
        ):
            body = self.transport.request("POST", "transfer", payload=payload)
        return TransferJob(
            id=str(_require(body, "id", "createTransferJob")),
            export_url=_require(body, "exportUrl", "createTransferJob"),
            import_url=_require(body, "importUrl", "createTransferJob"),
        )

    def generate_auth_data(
        self, transfer_id: str, token: str, mode: AuthMode, callback_url: str
    ) -> str:
        payload = {
            "id": transfer_id,
            "token": token,
            "mode": mode.value,
            "callbackUrl": callback_url,
        }
        with OperationLogger("generateAuthData", logger, transfer_id=transfer_id, mode=mode.value):
            body = self.transport.request(
                "POST", f"transfer/{quote(transfer_id, safe='')}/generate", payload=payload
            )
        return _require(body, "authData", "generateAuthData")

    def reserve_worker(self, transfer_id: str) -> None:
        with OperationLogger("reserveWorker", logger, transfer_id=transfer_id):
            self.transport.request(
                "POST", f"transfer/{quote(transfer_id, safe='')}/worker", payload={"id": transfer_id}
            )

    def get_reserved_worker(self, transfer_id: str) -> ReservedWorker:
        with OperationLogger("getReservedWorker", logger, transfer_id=transfer_id):
            body = self.transport.request(
                "GET", f"transfer/{quote(transfer_id, safe='')}/worker", params={"id": transfer_id}
            )
        if not isinstance(body, dict):
            return ReservedWorker()
        key = body.get("publicKey") or body.get("publicKeyJwk")
        if isinstance(key, dict):
            key = json.dumps(key)
        return ReservedWorker(public_key=key or None)

    def start_transfer_job(self, transfer_id: str, credentials: dict[str, str]) -> None:
        payload = {"id": transfer_id, **credentials}
        with OperationLogger(
            "startTransferJob", logger, transfer_id=transfer_id, fields=sorted(credentials)
        ):
            self.transport.request(
                "POST", f"transfer/{quote(transfer_id, safe='')}/start", payload=payload
            )
