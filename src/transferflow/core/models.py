"""
TransferFlow data models.

Defines the transfer state, the step ordering and the records exchanged
with the backend transfer API.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from transferflow.core.errors import TransferFlowError

T = TypeVar("T")


class Step(Enum):
    """Ordinal stage of the transfer flow."""

    BEGIN = 0
    DATA = 1
    SERVICES = 2
    CREATE = 3
    AUTHENTICATE_EXPORT = 4
    AUTHENTICATE_IMPORT = 5
    WORKER_RESERVED = 6
    INITIATE = 7
    RUNNING = 8
    ERROR = -1  # Terminal sentinel, outside the ordering

    @property
    def is_ordered(self) -> bool:
        return self is not Step.ERROR

    def at_least(self, other: Step) -> bool:
        """True if this step is at or beyond ``other`` in the canonical order."""
        return self.is_ordered and other.is_ordered and self.value >= other.value

    def before(self, other: Step) -> bool:
        """True if this step precedes ``other`` in the canonical order."""
        return self.is_ordered and other.is_ordered and self.value < other.value

    @classmethod
    def from_string(cls, value: str) -> Step:
        """Create Step from its persisted name."""
        if not isinstance(value, str):
            raise ValueError(f"Step name must be a string, got {type(value).__name__}")
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown step: {value!r}") from None


class AuthMode(Enum):
    """Which side of the transfer an authorization belongs to."""

    EXPORT = "EXPORT"
    IMPORT = "IMPORT"


class EncryptionScheme(Enum):
    """How credentials are packaged for the start request."""

    CLEARTEXT = "cleartext"
    JWE = "jwe"


class Screen(Enum):
    """Named screens the router can direct the user to."""

    BEGIN = "begin"
    DATA = "data"
    SERVICES = "services"
    CREATE = "create"
    AUTHENTICATE_IMPORT_CONTINUATION = "authenticate-import-continuation"
    INITIATE = "initiate"
    RUNNING = "running"

    @classmethod
    def from_string(cls, value: str) -> Screen:
        value_lower = value.lower().strip()
        for screen in cls:
            if screen.value == value_lower or screen.name.lower() == value_lower:
                return screen
        raise ValueError(f"Unknown screen: {value!r}")


@dataclass
class TransferState:
    """
    Accumulated state of one transfer flow.

    Owned by ``ProgressStateMachine``; absent fields are ``None``.
    """

    step: Step = Step.BEGIN
    transfer_id: str | None = None
    data_type: str | None = None
    export_service: str | None = None
    import_service: str | None = None
    export_url: str | None = None
    import_url: str | None = None
    export_auth_data: str | None = None
    import_auth_data: str | None = None
    worker_public_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {f.name: getattr(self, f.name) for f in fields(self)}
        data["step"] = self.step.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransferState:
        if not isinstance(data, dict):
            raise ValueError(f"Transfer state must be an object, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and k != "step"}
        return cls(step=Step.from_string(data.get("step", Step.BEGIN.name)), **values)

    def copy(self) -> TransferState:
        return TransferState(**{f.name: getattr(self, f.name) for f in fields(self)})


@dataclass
class ServiceDescriptions:
    """Services available for a data type, per direction."""

    export_services: list[str] = field(default_factory=list)
    import_services: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"export": self.export_services, "import": self.import_services}


@dataclass
class TransferJob:
    """A transfer job as returned by the backend on creation."""

    id: str
    export_url: str
    import_url: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "exportUrl": self.export_url, "importUrl": self.import_url}


@dataclass
class ReservedWorker:
    """Status of the worker reservation for a job."""

    public_key: str | None = None

    @property
    def is_assigned(self) -> bool:
        return bool(self.public_key)


@dataclass
class FlowResult(Generic[T]):
    """Outcome of a flow operation, with an optional redirect for the caller."""

    success: bool
    data: T | None = None
    error: TransferFlowError | None = None
    redirect: Screen | None = None
    external_url: str | None = None

    @classmethod
    def ok(
        cls,
        data: T | None = None,
        redirect: Screen | None = None,
        external_url: str | None = None,
    ) -> FlowResult[T]:
        return cls(success=True, data=data, redirect=redirect, external_url=external_url)

    @classmethod
    def failed(
        cls, error: TransferFlowError, redirect: Screen | None = None
    ) -> FlowResult[T]:
        return cls(success=False, error=error, redirect=redirect)

    @property
    def message(self) -> str | None:
        return str(self.error) if self.error else None
