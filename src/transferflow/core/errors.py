"""
TransferFlow error kinds.

None of these are fatal to the process: every one is recoverable by
restarting the flow from BEGIN. ``user_visible`` marks errors the caller
should report; ``resets_flow`` marks errors corrected by reset-and-redirect.
"""

from __future__ import annotations


class TransferFlowError(Exception):
    """Base class for all transfer flow errors."""

    user_visible: bool = True
    resets_flow: bool = False


class TransportFailure(TransferFlowError):
    """A remote call failed; the flow stays on its current step.

    The user may retry from the current step.
    """

    def __init__(self, operation: str, reason: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.reason = reason
        self.status_code = status_code
        detail = f"{status_code} - {reason}" if status_code is not None else reason
        super().__init__(f"{operation} failed: {detail}")


class MissingCredential(TransferFlowError):
    """An authorization callback carried no recognizable token."""

    def __init__(self, message: str = "Authorization callback did not include a credential token") -> None:
        super().__init__(message)


class AuthorizationDenied(TransferFlowError):
    """The external service redirected back with an error instead of a token."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Authorization was denied: {reason}")


class OutOfSequence(TransferFlowError):
    """A callback or screen entry arrived at an invalid step."""

    user_visible = False
    resets_flow = True


class MissingPrecondition(TransferFlowError):
    """A screen's required upstream field is absent."""

    user_visible = False
    resets_flow = True


class PollTimeout(TransferFlowError):
    """No worker was assigned within the polling attempt budget."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"No transfer worker became available after {attempts} attempts; "
            "please start the transfer again"
        )


class WorkerKeyError(TransferFlowError, ValueError):
    """The worker public key is missing or cannot be used for encryption."""


class InvalidSelection(TransferFlowError):
    """A data type or service choice the backend does not offer."""
