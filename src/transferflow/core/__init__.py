"""
TransferFlow Core - Transfer orchestration layer.

Contains the persisted progress state machine, navigation guard,
authorization callback handling, worker polling and credential packaging.
"""

from transferflow.core.auth import AuthOrchestrator
from transferflow.core.config import TransferFlowConfig
from transferflow.core.encryption import CredentialEncryptor
from transferflow.core.errors import (
    AuthorizationDenied,
    InvalidSelection,
    MissingCredential,
    MissingPrecondition,
    OutOfSequence,
    PollTimeout,
    TransferFlowError,
    TransportFailure,
    WorkerKeyError,
)
from transferflow.core.logging import get_logger, setup_logging
from transferflow.core.models import FlowResult, Screen, Step, TransferState
from transferflow.core.navigation import can_enter
from transferflow.core.poller import PollerState, WorkerAssignmentPoller
from transferflow.core.progress import ProgressStateMachine
from transferflow.core.session import TransferSession
from transferflow.core.store import FileStateStore, MemoryStateStore, StateStore

__all__ = [
    "AuthOrchestrator",
    "AuthorizationDenied",
    "CredentialEncryptor",
    "FileStateStore",
    "FlowResult",
    "InvalidSelection",
    "MemoryStateStore",
    "MissingCredential",
    "MissingPrecondition",
    "OutOfSequence",
    "PollTimeout",
    "PollerState",
    "ProgressStateMachine",
    "Screen",
    "StateStore",
    "Step",
    "TransferFlowConfig",
    "TransferFlowError",
    "TransferSession",
    "TransferState",
    "TransportFailure",
    "WorkerAssignmentPoller",
    "WorkerKeyError",
    "can_enter",
    "get_logger",
    "setup_logging",
]
