"""
TransferFlow - Client-side orchestration for cross-service data transfers.

Guides a user through authorizing an export and an import service and hands
the resulting credentials to a transfer worker.
"""

__version__ = "1.0.0"
__author__ = "TransferFlow Team"

from transferflow.core.config import TransferFlowConfig
from transferflow.core.session import TransferSession

__all__ = ["TransferFlowConfig", "TransferSession", "__version__"]
