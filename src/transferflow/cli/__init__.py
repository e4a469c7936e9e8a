"""
TransferFlow CLI Module.

Provides command-line interface for TransferFlow operations.
"""

from transferflow.cli.main import main, cli

__all__ = ["main", "cli"]
