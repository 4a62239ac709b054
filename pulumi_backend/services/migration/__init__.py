"""
Stack Migration Modules

- verification: Preview summary parsing
- transfer: Export, destination creation, import and verification of one stack
- orchestrator: End-to-end workflows composed from the services
"""

from .orchestrator import MigrationOrchestrator
from .transfer import StackTransferEngine, TransferState
from .verification import PreviewSummary

__all__ = [
    "PreviewSummary",
    "StackTransferEngine",
    "TransferState",
    "MigrationOrchestrator",
]
