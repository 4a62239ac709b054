"""
Pulumi Backend Services

Service layer for provisioning, secrets management and stack migration.
"""

from .provisioner import ResourceProvisioner  # noqa: F401
from .secrets_manager import SecretsProviderManager  # noqa: F401
from .migration import MigrationOrchestrator, StackTransferEngine  # noqa: F401

__all__ = [
    "ResourceProvisioner",
    "SecretsProviderManager",
    "StackTransferEngine",
    "MigrationOrchestrator",
]
