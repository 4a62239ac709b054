"""Data models for the Pulumi backend tool."""

from .location import (  # noqa: F401
    BackendLocation,
    HostedServiceLocation,
    ObjectStorageLocation,
    describe_location,
    format_location,
    parse_object_storage_location,
)
from .results import Outcome, ProvisionResult, WorkflowResult  # noqa: F401
from .secrets import SecretsConfig, SecretsMode, normalize_kms_alias  # noqa: F401
from .stack import StackReference  # noqa: F401

__all__ = [
    # Locations
    "BackendLocation",
    "HostedServiceLocation",
    "ObjectStorageLocation",
    "describe_location",
    "format_location",
    "parse_object_storage_location",
    # Results
    "Outcome",
    "ProvisionResult",
    "WorkflowResult",
    # Secrets
    "SecretsConfig",
    "SecretsMode",
    "normalize_kms_alias",
    # Stacks
    "StackReference",
]
