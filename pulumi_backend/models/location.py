"""Backend location models.

A backend location is either an S3 bucket (self-managed object storage) or
Pulumi Cloud (the hosted service). Locations are immutable value objects;
``format_location`` produces the URL ``pulumi login`` understands.
"""

from typing import Literal
from urllib.parse import parse_qs, urlencode

from pydantic import BaseModel, ConfigDict, field_validator

from ..constants import OBJECT_STORE_SCHEME, S3_SCHEME
from ..core.exceptions import InvalidLocationError


class ObjectStorageLocation(BaseModel):
    """S3 bucket holding Pulumi state."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["object_storage"] = "object_storage"
    bucket: str
    region: str

    @field_validator("bucket")
    @classmethod
    def _bucket_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("bucket name must not be empty")
        return value

    @property
    def url(self) -> str:
        return format_location(self)


class HostedServiceLocation(BaseModel):
    """Pulumi Cloud, optionally scoped to an organization."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["hosted_service"] = "hosted_service"
    organization: str | None = None

    @property
    def url(self) -> str:
        return format_location(self)


BackendLocation = ObjectStorageLocation | HostedServiceLocation


def parse_object_storage_location(raw: str, fallback_region: str) -> ObjectStorageLocation:
    """Parse ``s3://bucket?region=R`` (or ``objectstore://...``).

    Args:
        raw: Location string
        fallback_region: Region used when the query string omits one

    Returns:
        ObjectStorageLocation

    Raises:
        InvalidLocationError: Wrong scheme or missing bucket
    """
    # Shell-escaped query separators show up when URLs are pasted from docs
    value = raw.strip().replace("\\?", "?")

    for scheme in (S3_SCHEME, OBJECT_STORE_SCHEME):
        if value.startswith(scheme):
            remainder = value[len(scheme):]
            break
    else:
        raise InvalidLocationError(f"Backend URL must start with {S3_SCHEME}: {raw!r}")

    bucket, _, query = remainder.partition("?")
    bucket = bucket.rstrip("/")
    if not bucket:
        raise InvalidLocationError(f"No bucket specified in S3 backend URL: {raw!r}")

    params = parse_qs(query)
    region = (params.get("region") or [""])[0] or fallback_region

    return ObjectStorageLocation(bucket=bucket, region=region)


def format_location(location: BackendLocation) -> str:
    """Build the ``pulumi login`` argument for a location.

    Pulumi Cloud is addressed by logging in without a URL, so an empty
    string is returned for hosted-service locations.
    """
    if isinstance(location, ObjectStorageLocation):
        return f"{S3_SCHEME}{location.bucket}?{urlencode({'region': location.region})}"
    return ""


def describe_location(location: BackendLocation | None) -> str:
    """Human-readable name for logs."""
    if location is None:
        return "none"
    if isinstance(location, ObjectStorageLocation):
        return format_location(location)
    if location.organization:
        return f"Pulumi Cloud ({location.organization})"
    return "Pulumi Cloud"
