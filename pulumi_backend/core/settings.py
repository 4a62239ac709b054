"""Runtime settings for Pulumi backend operations.

Provides centralized configuration using Pydantic BaseSettings with
environment variable and ``.env`` support. Command-line flags override
these values.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import FALLBACK_REGION, NONCURRENT_VERSION_DAYS, POLICY_PROPAGATION_DELAY


class BackendSettings(BaseSettings):
    """Environment-driven configuration for the CLI."""

    aws_region: str = Field(
        FALLBACK_REGION, alias="AWS_REGION", description="Default AWS region"
    )

    passphrase: str | None = Field(
        None, alias="PULUMI_CONFIG_PASSPHRASE", description="Passphrase for passphrase secrets"
    )

    access_token: str | None = Field(
        None, alias="PULUMI_ACCESS_TOKEN", description="Pulumi Cloud access token"
    )

    pulumi_bin: str = Field("pulumi", alias="PULUMI_BIN", description="Pulumi CLI executable")

    aws_bin: str = Field("aws", alias="AWS_BIN", description="AWS CLI executable")

    log_level: str = Field("INFO", alias="LOG_LEVEL", description="Default log level")

    log_dir: str | None = Field(
        None, alias="LOG_DIR", description="Directory for JSON log files (console only if unset)"
    )

    policy_propagation_delay: float = Field(
        POLICY_PROPAGATION_DELAY,
        alias="POLICY_PROPAGATION_DELAY",
        ge=0,
        description="Seconds to wait after overriding a deny bucket policy",
    )

    noncurrent_version_days: int = Field(
        NONCURRENT_VERSION_DAYS,
        alias="NONCURRENT_VERSION_DAYS",
        gt=0,
        description="Retention of noncurrent state object versions",
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


def load_settings() -> BackendSettings:
    """Load settings from the environment and ``.env``."""
    return BackendSettings()
