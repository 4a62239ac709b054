"""Secrets provider configuration."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator

from ..constants import AWSKMS_SCHEME, DEFAULT_KMS_ALIAS, KMS_ALIAS_PREFIX


class SecretsMode(str, Enum):
    """Secrets providers a stack can be bound to."""

    DEFAULT = "default"
    SERVICE = "service"
    PASSPHRASE = "passphrase"
    AWSKMS = "awskms"


KEY_ID_PATTERN = re.compile(r"^(mrk-)?[0-9a-f]{8}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{12}$", re.I)


def normalize_kms_alias(alias: str | None) -> str:
    """Return ``alias/<name>`` for a bare alias.

    Prefixed aliases, key ARNs and raw key ids are returned unchanged.
    """
    value = (alias or DEFAULT_KMS_ALIAS).strip()
    if value.startswith((KMS_ALIAS_PREFIX, "arn:")) or KEY_ID_PATTERN.match(value):
        return value
    return f"{KMS_ALIAS_PREFIX}{value}"


class SecretsConfig(BaseModel):
    """Mode plus the material that mode needs.

    Passphrase mode requires a passphrase so pulumi never blocks on an
    interactive prompt.
    """

    model_config = ConfigDict(frozen=True)

    mode: SecretsMode = SecretsMode.DEFAULT
    passphrase: str | None = None
    kms_alias: str | None = None
    region: str

    @model_validator(mode="after")
    def _check_mode_requirements(self) -> "SecretsConfig":
        if self.mode is SecretsMode.PASSPHRASE and not self.passphrase:
            raise ValueError("passphrase secrets provider requires a non-empty passphrase")
        return self

    @property
    def resolved_kms_alias(self) -> str:
        return normalize_kms_alias(self.kms_alias)

    @property
    def kms_provider_url(self) -> str:
        return f"{AWSKMS_SCHEME}{self.resolved_kms_alias}?region={self.region}"

    def provider_argument(self) -> str:
        """Value passed to ``pulumi stack change-secrets-provider``."""
        if self.mode is SecretsMode.AWSKMS:
            return self.kms_provider_url
        return self.mode.value

    def init_arguments(self) -> list[str]:
        """``--secrets-provider`` flags for ``pulumi stack init``.

        Default and passphrase modes add nothing; passphrase is picked up from
        the environment.
        """
        if self.mode in (SecretsMode.DEFAULT, SecretsMode.PASSPHRASE):
            return []
        return ["--secrets-provider", self.provider_argument()]
