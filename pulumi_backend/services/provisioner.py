"""S3 bucket and KMS key provisioning for Pulumi state."""

import asyncio
import json
from typing import Any

import structlog

from ..constants import (
    KMS_KEY_DESCRIPTION,
    KMS_KEY_TAGS,
    LIFECYCLE_RULE_ID,
    NONCURRENT_VERSION_DAYS,
    POLICY_ACTIONS,
    POLICY_PROPAGATION_DELAY,
    POLICY_STATEMENT_SID,
    POLICY_VERSION,
    REGION_WITHOUT_LOCATION_CONSTRAINT,
)
from ..core.process_runner import ExecutionResult, ProcessRunner
from ..models.results import ProvisionResult
from ..models.secrets import normalize_kms_alias

logger = structlog.get_logger()

ENCRYPTION_CONFIGURATION = {
    "Rules": [
        {
            "ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"},
            "BucketKeyEnabled": True,
        }
    ]
}


def lifecycle_configuration(noncurrent_days: int = NONCURRENT_VERSION_DAYS) -> dict[str, Any]:
    """Lifecycle rule expiring noncurrent state versions."""
    return {
        "Rules": [
            {
                "ID": LIFECYCLE_RULE_ID,
                "Status": "Enabled",
                "Filter": {},
                "NoncurrentVersionExpiration": {"NoncurrentDays": noncurrent_days},
            }
        ]
    }


def build_access_statement(bucket: str, identity: str) -> dict[str, Any]:
    """Statement granting ``identity`` the object and list actions pulumi needs."""
    return {
        "Sid": POLICY_STATEMENT_SID,
        "Effect": "Allow",
        "Principal": {"AWS": identity},
        "Action": list(POLICY_ACTIONS),
        "Resource": [f"arn:aws:s3:::{bucket}", f"arn:aws:s3:::{bucket}/*"],
    }


def policy_statements(policy: dict[str, Any]) -> list[Any]:
    """Statements as a list; IAM allows a single statement object in place of one."""
    statements = policy.get("Statement") or []
    if isinstance(statements, dict):
        return [statements]
    return list(statements) if isinstance(statements, list) else []


def has_applicable_deny(policy: dict[str, Any], identity: str) -> bool:
    """True when a Deny statement targets everyone or ``identity``."""
    for statement in policy_statements(policy):
        if not isinstance(statement, dict) or statement.get("Effect") != "Deny":
            continue
        principal = statement.get("Principal")
        if principal == "*":
            return True
        if isinstance(principal, dict):
            aws_principal = principal.get("AWS")
            if aws_principal == "*":
                return True
            if isinstance(aws_principal, str) and identity in aws_principal:
                return True
            if isinstance(aws_principal, list) and (identity in aws_principal or "*" in aws_principal):
                return True
    return False


def merge_access_statement(
    policy: dict[str, Any], bucket: str, identity: str
) -> dict[str, Any]:
    """Replace this tool's statement in ``policy`` and keep every other statement."""
    statements = [
        statement
        for statement in policy_statements(policy)
        if not (isinstance(statement, dict) and statement.get("Sid") == POLICY_STATEMENT_SID)
    ]
    statements.append(build_access_statement(bucket, identity))
    return {**policy, "Version": policy.get("Version", POLICY_VERSION), "Statement": statements}


class ResourceProvisioner:
    """Creates and checks the AWS resources an S3 backend needs."""

    def __init__(
        self,
        runner: ProcessRunner,
        aws_bin: str = "aws",
        propagation_delay: float = POLICY_PROPAGATION_DELAY,
        noncurrent_version_days: int = NONCURRENT_VERSION_DAYS,
    ):
        self.runner = runner
        self.aws_bin = aws_bin
        self.propagation_delay = propagation_delay
        self.noncurrent_version_days = noncurrent_version_days
        self.logger = logger.bind(component="resource_provisioner")

    async def _aws(self, *args: str) -> ExecutionResult:
        return await self.runner.run([self.aws_bin, *args], silent=True)

    async def caller_identity(self) -> str | None:
        """ARN of the credentials the AWS CLI is using."""
        result = await self._aws("sts", "get-caller-identity", "--query", "Arn", "--output", "text")
        if result.succeeded and result.output:
            return result.output.strip()
        self.logger.debug("Failed to get AWS identity", error=result.output)
        return None

    async def container_exists(self, bucket: str, region: str) -> bool:
        """Probe the bucket. Any error, including access denied, reads as missing."""
        result = await self._aws("s3api", "head-bucket", "--bucket", bucket, "--region", region)
        return result.succeeded

    async def create_container(self, bucket: str, region: str) -> ProvisionResult:
        """Create the state bucket with versioning, encryption and lifecycle expiry.

        Only bucket creation is fatal. Each configuration step that fails
        afterwards is recorded as a warning; the bucket is still usable.

        Args:
            bucket: Bucket name
            region: AWS region

        Returns:
            ProvisionResult with the bucket name as resource_id
        """
        self.logger.info("Creating S3 bucket for Pulumi state", bucket=bucket, region=region)

        create_args = ["s3api", "create-bucket", "--bucket", bucket, "--region", region]
        if region != REGION_WITHOUT_LOCATION_CONSTRAINT:
            create_args += ["--create-bucket-configuration", f"LocationConstraint={region}"]

        created = await self._aws(*create_args)
        if not created.succeeded:
            self.logger.error("Failed to create S3 bucket", bucket=bucket)
            self.logger.debug("create-bucket output", output=created.output)
            return ProvisionResult.failed(created.output)

        warnings: list[str] = []

        versioning = await self._aws(
            "s3api", "put-bucket-versioning",
            "--bucket", bucket,
            "--versioning-configuration", "Status=Enabled",
            "--region", region,
        )
        if not versioning.succeeded:
            warnings.append(f"Failed to enable versioning for bucket {bucket!r}")

        encryption = await self._aws(
            "s3api", "put-bucket-encryption",
            "--bucket", bucket,
            "--server-side-encryption-configuration", json.dumps(ENCRYPTION_CONFIGURATION),
            "--region", region,
        )
        if not encryption.succeeded:
            warnings.append(f"Failed to enable default encryption for bucket {bucket!r}")

        lifecycle = await self._aws(
            "s3api", "put-bucket-lifecycle-configuration",
            "--bucket", bucket,
            "--lifecycle-configuration",
            json.dumps(lifecycle_configuration(self.noncurrent_version_days)),
            "--region", region,
        )
        if not lifecycle.succeeded:
            warnings.append(f"Failed to add lifecycle policy for bucket {bucket!r}")

        for warning in warnings:
            self.logger.warning("Created bucket with degraded configuration", detail=warning)
        if not warnings:
            self.logger.info("S3 bucket created and configured for Pulumi state", bucket=bucket)

        return ProvisionResult.from_warnings(bucket, warnings)

    async def _current_policy(self, bucket: str, region: str) -> dict[str, Any]:
        """Fetch the bucket policy; a missing or unreadable policy is an empty one."""
        result = await self._aws(
            "s3api", "get-bucket-policy", "--bucket", bucket, "--region", region, "--output", "json"
        )
        if not result.succeeded or not result.output:
            return {}

        try:
            policy = json.loads(json.loads(result.output)["Policy"])
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            self.logger.debug("Error parsing bucket policy", bucket=bucket, error=str(e))
            return {}

        return policy if isinstance(policy, dict) else {}

    async def reconcile_access_policy(self, bucket: str, region: str) -> bool:
        """Ensure the bucket policy grants the caller access to Pulumi state.

        Replaces any previous statement written by this tool, keeps all other
        statements, and waits for propagation when an existing Deny applied
        to the caller.

        Returns:
            True if the merged policy was written
        """
        self.logger.info("Checking S3 bucket permissions", bucket=bucket)

        identity = await self.caller_identity()
        if not identity:
            self.logger.error("Unable to determine your AWS identity")
            return False
        self.logger.debug("Current AWS identity", identity=identity)

        current = await self._current_policy(bucket, region)
        deny_applies = has_applicable_deny(current, identity)
        merged = merge_access_statement(current, bucket, identity)

        result = await self._aws(
            "s3api", "put-bucket-policy",
            "--bucket", bucket,
            "--policy", json.dumps(merged),
            "--region", region,
        )
        if not result.succeeded:
            self.logger.warning(
                "Failed to update bucket policy. You may need to update it manually.",
                bucket=bucket,
                required_actions=", ".join(POLICY_ACTIONS),
            )
            self.logger.debug("put-bucket-policy output", output=result.output)
            return False

        self.logger.info("Updated bucket policy for Pulumi state access", bucket=bucket)

        if deny_applies:
            self.logger.info("Waiting for permissions to propagate", seconds=self.propagation_delay)
            await asyncio.sleep(self.propagation_delay)

        return True

    async def key_alias_exists(self, alias: str, region: str) -> bool:
        result = await self._aws(
            "kms", "describe-key", "--key-id", normalize_kms_alias(alias), "--region", region
        )
        return result.succeeded

    async def create_key_and_alias(self, alias: str, region: str) -> ProvisionResult:
        """Create a KMS key and bind ``alias`` to it.

        If the alias cannot be created the bare key id is returned as a
        degraded result so callers can still use the key.
        """
        alias_name = normalize_kms_alias(alias)
        self.logger.info("Creating KMS key for Pulumi secrets", alias=alias_name, region=region)

        created = await self._aws(
            "kms", "create-key",
            "--description", KMS_KEY_DESCRIPTION,
            "--tags", KMS_KEY_TAGS,
            "--region", region,
            "--output", "json",
        )
        if not created.succeeded:
            self.logger.error("Failed to create KMS key")
            self.logger.debug("create-key output", output=created.output)
            return ProvisionResult.failed(created.output)

        try:
            key_id = json.loads(created.output)["KeyMetadata"]["KeyId"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            self.logger.error("Could not read key id from create-key output", error=str(e))
            return ProvisionResult.failed(f"Unexpected create-key output: {e}")

        aliased = await self._aws(
            "kms", "create-alias",
            "--alias-name", alias_name,
            "--target-key-id", key_id,
            "--region", region,
        )
        if not aliased.succeeded:
            warning = f"Created key but failed to create alias {alias_name!r}. Key ID: {key_id}"
            self.logger.warning(warning)
            return ProvisionResult.from_warnings(key_id, [warning])

        self.logger.info("KMS key and alias created", alias=alias_name, key_id=key_id)
        return ProvisionResult.from_warnings(alias_name, [])
