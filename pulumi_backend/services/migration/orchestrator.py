"""Migration orchestrator.

Composes the backend session, resource provisioner, secrets manager and
stack transfer engine into the CLI workflows:

* ``migrate_to_object_store``: Pulumi Cloud to an S3 backend
* ``migrate_to_hosted``: S3 backend to Pulumi Cloud
* ``initialize_project``: provision a bucket and KMS key, then create a project and stack
* ``login_object_store``: log into a project's S3 backend

Steps that produce something a later step needs (bucket, export, stack
creation, import) are fatal. Advisory steps degrade to warnings or go through
the decision provider before continuing.
"""

from pathlib import Path

import structlog
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from ...constants import (
    ACCESS_TOKEN_ENV,
    AWS_REGIONS,
    DEFAULT_KMS_ALIAS,
    DEFAULT_STACK_NAME,
    DEFAULT_TEMPLATE,
    INIT_SECRETS_PROVIDERS,
    PASSPHRASE_ENV,
    PROJECT_TEMPLATES,
    STAGING_DIR_TO_HOSTED,
    STAGING_DIR_TO_OBJECT_STORE,
)
from ...core.decisions import DecisionProvider
from ...core.exceptions import ConfigurationError, PulumiBackendError
from ...core.prerequisites import PrerequisiteChecker
from ...core.process_runner import ProcessRunner
from ...core.session import BackendSession
from ...core.settings import BackendSettings
from ...models.location import (
    BackendLocation,
    HostedServiceLocation,
    ObjectStorageLocation,
    describe_location,
    format_location,
    parse_object_storage_location,
)
from ...models.results import WorkflowResult
from ...models.secrets import SecretsConfig, SecretsMode, normalize_kms_alias
from ...models.stack import StackReference
from ..project import (
    default_project_name,
    init_project,
    init_stack,
    project_exists,
    read_project_name,
    resolve_project_name,
    suggest_bucket_name,
)
from ..provisioner import ResourceProvisioner
from ..secrets_manager import SecretsProviderManager
from .transfer import StackTransferEngine


def _secrets_next_step(config: SecretsConfig) -> str | None:
    if config.mode is SecretsMode.AWSKMS:
        return (
            "Your stack is using AWS KMS for secrets encryption with key: "
            f"{config.resolved_kms_alias}"
        )
    if config.mode is SecretsMode.PASSPHRASE:
        return (
            "Your stack is using passphrase encryption for secrets. "
            f"Make sure to set {PASSPHRASE_ENV} in your environment."
        )
    return None


def _format_next_steps(steps: list[str | None]) -> str:
    return "\n".join(step for step in steps if step)


class MigrationOrchestrator:
    """Runs the end-to-end backend workflows."""

    def __init__(
        self,
        settings: BackendSettings,
        decisions: DecisionProvider,
        runner: ProcessRunner | None = None,
        base_dir: Path | str | None = None,
        session: BackendSession | None = None,
        provisioner: ResourceProvisioner | None = None,
        secrets: SecretsProviderManager | None = None,
        prerequisites: PrerequisiteChecker | None = None,
    ):
        self.settings = settings
        self.decisions = decisions
        self.runner = runner or ProcessRunner()
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.session = session or BackendSession(self.runner, settings.pulumi_bin)
        self.provisioner = provisioner or ResourceProvisioner(
            self.runner,
            settings.aws_bin,
            propagation_delay=settings.policy_propagation_delay,
            noncurrent_version_days=settings.noncurrent_version_days,
        )
        self.secrets = secrets or SecretsProviderManager(self.runner, settings.pulumi_bin)
        self.prerequisites = prerequisites or PrerequisiteChecker(
            self.runner, settings.pulumi_bin, settings.aws_bin
        )
        self.logger: BoundLogger = structlog.get_logger().bind(component="migration_orchestrator")

    def _new_transfer(self) -> StackTransferEngine:
        return StackTransferEngine(
            self.runner, self.session, self.settings.pulumi_bin, base_dir=self.base_dir
        )

    # Shared steps

    async def _check_prerequisites(self, result: WorkflowResult) -> None:
        for warning in await self.prerequisites.run_all(self.decisions):
            result.warn(warning)
        result.step("Prerequisite checks passed")

    def _fail(
        self, result: WorkflowResult, error: str, hint: str | None = None
    ) -> WorkflowResult:
        self.logger.error(error, workflow=result.workflow, hint=hint)
        return result.fail(error, hint)

    async def _abort(
        self,
        result: WorkflowResult,
        error: str,
        restore_to: BackendLocation | None = None,
        hint: str | None = None,
        access_token: str | None = None,
    ) -> WorkflowResult:
        """Fail the workflow, logging back into ``restore_to`` if the session moved away."""
        self._fail(result, error, hint)
        if restore_to is not None and self.session.current != restore_to:
            self.logger.info("Restoring backend session", backend=describe_location(restore_to))
            if await self.session.login(restore_to, access_token):
                result.step(f"Restored session to {describe_location(restore_to)}")
            else:
                result.warn(f"Failed to restore session to {describe_location(restore_to)}")
        return result

    @staticmethod
    def _parse_stack(raw: str) -> StackReference:
        try:
            return StackReference.parse(raw)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid stack name: {raw!r}", hint="Use <stack> or <org>/<stack>"
            ) from e

    @staticmethod
    def _secrets_config(
        mode: SecretsMode,
        region: str,
        passphrase: str | None = None,
        kms_alias: str | None = None,
    ) -> SecretsConfig:
        try:
            return SecretsConfig(mode=mode, passphrase=passphrase, kms_alias=kms_alias, region=region)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid secrets configuration for {mode.value!r} provider",
                hint=f"Provide --passphrase or set {PASSPHRASE_ENV}",
            ) from e

    def _choose_region(self, region: str | None) -> str:
        if region:
            return region
        default = self.settings.aws_region
        options = AWS_REGIONS if default in AWS_REGIONS else [default, *AWS_REGIONS]
        return self.decisions.choose("Select AWS region", options, default)

    def _ask_bucket(self, bucket: str | None, workspace: str) -> str:
        if bucket:
            return bucket
        suggested = suggest_bucket_name(resolve_project_name(workspace))
        return self.decisions.ask("S3 bucket name for state storage", suggested)

    @staticmethod
    def _object_storage_location(bucket: str, region: str) -> ObjectStorageLocation:
        try:
            return ObjectStorageLocation(bucket=bucket, region=region)
        except ValidationError as e:
            raise ConfigurationError(
                "No bucket name given for S3 state storage", hint="Pass --bucket"
            ) from e

    async def _ensure_bucket(
        self,
        result: WorkflowResult,
        location: ObjectStorageLocation,
        create: bool,
        reconcile: bool,
    ) -> bool:
        """Make sure the state bucket exists; create it when allowed.

        Returns:
            False when the bucket is missing and could not be created
        """
        bucket, region = location.bucket, location.region

        if await self.provisioner.container_exists(bucket, region):
            self.logger.info("S3 bucket already exists", bucket=bucket)
            result.step(f"S3 bucket {bucket!r} already exists")
        elif not create:
            self._fail(
                result,
                f"S3 bucket {bucket!r} doesn't exist and --create-bucket is disabled",
                hint="Create the bucket or rerun with --create-bucket",
            )
            return False
        else:
            self.logger.warning("S3 bucket doesn't exist", bucket=bucket)
            created = await self.provisioner.create_container(bucket, region)
            if not created.ok:
                self._fail(result, f"Failed to create S3 bucket {bucket!r}")
                return False
            for warning in created.warnings:
                result.warn(warning)
            result.step(f"Created S3 bucket {bucket!r}")

        if reconcile:
            if await self.provisioner.reconcile_access_policy(bucket, region):
                result.step(f"Updated bucket policy for {bucket!r}")
            else:
                result.warn(f"Failed to update bucket policy for {bucket!r}")
        return True

    async def _resolve_kms(
        self,
        result: WorkflowResult,
        alias: str | None,
        region: str,
        create: bool,
    ) -> str | None:
        """Return a usable KMS key reference, creating the alias when allowed."""
        alias_name = normalize_kms_alias(alias)
        if await self.provisioner.key_alias_exists(alias_name, region):
            self.logger.info("KMS alias already exists", alias=alias_name)
            result.step(f"KMS alias {alias_name!r} already exists")
            return alias_name

        self.logger.warning("KMS alias doesn't exist", alias=alias_name)
        if not create:
            result.warn(f"KMS alias {alias_name!r} doesn't exist and --create-kms is disabled")
            return None

        created = await self.provisioner.create_key_and_alias(alias_name, region)
        if not created.ok:
            result.warn("Failed to create KMS key and alias")
            return None
        for warning in created.warnings:
            result.warn(warning)
        result.step(f"Created KMS key {created.resource_id!r}")
        return created.resource_id

    async def _destination_secrets(
        self,
        result: WorkflowResult,
        mode: SecretsMode,
        region: str,
        passphrase: str | None,
        kms_alias: str | None,
        create_kms: bool,
        fallback: SecretsMode,
    ) -> SecretsConfig:
        """Secrets configuration for a stack on the S3 backend.

        A KMS key that cannot be found or created downgrades to ``fallback``.
        """
        if mode is not SecretsMode.AWSKMS:
            return self._secrets_config(mode, region, passphrase, kms_alias)

        key = await self._resolve_kms(result, kms_alias, region, create_kms)
        if key is not None:
            return self._secrets_config(mode, region, passphrase, key)

        result.warn(f"Falling back to {fallback.value} secrets provider")
        return self._secrets_config(fallback, region, passphrase)

    # Workflows

    async def migrate_to_object_store(
        self,
        stack: str,
        bucket: str | None = None,
        region: str | None = None,
        create_bucket: bool = True,
        secrets_provider: str = SecretsMode.AWSKMS.value,
        kms_alias: str | None = None,
        passphrase: str | None = None,
        create_kms: bool = True,
        workspace: str = ".",
        delete_source: bool = False,
        skip_verify: bool = False,
        fix_permissions: bool = False,
    ) -> WorkflowResult:
        """Migrate a stack from Pulumi Cloud to an S3 backend.

        Args:
            stack: Stack to migrate (``name`` or ``org/name``)
            bucket: State bucket; derived from the project name when omitted
            region: AWS region; defaults to AWS_REGION
            create_bucket: Create the bucket if it does not exist
            secrets_provider: Destination provider: awskms, passphrase or default
            kms_alias: KMS alias for the awskms provider
            passphrase: Passphrase for the passphrase provider
            create_kms: Create the KMS key and alias if missing
            workspace: Pulumi project directory
            delete_source: Remove the Pulumi Cloud stack afterwards (asks first)
            skip_verify: Skip the post-import preview
            fix_permissions: Reconcile the bucket policy for the caller

        Returns:
            WorkflowResult with steps, warnings and next steps
        """
        result = WorkflowResult(workflow="migrate-to-object-store")
        try:
            return await self._migrate_to_object_store(
                result,
                stack,
                bucket,
                region or self.settings.aws_region,
                create_bucket,
                SecretsMode(secrets_provider),
                kms_alias,
                passphrase or self.settings.passphrase,
                create_kms,
                workspace,
                delete_source,
                skip_verify,
                fix_permissions,
            )
        except PulumiBackendError as e:
            return self._fail(result, str(e), e.hint)

    async def _migrate_to_object_store(
        self,
        result: WorkflowResult,
        raw_stack: str,
        bucket: str | None,
        region: str,
        create_bucket: bool,
        mode: SecretsMode,
        kms_alias: str | None,
        passphrase: str | None,
        create_kms: bool,
        workspace: str,
        delete_source: bool,
        skip_verify: bool,
        fix_permissions: bool,
    ) -> WorkflowResult:
        stack = self._parse_stack(raw_stack)
        if mode is SecretsMode.PASSPHRASE:
            self._secrets_config(mode, region, passphrase)

        await self._check_prerequisites(result)

        self.logger.info(
            "Migration plan",
            source_stack=stack.full_name,
            target_bucket=bucket,
            region=region,
            secrets_provider=mode.value,
            workspace=workspace,
        )

        location = self._object_storage_location(self._ask_bucket(bucket, workspace), region)
        source = HostedServiceLocation(organization=stack.organization)

        if not await self._ensure_bucket(result, location, create_bucket, fix_permissions):
            return result

        fallback = SecretsMode.PASSPHRASE if passphrase else SecretsMode.DEFAULT
        config = await self._destination_secrets(
            result, mode, region, passphrase, kms_alias, create_kms, fallback
        )
        self.secrets.apply_environment(config)

        self.logger.info(
            "Starting stack migration", stack=stack.full_name, backend=format_location(location)
        )
        if await self.secrets.set_provider(stack, workspace, config):
            result.step(f"Changed secrets provider to {config.mode.value}")
        else:
            result.warn("Failed to change secrets provider on the source stack")

        transfer = self._new_transfer()
        async with transfer.staging_area(STAGING_DIR_TO_OBJECT_STORE):
            state_path = await transfer.export_state(
                stack, workspace, staging_dir=STAGING_DIR_TO_OBJECT_STORE
            )
            if state_path is None:
                return self._fail(result, "Failed to export stack state. Migration aborted.")
            result.step(f"Exported state of {stack.full_name!r}")

            if not await self.session.login_object_storage(location):
                return await self._abort(
                    result, "Failed to login to S3 backend. Migration aborted.", restore_to=source
                )
            result.step(f"Logged into {format_location(location)}")

            if not await transfer.create_object_storage_stack(stack, workspace, config):
                return await self._abort(
                    result, "Failed to create stack in S3. Migration aborted.", restore_to=source
                )
            result.step(f"Created stack {stack.name!r} in S3 backend")

            if not await transfer.import_state(stack, state_path, workspace):
                return await self._abort(
                    result, "Failed to import stack state. Migration aborted.", restore_to=source
                )
            result.step(f"Imported state into {stack.name!r}")

            if not await self._verify(result, transfer, stack, workspace, skip=skip_verify):
                return await self._abort(result, "Migration aborted by user", restore_to=source)

            if delete_source:
                await self._delete_source(
                    result,
                    transfer,
                    stack,
                    source,
                    location,
                    workspace,
                    f"Are you sure you want to delete the source stack {stack.full_name!r} "
                    "from Pulumi Cloud?",
                )

            transfer.complete()

        backend_url = format_location(location)
        result.details = {
            "stack": stack.full_name,
            "backend": backend_url,
            "secrets_provider": config.mode.value,
            "next_steps": _format_next_steps([
                f"Confirm your stack is working correctly: pulumi stack select {stack.name}",
                "Verify your infrastructure with: pulumi preview",
                f'Update any CI/CD pipelines to use the new backend URL: pulumi login "{backend_url}"',
                _secrets_next_step(config),
            ]),
        }
        self.logger.info("Stack migrated", stack=stack.full_name, backend=backend_url)
        return result.succeed()

    async def _verify(
        self,
        result: WorkflowResult,
        transfer: StackTransferEngine,
        stack: StackReference,
        workspace: str,
        organization: str | None = None,
        skip: bool = False,
    ) -> bool:
        """Run verification. False means the user declined to continue past a mismatch."""
        if skip:
            result.warn("Skipped verification step")
            return True

        if await transfer.verify(stack, workspace, organization):
            result.step("Migration verification successful")
            return True

        changes = transfer.last_preview.describe() if transfer.last_preview else "unknown"
        result.warn(
            f"Migration verification failed ({changes}). "
            "The stack state may not be identical."
        )
        return self.decisions.confirm("Do you want to continue with the migration?", default=False)

    async def _delete_source(
        self,
        result: WorkflowResult,
        transfer: StackTransferEngine,
        stack: StackReference,
        source: BackendLocation,
        destination: BackendLocation,
        workspace: str,
        question: str,
        access_token: str | None = None,
    ) -> None:
        if not self.decisions.confirm(question, default=False):
            self.logger.info("Source stack deletion cancelled by user")
            result.step("Source stack deletion cancelled by user")
            return

        if await transfer.delete_source_stack(stack, source, destination, workspace, access_token):
            result.step(f"Deleted source stack {stack.full_name!r}")
        else:
            result.warn("Failed to delete source stack, but migration was successful")

    async def migrate_to_hosted(
        self,
        stack: str,
        organization: str,
        backend: str | None = None,
        access_token: str | None = None,
        secrets_provider: str = SecretsMode.SERVICE.value,
        passphrase: str | None = None,
        kms_key: str | None = None,
        workspace: str = ".",
        delete_source: bool = False,
        skip_verify: bool = False,
    ) -> WorkflowResult:
        """Migrate a stack from an S3 backend to Pulumi Cloud.

        Args:
            stack: Stack to migrate
            organization: Pulumi Cloud organization for the new stack
            backend: Source ``s3://bucket?region=R`` URL; prompted or derived when omitted
            access_token: Pulumi Cloud access token
            secrets_provider: Destination provider: service, passphrase or awskms
            passphrase: Passphrase that decrypts the source stack's secrets. With the
                passphrase provider it also encrypts the migrated stack.
            kms_key: KMS key of the source stack. With the awskms provider the
                migrated stack is bound to the same key.
            workspace: Pulumi project directory
            delete_source: Remove the S3 stack afterwards (asks first)
            skip_verify: Skip the post-import preview

        Returns:
            WorkflowResult with steps, warnings and next steps
        """
        result = WorkflowResult(workflow="migrate-to-hosted")
        try:
            return await self._migrate_to_hosted(
                result,
                stack,
                organization,
                backend,
                access_token or self.settings.access_token,
                SecretsMode(secrets_provider),
                passphrase or self.settings.passphrase,
                kms_key,
                workspace,
                delete_source,
                skip_verify,
            )
        except PulumiBackendError as e:
            return self._fail(result, str(e), e.hint)

    async def _migrate_to_hosted(
        self,
        result: WorkflowResult,
        raw_stack: str,
        organization: str,
        backend: str | None,
        access_token: str | None,
        mode: SecretsMode,
        passphrase: str | None,
        kms_key: str | None,
        workspace: str,
        delete_source: bool,
        skip_verify: bool,
    ) -> WorkflowResult:
        stack = self._parse_stack(raw_stack)
        source_location = (
            parse_object_storage_location(backend, self.settings.aws_region) if backend else None
        )
        destination_config = None
        if mode is not SecretsMode.SERVICE:
            destination_config = self._secrets_config(
                mode,
                source_location.region if source_location else self.settings.aws_region,
                passphrase,
                kms_key,
            )

        await self._check_prerequisites(result)

        target = stack.qualified(organization)
        self.logger.info(
            "Migration plan",
            source_backend=format_location(source_location) if source_location else None,
            source_stack=stack.full_name,
            target_backend="Pulumi Cloud",
            target_organization=organization or "Default",
            workspace=workspace,
        )

        if source_location is None:
            bucket = self._ask_bucket(None, workspace)
            source_location = self._object_storage_location(bucket, self._choose_region(None))
        destination = HostedServiceLocation(organization=organization)

        if not await self.session.login_object_storage(source_location):
            return self._fail(
                result,
                "Failed to login to S3 backend. Migration aborted.",
                hint="Check your AWS credentials and the S3 backend URL.",
            )
        result.step(f"Logged into {format_location(source_location)}")

        export_env = {PASSPHRASE_ENV: passphrase} if passphrase else None

        transfer = self._new_transfer()
        async with transfer.staging_area(STAGING_DIR_TO_HOSTED):
            state_path = await transfer.export_state(
                stack, workspace, env=export_env, staging_dir=STAGING_DIR_TO_HOSTED
            )
            if state_path is None:
                hint = f"Make sure the stack {stack.full_name!r} exists and you have access to it."
                if not passphrase and not kms_key:
                    hint += " If the stack uses encrypted secrets, try providing --passphrase or --kms-key."
                return self._fail(result, "Failed to export stack state. Migration aborted.", hint)
            result.step(f"Exported state of {stack.full_name!r}")

            if not await self.session.login_hosted_service(access_token, organization):
                hint = (
                    "Check that your access token is valid."
                    if access_token
                    else f"You might need to login first with 'pulumi login' or set {ACCESS_TOKEN_ENV}."
                )
                return await self._abort(
                    result,
                    "Failed to login to Pulumi Cloud. Migration aborted.",
                    restore_to=source_location,
                    hint=hint,
                )
            result.step("Logged into Pulumi Cloud")

            if not await transfer.create_hosted_stack(stack, workspace, organization):
                return await self._abort(
                    result,
                    "Failed to create stack in Pulumi Cloud. Migration aborted.",
                    restore_to=source_location,
                )
            result.step(f"Created stack {target!r} in Pulumi Cloud")

            if not await transfer.import_state(stack, state_path, workspace, organization):
                return await self._abort(
                    result,
                    "Failed to import stack state. Migration aborted.",
                    restore_to=source_location,
                )
            result.step(f"Imported state into {target!r}")

            if destination_config is None:
                changed = await self.secrets.reset_to_default(stack, workspace, organization)
            else:
                destination_stack = StackReference(
                    organization=stack.resolve_organization(organization), name=stack.name
                )
                applied = await self.secrets.set_provider(
                    destination_stack, workspace, destination_config
                )
                changed = applied is not None

            if changed:
                result.step(f"Changed secrets provider to {mode.value}")
            else:
                result.warn(
                    f"Failed to change secrets provider to {mode.value}. "
                    "Migration may be incomplete."
                )
                if not self.decisions.confirm(
                    "Do you want to continue with the migration anyway?", default=False
                ):
                    return await self._abort(
                        result, "Migration aborted by user", restore_to=source_location
                    )

            if not await self._verify(
                result, transfer, stack, workspace, organization, skip=skip_verify
            ):
                return await self._abort(
                    result, "Migration aborted by user", restore_to=source_location
                )

            if delete_source:
                await self._delete_source(
                    result,
                    transfer,
                    stack,
                    source_location,
                    destination,
                    workspace,
                    f"Are you sure you want to delete the source stack {stack.full_name!r} "
                    "from the S3 backend?",
                    access_token,
                )

            transfer.complete()

        target_org = stack.resolve_organization(organization)
        result.details = {
            "stack": target,
            "backend": "Pulumi Cloud",
            "secrets_provider": mode.value,
            "next_steps": _format_next_steps([
                f"Confirm your stack is working correctly: pulumi stack select {target}",
                "Verify your infrastructure with: pulumi preview",
                "Update any CI/CD pipelines to use Pulumi Cloud: pulumi login",
                f"Select the stack in CI/CD with: pulumi stack select {target}" if target_org else None,
            ]),
        }
        self.logger.info("Stack migrated to Pulumi Cloud", stack=stack.full_name, target=target)
        return result.succeed()

    async def initialize_project(
        self,
        name: str | None = None,
        description: str | None = None,
        template: str | None = None,
        stack: str | None = None,
        bucket: str | None = None,
        region: str | None = None,
        secrets_provider: str | None = None,
        kms_alias: str | None = None,
        passphrase: str | None = None,
        create_bucket: bool = True,
        create_kms: bool = True,
        workspace: str = ".",
    ) -> WorkflowResult:
        """Provision an S3 backend and create a Pulumi project and stack on it.

        Anything not given is asked through the decision provider, whose
        non-interactive answers are the defaults.
        """
        result = WorkflowResult(workflow="init")
        try:
            return await self._initialize_project(
                result,
                name,
                description,
                template,
                stack,
                bucket,
                region,
                secrets_provider,
                kms_alias,
                passphrase or self.settings.passphrase,
                create_bucket,
                create_kms,
                workspace,
            )
        except PulumiBackendError as e:
            return self._fail(result, str(e), e.hint)

    async def _initialize_project(
        self,
        result: WorkflowResult,
        name: str | None,
        description: str | None,
        template: str | None,
        stack_name: str | None,
        bucket: str | None,
        region: str | None,
        secrets_provider: str | None,
        kms_alias: str | None,
        passphrase: str | None,
        create_bucket: bool,
        create_kms: bool,
        workspace: str,
    ) -> WorkflowResult:
        await self._check_prerequisites(result)

        existing = project_exists(workspace)
        if existing:
            self.logger.info("Existing Pulumi project found", workspace=workspace)
            project_name = read_project_name(workspace, name or default_project_name(workspace))
        else:
            project_name = name or self.decisions.ask("Project name", default_project_name(workspace))
            if description is None:
                description = self.decisions.ask("Project description", "")
            template = template or self.decisions.choose(
                "Select project template", PROJECT_TEMPLATES, DEFAULT_TEMPLATE
            )

        stack_name = stack_name or self.decisions.ask("Stack name", DEFAULT_STACK_NAME)
        bucket = bucket or self.decisions.ask(
            "S3 bucket name for state storage", suggest_bucket_name(project_name)
        )
        location = self._object_storage_location(bucket, self._choose_region(region))

        mode = SecretsMode(
            secrets_provider
            or self.decisions.choose(
                "Select secrets provider", INIT_SECRETS_PROVIDERS, SecretsMode.AWSKMS.value
            )
        )
        if mode is SecretsMode.AWSKMS and not kms_alias:
            kms_alias = self.decisions.ask("KMS alias for secrets", DEFAULT_KMS_ALIAS)
        elif mode is SecretsMode.PASSPHRASE and not passphrase:
            passphrase = self.decisions.ask("Passphrase for secrets", "") or None
            self._secrets_config(mode, location.region, passphrase)

        self.logger.info(
            "Initialization plan",
            project=project_name,
            stack=stack_name,
            backend=format_location(location),
            secrets_provider=mode.value,
        )

        if not await self._ensure_bucket(result, location, create_bucket, reconcile=True):
            return result

        config = await self._destination_secrets(
            result, mode, location.region, passphrase, kms_alias, create_kms, SecretsMode.DEFAULT
        )
        self.secrets.apply_environment(config)

        backend_url = format_location(location)
        if not await self.session.login_object_storage(location):
            return self._fail(result, "Failed to configure S3 backend. Initialization aborted.")
        result.step(f"Logged into {backend_url}")

        if not existing:
            if not await init_project(
                self.runner,
                project_name,
                description or "",
                template or DEFAULT_TEMPLATE,
                workspace,
                self.settings.pulumi_bin,
            ):
                return self._fail(
                    result, "Failed to initialize Pulumi project. Initialization aborted."
                )
            result.step(f"Initialized project {project_name!r}")

        if not await init_stack(
            self.runner, stack_name, config, workspace, self.settings.pulumi_bin
        ):
            return self._fail(result, "Failed to create Pulumi stack. Initialization aborted.")
        result.step(f"Created stack {stack_name!r}")

        result.details = {
            "project": project_name,
            "stack": stack_name,
            "backend": backend_url,
            "secrets_provider": config.mode.value,
            "next_steps": _format_next_steps([
                "Edit your Pulumi program in the project directory",
                "Run a preview to see the resources that would be created: pulumi preview",
                "Deploy your infrastructure with: pulumi up",
                f'For CI/CD pipelines, use the backend URL: pulumi login "{backend_url}"',
                _secrets_next_step(config),
            ]),
        }
        self.logger.info("Project initialized", project=project_name, backend=backend_url)
        return result.succeed()

    async def login_object_store(
        self,
        bucket: str | None = None,
        region: str | None = None,
        workspace: str = ".",
    ) -> WorkflowResult:
        """Log into the S3 backend derived from the current project."""
        result = WorkflowResult(workflow="login-object-store")
        try:
            await self._check_prerequisites(result)

            location = self._object_storage_location(
                self._ask_bucket(bucket, workspace), self._choose_region(region)
            )
            if not await self.session.login_object_storage(location):
                return self._fail(
                    result,
                    "Failed to login to S3 backend.",
                    hint="Check your AWS credentials and the S3 backend URL.",
                )
        except PulumiBackendError as e:
            return self._fail(result, str(e), e.hint)

        backend_url = format_location(location)
        result.step(f"Logged into {backend_url}")
        result.details = {
            "backend": backend_url,
            "next_steps": "Confirm your stack is working correctly: pulumi stack ls",
        }
        return result.succeed()
