"""Stack state transfer between Pulumi backends.

One engine instance drives one migration: export the source stack to a
staging file, create the destination stack, import the staged state and
verify it with a preview. Operations must run in that order; calling one
out of order raises TransferStateError.
"""

import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path

import structlog

from ...constants import PASSPHRASE_ENV, STAGING_DIR_TO_OBJECT_STORE
from ...core.exceptions import TransferStateError
from ...core.process_runner import ProcessRunner
from ...core.session import BackendSession
from ...models.location import BackendLocation, describe_location
from ...models.secrets import SecretsConfig, SecretsMode
from ...models.stack import StackReference
from .verification import PreviewSummary

logger = structlog.get_logger()


class TransferState(str, Enum):
    """Progress of a single stack transfer."""

    IDLE = "idle"
    EXPORTED = "exported"
    DESTINATION_READY = "destination_ready"
    IMPORTED = "imported"
    VERIFIED = "verified"
    SOURCE_DELETED = "source_deleted"
    COMPLETE = "complete"
    FAILED = "failed"


class StackTransferEngine:
    """Moves one stack's state from the current backend to another."""

    def __init__(
        self,
        runner: ProcessRunner,
        session: BackendSession,
        pulumi_bin: str = "pulumi",
        base_dir: Path | str | None = None,
    ):
        self.runner = runner
        self.session = session
        self.pulumi_bin = pulumi_bin
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.state = TransferState.IDLE
        self.staged_path: Path | None = None
        self.last_preview: PreviewSummary | None = None
        self.logger = logger.bind(component="stack_transfer")

    def _require(self, operation: str, *allowed: TransferState) -> None:
        if self.state not in allowed:
            expected = ", ".join(state.value for state in allowed)
            raise TransferStateError(
                f"Cannot {operation} in state {self.state.value!r} (expected {expected})"
            )

    def _advance(self, succeeded: bool, target: TransferState) -> bool:
        self.state = target if succeeded else TransferState.FAILED
        return succeeded

    def staging_dir(self, name: str = STAGING_DIR_TO_OBJECT_STORE) -> Path:
        return self.base_dir / name

    @asynccontextmanager
    async def staging_area(self, name: str = STAGING_DIR_TO_OBJECT_STORE) -> AsyncIterator[Path]:
        """Yield the staging directory and remove it on every exit path."""
        try:
            yield self.staging_dir(name)
        finally:
            self.cleanup(name)

    def cleanup(self, name: str = STAGING_DIR_TO_OBJECT_STORE) -> None:
        """Remove the staging directory. Errors are logged, never raised."""
        staging = self.staging_dir(name)
        if not staging.exists():
            return
        try:
            shutil.rmtree(staging)
            self.logger.debug("Cleaned up temporary directory", path=str(staging))
        except OSError as e:
            self.logger.debug(
                "Failed to clean up temporary directory", path=str(staging), error=str(e)
            )

    async def export_state(
        self,
        stack: StackReference,
        workspace: str,
        env: dict[str, str] | None = None,
        staging_dir: str = STAGING_DIR_TO_OBJECT_STORE,
    ) -> Path | None:
        """Export the stack, secrets in cleartext, to a staging file.

        The destination backend re-encrypts secrets with its own provider on
        import, so the staged file must carry them decrypted.

        Args:
            stack: Source stack
            workspace: Pulumi project directory
            env: Extra environment for the export (e.g. a source passphrase)
            staging_dir: Staging directory name under the base directory

        Returns:
            Absolute path of the staged state, or None on failure
        """
        self._require("export state", TransferState.IDLE)

        staging = self.staging_dir(staging_dir)
        try:
            staging.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error("Failed to create staging directory", path=str(staging), error=str(e))
            self._advance(False, TransferState.EXPORTED)
            return None

        state_path = (staging / f"{stack.file_stem}-state.json").resolve()
        self.logger.info("Exporting stack state", stack=stack.full_name, path=str(state_path))

        result = await self.runner.run(
            [
                self.pulumi_bin, "stack", "export", "--show-secrets",
                "--stack", stack.full_name,
                "--file", str(state_path),
            ],
            cwd=workspace,
            env=env,
            silent=True,
        )
        if not result.succeeded:
            self.logger.error("Failed to export stack state", stack=stack.full_name)
            self.logger.debug("stack export output", output=result.output)
            self._advance(False, TransferState.EXPORTED)
            return None

        try:
            size_kb = round(state_path.stat().st_size / 1024)
            self.logger.info("Exported stack state", path=str(state_path), size_kb=size_kb)
        except OSError:
            self.logger.info("Exported stack state", path=str(state_path))

        self.staged_path = state_path
        self._advance(True, TransferState.EXPORTED)
        return state_path

    async def create_object_storage_stack(
        self,
        stack: StackReference,
        workspace: str,
        config: SecretsConfig,
        organization: str | None = None,
    ) -> bool:
        """Create the destination stack on an S3 backend.

        The organization-qualified attempt is tried first; when it fails and
        an organization was involved, one retry runs without ``--organization``
        since self-managed backends may not support organizations.
        """
        self._require("create destination stack", TransferState.EXPORTED)

        if config.mode is SecretsMode.PASSPHRASE and config.passphrase:
            self.runner.export_env(PASSPHRASE_ENV, config.passphrase)

        base_cmd = [
            self.pulumi_bin, "stack", "init", stack.name, "--non-interactive",
            *config.init_arguments(),
        ]
        org = stack.resolve_organization(organization)
        cmd = base_cmd + ["--organization", org] if org else base_cmd

        self.logger.info("Creating stack in S3 backend", stack=stack.name, organization=org)
        result = await self.runner.run(cmd, cwd=workspace, silent=True)

        if not result.succeeded and org:
            self.logger.debug(
                "Failed to create stack with organization. Trying without organization flag",
                error=result.output,
            )
            result = await self.runner.run(base_cmd, cwd=workspace, silent=True)

        if not result.succeeded:
            self.logger.error("Failed to create stack in S3 backend", stack=stack.name)
            self.logger.debug("stack init output", output=result.output)
            return self._advance(False, TransferState.DESTINATION_READY)

        self.logger.info("Created stack in S3 backend", stack=stack.name)
        return self._advance(True, TransferState.DESTINATION_READY)

    async def create_hosted_stack(
        self, stack: StackReference, workspace: str, organization: str | None = None
    ) -> bool:
        """Create the destination stack in Pulumi Cloud, organization-qualified when possible."""
        self._require("create destination stack", TransferState.EXPORTED)

        target = stack.qualified(organization)
        self.logger.info("Creating stack in Pulumi Cloud", stack=target)

        result = await self.runner.run(
            [self.pulumi_bin, "stack", "init", target, "--non-interactive"],
            cwd=workspace,
            silent=True,
        )
        if not result.succeeded:
            self.logger.error("Failed to create stack in Pulumi Cloud", stack=target)
            self.logger.debug("stack init output", output=result.output)
            return self._advance(False, TransferState.DESTINATION_READY)

        self.logger.info("Created stack in Pulumi Cloud", stack=target)
        return self._advance(True, TransferState.DESTINATION_READY)

    async def import_state(
        self,
        stack: StackReference,
        path: Path | str,
        workspace: str,
        organization: str | None = None,
    ) -> bool:
        """Import the staged state into the destination stack.

        Without an organization the bare stack name is used, which addresses
        the stack ``stack init`` just selected.
        """
        self._require("import state", TransferState.DESTINATION_READY)

        target = stack.qualified(organization) if organization else stack.name
        self.logger.info("Importing stack state", stack=target)

        result = await self.runner.run(
            [self.pulumi_bin, "stack", "import", "--stack", target, "--file", str(path)],
            cwd=workspace,
            silent=True,
        )
        if not result.succeeded:
            self.logger.error("Failed to import stack state", stack=target)
            self.logger.debug("stack import output", output=result.output)
            return self._advance(False, TransferState.IMPORTED)

        self.logger.info("Imported stack state", stack=target)
        return self._advance(True, TransferState.IMPORTED)

    async def verify(
        self, stack: StackReference, workspace: str, organization: str | None = None
    ) -> bool:
        """Run a preview and expect no pending changes.

        A failed preview or any nonzero change count fails verification.
        The engine stays in IMPORTED so the caller may still proceed.
        """
        self._require("verify", TransferState.IMPORTED)

        target = stack.qualified(organization)
        self.logger.info("Verifying stack migration (expecting no changes)", stack=target)

        result = await self.runner.run(
            [self.pulumi_bin, "preview", "--stack", target, "--diff"],
            cwd=workspace,
            silent=True,
        )
        summary = PreviewSummary.parse(result.output)
        self.last_preview = summary

        if not result.succeeded or summary.has_changes:
            self.logger.error(
                "Verification failed: changes detected in the stack",
                stack=target,
                changes=summary.describe(),
                preview_succeeded=result.succeeded,
            )
            self.logger.debug("Preview output", output=result.output)
            return False

        self.logger.info("Verification successful: no changes detected", stack=target)
        self.state = TransferState.VERIFIED
        return True

    async def delete_source_stack(
        self,
        stack: StackReference,
        source: BackendLocation,
        destination: BackendLocation,
        workspace: str,
        access_token: str | None = None,
    ) -> bool:
        """Remove the stack from the source backend, then log back into the destination.

        The final login runs whether or not the deletion succeeded, so the
        session never stays on the source backend.

        Returns:
            True if the source stack was deleted
        """
        self._require("delete source stack", TransferState.IMPORTED, TransferState.VERIFIED)

        deleted = False
        try:
            self.logger.info(
                "Preparing to delete source stack",
                stack=stack.full_name,
                backend=describe_location(source),
            )
            if await self.session.login(source, access_token):
                result = await self.runner.run(
                    [self.pulumi_bin, "stack", "rm", "--stack", stack.full_name, "--force", "--yes"],
                    cwd=workspace,
                    silent=True,
                )
                deleted = result.succeeded
                if deleted:
                    self.logger.info("Deleted source stack", stack=stack.full_name)
                else:
                    self.logger.error("Failed to delete source stack", stack=stack.full_name)
                    self.logger.debug("stack rm output", output=result.output)
            else:
                self.logger.error(
                    "Failed to log back into source backend", backend=describe_location(source)
                )
        finally:
            if not await self.session.login(destination, access_token):
                self.logger.error(
                    "Failed to log back into destination backend",
                    backend=describe_location(destination),
                )

        if deleted:
            self.state = TransferState.SOURCE_DELETED
        return deleted

    def complete(self) -> None:
        self._require(
            "complete transfer",
            TransferState.IMPORTED,
            TransferState.VERIFIED,
            TransferState.SOURCE_DELETED,
        )
        self.state = TransferState.COMPLETE
