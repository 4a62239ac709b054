"""Secrets provider switching for Pulumi stacks."""

import structlog

from ..constants import PASSPHRASE_ENV
from ..core.process_runner import ProcessRunner
from ..models.secrets import SecretsConfig, SecretsMode
from ..models.stack import StackReference

logger = structlog.get_logger()


class SecretsProviderManager:
    """Runs ``pulumi stack change-secrets-provider`` for a stack."""

    def __init__(self, runner: ProcessRunner, pulumi_bin: str = "pulumi"):
        self.runner = runner
        self.pulumi_bin = pulumi_bin
        self.logger = logger.bind(component="secrets_provider")

    def apply_environment(self, config: SecretsConfig) -> None:
        """Export the passphrase for passphrase mode so later pulumi calls never prompt."""
        if config.mode is SecretsMode.PASSPHRASE and config.passphrase:
            self.runner.export_env(PASSPHRASE_ENV, config.passphrase)

    async def set_provider(
        self, stack: StackReference, workspace: str, config: SecretsConfig
    ) -> SecretsMode | None:
        """Bind ``stack`` to the provider described by ``config``.

        Args:
            stack: Stack to change
            workspace: Pulumi project directory
            config: Target secrets configuration

        Returns:
            The mode on success, None on failure. The caller decides whether
            a failed change is fatal.
        """
        if config.mode is SecretsMode.PASSPHRASE:
            if not config.passphrase:
                self.logger.error("No passphrase provided for passphrase secrets provider")
                return None
            self.apply_environment(config)

        provider = config.provider_argument()
        self.logger.info(
            "Changing secrets provider", stack=stack.full_name, provider=config.mode.value
        )
        self.logger.debug("Secrets provider argument", provider=provider)

        result = await self.runner.run(
            [
                self.pulumi_bin, "stack", "change-secrets-provider", provider,
                "--stack", stack.full_name,
            ],
            cwd=workspace,
            silent=True,
        )
        if not result.succeeded:
            self.logger.error("Failed to change secrets provider", stack=stack.full_name)
            self.logger.debug("change-secrets-provider output", output=result.output)
            return None

        self.logger.info(
            "Changed secrets provider", stack=stack.full_name, provider=config.mode.value
        )
        return config.mode

    async def reset_to_default(
        self, stack: StackReference, workspace: str, organization: str | None = None
    ) -> bool:
        """Switch ``stack`` back to the backend's default provider."""
        target = stack.qualified(organization)
        self.logger.info("Changing secrets provider to default", stack=target)

        result = await self.runner.run(
            [
                self.pulumi_bin, "stack", "change-secrets-provider", SecretsMode.DEFAULT.value,
                "--stack", target,
            ],
            cwd=workspace,
            silent=True,
        )
        if not result.succeeded:
            self.logger.error("Failed to change secrets provider", stack=target)
            self.logger.debug("change-secrets-provider output", output=result.output)
            return False

        self.logger.info("Changed secrets provider to default", stack=target)
        return True
