"""Prerequisite checks run before any workflow mutates anything."""

import structlog

from ..constants import PULUMI_INSTALL_URL
from .decisions import DecisionProvider
from .exceptions import PrerequisiteError
from .process_runner import ProcessRunner

logger = structlog.get_logger()


class PrerequisiteChecker:
    """Verifies the pulumi CLI is usable and AWS credentials resolve."""

    def __init__(self, runner: ProcessRunner, pulumi_bin: str = "pulumi", aws_bin: str = "aws"):
        self.runner = runner
        self.pulumi_bin = pulumi_bin
        self.aws_bin = aws_bin
        self.logger = logger.bind(component="prerequisites")

    async def pulumi_installed(self) -> bool:
        result = await self.runner.run([self.pulumi_bin, "version"], silent=True)
        if result.succeeded:
            self.logger.debug("Pulumi version", version=result.output)
        return result.succeeded

    async def aws_configured(self) -> bool:
        result = await self.runner.run([self.aws_bin, "sts", "get-caller-identity"], silent=True)
        if result.succeeded:
            self.logger.debug("AWS identity", identity=result.output)
        return result.succeeded

    async def run_all(self, decisions: DecisionProvider) -> list[str]:
        """Run every check.

        A missing pulumi CLI is fatal. Unusable AWS credentials are a warning
        the user must explicitly accept.

        Returns:
            Warnings accepted by the user

        Raises:
            PrerequisiteError: A check failed and the run must stop
        """
        warnings: list[str] = []

        if not await self.pulumi_installed():
            raise PrerequisiteError(
                "Pulumi CLI is not installed or not in PATH",
                hint=f"Install the Pulumi CLI: {PULUMI_INSTALL_URL}",
            )
        self.logger.info("Pulumi CLI is installed and working")

        if await self.aws_configured():
            self.logger.info("AWS credentials are properly configured")
            return warnings

        message = "AWS credentials are not properly configured"
        self.logger.warning(
            message,
            hint="This might cause issues when accessing AWS resources.",
        )
        if not decisions.confirm("Do you want to continue anyway?", default=False):
            raise PrerequisiteError(
                message, hint="Configure AWS credentials (aws configure) and try again."
            )
        warnings.append(message)
        return warnings
