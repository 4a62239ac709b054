"""Pulumi backend session handling.

``pulumi login``/``pulumi logout`` mutate the process-wide credentials file,
so the currently authenticated backend is global state. BackendSession makes
that state explicit: every login goes through the handle, and ``current``
always reflects the backend the last successful login pointed at.
"""

import structlog

from ..constants import ACCESS_TOKEN_ENV
from ..models.location import (
    BackendLocation,
    HostedServiceLocation,
    ObjectStorageLocation,
    describe_location,
    format_location,
)
from .process_runner import ProcessRunner

logger = structlog.get_logger()


class BackendSession:
    """Tracks and switches the authenticated Pulumi backend."""

    def __init__(self, runner: ProcessRunner, pulumi_bin: str = "pulumi"):
        self.runner = runner
        self.pulumi_bin = pulumi_bin
        self.current: BackendLocation | None = None
        self.identity: str | None = None
        self.logger = logger.bind(component="backend_session")

    async def logout(self) -> bool:
        """Log out of whatever backend is active. Safe when not logged in."""
        result = await self.runner.run([self.pulumi_bin, "logout"], silent=True)
        self.current = None
        self.identity = None
        return result.succeeded

    async def login_object_storage(self, location: ObjectStorageLocation) -> bool:
        """Log out, then log into an S3 backend."""
        await self.logout()

        backend_url = format_location(location)
        self.logger.info("Logging into S3 backend", backend=backend_url)
        result = await self.runner.run([self.pulumi_bin, "login", backend_url], silent=True)

        if not result.succeeded:
            self.logger.error("Failed to login to S3 backend", backend=backend_url)
            self.logger.debug("Login output", output=result.output)
            return False

        self.current = location
        self.logger.info("Logged into S3 backend", backend=backend_url)
        return True

    async def login_hosted_service(
        self, access_token: str | None = None, organization: str | None = None
    ) -> bool:
        """Log out, log into Pulumi Cloud and confirm the session with ``whoami``.

        ``pulumi login`` can exit 0 while leaving an unusable session when
        cached credentials are stale, so success requires ``whoami`` too.
        """
        await self.logout()

        env: dict[str, str] = {}
        if access_token:
            env[ACCESS_TOKEN_ENV] = access_token
            self.logger.debug("Using provided access token for Pulumi Cloud login")

        self.logger.info("Logging into Pulumi Cloud")
        result = await self.runner.run([self.pulumi_bin, "login"], env=env, silent=True)
        if not result.succeeded:
            self.logger.error("Failed to login to Pulumi Cloud")
            self.logger.debug("Login output", output=result.output)
            return False

        whoami = await self.runner.run([self.pulumi_bin, "whoami"], env=env, silent=True)
        if not whoami.succeeded:
            self.logger.error("Failed to verify Pulumi Cloud login")
            self.logger.debug("whoami output", output=whoami.output)
            return False

        self.current = HostedServiceLocation(organization=organization)
        self.identity = whoami.output or None
        self.logger.info("Logged into Pulumi Cloud", user=self.identity)
        return True

    async def login(self, location: BackendLocation, access_token: str | None = None) -> bool:
        """Log into either kind of backend."""
        if isinstance(location, ObjectStorageLocation):
            return await self.login_object_storage(location)
        return await self.login_hosted_service(access_token, location.organization)

    def describe(self) -> str:
        return describe_location(self.current)
