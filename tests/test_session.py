"""Tests for backend session switching."""

import pytest

from pulumi_backend.core.session import BackendSession
from pulumi_backend.models import HostedServiceLocation, ObjectStorageLocation

from tests.conftest import FakeRunner

S3 = ObjectStorageLocation(bucket="proj-state", region="eu-west-3")


@pytest.mark.asyncio
class TestObjectStorageLogin:
    async def test_logs_out_before_login(self, fake_runner, session):
        """Test logout runs before an S3 login."""
        assert await session.login_object_storage(S3)

        assert fake_runner.calls[0] == ["pulumi", "logout"]
        assert fake_runner.calls[1] == ["pulumi", "login", "s3://proj-state?region=eu-west-3"]
        assert session.current == S3

    async def test_logout_failure_is_ignored(self, fake_runner, session):
        """Test a failed logout does not block login."""
        fake_runner.on("pulumi", "logout", succeeded=False, output="not logged in")

        assert await session.login_object_storage(S3)
        assert session.current == S3

    async def test_login_failure(self, fake_runner, session):
        """Test S3 login failure leaves no current backend."""
        fake_runner.on("pulumi", "login", succeeded=False, output="access denied")

        assert not await session.login_object_storage(S3)
        assert session.current is None


@pytest.mark.asyncio
class TestHostedServiceLogin:
    async def test_login_verifies_identity(self, fake_runner, session):
        """Test hosted login is confirmed with whoami."""
        fake_runner.on("pulumi", "whoami", output="octocat")

        assert await session.login_hosted_service(organization="acme")

        assert fake_runner.calls == [["pulumi", "logout"], ["pulumi", "login"], ["pulumi", "whoami"]]
        assert session.current == HostedServiceLocation(organization="acme")
        assert session.identity == "octocat"

    async def test_stale_credentials_fail_whoami(self, fake_runner, session):
        """Test stale credentials fail the login."""
        fake_runner.on("pulumi", "whoami", succeeded=False, output="unauthenticated")

        assert not await session.login_hosted_service()
        assert session.current is None

    async def test_login_failure_skips_whoami(self, fake_runner, session):
        """Test whoami is skipped when login fails."""
        fake_runner.on("pulumi", "login", succeeded=False)

        assert not await session.login_hosted_service()
        assert not fake_runner.called("pulumi", "whoami")

    async def test_access_token_passed_in_environment(self, fake_runner, session):
        """Test the access token goes through the environment."""
        assert await session.login_hosted_service(access_token="pul-123")

        login_env = fake_runner.envs[fake_runner.index("pulumi", "login")]
        assert login_env["PULUMI_ACCESS_TOKEN"] == "pul-123"

    async def test_generic_login_dispatches_on_location(self, fake_runner, session):
        """Test login dispatches on the location type."""
        assert await session.login(S3)
        assert session.current == S3

        assert await session.login(HostedServiceLocation(organization="acme"))
        assert session.current == HostedServiceLocation(organization="acme")
        assert session.describe() == "Pulumi Cloud (acme)"


@pytest.mark.asyncio
async def test_logout_clears_current():
    """Test logout clears the current backend."""
    runner = FakeRunner()
    session = BackendSession(runner)
    session.current = S3

    await session.logout()

    assert session.current is None
    assert session.describe() == "none"
