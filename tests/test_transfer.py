"""Tests for the stack transfer engine and preview verification."""

import pytest

from pulumi_backend.core.exceptions import TransferStateError
from pulumi_backend.models import (
    HostedServiceLocation,
    ObjectStorageLocation,
    SecretsConfig,
    SecretsMode,
    StackReference,
)
from pulumi_backend.services.migration import PreviewSummary, StackTransferEngine, TransferState

S3 = ObjectStorageLocation(bucket="proj-state", region="eu-west-3")
CLOUD = HostedServiceLocation()
STACK = StackReference.parse("proj/dev")
KMS = SecretsConfig(mode=SecretsMode.AWSKMS, region="eu-west-3")

NO_CHANGES = """Previewing update (dev):
     Type                 Name      Plan
     pulumi:pulumi:Stack  proj-dev

Resources:
    4 unchanged
"""


@pytest.fixture
def engine(fake_runner, session, tmp_path):
    return StackTransferEngine(fake_runner, session, base_dir=tmp_path)


async def advance_to_imported(engine, workspace="."):
    path = await engine.export_state(STACK, workspace)
    assert await engine.create_object_storage_stack(STACK, workspace, KMS)
    assert await engine.import_state(STACK, path, workspace)
    return path


class TestPreviewSummary:
    """Test change detection in preview output."""

    def test_pending_create_is_a_change(self):
        """Test pending creates count as changes."""
        summary = PreviewSummary.parse("Resources:\n    + 2 to create\n    3 unchanged\n")
        assert summary.create == 2
        assert summary.has_changes

    def test_zero_counts_are_not_changes(self):
        """Test unchanged resources are not changes."""
        summary = PreviewSummary.parse(NO_CHANGES)
        assert not summary.has_changes
        assert summary.describe() == "no changes"

    def test_all_change_kinds(self):
        """Test every change kind is counted."""
        output = """Resources:
    + 1 to create
    ~ 2 to update
    - 3 to delete
    +-4 to replace
    10 unchanged
"""
        summary = PreviewSummary.parse(output)
        assert (summary.create, summary.update, summary.delete, summary.replace) == (1, 2, 3, 4)
        assert summary.describe() == "1 to create, 2 to update, 3 to delete, 4 to replace"

    def test_replace_alone_is_a_change(self):
        """Test a replace is not mistaken for create or delete."""
        summary = PreviewSummary.parse("Resources:\n    +- 1 to replace\n")
        assert summary.replace == 1
        assert summary.create == 0
        assert summary.delete == 0
        assert summary.has_changes

    def test_empty_output(self):
        """Test empty preview output."""
        assert not PreviewSummary.parse("").has_changes


@pytest.mark.asyncio
class TestExport:
    async def test_export_to_staging_file(self, fake_runner, engine, tmp_path):
        """Test export into the staging file."""
        path = await engine.export_state(STACK, "/work", env={"PULUMI_CONFIG_PASSPHRASE": "pw"})

        assert path == (tmp_path / ".pulumi-migrate-temp" / "proj-dev-state.json").resolve()
        assert path.parent.is_dir()
        assert engine.state is TransferState.EXPORTED
        assert fake_runner.calls[-1] == [
            "pulumi", "stack", "export", "--show-secrets",
            "--stack", "proj/dev", "--file", str(path),
        ]
        assert fake_runner.cwds[-1] == "/work"
        assert fake_runner.envs[-1]["PULUMI_CONFIG_PASSPHRASE"] == "pw"

    async def test_existing_staging_directory_is_reused(self, engine, tmp_path):
        """Test an existing staging directory is reused."""
        (tmp_path / ".pulumi-migrate-temp").mkdir()
        assert await engine.export_state(STACK, ".") is not None

    async def test_export_failure_is_absorbing(self, fake_runner, engine):
        """Test a failed export blocks later steps."""
        fake_runner.on("pulumi", "stack", "export", succeeded=False, output="stack not found")

        assert await engine.export_state(STACK, ".") is None
        assert engine.state is TransferState.FAILED

        with pytest.raises(TransferStateError):
            await engine.create_object_storage_stack(STACK, ".", KMS)


@pytest.mark.asyncio
class TestDestinationStack:
    async def test_out_of_order_calls_raise(self, engine):
        """Test operations called out of order raise."""
        with pytest.raises(TransferStateError):
            await engine.import_state(STACK, "state.json", ".")
        with pytest.raises(TransferStateError):
            await engine.create_hosted_stack(STACK, ".")
        with pytest.raises(TransferStateError):
            await engine.verify(STACK, ".")

    async def test_organization_qualified_first(self, fake_runner, engine):
        """Test stack init tries the organization first."""
        await engine.export_state(STACK, ".")

        assert await engine.create_object_storage_stack(STACK, ".", KMS)

        assert fake_runner.commands("pulumi", "stack", "init") == [
            [
                "pulumi", "stack", "init", "dev", "--non-interactive",
                "--secrets-provider", "awskms://alias/pulumi-secrets?region=eu-west-3",
                "--organization", "proj",
            ]
        ]
        assert engine.state is TransferState.DESTINATION_READY

    async def test_retries_without_organization(self, fake_runner, engine):
        """Test stack init retries without the organization."""
        fake_runner.on("pulumi", "stack", "init", contains="--organization", succeeded=False)
        await engine.export_state(STACK, ".")

        assert await engine.create_object_storage_stack(STACK, ".", KMS)

        attempts = fake_runner.commands("pulumi", "stack", "init")
        assert len(attempts) == 2
        assert "--organization" not in attempts[1]
        assert "--secrets-provider" in attempts[1]

    async def test_no_retry_without_organization(self, fake_runner, engine):
        """Test no retry when no organization was involved."""
        fake_runner.on("pulumi", "stack", "init", succeeded=False)
        stack = StackReference.parse("dev")
        await engine.export_state(stack, ".")

        assert not await engine.create_object_storage_stack(stack, ".", KMS)

        assert len(fake_runner.commands("pulumi", "stack", "init")) == 1
        assert engine.state is TransferState.FAILED

    async def test_both_attempts_fail(self, fake_runner, engine):
        """Test both stack init attempts failing."""
        fake_runner.on("pulumi", "stack", "init", succeeded=False)
        await engine.export_state(STACK, ".")

        assert not await engine.create_object_storage_stack(STACK, ".", KMS)
        assert len(fake_runner.commands("pulumi", "stack", "init")) == 2

    async def test_passphrase_exported_for_stack_init(self, fake_runner, engine):
        """Test the passphrase reaches stack init."""
        config = SecretsConfig(mode=SecretsMode.PASSPHRASE, passphrase="pw", region="eu-west-3")
        await engine.export_state(STACK, ".")

        await engine.create_object_storage_stack(STACK, ".", config)

        init = fake_runner.index("pulumi", "stack", "init")
        assert fake_runner.envs[init]["PULUMI_CONFIG_PASSPHRASE"] == "pw"
        assert "--secrets-provider" not in fake_runner.calls[init]

    async def test_hosted_stack_is_organization_qualified(self, fake_runner, engine):
        """Test hosted stacks are organization-qualified."""
        stack = StackReference.parse("dev")
        await engine.export_state(stack, ".")

        assert await engine.create_hosted_stack(stack, ".", "acme")

        assert fake_runner.commands("pulumi", "stack", "init") == [
            ["pulumi", "stack", "init", "acme/dev", "--non-interactive"]
        ]


@pytest.mark.asyncio
class TestImportAndVerify:
    async def test_import_uses_bare_name(self, fake_runner, engine):
        """Test import addresses the bare stack name."""
        path = await advance_to_imported(engine)

        assert fake_runner.commands("pulumi", "stack", "import") == [
            ["pulumi", "stack", "import", "--stack", "dev", "--file", str(path)]
        ]
        assert engine.state is TransferState.IMPORTED

    async def test_import_with_organization(self, fake_runner, engine):
        """Test import with an organization."""
        path = await engine.export_state(STACK, ".")
        await engine.create_hosted_stack(STACK, ".", "acme")

        assert await engine.import_state(STACK, path, ".", "acme")
        assert fake_runner.commands("pulumi", "stack", "import")[0][4] == "acme/dev"

    async def test_import_failure(self, fake_runner, engine):
        """Test import failure."""
        fake_runner.on("pulumi", "stack", "import", succeeded=False)
        path = await engine.export_state(STACK, ".")
        await engine.create_object_storage_stack(STACK, ".", KMS)

        assert not await engine.import_state(STACK, path, ".")
        assert engine.state is TransferState.FAILED

    async def test_verify_no_changes(self, fake_runner, engine):
        """Test verification with no pending changes."""
        fake_runner.on("pulumi", "preview", output=NO_CHANGES)
        await advance_to_imported(engine)

        assert await engine.verify(STACK, ".")

        assert fake_runner.commands("pulumi", "preview") == [
            ["pulumi", "preview", "--stack", "proj/dev", "--diff"]
        ]
        assert engine.state is TransferState.VERIFIED

    async def test_verify_detects_changes_without_rollback(self, fake_runner, engine):
        """Test changes fail verification without rollback."""
        fake_runner.on("pulumi", "preview", output="Resources:\n    + 2 to create\n")
        await advance_to_imported(engine)

        assert not await engine.verify(STACK, ".")

        assert engine.state is TransferState.IMPORTED
        assert engine.last_preview.create == 2
        assert not fake_runner.called("pulumi", "stack", "rm")

    async def test_failed_preview_fails_verification(self, fake_runner, engine):
        """Test a failed preview fails verification."""
        fake_runner.on("pulumi", "preview", succeeded=False, output="error: decrypting secret")
        await advance_to_imported(engine)

        assert not await engine.verify(STACK, ".")

    async def test_complete(self, engine):
        """Test completing after import."""
        await advance_to_imported(engine)
        engine.complete()
        assert engine.state is TransferState.COMPLETE


@pytest.mark.asyncio
class TestDeleteSource:
    """The session always ends on the destination backend."""

    async def test_delete_and_return_to_destination(self, fake_runner, session, engine):
        """Test deletion then return to the destination."""
        await advance_to_imported(engine)

        assert await engine.delete_source_stack(STACK, CLOUD, S3, ".")

        rm = fake_runner.index("pulumi", "stack", "rm")
        assert fake_runner.calls[rm] == ["pulumi", "stack", "rm", "--stack", "proj/dev", "--force", "--yes"]
        assert fake_runner.calls[rm - 1] == ["pulumi", "whoami"]
        assert fake_runner.calls[-1] == ["pulumi", "login", "s3://proj-state?region=eu-west-3"]
        assert session.current == S3
        assert engine.state is TransferState.SOURCE_DELETED

    async def test_deletion_failure_still_returns_to_destination(self, fake_runner, session, engine):
        """Test a failed deletion still returns to the destination."""
        fake_runner.on("pulumi", "stack", "rm", succeeded=False, output="stack has resources")
        await advance_to_imported(engine)

        assert not await engine.delete_source_stack(STACK, CLOUD, S3, ".")

        assert session.current == S3
        assert engine.state is TransferState.IMPORTED

    async def test_source_login_failure_still_returns_to_destination(
        self, fake_runner, session, engine
    ):
        """Test a failed source login still returns to the destination."""
        fake_runner.on("pulumi", "whoami", succeeded=False)
        await advance_to_imported(engine)

        assert not await engine.delete_source_stack(STACK, CLOUD, S3, ".")

        assert not fake_runner.called("pulumi", "stack", "rm")
        assert session.current == S3

    async def test_return_to_hosted_destination_with_token(self, fake_runner, session, engine):
        """Test returning to Pulumi Cloud with a token."""
        await advance_to_imported(engine)
        destination = HostedServiceLocation(organization="acme")

        assert await engine.delete_source_stack(STACK, S3, destination, ".", access_token="tok")

        assert session.current == destination
        assert fake_runner.envs[-1]["PULUMI_ACCESS_TOKEN"] == "tok"

    async def test_requires_import(self, engine):
        """Test deletion requires an import."""
        with pytest.raises(TransferStateError):
            await engine.delete_source_stack(STACK, CLOUD, S3, ".")


@pytest.mark.asyncio
class TestStagingArea:
    async def test_removed_on_success(self, engine, tmp_path):
        """Test the staging area is removed on success."""
        async with engine.staging_area() as staging:
            await engine.export_state(STACK, ".")
            assert staging.exists()

        assert not (tmp_path / ".pulumi-migrate-temp").exists()

    async def test_removed_on_error(self, engine, tmp_path):
        """Test the staging area is removed on error."""
        with pytest.raises(RuntimeError):
            async with engine.staging_area(".pulumi-cloud-migrate-temp"):
                await engine.export_state(STACK, ".", staging_dir=".pulumi-cloud-migrate-temp")
                raise RuntimeError("boom")

        assert not (tmp_path / ".pulumi-cloud-migrate-temp").exists()

    def test_cleanup_missing_directory(self, engine):
        """Test cleanup of a missing directory."""
        engine.cleanup(".does-not-exist")
