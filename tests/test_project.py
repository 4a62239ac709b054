"""Tests for Pulumi project helpers."""

import pytest

from pulumi_backend.models import SecretsConfig, SecretsMode
from pulumi_backend.services.project import (
    default_project_name,
    init_project,
    init_stack,
    project_exists,
    read_project_name,
    resolve_project_name,
    sanitize_name,
    suggest_bucket_name,
)


class TestNaming:
    @pytest.mark.parametrize(
        "raw,expected",
        [("My_Project", "my-project"), ("infra.prod", "infra-prod"), ("ok-name-1", "ok-name-1")],
    )
    def test_sanitize_name(self, raw, expected):
        """Test name sanitization."""
        assert sanitize_name(raw) == expected

    def test_default_project_name_from_directory(self, tmp_path):
        """Test the project name comes from the directory."""
        directory = tmp_path / "My Stack"
        directory.mkdir()
        assert default_project_name(directory) == "my-stack"

    def test_suggest_bucket_name(self):
        """Test bucket names derive from project names."""
        assert suggest_bucket_name("Web_App") == "web-app"


class TestProjectFile:
    def test_missing_project(self, workspace):
        """Test a workspace without Pulumi.yaml."""
        assert not project_exists(workspace)
        assert resolve_project_name(workspace) == "proj"

    def test_reads_name(self, workspace):
        """Test reading the name from Pulumi.yaml."""
        (workspace / "Pulumi.yaml").write_text("name: billing-api\nruntime: python\n")

        assert project_exists(workspace)
        assert read_project_name(workspace, "fallback") == "billing-api"
        assert resolve_project_name(workspace) == "billing-api"

    def test_unreadable_project_uses_fallback(self, workspace):
        """Test invalid YAML falls back."""
        (workspace / "Pulumi.yaml").write_text("name: [unclosed\n")
        assert read_project_name(workspace, "fallback") == "fallback"

    def test_project_without_name_uses_fallback(self, workspace):
        """Test a project without a name falls back."""
        (workspace / "Pulumi.yaml").write_text("runtime: go\n")
        assert read_project_name(workspace, "fallback") == "fallback"


@pytest.mark.asyncio
class TestScaffold:
    async def test_init_project(self, fake_runner):
        """Test pulumi new arguments."""
        assert await init_project(fake_runner, "billing", "Billing infra", "python", "/work")

        assert fake_runner.calls == [
            [
                "pulumi", "new", "python", "--force", "--yes",
                "--name", "billing", "--description", "Billing infra",
            ]
        ]
        assert fake_runner.cwds == ["/work"]

    async def test_init_project_failure(self, fake_runner):
        """Test pulumi new failure."""
        fake_runner.on("pulumi", "new", succeeded=False, output="template not found")
        assert not await init_project(fake_runner, "billing")

    async def test_init_stack_with_kms(self, fake_runner):
        """Test the first stack is bound to KMS."""
        config = SecretsConfig(mode=SecretsMode.AWSKMS, region="eu-west-3")

        assert await init_stack(fake_runner, "dev", config, "/work")

        assert fake_runner.calls == [
            [
                "pulumi", "stack", "init", "dev",
                "--secrets-provider", "awskms://alias/pulumi-secrets?region=eu-west-3",
            ]
        ]

    async def test_init_stack_failure(self, fake_runner):
        """Test stack init failure."""
        fake_runner.on("pulumi", "stack", "init", succeeded=False)
        assert not await init_stack(fake_runner, "dev", SecretsConfig(region="eu-west-3"))
