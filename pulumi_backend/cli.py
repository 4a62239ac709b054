"""Command-line entry point for pulumi-backend."""

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .constants import INIT_SECRETS_PROVIDERS, PROJECT_TEMPLATES
from .core.decisions import build_decisions
from .core.logging_config import get_logger, resolve_log_level, setup_logging
from .core.process_runner import LoggingProgress, NullProgress, ProcessRunner
from .core.settings import BackendSettings, load_settings
from .models.results import EXIT_FAILURE, WorkflowResult
from .models.secrets import SecretsMode
from .services.migration import MigrationOrchestrator

Handler = Callable[[MigrationOrchestrator, argparse.Namespace], Awaitable[WorkflowResult]]


def _output_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parent.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parent.add_argument("-y", "--yes", action="store_true", help="Answer yes to all prompts")
    parent.add_argument(
        "-i",
        "--interactive",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable interactive prompts (default: when stdin is a terminal)",
    )
    parent.add_argument("--no-color", action="store_true", help="Disable colored output")
    return parent


async def _migrate_to_object_store(
    orchestrator: MigrationOrchestrator, args: argparse.Namespace
) -> WorkflowResult:
    return await orchestrator.migrate_to_object_store(
        stack=args.stack,
        bucket=args.bucket,
        region=args.region,
        create_bucket=args.create_bucket,
        secrets_provider=args.secrets_provider,
        kms_alias=args.kms_alias,
        passphrase=args.passphrase,
        create_kms=args.create_kms,
        workspace=args.workspace,
        delete_source=args.delete_source,
        skip_verify=args.skip_verify,
        fix_permissions=args.fix_permissions,
    )


async def _migrate_to_hosted(
    orchestrator: MigrationOrchestrator, args: argparse.Namespace
) -> WorkflowResult:
    return await orchestrator.migrate_to_hosted(
        stack=args.stack,
        organization=args.organization,
        backend=args.backend,
        access_token=args.access_token,
        secrets_provider=args.secrets_provider,
        passphrase=args.passphrase,
        kms_key=args.kms_key,
        workspace=args.workspace,
        delete_source=args.delete_source,
        skip_verify=args.skip_verify,
    )


async def _initialize_project(
    orchestrator: MigrationOrchestrator, args: argparse.Namespace
) -> WorkflowResult:
    return await orchestrator.initialize_project(
        name=args.name,
        description=args.description,
        template=args.template,
        stack=args.stack,
        bucket=args.bucket,
        region=args.region,
        secrets_provider=args.secrets_provider,
        kms_alias=args.kms_alias,
        passphrase=args.passphrase,
        create_bucket=args.create_bucket,
        create_kms=args.create_kms,
        workspace=args.workspace,
    )


async def _login_object_store(
    orchestrator: MigrationOrchestrator, args: argparse.Namespace
) -> WorkflowResult:
    return await orchestrator.login_object_store(
        bucket=args.bucket, region=args.region, workspace=args.workspace
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per workflow."""
    output = _output_options()

    parser = argparse.ArgumentParser(
        prog="pulumi-backend",
        description="Manage Pulumi backends: migrate stacks between Pulumi Cloud and S3",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    to_s3 = subparsers.add_parser(
        "migrate-to-object-store",
        parents=[output],
        help="Migrate a stack from Pulumi Cloud to an S3 backend",
    )
    to_s3.add_argument("-s", "--stack", required=True, help="Stack name to migrate")
    to_s3.add_argument("-b", "--bucket", help="S3 bucket name (default: from the project name)")
    to_s3.add_argument("-r", "--region", help="AWS region (default: AWS_REGION or eu-west-3)")
    to_s3.add_argument(
        "--create-bucket",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Create the S3 bucket if it doesn't exist",
    )
    to_s3.add_argument(
        "--secrets-provider",
        choices=[SecretsMode.PASSPHRASE.value, SecretsMode.AWSKMS.value, SecretsMode.DEFAULT.value],
        default=SecretsMode.AWSKMS.value,
        help="Secrets provider for the migrated stack",
    )
    to_s3.add_argument("-a", "--kms-alias", help="KMS key alias (default: alias/pulumi-secrets)")
    to_s3.add_argument("-p", "--passphrase", help="Passphrase for secrets encryption")
    to_s3.add_argument(
        "--create-kms",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Create the KMS key if needed",
    )
    to_s3.add_argument("-w", "--workspace", default=".", help="Path to the Pulumi project")
    to_s3.add_argument(
        "-d", "--delete-source", action="store_true", help="Delete the source stack afterwards"
    )
    to_s3.add_argument("--skip-verify", action="store_true", help="Skip the verification step")
    to_s3.add_argument(
        "--fix-permissions", action="store_true", help="Fix S3 bucket permissions"
    )
    to_s3.set_defaults(handler=_migrate_to_object_store)

    to_cloud = subparsers.add_parser(
        "migrate-to-hosted",
        parents=[output],
        help="Migrate a stack from an S3 backend to Pulumi Cloud",
    )
    to_cloud.add_argument("-s", "--stack", required=True, help="Stack name to migrate")
    to_cloud.add_argument(
        "-g", "--organization", required=True, help="Pulumi Cloud organization"
    )
    to_cloud.add_argument(
        "-b", "--backend", help="S3 backend URL (e.g. s3://my-bucket?region=us-west-2)"
    )
    to_cloud.add_argument("-t", "--access-token", help="Pulumi access token")
    to_cloud.add_argument(
        "--secrets-provider",
        choices=[SecretsMode.SERVICE.value, SecretsMode.PASSPHRASE.value, SecretsMode.AWSKMS.value],
        default=SecretsMode.SERVICE.value,
        help="Secrets provider for the migrated stack",
    )
    to_cloud.add_argument(
        "-p",
        "--passphrase",
        help="Source passphrase for decrypting secrets (also used for --secrets-provider passphrase)",
    )
    to_cloud.add_argument(
        "-k",
        "--kms-key",
        help="Source KMS key for decrypting secrets (also used for --secrets-provider awskms)",
    )
    to_cloud.add_argument("-w", "--workspace", default=".", help="Path to the Pulumi project")
    to_cloud.add_argument(
        "-d", "--delete-source", action="store_true", help="Delete the source stack afterwards"
    )
    to_cloud.add_argument("--skip-verify", action="store_true", help="Skip the verification step")
    to_cloud.set_defaults(handler=_migrate_to_hosted)

    init = subparsers.add_parser(
        "init", parents=[output], help="Set up a Pulumi project with an S3 backend"
    )
    init.add_argument("-n", "--name", help="Project name (default: directory name)")
    init.add_argument("--description", help="Project description")
    init.add_argument(
        "--template", "--runtime", choices=PROJECT_TEMPLATES, help="Project template"
    )
    init.add_argument("-s", "--stack", help="Stack name (default: dev)")
    init.add_argument("-b", "--bucket", help="S3 bucket name (default: from the project name)")
    init.add_argument("-r", "--region", help="AWS region")
    init.add_argument(
        "--secrets-provider", choices=INIT_SECRETS_PROVIDERS, help="Secrets provider"
    )
    init.add_argument("-a", "--kms-alias", help="KMS key alias (default: alias/pulumi-secrets)")
    init.add_argument("-p", "--passphrase", help="Passphrase for secrets encryption")
    init.add_argument(
        "--create-bucket",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Create the S3 bucket if it doesn't exist",
    )
    init.add_argument(
        "--create-kms",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Create the KMS key if needed",
    )
    init.add_argument("-w", "--workspace", default=".", help="Project directory")
    init.set_defaults(handler=_initialize_project)

    login = subparsers.add_parser(
        "login-object-store", parents=[output], help="Log into the project's S3 backend"
    )
    login.add_argument("-b", "--bucket", help="S3 bucket name (default: from the project name)")
    login.add_argument("-r", "--region", help="AWS region")
    login.add_argument("-w", "--workspace", default=".", help="Project directory")
    login.set_defaults(handler=_login_object_store)

    return parser


def render_result(console: Console, result: WorkflowResult, quiet: bool = False) -> None:
    """Print warnings, errors and next steps for a finished workflow."""
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if not result.success:
        console.print(f"[red]Error:[/red] {result.error}")
        if result.hint:
            console.print(f"[dim]{result.hint}[/dim]")
        return

    if quiet:
        return

    summary = [
        f"[bold]{key}[/bold]: {value}"
        for key, value in result.details.items()
        if key != "next_steps"
    ]
    if summary:
        console.print(Panel("\n".join(summary), title=f"{result.workflow} complete", expand=False))
    next_steps = result.details.get("next_steps")
    if next_steps:
        console.print("[bold green]NEXT STEPS[/bold green]")
        for line in next_steps.splitlines():
            console.print(f"  • {line}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    console = Console(no_color=args.no_color)

    try:
        settings: BackendSettings = load_settings()
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid configuration: {e}")
        return EXIT_FAILURE

    setup_logging(
        resolve_log_level(args.quiet, args.verbose, settings.log_level),
        log_dir=settings.log_dir,
        colors=False if args.no_color else None,
    )
    logger = get_logger("cli")

    interactive = args.interactive if args.interactive is not None else sys.stdin.isatty()
    runner = ProcessRunner(progress=NullProgress() if args.quiet else LoggingProgress())
    orchestrator = MigrationOrchestrator(
        settings, build_decisions(interactive, args.yes), runner=runner
    )

    handler: Handler = args.handler
    logger.debug("Running command", command=args.command, interactive=interactive)
    try:
        result = asyncio.run(handler(orchestrator, args))
    except KeyboardInterrupt:
        logger.error("Interrupted by user", command=args.command)
        console.print("[red]Interrupted[/red]")
        return EXIT_FAILURE

    render_result(console, result, quiet=args.quiet)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
