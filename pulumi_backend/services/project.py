"""Pulumi project helpers: naming and scaffold initialization."""

import re
from pathlib import Path

import structlog
import yaml

from ..constants import DEFAULT_TEMPLATE, PROJECT_FILE
from ..core.process_runner import ProcessRunner
from ..models.secrets import SecretsConfig

logger = structlog.get_logger()

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]")


def sanitize_name(value: str) -> str:
    """Lower-case and replace anything outside ``[a-z0-9-]`` with ``-``."""
    return _INVALID_NAME_CHARS.sub("-", value.lower())


def default_project_name(directory: Path | str | None = None) -> str:
    """Project name derived from a directory name (the cwd by default)."""
    path = Path(directory) if directory is not None else Path.cwd()
    return sanitize_name(path.resolve().name)


def project_exists(workspace: Path | str = ".") -> bool:
    return (Path(workspace) / PROJECT_FILE).is_file()


def read_project_name(workspace: Path | str, fallback: str) -> str:
    """Read ``name`` from Pulumi.yaml; return ``fallback`` if it is missing or unreadable."""
    project_file = Path(workspace) / PROJECT_FILE
    try:
        data = yaml.safe_load(project_file.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.debug("Error reading project file", path=str(project_file), error=str(e))
        return fallback

    if isinstance(data, dict):
        name = data.get("name")
        if isinstance(name, str) and name.strip():
            logger.info("Using existing project name", project=name.strip())
            return name.strip()
    return fallback


def resolve_project_name(workspace: Path | str = ".") -> str:
    """Existing project name, or the sanitized workspace directory name."""
    fallback = default_project_name(workspace)
    if project_exists(workspace):
        logger.info("Existing Pulumi project found", workspace=str(workspace))
        return read_project_name(workspace, fallback)
    return fallback


def suggest_bucket_name(project_name: str) -> str:
    return sanitize_name(project_name)


async def init_project(
    runner: ProcessRunner,
    name: str,
    description: str = "",
    template: str = DEFAULT_TEMPLATE,
    workspace: str = ".",
    pulumi_bin: str = "pulumi",
) -> bool:
    """Scaffold a new Pulumi project with ``pulumi new``."""
    logger.info("Initializing Pulumi project", project=name, template=template)

    cmd = [pulumi_bin, "new", template, "--force", "--yes"]
    if name:
        cmd += ["--name", name]
    if description:
        cmd += ["--description", description]

    result = await runner.run(cmd, cwd=workspace, silent=True)
    if not result.succeeded:
        logger.error("Failed to initialize Pulumi project", project=name)
        logger.debug("pulumi new output", output=result.output)
        return False

    logger.info("Pulumi project initialized", project=name)
    return True


async def init_stack(
    runner: ProcessRunner,
    stack_name: str,
    config: SecretsConfig,
    workspace: str = ".",
    pulumi_bin: str = "pulumi",
) -> bool:
    """Create the project's first stack bound to ``config``'s secrets provider."""
    logger.info("Creating stack", stack=stack_name, secrets_provider=config.mode.value)

    result = await runner.run(
        [pulumi_bin, "stack", "init", stack_name, *config.init_arguments()],
        cwd=workspace,
        silent=True,
    )
    if not result.succeeded:
        logger.error("Failed to create stack", stack=stack_name)
        logger.debug("stack init output", output=result.output)
        return False

    logger.info("Created stack", stack=stack_name)
    return True
