"""External command execution for the pulumi and aws CLIs."""

import asyncio
import os
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class ExecutionResult:
    """Result of an external command execution."""

    def __init__(self, output: str, succeeded: bool, cmd: list[str], returncode: int | None = None):
        self.output = output
        self.succeeded = succeeded
        self.cmd = cmd
        self.returncode = returncode

    def __repr__(self) -> str:
        return (
            f"ExecutionResult(succeeded={self.succeeded!r}, returncode={self.returncode!r}, "
            f"cmd={' '.join(self.cmd)!r})"
        )


class ProgressReporter(Protocol):
    """Receives start/finish notifications for observed (non-silent) commands."""

    def start(self, operation_id: str, message: str) -> None: ...

    def finish(self, operation_id: str, succeeded: bool, message: str) -> None: ...


class LoggingProgress:
    """Progress reporter that writes through structlog."""

    def __init__(self):
        self.logger = logger.bind(component="progress")

    def start(self, operation_id: str, message: str) -> None:
        self.logger.info(message, operation=operation_id)

    def finish(self, operation_id: str, succeeded: bool, message: str) -> None:
        if succeeded:
            self.logger.info(message, operation=operation_id)
        else:
            self.logger.error(message, operation=operation_id)


class NullProgress:
    """Progress reporter that discards everything."""

    def start(self, operation_id: str, message: str) -> None:
        pass

    def finish(self, operation_id: str, succeeded: bool, message: str) -> None:
        pass


class ProcessRunner:
    """Runs external commands and folds every failure into an ExecutionResult."""

    def __init__(self, progress: ProgressReporter | None = None):
        self.progress: ProgressReporter = progress or LoggingProgress()
        self._exported_env: dict[str, str] = {}
        self.logger = logger.bind(component="process_runner")

    @property
    def exported_env(self) -> dict[str, str]:
        """Environment overrides applied to every command."""
        return dict(self._exported_env)

    def export_env(self, name: str, value: str) -> None:
        """Set an environment variable for all later commands."""
        self._exported_env[name] = value
        self.logger.debug("Exported environment variable", name=name)

    async def run(
        self,
        cmd: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        silent: bool = False,
        operation_id: str | None = None,
        description: str | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """
        Run a command and capture its output. Never raises.

        Args:
            cmd: Command and arguments as a list
            cwd: Working directory for the command
            env: Environment overrides for this invocation only
            silent: Skip progress reporting
            operation_id: Correlates progress start/finish notifications
            description: Progress message (defaults to the command line)
            timeout: Optional timeout in seconds; None inherits the tool's own behavior

        Returns:
            ExecutionResult with stripped stdout on success, or the error text on failure
        """
        command_line = " ".join(cmd)
        op_id = operation_id or f"cmd-{cmd[0] if cmd else 'empty'}"
        self.logger.debug("Executing command", command=command_line, cwd=cwd)

        if not silent:
            self.progress.start(op_id, description or command_line)

        result = await self._execute(cmd, cwd=cwd, env=env, timeout=timeout)

        if not result.succeeded:
            self.logger.debug(
                "Command failed",
                command=command_line,
                returncode=result.returncode,
                error=result.output,
            )

        if not silent:
            message = description or command_line
            if result.succeeded:
                self.progress.finish(op_id, True, message)
            else:
                self.progress.finish(op_id, False, f"{message} failed: {result.output}")

        return result

    async def _execute(
        self,
        cmd: list[str],
        *,
        cwd: str | None,
        env: dict[str, str] | None,
        timeout: float | None,
    ) -> ExecutionResult:
        if not cmd:
            return ExecutionResult("No command given", False, cmd)

        process_env = os.environ.copy()
        process_env.update(self._exported_env)
        if env:
            process_env.update(env)

        kwargs: dict[str, Any] = {
            "cwd": cwd,
            "env": process_env,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }

        process = None
        try:
            process = await asyncio.create_subprocess_exec(*cmd, **kwargs)
            if timeout is None:
                stdout_bytes, stderr_bytes = await process.communicate()
            else:
                stdout_bytes, stderr_bytes = await asyncio.wait_for(
                    process.communicate(), timeout=timeout
                )
        except asyncio.TimeoutError:
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
            return ExecutionResult(
                f"Command timed out after {timeout} seconds: {' '.join(cmd)}", False, cmd
            )
        except (OSError, ValueError) as e:
            # Missing binary, bad cwd, permission problems
            return ExecutionResult(str(e), False, cmd)

        stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
        stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""

        if process.returncode != 0:
            error_msg = stderr.strip() or f"Command exited with code {process.returncode}"
            return ExecutionResult(error_msg, False, cmd, process.returncode)

        return ExecutionResult(stdout.strip(), True, cmd, process.returncode)
