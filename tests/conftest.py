"""Shared pytest fixtures for pulumi-backend tests."""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from pulumi_backend.core.process_runner import ExecutionResult, NullProgress, ProcessRunner
from pulumi_backend.core.session import BackendSession
from pulumi_backend.core.settings import BackendSettings

CALLER_ARN = "arn:aws:iam::123456789012:user/deployer"
KEY_ID = "1234abcd-12ab-34cd-56ef-1234567890ab"


@dataclass
class Rule:
    prefix: tuple[str, ...]
    output: str
    succeeded: bool
    contains: str | None
    times: int | None


class FakeRunner(ProcessRunner):
    """Records commands and answers them from prefix rules.

    The most recently added matching rule wins; unmatched commands succeed
    with empty output. Rules added with ``times`` expire after that many uses.
    """

    def __init__(self):
        super().__init__(progress=NullProgress())
        self.rules: list[Rule] = []
        self.calls: list[list[str]] = []
        self.cwds: list[str | None] = []
        self.envs: list[dict[str, str]] = []

    def on(
        self,
        *prefix: str,
        output: str = "",
        succeeded: bool = True,
        contains: str | None = None,
        times: int | None = None,
    ) -> "FakeRunner":
        self.rules.append(Rule(tuple(prefix), output, succeeded, contains, times))
        return self

    def _match(self, cmd: list[str]) -> Rule | None:
        for rule in reversed(self.rules):
            if tuple(cmd[: len(rule.prefix)]) != rule.prefix:
                continue
            if rule.contains is not None and rule.contains not in cmd:
                continue
            if rule.times is not None:
                rule.times -= 1
                if rule.times <= 0:
                    self.rules.remove(rule)
            return rule
        return None

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
        self.calls.append(list(cmd))
        self.cwds.append(cwd)
        self.envs.append({**self.exported_env, **(env or {})})

        rule = self._match(cmd)
        if rule is None:
            return ExecutionResult("", True, cmd, 0)
        return ExecutionResult(rule.output, rule.succeeded, cmd, 0 if rule.succeeded else 1)

    def commands(self, *prefix: str) -> list[list[str]]:
        return [call for call in self.calls if tuple(call[: len(prefix)]) == prefix]

    def called(self, *prefix: str) -> bool:
        return bool(self.commands(*prefix))

    def index(self, *prefix: str) -> int:
        """Position of the first call starting with ``prefix``."""
        for position, call in enumerate(self.calls):
            if tuple(call[: len(prefix)]) == prefix:
                return position
        raise AssertionError(f"{' '.join(prefix)!r} was never called")


class ScriptedDecisions:
    """Replays canned answers and records every question asked."""

    def __init__(
        self,
        confirms: Sequence[bool] = (),
        answers: dict[str, str] | None = None,
        choices: dict[str, str] | None = None,
    ):
        self.confirms = list(confirms)
        self.answers = answers or {}
        self.choices = choices or {}
        self.questions: list[str] = []

    def confirm(self, question: str, default: bool = False) -> bool:
        self.questions.append(question)
        return self.confirms.pop(0) if self.confirms else default

    def choose(self, question: str, options: Sequence[str], default: str | None = None) -> str:
        self.questions.append(question)
        if question in self.choices:
            return self.choices[question]
        return default if default in options else options[0]

    def ask(self, question: str, default: str = "") -> str:
        self.questions.append(question)
        return self.answers.get(question, default)


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Runner where AWS identity resolves and everything else succeeds."""
    runner = FakeRunner()
    runner.on("aws", "sts", "get-caller-identity", output=CALLER_ARN)
    return runner


@pytest.fixture
def session(fake_runner: FakeRunner) -> BackendSession:
    return BackendSession(fake_runner)


@pytest.fixture
def settings() -> BackendSettings:
    """Settings isolated from the host environment and .env files."""
    return BackendSettings(
        _env_file=None,
        aws_region="eu-west-3",
        passphrase=None,
        access_token=None,
        policy_propagation_delay=0,
    )


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    project = tmp_path / "proj"
    project.mkdir()
    return project


def create_key_output(key_id: str = KEY_ID) -> str:
    return json.dumps({"KeyMetadata": {"KeyId": key_id, "Enabled": True}})
